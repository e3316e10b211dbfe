"""
Reconciliation of successive partial transcripts into one committed text.

Every tick the model re-transcribes the trailing window and may change its
mind about earlier words. The Reconciler keeps what has been emitted split
into a stable prefix (never retracted) and a provisional suffix (still
correctable), and turns each new transcript into the smallest Edit.

Words are aligned on a normalized key so "Hello," and "hello" match;
display diffs and promotion compare the exact tokens.
"""

import re
from difflib import SequenceMatcher
from typing import List, Optional, Sequence

from .silence import clean_transcript
from .types import CommittedText, Edit, PartialTranscript


# Window words that may precede the stable overlap (cut at the window start)
MAX_LEADING_FRAGMENTS = 2

# Stable words a fuzzy anchor may leave contradicted
MAX_CONTRADICTED = 2

# Upper bound on the audio behind one word when placing words in time
MAX_WORD_SECONDS = 0.75


def normalize_word(word: str) -> str:
    """
    Strip punctuation and lowercase for alignment.

    Examples:
        "Hello," -> "hello"
        "world." -> "world"
    """
    return re.sub(r'[^\w\s]', '', word).lower()


def common_prefix(a: Sequence[str], b: Sequence[str]) -> int:
    """Number of leading items a and b share."""
    n = 0
    for x, y in zip(a, b):
        if x != y:
            break
        n += 1
    return n


def compute_edit(old_words: List[str], new_words: List[str]) -> Edit:
    """
    Minimal word-boundary Edit turning " ".join(old_words) into " ".join(new_words).

    The retained part is the longest common word prefix, so a revision
    never deletes text the two versions agree on.
    """
    old_text = " ".join(old_words)
    new_text = " ".join(new_words)
    shared = common_prefix(old_words, new_words)
    retain = len(" ".join(new_words[:shared]))
    return Edit(
        retain_chars=retain,
        delete_chars=len(old_text) - retain,
        insert_text=new_text[retain:],
    )


class Reconciler:
    """
    Owns the CommittedText of one session.

    Not thread-safe: called from the scheduler thread while recording and
    from the finalizer once the scheduler has stopped.

    Usage:
        reconciler = Reconciler(promotion_cycles=2)
        edit = reconciler.update(transcript)
        sink.apply(edit)
        final_edit = reconciler.finalize(last_transcript)
    """

    def __init__(self, promotion_cycles: int = 2):
        if promotion_cycles < 1:
            raise ValueError("promotion_cycles must be >= 1")
        self.promotion_cycles = promotion_cycles

        self.stable: List[str] = []
        self.provisional: List[str] = []
        self._seen: List[int] = []  # consecutive identical sightings per provisional word
        self._starts: List[float] = []  # estimated audio start per provisional word

        self.conflicts = 0
        self.cycles = 0

    # State accessors

    @property
    def committed(self) -> CommittedText:
        return CommittedText(stable=list(self.stable), provisional=list(self.provisional))

    @property
    def text(self) -> str:
        return " ".join(self.stable + self.provisional)

    @property
    def stable_text(self) -> str:
        return " ".join(self.stable)

    @property
    def provisional_text(self) -> str:
        return " ".join(self.provisional)

    # Reconciliation

    def update(self, transcript: PartialTranscript) -> Edit:
        """
        Fold one transcript into the committed text and return the Edit.

        An empty transcript carries no information: the Edit is a no-op
        and the cycle does not count towards promotion.
        """
        old_words = self.stable + self.provisional
        self._reconcile(transcript)
        return compute_edit(old_words, self.stable + self.provisional)

    def finalize(self, transcript: Optional[PartialTranscript] = None) -> Edit:
        """Reconcile the final transcript (if any) and make everything stable."""
        old_words = self.stable + self.provisional
        if transcript is not None:
            self._reconcile(transcript)
        self._promote_all()
        return compute_edit(old_words, self.stable)

    def _reconcile(self, transcript: PartialTranscript) -> None:
        words = clean_transcript(transcript.text).split()
        if not words:
            return

        # Provisional words whose audio started before this window can no
        # longer be heard; freeze them instead of letting them vanish
        if self.provisional and transcript.end_time > 0:
            cut = 0
            while (cut < len(self._starts)
                   and self._starts[cut] < transcript.start_time):
                cut += 1
            self._promote_leading(cut)

        start = self._align(words)
        new_provisional = words[start:]

        still_same = common_prefix(self.provisional, new_provisional)
        seen = [n + 1 for n in self._seen[:still_same]]
        seen += [1] * (len(new_provisional) - still_same)

        promoted = 0
        while promoted < len(seen) and seen[promoted] >= self.promotion_cycles:
            promoted += 1

        self.stable.extend(new_provisional[:promoted])
        self.provisional = new_provisional[promoted:]
        self._seen = seen[promoted:]

        # Words are packed against the end of the window at no more than
        # MAX_WORD_SECONDS each; leading silence in the window is not speech
        span = min(transcript.duration / len(words), MAX_WORD_SECONDS)
        first = start + promoted
        self._starts = [transcript.end_time - (len(words) - first - i) * span
                        for i in range(len(self.provisional))]
        self.cycles += 1

    def _align(self, words: List[str]) -> int:
        """
        Index in `words` where the new provisional suffix starts.

        Stable words are authoritative. The window is anchored on the end
        of the stable text; when the transcript disagrees with the last
        stable words, the disagreeing transcript words are dropped and
        counted as a conflict.
        """
        stable_keys = [normalize_word(w) for w in self.stable]
        keys = [normalize_word(w) for w in words]

        agreed = common_prefix(stable_keys, keys)
        if agreed == len(stable_keys) or agreed == len(keys):
            return agreed

        anchor = _overlap(stable_keys, keys)
        if anchor is not None:
            return anchor

        # Fuzzy anchor: a run of 2+ words that ends among the last stable words
        tail = stable_keys[-len(keys):]
        matcher = SequenceMatcher(None, tail, keys, autojunk=False)
        best = None
        for block in matcher.get_matching_blocks():
            contradicted = len(tail) - (block.a + block.size)
            if block.size >= 2 and contradicted <= MAX_CONTRADICTED:
                if best is None or block.a + block.size > best.a + best.size:
                    best = block

        if best is not None:
            anchor_end = best.b + best.size
            contradicted = len(tail) - (best.a + best.size)
        elif agreed:
            # Same start as the stable text, diverging inside it
            anchor_end = agreed
            contradicted = len(stable_keys) - agreed
        else:
            return 0  # window lies wholly after the stable text

        start = min(len(keys), anchor_end + contradicted)
        if start > anchor_end:
            self.conflicts += 1
            print(f"[Reconcile] Transcript contradicts stable text "
                  f"({contradicted} word(s)); keeping stable")
        return start

    def _promote_leading(self, count: int) -> None:
        if count <= 0:
            return
        self.stable.extend(self.provisional[:count])
        self.provisional = self.provisional[count:]
        self._seen = self._seen[count:]
        self._starts = self._starts[count:]

    def _promote_all(self) -> None:
        self._promote_leading(len(self.provisional))


def _overlap(stable_keys: List[str], keys: List[str]) -> Optional[int]:
    """
    Where the end of the stable text reappears at the start of `keys`.

    Returns the index just after the overlap, or None. The longest overlap
    wins. Up to MAX_LEADING_FRAGMENTS words cut off at the window start may
    precede it, but only for overlaps of two or more words.
    """
    best = None
    for lead in range(MAX_LEADING_FRAGMENTS + 1):
        longest = min(len(stable_keys), len(keys) - lead)
        for n in range(longest, 0 if lead == 0 else 1, -1):
            if stable_keys[-n:] == keys[lead:lead + n]:
                if best is None or n > best[0]:
                    best = (n, lead + n)
                break
    return best[1] if best else None
