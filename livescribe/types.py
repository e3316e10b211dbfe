"""
Shared type definitions for LiveScribe.
"""

from dataclasses import dataclass, field
from typing import List, Literal

import numpy as np


SessionState = Literal["idle", "recording", "finalizing"]


@dataclass(frozen=True)
class AudioWindow:
    """
    Immutable snapshot of the trailing audio at one instant.

    `samples` is a private copy, right-padded with zeros when less audio
    was captured than requested. Only the first `valid_samples` are real.
    """
    samples: np.ndarray
    end_offset: int          # session-relative sample index of the last real sample + 1
    valid_samples: int
    sample_rate: int

    @property
    def audio(self) -> np.ndarray:
        """Real (unpadded) audio."""
        return self.samples[:self.valid_samples]

    @property
    def duration(self) -> float:
        """Seconds of real audio in the window."""
        return self.valid_samples / self.sample_rate

    @property
    def end_time(self) -> float:
        return self.end_offset / self.sample_rate

    @property
    def start_time(self) -> float:
        return (self.end_offset - self.valid_samples) / self.sample_rate


@dataclass(frozen=True)
class PartialTranscript:
    """Text from one inference pass over one AudioWindow."""
    text: str
    end_time: float = 0.0       # session-relative seconds
    duration: float = 0.0       # seconds of real audio transcribed
    latency_ms: int = 0
    provider: str = ""

    @property
    def start_time(self) -> float:
        return self.end_time - self.duration


@dataclass(frozen=True)
class Edit:
    """
    Change to the emitted text: keep the first `retain_chars`, delete the
    `delete_chars` that follow, then type `insert_text`.
    """
    retain_chars: int
    delete_chars: int
    insert_text: str

    @property
    def is_noop(self) -> bool:
        return self.delete_chars == 0 and not self.insert_text

    def apply(self, text: str) -> str:
        """Apply to `text`. Raises ValueError if the edit does not fit it."""
        if self.retain_chars + self.delete_chars != len(text):
            raise ValueError(
                f"Edit({self.retain_chars}, {self.delete_chars}) "
                f"does not fit text of length {len(text)}"
            )
        return text[:self.retain_chars] + self.insert_text


@dataclass
class CommittedText:
    """
    Words already surfaced to the sink.

    `stable` words are never retracted; `provisional` words may still be
    replaced on the next cycle.
    """
    stable: List[str] = field(default_factory=list)
    provisional: List[str] = field(default_factory=list)

    @property
    def words(self) -> List[str]:
        return self.stable + self.provisional

    @property
    def text(self) -> str:
        return " ".join(self.words)

    @property
    def stable_text(self) -> str:
        return " ".join(self.stable)


@dataclass(frozen=True)
class ConfigSnapshot:
    """
    Immutable snapshot of configuration for a session.
    Ensures config changes mid-session don't cause inconsistency.
    """
    # Audio
    input_device: str
    sample_rate: int
    blocksize: int
    ring_seconds: float

    # Scheduling
    tick_seconds: float
    window_seconds: float
    min_window_seconds: float
    final_window_seconds: float
    inference_timeout: float

    # Silence gate
    silence_threshold: float
    silence_probe_seconds: float

    # Reconciliation
    promotion_cycles: int

    # Output
    type_live: bool = True
    copy_on_finish: bool = True
