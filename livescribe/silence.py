"""
Silence gate: keeps inference away from audio that contains no speech.

Speech models fabricate text from silence and background noise, so a
silent chunk is never sent to inference. The threshold is a fixed RMS of
peak-normalized amplitude; it does not adapt, which means it can fail in
noisy rooms.
"""

import re

import numpy as np

from .types import AudioWindow


# Annotations models emit for non-speech audio: [BLANK_AUDIO], (coughs), *music*
_NON_SPEECH = re.compile(r"\[[^\]]*\]|\([^)]*\)|\*[^*]*\*")


def rms(audio: np.ndarray) -> float:
    """Root-mean-square amplitude. Empty audio is 0."""
    if len(audio) == 0:
        return 0.0
    audio = audio.astype(np.float64, copy=False)
    return float(np.sqrt(np.mean(audio ** 2)))


def clean_transcript(text: str) -> str:
    """Strip non-speech annotations and normalize whitespace."""
    return " ".join(_NON_SPEECH.sub(" ", text).split())


class SilenceGate:
    """
    Classifies a window as silent from the energy of its most recent sub-chunk.

    Usage:
        gate = SilenceGate(threshold=0.003, probe_seconds=0.3)
        if gate.is_silent(window):
            ...  # skip inference this tick
    """

    def __init__(self, threshold: float = 0.003, probe_seconds: float = 0.3):
        self.threshold = threshold
        self.probe_seconds = probe_seconds

    def probe(self, window: AudioWindow) -> np.ndarray:
        """The trailing `probe_seconds` of real audio (padding excluded)."""
        n_samples = int(self.probe_seconds * window.sample_rate)
        return window.audio[-n_samples:] if n_samples > 0 else window.audio

    def level(self, window: AudioWindow) -> float:
        return rms(self.probe(window))

    def is_silent(self, window: AudioWindow) -> bool:
        return self.level(window) < self.threshold

    def is_all_silent(self, window: AudioWindow) -> bool:
        """True when no probe-sized chunk of the window reaches the threshold."""
        audio = window.audio
        step = max(int(self.probe_seconds * window.sample_rate), 1)
        for start in range(0, len(audio), step):
            if rms(audio[start:start + step]) >= self.threshold:
                return False
        return True
