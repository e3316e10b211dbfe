"""
Speech-to-text providers with lifecycle management.

A provider holds its own state (model weights) and turns a mono float32
buffer into text. It knows nothing about windows, deadlines or sessions;
InferenceAdapter adds those.
"""

from abc import ABC, abstractmethod

import numpy as np


class Provider(ABC):
    """
    Base class for transcription providers.

    Subclasses must implement:
    - initialize(): Load model weights
    - transcribe(): Transcribe audio to text
    - shutdown(): Free resources

    transcribe() raises on failure instead of returning empty text, so an
    empty string always means "the model heard nothing".
    """

    name: str = "base"

    @abstractmethod
    def initialize(self) -> None:
        """Load model weights into memory."""
        pass

    @abstractmethod
    def transcribe(self, audio: np.ndarray, sample_rate: int = 16000) -> str:
        """
        Transcribe audio to text.

        Args:
            audio: Audio data as numpy array (mono, float32)
            sample_rate: Sample rate of `audio`

        Returns:
            Raw model text (may contain non-speech annotations)
        """
        pass

    @abstractmethod
    def shutdown(self) -> None:
        """Unload weights."""
        pass


def create_provider(model: str) -> Provider:
    """Build the provider for a model id (not yet initialized)."""
    from .parakeet import ParakeetProvider

    return ParakeetProvider(model)
