"""
Parakeet TDT on MLX, run in-process on each sliding window.

Only available on Apple Silicon; mlx and parakeet_mlx are imported lazily
so the rest of the package (and the tests) work without them.
"""

import gc
import threading

import numpy as np

from . import Provider
from ..errors import InferenceError


DEFAULT_MODEL = "mlx-community/parakeet-tdt-0.6b-v3"

# mx cache release cadence, ~6s of ticks at 0.3s
CACHE_CLEAR_EVERY = 20


def _release_mlx_cache(mx) -> None:
    if hasattr(mx, "clear_cache"):
        mx.clear_cache()
    elif hasattr(mx, "metal") and hasattr(mx.metal, "clear_cache"):
        mx.metal.clear_cache()


class ParakeetProvider(Provider):
    """
    Windowed transcription with a Parakeet MLX model.

    Weights stay resident between calls. MLX models aren't thread-safe, so
    every model call holds `_lock`.
    """

    name = "parakeet"

    def __init__(self, model_id: str = DEFAULT_MODEL):
        self.model_id = model_id
        self.model = None
        self.preprocessor_config = None
        self._lock = threading.Lock()
        self._calls_since_clear = 0

    @property
    def is_loaded(self) -> bool:
        return self.model is not None

    @property
    def sample_rate(self) -> int:
        return self.preprocessor_config.sample_rate if self.preprocessor_config else 16000

    def initialize(self) -> None:
        """Load weights and decode one second of silence to warm up."""
        try:
            from parakeet_mlx import from_pretrained

            print(f"[{self.name}] Loading {self.model_id}...")
            model = from_pretrained(self.model_id)
            model.generate(self._to_mel(np.zeros(16000, dtype=np.float32), model.preprocessor_config))
        except Exception as e:
            print(f"[{self.name}] Failed to initialize: {e}")
            raise InferenceError(f"Failed to load {self.model_id}: {e}") from e

        with self._lock:
            self.model = model
            self.preprocessor_config = model.preprocessor_config
        print(f"[{self.name}] Ready ({self.model_id})")

    @staticmethod
    def _to_mel(audio: np.ndarray, preprocessor_config):
        import mlx.core as mx
        from parakeet_mlx.audio import get_logmel

        return get_logmel(mx.array(audio.astype(np.float32)), preprocessor_config)

    def transcribe(self, audio: np.ndarray, sample_rate: int = 16000) -> str:
        with self._lock:
            if self.model is None:
                raise InferenceError(f"{self.name} model not loaded")
            if sample_rate != self.sample_rate:
                raise InferenceError(
                    f"{self.name} expects {self.sample_rate} Hz audio, got {sample_rate} Hz"
                )

            try:
                import mlx.core as mx

                segments = self.model.generate(self._to_mel(audio, self.preprocessor_config))
                text = "".join(seg.text for seg in segments)
                del segments

                self._calls_since_clear += 1
                if self._calls_since_clear >= CACHE_CLEAR_EVERY:
                    self._calls_since_clear = 0
                    _release_mlx_cache(mx)
            except Exception as e:
                print(f"[{self.name}] Transcription error: {e}")
                raise InferenceError(f"{self.name}: {e}") from e

        return text.strip()

    def shutdown(self) -> None:
        """Drop the weights and let MLX reclaim memory."""
        with self._lock:
            self.model = None
            self.preprocessor_config = None
            self._calls_since_clear = 0
        gc.collect()
        print(f"[{self.name}] Shutdown")
