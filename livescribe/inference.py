"""
Synchronous inference wrapper with timeout and error normalization.

The scheduler calls infer() and blocks for at most `timeout` seconds. The
provider itself runs on a single dedicated worker thread so a hung call
can be abandoned without stalling the caller.
"""

import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from typing import Optional

from .errors import InferenceError, InferenceTimeout
from .providers import Provider
from .silence import clean_transcript
from .types import AudioWindow, PartialTranscript


class InferenceAdapter:
    """
    Wraps a Provider: AudioWindow in, PartialTranscript out.

    Usage:
        adapter = InferenceAdapter(provider, timeout=5.0)
        adapter.initialize()
        transcript = adapter.infer(window)  # raises InferenceError
    """

    def __init__(self, provider: Provider, timeout: float = 5.0):
        self.provider = provider
        self.timeout = timeout
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="inference")
        self._pending: Optional[Future] = None
        self._lock = threading.Lock()

    @property
    def name(self) -> str:
        return self.provider.name

    @property
    def busy(self) -> bool:
        """True while a provider call (possibly abandoned) is still running."""
        with self._lock:
            return self._pending is not None and not self._pending.done()

    def initialize(self) -> None:
        self.provider.initialize()

    def infer(self, window: AudioWindow, timeout: Optional[float] = None) -> PartialTranscript:
        """
        Transcribe one window.

        The provider sees the full (padded) window; the returned transcript
        carries the timing of the real audio in it.

        Raises:
            InferenceTimeout: provider did not answer within the timeout
            InferenceError: provider failed, or a previous call is still hung
        """
        timeout = self.timeout if timeout is None else timeout

        with self._lock:
            if self._pending is not None and not self._pending.done():
                raise InferenceError(f"[{self.name}] previous call still running")
            future = self._executor.submit(
                self.provider.transcribe, window.samples, window.sample_rate
            )
            self._pending = future

        start = time.time()
        try:
            raw_text = future.result(timeout=timeout)
        except FutureTimeout:
            raise InferenceTimeout(f"[{self.name}] no result after {timeout:.1f}s")
        except InferenceError:
            raise
        except Exception as e:
            raise InferenceError(f"[{self.name}] {e}") from e

        latency_ms = int((time.time() - start) * 1000)

        return PartialTranscript(
            text=clean_transcript(raw_text or ""),
            end_time=window.end_time,
            duration=window.duration,
            latency_ms=latency_ms,
            provider=self.name,
        )

    def shutdown(self) -> None:
        """Shutdown the provider and the worker. Does not wait for a hung call."""
        self._executor.shutdown(wait=False)
        try:
            self.provider.shutdown()
        except Exception as e:
            print(f"Error shutting down {self.name}: {e}")
