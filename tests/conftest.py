"""
Shared fakes for livescribe tests: no microphone, no model.
"""

import threading
import time

import numpy as np
import pytest

from livescribe.errors import CaptureError
from livescribe.providers import Provider
from livescribe.types import ConfigSnapshot


SAMPLE_RATE = 16000


def loud(seconds: float, amplitude: float = 0.1) -> np.ndarray:
    """A 440 Hz tone, well above the silence threshold."""
    t = np.arange(int(round(seconds * SAMPLE_RATE))) / SAMPLE_RATE
    return (amplitude * np.sin(2 * np.pi * 440 * t)).astype(np.float32)


def silence(seconds: float) -> np.ndarray:
    return np.zeros(int(round(seconds * SAMPLE_RATE)), dtype=np.float32)


def make_snapshot(**overrides) -> ConfigSnapshot:
    values = dict(
        input_device="",
        sample_rate=SAMPLE_RATE,
        blocksize=1024,
        ring_seconds=30.0,
        tick_seconds=0.3,
        window_seconds=5.0,
        min_window_seconds=1.0,
        final_window_seconds=30.0,
        inference_timeout=2.0,
        silence_threshold=0.003,
        silence_probe_seconds=0.3,
        promotion_cycles=2,
        type_live=False,
        copy_on_finish=False,
    )
    values.update(overrides)
    return ConfigSnapshot(**values)


class ScriptedProvider(Provider):
    """
    Returns scripted responses in order; the last one repeats.

    `release` (an Event) makes transcribe() block until set, `error` makes
    it raise.
    """

    name = "scripted"

    def __init__(self, responses=None, delay: float = 0.0, error: Exception = None):
        self.responses = list(responses or [])
        self.delay = delay
        self.error = error
        self.release = None
        self.calls = []
        self.started = threading.Event()
        self.finished = threading.Event()
        self.initialized = False
        self.shut_down = False
        self._lock = threading.Lock()

    def initialize(self) -> None:
        self.initialized = True

    def transcribe(self, audio, sample_rate=16000) -> str:
        with self._lock:
            self.calls.append(np.array(audio, copy=True))
        self.finished.clear()
        self.started.set()
        try:
            if self.release is not None:
                self.release.wait(5.0)
            if self.delay:
                time.sleep(self.delay)
            if self.error is not None:
                raise self.error
            with self._lock:
                if len(self.responses) > 1:
                    return self.responses.pop(0)
                return self.responses[0] if self.responses else ""
        finally:
            self.finished.set()

    def shutdown(self) -> None:
        self.shut_down = True


class FakeCapture:
    """Capture stand-in: the test pushes audio, or makes start() fail."""

    def __init__(self, fail_with: Exception = None):
        self.fail_with = fail_with
        self.on_samples = None
        self.on_error = None
        self.start_calls = 0
        self.stop_calls = 0

    @property
    def is_running(self) -> bool:
        return self.on_samples is not None

    def start(self, on_samples, on_error=None) -> None:
        self.start_calls += 1
        if self.fail_with is not None:
            raise self.fail_with
        self.on_samples = on_samples
        self.on_error = on_error

    def push(self, samples) -> None:
        if self.on_samples is not None:
            self.on_samples(samples)

    def stop(self) -> None:
        self.stop_calls += 1
        self.on_samples = None

    def fail(self, message: str = "device unplugged") -> None:
        if self.on_error is not None:
            self.on_error(CaptureError(message))


@pytest.fixture
def provider():
    return ScriptedProvider(["hello"])


@pytest.fixture
def capture():
    return FakeCapture()
