"""
Fixed-cadence window scheduler.

Each tick takes the trailing window from the ring, drops it if the gate
says silent, and otherwise runs one inference call. A single-slot gate
keeps at most one call in flight; ticks that arrive while it is taken are
dropped rather than queued, and the next tick's window covers the gap.
"""

import threading
import time
from typing import Callable, Dict, Optional

from .audio import AudioRing
from .errors import InferenceError
from .inference import InferenceAdapter
from .metrics import MetricsWriter, log_tick_skipped
from .silence import SilenceGate
from .types import PartialTranscript


class WindowScheduler:
    """
    Drives inference for one session.

    Usage:
        scheduler = WindowScheduler(ring, adapter, gate, on_transcript=handle)
        scheduler.start()
        ...
        scheduler.stop()            # waits for the in-flight call
        late = scheduler.late_transcript
    """

    def __init__(
        self,
        ring: AudioRing,
        adapter: InferenceAdapter,
        gate: SilenceGate,
        on_transcript: Callable[[PartialTranscript], None],
        tick_seconds: float = 0.3,
        window_seconds: float = 5.0,
        min_window_seconds: float = 1.0,
        metrics: Optional[MetricsWriter] = None,
        session_id: str = "",
        clock: Callable[[], float] = time.monotonic,
    ):
        if window_seconds <= tick_seconds:
            raise ValueError("window_seconds must be greater than tick_seconds")

        self.ring = ring
        self.adapter = adapter
        self.gate = gate
        self.on_transcript = on_transcript
        self.tick_seconds = tick_seconds
        self.window_seconds = window_seconds
        self.min_window_seconds = min_window_seconds
        self.metrics = metrics
        self.session_id = session_id
        self.clock = clock

        # Counters
        self.ticks = 0
        self.silent_ticks = 0
        self.dropped_ticks = 0
        self.failed_ticks = 0
        self.inference_calls = 0
        self.max_in_flight = 0

        # Result of a call that finished after stop() was requested
        self.late_transcript: Optional[PartialTranscript] = None

        self._slot = threading.Semaphore(1)
        self._in_flight = 0
        self._counter_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def stopping(self) -> bool:
        return self._stop_event.is_set()

    def window_duration(self) -> float:
        """Seconds to snapshot this tick: captured audio, clamped to [min, max] window."""
        captured = self.ring.captured_seconds
        return min(max(captured, self.min_window_seconds), self.window_seconds)

    def start(self) -> None:
        if self._thread is not None:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name="scheduler", daemon=True)
        self._thread.start()

    def request_stop(self) -> None:
        """Flag the stop without waiting; results from now on are late."""
        self._stop_event.set()

    def stop(self, timeout: Optional[float] = None) -> None:
        """Stop ticking. An in-flight call is allowed to finish, not interrupted."""
        self.request_stop()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=timeout)
            if thread.is_alive():
                print("[Scheduler] Tick still running after stop timeout")

    def tick(self) -> Optional[PartialTranscript]:
        """
        Run one scheduling cycle.

        Returns the transcript handed to `on_transcript`, or None when the
        tick was silent, dropped, failed, or finished after stop().
        """
        if self._stop_event.is_set():
            return None

        self.ticks += 1
        window = self.ring.snapshot(self.window_duration())

        if self.gate.is_silent(window):
            self.silent_ticks += 1
            log_tick_skipped(self.metrics, self.session_id, "silent_tick",
                             level=round(self.gate.level(window), 5))
            return None

        if not self._slot.acquire(blocking=False):
            self._count_dropped(1)
            return None

        try:
            with self._counter_lock:
                self._in_flight += 1
                self.max_in_flight = max(self.max_in_flight, self._in_flight)
                self.inference_calls += 1

            try:
                transcript = self.adapter.infer(window)
            except InferenceError as e:
                self.failed_ticks += 1
                print(f"[Scheduler] Inference failed, skipping tick: {e}")
                log_tick_skipped(self.metrics, self.session_id, "inference_failure",
                                 error=str(e), kind=type(e).__name__)
                return None
            finally:
                with self._counter_lock:
                    self._in_flight -= 1

            if self._stop_event.is_set():
                # Folded into finalization instead of a mid-session Edit
                self.late_transcript = transcript
                return None

            self.on_transcript(transcript)
            return transcript
        finally:
            self._slot.release()

    def stats(self) -> Dict[str, int]:
        return {
            "ticks": self.ticks,
            "silent_ticks": self.silent_ticks,
            "dropped_ticks": self.dropped_ticks,
            "failed_ticks": self.failed_ticks,
            "inference_calls": self.inference_calls,
            "max_in_flight": self.max_in_flight,
        }

    def _count_dropped(self, count: int) -> None:
        self.dropped_ticks += count
        log_tick_skipped(self.metrics, self.session_id, "dropped_tick", count=count)

    def _run(self) -> None:
        next_tick = self.clock() + self.tick_seconds

        while not self._stop_event.wait(max(0.0, next_tick - self.clock())):
            try:
                self.tick()
            except Exception as e:
                print(f"[Scheduler] Tick error: {e}")

            next_tick += self.tick_seconds
            now = self.clock()
            if now > next_tick:
                # Deadlines missed while inference ran; the next window covers them
                missed = int((now - next_tick) // self.tick_seconds) + 1
                self._count_dropped(missed)
                next_tick += missed * self.tick_seconds
