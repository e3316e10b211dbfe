"""
Session lifecycle: Idle -> Recording -> Finalizing -> Idle.

A Session is one recording episode. The SessionController owns at most one
of them, wires capture, scheduler and reconciler together for its
duration, and runs the final full-window pass when it stops.
"""

import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional
from uuid import UUID, uuid4

from .audio import AudioRing
from .errors import CaptureError, InferenceError
from .inference import InferenceAdapter
from .metrics import (
    MetricsWriter,
    log_conflict,
    log_edit,
    log_inference,
    log_session_complete,
    log_session_start,
)
from .output import EmissionSink
from .reconcile import Reconciler
from .scheduler import WindowScheduler
from .silence import SilenceGate
from .types import ConfigSnapshot, Edit, PartialTranscript, SessionState


@dataclass
class Session:
    """
    One recording episode.

    Everything here is discarded once the session is finalized.
    """
    id: UUID
    config_snapshot: ConfigSnapshot
    ring: AudioRing
    reconciler: Reconciler
    gate: SilenceGate
    scheduler: Optional[WindowScheduler] = None
    start_time: float = 0.0
    chunk_seq: int = 0
    edits: int = 0
    final_text: str = ""


class SessionController:
    """
    Serializes start/stop signals and runs one session at a time.

    Start while recording or finalizing and stop while idle or finalizing
    are ignored (printed and logged), never queued.

    Usage:
        controller = SessionController(config.snapshot, adapter, capture, sink)
        controller.on_state_change = menu_bar.set_state
        controller.start()
        ...
        controller.stop()  # finalizes in the background
    """

    def __init__(
        self,
        config_snapshot_fn: Callable[[], ConfigSnapshot],
        adapter: InferenceAdapter,
        capture,
        sink: EmissionSink,
        metrics: Optional[MetricsWriter] = None,
    ):
        self.config_snapshot_fn = config_snapshot_fn
        self.adapter = adapter
        self.capture = capture  # start(on_samples, on_error) / stop()
        self.sink = sink
        self.metrics = metrics

        self.state: SessionState = "idle"
        self.session: Optional[Session] = None
        self.ring: Optional[AudioRing] = None
        self.invalid_signals = 0

        # Callbacks
        self.on_state_change: Optional[Callable[[SessionState], None]] = None
        self.on_error: Optional[Callable[[Exception], None]] = None
        self.on_session_complete: Optional[Callable[[Session], None]] = None

        self._lock = threading.Lock()
        self._finalize_thread: Optional[threading.Thread] = None

    # Control signals

    def start(self, run_scheduler: bool = True) -> Optional[Session]:
        """
        Begin a session. Returns None if the signal was ignored.

        With run_scheduler=False no ticking thread is started and the
        caller drives `session.scheduler.tick()` itself (replay, tests).

        Raises:
            CaptureError: microphone could not be opened (state stays idle)
        """
        with self._lock:
            if self.state != "idle":
                self._invalid_signal("start")
                return None

            snapshot = self.config_snapshot_fn()
            ring = self._ring_for(snapshot)
            ring.reset()

            session = Session(
                id=uuid4(),
                config_snapshot=snapshot,
                ring=ring,
                reconciler=Reconciler(promotion_cycles=snapshot.promotion_cycles),
                gate=SilenceGate(snapshot.silence_threshold, snapshot.silence_probe_seconds),
                start_time=time.time(),
            )
            session.scheduler = WindowScheduler(
                ring,
                self.adapter,
                session.gate,
                on_transcript=lambda t: self._on_transcript(session, t),
                tick_seconds=snapshot.tick_seconds,
                window_seconds=snapshot.window_seconds,
                min_window_seconds=snapshot.min_window_seconds,
                metrics=self.metrics,
                session_id=str(session.id),
            )

            try:
                self.capture.start(ring.write, on_error=self.on_capture_error)
            except CaptureError as e:
                print(f"[Session] Capture failed: {e}")
                if self.metrics:
                    self.metrics.log("capture_failure", session_id=str(session.id), error=str(e))
                raise

            self.session = session
            self.sink.begin()
            if run_scheduler:
                session.scheduler.start()
            self.state = "recording"

        print(f"[Session] Recording ({str(session.id)[:8]})")
        log_session_start(self.metrics, str(session.id),
                          snapshot.window_seconds, snapshot.tick_seconds)
        self._notify_state("recording")
        return session

    def stop(self, wait: bool = False) -> bool:
        """
        Finalize the active session in the background.

        Returns False if the signal was ignored. With wait=True, blocks
        until the session is back to idle.
        """
        with self._lock:
            if self.state != "recording":
                self._invalid_signal("stop")
                return False

            session = self.session
            self.state = "finalizing"
            # From here on a finishing tick is folded into finalization
            session.scheduler.request_stop()
            thread = threading.Thread(
                target=self._finalize, args=(session,), name="finalize", daemon=True
            )
            self._finalize_thread = thread

        self._notify_state("finalizing")
        thread.start()

        if wait:
            thread.join()
        return True

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """Wait for a running finalization. Returns True once idle."""
        thread = self._finalize_thread
        if thread is not None:
            thread.join(timeout=timeout)
        return self.state == "idle"

    def on_capture_error(self, error: Exception) -> None:
        """Device failure: the session is lost, go straight back to idle."""
        with self._lock:
            session = self.session
            if session is None or self.state != "recording":
                return
            self.session = None
            self.state = "idle"

        print(f"[Session] Capture failure, discarding session: {error}")
        session.scheduler.stop()
        try:
            self.capture.stop()
        except Exception as e:
            print(f"[Session] Error stopping capture: {e}")

        # Emitted text stays where it was typed; the provisional tail is never confirmed
        reconciler = session.reconciler
        print(f"[Session] Abandoned text: \"{reconciler.text}\" "
              f"(unconfirmed: \"{reconciler.provisional_text}\")")
        if self.metrics:
            self.metrics.log("capture_failure", session_id=str(session.id), error=str(error),
                             text=reconciler.text, provisional=reconciler.provisional_text)
        self.sink.abort(reconciler.text)

        self._notify_state("idle")
        if self.on_error:
            self.on_error(error if isinstance(error, CaptureError) else CaptureError(str(error)))

    # Pipeline

    def _on_transcript(self, session: Session, transcript: PartialTranscript) -> None:
        """
        Scheduler thread: fold one transcript in and emit its Edit.

        Runs under the controller lock so stop() cannot slip in between the
        state check and the Edit.
        """
        with self._lock:
            if self.session is not session:
                return  # Session was discarded mid-call
            if self.state != "recording":
                session.scheduler.late_transcript = transcript
                return

            session.chunk_seq += 1
            log_inference(
                self.metrics, str(session.id), session.chunk_seq, transcript.provider,
                transcript.latency_ms, transcript.duration * 1000, transcript.text,
            )

            conflicts_before = session.reconciler.conflicts
            edit = session.reconciler.update(transcript)
            if session.reconciler.conflicts > conflicts_before:
                log_conflict(self.metrics, str(session.id), session.chunk_seq,
                             session.reconciler.conflicts)

            self._emit(session, edit)

    def _emit(self, session: Session, edit: Edit) -> None:
        if edit.is_noop:
            return
        self.sink.apply(edit)
        session.edits += 1
        log_edit(
            self.metrics, str(session.id), session.chunk_seq,
            edit.retain_chars, edit.delete_chars, len(edit.insert_text),
            len(session.reconciler.stable_text),
        )

    def _finalize(self, session: Session) -> None:
        """
        Stop audio, run the final pass, emit, go idle.

        This runs in a background thread.
        """
        finalize_start = time.time()
        try:
            try:
                self.capture.stop()
            except Exception as e:
                print(f"[Session] Error stopping capture: {e}")

            # Lets an in-flight call finish; its result lands in late_transcript
            session.scheduler.stop()

            transcript = self._final_transcript(session)
            if transcript is not None:
                session.chunk_seq += 1
                log_inference(
                    self.metrics, str(session.id), session.chunk_seq, transcript.provider,
                    transcript.latency_ms, transcript.duration * 1000, transcript.text,
                )

            edit = session.reconciler.finalize(transcript)
            self._emit(session, edit)

            session.final_text = session.reconciler.text
            self.sink.finish(session.final_text)

            elapsed = time.time() - finalize_start
            print(f"[Session] {session.chunk_seq} chunks | finalize {elapsed:.2f}s")
            print(f"[Output] \"{session.final_text}\"")

            log_session_complete(
                self.metrics,
                str(session.id),
                total_duration_ms=(time.time() - session.start_time) * 1000,
                chunks=session.chunk_seq,
                final_text=session.final_text,
                edits=session.edits,
                conflicts=session.reconciler.conflicts,
                **session.scheduler.stats(),
            )
        except Exception as e:
            print(f"[Session] Finalize error: {e}")
            if self.on_error:
                self.on_error(e)
        finally:
            with self._lock:
                if self.session is session:
                    self.session = None
                self.state = "idle"
            self._notify_state("idle")

        if self.on_session_complete:
            self.on_session_complete(session)

    def _final_transcript(self, session: Session) -> Optional[PartialTranscript]:
        """
        Transcript of the final window, or the late in-flight result.

        Returns None when there is nothing new to reconcile.
        """
        snapshot = session.config_snapshot
        ring = session.ring
        late = session.scheduler.late_transcript

        final_seconds = min(snapshot.final_window_seconds, ring.capacity / ring.sample_rate)
        duration = min(max(ring.captured_seconds, snapshot.min_window_seconds), final_seconds)
        window = ring.snapshot(duration)

        if session.gate.is_all_silent(window):
            return late

        try:
            return self.adapter.infer(window)
        except InferenceError as e:
            print(f"[Session] Final inference failed, using best available text: {e}")
            if self.metrics:
                self.metrics.log("inference_failure", session_id=str(session.id),
                                 error=str(e), final=True)
            return late

    # Helpers

    def _ring_for(self, snapshot: ConfigSnapshot) -> AudioRing:
        capacity = int(round(snapshot.ring_seconds * snapshot.sample_rate))
        ring = self.ring
        if ring is None or ring.capacity != capacity or ring.sample_rate != snapshot.sample_rate:
            ring = AudioRing(snapshot.ring_seconds, snapshot.sample_rate)
            self.ring = ring
        return ring

    def _invalid_signal(self, signal: str) -> None:
        """Called with the lock held."""
        self.invalid_signals += 1
        print(f"[Session] Ignoring {signal} while {self.state}")
        if self.metrics:
            self.metrics.log("invalid_signal", signal=signal, state=self.state)

    def _notify_state(self, state: SessionState) -> None:
        if self.on_state_change:
            try:
                self.on_state_change(state)
            except Exception as e:
                print(f"[Session] State callback error: {e}")
