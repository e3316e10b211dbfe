"""
JSONL event log for live sessions.

Every event is one JSON object per line with a wall-clock `ts` and an
`event` name. Producers (capture, scheduler, finalizer threads) only
enqueue; a single writer thread owns the file.

Usage:
    metrics = MetricsWriter(config.metrics_file)
    metrics.log("inference", session_id=sid, latency_ms=234)
"""

import json
import time
import threading
from queue import Queue, Empty
from pathlib import Path
from typing import Any, Optional
from uuid import UUID

import numpy as np


def _to_json(value: Any) -> Any:
    """json.dumps fallback for numpy scalars/arrays and UUIDs."""
    if isinstance(value, np.generic):
        return value.item()
    if isinstance(value, np.ndarray):
        return value.tolist()
    if isinstance(value, UUID):
        return str(value)
    return repr(value)


class MetricsWriter:
    """Queue-backed JSONL writer, safe to call from any thread."""

    def __init__(self, metrics_file: Path, batch_wait: float = 1.0):
        self.metrics_file = Path(metrics_file)
        self.batch_wait = batch_wait
        self.written = 0
        self._queue: Queue[dict] = Queue()
        self._file_lock = threading.Lock()
        self._shutdown = threading.Event()
        self._writer_thread = threading.Thread(
            target=self._writer_loop, name="livescribe-metrics", daemon=True
        )
        self._writer_thread.start()

    def log(self, event: str, **fields: Any) -> None:
        """
        Queue an event. Never blocks the caller.

        Args:
            event: Event name (e.g., "inference", "dropped_tick", "edit")
            **fields: Extra JSON fields
        """
        self._queue.put({"ts": round(time.time(), 3), "event": event, **fields})

    def _drain(self) -> list[dict]:
        entries = []
        while True:
            try:
                entries.append(self._queue.get_nowait())
            except Empty:
                return entries

    def _writer_loop(self) -> None:
        while not self._shutdown.is_set():
            try:
                first = self._queue.get(timeout=self.batch_wait)
            except Empty:
                continue
            self._write_entries([first] + self._drain())

    def _write_entries(self, entries: list[dict]) -> None:
        lines = "".join(json.dumps(entry, default=_to_json) + "\n" for entry in entries)
        with self._file_lock:
            try:
                self.metrics_file.parent.mkdir(parents=True, exist_ok=True)
                with open(self.metrics_file, "a") as f:
                    f.write(lines)
                self.written += len(entries)
            except OSError as e:
                print(f"[Metrics] Failed to write {len(entries)} events: {e}")

    def flush(self) -> None:
        """Write whatever is queued right now from the calling thread."""
        entries = self._drain()
        if entries:
            self._write_entries(entries)

    def shutdown(self) -> None:
        """Stop the writer thread, then write anything still queued."""
        self._shutdown.set()
        self._writer_thread.join(timeout=self.batch_wait + 1.0)
        self.flush()


# Process-wide writer, created on first use
_metrics: Optional[MetricsWriter] = None


def get_metrics(metrics_file: Path) -> MetricsWriter:
    """Get or create the process-wide metrics writer."""
    global _metrics
    if _metrics is None:
        _metrics = MetricsWriter(metrics_file)
    return _metrics


# Typed helpers for consistent event logging. All accept metrics=None so
# callers running without a writer (tests, replay) can call them unconditionally.

def log_session_start(
    metrics: Optional[MetricsWriter],
    session_id: str,
    window_seconds: float,
    tick_seconds: float,
) -> None:
    """Log session_start event."""
    if metrics:
        metrics.log(
            "session_start",
            session_id=session_id,
            window_seconds=window_seconds,
            tick_seconds=tick_seconds,
        )


def log_inference(
    metrics: Optional[MetricsWriter],
    session_id: str,
    chunk_seq: int,
    provider: str,
    latency_ms: int,
    window_ms: float,
    text: str,
) -> None:
    """Log a completed inference call."""
    if metrics:
        metrics.log(
            "inference",
            session_id=session_id,
            chunk_seq=chunk_seq,
            provider=provider,
            latency_ms=latency_ms,
            window_ms=window_ms,
            text=text[:200],  # Truncate for metrics
        )


def log_tick_skipped(
    metrics: Optional[MetricsWriter],
    session_id: str,
    reason: str,  # "silent_tick" | "dropped_tick" | "inference_failure"
    **kwargs: Any,
) -> None:
    """Log a tick that produced no Edit."""
    if metrics:
        metrics.log(reason, session_id=session_id, **kwargs)


def log_conflict(
    metrics: Optional[MetricsWriter],
    session_id: str,
    chunk_seq: int,
    total_conflicts: int,
) -> None:
    """Log a transcript that contradicted stable text."""
    if metrics:
        metrics.log(
            "reconciliation_conflict",
            session_id=session_id,
            chunk_seq=chunk_seq,
            total=total_conflicts,
        )


def log_edit(
    metrics: Optional[MetricsWriter],
    session_id: str,
    chunk_seq: int,
    retain_chars: int,
    delete_chars: int,
    insert_chars: int,
    stable_chars: int,
) -> None:
    """Log an Edit sent to the sink."""
    if metrics:
        metrics.log(
            "edit",
            session_id=session_id,
            chunk_seq=chunk_seq,
            retain_chars=retain_chars,
            delete_chars=delete_chars,
            insert_chars=insert_chars,
            stable_chars=stable_chars,
        )


def log_session_complete(
    metrics: Optional[MetricsWriter],
    session_id: str,
    total_duration_ms: float,
    chunks: int,
    final_text: str,
    **counters: int,
) -> None:
    """Log session_complete event with the scheduler/reconciler counters."""
    if metrics:
        metrics.log(
            "session_complete",
            session_id=session_id,
            total_duration_ms=total_duration_ms,
            chunks=chunks,
            final_text=final_text[:500],  # Truncate for metrics
            **counters,
        )
