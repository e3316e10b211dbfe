"""
Record test audio and replay it through the engine.

Replay runs the same SessionController as the live app, but drives the
scheduler in simulated time: every `tick_seconds` of audio pushed into
the ring is followed by exactly one tick. Results are deterministic for a
deterministic provider, which makes recordings usable as regression cases.
"""

import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional

import numpy as np
import soundfile as sf
from scipy import signal

from .audio import AudioCapture, to_float32
from .config import Config
from .inference import InferenceAdapter
from .output import EmissionSink, MultiSink, TextBufferSink
from .session import SessionController
from .types import Edit


def resolve_recording(name_or_path: str, config: Config) -> Path:
    """A path to an existing file, or a name under the recordings dir."""
    path = Path(name_or_path).expanduser()
    if path.exists():
        return path
    name = name_or_path if name_or_path.endswith(".wav") else f"{name_or_path}.wav"
    return config.recordings_dir / name


def load_recording(path: Path, sample_rate: int = 16000) -> np.ndarray:
    """Read a WAV as mono float32 at `sample_rate`."""
    audio, file_rate = sf.read(str(path), dtype="float32")
    audio = to_float32(audio)

    if file_rate != sample_rate and len(audio) > 0:
        num_samples = int(len(audio) * sample_rate / file_rate)
        audio = signal.resample(audio, num_samples).astype(np.float32)

    return audio


def save_recording(path: Path, audio: np.ndarray, sample_rate: int = 16000) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    sf.write(str(path), audio, sample_rate, subtype="PCM_16")
    return path


def record(
    name: str,
    config: Config,
    seconds: Optional[float] = None,
    wait_fn: Callable[[], None] = input,
) -> Path:
    """
    Record from the configured mic into the recordings dir.

    Stops after `seconds`, or when `wait_fn` returns (Enter by default).
    """
    blocks: List[np.ndarray] = []
    lock = threading.Lock()

    def on_samples(samples: np.ndarray) -> None:
        with lock:
            blocks.append(samples)

    capture = AudioCapture(config.input_device, config.sample_rate, config.blocksize)
    capture.start(on_samples)
    try:
        if seconds is not None:
            threading.Event().wait(seconds)
        else:
            wait_fn()
    finally:
        capture.stop()

    with lock:
        audio = np.concatenate(blocks) if blocks else np.zeros(0, dtype=np.float32)

    path = resolve_recording(name, config)
    save_recording(path, audio, config.sample_rate)
    print(f"[Record] {len(audio) / config.sample_rate:.1f}s -> {path}")
    return path


class ReplayCapture:
    """Capture stand-in that is fed by the caller instead of a device."""

    def __init__(self):
        self._on_samples: Optional[Callable[[np.ndarray], None]] = None

    def start(self, on_samples, on_error=None) -> None:
        self._on_samples = on_samples

    def push(self, samples: np.ndarray) -> None:
        if self._on_samples is not None:
            self._on_samples(samples)

    def stop(self) -> None:
        self._on_samples = None


class _PrintSink(EmissionSink):
    def __init__(self, buffer: TextBufferSink):
        self.buffer = buffer

    def apply(self, edit: Edit) -> None:
        print(f"[Replay] retain={edit.retain_chars} delete={edit.delete_chars} "
              f"insert={edit.insert_text!r} -> {self.buffer.text!r}")

    def finish(self, text: str) -> None:
        print(f"[Replay] Final: {text!r}")


@dataclass
class ReplayResult:
    final_text: str
    edits: List[Edit]
    stats: dict


def replay(
    audio: np.ndarray,
    config: Config,
    adapter: InferenceAdapter,
    verbose: bool = True,
) -> ReplayResult:
    """Stream `audio` through a full session in simulated time."""
    buffer = TextBufferSink()
    sink = MultiSink([buffer, _PrintSink(buffer)]) if verbose else buffer

    capture = ReplayCapture()
    controller = SessionController(config.snapshot, adapter, capture, sink)
    session = controller.start(run_scheduler=False)

    block = max(int(round(config.tick_seconds * config.sample_rate)), 1)
    for offset in range(0, len(audio), block):
        capture.push(audio[offset:offset + block])
        session.scheduler.tick()

    controller.stop(wait=True)

    stats = dict(session.scheduler.stats())
    stats["conflicts"] = session.reconciler.conflicts
    stats["chunks"] = session.chunk_seq
    return ReplayResult(final_text=buffer.final_text, edits=list(buffer.edits), stats=stats)
