"""
Audio capture and the sliding-window ring buffer.

AudioCapture owns the sounddevice input stream and pushes every callback
buffer into an AudioRing. The ring only keeps the trailing few seconds;
the scheduler reads copy-on-read snapshots from it.
"""

import threading
from typing import Callable, Optional

import numpy as np

from .errors import CaptureError
from .types import AudioWindow


# Constants
DEFAULT_BLOCKSIZE = 1024


def to_float32(samples: np.ndarray) -> np.ndarray:
    """Flatten to mono float32; int16 PCM is scaled to [-1, 1)."""
    audio = np.asarray(samples)
    if audio.ndim > 1:
        # Average channels to mono
        audio = audio.mean(axis=1) if audio.shape[1] > 1 else audio.reshape(-1)
    if np.issubdtype(audio.dtype, np.integer):
        return audio.astype(np.float32) / 32768.0
    return audio.astype(np.float32, copy=False)


class AudioRing:
    """
    Fixed-capacity circular buffer of mono float32 samples.

    One writer (capture callback) and one reader (scheduler). Both sides
    take a short lock around whole-buffer copies, so a snapshot never
    contains half of a callback buffer.

    Samples are addressed by a monotonic session-relative offset
    (`total_samples`); only the trailing `capacity` samples are kept.
    """

    def __init__(self, capacity_seconds: float, sample_rate: int = 16000):
        if capacity_seconds <= 0:
            raise ValueError("capacity_seconds must be > 0")
        self.sample_rate = sample_rate
        self.capacity = int(round(capacity_seconds * sample_rate))
        self._buffer = np.zeros(self.capacity, dtype=np.float32)
        self._write_pos = 0
        self._total = 0
        self._lock = threading.Lock()

    @property
    def total_samples(self) -> int:
        """Samples written since the last reset (including overwritten ones)."""
        with self._lock:
            return self._total

    @property
    def captured_seconds(self) -> float:
        return self.total_samples / self.sample_rate

    def reset(self) -> None:
        """Forget all audio and restart the session offset at zero."""
        with self._lock:
            self._write_pos = 0
            self._total = 0

    def write(self, samples: np.ndarray) -> None:
        """Append samples, overwriting the oldest once full."""
        audio = to_float32(samples)
        n_samples = len(audio)
        if n_samples == 0:
            return

        with self._lock:
            self._total += n_samples

            if n_samples >= self.capacity:
                # Larger than the ring - keep only the tail
                self._buffer[:] = audio[-self.capacity:]
                self._write_pos = 0
                return

            end_pos = self._write_pos + n_samples
            if end_pos <= self.capacity:
                self._buffer[self._write_pos:end_pos] = audio
                self._write_pos = end_pos % self.capacity
            else:
                first_part = self.capacity - self._write_pos
                self._buffer[self._write_pos:] = audio[:first_part]
                self._buffer[:n_samples - first_part] = audio[first_part:]
                self._write_pos = n_samples - first_part

    def snapshot(self, duration: float) -> AudioWindow:
        """
        Copy of the most recent `duration` seconds (capped at capacity).

        Right-padded with silence when less audio has been captured.
        """
        requested = min(int(round(duration * self.sample_rate)), self.capacity)
        out = np.zeros(max(requested, 0), dtype=np.float32)

        with self._lock:
            available = min(self._total, self.capacity, len(out))
            end = self._write_pos
            start = end - available
            if start >= 0:
                out[:available] = self._buffer[start:end]
            else:
                head = self._buffer[start:]
                out[:len(head)] = head
                out[len(head):available] = self._buffer[:end]
            end_offset = self._total

        return AudioWindow(
            samples=out,
            end_offset=end_offset,
            valid_samples=available,
            sample_rate=self.sample_rate,
        )


class AudioCapture:
    """
    Single-device microphone capture with sounddevice.

    Never blocks on inference: the callback only converts the buffer and
    hands it to `on_samples` (normally AudioRing.write).

    Usage:
        capture = AudioCapture(device_name="", sample_rate=16000)
        capture.start(ring.write, on_error=controller.on_capture_error)
        # ... user speaks ...
        capture.stop()
    """

    def __init__(
        self,
        device_name: str = "",
        sample_rate: int = 16000,
        blocksize: int = DEFAULT_BLOCKSIZE,
    ):
        self.device_name = device_name
        self.sample_rate = sample_rate
        self.blocksize = blocksize

        self.stream: Optional["sd.InputStream"] = None
        self._on_samples: Optional[Callable[[np.ndarray], None]] = None
        self._on_error: Optional[Callable[[CaptureError], None]] = None
        self._lock = threading.Lock()
        self._stopping = False

    @property
    def is_running(self) -> bool:
        return self.stream is not None

    def start(
        self,
        on_samples: Callable[[np.ndarray], None],
        on_error: Optional[Callable[[CaptureError], None]] = None,
    ) -> None:
        """
        Open and start the input stream.

        Raises:
            CaptureError: device missing or stream failed to open
        """
        import sounddevice as sd

        with self._lock:
            if self.stream is not None:
                return  # Already capturing

            device_index = None
            if self.device_name:
                device_index = self._find_device(self.device_name)
                if device_index is None:
                    raise CaptureError(f"Mic not found: {self.device_name}")

            self._on_samples = on_samples
            self._on_error = on_error
            self._stopping = False

            try:
                stream = sd.InputStream(
                    device=device_index,
                    samplerate=self.sample_rate,
                    channels=1,
                    dtype=np.float32,
                    blocksize=self.blocksize,
                    callback=self._audio_callback,
                    finished_callback=self._stream_finished,
                )
                stream.start()
            except Exception as e:  # PortAudioError and friends
                raise CaptureError(f"Failed to open input stream: {e}") from e

            self.stream = stream
            print(f"[Audio] Capturing from {self.device_name or 'default input'}")

    def stop(self) -> None:
        """Stop and close the stream."""
        with self._lock:
            stream = self.stream
            self.stream = None
            self._stopping = True
            self._on_samples = None

        # Close outside of lock to avoid deadlock with the audio callback
        if stream is not None:
            try:
                stream.stop()
                stream.close()
            except Exception as e:
                print(f"[Audio] Error closing stream: {e}")

    def report_error(self, error: Exception) -> None:
        """Forward a device error to the owner as a CaptureError."""
        callback = self._on_error
        if not isinstance(error, CaptureError):
            error = CaptureError(str(error))
        print(f"[Audio] Capture failure: {error}")
        if callback:
            callback(error)

    def _find_device(self, mic_name: str) -> Optional[int]:
        """Find device index by name (fuzzy matching)."""
        import sounddevice as sd

        devices = sd.query_devices()
        mic_lower = mic_name.lower()
        inputs = [(i, d["name"].lower()) for i, d in enumerate(devices)
                  if d["max_input_channels"] > 0]

        for i, name in inputs:
            if name == mic_lower:
                return i
        for i, name in inputs:
            if mic_lower in name:
                return i
        for i, name in inputs:
            if name in mic_lower:
                return i

        return None

    def _audio_callback(self, indata: np.ndarray, frames: int, time_info, status) -> None:
        """Called by sounddevice for each audio block."""
        if status:
            print(f"[Audio] Callback status: {status}")

        callback = self._on_samples
        if callback is None:
            return

        callback(to_float32(indata.copy()))

    def _stream_finished(self) -> None:
        """Called by sounddevice when the stream ends; unexpected ends are device loss."""
        if not self._stopping:
            # Owner stops the stream in response; never from PortAudio's own thread
            threading.Thread(
                target=self.report_error,
                args=(CaptureError("Input stream ended unexpectedly"),),
                daemon=True,
            ).start()
