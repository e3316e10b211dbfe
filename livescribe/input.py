"""
Global hotkeys producing start/stop signals.

Two edge-triggered combos (pynput GlobalHotKeys syntax, e.g.
"<cmd>+<shift>+t"). When both are the same combo it toggles.
"""

import threading
from typing import Callable, Dict, Optional

from .config import Config


class InputController:
    """
    Translates hotkey activations into recording intents.

    Usage:
        controller = InputController(config)
        controller.on_start_recording = session_controller.start
        controller.on_stop_recording = session_controller.stop
        controller.is_recording = lambda: session_controller.state == "recording"
        controller.start()
    """

    def __init__(self, config: Config):
        self.start_hotkey = config.start_hotkey
        self.stop_hotkey = config.stop_hotkey

        # Callbacks
        self.on_start_recording: Optional[Callable[[], None]] = None
        self.on_stop_recording: Optional[Callable[[], None]] = None
        self.is_recording: Optional[Callable[[], bool]] = None

        self._listener = None
        self._lock = threading.Lock()

    @property
    def toggle_mode(self) -> bool:
        return self.start_hotkey == self.stop_hotkey

    def hotkeys(self) -> Dict[str, Callable[[], None]]:
        """Mapping handed to pynput.keyboard.GlobalHotKeys."""
        if self.toggle_mode:
            return {self.start_hotkey: self.on_toggle_hotkey}
        return {
            self.start_hotkey: self.on_start_hotkey,
            self.stop_hotkey: self.on_stop_hotkey,
        }

    def start(self) -> None:
        """Start listening for hotkeys (background thread)."""
        from pynput import keyboard

        if self._listener is not None:
            return
        self._listener = keyboard.GlobalHotKeys(self.hotkeys())
        self._listener.start()

        if self.toggle_mode:
            print(f"[Input] {self.start_hotkey} toggles recording")
        else:
            print(f"[Input] {self.start_hotkey} starts, {self.stop_hotkey} stops")

    def stop(self) -> None:
        if self._listener is not None:
            self._listener.stop()
            self._listener = None

    def on_start_hotkey(self) -> None:
        with self._lock:
            self._fire(self.on_start_recording)

    def on_stop_hotkey(self) -> None:
        with self._lock:
            self._fire(self.on_stop_recording)

    def on_toggle_hotkey(self) -> None:
        with self._lock:
            recording = self.is_recording() if self.is_recording else False
            self._fire(self.on_stop_recording if recording else self.on_start_recording)

    def _fire(self, callback: Optional[Callable[[], None]]) -> None:
        """Run a callback; errors must not kill the pynput listener thread."""
        if callback is None:
            return
        try:
            callback()
        except Exception as e:
            print(f"[Input] Hotkey handler error: {e}")
