"""
Menu bar front end (rumps).

The icon mirrors the session state. Start/Stop are only clickable in the
state where they apply, and the last dictation stays one click away.
"""

from typing import Optional, Callable

import rumps

from ..output import copy_to_clipboard


STATUS_ICONS = {
    "idle": "🎤",
    "recording": "🔴",
    "finalizing": "⚡",
    "error": "❌",
}

PREVIEW_CHARS = 40


def preview(text: str, limit: int = PREVIEW_CHARS) -> str:
    """One-line menu label for a dictation."""
    flat = " ".join(text.split())
    return flat if len(flat) <= limit else flat[: limit - 1] + "…"


class MenuBarApp:
    """
    Status item for LiveScribe.

    Menu:
    - Status line (idle/recording/finalizing/error)
    - Start Recording / Stop Recording
    - Copy Last Dictation
    - Quit
    """

    def __init__(self):
        self.on_start: Optional[Callable[[], None]] = None
        self.on_stop: Optional[Callable[[], None]] = None
        self.on_quit: Optional[Callable[[], None]] = None

        self.last_text = ""
        self._status = "idle"
        self._app: Optional["_RumpsApp"] = None

    @property
    def status(self) -> str:
        return self._status

    def run(self) -> None:
        """Blocks on the Cocoa run loop."""
        self._app = _RumpsApp(self)
        self._app.refresh()
        self._app.run()

    def set_status(self, status: str) -> None:
        """status: "idle", "recording", "finalizing" or "error"."""
        self._status = status
        if self._app:
            self._app.refresh()

    def set_last_text(self, text: str) -> None:
        self.last_text = text
        if self._app:
            self._app.refresh()

    def copy_last(self) -> None:
        if self.last_text:
            copy_to_clipboard(self.last_text)

    def show_notification(self, title: str, message: str) -> None:
        try:
            rumps.notification("LiveScribe", title, message)
        except Exception as e:
            print(f"[Menu] Notification failed: {e}")

    def show_error(self, message: str) -> None:
        self.set_status("error")
        self.show_notification("Error", message)


class _RumpsApp(rumps.App):
    # rumps greys out items whose callback is None

    def __init__(self, owner: MenuBarApp):
        super().__init__(STATUS_ICONS["idle"], quit_button=None)
        self.owner = owner

        self._status_item = rumps.MenuItem("Status: Idle")
        self._start_item = rumps.MenuItem("Start Recording")
        self._stop_item = rumps.MenuItem("Stop Recording")
        self._last_item = rumps.MenuItem("Last: (none)")
        self._copy_item = rumps.MenuItem("Copy Last Dictation")
        self.menu = [
            self._status_item,
            None,
            self._start_item,
            self._stop_item,
            None,
            self._last_item,
            self._copy_item,
            None,
            rumps.MenuItem("Quit", callback=self._quit_clicked),
        ]

    def refresh(self) -> None:
        status = self.owner.status
        self.title = STATUS_ICONS.get(status, STATUS_ICONS["idle"])
        self._status_item.title = f"Status: {status.capitalize()}"

        can_start = status in ("idle", "error")
        self._start_item.set_callback(self._start_clicked if can_start else None)
        self._stop_item.set_callback(self._stop_clicked if status == "recording" else None)

        text = self.owner.last_text
        self._last_item.title = f"Last: {preview(text)}" if text else "Last: (none)"
        self._copy_item.set_callback(self._copy_clicked if text else None)

    def _start_clicked(self, _) -> None:
        if self.owner.on_start:
            self.owner.on_start()

    def _stop_clicked(self, _) -> None:
        if self.owner.on_stop:
            self.owner.on_stop()

    def _copy_clicked(self, _) -> None:
        self.owner.copy_last()

    def _quit_clicked(self, _) -> None:
        if self.owner.on_quit:
            self.owner.on_quit()
        rumps.quit_application()
