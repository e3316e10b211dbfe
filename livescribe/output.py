"""
Emission sinks and the macOS output primitives behind them.

A sink receives the live Edits of a session, in order, and the complete
text once the session is finalized.
"""

import subprocess
import threading
from queue import Empty, Queue
from typing import Callable, List

from .types import Edit


# Output primitives

def _escape_for_applescript(text: str) -> str:
    """Escape special characters for AppleScript string."""
    # Order matters: backslash first
    text = text.replace("\\", "\\\\")
    text = text.replace('"', '\\"')
    text = text.replace("\r", "\\r")
    text = text.replace("\n", "\\n")
    text = text.replace("\t", "\\t")
    return text


def _run_osascript(script: str, timeout: float = 10.0) -> None:
    # Use stdin instead of -e to avoid ARG_MAX limits for long text
    subprocess.run(
        ["osascript"],
        input=script.encode("utf-8"),
        capture_output=True,
        timeout=timeout,
    )


def type_edit(backspaces: int, text: str) -> None:
    """
    Press delete `backspaces` times, then type `text`, in one osascript call.

    Uses macOS accessibility API via System Events.
    """
    if backspaces <= 0 and not text:
        return

    lines = ['tell application "System Events"']
    if backspaces > 0:
        lines += [
            f"    repeat {backspaces} times",
            "        key code 51",
            "    end repeat",
        ]
    if text:
        lines.append(f'    keystroke "{_escape_for_applescript(text)}"')
    lines.append("end tell")

    try:
        _run_osascript("\n".join(lines))
    except subprocess.TimeoutExpired:
        print("type_edit: osascript timed out")
    except Exception as e:
        print(f"type_edit error: {e}")


def copy_to_clipboard(text: str) -> None:
    """
    Copy text to the system clipboard.

    Args:
        text: Text to copy
    """
    if not text:
        return

    try:
        subprocess.run(
            ["pbcopy"],
            input=text.encode("utf-8"),
            timeout=2.0
        )
    except Exception as e:
        print(f"copy_to_clipboard error: {e}")


def notify(message: str, title: str = "LiveScribe") -> None:
    """Show a macOS notification."""
    try:
        escaped_message = _escape_for_applescript(message)
        escaped_title = _escape_for_applescript(title)
        _run_osascript(
            f'display notification "{escaped_message}" with title "{escaped_title}"',
            timeout=2.0,
        )
    except Exception as e:
        print(f"notify error: {e}")


def play_sound(sound_name: str = "Tink") -> None:
    """
    Play a system sound.

    Args:
        sound_name: Name of sound in /System/Library/Sounds/
    """
    try:
        subprocess.run(
            ["afplay", f"/System/Library/Sounds/{sound_name}.aiff"],
            capture_output=True,
            timeout=2.0
        )
    except Exception as e:
        print(f"play_sound error: {e}")


# Sinks

class EmissionSink:
    """Receives a session's Edits in issue order, then its final text."""

    def begin(self) -> None:
        """A new session starts; its Edits apply to empty text."""
        pass

    def apply(self, edit: Edit) -> None:
        pass

    def finish(self, text: str) -> None:
        pass

    def abort(self, text: str) -> None:
        """The session was lost; `text` is what had been emitted."""
        pass


class TextBufferSink(EmissionSink):
    """
    Keeps the emitted text in memory.

    Used by replay and tests. Raises ValueError on an Edit that does not
    fit the current text, so malformed or reordered Edits surface.
    """

    def __init__(self):
        self.text = ""
        self.edits: List[Edit] = []
        self.final_texts: List[str] = []
        self.aborted_texts: List[str] = []
        self._lock = threading.Lock()

    def begin(self) -> None:
        with self._lock:
            self.text = ""
            self.edits = []

    def apply(self, edit: Edit) -> None:
        with self._lock:
            self.text = edit.apply(self.text)
            self.edits.append(edit)

    def finish(self, text: str) -> None:
        with self._lock:
            self.final_texts.append(text)

    def abort(self, text: str) -> None:
        with self._lock:
            self.aborted_texts.append(text)

    @property
    def final_text(self) -> str:
        return self.final_texts[-1] if self.final_texts else ""


def merge_keystrokes(backspaces: int, text: str, edit: Edit):
    """
    Fold `edit` into a pending (backspaces, text) keystroke batch.

    Deleting into text the batch itself would type just trims that text.
    """
    if edit.delete_chars <= len(text):
        return backspaces, text[:len(text) - edit.delete_chars] + edit.insert_text
    return backspaces + edit.delete_chars - len(text), edit.insert_text


class KeystrokeSink(EmissionSink):
    """
    Types Edits at the cursor: backspaces for the deleted tail, then the insert.

    osascript is slow, so typing runs on its own thread. Edits queue up in
    issue order; a backlog is merged into a single osascript call.
    """

    def __init__(self, typer: Callable[[int, str], None] = type_edit):
        self._typer = typer
        self._queue: Queue[Edit] = Queue()
        self._thread = threading.Thread(target=self._type_loop, name="keystrokes", daemon=True)
        self._thread.start()

    def apply(self, edit: Edit) -> None:
        if not edit.is_noop:
            self._queue.put(edit)

    def finish(self, text: str) -> None:
        self.flush()

    def abort(self, text: str) -> None:
        self.flush()

    def flush(self) -> None:
        """Block until every queued Edit has been typed."""
        self._queue.join()

    def _type_loop(self) -> None:
        while True:
            batch = [self._queue.get()]
            while True:
                try:
                    batch.append(self._queue.get_nowait())
                except Empty:
                    break

            backspaces, text = 0, ""
            for edit in batch:
                backspaces, text = merge_keystrokes(backspaces, text, edit)
            try:
                self._typer(backspaces, text)
            except Exception as e:
                print(f"[Output] Typing failed: {e}")
            finally:
                for _ in batch:
                    self._queue.task_done()


class ClipboardSink(EmissionSink):
    """Copies the final text to the clipboard; ignores live Edits."""

    def finish(self, text: str) -> None:
        copy_to_clipboard(text)


class MultiSink(EmissionSink):
    """Fans out to several sinks. A failing sink does not starve the others."""

    def __init__(self, sinks: List[EmissionSink]):
        self.sinks = list(sinks)

    def begin(self) -> None:
        for sink in self.sinks:
            sink.begin()

    def apply(self, edit: Edit) -> None:
        for sink in self.sinks:
            try:
                sink.apply(edit)
            except Exception as e:
                print(f"[Output] {type(sink).__name__}.apply failed: {e}")

    def finish(self, text: str) -> None:
        for sink in self.sinks:
            try:
                sink.finish(text)
            except Exception as e:
                print(f"[Output] {type(sink).__name__}.finish failed: {e}")

    def abort(self, text: str) -> None:
        for sink in self.sinks:
            try:
                sink.abort(text)
            except Exception as e:
                print(f"[Output] {type(sink).__name__}.abort failed: {e}")


def build_sink(type_live: bool = True, copy_on_finish: bool = True) -> EmissionSink:
    """Sink for the desktop app from the output settings."""
    sinks: List[EmissionSink] = []
    if type_live:
        sinks.append(KeystrokeSink())
    if copy_on_finish:
        sinks.append(ClipboardSink())
    return MultiSink(sinks)
