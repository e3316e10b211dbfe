"""
Tests for the menu bar. rumps only exists on macOS, so a fake module
with just the pieces the app touches is put in sys.modules.
"""

import importlib
import sys
import types
from unittest.mock import MagicMock, patch

import pytest


class FakeMenuItem:
    def __init__(self, title, callback=None):
        self.title = title
        self.callback = callback

    def set_callback(self, callback):
        self.callback = callback


class FakeApp:
    def __init__(self, title, quit_button=None):
        self.title = title
        self.menu = []

    def run(self):
        pass


@pytest.fixture
def menu_bar():
    rumps = types.ModuleType("rumps")
    rumps.App = FakeApp
    rumps.MenuItem = FakeMenuItem
    rumps.notification = MagicMock()
    rumps.quit_application = MagicMock()

    with patch.dict(sys.modules, {"rumps": rumps}):
        sys.modules.pop("livescribe.ui.menu_bar", None)
        module = importlib.import_module("livescribe.ui.menu_bar")
        yield module, rumps
    sys.modules.pop("livescribe.ui.menu_bar", None)


class TestPreview:
    def test_short_text_unchanged(self, menu_bar):
        module, _ = menu_bar
        assert module.preview("hello word") == "hello word"

    def test_long_text_truncated(self, menu_bar):
        module, _ = menu_bar
        label = module.preview("word " * 30, limit=12)
        assert len(label) == 12
        assert label.endswith("…")

    def test_newlines_flattened(self, menu_bar):
        module, _ = menu_bar
        assert module.preview("one\ntwo") == "one two"


class TestMenuBarApp:
    def test_items_follow_state(self, menu_bar):
        module, _ = menu_bar
        app = module.MenuBarApp()
        app.run()
        rumps_app = app._app

        assert rumps_app._start_item.callback is not None
        assert rumps_app._stop_item.callback is None

        app.set_status("recording")
        assert rumps_app.title == "🔴"
        assert rumps_app._status_item.title == "Status: Recording"
        assert rumps_app._start_item.callback is None
        assert rumps_app._stop_item.callback is not None

        app.set_status("finalizing")
        assert rumps_app._start_item.callback is None
        assert rumps_app._stop_item.callback is None

    def test_clicks_call_handlers(self, menu_bar):
        module, rumps = menu_bar
        app = module.MenuBarApp()
        app.on_start = MagicMock()
        app.on_stop = MagicMock()
        app.on_quit = MagicMock()
        app.run()

        app._app._start_clicked(None)
        app._app._stop_clicked(None)
        app._app._quit_clicked(None)

        app.on_start.assert_called_once()
        app.on_stop.assert_called_once()
        app.on_quit.assert_called_once()
        rumps.quit_application.assert_called_once()

    def test_last_dictation_copy(self, menu_bar):
        module, _ = menu_bar
        app = module.MenuBarApp()
        app.run()
        assert app._app._copy_item.callback is None

        app.set_last_text("hello word")

        assert app._app._last_item.title == "Last: hello word"
        with patch.object(module, "copy_to_clipboard") as copy:
            app._app._copy_clicked(None)
        copy.assert_called_once_with("hello word")

    def test_show_error_sets_status_and_notifies(self, menu_bar):
        module, rumps = menu_bar
        app = module.MenuBarApp()

        app.show_error("Mic not found")

        assert app.status == "error"
        rumps.notification.assert_called_once_with("LiveScribe", "Error", "Mic not found")
