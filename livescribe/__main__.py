"""
Main entry point for LiveScribe.

Run with: python -m livescribe [run | record NAME | replay NAME]
"""

import argparse
import signal
import sys
from typing import Optional

from . import __version__
from .audio import AudioCapture
from .config import Config
from .errors import LiveScribeError
from .inference import InferenceAdapter
from .input import InputController
from .metrics import MetricsWriter, get_metrics
from .output import build_sink, notify, play_sound
from .providers import create_provider
from .session import SessionController


# Global state
config: Config
adapter: InferenceAdapter
controller: SessionController
input_controller: InputController
metrics: MetricsWriter
menu_bar: Optional["MenuBarApp"] = None


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(
        prog="livescribe",
        description="Live dictation with continuous correction.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    commands = parser.add_subparsers(dest="command")

    commands.add_parser("run", help="run the menu bar app (default)")

    record_parser = commands.add_parser("record", help="record test audio")
    record_parser.add_argument("name", help="recording name (saved under ~/.livescribe/recordings)")
    record_parser.add_argument("--seconds", type=float, default=None,
                               help="stop after this many seconds instead of on Enter")

    replay_parser = commands.add_parser("replay", help="replay a recording through the engine")
    replay_parser.add_argument("name", help="recording name or path to a WAV file")

    args = parser.parse_args(argv)

    try:
        if args.command == "record":
            return cmd_record(args)
        if args.command == "replay":
            return cmd_replay(args)
        return cmd_run()
    except LiveScribeError as e:
        print(f"Error: {e}")
        return 1


def cmd_record(args) -> int:
    from .replay import record

    config = Config.load()
    if args.seconds is None:
        print("Recording... press Enter to stop.")
    record(args.name, config, seconds=args.seconds)
    return 0


def cmd_replay(args) -> int:
    from .replay import load_recording, replay, resolve_recording

    config = Config.load()
    path = resolve_recording(args.name, config)
    if not path.exists():
        print(f"Recording not found: {path}")
        return 1

    audio = load_recording(path, config.sample_rate)
    print(f"[Replay] {path} ({len(audio) / config.sample_rate:.1f}s)")

    replay_adapter = InferenceAdapter(create_provider(config.model), timeout=config.inference_timeout)
    replay_adapter.initialize()
    try:
        result = replay(audio, config, replay_adapter)
    finally:
        replay_adapter.shutdown()

    print(f"[Replay] {result.stats}")
    return 0


def cmd_run() -> int:
    """Run the menu bar app."""
    global config, adapter, controller, input_controller, metrics, menu_bar

    from .ui.menu_bar import MenuBarApp

    print(f"LiveScribe v{__version__} starting...")

    # Load configuration
    config = Config.load()
    print(f"  Model: {config.model}")
    print(f"  Window: {config.window_seconds}s every {config.tick_seconds}s")

    # Initialize metrics
    metrics = get_metrics(config.metrics_file)

    # Initialize provider (blocks while the model loads)
    adapter = InferenceAdapter(create_provider(config.model), timeout=config.inference_timeout)
    adapter.initialize()

    capture = AudioCapture(config.input_device, config.sample_rate, config.blocksize)
    sink = build_sink(config.type_live, config.copy_on_finish)

    controller = SessionController(config.snapshot, adapter, capture, sink, metrics=metrics)
    controller.on_state_change = on_state_change
    controller.on_error = on_error
    controller.on_session_complete = on_session_complete

    # Initialize input controller
    input_controller = InputController(config)
    input_controller.on_start_recording = on_start
    input_controller.on_stop_recording = on_stop
    input_controller.is_recording = lambda: controller.state == "recording"

    # Setup signal handlers
    signal.signal(signal.SIGINT, _signal_handler)
    signal.signal(signal.SIGTERM, _signal_handler)

    input_controller.start()

    # Initialize and run menu bar
    menu_bar = MenuBarApp()
    menu_bar.on_start = on_start
    menu_bar.on_stop = on_stop
    menu_bar.on_quit = shutdown
    menu_bar.set_status("idle")

    print(f"Ready! {config.start_hotkey} to record, {config.stop_hotkey} to stop.")
    print("Press Ctrl+C to quit.")
    menu_bar.show_notification("Started", f"Press {config.start_hotkey} to record")

    # Run menu bar (blocks)
    try:
        menu_bar.run()
    finally:
        shutdown()
    return 0


def on_start() -> None:
    """Called when recording should start."""
    try:
        session = controller.start()
    except LiveScribeError as e:
        on_error(e)
        return

    if session is not None:
        play_sound("Tink")


def on_stop() -> None:
    """Called when recording should stop."""
    if controller.stop():
        play_sound("Pop")


def on_state_change(state: str) -> None:
    if menu_bar:
        menu_bar.set_status(state)


def on_session_complete(session) -> None:
    if menu_bar and session.final_text:
        menu_bar.set_last_text(session.final_text)


def on_error(error: Exception) -> None:
    print(f"[App] {error}")
    if menu_bar:
        menu_bar.show_error(str(error))
    else:
        notify(str(error))


_shut_down = False


def shutdown() -> None:
    """Clean shutdown."""
    global _shut_down
    if _shut_down:
        return
    _shut_down = True

    print("\nShutting down...")

    input_controller.stop()
    if controller.state == "recording":
        controller.stop(wait=True)
    else:
        controller.wait_idle(timeout=10.0)
    adapter.shutdown()
    metrics.shutdown()

    print("Goodbye!")


def _signal_handler(signum, frame):
    """Handle SIGINT/SIGTERM."""
    shutdown()
    sys.exit(0)


if __name__ == "__main__":
    sys.exit(main())
