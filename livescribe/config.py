"""
Configuration management with immutable snapshots.

Loads from: ./settings.json > ~/.livescribe/settings.json > defaults
Provides immutable snapshots for session isolation.
"""

from pathlib import Path
import json

from .errors import ConfigError
from .types import ConfigSnapshot


# Defaults
DEFAULT_CONFIG = {
    # Audio
    "input_device": "",  # empty = system default input
    "sample_rate": 16000,
    "blocksize": 1024,
    "ring_seconds": 30.0,

    # Scheduling
    "tick_seconds": 0.3,
    "window_seconds": 5.0,
    "min_window_seconds": 1.0,  # model needs ~1s of context to say anything useful
    "final_window_seconds": 30.0,
    "inference_timeout": 5.0,

    # Silence gate
    "silence_threshold": 0.003,  # RMS, peak-normalized
    "silence_probe_seconds": 0.3,

    # Reconciliation
    "promotion_cycles": 2,

    # Model
    "model": "mlx-community/parakeet-tdt-0.6b-v3",

    # Input
    "start_hotkey": "<cmd>+<shift>+t",
    "stop_hotkey": "<cmd>+<shift>+s",

    # Output
    "type_live": True,
    "copy_on_finish": True,
}


class Config:
    """
    Single source of truth for all settings.

    Usage:
        config = Config.load()
        snapshot = config.snapshot()  # Immutable copy for session
    """

    def __init__(self):
        # Audio
        self.input_device: str = ""
        self.sample_rate: int = 16000
        self.blocksize: int = 1024
        self.ring_seconds: float = 30.0

        # Scheduling
        self.tick_seconds: float = 0.3
        self.window_seconds: float = 5.0
        self.min_window_seconds: float = 1.0
        self.final_window_seconds: float = 30.0
        self.inference_timeout: float = 5.0

        # Silence gate
        self.silence_threshold: float = 0.003
        self.silence_probe_seconds: float = 0.3

        # Reconciliation
        self.promotion_cycles: int = 2

        # Model
        self.model: str = "mlx-community/parakeet-tdt-0.6b-v3"

        # Input
        self.start_hotkey: str = "<cmd>+<shift>+t"
        self.stop_hotkey: str = "<cmd>+<shift>+s"

        # Output
        self.type_live: bool = True
        self.copy_on_finish: bool = True

        # Paths
        self.data_dir: Path = Path.home() / ".livescribe"
        self.metrics_file: Path = self.data_dir / "metrics.jsonl"
        self.settings_file: Path = self.data_dir / "settings.json"
        self.recordings_dir: Path = self.data_dir / "recordings"

    @classmethod
    def load(cls) -> "Config":
        """Load configuration from all sources and validate it."""
        config = cls()
        config._ensure_data_dir()
        config._load_settings()
        config.validate()
        return config

    def _ensure_data_dir(self) -> None:
        """Create data directory if it doesn't exist."""
        self.data_dir.mkdir(parents=True, exist_ok=True)

    def _load_settings(self) -> None:
        """Load settings from settings.json."""
        # Project root first
        project_settings = Path("settings.json")
        if project_settings.exists():
            self._apply_settings_file(project_settings)

        # Then ~/.livescribe/settings.json (overrides)
        if self.settings_file.exists():
            self._apply_settings_file(self.settings_file)

    def _apply_settings_file(self, settings_file: Path) -> None:
        """Apply settings from a JSON file. Unknown keys are ignored."""
        try:
            with open(settings_file) as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            print(f"Error loading {settings_file}: {e}")
            return

        self.apply(data)

    def apply(self, data: dict) -> None:
        """Apply a settings mapping with type coercion against the defaults."""
        for key, default in DEFAULT_CONFIG.items():
            if key not in data:
                continue
            try:
                setattr(self, key, type(default)(data[key]))
            except (TypeError, ValueError) as e:
                raise ConfigError(f"{key}: {e}") from e

    def validate(self) -> None:
        """Reject values the engine cannot run with."""
        if self.sample_rate <= 0:
            raise ConfigError("sample_rate must be greater than 0")
        if self.tick_seconds <= 0 or self.tick_seconds > 5.0:
            raise ConfigError("tick_seconds must be in (0, 5]")
        if self.window_seconds <= self.tick_seconds:
            raise ConfigError("window_seconds must be greater than tick_seconds")
        if self.min_window_seconds > self.window_seconds:
            raise ConfigError("min_window_seconds must be <= window_seconds")
        if self.ring_seconds < max(self.window_seconds, self.final_window_seconds):
            raise ConfigError("ring_seconds must cover window_seconds and final_window_seconds")
        if not 0.0 <= self.silence_threshold <= 1.0:
            raise ConfigError("silence_threshold must be in [0, 1]")
        if self.silence_probe_seconds <= 0:
            raise ConfigError("silence_probe_seconds must be greater than 0")
        if self.promotion_cycles < 1:
            raise ConfigError("promotion_cycles must be >= 1")
        if self.inference_timeout <= 0:
            raise ConfigError("inference_timeout must be greater than 0")
        if not self.model:
            raise ConfigError("model cannot be empty")
        if not self.start_hotkey or not self.stop_hotkey:
            raise ConfigError("hotkeys cannot be empty")

    def save_settings(self) -> None:
        """Save current settings to settings.json."""
        data = {key: getattr(self, key) for key in DEFAULT_CONFIG}

        self._ensure_data_dir()
        with open(self.settings_file, "w") as f:
            json.dump(data, f, indent=2)

    def snapshot(self) -> ConfigSnapshot:
        """Return immutable copy for session isolation."""
        return ConfigSnapshot(
            input_device=self.input_device,
            sample_rate=self.sample_rate,
            blocksize=self.blocksize,
            ring_seconds=self.ring_seconds,
            tick_seconds=self.tick_seconds,
            window_seconds=self.window_seconds,
            min_window_seconds=self.min_window_seconds,
            final_window_seconds=self.final_window_seconds,
            inference_timeout=self.inference_timeout,
            silence_threshold=self.silence_threshold,
            silence_probe_seconds=self.silence_probe_seconds,
            promotion_cycles=self.promotion_cycles,
            type_live=self.type_live,
            copy_on_finish=self.copy_on_finish,
        )
