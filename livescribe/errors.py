"""
Exception types raised at the seams of the streaming engine.

Only CaptureError is fatal to a session. InferenceError is absorbed by the
scheduler (the tick becomes a no-op). ConfigError comes from settings
validation at startup.
"""


class LiveScribeError(Exception):
    """Base class for LiveScribe errors."""


class CaptureError(LiveScribeError):
    """Audio device unavailable, failed to open, or dropped mid-session."""


class InferenceError(LiveScribeError):
    """A single inference call failed or could not be issued."""


class InferenceTimeout(InferenceError):
    """An inference call exceeded its time bound."""


class ConfigError(LiveScribeError):
    """Invalid configuration value."""
