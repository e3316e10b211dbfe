"""
LiveScribe - Live dictation with continuous correction.

This package provides:
- A sliding-window audio ring fed by the microphone
- Fixed-cadence re-transcription of the trailing window (Parakeet MLX)
- Silence gating so the model never transcribes background noise
- Reconciliation of each new transcript into stable and provisional text
- Live keystroke edits while speaking, final text to the clipboard

Main entry point: python -m livescribe
"""

__version__ = "0.1.0"
