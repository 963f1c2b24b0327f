"""Voice-controlled robot arm: capture, transcribe, generate, confirm, execute."""

__version__ = "0.1.0"
