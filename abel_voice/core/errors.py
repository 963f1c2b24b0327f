"""Exception taxonomy shared by the capture subsystem, adapters and orchestrator."""
from __future__ import annotations

from typing import Optional


class AbelVoiceError(Exception):
    """Base class for every failure the pipeline reports."""


class DeviceError(AbelVoiceError):
    """Audio input could not be opened or produced no usable audio."""


class NoDeviceError(DeviceError):
    pass


class UnsupportedFormatError(DeviceError):
    def __init__(self, sample_format: str) -> None:
        super().__init__(f"Unsupported sample format: {sample_format}")
        self.sample_format = sample_format


class EmptyCaptureError(DeviceError):
    """The stream ran for a non-zero duration but delivered no samples."""


class ServiceError(AbelVoiceError):
    """Network, auth or non-2xx failure from a remote collaborator."""

    def __init__(self, service: str, message: str, *, status: Optional[int] = None) -> None:
        detail = f"{service} error ({status}): {message}" if status is not None else f"{service} error: {message}"
        super().__init__(detail)
        self.service = service
        self.status = status


class ParseError(AbelVoiceError):
    """A collaborator answered with malformed JSON or missing fields."""


class ExecutionError(AbelVoiceError):
    """The generated script exited non-zero."""

    def __init__(self, message: str, *, returncode: Optional[int] = None, diagnostic: str = "") -> None:
        super().__init__(message)
        self.returncode = returncode
        self.diagnostic = diagnostic


class AudioOutputError(AbelVoiceError):
    """No playback capability for speech feedback."""


class ConfirmationDeclined(AbelVoiceError):
    """The user skipped execution. Not a failure; used for control flow reporting."""
