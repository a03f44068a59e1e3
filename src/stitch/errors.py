"""Application-level exception types for stitch."""

from __future__ import annotations


class StitchError(Exception):
    """Base exception for stitch."""


class ConfigurationError(StitchError):
    """Raised when settings cannot be turned into a working configuration."""


class DecodeError(StitchError):
    """Raised when a raw frame cannot be decoded into a known message shape."""

    def __init__(self, reason: str, preview: str = "") -> None:
        message = reason if not preview else f"{reason} (frame: {preview})"
        super().__init__(message)
        self.reason = reason
        self.preview = preview


class SessionMismatchError(DecodeError):
    """Raised when a frame names a different session than the one it arrived on."""

    def __init__(self, expected: str, actual: str, preview: str = "") -> None:
        super().__init__(f"frame session '{actual}' does not match '{expected}'", preview)
        self.expected = expected
        self.actual = actual


class DispatcherClosedError(StitchError):
    """Raised when frames are submitted to a stopped dispatcher."""
