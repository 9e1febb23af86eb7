"""
ScanNorm - Custom Exceptions Module

This module defines custom exception classes for specific error cases
in the capture normalization pipeline.
"""

from collections.abc import Sequence


class ScanNormError(Exception):
    """Base exception for all ScanNorm errors.

    All custom exceptions should inherit from this class to allow
    catching any ScanNorm-specific error.
    """

    def __init__(self, message: str, details: str | None = None) -> None:
        """Initialize the exception.

        Args:
            message: Human-readable error message
            details: Optional technical details for debugging
        """
        super().__init__(message)
        self.message = message
        self.details = details

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} ({self.details})"
        return self.message


class DecodeError(ScanNormError):
    """Raised when an encoded image is empty, malformed or has zero size."""

    def __init__(self, reason: str, size_bytes: int | None = None) -> None:
        """Initialize the exception.

        Args:
            reason: Why decoding failed
            size_bytes: Optional size of the rejected payload
        """
        self.reason = reason
        self.size_bytes = size_bytes
        details = f"size={size_bytes}" if size_bytes is not None else None
        super().__init__(f"Cannot decode image: {reason}", details=details)


class EncodeError(ScanNormError):
    """Raised when a pixel buffer cannot be serialized to JPEG."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"Cannot encode image: {reason}")


class BoundaryNotFound(ScanNormError):
    """Raised by a boundary strategy when no region clears the area threshold.

    Not fatal: the detector moves on to the next strategy, and finally to
    the whole frame.
    """

    def __init__(self, strategy: str, reason: str | None = None) -> None:
        """Initialize the exception.

        Args:
            strategy: Name of the strategy that gave up
            reason: Optional reason
        """
        self.strategy = strategy
        self.reason = reason
        msg = f"No document boundary found by {strategy} strategy"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class DegenerateQuad(ScanNormError):
    """Raised when quad corners are collinear or span zero width/height."""

    def __init__(
        self,
        corners: Sequence[tuple[float, float]],
        reason: str | None = None,
    ) -> None:
        """Initialize the exception.

        Args:
            corners: The offending corners, TL/TR/BR/BL
            reason: Optional reason
        """
        self.corners = [tuple(c) for c in corners]
        self.reason = reason
        msg = "Degenerate quadrilateral"
        if reason:
            msg += f" - {reason}"
        pts = ", ".join(f"({x:.1f},{y:.1f})" for x, y in self.corners)
        super().__init__(msg, details=f"corners=[{pts}]")


class ConfigurationError(ScanNormError):
    """Raised when there's a configuration-related error."""

    def __init__(self, setting_name: str | None = None, reason: str | None = None) -> None:
        """Initialize the exception.

        Args:
            setting_name: Optional name of the problematic setting
            reason: Optional reason for the error
        """
        self.setting_name = setting_name
        self.reason = reason

        if setting_name:
            msg = f"Configuration error for '{setting_name}'"
        else:
            msg = "Configuration error"

        if reason:
            msg += f": {reason}"

        super().__init__(msg)


class ValidationError(ScanNormError):
    """Raised when input validation fails."""

    def __init__(
        self,
        field: str,
        value: str | None = None,
        reason: str | None = None,
    ) -> None:
        """Initialize the exception.

        Args:
            field: Name of the field that failed validation
            value: Optional value that failed validation
            reason: Optional reason for the validation failure
        """
        self.field = field
        self.value = value
        self.reason = reason

        msg = f"Validation error for '{field}'"
        if reason:
            msg += f": {reason}"

        super().__init__(msg)


class ProtocolError(ScanNormError):
    """Raised when a hardware service message cannot be parsed."""

    def __init__(self, reason: str, raw: str | None = None) -> None:
        self.reason = reason
        self.raw = raw
        details = None
        if raw is not None:
            details = f"raw={raw[:80]!r}"
        super().__init__(f"Malformed hardware message: {reason}", details=details)


class ProcessTimeoutError(ScanNormError):
    """Raised when a pipeline run exceeds the caller's wait bound."""

    def __init__(self, source: str, timeout_seconds: float) -> None:
        """Initialize the exception.

        Args:
            source: Capture source the run belonged to
            timeout_seconds: The timeout duration that was exceeded
        """
        self.source = source
        self.timeout_seconds = timeout_seconds

        msg = f"Processing timed out after {timeout_seconds}s for: {source}"
        super().__init__(msg, details=f"timeout={timeout_seconds}s")


# Exception hierarchy summary:
# ScanNormError (base)
# ├── DecodeError
# ├── EncodeError
# ├── BoundaryNotFound
# ├── DegenerateQuad
# ├── ConfigurationError
# ├── ValidationError
# ├── ProtocolError
# └── ProcessTimeoutError
