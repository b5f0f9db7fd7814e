"""
Custom Exceptions Module.

This module defines the exceptions used throughout the bill extraction
system. Stage-level failures inside extraction are absorbed as missing
fields; the exceptions below surface at the boundaries (transfer
protocol, pattern loading, timeouts) and are turned into structured
error results by the public entry points.

Exception Hierarchy:
    BillExtractionError (base)
    ├── TransferError
    │   ├── MissingChunksError
    │   ├── UnknownTransferError
    │   └── InvalidChunkError
    ├── PatternError
    │   ├── DuplicatePatternError
    │   └── PatternDefinitionError
    ├── ExtractionError
    │   ├── NoPatternMatchError
    │   └── UnsupportedLanguageError
    ├── DocumentDecodeError
    ├── OperationTimeoutError
    │   ├── ExtractionTimeoutError
    │   └── TransferTimeoutError
    └── ProtocolError
        └── UnsupportedMessageError
"""


class BillExtractionError(Exception):
    """
    Base exception for all bill extraction errors.

    Attributes:
        message: Human-readable error message.
        details: Optional dictionary with additional error details.
    """

    def __init__(self, message: str, details: dict = None):
        """
        Initialize the exception.

        Args:
            message: Human-readable error message.
            details: Optional dictionary with additional context.
        """
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def __str__(self) -> str:
        """Return string representation of the error."""
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


# =============================================================================
# TRANSFER ERRORS
# =============================================================================

class TransferError(BillExtractionError):
    """Base exception for chunked transfer errors."""
    pass


class MissingChunksError(TransferError):
    """
    Raised when a transfer is completed before every chunk arrived.

    Example:
        >>> raise MissingChunksError(received=2, expected=3)
    """

    def __init__(self, received: int, expected: int, transfer_id: str = None):
        message = f"Missing chunks: received {received} of {expected}"
        details = {"received": received, "expected": expected}
        if transfer_id:
            details["transfer_id"] = transfer_id
        self.received = received
        self.expected = expected
        super().__init__(message, details)


class UnknownTransferError(TransferError):
    """Raised when a chunk or completion refers to an unknown transfer."""

    def __init__(self, transfer_id: str = None):
        message = f"Unknown transfer: {transfer_id or '<none active>'}"
        details = {"transfer_id": transfer_id}
        self.transfer_id = transfer_id
        super().__init__(message, details)


class InvalidChunkError(TransferError):
    """Raised for chunk indices outside the declared range or bad chunk counts."""

    def __init__(self, reason: str, **details):
        super().__init__(f"Invalid chunk: {reason}", details)


# =============================================================================
# PATTERN ERRORS
# =============================================================================

class PatternError(BillExtractionError):
    """Base exception for bill pattern errors."""
    pass


class DuplicatePatternError(PatternError):
    """Raised when a pattern id is registered twice for one language."""

    def __init__(self, pattern_id: str, language: str):
        message = f"Pattern '{pattern_id}' already registered for language '{language}'"
        details = {"pattern_id": pattern_id, "language": language}
        super().__init__(message, details)


class PatternDefinitionError(PatternError):
    """Raised when a pattern record is malformed."""

    def __init__(self, pattern_id: str, reason: str, source: str = None):
        message = f"Invalid pattern definition: {pattern_id}"
        details = {"pattern_id": pattern_id, "reason": reason}
        if source:
            details["source"] = source
        super().__init__(message, details)


# =============================================================================
# EXTRACTION ERRORS
# =============================================================================

class ExtractionError(BillExtractionError):
    """Base exception for extraction errors."""
    pass


class NoPatternMatchError(ExtractionError):
    """Raised when no pattern for the resolved language fired."""

    def __init__(self, language: str, patterns_tried: int = 0):
        message = f"No bill pattern matched for language '{language}'"
        details = {"language": language, "patterns_tried": patterns_tried}
        super().__init__(message, details)


class UnsupportedLanguageError(ExtractionError):
    """Raised when no language processor exists for a language code."""

    def __init__(self, language: str, supported: list):
        message = f"Unsupported language: '{language}'"
        details = {"language": language, "supported": supported}
        super().__init__(message, details)


class DocumentDecodeError(BillExtractionError):
    """Raised when the decoder cannot turn document bytes into text."""

    def __init__(self, file_name: str = None, reason: str = None):
        message = f"Could not decode document: {file_name or '<bytes>'}"
        details = {"file_name": file_name, "reason": reason}
        super().__init__(message, details)


# =============================================================================
# TIMEOUTS
# =============================================================================

class OperationTimeoutError(BillExtractionError):
    """Base exception for operations that exceeded their time budget."""

    def __init__(self, operation: str, timeout: float):
        message = f"{operation} exceeded its time budget of {timeout}s"
        details = {"operation": operation, "timeout": timeout}
        self.timeout = timeout
        super().__init__(message, details)


class ExtractionTimeoutError(OperationTimeoutError):
    """Raised when the matching phase runs past its timeout."""

    def __init__(self, timeout: float):
        super().__init__("Extraction", timeout)


class TransferTimeoutError(OperationTimeoutError):
    """Raised when a chunked transfer is not completed in time."""

    def __init__(self, timeout: float, transfer_id: str = None):
        super().__init__("Chunked transfer", timeout)
        if transfer_id:
            self.details["transfer_id"] = transfer_id


# =============================================================================
# PROTOCOL ERRORS
# =============================================================================

class ProtocolError(BillExtractionError):
    """Base exception for message protocol errors."""
    pass


class UnsupportedMessageError(ProtocolError):
    """Raised for message types the handler does not understand."""

    def __init__(self, message_type: str):
        super().__init__(
            f"Unsupported message type: {message_type}",
            {"type": message_type}
        )


__all__ = [
    'BillExtractionError',
    'TransferError',
    'MissingChunksError',
    'UnknownTransferError',
    'InvalidChunkError',
    'PatternError',
    'DuplicatePatternError',
    'PatternDefinitionError',
    'ExtractionError',
    'NoPatternMatchError',
    'UnsupportedLanguageError',
    'DocumentDecodeError',
    'OperationTimeoutError',
    'ExtractionTimeoutError',
    'TransferTimeoutError',
    'ProtocolError',
    'UnsupportedMessageError',
]
