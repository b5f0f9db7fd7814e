"""
Utility Module for the Bill Extraction System.

Provides logging configuration, the exception hierarchy and small
generic helper functions.
"""

from .logger import setup_logger, get_logger, setup_logger_from_config, set_level
from .exceptions import (
    BillExtractionError,
    TransferError,
    MissingChunksError,
    UnknownTransferError,
    InvalidChunkError,
    PatternError,
    DuplicatePatternError,
    PatternDefinitionError,
    ExtractionError,
    NoPatternMatchError,
    UnsupportedLanguageError,
    DocumentDecodeError,
    OperationTimeoutError,
    ExtractionTimeoutError,
    TransferTimeoutError,
    ProtocolError,
    UnsupportedMessageError,
)
from .helpers import (
    ensure_directory,
    get_file_extension,
    format_file_size,
    strip_accents,
    fold_accents,
    to_bytes,
    truncate,
)

__all__ = [
    'setup_logger',
    'get_logger',
    'setup_logger_from_config',
    'set_level',
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
    'ensure_directory',
    'get_file_extension',
    'format_file_size',
    'strip_accents',
    'fold_accents',
    'to_bytes',
    'truncate',
]
