"""
Helper Utilities Module.

Small generic functions shared across the bill extraction system.

Functions:
    - ensure_directory: Create directory if it doesn't exist
    - get_file_extension: Extract file extension safely
    - format_file_size: Human-readable byte counts
    - fold_accents: Lowercase and strip Hungarian/Latin accents
    - to_bytes: Coerce message payloads (bytes or int lists) to bytes
    - truncate: Shorten long strings for log output
"""

from pathlib import Path
from typing import Any, Union


_ACCENT_TABLE = str.maketrans({
    'á': 'a', 'à': 'a', 'â': 'a', 'ä': 'a',
    'é': 'e', 'è': 'e', 'ê': 'e', 'ë': 'e',
    'í': 'i', 'ì': 'i', 'î': 'i', 'ï': 'i',
    'ó': 'o', 'ò': 'o', 'ô': 'o', 'ö': 'o', 'ő': 'o', 'õ': 'o',
    'ú': 'u', 'ù': 'u', 'û': 'u', 'ü': 'u', 'ű': 'u', 'ũ': 'u',
    'Á': 'A', 'À': 'A', 'Â': 'A', 'Ä': 'A',
    'É': 'E', 'È': 'E', 'Ê': 'E', 'Ë': 'E',
    'Í': 'I', 'Ì': 'I', 'Î': 'I', 'Ï': 'I',
    'Ó': 'O', 'Ò': 'O', 'Ô': 'O', 'Ö': 'O', 'Ő': 'O', 'Õ': 'O',
    'Ú': 'U', 'Ù': 'U', 'Û': 'U', 'Ü': 'U', 'Ű': 'U', 'Ũ': 'U',
})


def ensure_directory(path: Union[str, Path]) -> Path:
    """
    Ensure a directory exists, creating it if necessary.

    Args:
        path: Directory path to ensure exists.

    Returns:
        Path object pointing to the directory.

    Example:
        >>> ensure_directory("outputs/results")
        PosixPath('outputs/results')
    """
    dir_path = Path(path)
    dir_path.mkdir(parents=True, exist_ok=True)
    return dir_path


def get_file_extension(filepath: Union[str, Path]) -> str:
    """
    Extract the lowercase file extension (with dot) from a filepath.

    Example:
        >>> get_file_extension("bill.PDF")
        ".pdf"
    """
    return Path(filepath).suffix.lower()


def format_file_size(size_bytes: float) -> str:
    """
    Format file size in human-readable format.

    Example:
        >>> format_file_size(1536)
        "1.5 KB"
    """
    for unit in ['B', 'KB', 'MB', 'GB', 'TB']:
        if size_bytes < 1024.0:
            return f"{size_bytes:.1f} {unit}"
        size_bytes /= 1024.0
    return f"{size_bytes:.1f} PB"


def strip_accents(text: str) -> str:
    """
    Replace accented vowels with their base letter, keeping case.

    The result has the same length as the input, so match offsets found
    in the stripped text are valid in the original.
    """
    if not text:
        return ""
    return text.translate(_ACCENT_TABLE)


def fold_accents(text: str) -> str:
    """
    Lowercase a string and replace accented vowels with their base letter.

    Args:
        text: Input text.

    Returns:
        Accent-folded lowercase text.

    Example:
        >>> fold_accents("Fizetési határidő")
        "fizetesi hatarido"
    """
    if not text:
        return ""
    return strip_accents(text.lower())


def to_bytes(payload: Any) -> bytes:
    """
    Coerce a message payload to bytes.

    Message channels may carry raw bytes, bytearrays, memoryviews or
    JSON-style lists of integers.

    Raises:
        TypeError: If the payload cannot be interpreted as bytes.
        ValueError: If a list contains values outside 0..255.
    """
    if payload is None:
        return b""
    if isinstance(payload, bytes):
        return payload
    if isinstance(payload, (bytearray, memoryview)):
        return bytes(payload)
    if isinstance(payload, str):
        return payload.encode('utf-8')
    if isinstance(payload, (list, tuple)):
        return bytes(payload)
    raise TypeError(f"Cannot convert {type(payload).__name__} to bytes")


def truncate(text: str, length: int = 80) -> str:
    """Shorten text for log output."""
    if text is None:
        return ""
    text = text.replace("\n", " ")
    return text if len(text) <= length else text[:length - 3] + "..."
