"""
Raw Text Scanner Module.

Best-effort recovery of text from document bytes when the real decoder
failed. It scans uncompressed PDF content for text-showing operators and
parenthesised string literals. Compressed streams are not inflated, so
this only helps with simple or partially damaged files; its output feeds
the last-resort extraction strategy.

Author: ML Engineering Team
"""

import re
from typing import Optional, List

from config import get_config
from bill_extraction.utils.logger import get_logger

# Initialize module logger
logger = get_logger(__name__)


BT_ET_BLOCK = re.compile(r'BT\s+(.*?)\s+ET', re.DOTALL)
TJ_STRING = re.compile(r'\(((?:\\.|[^\\)])+)\)\s*Tj')
TJ_ARRAY = re.compile(r'\[(.*?)\]\s*TJ', re.DOTALL)
ARRAY_STRING = re.compile(r'\(((?:\\.|[^\\)])*)\)')
HEX_STRING = re.compile(r'<(FEFF[A-Fa-f0-9]+|[A-Fa-f0-9]{4,})>\s*(?:Tj|TJ)')
ANY_STRING = re.compile(r'\(([^)]{2,})\)')
WORD_CHAR = re.compile(r'\w')

_ESCAPES = {
    'n': '\n', 'r': '\r', 't': '\t', 'b': '\b', 'f': '\f',
    '\\': '\\', '(': '(', ')': ')',
}
_ESCAPE_SEQUENCE = re.compile(r'\\([0-7]{1,3}|.)', re.DOTALL)


def unescape_pdf_string(value: str) -> str:
    """
    Resolve PDF literal string escapes.

    Example:
        >>> unescape_pdf_string(r"Sz\\341mla \\(HU\\)")
        "Számla (HU)"
    """
    def replace(match):
        token = match.group(1)
        if token[0] in '01234567':
            return chr(int(token, 8))
        return _ESCAPES.get(token, token)

    return _ESCAPE_SEQUENCE.sub(replace, value)


def decode_hex_string(hex_value: str) -> str:
    """Decode a PDF hex string, UTF-16BE when it carries a byte order mark."""
    if len(hex_value) % 2:
        hex_value += '0'
    try:
        raw = bytes.fromhex(hex_value)
    except ValueError:
        return ""
    if raw.startswith(b'\xfe\xff'):
        return raw[2:].decode('utf-16-be', errors='ignore')
    return ''.join(chr(b) for b in raw if b >= 32)


def repair_mojibake(text: str) -> str:
    """
    Undo UTF-8 text that was decoded as Latin-1 ("szÃ¡mla" -> "számla").
    """
    if 'Ã' not in text and 'Å' not in text:
        return text
    try:
        return text.encode('latin-1').decode('utf-8')
    except (UnicodeEncodeError, UnicodeDecodeError):
        return text


class RawTextScanner:
    """
    Heuristic text recovery from raw document bytes.

    Attributes:
        max_bytes: Only the first max_bytes of the document are scanned
        max_strings: Cap on parenthesised strings collected in the
            fallback pass
        min_length: Minimum length of a fallback string
        encodings: Encodings used to view the bytes as text

    Example:
        >>> scanner = RawTextScanner()
        >>> scanner.scan(b"BT (Total due: 45.00) Tj ET")
        "Total due: 45.00"
    """

    def __init__(
        self,
        max_bytes: Optional[int] = None,
        max_strings: Optional[int] = None,
        min_length: Optional[int] = None,
        encodings: Optional[List[str]] = None
    ) -> None:
        self.max_bytes = max_bytes or get_config("raw_scan.max_bytes", 5000000)
        self.max_strings = max_strings or get_config("raw_scan.max_strings", 1000)
        self.min_length = min_length or get_config("raw_scan.min_length", 3)
        self.encodings = encodings or get_config(
            "raw_scan.encodings", ['utf-8', 'iso-8859-2', 'windows-1250']
        )

    def scan(self, data: bytes) -> str:
        """
        Recover readable text from raw bytes.

        Args:
            data: Document bytes.

        Returns:
            Recovered text, one fragment per line; empty string if
            nothing readable was found.
        """
        if not data:
            return ""

        data = data[:self.max_bytes]
        fragments: List[str] = []

        views = self._decode_views(data)
        for view in views:
            fragments = self._scan_text_operators(view)
            if fragments:
                break

        if not fragments:
            # No text operators: fall back to any parenthesised string
            for view in views:
                fragments = self._scan_literal_strings(view)
                if fragments:
                    break

        seen = set()
        lines = []
        for fragment in fragments:
            cleaned = repair_mojibake(fragment).strip()
            if cleaned and cleaned not in seen:
                seen.add(cleaned)
                lines.append(cleaned)

        logger.info(f"Raw scan recovered {len(lines)} text fragments from {len(data)} bytes")
        return "\n".join(lines)

    def _decode_views(self, data: bytes) -> List[str]:
        views = []
        for encoding in self.encodings:
            try:
                view = data.decode(encoding, errors='ignore')
            except LookupError:
                logger.warning(f"Unknown encoding in raw_scan.encodings: {encoding}")
                continue
            if view not in views:
                views.append(view)
        return views

    def _scan_text_operators(self, view: str) -> List[str]:
        fragments = []
        for block in BT_ET_BLOCK.finditer(view):
            body = block.group(1)
            for match in TJ_STRING.finditer(body):
                fragments.append(unescape_pdf_string(match.group(1)))
            for match in TJ_ARRAY.finditer(body):
                parts = [unescape_pdf_string(s) for s in ARRAY_STRING.findall(match.group(1))]
                joined = ''.join(parts)
                if joined.strip():
                    fragments.append(joined)
            for match in HEX_STRING.finditer(body):
                decoded = decode_hex_string(match.group(1))
                if len(decoded) > 1:
                    fragments.append(decoded)
        return fragments

    def _scan_literal_strings(self, view: str) -> List[str]:
        fragments = []
        for count, match in enumerate(ANY_STRING.finditer(view)):
            if count >= self.max_strings:
                break
            value = unescape_pdf_string(match.group(1))
            if len(value) > self.min_length and WORD_CHAR.search(value):
                fragments.append(value)
        return fragments
