"""
Unit tests for document decoding and raw byte scanning.
"""

import pytest

from bill_extraction.input_handler import DocumentDecoder, RawTextScanner, DecodedDocument, DecodedPage
from bill_extraction.input_handler.raw_scanner import unescape_pdf_string, repair_mojibake
from bill_extraction.utils.exceptions import DocumentDecodeError
from bill_extraction.utils.helpers import to_bytes


class TestDocumentDecoder:
    """Test content sniffing and text decoding."""

    def test_utf8_text(self):
        document = DocumentDecoder().decode("Fizetendő összeg: 6.364 Ft".encode("utf-8"), "mail.txt")

        assert document.decoder == "text"
        assert document.text == "Fizetendő összeg: 6.364 Ft"
        assert document.file_name == "mail.txt"
        assert document.metadata['encoding'] == "utf-8"

    def test_central_european_text(self):
        document = DocumentDecoder().decode("Fizetendő összeg".encode("cp1250"))

        assert document.text == "Fizetendő összeg"
        assert document.metadata['encoding'] == "windows-1250"

    def test_latin2_fallback(self):
        """Bytes windows-1250 leaves undefined fall through to iso-8859-2."""
        document = DocumentDecoder().decode(b"Fizetend\xf5 \x81")

        assert document.text.startswith("Fizetendő")
        assert document.metadata['encoding'] == "iso-8859-2"

    def test_line_endings(self):
        document = DocumentDecoder().decode(b"\xef\xbb\xbfa\r\nb\rc")
        assert document.text == "a\nb\nc"

    def test_empty_document(self):
        with pytest.raises(DocumentDecodeError):
            DocumentDecoder().decode(b"", "empty.pdf")

    def test_pdf_sniffing(self):
        assert DocumentDecoder.is_pdf(b"%PDF-1.7\n...")
        assert DocumentDecoder.is_pdf(b"\x00junk%PDF-1.4")
        assert not DocumentDecoder.is_pdf(b"Fizetendo osszeg")

    def test_damaged_pdf(self):
        with pytest.raises(DocumentDecodeError):
            DocumentDecoder().decode(b"%PDF-1.4\nthis is not a pdf", "broken.pdf")

    def test_document_text_joins_pages(self):
        document = DecodedDocument(pages=[DecodedPage(1, "első"), DecodedPage(2, ""), DecodedPage(3, "harmadik")])

        assert document.text == "első\n\nharmadik"
        assert document.page_count == 3


class TestRawTextScanner:
    """Test heuristic text recovery from raw bytes."""

    def test_text_operator(self):
        assert RawTextScanner().scan(b"BT (Total due: 45.00) Tj ET") == "Total due: 45.00"

    def test_text_array(self):
        assert RawTextScanner().scan(b"BT [(Sz) -20 (aml) 5 (a)] TJ ET") == "Szamla"

    def test_duplicates_removed(self):
        assert RawTextScanner().scan(b"BT (Hello) Tj (Hello) Tj ET") == "Hello"

    def test_literal_strings_without_operators(self):
        assert RawTextScanner().scan(b"(Fizetendo osszeg) (ab)") == "Fizetendo osszeg"

    def test_nothing_readable(self):
        scanner = RawTextScanner()

        assert scanner.scan(b"") == ""
        assert scanner.scan(b"\x00\x01\x02") == ""

    def test_unescape(self):
        assert unescape_pdf_string(r"Sz\341mla \(HU\)") == "Számla (HU)"

    def test_repair_mojibake(self):
        assert repair_mojibake("szÃ¡mla") == "számla"
        assert repair_mojibake("számla") == "számla"


class TestToBytes:
    """Test message payload coercion."""

    def test_supported_payloads(self):
        assert to_bytes(b"ab") == b"ab"
        assert to_bytes(bytearray(b"ab")) == b"ab"
        assert to_bytes([97, 98]) == b"ab"
        assert to_bytes("á") == "á".encode("utf-8")
        assert to_bytes(None) == b""

    def test_unsupported_payloads(self):
        with pytest.raises(TypeError):
            to_bytes(3.5)
        with pytest.raises(ValueError):
            to_bytes([300])
