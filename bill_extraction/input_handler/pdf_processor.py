"""
Document Decoder Module.

This module turns document bytes into text and positioned fragments:
    - Digital PDF text and word positions via pdfplumber
    - Plain-text / email bodies in the encodings Hungarian mail uses
    - Dispatch between the two by content sniffing

The page-level PDF parsing itself is delegated to pdfplumber; this
module only adapts its output to DecodedDocument.

Author: ML Engineering Team
"""

import io
from typing import Optional, List

from config import get_config
from bill_extraction.utils.logger import get_logger
from bill_extraction.utils.exceptions import DocumentDecodeError
from .document import PositionItem, DecodedPage, DecodedDocument

# Initialize module logger
logger = get_logger(__name__)

PDF_MAGIC = b"%PDF"


class PdfDecoder:
    """
    Decoder for digital PDF files.

    Extracts page text and word boxes with pdfplumber. Word boxes use
    pdfplumber's top-left origin, so y grows toward the bottom of the
    page.

    Attributes:
        max_pages: Maximum number of pages to decode
        keep_blank_chars: Keep spaces inside words so label phrases and
            amounts like "6.364 Ft" stay in one item
        x_tolerance: Horizontal gap tolerance for joining characters
        y_tolerance: Vertical tolerance for joining characters

    Example:
        >>> decoder = PdfDecoder()
        >>> doc = decoder.decode(pdf_bytes, "bill.pdf")
        >>> print(doc.page_count)
    """

    name = "pdfplumber"

    def __init__(
        self,
        max_pages: Optional[int] = None,
        keep_blank_chars: Optional[bool] = None,
        x_tolerance: Optional[float] = None,
        y_tolerance: Optional[float] = None
    ) -> None:
        self.max_pages = max_pages or get_config("decoder.max_pages", 10)
        self.keep_blank_chars = (
            keep_blank_chars if keep_blank_chars is not None
            else get_config("decoder.keep_blank_chars", True)
        )
        self.x_tolerance = x_tolerance or get_config("decoder.x_tolerance", 3)
        self.y_tolerance = y_tolerance or get_config("decoder.y_tolerance", 3)

        self._check_dependencies()

        logger.debug(f"PdfDecoder initialized (max_pages={self.max_pages})")

    def _check_dependencies(self) -> None:
        try:
            import pdfplumber
            self._pdfplumber = pdfplumber
        except ImportError:
            logger.warning("pdfplumber not available. Install with: pip install pdfplumber")
            self._pdfplumber = None

    def decode(self, data: bytes, file_name: Optional[str] = None) -> DecodedDocument:
        """
        Decode PDF bytes.

        Args:
            data: Complete PDF file contents.
            file_name: Optional name for logging and the result.

        Returns:
            DecodedDocument with page text and word items.

        Raises:
            DocumentDecodeError: If pdfplumber is missing or the PDF
                cannot be parsed.
        """
        if self._pdfplumber is None:
            raise DocumentDecodeError(file_name, "pdfplumber is not installed")

        pages: List[DecodedPage] = []
        try:
            with self._pdfplumber.open(io.BytesIO(data)) as pdf:
                total = len(pdf.pages)
                if total > self.max_pages:
                    logger.warning(f"PDF has {total} pages, limiting to {self.max_pages}")

                for number, page in enumerate(pdf.pages[:self.max_pages], start=1):
                    pages.append(self._decode_page(page, number))
        except DocumentDecodeError:
            raise
        except Exception as e:
            # pdfminer raises a wide range of parser errors for damaged files
            logger.error(f"PDF decoding failed for {file_name or '<bytes>'}: {e}")
            raise DocumentDecodeError(file_name, str(e)) from e

        document = DecodedDocument(
            pages=pages,
            file_name=file_name,
            decoder=self.name,
            metadata={'total_pages': total, 'size_bytes': len(data)}
        )
        logger.info(
            f"Decoded PDF {file_name or '<bytes>'}: {document.page_count} page(s), "
            f"{len(document.position_items)} items"
        )
        return document

    def _decode_page(self, page, number: int) -> DecodedPage:
        text = page.extract_text() or ""
        words = page.extract_words(
            keep_blank_chars=self.keep_blank_chars,
            x_tolerance=self.x_tolerance,
            y_tolerance=self.y_tolerance
        )
        items = [
            PositionItem(
                text=word['text'].strip(),
                x=float(word['x0']),
                y=float(word['top']),
                width=float(word['x1']) - float(word['x0']),
                height=float(word['bottom']) - float(word['top']),
                page=number
            )
            for word in words
            if word.get('text', '').strip()
        ]
        return DecodedPage(
            number=number,
            text=text,
            items=items,
            width=float(page.width),
            height=float(page.height)
        )


class TextDecoder:
    """
    Decoder for plain-text documents such as email bodies.

    Tries strict UTF-8 first, then the Central European code pages.
    """

    name = "text"
    # iso-8859-2 accepts any byte, so it is tried last
    ENCODINGS = ('utf-8', 'windows-1250', 'iso-8859-2')

    def decode(self, data: bytes, file_name: Optional[str] = None) -> DecodedDocument:
        for encoding in self.ENCODINGS:
            try:
                text = data.decode(encoding)
                break
            except UnicodeDecodeError:
                continue
        else:
            text = data.decode('utf-8', errors='replace')
            encoding = 'utf-8-replace'

        text = text.lstrip('\ufeff').replace('\r\n', '\n').replace('\r', '\n')
        logger.debug(f"Decoded text document {file_name or '<bytes>'} as {encoding}")
        return DecodedDocument(
            pages=[DecodedPage(number=1, text=text)],
            file_name=file_name,
            decoder=self.name,
            metadata={'encoding': encoding, 'size_bytes': len(data)}
        )


class DocumentDecoder:
    """
    Chooses between PDF and text decoding by sniffing the content.

    Example:
        >>> decoder = DocumentDecoder()
        >>> doc = decoder.decode("Fizetendő összeg: 6.364 Ft".encode(), "mail.txt")
        >>> doc.decoder
        "text"
    """

    def __init__(
        self,
        pdf_decoder: Optional[PdfDecoder] = None,
        text_decoder: Optional[TextDecoder] = None
    ) -> None:
        self._pdf_decoder = pdf_decoder
        self.text_decoder = text_decoder or TextDecoder()

    @property
    def pdf_decoder(self) -> PdfDecoder:
        if self._pdf_decoder is None:
            self._pdf_decoder = PdfDecoder()
        return self._pdf_decoder

    @staticmethod
    def is_pdf(data: bytes) -> bool:
        # The header may be preceded by junk bytes in the first 1 KB
        return PDF_MAGIC in data[:1024]

    def decode(self, data: bytes, file_name: Optional[str] = None) -> DecodedDocument:
        """
        Decode document bytes.

        Raises:
            DocumentDecodeError: If the data is empty or the PDF decoder fails.
        """
        if not data:
            raise DocumentDecodeError(file_name, "empty document")
        if self.is_pdf(data):
            return self.pdf_decoder.decode(data, file_name)
        return self.text_decoder.decode(data, file_name)
