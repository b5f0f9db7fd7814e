"""
Input Handler Module for the Bill Extraction System.

This module provides functionality for:
    - Reassembling documents delivered in chunks
    - Decoding PDF and plain-text documents into text and positioned items
    - Recovering text from raw bytes when decoding fails

Author: ML Engineering Team
"""

from .document import PositionItem, DecodedPage, DecodedDocument
from .chunk_assembler import ChunkAssembler, ChunkTransfer, ChunkProgress, TransferState
from .pdf_processor import PdfDecoder, TextDecoder, DocumentDecoder
from .raw_scanner import RawTextScanner

__all__ = [
    'PositionItem',
    'DecodedPage',
    'DecodedDocument',
    'ChunkAssembler',
    'ChunkTransfer',
    'ChunkProgress',
    'TransferState',
    'PdfDecoder',
    'TextDecoder',
    'DocumentDecoder',
    'RawTextScanner',
]
