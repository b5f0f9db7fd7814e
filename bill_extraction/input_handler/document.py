"""
Decoded Document Data Classes.

This module defines the structures a document decoder hands to the
extraction pipeline: page text plus optional laid-out text fragments.

Classes:
    PositionItem: One text fragment with page-local coordinates
    DecodedPage: Text and position items of a single page
    DecodedDocument: All decoded pages of a document

Author: ML Engineering Team
"""

from dataclasses import dataclass, field
from typing import List, Dict, Any, Optional


@dataclass(frozen=True)
class PositionItem:
    """
    A laid-out text fragment on a decoded page.

    Coordinates are page-local; the origin and the direction of the
    y axis are fixed by the decoder that produced the item.

    Attributes:
        text: The fragment text
        x: Left coordinate
        y: Top (or baseline) coordinate
        width: Fragment width
        height: Fragment height
        page: 1-based page number

    Example:
        >>> item = PositionItem("Fizetendő összeg:", x=40, y=120, width=95, height=10)
        >>> item.right
        135
    """
    text: str
    x: float
    y: float
    width: float = 0.0
    height: float = 0.0
    page: int = 1

    @property
    def right(self) -> float:
        """Right coordinate."""
        return self.x + self.width

    def __repr__(self) -> str:
        return f"PositionItem('{self.text}', x={self.x:.1f}, y={self.y:.1f}, page={self.page})"


@dataclass
class DecodedPage:
    """
    Text and positioned fragments of one page.

    Attributes:
        number: 1-based page number
        text: Page text in reading order
        items: Positioned fragments, in document order
        width: Page width, if known
        height: Page height, if known
    """
    number: int
    text: str = ""
    items: List[PositionItem] = field(default_factory=list)
    width: Optional[float] = None
    height: Optional[float] = None


@dataclass
class DecodedDocument:
    """
    Complete output of a document decoder.

    Attributes:
        pages: Decoded pages in order
        file_name: Source file name, if known
        decoder: Name of the decoder that produced the document
        metadata: Decoder specific metadata

    Example:
        >>> doc = DecodedDocument(pages=[DecodedPage(1, "Számla")])
        >>> doc.text
        "Számla"
    """
    pages: List[DecodedPage] = field(default_factory=list)
    file_name: Optional[str] = None
    decoder: str = "unknown"
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def text(self) -> str:
        """Full document text, pages separated by blank lines."""
        return "\n\n".join(page.text for page in self.pages if page.text)

    @property
    def position_items(self) -> List[PositionItem]:
        """All positioned fragments across pages, in document order."""
        return [item for page in self.pages for item in page.items]

    @property
    def page_count(self) -> int:
        return len(self.pages)

    def is_empty(self) -> bool:
        """Check whether the decoder produced any text."""
        return not self.text.strip()

    def __repr__(self) -> str:
        return (
            f"DecodedDocument(file='{self.file_name}', pages={self.page_count}, "
            f"items={len(self.position_items)}, decoder='{self.decoder}')"
        )
