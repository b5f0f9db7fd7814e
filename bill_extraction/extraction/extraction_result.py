"""
Extraction Data Classes.

Input and output records of the extraction pipeline:
    - ExtractionContext: normalized input bundle
    - BillRecord: one extracted bill (immutable once built)
    - ExtractionResult: outcome of one extraction call

Author: ML Engineering Team
"""

import uuid
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from types import MappingProxyType
from typing import Dict, Any, Optional, List, Mapping, Sequence, Tuple

from bill_extraction.input_handler.document import DecodedDocument, PositionItem


class SourceKind(Enum):
    """Where the text of a bill came from."""
    TEXT = "text"
    PDF = "pdf"
    EMAIL = "email"
    RAW_SCAN = "raw_scan"


@dataclass(frozen=True)
class Source:
    """Origin descriptor of a bill: kind plus locator (file name, message id)."""
    kind: SourceKind = SourceKind.TEXT
    locator: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {'kind': self.kind.value, 'locator': self.locator}


@dataclass
class ExtractionContext:
    """
    Everything one extraction call works on.

    Attributes:
        text: Decoded document text
        position_items: Laid-out text fragments, in document order
        language: Language hint; None triggers detection
        file_name: Originating file name
        subject: Subject/title used to fire patterns
        user_id: Caller identity for downstream field mapping (unused here)
        raw_bytes: Original bytes for the degraded raw scanner
        source_kind: Kind of document the text came from
    """
    text: str = ""
    position_items: Tuple[PositionItem, ...] = ()
    language: Optional[str] = None
    file_name: Optional[str] = None
    subject: Optional[str] = None
    user_id: Optional[str] = None
    raw_bytes: Optional[bytes] = None
    source_kind: SourceKind = SourceKind.TEXT

    def __post_init__(self):
        self.text = self.text or ""
        self.position_items = tuple(self.position_items or ())

    @property
    def has_positions(self) -> bool:
        return bool(self.position_items)

    @property
    def source(self) -> Source:
        return Source(kind=self.source_kind, locator=self.file_name)

    @classmethod
    def from_document(
        cls,
        document: DecodedDocument,
        language: Optional[str] = None,
        subject: Optional[str] = None,
        user_id: Optional[str] = None,
        raw_bytes: Optional[bytes] = None
    ) -> 'ExtractionContext':
        """Build a context from a decoded document."""
        kind = SourceKind.TEXT if document.decoder == "text" else SourceKind.PDF
        return cls(
            text=document.text,
            position_items=tuple(document.position_items),
            language=language,
            file_name=document.file_name,
            subject=subject,
            user_id=user_id,
            raw_bytes=raw_bytes,
            source_kind=kind
        )


def _render(value: Any) -> Any:
    if isinstance(value, date):
        return value.isoformat()
    return value


@dataclass(frozen=True)
class BillRecord:
    """
    One extracted bill.

    Attributes:
        id: Unique record id
        fields: Field name to typed value (amount float, dates date)
        confidence: Extraction confidence in [0, 1]
        extraction_method: Strategy that produced the record
        language: Language of the document
        source: Origin descriptor
        vendor_category: Inferred service category
        pattern_id: Pattern that matched, if any
        custom_fields: Values of pattern-specific custom fields

    Example:
        >>> record.amount
        6364.0
        >>> record.to_dict()['fields']['due_date']
        '2025-05-05'
    """
    id: str
    fields: Mapping[str, Any]
    confidence: Optional[float] = None
    extraction_method: str = ""
    language: Optional[str] = None
    source: Source = field(default_factory=Source)
    vendor_category: Optional[str] = None
    pattern_id: Optional[str] = None
    custom_fields: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, 'fields', MappingProxyType(dict(self.fields)))
        object.__setattr__(self, 'custom_fields', MappingProxyType(dict(self.custom_fields)))

    @staticmethod
    def new_id() -> str:
        return uuid.uuid4().hex[:12]

    @property
    def amount(self) -> Optional[float]:
        return self.fields.get('amount')

    @property
    def due_date(self) -> Optional[date]:
        return self.fields.get('due_date')

    @property
    def vendor(self) -> Optional[str]:
        return self.fields.get('vendor')

    @property
    def invoice_number(self) -> Optional[str]:
        return self.fields.get('invoice_number')

    @property
    def account_number(self) -> Optional[str]:
        return self.fields.get('account_number')

    @property
    def has_amount(self) -> bool:
        return self.amount is not None

    def to_dict(self) -> Dict[str, Any]:
        """Dictionary form with dates rendered as ISO strings."""
        return {
            'id': self.id,
            'fields': {k: _render(v) for k, v in self.fields.items()},
            'confidence': self.confidence,
            'extraction_method': self.extraction_method,
            'language': self.language,
            'source': self.source.to_dict(),
            'vendor_category': self.vendor_category,
            'pattern_id': self.pattern_id,
            'custom_fields': dict(self.custom_fields)
        }

    def __repr__(self) -> str:
        return (
            f"BillRecord(amount={self.amount}, due={self.due_date}, "
            f"vendor={self.vendor!r}, method={self.extraction_method}, "
            f"confidence={self.confidence if self.confidence is None else round(self.confidence, 2)})"
        )


@dataclass
class ExtractionResult:
    """
    Outcome of one extraction call.

    Invariants: success implies at least one bill with an amount;
    confidence is the highest bill confidence (0 without bills).

    Attributes:
        success: Whether a usable bill was found
        bills: Extracted bills in document order
        confidence: Best bill confidence
        language: Resolved language
        error: Error message for failed calls
        error_type: Exception class name behind the error
        debug: Trace of states, strategies and confidence deltas
        threshold: Acceptance threshold the result was judged against
    """
    success: bool = False
    bills: List[BillRecord] = field(default_factory=list)
    confidence: float = 0.0
    language: Optional[str] = None
    error: Optional[str] = None
    error_type: Optional[str] = None
    debug: Optional[Dict[str, Any]] = None
    threshold: float = 0.2

    @classmethod
    def from_bills(
        cls,
        bills: Sequence[BillRecord],
        language: Optional[str] = None,
        debug: Optional[Dict[str, Any]] = None,
        threshold: float = 0.2
    ) -> 'ExtractionResult':
        """Result over a set of bills; bills without an amount are dropped."""
        kept = [bill for bill in bills if bill.has_amount]
        confidence = max((bill.confidence or 0.0 for bill in kept), default=0.0)
        return cls(
            success=bool(kept) and confidence > 0,
            bills=kept,
            confidence=confidence,
            language=language,
            debug=debug,
            threshold=threshold
        )

    @classmethod
    def failure(
        cls,
        error: Optional[str] = None,
        error_type: Optional[str] = None,
        language: Optional[str] = None,
        debug: Optional[Dict[str, Any]] = None
    ) -> 'ExtractionResult':
        return cls(
            success=False,
            error=error,
            error_type=error_type,
            language=language,
            debug=debug
        )

    @property
    def is_low_confidence(self) -> bool:
        """Successful but below the acceptance threshold; the caller decides."""
        return self.success and self.confidence < self.threshold

    @property
    def best_bill(self) -> Optional[BillRecord]:
        if not self.bills:
            return None
        return max(self.bills, key=lambda bill: bill.confidence or 0.0)

    def to_dict(self) -> Dict[str, Any]:
        result = {
            'success': self.success,
            'bills': [bill.to_dict() for bill in self.bills],
            'confidence': self.confidence,
            'language': self.language,
            'low_confidence': self.is_low_confidence
        }
        if self.error:
            result['error'] = self.error
            result['error_type'] = self.error_type
        if self.debug is not None:
            result['debug'] = self.debug
        return result

    def __repr__(self) -> str:
        return (
            f"ExtractionResult(success={self.success}, bills={len(self.bills)}, "
            f"confidence={self.confidence:.2f}, language={self.language})"
        )
