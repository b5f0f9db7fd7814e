"""
Field Post-Processor Module.

Turns raw captured strings into typed field values: amounts become
floats, dates become datetime.date, vendor names and identifiers are
cleaned. Values that fail validation are dropped so the field is
reported absent rather than wrong.

Also infers the service category (electricity, gas, water, ...) of a
bill from its vendor hint, vendor name or text.

Author: ML Engineering Team
"""

import re
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Mapping, Optional, Union

from bill_extraction.utils.logger import get_logger
from bill_extraction.utils.helpers import fold_accents
from bill_extraction.language.base import LanguageProcessor
from bill_extraction.patterns.bill_pattern import FieldCapture, FieldName, DATE_FIELDS
from .validators import AmountValidator, DateValidator

# Initialize module logger
logger = get_logger(__name__)

SERVICE_CATEGORIES = ('electricity', 'gas', 'water', 'telecom', 'district_heating', 'waste')

ID_FIELDS = (FieldName.INVOICE_NUMBER, FieldName.ACCOUNT_NUMBER)

TRAILING_JUNK = re.compile(r'[\s,;:*\-]+$')
LEADING_JUNK = re.compile(r'^[\s,;:*\-]+')


@dataclass
class ProcessedFields:
    """
    Typed field values plus the fields that were rejected.

    Attributes:
        fields: Field name (str) to typed value
        rejected: Field name to rejection reason
    """
    fields: Dict[str, Any] = field(default_factory=dict)
    rejected: Dict[str, str] = field(default_factory=dict)

    @property
    def has_amount(self) -> bool:
        return FieldName.AMOUNT.value in self.fields


class FieldPostProcessor:
    """
    Converts, cleans and validates captured field values.

    Example:
        >>> post = FieldPostProcessor()
        >>> result = post.process({FieldName.AMOUNT: "6.364"}, HungarianProcessor())
        >>> result.fields
        {'amount': 6364.0}
    """

    def __init__(
        self,
        amount_validator: Optional[AmountValidator] = None,
        date_validator: Optional[DateValidator] = None
    ) -> None:
        self.amount_validator = amount_validator or AmountValidator()
        self.date_validator = date_validator or DateValidator()

    def process(
        self,
        captures: Mapping[Union[FieldName, str], Union[FieldCapture, str]],
        processor: LanguageProcessor
    ) -> ProcessedFields:
        """
        Convert every capture to its typed value.

        Args:
            captures: Field (FieldName or its value) to capture or raw string.
            processor: Language processor for locale-aware parsing.

        Returns:
            ProcessedFields with valid values and rejection reasons.
        """
        result = ProcessedFields()

        for key, capture in captures.items():
            raw = capture.value if isinstance(capture, FieldCapture) else str(capture)
            try:
                field_name = key if isinstance(key, FieldName) else FieldName(key)
            except ValueError:
                field_name = None
            name = field_name.value if field_name else str(key)

            value, reason = self.convert(field_name, raw, processor)
            if value is None:
                result.rejected[name] = reason
                logger.debug(f"Dropped {name}='{raw}': {reason}")
            else:
                result.fields[name] = value

        self._check_dates(result)
        return result

    def convert(
        self,
        field_name: Optional[FieldName],
        raw: str,
        processor: LanguageProcessor
    ):
        """
        Convert one raw value.

        Returns:
            Tuple of (value or None, reason).
        """
        if field_name == FieldName.AMOUNT:
            amount = processor.clean_amount(raw)
            valid, reason = self.amount_validator.validate(amount)
            return (amount if valid else None), reason

        if field_name in DATE_FIELDS:
            parsed = processor.parse_date(raw)
            valid, reason = self.date_validator.validate(parsed)
            return (parsed if valid else None), reason

        if field_name == FieldName.VENDOR:
            vendor = self.clean_vendor(raw, processor)
            return (vendor, "Valid vendor") if vendor else (None, "Vendor name too short")

        if field_name in ID_FIELDS:
            identifier = self.clean_identifier(raw)
            if identifier and re.search(r'\d', identifier):
                return identifier, "Valid identifier"
            return None, "Identifier has no digits"

        text = ' '.join(str(raw).split())
        return (text, "Valid") if text else (None, "Field is empty")

    def _check_dates(self, result: ProcessedFields) -> None:
        due = result.fields.get(FieldName.DUE_DATE.value)
        issued = result.fields.get(FieldName.INVOICE_DATE.value)
        if isinstance(due, date) and isinstance(issued, date):
            valid, reason = self.date_validator.is_due_after_invoice(issued, due)
            if not valid:
                logger.warning(f"{reason}: issued {issued}, due {due}")

    @staticmethod
    def clean_vendor(raw: str, processor: LanguageProcessor) -> Optional[str]:
        """
        Cut a vendor name at the first address/registration label.

        Example:
            >>> FieldPostProcessor.clean_vendor("MVM Next Zrt. Címe: Budapest", hu)
            'MVM Next Zrt.'
        """
        if not raw:
            return None
        vendor = ' '.join(raw.split())
        for stop in processor.resources.vendor_stop_labels:
            index = vendor.lower().find(stop.lower())
            if index > 0:
                vendor = vendor[:index]
        vendor = LEADING_JUNK.sub('', TRAILING_JUNK.sub('', vendor))
        return vendor if len(vendor) >= 2 else None

    @staticmethod
    def clean_identifier(raw: str) -> str:
        return str(raw).strip().strip('.,;:')

    @staticmethod
    def infer_category(
        hint_category: Optional[str],
        vendor: Optional[str],
        text: str,
        processor: LanguageProcessor
    ) -> Optional[str]:
        """
        Service category of a bill.

        A vendor hint naming a service category wins; otherwise the
        vendor name, then the text, is searched for the language's
        service keywords. Falls back to the hint's own category.
        """
        if hint_category in SERVICE_CATEGORIES:
            return hint_category

        for haystack in (vendor, text):
            if not haystack:
                continue
            folded = fold_accents(haystack)
            for service, keywords in processor.resources.service_types.items():
                for keyword in keywords:
                    if re.search(rf'(?<!\w){re.escape(fold_accents(keyword))}', folded):
                        return service
        return hint_category
