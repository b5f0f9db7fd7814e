"""
Data Validators Module.

Sanity checks applied to parsed field values:
    - Dates within a plausible year range
    - Amounts positive and below a ceiling

Author: ML Engineering Team
"""

import math
from datetime import date
from typing import Optional, Tuple

from config import get_config
from bill_extraction.utils.logger import get_logger

# Initialize module logger
logger = get_logger(__name__)


class DateValidator:
    """
    Validates parsed dates.

    Example:
        >>> validator = DateValidator()
        >>> validator.is_valid(date(2025, 5, 5))
        True
        >>> validator.validate(date(1850, 1, 1))
        (False, 'Year 1850 is too old')
    """

    def __init__(self, min_year: Optional[int] = None, max_year: Optional[int] = None) -> None:
        """Initialize the date validator."""
        self.min_year = min_year or get_config("postprocessing.date.min_year", 2000)
        self.max_year = max_year or get_config("postprocessing.date.max_year", 2100)
        logger.debug(f"DateValidator initialized ({self.min_year}-{self.max_year})")

    def is_valid(self, value: Optional[date]) -> bool:
        valid, _ = self.validate(value)
        return valid

    def validate(self, value: Optional[date]) -> Tuple[bool, str]:
        """
        Validate a date with detailed feedback.

        Args:
            value: Parsed date (None when parsing failed).

        Returns:
            Tuple of (is_valid, message).
        """
        if value is None:
            return False, "Could not parse date"
        if value.year < self.min_year:
            return False, f"Year {value.year} is too old"
        if value.year > self.max_year:
            return False, f"Year {value.year} is too far in future"
        return True, "Valid date"

    def is_due_after_invoice(self, invoice_date: date, due_date: date) -> Tuple[bool, str]:
        """
        Check that the due date does not precede the invoice date.

        Returns:
            Tuple of (is_valid, message).
        """
        if due_date < invoice_date:
            return False, "Due date is before invoice date"
        return True, "Valid date relationship"


class AmountValidator:
    """
    Validates parsed amounts.

    Checks for:
        - Finite numeric value
        - Strictly positive value (0 means "could not parse")
        - Reasonable upper bound

    Example:
        >>> validator = AmountValidator()
        >>> validator.is_valid(6364.0)
        True
        >>> validator.validate(-100.0)
        (False, 'Amount must be positive')
    """

    def __init__(self, max_value: Optional[float] = None) -> None:
        """Initialize the amount validator."""
        self.max_value = max_value or get_config("postprocessing.amount.max_value", 1_000_000_000)
        logger.debug("AmountValidator initialized")

    def is_valid(self, value: Optional[float]) -> bool:
        valid, _ = self.validate(value)
        return valid

    def validate(self, value: Optional[float]) -> Tuple[bool, str]:
        """
        Validate an amount with detailed feedback.

        Args:
            value: Parsed amount.

        Returns:
            Tuple of (is_valid, message).
        """
        if value is None:
            return False, "Amount is empty"
        if not math.isfinite(value):
            return False, "Amount is not a finite number"
        if value <= 0:
            return False, "Amount must be positive"
        if value > self.max_value:
            return False, f"Amount {value} exceeds maximum"
        return True, "Valid amount"
