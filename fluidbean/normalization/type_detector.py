# ==============================================
# TypeDetector
# ==============================================
#
# PURPOSE:
#   Look at a scalar value the way the database will see it once it
#   is bound as a parameter, and describe it in a dialect neutral
#   ValueProfile. Every dialect's scan_type() walks its own type ladder
#   over this profile.
#
# WHY THIS CLASS EXISTS:
#   The rules "is this numeric?", "does it start with a leading zero?",
#   "is it date shaped?", "how many UTF-8 bytes?" are the same for all
#   four dialects. Only the ladder (which code wins) differs.
#
# CLASSES:
# --------
# - ValueKind(Enum): NULL, BOOL, NUMBER, TEXT
# - ValueProfile (dataclass, frozen)
#     kind, text, number, integral, leading_zeros, byte_length,
#     is_date, is_datetime, is_python_float
# - TypeDetector
#     profile(value) -> ValueProfile       (classmethod)
#     is_numeric(text) -> bool              (classmethod)
#     starts_with_zeros(text) -> bool       (classmethod)
#     can_be_treated_as_int(value) -> bool  (classmethod)
#
# ==============================================

import re
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional, Union

from fluidbean.errors import ValidationError


class ValueKind(Enum):
    NULL = "null"
    BOOL = "bool"
    NUMBER = "number"
    TEXT = "text"


@dataclass(frozen=True)
class ValueProfile:
    """Everything a dialect needs to know to pick a column type."""
    kind: ValueKind
    text: str
    number: Optional[Union[int, float]] = None
    integral: bool = False
    leading_zeros: bool = False
    byte_length: int = 0
    is_date: bool = False
    is_datetime: bool = False
    is_python_float: bool = False

    def integral_between(self, low: int, high: int) -> bool:
        """True for whole numbers in [low, high]."""
        return (
            self.kind == ValueKind.NUMBER
            and self.integral
            and self.number is not None
            and low <= self.number <= high
        )

    def numeric_between(self, low: float, high: float) -> bool:
        return (
            self.kind == ValueKind.NUMBER
            and self.number is not None
            and low <= self.number <= high
        )


class TypeDetector:
    NUMERIC_PATTERN = re.compile(r"^\s*[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?$")
    INTEGER_PATTERN = re.compile(r"^-?(0|[1-9]\d*)$")
    DATE_PATTERN = re.compile(r"^\d{4}-\d\d-\d\d$")
    DATETIME_PATTERN = re.compile(r"^\d{4}-\d\d-\d\d\s\d\d:\d\d:\d\d(\.\d{1,6})?$")

    DATETIME_FORMATS = [
        "%Y-%m-%d %H:%M:%S",
        "%Y-%m-%d %H:%M:%S.%f",
    ]

    @classmethod
    def profile(cls, value: Any) -> ValueProfile:
        """
        Describe a scalar value.

        Args:
            value: None, bool, int, float, Decimal, str, date or datetime

        Returns:
            ValueProfile

        Raises:
            ValidationError: for lists, dicts and other non-scalars
        """
        if value is None:
            return ValueProfile(kind=ValueKind.NULL, text="")

        if isinstance(value, bool):
            text = "1" if value else "0"
            return ValueProfile(
                kind=ValueKind.BOOL, text=text, number=int(value),
                integral=True, byte_length=1,
            )

        if isinstance(value, datetime):
            value = value.strftime("%Y-%m-%d %H:%M:%S")
        elif isinstance(value, date):
            value = value.strftime("%Y-%m-%d")

        if isinstance(value, (int, float, Decimal)):
            text = cls._number_text(value)
        elif isinstance(value, str):
            text = value
        else:
            raise ValidationError(f"Cannot store a value of type {type(value).__name__}")

        leading_zeros = cls.starts_with_zeros(text)
        byte_length = len(text.encode("utf-8"))
        is_date = bool(cls.DATE_PATTERN.match(text)) and cls._parse_date(text)
        is_datetime = bool(cls.DATETIME_PATTERN.match(text)) and cls._parse_datetime(text)

        if cls.is_numeric(text):
            number = cls._to_number(text)
            integral = number is not None and float(number).is_integer()
            return ValueProfile(
                kind=ValueKind.NUMBER,
                text=text,
                number=number,
                integral=integral,
                leading_zeros=leading_zeros,
                byte_length=byte_length,
                is_python_float=isinstance(value, float),
            )

        return ValueProfile(
            kind=ValueKind.TEXT,
            text=text,
            leading_zeros=leading_zeros,
            byte_length=byte_length,
            is_date=is_date,
            is_datetime=is_datetime,
        )

    @classmethod
    def is_numeric(cls, text: str) -> bool:
        return bool(cls.NUMERIC_PATTERN.match(text))

    @classmethod
    def starts_with_zeros(cls, text: str) -> bool:
        """
        "007", "00", "0123" -> True; "0", "0.5", "10" -> False.

        Such values must keep their literal formatting, so they are
        never classified as numbers.
        """
        return len(text) > 1 and text[0] == "0" and not text.startswith("0.")

    @classmethod
    def can_be_treated_as_int(cls, value: Any) -> bool:
        """True if value round-trips through int() without changing its text."""
        if isinstance(value, bool):
            return True
        if isinstance(value, int):
            return True
        if isinstance(value, str):
            return bool(cls.INTEGER_PATTERN.match(value))
        return False

    @classmethod
    def _number_text(cls, value: Union[int, float, Decimal]) -> str:
        if isinstance(value, float) and value.is_integer() and abs(value) < 1e15:
            return str(int(value))
        return str(value)

    @classmethod
    def _to_number(cls, text: str) -> Optional[Union[int, float]]:
        stripped = text.strip()
        if cls.INTEGER_PATTERN.match(stripped.lstrip("+")):
            return int(stripped)
        try:
            return float(stripped)
        except ValueError:
            return None

    @classmethod
    def _parse_date(cls, value: str) -> bool:
        try:
            datetime.strptime(value, "%Y-%m-%d")
            return True
        except ValueError:
            return False

    @classmethod
    def _parse_datetime(cls, value: str) -> bool:
        for fmt in cls.DATETIME_FORMATS:
            try:
                datetime.strptime(value, fmt)
                return True
            except ValueError:
                continue
        return False
