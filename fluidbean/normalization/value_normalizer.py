from datetime import date, datetime
from decimal import Decimal
from typing import Any

from fluidbean.errors import ValidationError

SCALAR_TYPES = (str, int, float, Decimal)


class ValueNormalizer:
    """
    Coerces values into the form beans hold them in.

    Beans keep scalars as text, the same text whether the value was
    assigned by the caller or read back from the database, so that a
    stored bean and its reloaded copy compare equal.
    """

    @staticmethod
    def normalize(value: Any) -> Any:
        """
        Normalize a scalar before it is written into a bean.

        - True/False          -> "1"/"0"
        - datetime            -> "YYYY-MM-DD HH:MM:SS"
        - date                -> "YYYY-MM-DD"
        - int/Decimal         -> str(value)
        - float               -> "3" for 3.0, str(value) otherwise
        - None, str           -> unchanged

        Raises:
            ValidationError: for dicts, sets, tuples and arbitrary objects
        """
        if value is None:
            return None
        if isinstance(value, bool):
            return "1" if value else "0"
        if isinstance(value, datetime):
            return value.strftime("%Y-%m-%d %H:%M:%S")
        if isinstance(value, date):
            return value.strftime("%Y-%m-%d")
        if isinstance(value, str):
            return value
        if isinstance(value, float):
            if value.is_integer() and abs(value) < 1e15:
                return str(int(value))
            return str(value)
        if isinstance(value, (int, Decimal)):
            return str(value)
        raise ValidationError(
            f"Property values must be scalars, got {type(value).__name__}"
        )

    @classmethod
    def from_database(cls, value: Any) -> Any:
        """
        Normalize a column value read from the database.

        Values the driver hands back in a type beans never hold
        (bytes, geometry objects...) are passed through unchanged.
        """
        if cls.is_scalar(value) or isinstance(value, (date, datetime)):
            return cls.normalize(value)
        return value

    @staticmethod
    def is_scalar(value: Any) -> bool:
        return value is None or isinstance(value, (bool,) + SCALAR_TYPES)
