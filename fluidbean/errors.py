# ==============================================
# Errors
# ==============================================
#
# PURPOSE:
#   The two failure families of the engine plus the tagged
#   result the query layer hands back to the orchestrator.
#
# CLASSES:
# --------
# - FluidBeanError(Exception)       → common base
# - ValidationError(FluidBeanError) → illegal type/property name, non-scalar
#                                     value, wrong argument shape. Never
#                                     recovered.
# - SQLState(Enum)                  → NO_SUCH_TABLE, NO_SUCH_COLUMN,
#                                     INTEGRITY_VIOLATION, OTHER
# - SQLError(FluidBeanError)        → driver failure with a normalized state
# - Outcome (dataclass)             → Ok(value) / Err(SQLError) produced by
#                                     QueryWriter.attempt()
#
# ==============================================

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Sequence, Union


class FluidBeanError(Exception):
    """Base class for every error raised by fluidbean."""


class ValidationError(FluidBeanError, ValueError):
    """A bean, type name, property name or argument is malformed."""


class SQLState(Enum):
    """Dialect independent classification of a failed statement."""
    NO_SUCH_TABLE = "no_such_table"
    NO_SUCH_COLUMN = "no_such_column"
    INTEGRITY_VIOLATION = "integrity_violation"
    OTHER = "other"


# States that fluid mode is allowed to heal
SCHEMA_STATES = (SQLState.NO_SUCH_TABLE, SQLState.NO_SUCH_COLUMN)


class SQLError(FluidBeanError):
    """
    A statement failed in the driver.

    Attributes:
        state: Normalized SQLState
        sql: The statement that failed (if known)
        bindings: The bindings that were sent along
        driver_code: The raw code/sqlstate reported by the driver
    """

    def __init__(
        self,
        message: str,
        state: SQLState = SQLState.OTHER,
        sql: Optional[str] = None,
        bindings: Union[Sequence[Any], dict, None] = None,
        driver_code: Any = None,
    ):
        super().__init__(message)
        self.state = state
        self.sql = sql
        self.bindings = bindings
        self.driver_code = driver_code

    def state_in(self, *states: SQLState) -> bool:
        return self.state in states

    def __str__(self) -> str:
        base = super().__str__()
        return f"[{self.state.value}] {base}"


@dataclass
class Outcome:
    """
    Tagged result of a query: either a value or an SQLError.

    The orchestrator switches on `state` instead of catching exceptions
    to decide whether the schema needs healing.
    """
    value: Any = None
    error: Optional[SQLError] = None

    @classmethod
    def ok(cls, value: Any) -> "Outcome":
        return cls(value=value)

    @classmethod
    def err(cls, error: SQLError) -> "Outcome":
        return cls(error=error)

    @property
    def is_ok(self) -> bool:
        return self.error is None

    @property
    def state(self) -> Optional[SQLState]:
        return None if self.error is None else self.error.state

    @property
    def missing_schema(self) -> bool:
        """True when the failure is a missing table or column."""
        return self.state in SCHEMA_STATES

    def unwrap(self) -> Any:
        if self.error is not None:
            raise self.error
        return self.value

    def unwrap_or(self, default: Any, tolerate: bool = True) -> Any:
        """
        Return the value, or `default` if the query hit a missing
        table/column and `tolerate` is set. Anything else is raised.
        """
        if self.error is None:
            return self.value
        if tolerate and self.missing_schema:
            return default
        raise self.error
