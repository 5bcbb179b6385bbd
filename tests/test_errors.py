# ==============================================
# Tests for Errors
# ==============================================
#
# class TestSQLError  → normalized state, message
# class TestOutcome   → Ok / Err handling used by the orchestrator
# ==============================================

import pytest

from fluidbean.errors import FluidBeanError, Outcome, SQLError, SQLState, ValidationError


class TestSQLError:
    def test_state_defaults_to_other(self):
        error = SQLError("boom")
        assert error.state == SQLState.OTHER
        assert str(error) == "[other] boom"

    def test_state_in(self):
        error = SQLError("gone", state=SQLState.NO_SUCH_TABLE, sql="SELECT 1")
        assert error.state_in(SQLState.NO_SUCH_TABLE, SQLState.NO_SUCH_COLUMN)
        assert not error.state_in(SQLState.INTEGRITY_VIOLATION)
        assert error.sql == "SELECT 1"

    def test_hierarchy(self):
        assert issubclass(SQLError, FluidBeanError)
        assert issubclass(ValidationError, FluidBeanError)
        assert issubclass(ValidationError, ValueError)


class TestOutcome:
    def test_ok(self):
        outcome = Outcome.ok([1])
        assert outcome.is_ok
        assert outcome.state is None
        assert outcome.unwrap() == [1]

    def test_missing_schema(self):
        outcome = Outcome.err(SQLError("x", state=SQLState.NO_SUCH_COLUMN))
        assert not outcome.is_ok
        assert outcome.missing_schema
        assert outcome.unwrap_or([]) == []

    def test_missing_schema_not_tolerated_when_frozen(self):
        outcome = Outcome.err(SQLError("x", state=SQLState.NO_SUCH_TABLE))
        with pytest.raises(SQLError):
            outcome.unwrap_or([], tolerate=False)

    def test_other_errors_always_raise(self):
        outcome = Outcome.err(SQLError("x", state=SQLState.INTEGRITY_VIOLATION))
        assert not outcome.missing_schema
        with pytest.raises(SQLError):
            outcome.unwrap_or(None)
        with pytest.raises(SQLError):
            outcome.unwrap()
