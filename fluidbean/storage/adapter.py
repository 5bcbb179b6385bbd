# ==============================================
# Adapter
# ==============================================
#
# PURPOSE:
#   The single boundary between the engine and the database driver.
#   Executes SQL, shapes results, infers binding types, wraps driver
#   failures into SQLError and runs (nested) transactions.
#
# CLASS: Adapter
# --------------
#   Stateful — holds one Driver (and through it one lazily opened
#   connection) plus the last executed statement.
#
#   Constructor:
#   ------------
#   - __init__(driver, classifier=None, string_only_binding=False)
#       classifier: callable(exception) -> SQLState, supplied by the
#       dialect so that errors are normalized per database.
#
#   Methods:
#   --------
#   - exec(sql, bindings=None, no_event=False) -> int     (affected rows)
#   - get(sql, bindings=None) -> list[dict]
#   - get_row(sql, bindings=None) -> dict | None
#   - get_col(sql, bindings=None) -> list
#   - get_cell(sql, bindings=None, no_event=False) -> Any
#   - get_assoc(sql, bindings=None) -> dict               (col1 -> col2)
#   - get_assoc_row(sql, bindings=None) -> dict           (col1 -> row)
#   - get_insert_id() / get_affected_rows()
#   - start_transaction() / commit() / rollback()
#   - transaction()                                       (context manager)
#   - close()
#
#   Events:
#   -------
#   - "sql_exec" is signalled with the adapter as subject before each
#     statement unless the caller suppresses it.
#
# ==============================================

from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence, Union

from fluidbean.errors import SQLError, SQLState
from fluidbean.log import get_logger
from fluidbean.observable import Observable
from fluidbean.storage.drivers import Driver

logger = get_logger(__name__)

Bindings = Union[Sequence[Any], Dict[str, Any], None]

# Integers at or above this bound are bound as strings
MAX_INT_BINDING = 2 ** 31


class Adapter(Observable):
    """Executes SQL on one driver connection."""

    def __init__(
        self,
        driver: Driver,
        classifier: Optional[Callable[[BaseException], SQLState]] = None,
        string_only_binding: bool = False,
    ):
        super().__init__()
        self._driver = driver
        self._classifier = classifier
        self.string_only_binding = string_only_binding
        self._sql = ""
        self._insert_id: Any = None
        self._affected_rows = 0
        self._depth = 0

    @property
    def driver(self) -> Driver:
        return self._driver

    @property
    def dialect(self) -> str:
        return self._driver.dialect

    def set_classifier(self, classifier: Callable[[BaseException], SQLState]) -> None:
        self._classifier = classifier

    def get_sql(self) -> str:
        """The last statement announced through `sql_exec`."""
        return self._sql

    # ------------------------------------------------------------
    # Binding
    # ------------------------------------------------------------

    def bind_value(self, value: Any) -> Any:
        """
        Pick the type a value is bound with.

        NULL stays NULL. Booleans and integers are bound as int unless
        they reach 2^31, in which case (and in string-only mode) the
        value is bound as str. Floats keep their type, everything else
        is bound as str.
        """
        if value is None:
            return None
        if self.string_only_binding:
            if isinstance(value, bool):
                return "1" if value else "0"
            return str(value)
        if isinstance(value, bool):
            return int(value)
        if isinstance(value, int):
            if abs(value) < MAX_INT_BINDING:
                return value
            return str(value)
        if isinstance(value, float):
            return value
        return str(value)

    def bind(self, bindings: Bindings) -> Bindings:
        if not bindings:
            return bindings
        if isinstance(bindings, dict):
            return {key: self.bind_value(value) for key, value in bindings.items()}
        return [self.bind_value(value) for value in bindings]

    # ------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------

    def _announce(self, sql: str, no_event: bool) -> None:
        if not no_event:
            self._sql = sql
            self.signal("sql_exec", self)

    def _run(self, sql: str, bindings: Bindings) -> Any:
        bound = self.bind(bindings)
        logger.debug("sql", sql=sql.strip(), bindings=bound)
        try:
            cursor = self._driver.execute(sql, bound)
        except self._driver.error_types as e:
            state = self._classifier(e) if self._classifier else SQLState.OTHER
            raise SQLError(str(e), state=state, sql=sql, bindings=bound,
                           driver_code=_driver_code(e)) from e
        self._insert_id = self._driver.last_insert_id(cursor)
        self._affected_rows = max(getattr(cursor, "rowcount", 0) or 0, 0)
        return cursor

    def exec(self, sql: str, bindings: Bindings = None, no_event: bool = False) -> int:
        """Execute a statement, return the number of affected rows."""
        self._announce(sql, no_event)
        self._run(sql, bindings)
        return self._affected_rows

    def get(self, sql: str, bindings: Bindings = None) -> List[Dict[str, Any]]:
        """All rows as dicts."""
        self._announce(sql, False)
        cursor = self._run(sql, bindings)
        return self._driver.fetch_rows(cursor)

    def get_row(self, sql: str, bindings: Bindings = None) -> Optional[Dict[str, Any]]:
        """First row or None."""
        rows = self.get(sql, bindings)
        return rows[0] if rows else None

    def get_col(self, sql: str, bindings: Bindings = None) -> List[Any]:
        """First column of every row."""
        rows = self.get(sql, bindings)
        return [next(iter(row.values())) for row in rows if row]

    def get_cell(self, sql: str, bindings: Bindings = None, no_event: bool = False) -> Any:
        """First column of the first row, or None."""
        self._announce(sql, no_event)
        cursor = self._run(sql, bindings)
        rows = self._driver.fetch_rows(cursor)
        if not rows or not rows[0]:
            return None
        return next(iter(rows[0].values()))

    def get_assoc(self, sql: str, bindings: Bindings = None) -> Dict[Any, Any]:
        """
        Key/value map built from the result.

        Two columns: first -> second. One column: value -> value.
        More columns: first -> dict of the remaining columns.
        """
        assoc: Dict[Any, Any] = {}
        for row in self.get(sql, bindings):
            if not row:
                continue
            values = list(row.items())
            key = values[0][1]
            if len(values) > 2:
                assoc[key] = dict(values[1:])
            elif len(values) == 2:
                assoc[key] = values[1][1]
            else:
                assoc[key] = key
        return assoc

    def get_assoc_row(self, sql: str, bindings: Bindings = None) -> Dict[Any, Dict[str, Any]]:
        """Rows indexed by their first column."""
        result: Dict[Any, Dict[str, Any]] = {}
        for row in self.get(sql, bindings):
            if row:
                result[next(iter(row.values()))] = row
        return result

    def get_insert_id(self) -> Any:
        return self._insert_id

    def get_affected_rows(self) -> int:
        return self._affected_rows

    # ------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------

    def start_transaction(self) -> None:
        self._wrap(self._driver.begin)

    def commit(self) -> None:
        self._wrap(self._driver.commit)

    def rollback(self) -> None:
        self._wrap(self._driver.rollback)

    @property
    def transaction_depth(self) -> int:
        return self._depth

    def in_transaction(self) -> bool:
        """True inside transaction() or a transaction begun directly on the connection."""
        if self._depth:
            return True
        return self._driver.is_connected and bool(getattr(self._driver.connection, "in_transaction", False))

    @contextmanager
    def transaction(self) -> Iterator["Adapter"]:
        """
        Run a block in a transaction. Nested blocks share the outer
        transaction: only depth 0 begins and commits. Any exception
        rolls back at depth 0 and is re-raised.
        """
        if self._depth == 0:
            self.start_transaction()
        self._depth += 1
        try:
            yield self
        except BaseException:
            self._depth -= 1
            if self._depth == 0:
                logger.warning("transaction_rolled_back")
                self.rollback()
            raise
        else:
            self._depth -= 1
            if self._depth == 0:
                self.commit()

    def _wrap(self, action: Callable[[], None]) -> None:
        try:
            action()
        except self._driver.error_types as e:
            state = self._classifier(e) if self._classifier else SQLState.OTHER
            raise SQLError(str(e), state=state, driver_code=_driver_code(e)) from e

    def close(self) -> None:
        self._driver.close()


def _driver_code(error: BaseException) -> Any:
    code = getattr(error, "sqlstate", None)
    if code is None and getattr(error, "args", None):
        first = error.args[0]
        if isinstance(first, int):
            code = first
    return code
