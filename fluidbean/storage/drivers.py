# ==============================================
# Drivers
# ==============================================
#
# PURPOSE:
#   Thin wrappers over the DB-API driver of each supported database.
#   A Driver owns exactly one connection, opens it lazily on first use,
#   runs it in autocommit mode and exposes explicit transaction control.
#
# WHY THIS MODULE EXISTS:
#   The engine writes every statement with "?" (positional) or ":name"
#   (named) placeholders. pymysql and psycopg want "%s" / "%(name)s";
#   sqlite3 and CUBRIDdb take "?" natively. The Driver hides that, and
#   hides how each driver begins/commits a transaction and reports the
#   last insert id.
#
# CLASSES:
# --------
# - DSN (dataclass)          → parsed "<dialect>://..." connection string
# - Driver                   → generic DB-API wrapper
# - SQLiteDriver             → sqlite3 (stdlib)
# - MySQLDriver              → pymysql
# - PostgresDriver           → psycopg (v3)
# - CubridDriver             → CUBRIDdb (optional)
#
# FUNCTIONS:
# ----------
# - parse_dsn(dsn, user, password) -> DSN
# - create_driver(dsn, user, password) -> Driver
# - translate_placeholders(sql, style) -> str
#
# ==============================================

import sqlite3
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union
from urllib.parse import unquote, urlsplit

from fluidbean.errors import ValidationError
from fluidbean.log import get_logger

logger = get_logger(__name__)

DIALECT_ALIASES = {
    "mysql": "mysql",
    "mariadb": "mysql",
    "sqlite": "sqlite",
    "sqlite3": "sqlite",
    "pgsql": "pgsql",
    "postgres": "pgsql",
    "postgresql": "pgsql",
    "cubrid": "cubrid",
}

DEFAULT_PORTS = {"mysql": 3306, "pgsql": 5432, "cubrid": 33000}

Bindings = Union[Sequence[Any], Dict[str, Any], None]


@dataclass
class DSN:
    """A parsed connection string."""
    dialect: str
    database: str = ""
    host: str = "localhost"
    port: Optional[int] = None
    user: Optional[str] = None
    password: Optional[str] = None
    options: Dict[str, str] = field(default_factory=dict)
    raw: str = ""


def parse_dsn(dsn: str, user: Optional[str] = None, password: Optional[str] = None) -> DSN:
    """
    Parse a connection string.

    Accepted forms:
        sqlite://:memory:           sqlite:///abs/path.db
        sqlite:relative.db          sqlite::memory:
        mysql://user:pw@host:3306/dbname
        pgsql://user:pw@host/dbname
        mysql:host=localhost;dbname=blog;port=3306

    Args:
        dsn: The connection string
        user: Username (overrides one embedded in the DSN)
        password: Password (overrides one embedded in the DSN)

    Returns:
        DSN

    Raises:
        ValidationError: for an unknown dialect or malformed string
    """
    if not isinstance(dsn, str) or ":" not in dsn:
        raise ValidationError(f"Malformed DSN: {dsn!r}")

    scheme, rest = dsn.split(":", 1)
    dialect = DIALECT_ALIASES.get(scheme.lower())
    if dialect is None:
        raise ValidationError(f"Unsupported database dialect: {scheme!r}")

    parsed = DSN(dialect=dialect, raw=dsn)

    if dialect == "sqlite":
        path = rest[2:] if rest.startswith("//") else rest
        parsed.database = path or ":memory:"
    elif rest.startswith("//"):
        parts = urlsplit(dsn)
        parsed.host = parts.hostname or "localhost"
        parsed.port = parts.port
        parsed.database = unquote(parts.path.lstrip("/"))
        parsed.user = unquote(parts.username) if parts.username else None
        parsed.password = unquote(parts.password) if parts.password else None
        if parts.query:
            for pair in parts.query.split("&"):
                if "=" in pair:
                    key, value = pair.split("=", 1)
                    parsed.options[key] = unquote(value)
    else:
        # PDO style: host=...;dbname=...;port=...
        for pair in rest.split(";"):
            if "=" not in pair:
                continue
            key, value = pair.split("=", 1)
            key = key.strip().lower()
            if key == "host":
                parsed.host = value.strip()
            elif key == "dbname":
                parsed.database = value.strip()
            elif key == "port":
                parsed.port = int(value)
            else:
                parsed.options[key] = value.strip()

    if parsed.port is None and dialect in DEFAULT_PORTS:
        parsed.port = DEFAULT_PORTS[dialect]
    if user is not None:
        parsed.user = user
    if password is not None:
        parsed.password = password
    return parsed


def translate_placeholders(sql: str, style: str) -> str:
    """
    Rewrite "?" and ":name" placeholders for "format" style drivers.

    Quoted literals and identifiers are copied verbatim, "::" casts are
    left alone and literal "%" signs are doubled.
    """
    if style != "format":
        return sql
    out: List[str] = []
    i = 0
    length = len(sql)
    while i < length:
        ch = sql[i]
        if ch in ("'", '"', "`"):
            end = i + 1
            while end < length:
                if sql[end] == ch:
                    if end + 1 < length and sql[end + 1] == ch:
                        end += 2
                        continue
                    break
                end += 1
            out.append(sql[i:end + 1].replace("%", "%%"))
            i = end + 1
            continue
        if ch == "-" and sql.startswith("--", i):
            end = sql.find("\n", i)
            end = length if end == -1 else end
            out.append(sql[i:end].replace("%", "%%"))
            i = end
            continue
        if ch == "?":
            out.append("%s")
        elif ch == "%":
            out.append("%%")
        elif (
            ch == ":"
            and i + 1 < length
            and (sql[i + 1].isalpha() or sql[i + 1] == "_")
            and (i == 0 or sql[i - 1] != ":")
        ):
            end = i + 1
            while end < length and (sql[end].isalnum() or sql[end] == "_"):
                end += 1
            out.append(f"%({sql[i + 1:end]})s")
            i = end
            continue
        else:
            out.append(ch)
        i += 1
    return "".join(out)


def normalize_named_bindings(bindings: Dict[str, Any]) -> Dict[str, Any]:
    """":slot0" -> "slot0" (sqlite3 and pyformat want bare names)."""
    return {str(key).lstrip(":"): value for key, value in bindings.items()}


class Driver:
    """
    Generic DB-API connection wrapper.

    Subclasses provide `_connect()` and may override the transaction
    hooks and `last_insert_id()`.
    """

    dialect = "generic"
    paramstyle = "qmark"  # "qmark" or "format"
    error_types: Tuple[type, ...] = (Exception,)

    def __init__(self, dsn: DSN, connection: Any = None):
        self.dsn = dsn
        self._connection = connection
        self._last_cursor = None

    @property
    def connection(self) -> Any:
        if self._connection is None:
            self._connection = self._connect()
            logger.info(
                "connection_opened",
                dialect=self.dialect,
                database=self.dsn.database,
            )
        return self._connection

    @property
    def is_connected(self) -> bool:
        return self._connection is not None

    def _connect(self) -> Any:
        raise NotImplementedError

    def prepare(self, sql: str, bindings: Bindings) -> Tuple[str, Any]:
        """Translate placeholders and binding containers for the driver."""
        if isinstance(bindings, dict):
            params: Any = normalize_named_bindings(bindings)
        else:
            params = tuple(bindings or ())
        if not params:
            # without parameters the driver does no placeholder processing
            return sql, params
        return translate_placeholders(sql, self.paramstyle), params

    def execute(self, sql: str, bindings: Bindings = None) -> Any:
        """Run one statement and return the cursor."""
        statement, params = self.prepare(sql, bindings)
        cursor = self.connection.cursor()
        if params:
            cursor.execute(statement, params)
        else:
            cursor.execute(statement)
        self._last_cursor = cursor
        return cursor

    @staticmethod
    def fetch_rows(cursor: Any) -> List[Dict[str, Any]]:
        """Fetch all rows of a cursor as dicts (column name -> value)."""
        if cursor.description is None:
            return []
        names = [column[0] for column in cursor.description]
        rows = cursor.fetchall()
        return [dict(zip(names, row)) for row in rows]

    def last_insert_id(self, cursor: Any = None) -> Any:
        cursor = cursor or self._last_cursor
        return getattr(cursor, "lastrowid", None)

    def affected_rows(self) -> int:
        if self._last_cursor is None:
            return 0
        return max(self._last_cursor.rowcount, 0)

    def begin(self) -> None:
        self.execute("BEGIN")

    def commit(self) -> None:
        self.execute("COMMIT")

    def rollback(self) -> None:
        self.execute("ROLLBACK")

    def close(self) -> None:
        if self._connection is not None:
            self._connection.close()
            self._connection = None
            logger.info("connection_closed", dialect=self.dialect)


class SQLiteDriver(Driver):
    dialect = "sqlite"
    paramstyle = "qmark"
    error_types = (sqlite3.Error,)

    def _connect(self) -> Any:
        # isolation_level=None: autocommit, transactions via BEGIN/COMMIT
        connection = sqlite3.connect(self.dsn.database, isolation_level=None)
        connection.execute("PRAGMA foreign_keys = ON")
        return connection


class MySQLDriver(Driver):
    dialect = "mysql"
    paramstyle = "format"

    def __init__(self, dsn: DSN, connection: Any = None):
        super().__init__(dsn, connection)
        import pymysql

        self._pymysql = pymysql
        self.error_types = (pymysql.err.Error,)

    def _connect(self) -> Any:
        return self._pymysql.connect(
            host=self.dsn.host,
            port=self.dsn.port or DEFAULT_PORTS["mysql"],
            user=self.dsn.user or "root",
            password=self.dsn.password or "",
            database=self.dsn.database,
            charset=self.dsn.options.get("charset", "utf8mb4"),
            autocommit=True,
        )

    def begin(self) -> None:
        self.connection.begin()

    def commit(self) -> None:
        self.connection.commit()

    def rollback(self) -> None:
        self.connection.rollback()


class PostgresDriver(Driver):
    dialect = "pgsql"
    paramstyle = "format"

    def __init__(self, dsn: DSN, connection: Any = None):
        super().__init__(dsn, connection)
        import psycopg

        self._psycopg = psycopg
        self.error_types = (psycopg.Error,)

    def _connect(self) -> Any:
        kwargs: Dict[str, Any] = {
            "host": self.dsn.host,
            "port": self.dsn.port or DEFAULT_PORTS["pgsql"],
            "dbname": self.dsn.database,
        }
        if self.dsn.user:
            kwargs["user"] = self.dsn.user
        if self.dsn.password:
            kwargs["password"] = self.dsn.password
        return self._psycopg.connect(autocommit=True, **kwargs)


class CubridDriver(Driver):
    dialect = "cubrid"
    paramstyle = "qmark"

    def __init__(self, dsn: DSN, connection: Any = None):
        super().__init__(dsn, connection)
        try:
            import CUBRIDdb
        except ImportError as e:
            raise ValidationError(
                "The cubrid dialect needs the CUBRIDdb driver (pip install fluidbean[cubrid])"
            ) from e
        self._cubrid = CUBRIDdb
        self.error_types = (CUBRIDdb.Error,)

    def _connect(self) -> Any:
        url = f"CUBRID:{self.dsn.host}:{self.dsn.port or DEFAULT_PORTS['cubrid']}:{self.dsn.database}:::"
        connection = self._cubrid.connect(url, self.dsn.user or "public", self.dsn.password or "")
        connection.set_autocommit(True)
        return connection

    def last_insert_id(self, cursor: Any = None) -> Any:
        cursor = self.connection.cursor()
        cursor.execute("SELECT LAST_INSERT_ID()")
        row = cursor.fetchone()
        return row[0] if row else None

    def begin(self) -> None:
        self.connection.set_autocommit(False)

    def commit(self) -> None:
        self.connection.commit()
        self.connection.set_autocommit(True)

    def rollback(self) -> None:
        self.connection.rollback()
        self.connection.set_autocommit(True)


DRIVERS = {
    "sqlite": SQLiteDriver,
    "mysql": MySQLDriver,
    "pgsql": PostgresDriver,
    "cubrid": CubridDriver,
}


def create_driver(
    dsn: Union[str, DSN],
    user: Optional[str] = None,
    password: Optional[str] = None,
    connection: Any = None,
) -> Driver:
    """
    Build (but do not open) the driver for a connection string.

    Args:
        dsn: Connection string or parsed DSN
        user: Optional username
        password: Optional password
        connection: An already open DB-API connection to wrap instead

    Returns:
        Driver
    """
    parsed = dsn if isinstance(dsn, DSN) else parse_dsn(dsn, user, password)
    return DRIVERS[parsed.dialect](parsed, connection)
