# ==============================================
# WRITERS
# ==============================================
#
# SQL generation. One QueryWriter per toolbox, composed with the
# Dialect of the connected database.
#
# Modules:
# --------
# - base.py      → Writer / Dialect protocols, QueryWriter
# - mysql.py     → MySQLDialect
# - sqlite.py    → SQLiteDialect
# - postgres.py  → PostgresDialect
# - cubrid.py    → CubridDialect
#
# ==============================================

from typing import Any, Dict, Optional

from fluidbean.errors import ValidationError

from .base import Dialect, QueryWriter, Writer
from .cubrid import CubridDialect
from .mysql import MySQLDialect
from .postgres import PostgresDialect
from .sqlite import SQLiteDialect

DIALECTS = {
    "mysql": MySQLDialect,
    "sqlite": SQLiteDialect,
    "pgsql": PostgresDialect,
    "cubrid": CubridDialect,
}


def create_dialect(name: str, adapter: Any) -> Dialect:
    try:
        return DIALECTS[name](adapter)
    except KeyError:
        raise ValidationError(f"Unsupported database dialect: {name!r}") from None


def create_writer(
    adapter: Any,
    cache: Any = None,
    link_renames: Optional[Dict[str, str]] = None,
) -> QueryWriter:
    """QueryWriter for the dialect of the adapter's driver."""
    return QueryWriter(adapter, create_dialect(adapter.dialect, adapter), cache, link_renames)


__all__ = [
    "CubridDialect",
    "DIALECTS",
    "Dialect",
    "MySQLDialect",
    "PostgresDialect",
    "QueryWriter",
    "SQLiteDialect",
    "Writer",
    "create_dialect",
    "create_writer",
]
