# ==============================================
# STORAGE
# ==============================================
#
# Everything between the object database and the database driver.
#
# Modules:
# --------
# - drivers.py      → DSN parsing, DB-API driver wrappers
# - adapter.py      → Adapter (execute, shape results, transactions)
# - sql_helper.py   → identifier escaping, WHERE building, type tables
# - query_cache.py  → QueryCache (read cache flushed on writes)
# - migrator.py     → Migrator (fluid schema evolution)
# - writers/        → Writer protocol, QueryWriter, per-database dialects
#
# ==============================================

from .adapter import Adapter
from .drivers import DSN, Driver, create_driver, parse_dsn
from .migrator import Migrator
from .query_cache import QueryCache
from .sql_helper import SQLHelper, TypeTable
from .writers import QueryWriter, Writer, create_writer

__all__ = [
    "Adapter",
    "DSN",
    "Driver",
    "Migrator",
    "QueryCache",
    "QueryWriter",
    "SQLHelper",
    "TypeTable",
    "Writer",
    "create_driver",
    "create_writer",
    "parse_dsn",
]
