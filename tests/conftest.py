# ==============================================
# Pytest Configuration and Fixtures
# ==============================================
#
# This file contains shared fixtures for all tests.
#
# FIXTURES:
# ---------
#
# config()           → fresh Config (no .env involved)
# db(config)         → FluidBean on an in-memory SQLite database (fluid)
# frozen_db(config)  → same, frozen
# sqlite_adapter()   → bare Adapter on in-memory SQLite
# recorder(dialect)  → RecordingAdapter factory for MySQL / PostgreSQL /
#                      CUBRID SQL checks without a server
# clean_env()        → removes FLUIDBEAN_* variables for the test
#
# NOTES:
# ------
# - Every fixture builds its own connection, nothing is shared
# - RecordingAdapter answers reads from a queue of canned results
# ==============================================

import re
from collections import defaultdict
from typing import Any, Dict, List, Optional

import pytest

from fluidbean import FluidBean
from fluidbean.config import Config
from fluidbean.storage.adapter import Adapter
from fluidbean.storage.drivers import create_driver
from fluidbean.storage.writers.sqlite import SQLiteDialect

ENV_KEYS = [
    "FLUIDBEAN_DSN",
    "FLUIDBEAN_USER",
    "FLUIDBEAN_PASSWORD",
    "FLUIDBEAN_FROZEN",
    "FLUIDBEAN_CHILLED",
    "FLUIDBEAN_USE_CACHE",
    "FLUIDBEAN_CACHE_SIZE",
    "FLUIDBEAN_STRING_ONLY_BINDING",
    "FLUIDBEAN_LOG_LEVEL",
    "FLUIDBEAN_LOG_FORMAT",
]


class RecordingAdapter:
    """
    Stands in for Adapter when checking generated SQL.

    Statements are recorded in `.statements` as (sql, bindings).
    Reads pop the first canned result whose pattern matches the SQL
    (see `.answer()`); unmatched reads return nothing.
    """

    def __init__(self, dialect: str):
        self.dialect = dialect
        self.statements: List[tuple] = []
        self._answers: Dict[str, List[Any]] = defaultdict(list)
        self._classifier = None
        self._listeners: Dict[str, list] = defaultdict(list)
        self.insert_id: Any = 1

    def answer(self, pattern: str, result: Any) -> None:
        self._answers[pattern].append(result)

    def _take(self, sql: str, default: Any) -> Any:
        for pattern, results in self._answers.items():
            if results and re.search(pattern, sql):
                return results.pop(0)
        return default

    def on(self, event: str, listener: Any) -> None:
        self._listeners[event].append(listener)

    def set_classifier(self, classifier: Any) -> None:
        self._classifier = classifier

    def exec(self, sql: str, bindings: Any = None, no_event: bool = False) -> int:
        self.statements.append((sql, bindings))
        return 1

    def get(self, sql: str, bindings: Any = None) -> List[Dict[str, Any]]:
        self.statements.append((sql, bindings))
        return self._take(sql, [])

    def get_row(self, sql: str, bindings: Any = None) -> Optional[Dict[str, Any]]:
        rows = self.get(sql, bindings)
        return rows[0] if rows else None

    def get_col(self, sql: str, bindings: Any = None) -> List[Any]:
        return [next(iter(row.values())) for row in self.get(sql, bindings)]

    def get_cell(self, sql: str, bindings: Any = None, no_event: bool = False) -> Any:
        self.statements.append((sql, bindings))
        return self._take(sql, None)

    def get_insert_id(self) -> Any:
        return self.insert_id

    def in_transaction(self) -> bool:
        return False

    @property
    def sql(self) -> List[str]:
        return [statement for statement, _ in self.statements]


@pytest.fixture
def config() -> Config:
    return Config()


@pytest.fixture
def db(config):
    database = FluidBean(dsn="sqlite://:memory:", config=config)
    yield database
    database.close()


@pytest.fixture
def frozen_db(config):
    database = FluidBean(dsn="sqlite://:memory:", frozen=True, config=config)
    yield database
    database.close()


@pytest.fixture
def sqlite_adapter():
    adapter = Adapter(create_driver("sqlite://:memory:"))
    adapter.set_classifier(SQLiteDialect(adapter).classify)
    yield adapter
    adapter.close()


@pytest.fixture
def recorder():
    return RecordingAdapter


@pytest.fixture
def clean_env(monkeypatch):
    for key in ENV_KEYS:
        # set first so teardown also removes values a .env file loads
        monkeypatch.setenv(key, "")
        monkeypatch.delenv(key)
    yield monkeypatch
