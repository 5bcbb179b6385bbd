# ==============================================
# PostgreSQL Dialect
# ==============================================
#
# Type ladder (narrow → wide):
#   0  integer            null, bool, whole numbers within ±2^31
#   1  double precision   other numbers (and every Python float)
#   3  text               everything else
#  80+ date, timestamp without time zone, point, lseg, circle,
#      money, polygon (only with specials)
#
# ==============================================

import hashlib
import re
from typing import Any, Dict, List, Sequence

from fluidbean.errors import SQLError, SQLState
from fluidbean.log import get_logger
from fluidbean.normalization.type_detector import TypeDetector, ValueKind
from fluidbean.storage.sql_helper import SQLHelper, TypeTable

logger = get_logger(__name__)

C_DATATYPE_INTEGER = 0
C_DATATYPE_DOUBLE = 1
C_DATATYPE_TEXT = 3
C_DATATYPE_SPECIAL_DATE = 80
C_DATATYPE_SPECIAL_DATETIME = 81
C_DATATYPE_SPECIAL_POINT = 90
C_DATATYPE_SPECIAL_LSEG = 91
C_DATATYPE_SPECIAL_CIRCLE = 92
C_DATATYPE_SPECIAL_MONEY = 93
C_DATATYPE_SPECIAL_POLYGON = 94

SQL_TYPES = {
    C_DATATYPE_INTEGER: "integer",
    C_DATATYPE_DOUBLE: "double precision",
    C_DATATYPE_TEXT: "text",
    C_DATATYPE_SPECIAL_DATE: "date",
    C_DATATYPE_SPECIAL_DATETIME: "timestamp without time zone",
    C_DATATYPE_SPECIAL_POINT: "point",
    C_DATATYPE_SPECIAL_LSEG: "lseg",
    C_DATATYPE_SPECIAL_CIRCLE: "circle",
    C_DATATYPE_SPECIAL_MONEY: "money",
    C_DATATYPE_SPECIAL_POLYGON: "polygon",
}

SPECIAL_PATTERNS = [
    (re.compile(r"^\([\d.]+,[\d.]+\)$"), C_DATATYPE_SPECIAL_POINT),
    (re.compile(r"^\[\([\d.]+,[\d.]+\),\([\d.]+,[\d.]+\)\]$"), C_DATATYPE_SPECIAL_LSEG),
    (re.compile(r"^<\([\d.]+,[\d.]+\),[\d.]+>$"), C_DATATYPE_SPECIAL_CIRCLE),
    (re.compile(r"^\((\([\d.]+,[\d.]+\),?)+\)$"), C_DATATYPE_SPECIAL_POLYGON),
    (re.compile(r"^-?[$€¥£][\d,.]+$"), C_DATATYPE_SPECIAL_MONEY),
]

INT_LIMIT = 2147483648


class PostgresDialect:
    name = "pgsql"
    quote = '"'
    type_table = TypeTable(SQL_TYPES)
    id_code = C_DATATYPE_INTEGER
    insert_default = "DEFAULT"
    insert_suffix = "RETURNING id"
    casts = {
        "id": C_DATATYPE_INTEGER,
        "bool": C_DATATYPE_INTEGER,
        "int": C_DATATYPE_INTEGER,
        "double": C_DATATYPE_DOUBLE,
        "text": C_DATATYPE_TEXT,
        "date": C_DATATYPE_SPECIAL_DATE,
        "datetime": C_DATATYPE_SPECIAL_DATETIME,
        "money": C_DATATYPE_SPECIAL_MONEY,
    }

    def __init__(self, adapter: Any):
        self.adapter = adapter
        self.sql = SQLHelper(self.quote)

    def scan_type(self, value: Any, allow_special: bool = False) -> int:
        profile = TypeDetector.profile(value)
        if profile.kind in (ValueKind.NULL, ValueKind.BOOL):
            return C_DATATYPE_INTEGER

        if allow_special and profile.text:
            if profile.is_date:
                return C_DATATYPE_SPECIAL_DATE
            if profile.is_datetime:
                return C_DATATYPE_SPECIAL_DATETIME
            for pattern, code in SPECIAL_PATTERNS:
                if pattern.match(profile.text):
                    return code

        if profile.is_python_float:
            return C_DATATYPE_DOUBLE
        if profile.leading_zeros:
            return C_DATATYPE_TEXT
        if (
            profile.kind == ValueKind.NUMBER
            and TypeDetector.can_be_treated_as_int(profile.text)
            and profile.integral_between(-INT_LIMIT + 1, INT_LIMIT - 1)
        ):
            return C_DATATYPE_INTEGER
        if profile.kind == ValueKind.NUMBER:
            return C_DATATYPE_DOUBLE
        return C_DATATYPE_TEXT

    def classify(self, error: BaseException) -> SQLState:
        sqlstate = getattr(error, "sqlstate", None) or ""
        if sqlstate == "42P01":
            return SQLState.NO_SUCH_TABLE
        if sqlstate == "42703":
            return SQLState.NO_SUCH_COLUMN
        if sqlstate.startswith("23"):
            return SQLState.INTEGRITY_VIOLATION
        return SQLState.OTHER

    # ------------------------------------------------------------
    # Schema
    # ------------------------------------------------------------

    def create_table(self, type_name: str) -> None:
        table = self.sql.esc(type_name)
        self.adapter.exec(f"CREATE TABLE {table} (id SERIAL PRIMARY KEY)")

    def get_tables(self) -> List[str]:
        return self.adapter.get_col(
            "SELECT table_name FROM information_schema.tables "
            "WHERE table_schema = ANY( current_schemas( FALSE ) )"
        )

    def get_columns(self, type_name: str) -> Dict[str, str]:
        rows = self.adapter.get(
            "SELECT column_name, data_type FROM information_schema.columns "
            "WHERE table_name = ? AND table_schema = ANY( current_schemas( FALSE ) )",
            [self.sql.esc(type_name, dont_quote=True)],
        )
        return {row["column_name"]: row["data_type"] for row in rows}

    def add_column(self, type_name: str, column: str, code: int) -> None:
        table = self.sql.esc(type_name)
        self.adapter.exec(f"ALTER TABLE {table} ADD {self.sql.esc(column)} {self.type_table.sql(code)}")

    def widen_column(self, type_name: str, column: str, code: int) -> None:
        table = self.sql.esc(type_name)
        col = self.sql.esc(column)
        sql_type = self.type_table.sql(code)
        self.adapter.exec(f"ALTER TABLE {table} ALTER COLUMN {col} TYPE {sql_type} USING {col}::{sql_type}")

    def add_unique_index(self, type_name: str, columns: Sequence[str]) -> bool:
        table = self.sql.esc(type_name)
        table_raw = self.sql.esc(type_name, dont_quote=True)
        name = "uq_" + hashlib.sha1((table_raw + ",".join(columns)).encode("utf-8")).hexdigest()
        try:
            if self.adapter.get_cell("SELECT 1 FROM pg_constraint WHERE conname = ?", [name]):
                return False
            column_sql = ",".join(self.sql.esc(column) for column in columns)
            self.adapter.exec(f"ALTER TABLE {table} ADD CONSTRAINT {name} UNIQUE ({column_sql})")
        except SQLError as e:
            logger.debug("constraint_failed", table=type_name, index=name, error=str(e))
            return False
        return True

    def add_index(self, type_name: str, name: str, column: str) -> bool:
        table = self.sql.esc(type_name)
        name = self.sql.esc(name, dont_quote=True).lower()
        try:
            if self.adapter.get_cell("SELECT 1 FROM pg_class WHERE relname = ? AND relkind = 'i'", [name]):
                return False
            self.adapter.exec(f"CREATE INDEX {name} ON {table} ({self.sql.esc(column)})")
        except SQLError as e:
            logger.debug("constraint_failed", table=type_name, index=name, error=str(e))
            return False
        return True

    def add_fk(
        self,
        type_name: str,
        target_type: str,
        column: str,
        target_column: str = "id",
        is_dependent: bool = False,
    ) -> bool:
        table = self.sql.esc(type_name)
        rule = "CASCADE" if is_dependent else "SET NULL"
        existing = self.adapter.get_row(
            """
            SELECT tc.constraint_name AS constraint_name, rc.delete_rule AS delete_rule
            FROM information_schema.table_constraints AS tc
            JOIN information_schema.key_column_usage AS kcu
              ON tc.constraint_name = kcu.constraint_name
             AND tc.table_schema = kcu.table_schema
            JOIN information_schema.constraint_column_usage AS ccu
              ON ccu.constraint_name = tc.constraint_name
             AND ccu.table_schema = tc.table_schema
            JOIN information_schema.referential_constraints AS rc
              ON rc.constraint_name = tc.constraint_name
             AND rc.constraint_schema = tc.table_schema
            WHERE tc.constraint_type = 'FOREIGN KEY'
              AND tc.table_catalog = current_database()
              AND tc.table_name = ?
              AND ccu.table_name = ?
              AND kcu.column_name = ?
            """,
            [
                self.sql.esc(type_name, dont_quote=True),
                self.sql.esc(target_type, dont_quote=True),
                self.sql.esc(column, dont_quote=True),
            ],
        )
        if existing:
            if str(existing["delete_rule"]).upper() == rule:
                return False
            self.adapter.exec(f'ALTER TABLE {table} DROP CONSTRAINT "{existing["constraint_name"]}"')

        self.adapter.exec(
            f"ALTER TABLE {table} ADD FOREIGN KEY ( {self.sql.esc(column)} ) "
            f"REFERENCES {self.sql.esc(target_type)} ({self.sql.esc(target_column)}) "
            f"ON DELETE {rule} ON UPDATE {rule} DEFERRABLE"
        )
        return True

    def wipe(self, type_name: str) -> None:
        self.adapter.exec(f"TRUNCATE {self.sql.esc(type_name)} CASCADE")

    def wipe_all(self) -> None:
        self.adapter.exec("SET CONSTRAINTS ALL DEFERRED")
        for name in self.get_tables():
            self.adapter.exec(f"DROP TABLE IF EXISTS {self.sql.esc(name)} CASCADE")
        self.adapter.exec("SET CONSTRAINTS ALL IMMEDIATE")
