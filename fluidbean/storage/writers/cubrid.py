# ==============================================
# CUBRID Dialect
# ==============================================
#
# Type ladder (narrow → wide):
#   0  INTEGER   null, bool, whole numbers within ±2147483647
#   1  DOUBLE    other numbers
#   2  STRING    everything else (reported back as VARCHAR(1073741823))
#  80+ DATE, DATETIME (only with specials)
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
C_DATATYPE_STRING = 2
C_DATATYPE_SPECIAL_DATE = 80
C_DATATYPE_SPECIAL_DATETIME = 81

SQL_TYPES = {
    C_DATATYPE_INTEGER: "INTEGER",
    C_DATATYPE_DOUBLE: "DOUBLE",
    C_DATATYPE_STRING: "STRING",
    C_DATATYPE_SPECIAL_DATE: "DATE",
    C_DATATYPE_SPECIAL_DATETIME: "DATETIME",
}

ALIASES = {
    "VARCHAR(1073741823)": C_DATATYPE_STRING,
}

FOREIGN_KEY_PATTERN = re.compile(
    r"CONSTRAINT\s+\[([\w.]+)\]\s+FOREIGN\s+KEY\s+\(\[(\w+)\]\)\s+REFERENCES\s+\[(?:\w+\.)?(\w+)\]"
    r"(?:\s*\(\[(\w+)\]\))?"
    r"(?:\s+ON\s+DELETE\s+(CASCADE|SET\s+NULL|RESTRICT|NO\s+ACTION))?",
    re.IGNORECASE,
)

INT_LIMIT = 2147483647


class CubridDialect:
    name = "cubrid"
    quote = "`"
    type_table = TypeTable(SQL_TYPES, ALIASES)
    id_code = C_DATATYPE_INTEGER
    insert_default = "NULL"
    insert_suffix = ""
    casts = {
        "id": C_DATATYPE_INTEGER,
        "bool": C_DATATYPE_INTEGER,
        "int": C_DATATYPE_INTEGER,
        "double": C_DATATYPE_DOUBLE,
        "text": C_DATATYPE_STRING,
        "date": C_DATATYPE_SPECIAL_DATE,
        "datetime": C_DATATYPE_SPECIAL_DATETIME,
    }

    def __init__(self, adapter: Any):
        self.adapter = adapter
        self.sql = SQLHelper(self.quote)

    def scan_type(self, value: Any, allow_special: bool = False) -> int:
        profile = TypeDetector.profile(value)
        if profile.kind in (ValueKind.NULL, ValueKind.BOOL):
            return C_DATATYPE_INTEGER

        if allow_special:
            if profile.is_date:
                return C_DATATYPE_SPECIAL_DATE
            if profile.is_datetime:
                return C_DATATYPE_SPECIAL_DATETIME

        if not profile.leading_zeros:
            if profile.integral_between(-INT_LIMIT, INT_LIMIT):
                return C_DATATYPE_INTEGER
            if profile.kind == ValueKind.NUMBER:
                return C_DATATYPE_DOUBLE
        return C_DATATYPE_STRING

    def classify(self, error: BaseException) -> SQLState:
        message = str(error).lower()
        if "unknown class" in message or "does not exist" in message:
            return SQLState.NO_SUCH_TABLE
        if ("attribute" in message and "not found" in message) or "unknown column" in message:
            return SQLState.NO_SUCH_COLUMN
        if "unique constraint" in message or "foreign key" in message or "cannot be null" in message:
            return SQLState.INTEGRITY_VIOLATION
        return SQLState.OTHER

    # ------------------------------------------------------------
    # Schema
    # ------------------------------------------------------------

    def create_table(self, type_name: str) -> None:
        table = self.sql.esc(type_name)
        raw = self.sql.esc(type_name, dont_quote=True)
        self.adapter.exec(
            f"CREATE TABLE {table} (`id` integer AUTO_INCREMENT, "
            f"CONSTRAINT `pk_{raw}_id` PRIMARY KEY(`id`))"
        )

    def get_tables(self) -> List[str]:
        return self.adapter.get_col("SELECT class_name FROM db_class WHERE is_system_class = 'NO'")

    def get_columns(self, type_name: str) -> Dict[str, str]:
        table = self.sql.esc(type_name)
        return {row["Field"]: row["Type"] for row in self.adapter.get(f"SHOW COLUMNS FROM {table}")}

    def add_column(self, type_name: str, column: str, code: int) -> None:
        table = self.sql.esc(type_name)
        self.adapter.exec(
            f"ALTER TABLE {table} ADD COLUMN {self.sql.esc(column)} {self.type_table.sql(code)}"
        )

    def widen_column(self, type_name: str, column: str, code: int) -> None:
        table = self.sql.esc(type_name)
        col = self.sql.esc(column)
        self.adapter.exec(f"ALTER TABLE {table} CHANGE {col} {col} {self.type_table.sql(code)}")

    def get_keys(self, type_name: str) -> List[Dict[str, str]]:
        """Foreign keys parsed from SHOW CREATE TABLE."""
        table = self.sql.esc(type_name)
        row = self.adapter.get_row(f"SHOW CREATE TABLE {table}")
        if not row:
            return []
        ddl = str(list(row.values())[-1])
        keys = []
        for name, column, target, target_column, rule in FOREIGN_KEY_PATTERN.findall(ddl):
            keys.append({
                "name": name,
                "from": column,
                "table": target,
                "to": target_column or "id",
                "on_delete": re.sub(r"\s+", " ", rule.upper()) if rule else "RESTRICT",
            })
        return keys

    def add_unique_index(self, type_name: str, columns: Sequence[str]) -> bool:
        table = self.sql.esc(type_name)
        name = "UQ_" + hashlib.sha1(",".join(columns).encode("utf-8")).hexdigest()
        column_sql = ",".join(self.sql.esc(column) for column in columns)
        try:
            self.adapter.exec(f"ALTER TABLE {table} ADD CONSTRAINT UNIQUE `{name}` ({column_sql})")
        except SQLError as e:
            logger.debug("constraint_failed", table=type_name, index=name, error=str(e))
            return False
        return True

    def add_index(self, type_name: str, name: str, column: str) -> bool:
        table = self.sql.esc(type_name)
        name = self.sql.esc(name, dont_quote=True)
        try:
            self.adapter.exec(f"CREATE INDEX `{name}` ON {table} ({self.sql.esc(column)})")
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
        target_raw = self.sql.esc(target_type, dont_quote=True)
        for key in self.get_keys(type_name):
            if key["from"] == column and key["table"] == target_raw:
                if key["on_delete"] == rule:
                    return False
                self.adapter.exec(f"ALTER TABLE {table} DROP FOREIGN KEY `{key['name']}`")
        self.adapter.exec(
            f"ALTER TABLE {table} ADD CONSTRAINT FOREIGN KEY({self.sql.esc(column)}) "
            f"REFERENCES {self.sql.esc(target_type)}({self.sql.esc(target_column)}) ON DELETE {rule}"
        )
        return True

    def wipe(self, type_name: str) -> None:
        self.adapter.exec(f"DELETE FROM {self.sql.esc(type_name)}")

    def wipe_all(self) -> None:
        tables = self.get_tables()
        for name in tables:
            for key in self.get_keys(name):
                self.adapter.exec(f"ALTER TABLE {self.sql.esc(name)} DROP FOREIGN KEY `{key['name']}`")
        for name in tables:
            self.adapter.exec(f"DROP TABLE {self.sql.esc(name)}")
