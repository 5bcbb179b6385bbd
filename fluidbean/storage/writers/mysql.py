# ==============================================
# MySQL Dialect
# ==============================================
#
# Type ladder (narrow → wide):
#   0  TINYINT(1) UNSIGNED   null, bool, '0', '1'
#   1  TINYINT(3) UNSIGNED   whole numbers 0..255
#   2  INT(11) UNSIGNED      whole numbers 0..4294967295
#   3  DOUBLE                any other number
#   4  VARCHAR(255)          text up to 255 bytes
#   5  TEXT                  text up to 65535 bytes
#   6  LONGTEXT              anything longer, and every leading-zero value
#  80+ DATE, DATETIME, POINT, LINESTRING, POLYGON (only with specials)
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

C_DATATYPE_BOOL = 0
C_DATATYPE_UINT8 = 1
C_DATATYPE_UINT32 = 2
C_DATATYPE_DOUBLE = 3
C_DATATYPE_TEXT8 = 4
C_DATATYPE_TEXT16 = 5
C_DATATYPE_TEXT32 = 6
C_DATATYPE_SPECIAL_DATE = 80
C_DATATYPE_SPECIAL_DATETIME = 81
C_DATATYPE_SPECIAL_POINT = 90
C_DATATYPE_SPECIAL_LINESTRING = 91
C_DATATYPE_SPECIAL_POLYGON = 92

SQL_TYPES = {
    C_DATATYPE_BOOL: "TINYINT(1) UNSIGNED",
    C_DATATYPE_UINT8: "TINYINT(3) UNSIGNED",
    C_DATATYPE_UINT32: "INT(11) UNSIGNED",
    C_DATATYPE_DOUBLE: "DOUBLE",
    C_DATATYPE_TEXT8: "VARCHAR(255)",
    C_DATATYPE_TEXT16: "TEXT",
    C_DATATYPE_TEXT32: "LONGTEXT",
    C_DATATYPE_SPECIAL_DATE: "DATE",
    C_DATATYPE_SPECIAL_DATETIME: "DATETIME",
    C_DATATYPE_SPECIAL_POINT: "POINT",
    C_DATATYPE_SPECIAL_LINESTRING: "LINESTRING",
    C_DATATYPE_SPECIAL_POLYGON: "POLYGON",
}

# MySQL 8 reports integer columns without display width
ALIASES = {
    "tinyint unsigned": C_DATATYPE_UINT8,
    "int unsigned": C_DATATYPE_UINT32,
    "int(10) unsigned": C_DATATYPE_UINT32,
}

GEOMETRY_PATTERNS = [
    (re.compile(r"^POINT\(", re.IGNORECASE), C_DATATYPE_SPECIAL_POINT),
    (re.compile(r"^LINESTRING\(", re.IGNORECASE), C_DATATYPE_SPECIAL_LINESTRING),
    (re.compile(r"^POLYGON\(", re.IGNORECASE), C_DATATYPE_SPECIAL_POLYGON),
]

NO_SUCH_TABLE_CODES = {1146}
NO_SUCH_COLUMN_CODES = {1054}
INTEGRITY_CODES = {1062, 1048, 1216, 1217, 1451, 1452}


class MySQLDialect:
    name = "mysql"
    quote = "`"
    type_table = TypeTable(SQL_TYPES, ALIASES)
    id_code = C_DATATYPE_UINT32
    insert_default = "NULL"
    insert_suffix = ""
    casts = {
        "id": C_DATATYPE_UINT32,
        "bool": C_DATATYPE_BOOL,
        "int": C_DATATYPE_UINT32,
        "double": C_DATATYPE_DOUBLE,
        "text": C_DATATYPE_TEXT16,
        "date": C_DATATYPE_SPECIAL_DATE,
        "datetime": C_DATATYPE_SPECIAL_DATETIME,
    }

    def __init__(self, adapter: Any):
        self.adapter = adapter
        self.sql = SQLHelper(self.quote)

    def scan_type(self, value: Any, allow_special: bool = False) -> int:
        profile = TypeDetector.profile(value)
        if profile.kind in (ValueKind.NULL, ValueKind.BOOL):
            return C_DATATYPE_BOOL

        if allow_special:
            if profile.is_date:
                return C_DATATYPE_SPECIAL_DATE
            if profile.is_datetime:
                return C_DATATYPE_SPECIAL_DATETIME
            for pattern, code in GEOMETRY_PATTERNS:
                if pattern.match(profile.text):
                    return code

        if profile.leading_zeros:
            return C_DATATYPE_TEXT32
        if profile.text in ("0", "1"):
            return C_DATATYPE_BOOL
        if profile.integral_between(0, 255):
            return C_DATATYPE_UINT8
        if profile.integral_between(0, 4294967295):
            return C_DATATYPE_UINT32
        if profile.kind == ValueKind.NUMBER:
            return C_DATATYPE_DOUBLE

        if profile.byte_length <= 255:
            return C_DATATYPE_TEXT8
        if profile.byte_length <= 65535:
            return C_DATATYPE_TEXT16
        return C_DATATYPE_TEXT32

    def classify(self, error: BaseException) -> SQLState:
        code = error.args[0] if getattr(error, "args", None) else None
        if code in NO_SUCH_TABLE_CODES:
            return SQLState.NO_SUCH_TABLE
        if code in NO_SUCH_COLUMN_CODES:
            return SQLState.NO_SUCH_COLUMN
        if code in INTEGRITY_CODES:
            return SQLState.INTEGRITY_VIOLATION
        return SQLState.OTHER

    # ------------------------------------------------------------
    # Schema
    # ------------------------------------------------------------

    def create_table(self, type_name: str) -> None:
        table = self.sql.esc(type_name)
        self.adapter.exec(
            f"CREATE TABLE {table} (id INT( 11 ) UNSIGNED NOT NULL AUTO_INCREMENT, PRIMARY KEY ( id )) "
            "ENGINE = InnoDB DEFAULT CHARSET=utf8mb4 COLLATE=utf8mb4_unicode_ci"
        )

    def get_tables(self) -> List[str]:
        return [str(name) for name in self.adapter.get_col("SHOW TABLES")]

    def get_columns(self, type_name: str) -> Dict[str, str]:
        table = self.sql.esc(type_name)
        return {row["Field"]: row["Type"] for row in self.adapter.get(f"DESCRIBE {table}")}

    def add_column(self, type_name: str, column: str, code: int) -> None:
        table = self.sql.esc(type_name)
        self.adapter.exec(f"ALTER TABLE {table} ADD {self.sql.esc(column)} {self.type_table.sql(code)}")

    def widen_column(self, type_name: str, column: str, code: int) -> None:
        table = self.sql.esc(type_name)
        col = self.sql.esc(column)
        self.adapter.exec(f"ALTER TABLE {table} CHANGE {col} {col} {self.type_table.sql(code)}")

    def _index_names(self, type_name: str) -> List[str]:
        table = self.sql.esc(type_name)
        return [row["Key_name"] for row in self.adapter.get(f"SHOW INDEX FROM {table}")]

    def add_unique_index(self, type_name: str, columns: Sequence[str]) -> bool:
        table = self.sql.esc(type_name)
        name = "UQ_" + hashlib.sha1(",".join(columns).encode("utf-8")).hexdigest()
        try:
            if name in self._index_names(type_name):
                return False
            column_sql = ",".join(self.sql.esc(column) for column in columns)
            self.adapter.exec(f"ALTER TABLE {table} ADD UNIQUE INDEX {name} ({column_sql})")
        except SQLError as e:
            logger.debug("constraint_failed", table=type_name, index=name, error=str(e))
            return False
        return True

    def add_index(self, type_name: str, name: str, column: str) -> bool:
        table = self.sql.esc(type_name)
        name = self.sql.esc(name, dont_quote=True)
        try:
            if name in self._index_names(type_name):
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
        table_raw = self.sql.esc(type_name, dont_quote=True)
        column_raw = self.sql.esc(column, dont_quote=True)
        target_raw = self.sql.esc(target_type, dont_quote=True)
        target_column_raw = self.sql.esc(target_column, dont_quote=True)
        rule = "CASCADE" if is_dependent else "SET NULL"

        existing = self.adapter.get_row(
            """
            SELECT information_schema.KEY_COLUMN_USAGE.CONSTRAINT_NAME AS constraint_name,
                   information_schema.REFERENTIAL_CONSTRAINTS.DELETE_RULE AS delete_rule
            FROM information_schema.KEY_COLUMN_USAGE
            INNER JOIN information_schema.REFERENTIAL_CONSTRAINTS
              ON information_schema.REFERENTIAL_CONSTRAINTS.CONSTRAINT_NAME
                 = information_schema.KEY_COLUMN_USAGE.CONSTRAINT_NAME
             AND information_schema.REFERENTIAL_CONSTRAINTS.CONSTRAINT_SCHEMA
                 = information_schema.KEY_COLUMN_USAGE.CONSTRAINT_SCHEMA
            WHERE information_schema.KEY_COLUMN_USAGE.TABLE_SCHEMA = DATABASE()
              AND information_schema.KEY_COLUMN_USAGE.TABLE_NAME = ?
              AND information_schema.KEY_COLUMN_USAGE.COLUMN_NAME = ?
              AND information_schema.KEY_COLUMN_USAGE.REFERENCED_TABLE_NAME = ?
            """,
            [table_raw, column_raw, target_raw],
        )
        if existing:
            if str(existing["delete_rule"]).upper() == rule:
                return False
            self.adapter.exec(f"ALTER TABLE {table} DROP FOREIGN KEY `{existing['constraint_name']}`")

        fk_name = f"fk_{table_raw}_{column_raw}"
        self.adapter.exec(
            f"ALTER TABLE {table} ADD CONSTRAINT c_{fk_name} FOREIGN KEY {fk_name} ( `{column_raw}` ) "
            f"REFERENCES `{target_raw}` ( `{target_column_raw}` ) ON DELETE {rule} ON UPDATE {rule}"
        )
        return True

    def wipe(self, type_name: str) -> None:
        table = self.sql.esc(type_name)
        try:
            self.adapter.exec(f"TRUNCATE {table}")
        except SQLError as e:
            if e.state != SQLState.OTHER:
                raise
            # referenced tables cannot be truncated
            self.adapter.exec(f"DELETE FROM {table}")

    def wipe_all(self) -> None:
        self.adapter.exec("SET FOREIGN_KEY_CHECKS = 0")
        try:
            for name in self.get_tables():
                self.adapter.exec(f"DROP TABLE IF EXISTS `{self.sql.esc(name, dont_quote=True)}`")
        finally:
            self.adapter.exec("SET FOREIGN_KEY_CHECKS = 1")
