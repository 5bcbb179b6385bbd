# ==============================================
# SQLite Dialect
# ==============================================
#
# Type ladder (narrow → wide):
#   0  INTEGER   null, bool, whole numbers within ±2^31
#   1  NUMERIC   other numbers within ±2^31, date/datetime strings
#   2  TEXT      everything else (including leading-zero values)
#
# SQLite cannot change a column type or add a foreign key in place,
# so both rebuild the table: copy rows aside, drop, recreate with the
# new definition and indexes, copy rows back.
#
# ==============================================

import sqlite3
from typing import Any, Dict, List, Sequence

from fluidbean.errors import SQLError, SQLState
from fluidbean.log import get_logger
from fluidbean.normalization.type_detector import TypeDetector, ValueKind
from fluidbean.storage.sql_helper import SQLHelper, TypeTable

logger = get_logger(__name__)

C_DATATYPE_INTEGER = 0
C_DATATYPE_NUMERIC = 1
C_DATATYPE_TEXT = 2

SQL_TYPES = {
    C_DATATYPE_INTEGER: "INTEGER",
    C_DATATYPE_NUMERIC: "NUMERIC",
    C_DATATYPE_TEXT: "TEXT",
}

INT_LIMIT = 2147483648


class SQLiteDialect:
    name = "sqlite"
    quote = "`"
    type_table = TypeTable(SQL_TYPES)
    id_code = C_DATATYPE_INTEGER
    insert_default = "NULL"
    insert_suffix = ""
    casts = {
        "id": C_DATATYPE_INTEGER,
        "bool": C_DATATYPE_INTEGER,
        "int": C_DATATYPE_INTEGER,
        "double": C_DATATYPE_NUMERIC,
        "date": C_DATATYPE_NUMERIC,
        "datetime": C_DATATYPE_NUMERIC,
        "text": C_DATATYPE_TEXT,
    }

    def __init__(self, adapter: Any):
        self.adapter = adapter
        self.sql = SQLHelper(self.quote)

    def scan_type(self, value: Any, allow_special: bool = False) -> int:
        profile = TypeDetector.profile(value)
        if profile.kind in (ValueKind.NULL, ValueKind.BOOL):
            return C_DATATYPE_INTEGER
        if profile.leading_zeros:
            return C_DATATYPE_TEXT
        if profile.integral_between(-INT_LIMIT + 1, INT_LIMIT - 1):
            return C_DATATYPE_INTEGER
        if profile.numeric_between(-INT_LIMIT + 1, INT_LIMIT - 1) or profile.is_date or profile.is_datetime:
            return C_DATATYPE_NUMERIC
        return C_DATATYPE_TEXT

    def classify(self, error: BaseException) -> SQLState:
        if isinstance(error, sqlite3.IntegrityError):
            return SQLState.INTEGRITY_VIOLATION
        message = str(error).lower()
        if "no such table" in message:
            return SQLState.NO_SUCH_TABLE
        if "no such column" in message or "has no column named" in message:
            return SQLState.NO_SUCH_COLUMN
        return SQLState.OTHER

    # ------------------------------------------------------------
    # Schema
    # ------------------------------------------------------------

    def create_table(self, type_name: str) -> None:
        table = self.sql.esc(type_name)
        self.adapter.exec(f"CREATE TABLE {table} ( id INTEGER PRIMARY KEY AUTOINCREMENT ) ")

    def get_tables(self) -> List[str]:
        return self.adapter.get_col(
            "SELECT name FROM sqlite_master WHERE type='table' AND name != 'sqlite_sequence'"
        )

    def get_columns(self, type_name: str) -> Dict[str, str]:
        table = self.sql.esc(type_name)
        return {row["name"]: row["type"] for row in self.adapter.get(f"PRAGMA table_info({table})")}

    def add_column(self, type_name: str, column: str, code: int) -> None:
        table = self.sql.esc(type_name)
        self.adapter.exec(f"ALTER TABLE {table} ADD {self.sql.esc(column)} {self.type_table.sql(code)}")

    def widen_column(self, type_name: str, column: str, code: int) -> None:
        table_map = self.get_table(type_name)
        table_map["columns"][column] = self.type_table.sql(code)
        self.put_table(table_map)

    def get_indexes(self, type_name: str) -> Dict[str, Dict[str, Any]]:
        table = self.sql.esc(type_name)
        indexes: Dict[str, Dict[str, Any]] = {}
        for index in self.adapter.get(f"PRAGMA index_list({table})"):
            name = index["name"]
            if name.startswith("sqlite_autoindex") or index.get("origin") == "pk":
                continue
            info = self.adapter.get(f"PRAGMA index_info('{self.sql.esc(name, dont_quote=True)}')")
            indexes[name] = {
                "unique": bool(index["unique"]),
                "columns": [row["name"] for row in sorted(info, key=lambda r: r["seqno"])],
            }
        return indexes

    def get_keys(self, type_name: str) -> Dict[str, Dict[str, str]]:
        """Foreign keys of a table, labelled by source column and target."""
        table = self.sql.esc(type_name)
        keys: Dict[str, Dict[str, str]] = {}
        for row in self.adapter.get(f"PRAGMA foreign_key_list({table})"):
            label = self._key_label(row["from"], row["table"], row["to"])
            keys[label] = {
                "from": row["from"],
                "table": row["table"],
                "to": row["to"],
                "on_update": row["on_update"],
                "on_delete": row["on_delete"],
            }
        return keys

    @staticmethod
    def _key_label(column: str, target_table: str, target_column: str) -> str:
        return f"from_{column}_to_table_{target_table}_col_{target_column}"

    def get_table(self, type_name: str) -> Dict[str, Any]:
        return {
            "name": self.sql.esc(type_name, dont_quote=True),
            "columns": self.get_columns(type_name),
            "indexes": self.get_indexes(type_name),
            "keys": self.get_keys(type_name),
        }

    def put_table(self, table_map: Dict[str, Any]) -> None:
        """
        Recreate a table from a get_table() map, keeping its rows.

        Refused inside a transaction when other tables reference this
        one: foreign_keys cannot be switched off mid-transaction, so the
        DROP would cascade into the referencing rows.
        """
        name = table_map["name"]
        if self.adapter.in_transaction():
            referencing = self._referencing_tables(name)
            if referencing:
                raise SQLError(
                    f"Cannot rebuild table {name} inside a transaction, referenced by: {', '.join(referencing)}",
                    SQLState.OTHER,
                )
        table = self.sql.esc(name)
        old_columns = ",".join(self.sql.esc(column) for column in self.get_columns(name))

        definition = ""
        for column, sql_type in table_map["columns"].items():
            if column != "id":
                definition += f", {self.sql.esc(column)} {sql_type}"
        for key in table_map["keys"].values():
            definition += (
                f", FOREIGN KEY({self.sql.esc(key['from'])}) "
                f"REFERENCES {self.sql.esc(key['table'])}({self.sql.esc(key['to'])}) "
                f"ON DELETE {key['on_delete']} ON UPDATE {key['on_update']}"
            )

        statements = [
            "DROP TABLE IF EXISTS tmp_backup",
            f"CREATE TEMPORARY TABLE tmp_backup({old_columns})",
            f"INSERT INTO tmp_backup SELECT * FROM {table}",
            "PRAGMA foreign_keys = 0",
            f"DROP TABLE {table}",
            f"CREATE TABLE {table} ( id INTEGER PRIMARY KEY AUTOINCREMENT {definition} )",
        ]
        for index_name, index in table_map["indexes"].items():
            unique = "UNIQUE " if index["unique"] else ""
            columns = ",".join(self.sql.esc(column) for column in index["columns"])
            statements.append(f"CREATE {unique}INDEX {self.sql.esc(index_name)} ON {table} ({columns})")
        statements += [
            f"INSERT INTO {table} SELECT * FROM tmp_backup",
            "DROP TABLE tmp_backup",
            "PRAGMA foreign_keys = 1",
        ]
        for statement in statements:
            self.adapter.exec(statement)

    def _referencing_tables(self, name: str) -> List[str]:
        return [
            table
            for table in self.get_tables()
            if table != name and any(key["table"] == name for key in self.get_keys(table).values())
        ]

    def add_unique_index(self, type_name: str, columns: Sequence[str]) -> bool:
        table = self.sql.esc(type_name)
        name = "UQ_" + self.sql.esc(type_name, dont_quote=True) + "__".join(columns)
        column_sql = ",".join(self.sql.esc(column) for column in columns)
        try:
            self.adapter.exec(f"CREATE UNIQUE INDEX IF NOT EXISTS {self.sql.esc(name)} ON {table} ({column_sql})")
        except SQLError as e:
            logger.debug("constraint_failed", table=type_name, index=name, error=str(e))
            return False
        return True

    def add_index(self, type_name: str, name: str, column: str) -> bool:
        table = self.sql.esc(type_name)
        name = self.sql.esc(name, dont_quote=True)
        try:
            if name in self.get_indexes(type_name):
                return False
            self.adapter.exec(f"CREATE INDEX IF NOT EXISTS {name} ON {table} ({self.sql.esc(column)})")
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
        rule = "CASCADE" if is_dependent else "SET NULL"
        table_map = self.get_table(type_name)
        target = self.sql.esc(target_type, dont_quote=True)
        target_column = self.sql.esc(target_column, dont_quote=True)
        label = self._key_label(column, target, target_column)
        existing = table_map["keys"].get(label)
        if existing and existing["on_delete"].upper() == rule:
            return False
        table_map["keys"][label] = {
            "from": self.sql.esc(column, dont_quote=True),
            "table": target,
            "to": target_column,
            "on_update": rule,
            "on_delete": rule,
        }
        self.put_table(table_map)
        return True

    def wipe(self, type_name: str) -> None:
        self.adapter.exec(f"DELETE FROM {self.sql.esc(type_name)}")

    def wipe_all(self) -> None:
        self.adapter.exec("PRAGMA foreign_keys = 0")
        try:
            for name in self.get_tables():
                self.adapter.exec(f"DROP TABLE IF EXISTS {self.sql.esc(name)}")
        finally:
            self.adapter.exec("PRAGMA foreign_keys = 1")
