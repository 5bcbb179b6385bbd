# ==============================================
# Tests for Dialects
# ==============================================
#
# class TestMySQLTypes       → MySQL type ladder and classifier
# class TestSQLiteTypes      → SQLite type ladder and classifier
# class TestPostgresTypes    → PostgreSQL ladder incl. special shapes
# class TestCubridTypes      → CUBRID ladder
# class TestMySQLSchemaSQL   → DDL sent by the MySQL dialect
# class TestPostgresSchemaSQL→ DDL sent by the PostgreSQL dialect
# class TestCubridSchemaSQL  → DDL sent by the CUBRID dialect
# ==============================================

import sqlite3

import pytest

from fluidbean.errors import SQLState, ValidationError
from fluidbean.storage.writers import DIALECTS, create_dialect
from fluidbean.storage.writers.cubrid import CubridDialect
from fluidbean.storage.writers.mysql import MySQLDialect
from fluidbean.storage.writers.postgres import PostgresDialect
from fluidbean.storage.writers.sqlite import SQLiteDialect


class _DriverError(Exception):
    pass


class _PgError(Exception):
    def __init__(self, sqlstate):
        super().__init__("pg failure")
        self.sqlstate = sqlstate


class TestMySQLTypes:
    @pytest.fixture
    def dialect(self, recorder):
        return MySQLDialect(recorder("mysql"))

    @pytest.mark.parametrize(
        "value, expected",
        [
            (None, "TINYINT(1) UNSIGNED"),
            (True, "TINYINT(1) UNSIGNED"),
            ("", "VARCHAR(255)"),
            ("1", "TINYINT(1) UNSIGNED"),
            (7, "TINYINT(3) UNSIGNED"),
            (255, "TINYINT(3) UNSIGNED"),
            (256, "INT(11) UNSIGNED"),
            (4294967295, "INT(11) UNSIGNED"),
            (4294967296, "DOUBLE"),
            (-1, "DOUBLE"),
            (3.14, "DOUBLE"),
            ("007", "LONGTEXT"),
            ("hello", "VARCHAR(255)"),
            ("x" * 256, "TEXT"),
            ("x" * 65536, "LONGTEXT"),
        ],
    )
    def test_ladder(self, dialect, value, expected):
        assert dialect.type_table.sql(dialect.scan_type(value)) == expected

    def test_specials_only_when_allowed(self, dialect):
        assert dialect.type_table.sql(dialect.scan_type("2024-01-02", True)) == "DATE"
        assert dialect.type_table.sql(dialect.scan_type("2024-01-02 03:04:05", True)) == "DATETIME"
        assert dialect.type_table.sql(dialect.scan_type("POINT(1 2)", True)) == "POINT"
        assert dialect.type_table.sql(dialect.scan_type("2024-01-02")) == "VARCHAR(255)"

    def test_codes_only_widen_upwards(self, dialect):
        codes = [dialect.scan_type(v) for v in (True, 7, 300, 3.5, "abc", "x" * 300)]
        assert codes == sorted(codes)

    def test_empty_string_is_text(self, dialect):
        assert dialect.scan_type("") == dialect.scan_type("hello")
        assert dialect.scan_type("") > dialect.scan_type(True)

    def test_leading_zeros_take_widest_text(self, dialect):
        assert dialect.scan_type("0123") == dialect.scan_type("x" * 70000)

    def test_mysql8_spellings(self, dialect):
        assert dialect.type_table.code("int unsigned") == dialect.type_table.code("INT(11) UNSIGNED")

    def test_classify(self, dialect):
        assert dialect.classify(_DriverError(1146, "no table")) == SQLState.NO_SUCH_TABLE
        assert dialect.classify(_DriverError(1054, "no column")) == SQLState.NO_SUCH_COLUMN
        assert dialect.classify(_DriverError(1062, "dup")) == SQLState.INTEGRITY_VIOLATION
        assert dialect.classify(_DriverError(2006, "gone")) == SQLState.OTHER


class TestSQLiteTypes:
    @pytest.fixture
    def dialect(self):
        return SQLiteDialect(None)

    @pytest.mark.parametrize(
        "value, expected",
        [
            (None, "INTEGER"),
            (False, "INTEGER"),
            (42, "INTEGER"),
            (-42, "INTEGER"),
            (2.5, "NUMERIC"),
            ("2024-01-02", "NUMERIC"),
            ("007", "TEXT"),
            ("hello", "TEXT"),
            (2 ** 31, "TEXT"),
        ],
    )
    def test_ladder(self, dialect, value, expected):
        assert dialect.type_table.sql(dialect.scan_type(value)) == expected

    def test_classify(self, dialect):
        assert dialect.classify(sqlite3.OperationalError("no such table: book")) == SQLState.NO_SUCH_TABLE
        assert dialect.classify(sqlite3.OperationalError("no such column: x")) == SQLState.NO_SUCH_COLUMN
        assert (
            dialect.classify(sqlite3.OperationalError("table book has no column named x"))
            == SQLState.NO_SUCH_COLUMN
        )
        assert dialect.classify(sqlite3.IntegrityError("UNIQUE constraint failed")) == SQLState.INTEGRITY_VIOLATION
        assert dialect.classify(sqlite3.OperationalError("syntax error")) == SQLState.OTHER


class TestPostgresTypes:
    @pytest.fixture
    def dialect(self, recorder):
        return PostgresDialect(recorder("pgsql"))

    @pytest.mark.parametrize(
        "value, expected",
        [
            (None, "integer"),
            (5, "integer"),
            ("5", "integer"),
            (2.0, "double precision"),
            ("2.5", "double precision"),
            (2 ** 31, "double precision"),
            ("007", "text"),
            ("abc", "text"),
        ],
    )
    def test_ladder(self, dialect, value, expected):
        assert dialect.type_table.sql(dialect.scan_type(value)) == expected

    @pytest.mark.parametrize(
        "value, expected",
        [
            ("2024-01-02", "date"),
            ("2024-01-02 03:04:05", "timestamp without time zone"),
            ("(1,2)", "point"),
            ("[(1,2),(3,4)]", "lseg"),
            ("<(1,2),3>", "circle"),
            ("((1,2),(3,4),(5,6))", "polygon"),
            ("$12.50", "money"),
        ],
    )
    def test_specials(self, dialect, value, expected):
        assert dialect.type_table.sql(dialect.scan_type(value, True)) == expected

    def test_classify(self, dialect):
        assert dialect.classify(_PgError("42P01")) == SQLState.NO_SUCH_TABLE
        assert dialect.classify(_PgError("42703")) == SQLState.NO_SUCH_COLUMN
        assert dialect.classify(_PgError("23505")) == SQLState.INTEGRITY_VIOLATION
        assert dialect.classify(_PgError("08006")) == SQLState.OTHER


class TestCubridTypes:
    @pytest.fixture
    def dialect(self, recorder):
        return CubridDialect(recorder("cubrid"))

    @pytest.mark.parametrize(
        "value, expected",
        [
            (True, "INTEGER"),
            (12, "INTEGER"),
            (1.5, "DOUBLE"),
            ("007", "STRING"),
            ("abc", "STRING"),
        ],
    )
    def test_ladder(self, dialect, value, expected):
        assert dialect.type_table.sql(dialect.scan_type(value)) == expected

    def test_dates_with_specials(self, dialect):
        assert dialect.type_table.sql(dialect.scan_type("2024-01-02", True)) == "DATE"
        assert dialect.type_table.sql(dialect.scan_type("2024-01-02 03:04:05", True)) == "DATETIME"


class TestDialectRegistry:
    def test_every_dialect_registered(self):
        assert set(DIALECTS) == {"mysql", "sqlite", "pgsql", "cubrid"}

    def test_unknown_dialect(self):
        with pytest.raises(ValidationError):
            create_dialect("oracle", None)


class TestMySQLSchemaSQL:
    @pytest.fixture
    def adapter(self, recorder):
        return recorder("mysql")

    @pytest.fixture
    def dialect(self, adapter):
        return MySQLDialect(adapter)

    def test_create_table(self, dialect, adapter):
        dialect.create_table("book")
        sql = adapter.sql[0]
        assert sql.startswith("CREATE TABLE `book` (id INT( 11 ) UNSIGNED NOT NULL AUTO_INCREMENT")
        assert "ENGINE = InnoDB" in sql
        assert "utf8mb4" in sql

    def test_add_and_widen_column(self, dialect, adapter):
        dialect.add_column("book", "title", 4)
        dialect.widen_column("book", "title", 5)
        assert adapter.sql == [
            "ALTER TABLE `book` ADD `title` VARCHAR(255)",
            "ALTER TABLE `book` CHANGE `title` `title` TEXT",
        ]

    def test_index_skipped_when_present(self, dialect, adapter):
        adapter.answer("SHOW INDEX", [{"Key_name": "index_foreignkey_page_book"}])
        assert dialect.add_index("page", "index_foreignkey_page_book", "book_id") is False
        assert not any(sql.startswith("CREATE INDEX") for sql in adapter.sql)

    def test_fk_same_rule_is_noop(self, dialect, adapter):
        adapter.answer("KEY_COLUMN_USAGE", [{"constraint_name": "c_fk_page_book_id", "delete_rule": "CASCADE"}])
        assert dialect.add_fk("page", "book", "book_id", "id", True) is False
        assert not any("ADD CONSTRAINT" in sql for sql in adapter.sql)

    def test_fk_changed_rule_is_replaced(self, dialect, adapter):
        adapter.answer("KEY_COLUMN_USAGE", [{"constraint_name": "c_fk_page_book_id", "delete_rule": "SET NULL"}])
        assert dialect.add_fk("page", "book", "book_id", "id", True) is True
        assert "ALTER TABLE `page` DROP FOREIGN KEY `c_fk_page_book_id`" in adapter.sql
        assert adapter.sql[-1].endswith("ON DELETE CASCADE ON UPDATE CASCADE")

    def test_new_fk_sets_null(self, dialect, adapter):
        assert dialect.add_fk("page", "book", "book_id") is True
        assert "REFERENCES `book` ( `id` ) ON DELETE SET NULL" in adapter.sql[-1]

    def test_wipe_all_disables_fk_checks(self, dialect, adapter):
        adapter.answer("SHOW TABLES", [{"t": "book"}, {"t": "page"}])
        dialect.wipe_all()
        assert adapter.sql[0] == "SET FOREIGN_KEY_CHECKS = 0"
        assert "DROP TABLE IF EXISTS `book`" in adapter.sql
        assert adapter.sql[-1] == "SET FOREIGN_KEY_CHECKS = 1"


class TestPostgresSchemaSQL:
    @pytest.fixture
    def adapter(self, recorder):
        return recorder("pgsql")

    @pytest.fixture
    def dialect(self, adapter):
        return PostgresDialect(adapter)

    def test_create_table(self, dialect, adapter):
        dialect.create_table("book")
        assert adapter.sql == ['CREATE TABLE "book" (id SERIAL PRIMARY KEY)']

    def test_get_columns(self, dialect, adapter):
        adapter.answer("information_schema.columns", [{"column_name": "id", "data_type": "integer"}])
        assert dialect.get_columns("book") == {"id": "integer"}
        assert adapter.statements[-1][1] == ["book"]

    def test_widen_uses_cast(self, dialect, adapter):
        dialect.widen_column("book", "pages", 3)
        assert adapter.sql[-1] == 'ALTER TABLE "book" ALTER COLUMN "pages" TYPE text USING "pages"::text'


class TestCubridSchemaSQL:
    @pytest.fixture
    def adapter(self, recorder):
        return recorder("cubrid")

    def test_create_table(self, adapter):
        CubridDialect(adapter).create_table("book")
        assert adapter.sql[0].startswith("CREATE TABLE `book` (`id` integer AUTO_INCREMENT")
        assert "CONSTRAINT `pk_book_id` PRIMARY KEY(`id`)" in adapter.sql[0]

    def test_add_column(self, adapter):
        CubridDialect(adapter).add_column("book", "title", 2)
        assert adapter.sql == ["ALTER TABLE `book` ADD COLUMN `title` STRING"]
