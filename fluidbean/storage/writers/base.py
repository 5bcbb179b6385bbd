# ==============================================
# Query Writer
# ==============================================
#
# PURPOSE:
#   Turn record level requests (load these rows, insert this record,
#   count the beans related to that one) into SQL, and forward schema
#   requests (create table, add column, widen column, add FK) to the
#   Dialect of the connected database.
#
# WHY THIS MODULE EXISTS:
#   Record SQL is the same for every database apart from the quote
#   character and how an insert reports its id. Schema SQL is not.
#   QueryWriter holds the former and delegates the latter, so each
#   database only implements a Dialect.
#
# CLASSES:
# --------
# - Writer (Protocol)    → what the object database talks to
# - Dialect (Protocol)   → what each database implements
# - QueryWriter          → Writer built from SQLHelper + Dialect + QueryCache
#
# ==============================================

from typing import Any, Callable, Dict, List, Mapping, Optional, Protocol, Sequence, Union

from fluidbean.errors import Outcome, SQLError, SQLState, ValidationError
from fluidbean.log import get_logger
from fluidbean.normalization.naming import link_columns, link_type_name
from fluidbean.storage.query_cache import QueryCache
from fluidbean.storage.sql_helper import (
    GLUE_AND,
    GLUE_WHERE,
    KEEP_CACHE,
    SQLHelper,
    TypeTable,
    cache_key,
)

logger = get_logger(__name__)

Bindings = Union[Sequence[Any], Mapping[str, Any], None]
Conditions = Optional[Mapping[str, Any]]


class Dialect(Protocol):
    """Schema level operations of one database."""

    name: str
    quote: str
    type_table: TypeTable
    id_code: int
    insert_default: str
    insert_suffix: str
    casts: Dict[str, int]

    def scan_type(self, value: Any, allow_special: bool = False) -> int: ...

    def classify(self, error: BaseException) -> SQLState: ...

    def create_table(self, type_name: str) -> None: ...

    def get_tables(self) -> List[str]: ...

    def get_columns(self, type_name: str) -> Dict[str, str]: ...

    def add_column(self, type_name: str, column: str, code: int) -> None: ...

    def widen_column(self, type_name: str, column: str, code: int) -> None: ...

    def add_unique_index(self, type_name: str, columns: Sequence[str]) -> bool: ...

    def add_index(self, type_name: str, name: str, column: str) -> bool: ...

    def add_fk(
        self,
        type_name: str,
        target_type: str,
        column: str,
        target_column: str = "id",
        is_dependent: bool = False,
    ) -> bool: ...

    def wipe(self, type_name: str) -> None: ...

    def wipe_all(self) -> None: ...


class Writer(Protocol):
    """Everything the object database and association manager need."""

    def esc(self, identifier: str, dont_quote: bool = False) -> str: ...

    def scan_type(self, value: Any, allow_special: bool = False) -> int: ...

    def code(self, sql_type: Optional[str], include_specials: bool = False) -> int: ...

    def create_table(self, type_name: str) -> None: ...

    def get_tables(self) -> List[str]: ...

    def get_columns(self, type_name: str) -> Dict[str, str]: ...

    def add_column(self, type_name: str, column: str, code: int) -> None: ...

    def widen_column(self, type_name: str, column: str, code: int) -> None: ...

    def query_record(self, type_name: str, conditions: Conditions = None,
                     add_sql: Optional[str] = None, bindings: Bindings = None) -> List[Dict[str, Any]]: ...

    def query_record_count(self, type_name: str, conditions: Conditions = None,
                           add_sql: Optional[str] = None, bindings: Bindings = None) -> int: ...

    def query_record_related(self, source_type: str, dest_type: str, link_ids: Sequence[Any],
                             add_sql: Optional[str] = None, bindings: Bindings = None) -> List[Dict[str, Any]]: ...

    def query_record_count_related(self, source_type: str, dest_type: str, link_id: Any,
                                   add_sql: Optional[str] = None, bindings: Bindings = None) -> int: ...

    def query_record_link(self, source_type: str, dest_type: str,
                          source_id: Any, dest_id: Any) -> Optional[Dict[str, Any]]: ...

    def query_record_links(self, source_type: str, dest_type: str,
                           source_ids: Sequence[Any]) -> List[Dict[str, Any]]: ...

    def update_record(self, type_name: str, values: Mapping[str, Any], record_id: Any = None) -> Any: ...

    def delete_record(self, type_name: str, conditions: Conditions = None,
                      add_sql: Optional[str] = None, bindings: Bindings = None) -> int: ...

    def delete_relations(self, source_type: str, dest_type: str, source_id: Any) -> int: ...

    def wipe(self, type_name: str) -> None: ...

    def wipe_all(self) -> None: ...

    def add_unique_index(self, type_name: str, columns: Sequence[str]) -> bool: ...

    def add_index(self, type_name: str, name: str, column: str) -> bool: ...

    def add_fk(self, type_name: str, target_type: str, column: str,
               target_column: str = "id", is_dependent: bool = False) -> bool: ...

    def add_constraint_for_types(self, type_a: str, type_b: str) -> bool: ...

    def attempt(self, operation: Callable[..., Any], *args: Any, **kwargs: Any) -> Outcome: ...


class QueryWriter:
    """
    The Writer every toolbox uses.

    Args:
        adapter: Adapter connected to the database
        dialect: Dialect of that database
        cache: Optional QueryCache for read queries
        link_renames: Overrides for implicit link table names
    """

    def __init__(
        self,
        adapter: Any,
        dialect: Dialect,
        cache: Optional[QueryCache] = None,
        link_renames: Optional[Dict[str, str]] = None,
    ):
        self.adapter = adapter
        self.dialect = dialect
        self.sql = SQLHelper(dialect.quote)
        self.cache = cache or QueryCache(adapter, enabled=False)
        self.link_renames = dict(link_renames or {})
        adapter.set_classifier(dialect.classify)

    # ------------------------------------------------------------
    # Naming and types
    # ------------------------------------------------------------

    def esc(self, identifier: str, dont_quote: bool = False) -> str:
        return self.sql.esc(identifier, dont_quote)

    def link_table(self, type_a: str, type_b: str) -> str:
        return link_type_name(type_a, type_b, self.link_renames)

    def scan_type(self, value: Any, allow_special: bool = False) -> int:
        return self.dialect.scan_type(value, allow_special)

    def code(self, sql_type: Optional[str], include_specials: bool = False) -> int:
        return self.dialect.type_table.code(sql_type, include_specials)

    def type_sql(self, code: int) -> str:
        return self.dialect.type_table.sql(code)

    @property
    def id_code(self) -> int:
        """Type code of id and foreign key columns."""
        return self.dialect.id_code

    def cast_code(self, cast: str) -> int:
        """Type code for an explicit `cast.<prop>` meta value."""
        try:
            return self.dialect.casts[cast]
        except KeyError:
            raise ValidationError(f"Invalid cast {cast!r} for {self.dialect.name}") from None

    # ------------------------------------------------------------
    # Schema (delegated)
    # ------------------------------------------------------------

    def create_table(self, type_name: str) -> None:
        self.dialect.create_table(type_name)
        logger.info("table_created", table=type_name)

    def get_tables(self) -> List[str]:
        return self.dialect.get_tables()

    def table_exists(self, type_name: str) -> bool:
        return type_name in self.get_tables()

    def get_columns(self, type_name: str) -> Dict[str, str]:
        return self.dialect.get_columns(type_name)

    def add_column(self, type_name: str, column: str, code: int) -> None:
        self.dialect.add_column(type_name, column, code)
        logger.info("column_added", table=type_name, column=column, sql_type=self.type_sql(code))

    def widen_column(self, type_name: str, column: str, code: int) -> None:
        self.dialect.widen_column(type_name, column, code)
        logger.info("column_widened", table=type_name, column=column, sql_type=self.type_sql(code))

    def add_unique_index(self, type_name: str, columns: Sequence[str]) -> bool:
        return self.dialect.add_unique_index(type_name, sorted(columns))

    def add_index(self, type_name: str, name: str, column: str) -> bool:
        added = self.dialect.add_index(type_name, name, column)
        if added:
            logger.info("index_added", table=type_name, index=name)
        return added

    def add_fk(
        self,
        type_name: str,
        target_type: str,
        column: str,
        target_column: str = "id",
        is_dependent: bool = False,
    ) -> bool:
        try:
            added = self.dialect.add_fk(type_name, target_type, column, target_column, is_dependent)
        except SQLError as e:
            logger.debug("constraint_failed", table=type_name, column=column, error=str(e))
            return False
        if added:
            logger.info(
                "foreign_key_added",
                table=type_name,
                column=column,
                target=target_type,
                on_delete="CASCADE" if is_dependent else "SET NULL",
            )
        return added

    def add_constraint_for_types(self, type_a: str, type_b: str) -> bool:
        """Cascading foreign keys from the link table to both endpoint tables."""
        link = self.link_table(type_a, type_b)
        col_a, col_b = link_columns(type_a, type_b)
        first = self.add_fk(link, type_a, col_a, "id", True)
        second = self.add_fk(link, type_b, col_b, "id", True)
        return first and second

    def wipe(self, type_name: str) -> None:
        self.dialect.wipe(type_name)

    def wipe_all(self) -> None:
        self.dialect.wipe_all()

    # ------------------------------------------------------------
    # Cache
    # ------------------------------------------------------------

    def set_use_cache(self, flag: bool) -> None:
        self.cache.enabled = flag
        self.cache.flush()

    def flush_cache(self) -> None:
        self.cache.flush()

    def _cached_get(self, tag: str, sql: str, bindings: Bindings, *key_parts: Any) -> List[Dict[str, Any]]:
        key = cache_key(*key_parts, sql, bindings)
        rows = self.cache.get(tag, key)
        if rows is not None:
            return rows
        rows = self.adapter.get(sql, bindings)
        self.cache.put(tag, key, rows)
        return rows

    # ------------------------------------------------------------
    # Records
    # ------------------------------------------------------------

    def query_record(
        self,
        type_name: str,
        conditions: Conditions = None,
        add_sql: Optional[str] = None,
        bindings: Bindings = None,
    ) -> List[Dict[str, Any]]:
        """Rows of `type_name` matching conditions and caller SQL."""
        table = self.esc(type_name)
        glued = self.sql.glue(add_sql, GLUE_AND if conditions else GLUE_WHERE)
        where, bound = self.sql.conditions(conditions, bindings, glued)
        sql = f"SELECT * FROM {table} {where} {KEEP_CACHE}"
        return self._cached_get(type_name, sql, bound, conditions)

    def query_record_count(
        self,
        type_name: str,
        conditions: Conditions = None,
        add_sql: Optional[str] = None,
        bindings: Bindings = None,
    ) -> int:
        table = self.esc(type_name)
        glued = self.sql.glue(add_sql, GLUE_AND if conditions else GLUE_WHERE)
        where, bound = self.sql.conditions(conditions, bindings, glued)
        sql = f"SELECT COUNT(*) FROM {table} {where} {KEEP_CACHE}"
        return int(self.adapter.get_cell(sql, bound) or 0)

    def _link_parts(self, source_type: str, dest_type: str):
        link = self.esc(self.link_table(source_type, dest_type))
        source_col, dest_col = link_columns(source_type, dest_type)
        return link, self.esc(dest_type), self.esc(source_col), self.esc(dest_col)

    def query_record_related(
        self,
        source_type: str,
        dest_type: str,
        link_ids: Sequence[Any],
        add_sql: Optional[str] = None,
        bindings: Bindings = None,
    ) -> List[Dict[str, Any]]:
        """
        Rows of `dest_type` linked to any of `link_ids`, each with a
        `linked_by` column naming the source id it was reached from.

        For self-links both columns of the link table are searched; a row
        linked to itself reports NULL in `linked_by`.
        """
        link, dest, source_col, dest_col = self._link_parts(source_type, dest_type)
        glued = self.sql.glue(add_sql, GLUE_WHERE)
        ids = list(link_ids)
        if source_type == dest_type:
            ids = ids + ids
        placeholders, bound = self.sql.in_clause(ids, bindings)
        if source_type == dest_type:
            half = placeholders.split(",")
            first = ",".join(half[: len(half) // 2])
            second = ",".join(half[len(half) // 2:])
            sql = (
                f"SELECT {dest}.*, COALESCE("
                f"NULLIF({link}.{source_col}, {dest}.id), "
                f"NULLIF({link}.{dest_col}, {dest}.id)) AS linked_by "
                f"FROM {link} INNER JOIN {dest} ON ( "
                f"( {dest}.id = {link}.{dest_col} AND {link}.{source_col} IN ({first}) ) OR "
                f"( {dest}.id = {link}.{source_col} AND {link}.{dest_col} IN ({second}) ) )"
                f"{glued} {KEEP_CACHE}"
            )
        else:
            sql = (
                f"SELECT {dest}.*, {link}.{source_col} AS linked_by "
                f"FROM {link} INNER JOIN {dest} ON ( "
                f"{dest}.id = {link}.{dest_col} AND {link}.{source_col} IN ({placeholders}) )"
                f"{glued} {KEEP_CACHE}"
            )
        return self._cached_get(self.link_table(source_type, dest_type), sql, bound, dest_type)

    def query_record_count_related(
        self,
        source_type: str,
        dest_type: str,
        link_id: Any,
        add_sql: Optional[str] = None,
        bindings: Bindings = None,
    ) -> int:
        link, dest, source_col, dest_col = self._link_parts(source_type, dest_type)
        glued = self.sql.glue(add_sql, GLUE_WHERE)
        if source_type == dest_type:
            placeholders, bound = self.sql.in_clause([link_id, link_id], bindings)
            first, second = placeholders.split(",")
            sql = (
                f"SELECT COUNT(*) FROM {link} INNER JOIN {dest} ON ( "
                f"( {dest}.id = {link}.{dest_col} AND {link}.{source_col} = {first} ) OR "
                f"( {dest}.id = {link}.{source_col} AND {link}.{dest_col} = {second} ) )"
                f"{glued} {KEEP_CACHE}"
            )
        else:
            placeholder, bound = self.sql.in_clause([link_id], bindings)
            sql = (
                f"SELECT COUNT(*) FROM {link} INNER JOIN {dest} ON ( "
                f"{dest}.id = {link}.{dest_col} AND {link}.{source_col} = {placeholder} )"
                f"{glued} {KEEP_CACHE}"
            )
        return int(self.adapter.get_cell(sql, bound) or 0)

    def query_record_link(
        self, source_type: str, dest_type: str, source_id: Any, dest_id: Any
    ) -> Optional[Dict[str, Any]]:
        """The link row between two beans, or None."""
        link, _, source_col, dest_col = self._link_parts(source_type, dest_type)
        if source_type == dest_type:
            sql = (
                f"SELECT * FROM {link} WHERE ( {source_col} = ? AND {dest_col} = ? ) "
                f"OR ( {dest_col} = ? AND {source_col} = ? ) {KEEP_CACHE}"
            )
            bound: List[Any] = [source_id, dest_id, source_id, dest_id]
        else:
            sql = f"SELECT * FROM {link} WHERE {source_col} = ? AND {dest_col} = ? {KEEP_CACHE}"
            bound = [source_id, dest_id]
        rows = self._cached_get(self.link_table(source_type, dest_type), sql, bound, "link")
        return rows[0] if rows else None

    def query_record_links(
        self, source_type: str, dest_type: str, source_ids: Sequence[Any]
    ) -> List[Dict[str, Any]]:
        """All link rows touching any of `source_ids`."""
        link, _, source_col, dest_col = self._link_parts(source_type, dest_type)
        ids = list(source_ids)
        if not ids:
            return []
        placeholders, bound = self.sql.in_clause(ids)
        if source_type == dest_type:
            sql = (
                f"SELECT * FROM {link} WHERE {source_col} IN ({placeholders}) "
                f"OR {dest_col} IN ({placeholders}) {KEEP_CACHE}"
            )
            bound = list(bound) + list(bound)
        else:
            sql = f"SELECT * FROM {link} WHERE {source_col} IN ({placeholders}) {KEEP_CACHE}"
        return self._cached_get(self.link_table(source_type, dest_type), sql, bound, "links")

    def update_record(self, type_name: str, values: Mapping[str, Any], record_id: Any = None) -> Any:
        """
        Write one record.

        Without an id the record is inserted and the new id returned.
        With an id and no values nothing is written. Otherwise the
        columns are updated in place.
        """
        if not record_id:
            return self.insert_record(type_name, list(values.keys()), [list(values.values())])[0]
        if not values:
            return record_id
        table = self.esc(type_name)
        assignments = ", ".join(f"{self.esc(column)} = ?" for column in values)
        sql = f"UPDATE {table} SET {assignments} WHERE id = ?"
        self.adapter.exec(sql, list(values.values()) + [record_id])
        return record_id

    def insert_record(self, type_name: str, columns: Sequence[str], rows: Sequence[Sequence[Any]]) -> List[Any]:
        """Insert one record per row of values, return the new ids in order."""
        table = self.esc(type_name)
        default = self.dialect.insert_default
        suffix = self.dialect.insert_suffix
        if columns:
            column_sql = ", ".join(self.esc(column) for column in columns)
            placeholders = ", ".join("?" for _ in columns)
            sql = f"INSERT INTO {table} ( id, {column_sql} ) VALUES ( {default}, {placeholders} ) {suffix}"
        else:
            sql = f"INSERT INTO {table} ( id ) VALUES ( {default} ) {suffix}"
            rows = rows or [[]]
        ids = []
        for row in rows:
            if suffix:
                ids.append(self.adapter.get_cell(sql, list(row)))
            else:
                self.adapter.exec(sql, list(row))
                ids.append(self.adapter.get_insert_id())
        return ids

    def delete_record(
        self,
        type_name: str,
        conditions: Conditions = None,
        add_sql: Optional[str] = None,
        bindings: Bindings = None,
    ) -> int:
        table = self.esc(type_name)
        glued = self.sql.glue(add_sql, GLUE_AND if conditions else GLUE_WHERE)
        where, bound = self.sql.conditions(conditions, bindings, glued)
        return self.adapter.exec(f"DELETE FROM {table} {where}", bound)

    def delete_relations(self, source_type: str, dest_type: str, source_id: Any) -> int:
        """Remove every link row of `source_id` towards `dest_type`."""
        link, _, source_col, dest_col = self._link_parts(source_type, dest_type)
        if source_type == dest_type:
            sql = f"DELETE FROM {link} WHERE {source_col} = ? OR {dest_col} = ?"
            return self.adapter.exec(sql, [source_id, source_id])
        return self.adapter.exec(f"DELETE FROM {link} WHERE {source_col} = ?", [source_id])

    # ------------------------------------------------------------
    # Outcome
    # ------------------------------------------------------------

    def attempt(self, operation: Callable[..., Any], *args: Any, **kwargs: Any) -> Outcome:
        """
        Run a writer operation and capture SQL failures as an Outcome.

        ValidationError is never captured.
        """
        try:
            return Outcome.ok(operation(*args, **kwargs))
        except SQLError as e:
            return Outcome.err(e)
