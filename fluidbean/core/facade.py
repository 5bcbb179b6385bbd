# ==============================================
# FluidBean — Facade
# ==============================================
#
# PURPOSE:
#   The class users interact with. Everything else is internal.
#   Wraps one Toolbox; several facades can live side by side (one per
#   database), nothing is kept in module globals.
#
# USAGE:
# ------
#   db = FluidBean("sqlite:///app.db")
#   book = db.dispense("book")
#   book["title"] = "Dune"
#   book_id = db.store(book)
#
#   tag = db.dispense("tag")
#   tag["name"] = "sf"
#   db.associate(book, tag)
#   db.related(book, "tag")
#
# CLASS: FluidBean
# ----------------
#   Beans:        dispense, load, batch, store, store_all, trash,
#                 trash_all, graph, export
#   Queries:      find, find_one, find_all, count, wipe, nuke
#   Relations:    associate, unassociate, related, related_one,
#                 related_last, related_count, related_links,
#                 are_related, clear_relations
#   Raw SQL:      exec, get_all, get_row, get_col, get_cell, get_assoc,
#                 get_insert_id
#   Transactions: begin, commit, rollback, transaction(callback)
#   Schema:       freeze, is_frozen, inspect
#   Lifecycle:    close, on (event listeners)
#
# ==============================================

from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional, Sequence, Union

from fluidbean.bean import Bean, Cooker
from fluidbean.config import Config
from fluidbean.core.toolbox import Toolbox, setup
from fluidbean.errors import ValidationError
from fluidbean.log import get_logger
from fluidbean.normalization.naming import check_identifier

logger = get_logger(__name__)

Bindings = Union[Sequence[Any], Dict[str, Any], None]


class FluidBean:
    """
    Bean-centric access to one database.

    Args:
        dsn: Connection string (see setup()). If None, taken from config.
        user: Database user
        password: Database password
        frozen: Start frozen (True), thawed (False), or chill the listed types
        config: Configuration. If None, loads from environment.
        toolbox: Use an existing toolbox instead of building one
    """

    def __init__(
        self,
        dsn: Optional[str] = None,
        user: Optional[str] = None,
        password: Optional[str] = None,
        frozen: Union[bool, Sequence[str], None] = None,
        config: Optional[Config] = None,
        toolbox: Optional[Toolbox] = None,
    ):
        self.toolbox = toolbox or setup(dsn, user, password, frozen, config)

    @property
    def oodb(self):
        return self.toolbox.oodb

    @property
    def adapter(self):
        return self.toolbox.adapter

    @property
    def writer(self):
        return self.toolbox.writer

    @property
    def association(self):
        return self.toolbox.association

    @property
    def config(self) -> Config:
        return self.toolbox.config

    # ------------------------------------------------------------
    # Beans
    # ------------------------------------------------------------

    def dispense(self, type_name: str, count: int = 1) -> Union[Bean, List[Bean]]:
        return self.oodb.dispense(type_name, count)

    def load(self, type_name: str, record_id: Any) -> Bean:
        return self.oodb.load(type_name, record_id)

    def batch(self, type_name: str, ids: Sequence[Any]) -> List[Bean]:
        return self.oodb.batch(type_name, ids)

    def store(self, bean: Bean) -> Union[int, str]:
        return self.oodb.store(bean)

    def store_all(self, beans: Sequence[Bean]) -> List[Union[int, str]]:
        return [self.oodb.store(bean) for bean in beans]

    def trash(self, bean: Bean) -> int:
        return self.oodb.trash(bean)

    def trash_all(self, beans: Sequence[Bean]) -> int:
        return self.oodb.trash_all(beans)

    def graph(
        self,
        data: Union[Mapping[str, Any], Sequence[Mapping[str, Any]]],
        filter_empty: bool = False,
        allow_loading: bool = False,
    ) -> Union[Bean, List[Bean]]:
        """Build (but do not store) a bean graph from nested dicts."""
        return Cooker(self.oodb, allow_loading=allow_loading).graph(data, filter_empty)

    def export(
        self, beans: Union[Bean, Sequence[Bean]], meta: bool = False, parents: bool = False
    ) -> Union[Dict[str, Any], List[Dict[str, Any]]]:
        if isinstance(beans, Bean):
            return beans.export(meta, parents)
        return [bean.export(meta, parents) for bean in beans]

    # ------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------

    def find(
        self,
        type_name: str,
        conditions: Optional[Dict[str, Any]] = None,
        sql: Optional[str] = None,
        bindings: Bindings = None,
    ) -> List[Bean]:
        return self.oodb.find(type_name, conditions, sql, bindings)

    def find_one(self, type_name: str, sql: Optional[str] = None, bindings: Bindings = None) -> Optional[Bean]:
        return self.oodb.find_one(type_name, sql, bindings)

    def find_all(self, type_name: str, sql: Optional[str] = None, bindings: Bindings = None) -> List[Bean]:
        return self.oodb.find_all(type_name, sql, bindings)

    def count(self, type_name: str, sql: Optional[str] = None, bindings: Bindings = None) -> int:
        return self.oodb.count(type_name, sql, bindings)

    def wipe(self, type_name: str) -> bool:
        return self.oodb.wipe(type_name)

    def nuke(self) -> None:
        """Drop every table. Refused in frozen mode."""
        if self.oodb.is_frozen():
            raise ValidationError("Cannot drop tables while frozen")
        self.writer.wipe_all()
        logger.warning("database_nuked", dialect=self.toolbox.dialect)

    # ------------------------------------------------------------
    # Relations
    # ------------------------------------------------------------

    def associate(self, beans1: Any, beans2: Any, extra: Any = None) -> Any:
        return self.association.associate(beans1, beans2, extra)

    def unassociate(self, beans1: Any, beans2: Any, fast: bool = False) -> None:
        self.association.unassociate(beans1, beans2, fast)

    def related(self, beans: Any, type_name: str, sql: Optional[str] = None, bindings: Bindings = None) -> List[Bean]:
        return self.association.related(beans, type_name, sql, bindings)

    def related_one(
        self, bean: Bean, type_name: str, sql: Optional[str] = None, bindings: Bindings = None
    ) -> Optional[Bean]:
        return self.association.related_one(bean, type_name, sql, bindings)

    def related_last(
        self, bean: Bean, type_name: str, sql: Optional[str] = None, bindings: Bindings = None
    ) -> Optional[Bean]:
        return self.association.related_last(bean, type_name, sql, bindings)

    def related_count(self, bean: Bean, type_name: str, sql: Optional[str] = None, bindings: Bindings = None) -> int:
        return self.association.related_count(bean, type_name, sql, bindings)

    def related_links(self, bean: Bean, type_name: str) -> List[Bean]:
        return self.association.related_links(bean, type_name)

    def are_related(self, bean1: Bean, bean2: Bean) -> bool:
        return self.association.are_related(bean1, bean2)

    def clear_relations(self, bean: Bean, type_name: str) -> None:
        self.association.clear_relations(bean, type_name)

    # ------------------------------------------------------------
    # Raw SQL
    # ------------------------------------------------------------

    def exec(self, sql: str, bindings: Bindings = None) -> int:
        return self.adapter.exec(sql, bindings)

    def get_all(self, sql: str, bindings: Bindings = None) -> List[Dict[str, Any]]:
        return self.adapter.get(sql, bindings)

    def get_row(self, sql: str, bindings: Bindings = None) -> Optional[Dict[str, Any]]:
        return self.adapter.get_row(sql, bindings)

    def get_col(self, sql: str, bindings: Bindings = None) -> List[Any]:
        return self.adapter.get_col(sql, bindings)

    def get_cell(self, sql: str, bindings: Bindings = None) -> Any:
        return self.adapter.get_cell(sql, bindings)

    def get_assoc(self, sql: str, bindings: Bindings = None) -> Dict[Any, Any]:
        return self.adapter.get_assoc(sql, bindings)

    def get_insert_id(self) -> Any:
        return self.adapter.get_insert_id()

    # ------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------

    def begin(self) -> None:
        self.adapter.start_transaction()

    def commit(self) -> None:
        self.adapter.commit()

    def rollback(self) -> None:
        self.adapter.rollback()
        self.writer.flush_cache()

    @contextmanager
    def transaction_scope(self) -> Iterator["FluidBean"]:
        """`with db.transaction_scope():` form of transaction()."""
        try:
            with self.adapter.transaction():
                yield self
        except BaseException:
            self.writer.flush_cache()
            raise

    def transaction(self, callback: Callable[["FluidBean"], Any]) -> Any:
        """
        Run `callback(self)` in a transaction and return its result.
        Nested calls join the outer transaction; an exception anywhere
        rolls the whole transaction back and is re-raised.
        """
        if not callable(callback):
            raise ValidationError("transaction() needs a callable")
        with self.transaction_scope():
            return callback(self)

    # ------------------------------------------------------------
    # Schema
    # ------------------------------------------------------------

    def freeze(self, toggle: Union[bool, Sequence[str]] = True) -> None:
        self.oodb.freeze(toggle)

    def is_frozen(self) -> bool:
        return self.oodb.is_frozen()

    def inspect(self, type_name: Optional[str] = None) -> Union[List[str], Dict[str, str]]:
        """Table names, or the columns (name -> SQL type) of one type."""
        if type_name is None:
            return self.writer.get_tables()
        check_identifier(type_name, "type")
        return self.writer.get_columns(type_name)

    # ------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------

    def on(self, event: str, listener: Callable[[str, Any], None]) -> None:
        """Listen to bean events (dispense, open, update, after_update, delete, after_delete)."""
        self.oodb.on(event, listener)

    def close(self) -> None:
        self.toolbox.close()
