# ==============================================
# ObjectDatabase
# ==============================================
#
# PURPOSE:
#   Dispense, load, store and trash beans. Storing a bean walks its
#   graph: parents are stored first, own-lists and shared-lists are
#   diffed against the list as it was loaded, and in fluid mode the
#   schema is evolved on the way.
#
# CLASS: ObjectDatabase(Observable)
# ---------------------------------
#   Stateful — the current fluid/frozen policy (taken from the
#   SchemaConfig) and the stash of rows a batch or find pre-fetched.
#
#   Events (listener(event, bean)):
#   -------------------------------
#   - dispense, open, update, after_update, delete, after_delete
#
#   Fluid vs frozen:
#   ----------------
#   - fluid:   tables and columns are created and widened, missing
#              tables/columns read as "nothing there"
#   - frozen:  no DDL, missing tables/columns raise SQLError
#   - chilled: listed types keep fluid tolerance but never get DDL
#
# ==============================================

from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from fluidbean.bean.bean import Bean
from fluidbean.config import Config
from fluidbean.errors import SQLState, ValidationError
from fluidbean.log import get_logger
from fluidbean.normalization.naming import IDENTIFIER_PATTERN, check_identifier
from fluidbean.observable import Observable
from fluidbean.storage.migrator import Migrator

logger = get_logger(__name__)

Bindings = Union[Sequence[Any], Dict[str, Any], None]


class ObjectDatabase(Observable):
    """The bean orchestrator."""

    def __init__(self, writer: Any, config: Optional[Config] = None, migrator: Optional[Migrator] = None):
        super().__init__()
        self.writer = writer
        self.config = config or Config()
        self.migrator = migrator or Migrator(writer, self.config.schema)
        self.toolbox: Any = None
        self._stash: Dict[int, Optional[Dict[str, Dict[str, Any]]]] = {}
        self._nesting = 0

    # ------------------------------------------------------------
    # Policy
    # ------------------------------------------------------------

    def is_frozen(self) -> bool:
        return self.config.schema.frozen

    def is_chilled(self, type_name: str) -> bool:
        return type_name in self.config.schema.chilled

    def freeze(self, toggle: Union[bool, Sequence[str]] = True) -> None:
        """
        freeze(True) / freeze(False) switches the whole schema;
        freeze(["book", "page"]) chills only those types.
        """
        if isinstance(toggle, (list, tuple, set)):
            self.config.schema.chilled = list(toggle)
            self.config.schema.frozen = False
        else:
            self.config.schema.frozen = bool(toggle)

    def _fluid_for(self, type_name: str) -> bool:
        """DDL allowed for this type."""
        return not self.is_frozen() and not self.is_chilled(type_name)

    # ------------------------------------------------------------
    # Dispense / check
    # ------------------------------------------------------------

    def dispense(self, type_name: str, count: int = 1) -> Union[Bean, List[Bean]]:
        """
        New, unsaved bean(s) of `type_name` (id 0).

        Returns:
            A bean when count is 1, a list otherwise
        """
        if count < 1:
            raise ValidationError("Cannot dispense fewer than one bean")
        beans = []
        for _ in range(count):
            bean = Bean(type_name, self.toolbox)
            self.check(bean)
            self.signal("dispense", bean)
            beans.append(bean)
        return beans[0] if count == 1 else beans

    def check(self, bean: Bean) -> None:
        """
        Validate type, property names and values of a bean about to
        be written.

        Raises:
            ValidationError
        """
        type_name = bean.get_meta("type")
        if not type_name or not IDENTIFIER_PATTERN.match(str(type_name)):
            raise ValidationError(f"Invalid bean type: {type_name!r}")
        for prop, value in bean.items():
            if isinstance(value, (list, dict, tuple, set, Bean)):
                raise ValidationError(f"Invalid bean value: property {prop}")
            if not IDENTIFIER_PATTERN.match(prop):
                raise ValidationError(f"Invalid bean property: property {prop}")

    # ------------------------------------------------------------
    # Load
    # ------------------------------------------------------------

    def load(self, type_name: str, record_id: Any) -> Bean:
        """
        Load a bean by id. A missing row gives an empty bean of the
        type with id 0.
        """
        bean = self.dispense(type_name)
        stash = self._stash.get(self._nesting)
        row = stash.get(str(record_id)) if stash else None
        if row is None:
            outcome = self.writer.attempt(self.writer.query_record, type_name, {"id": [record_id]})
            rows = outcome.unwrap_or([], tolerate=not self.is_frozen())
            if not rows:
                return bean
            row = rows[-1]
        bean.import_row(row)
        self._nesting += 1
        try:
            self.signal("open", bean)
        finally:
            self._nesting -= 1
        bean.set_meta("tainted", False)
        bean.set_meta("changed", False)
        return bean

    def batch(self, type_name: str, ids: Sequence[Any]) -> List[Bean]:
        """Load many beans with a single query, in the order of `ids`."""
        ids = list(ids)
        if not ids:
            return []
        outcome = self.writer.attempt(self.writer.query_record, type_name, {"id": ids})
        rows = outcome.unwrap_or([], tolerate=not self.is_frozen())
        if not rows:
            return []
        self._stash[self._nesting] = {str(row["id"]): row for row in rows}
        try:
            return [self.load(type_name, record_id) for record_id in ids]
        finally:
            self._stash[self._nesting] = None

    def convert_to_beans(self, type_name: str, rows: Sequence[Dict[str, Any]]) -> List[Bean]:
        """Turn rows into beans via the stash (no extra queries)."""
        self._stash[self._nesting] = {str(row["id"]): row for row in rows}
        try:
            return [self.load(type_name, row["id"]) for row in rows]
        finally:
            self._stash[self._nesting] = None

    # ------------------------------------------------------------
    # Find / count / wipe
    # ------------------------------------------------------------

    def find(
        self,
        type_name: str,
        conditions: Optional[Dict[str, Any]] = None,
        sql: Optional[str] = None,
        bindings: Bindings = None,
    ) -> List[Bean]:
        """
        Beans matching {"col": [values]} conditions and an SQL snippet.

        Args:
            type_name: Bean type
            conditions: Column -> list of accepted values
            sql: WHERE fragment or trailing clause ("ORDER BY ...")
            bindings: Positional list or named dict for `sql`
        """
        if conditions is not None and not isinstance(conditions, dict):
            raise ValidationError("Conditions must be a dict of column -> values")
        check_identifier(type_name, "type")
        outcome = self.writer.attempt(self.writer.query_record, type_name, conditions or {}, sql, bindings)
        return self.convert_to_beans(type_name, outcome.unwrap_or([], tolerate=not self.is_frozen()))

    def find_all(self, type_name: str, sql: Optional[str] = None, bindings: Bindings = None) -> List[Bean]:
        return self.find(type_name, None, sql, bindings)

    def find_one(self, type_name: str, sql: Optional[str] = None, bindings: Bindings = None) -> Optional[Bean]:
        """First match or None."""
        beans = self.find(type_name, None, sql, bindings)
        return beans[0] if beans else None

    def count(self, type_name: str, sql: Optional[str] = None, bindings: Bindings = None) -> int:
        """Number of rows; 0 when the table or a column does not exist."""
        check_identifier(type_name, "type")
        outcome = self.writer.attempt(self.writer.query_record_count, type_name, {}, sql, bindings)
        return int(outcome.unwrap_or(0, tolerate=True))

    def wipe(self, type_name: str) -> bool:
        """Delete all rows of a type. False if its table does not exist."""
        check_identifier(type_name, "type")
        outcome = self.writer.attempt(self.writer.wipe, type_name)
        if outcome.is_ok:
            return True
        if outcome.state == SQLState.NO_SUCH_TABLE:
            return False
        return outcome.unwrap()

    # ------------------------------------------------------------
    # Store
    # ------------------------------------------------------------

    def store(self, bean: Bean) -> Union[int, str]:
        """
        Persist a bean and everything hanging off it.

        Returns:
            The id (int when integral)
        """
        if not isinstance(bean, Bean):
            raise ValidationError(f"Can only store beans, got {type(bean).__name__}")
        if not bean.has_lists_or_beans() and not bean.is_tainted():
            return _id_value(bean.id)

        self.signal("update", bean)
        if bean.has_lists_or_beans():
            self._store_with_lists(bean)
        else:
            self._store_bean(bean)
        self.signal("after_update", bean)
        return _id_value(bean.id)

    def _store_bean(self, bean: Bean) -> None:
        """Write the scalar properties of one bean."""
        if bean.get_meta("changed"):
            self.check(bean)
            type_name = bean.type
            values = {prop: value for prop, value in bean.items() if prop != "id"}
            if self._fluid_for(type_name):
                self.migrator.ensure_table(bean)
                columns = self.writer.get_columns(type_name)
                for prop, value in values.items():
                    self.migrator.modify_schema(bean, prop, value, columns)
            bean.id = self.writer.update_record(type_name, values, bean.id)
            bean.set_meta("changed", False)
        bean.set_meta("tainted", False)

    def _store_with_lists(self, bean: Bean) -> None:
        own_additions: List[Bean] = []
        own_trashcan: List[Bean] = []
        own_residue: List[Bean] = []
        shared_additions: List[Bean] = []
        shared_trashcan: List[Bean] = []
        shared_residue: List[Bean] = []

        for prop, value in bean.items():
            if isinstance(value, Bean):
                self._store_parent(bean, prop, value)
            elif isinstance(value, list):
                originals = bean.move_meta(f"sys.shadow.{prop}", []) or []
                additions, trashcan, residue = process_groups(originals, value)
                if prop.startswith("own"):
                    own_additions += additions
                    own_trashcan += trashcan
                    own_residue += residue
                elif prop.startswith("shared"):
                    shared_additions += additions
                    shared_trashcan += trashcan
                    shared_residue += residue
                bean.detach(prop)

        self._store_bean(bean)

        for child in own_trashcan:
            self._release_own(bean, child)
        for child in own_additions:
            self._adopt_own(bean, child)
        for child in own_residue:
            if child.is_tainted():
                self.store(child)

        association = self.toolbox.association
        for other in shared_trashcan:
            association.unassociate(other, bean)
        for other in shared_additions:
            association.associate(other, bean)
        for other in shared_residue:
            self.store(other)

    def _store_parent(self, bean: Bean, prop: str, parent: Bean) -> None:
        """Store a parent bean first and keep only its id on the child."""
        if not parent.id or parent.is_tainted():
            self.store(parent)
        link = f"{prop}_id"
        if str(bean.get(link)) != str(parent.id):
            bean.set(link, parent.id)
        bean.set_meta(f"cast.{link}", "id")
        bean.set_meta(f"sys.typeof.{prop}", parent.type)
        bean.detach(prop)
        bean.set_meta(f"sys.parentcache.{prop}", parent)

    def _owner_field(self, owner: Bean, child: Bean) -> str:
        alias = owner.get_meta(f"sys.alias.{child.type}")
        return alias or owner.type

    def _adopt_own(self, owner: Bean, child: Bean) -> None:
        field = self._owner_field(owner, child)
        link = f"{field}_id"
        child.set(link, owner.id)
        child.set_meta(f"cast.{link}", "id")
        child.set_meta(f"sys.typeof.{field}", owner.type)
        self.store(child)

    def _release_own(self, owner: Bean, child: Bean) -> None:
        """A child left its owner's list: trash it if dependent, else orphan it."""
        if self.config.schema.is_dependent(child.type, owner.type):
            self.trash(child)
            return
        child.unset(self._owner_field(owner, child))
        self.store(child)

    # ------------------------------------------------------------
    # Trash
    # ------------------------------------------------------------

    def trash(self, bean: Bean) -> int:
        """
        Delete a bean's row. The bean keeps its properties but its id
        is reset to 0.

        Returns:
            Number of deleted rows
        """
        if not isinstance(bean, Bean):
            raise ValidationError(f"Can only trash beans, got {type(bean).__name__}")
        self.signal("delete", bean)
        for prop, value in bean.items():
            if isinstance(value, (Bean, list)):
                bean.detach(prop)
        deleted = 0
        if bean.id:
            outcome = self.writer.attempt(self.writer.delete_record, bean.type, {"id": [bean.id]})
            deleted = outcome.unwrap_or(0, tolerate=not self.is_frozen())
        bean.id = 0
        self.signal("after_delete", bean)
        return deleted

    def trash_all(self, beans: Sequence[Bean]) -> int:
        return sum(self.trash(bean) for bean in beans)


def _identity(bean: Bean) -> Tuple[Any, ...]:
    if bean.id:
        return ("row", bean.type, str(bean.id))
    return ("object", id(bean))


def process_groups(
    originals: Sequence[Bean], current: Sequence[Bean]
) -> Tuple[List[Bean], List[Bean], List[Bean]]:
    """
    Diff a list against its load time snapshot.

    Returns:
        (additions, trashcan, residue): beans only in `current`, beans
        only in `originals`, beans in both
    """
    original_keys = {_identity(bean) for bean in originals}
    current_keys = {_identity(bean) for bean in current}
    additions = [bean for bean in current if _identity(bean) not in original_keys]
    trashcan = [bean for bean in originals if _identity(bean) not in current_keys]
    residue = [bean for bean in current if _identity(bean) in original_keys]
    return additions, trashcan, residue


def _id_value(value: Any) -> Union[int, str]:
    text = str(value)
    try:
        number = int(text)
    except ValueError:
        return text
    return number if str(number) == text else text
