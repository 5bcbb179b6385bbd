# ==============================================
# Migrator
# ==============================================
#
# PURPOSE:
#   Evolve the schema while a bean is being stored in fluid mode:
#   create its table, add a column for each new property, widen a
#   column whose type no longer fits the incoming value, and index +
#   constrain foreign key columns.
#
# WHY THIS CLASS EXISTS:
#   1. Columns only ever widen. The decision "does this value still fit
#      the column?" compares two type codes of the same dialect ladder.
#   2. A column ending in "_id" that was just added or widened is a
#      relation; it gets an index and a foreign key whose ON DELETE rule
#      (CASCADE or SET NULL) follows the dependency map.
#
# CLASS: Migrator
# ---------------
#   Stateless coordinator over one Writer and one SchemaConfig.
#
#   Methods:
#   --------
#   - ensure_table(bean) -> bool
#       Create the bean's table if it is missing.
#
#   - modify_schema(bean, prop, value, columns) -> bool
#       Add or widen the column for one property. Returns True when
#       the column changed.
#
#   - column_code(bean, prop, value, exists) -> int
#       Type code the column must be able to hold.
#
# ==============================================

from typing import Any, Dict, Optional

from fluidbean.config import SchemaConfig
from fluidbean.log import get_logger

logger = get_logger(__name__)


class Migrator:
    """Fluid schema coordinator."""

    def __init__(self, writer: Any, schema: Optional[SchemaConfig] = None):
        self.writer = writer
        self.schema = schema or SchemaConfig()

    def ensure_table(self, bean: Any) -> bool:
        """
        Create the table of a bean if it does not exist yet.

        Returns:
            True if the table was created
        """
        type_name = bean.get_meta("type")
        if self.writer.table_exists(type_name):
            return False
        self.writer.create_table(type_name)
        bean.set_meta("buildreport.flags.created", True)
        return True

    def column_code(self, bean: Any, prop: str, value: Any, exists: bool) -> int:
        """
        Type code for a property's column.

        An explicit `cast.<prop>` wins. New columns may take a special
        type (date, geometry...); existing ones are compared on the
        plain ladder only.
        """
        cast = bean.get_meta(f"cast.{prop}")
        if cast is not None:
            if cast == "id":
                return self.writer.id_code
            return self.writer.cast_code(cast)
        return self.writer.scan_type(value, not exists)

    def modify_schema(
        self,
        bean: Any,
        prop: str,
        value: Any,
        columns: Optional[Dict[str, str]] = None,
    ) -> bool:
        """
        Make sure the column for `prop` can hold `value`.

        Args:
            bean: The bean being stored
            prop: Property (column) name
            value: Value about to be written
            columns: Current columns of the table (refreshed by the caller)

        Returns:
            True if the column was added or widened
        """
        table = bean.get_meta("type")
        if columns is None:
            columns = self.writer.get_columns(table)

        changed = False
        if prop in columns:
            code = self.column_code(bean, prop, value, exists=True)
            current = self.writer.code(columns[prop])
            if code > current:
                self.writer.widen_column(table, prop, code)
                bean.set_meta("buildreport.flags.widen", True)
                changed = True
        else:
            code = self.column_code(bean, prop, value, exists=False)
            self.writer.add_column(table, prop, code)
            bean.set_meta("buildreport.flags.addcolumn", True)
            changed = True

        if changed and prop.endswith("_id"):
            self._constrain_relation(bean, table, prop)
        return changed

    def _constrain_relation(self, bean: Any, table: str, column: str) -> None:
        """Index a new *_id column and point a foreign key at its target."""
        prefix = column[:-3]
        self.writer.add_index(table, f"index_foreignkey_{table}_{prefix}", column)

        target = bean.get_meta(f"sys.typeof.{prefix}") or prefix
        unique = bean.get_meta("sys.buildcommand.unique")
        is_link = isinstance(unique, (list, tuple))
        is_dependent = is_link or self.schema.is_dependent(table, target)
        if self.writer.table_exists(target):
            self.writer.add_fk(table, target, column, "id", is_dependent)

        if is_link:
            existing = self.writer.get_columns(table)
            if all(col in existing for col in unique):
                self.writer.add_unique_index(table, list(unique))
                bean.set_meta("sys.buildcommand.unique", None)
