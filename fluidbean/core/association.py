# ==============================================
# AssociationManager
# ==============================================
#
# PURPOSE:
#   Many-to-many relations through implicit link tables.
#
#   associate(book, tag) stores a "book_tag" bean with book_id and
#   tag_id. For two beans of the same type the second column is
#   <type>2_id and the ids are ordered, so A-B and B-A are one row.
#
# CLASS: AssociationManager
# -------------------------
#   Stateless apart from its Toolbox.
#
#   Methods:
#   --------
#   - associate(a, b, extra=None) -> id | list[id]
#   - unassociate(a, b, fast=False)
#   - related(bean, type, sql, bindings) -> list[Bean]
#   - related_simple(bean, type, sql, bindings) -> list[Bean]
#   - related_one / related_last / related_count / are_related
#   - related_links(bean, type) -> list[Bean]   (the link beans)
#   - clear_relations(bean, type)
#
# ==============================================

from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from fluidbean.bean.bean import Bean
from fluidbean.errors import SQLError, SQLState, ValidationError
from fluidbean.log import get_logger
from fluidbean.normalization.naming import check_identifier, link_columns

logger = get_logger(__name__)

Beans = Union[Bean, Sequence[Bean]]
Bindings = Union[Sequence[Any], Dict[str, Any], None]


def _as_list(beans: Beans) -> List[Bean]:
    items = list(beans) if isinstance(beans, (list, tuple)) else [beans]
    for item in items:
        if not isinstance(item, Bean):
            raise ValidationError(f"Expected a bean, got {type(item).__name__}")
    return items


def _extra_values(extra: Any) -> Dict[str, Any]:
    data = extra.export() if isinstance(extra, Bean) else extra
    return {k: v for k, v in data.items() if k != "id"}


def _sort_key(value: Any) -> Any:
    text = str(value)
    return (0, int(text), "") if text.isdigit() else (1, 0, text)


class AssociationManager:
    """Links beans of two types through a link table."""

    def __init__(self, toolbox: Any):
        self.toolbox = toolbox

    @property
    def oodb(self) -> Any:
        return self.toolbox.oodb

    @property
    def writer(self) -> Any:
        return self.toolbox.writer

    def _tolerate(self) -> bool:
        return not self.oodb.is_frozen()

    # ------------------------------------------------------------
    # Link / unlink
    # ------------------------------------------------------------

    def associate(
        self,
        beans1: Beans,
        beans2: Beans,
        extra: Union[Mapping[str, Any], Bean, None] = None,
    ) -> Union[Any, List[Any]]:
        """
        Link every bean of `beans1` to every bean of `beans2`.

        Args:
            beans1: A bean or list of beans
            beans2: A bean or list of beans
            extra: Properties (or a bean whose properties) to put on
                each link bean

        Returns:
            The link id, or a list of link ids when more than one pair
            was linked. Pairs that were already linked report the
            existing link id; `extra` is written onto that link.
        """
        results = []
        for bean1 in _as_list(beans1):
            for bean2 in _as_list(beans2):
                results.append(self._associate_beans(bean1, bean2, extra))
        return results[0] if len(results) == 1 else results

    def _associate_beans(self, bean1: Bean, bean2: Bean, extra: Any) -> Any:
        self.oodb.store(bean1)
        self.oodb.store(bean2)
        type1, type2 = bean1.type, bean2.type
        col1, col2 = link_columns(type1, type2)
        id1, id2 = bean1.id, bean2.id
        if type1 == type2 and _sort_key(id1) > _sort_key(id2):
            id1, id2 = id2, id1

        existing = self.writer.attempt(self.writer.query_record_link, type1, type2, id1, id2)
        row = existing.unwrap_or(None, tolerate=True)
        if row:
            if extra is None:
                return row["id"]
            link = self.oodb.convert_to_beans(self.writer.link_table(type1, type2), [row])[0]
            link.import_data(_extra_values(extra))
            return self.oodb.store(link)

        link = self.oodb.dispense(self.writer.link_table(type1, type2))
        if extra is not None:
            link.import_data(_extra_values(extra))
        link.set_meta(f"cast.{col1}", "id")
        link.set_meta(f"cast.{col2}", "id")
        link.set_meta(f"sys.typeof.{col1[:-3]}", type1)
        link.set_meta(f"sys.typeof.{col2[:-3]}", type2)
        link.set_meta("sys.buildcommand.unique", [col1, col2])
        link.set(col1, id1)
        link.set(col2, id2)

        try:
            link_id = self.oodb.store(link)
        except SQLError as e:
            if e.state != SQLState.INTEGRITY_VIOLATION:
                raise
            logger.debug("constraint_failed", table=link.type, error=str(e))
            return None

        if link.get_meta("buildreport.flags.created"):
            link.set_meta("buildreport.flags.created", False)
            if not self.oodb.is_frozen():
                self.writer.add_constraint_for_types(type1, type2)
        return link_id

    def unassociate(self, beans1: Beans, beans2: Beans, fast: bool = False) -> None:
        """
        Remove the links between the given beans.

        With fast=True the link rows are deleted directly; otherwise each
        link bean is loaded and trashed so that delete events fire.
        """
        for bean1 in _as_list(beans1):
            for bean2 in _as_list(beans2):
                self.oodb.store(bean1)
                self.oodb.store(bean2)
                type1, type2 = bean1.type, bean2.type
                outcome = self.writer.attempt(self.writer.query_record_link, type1, type2, bean1.id, bean2.id)
                row = outcome.unwrap_or(None, tolerate=self._tolerate())
                if not row:
                    continue
                link_type = self.writer.link_table(type1, type2)
                if fast:
                    self.writer.attempt(self.writer.delete_record, link_type, {"id": [row["id"]]}).unwrap_or(
                        0, tolerate=self._tolerate()
                    )
                    continue
                for link in self.oodb.convert_to_beans(link_type, [row]):
                    self.oodb.trash(link)

    def clear_relations(self, bean: Bean, type_name: str) -> None:
        """Remove every link between `bean` and beans of `type_name`."""
        check_identifier(type_name, "type")
        self.oodb.store(bean)
        outcome = self.writer.attempt(self.writer.delete_relations, bean.type, type_name, bean.id)
        outcome.unwrap_or(0, tolerate=self._tolerate())

    # ------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------

    def _related_rows(
        self, beans: Beans, type_name: str, sql: Optional[str], bindings: Bindings
    ) -> List[Dict[str, Any]]:
        sources = _as_list(beans)
        ids = [bean.id for bean in sources if bean.id]
        if not ids:
            return []
        check_identifier(type_name, "type")
        source_type = sources[0].type
        outcome = self.writer.attempt(
            self.writer.query_record_related, source_type, type_name, ids, sql, bindings
        )
        rows = outcome.unwrap_or([], tolerate=self._tolerate())
        if source_type != type_name:
            return rows
        for row in rows:
            # a bean linked to itself reports no linked_by
            if row.get("linked_by") is None:
                row["linked_by"] = row["id"]
        return rows

    def _collect(self, type_name: str, rows: List[Dict[str, Any]]) -> List[Bean]:
        links: Dict[str, List[Any]] = {}
        unique_rows = []
        for row in rows:
            row = dict(row)
            key = str(row["id"])
            linked_by = row.pop("linked_by", None)
            if key not in links:
                links[key] = []
                unique_rows.append(row)
            links[key].append(linked_by)
        beans = self.oodb.convert_to_beans(type_name, unique_rows)
        for bean in beans:
            bean.set_meta("sys.belongs_to", links[str(bean.id)])
        return beans

    def related(
        self,
        beans: Beans,
        type_name: str,
        sql: Optional[str] = None,
        bindings: Bindings = None,
    ) -> List[Bean]:
        """Beans of `type_name` linked to `beans` (each only once)."""
        beans_out = self._collect(type_name, self._related_rows(beans, type_name, sql, bindings))
        for bean in beans_out:
            bean.move_meta("sys.belongs_to")
        return beans_out

    def related_simple(
        self,
        beans: Beans,
        type_name: str,
        sql: Optional[str] = None,
        bindings: Bindings = None,
    ) -> List[Bean]:
        """
        Like related(), but every bean carries the ids of the source
        beans it was reached from in meta "sys.belongs_to".
        """
        return self._collect(type_name, self._related_rows(beans, type_name, sql, bindings))

    def related_one(
        self, bean: Bean, type_name: str, sql: Optional[str] = None, bindings: Bindings = None
    ) -> Optional[Bean]:
        beans = self.related(bean, type_name, sql, bindings)
        return beans[0] if beans else None

    def related_last(
        self, bean: Bean, type_name: str, sql: Optional[str] = None, bindings: Bindings = None
    ) -> Optional[Bean]:
        beans = self.related(bean, type_name, sql, bindings)
        return beans[-1] if beans else None

    def related_count(
        self, bean: Bean, type_name: str, sql: Optional[str] = None, bindings: Bindings = None
    ) -> int:
        if not isinstance(bean, Bean):
            raise ValidationError(f"Expected a bean, got {type(bean).__name__}")
        if not bean.id:
            return 0
        check_identifier(type_name, "type")
        outcome = self.writer.attempt(
            self.writer.query_record_count_related, bean.type, type_name, bean.id, sql, bindings
        )
        return int(outcome.unwrap_or(0, tolerate=self._tolerate()))

    def are_related(self, bean1: Bean, bean2: Bean) -> bool:
        if not bean1.id or not bean2.id:
            return False
        outcome = self.writer.attempt(self.writer.query_record_link, bean1.type, bean2.type, bean1.id, bean2.id)
        return bool(outcome.unwrap_or(None, tolerate=self._tolerate()))

    def related_links(self, bean: Bean, type_name: str) -> List[Bean]:
        """The link beans between `bean` and beans of `type_name`."""
        if not bean.id:
            return []
        check_identifier(type_name, "type")
        outcome = self.writer.attempt(self.writer.query_record_links, bean.type, type_name, [bean.id])
        rows = outcome.unwrap_or([], tolerate=self._tolerate())
        return self.oodb.convert_to_beans(self.writer.link_table(bean.type, type_name), rows)
