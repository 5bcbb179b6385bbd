# ==============================================
# Bean
# ==============================================
#
# PURPOSE:
#   A dynamic, typed record. Properties are plain scalars, a parent
#   bean, or an own-/shared-list of beans. The bean remembers what it
#   looked like when it was loaded so the object database knows what
#   to write back.
#
# CLASS: Bean
# -----------
#   Stateful — properties (ordered), meta data, one-shot modifiers and
#   a reference to the Toolbox it was dispensed from.
#
#   Access:
#   -------
#   - get(name) / set(name, value) / unset(name)
#   - bean[name], bean[name] = value, del bean[name], name in bean
#
#   Lists:
#   ------
#   - "ownPage"     → beans of type page whose book_id points here
#   - "sharedTag"   → beans of type tag linked through book_tag
#
#   One-shot modifiers (consumed by the next property access):
#   ----------------------------------------------------------
#   - with_sql(sql, bindings) / with_condition(sql, bindings)
#   - alias(name)       own-list FK column is <name>_id
#   - fetch_as(type)    parent property holds a bean of another type
#
#   Meta keys used by the engine:
#   -----------------------------
#   - type, tainted, changed
#   - sys.orig                  snapshot taken by import_row()
#   - sys.shadow.<list>         list as loaded, diffed on store
#   - sys.parentcache.<prop>    owner bean handed to own-list children
#   - sys.typeof.<prefix>       target type of <prefix>_id
#   - sys.alias.<type>          alias used to load own<Type>
#   - cast.<prop>               explicit column type
#
# ==============================================

from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence, Union

from fluidbean.errors import ValidationError
from fluidbean.normalization.naming import (
    camel_to_snake,
    check_identifier,
    own_list_name,
    parse_list_property,
)
from fluidbean.normalization.value_normalizer import ValueNormalizer


class Bean:
    """A row of any type."""

    def __init__(self, type_name: str, toolbox: Any = None):
        self._toolbox = toolbox
        self._properties: Dict[str, Any] = {"id": 0}
        self._meta: Dict[str, Any] = {
            "type": type_name,
            "tainted": True,
            "changed": True,
            "sys.orig": {"id": 0},
        }
        self._clear_modifiers()

    # ------------------------------------------------------------
    # Identity
    # ------------------------------------------------------------

    @property
    def type(self) -> str:
        return self._meta["type"]

    @property
    def id(self) -> Any:
        return self._properties.get("id", 0)

    @id.setter
    def id(self, value: Any) -> None:
        self._properties["id"] = value

    @property
    def toolbox(self) -> Any:
        return self._toolbox

    def set_toolbox(self, toolbox: Any) -> None:
        self._toolbox = toolbox

    @property
    def _beautify(self) -> bool:
        if self._toolbox is None:
            return True
        return self._toolbox.config.schema.beautify

    def _name(self, name: str) -> str:
        """Property name as stored: list names kept, camelCase -> snake_case."""
        if not isinstance(name, str):
            raise ValidationError(f"Invalid property name: {name!r}")
        if parse_list_property(name) is not None or name.islower() or not self._beautify:
            return name
        return camel_to_snake(name)

    def _require_toolbox(self) -> Any:
        if self._toolbox is None:
            raise ValidationError(f"Bean of type {self.type!r} is not attached to a toolbox")
        return self._toolbox

    # ------------------------------------------------------------
    # Meta
    # ------------------------------------------------------------

    def get_meta(self, key: str, default: Any = None) -> Any:
        return self._meta.get(key, default)

    def set_meta(self, key: str, value: Any) -> "Bean":
        self._meta[key] = value
        return self

    def move_meta(self, key: str, default: Any = None) -> Any:
        """Return a meta value and remove it."""
        return self._meta.pop(key, default)

    def has_meta(self, key: str) -> bool:
        return key in self._meta

    def is_tainted(self) -> bool:
        return bool(self._meta.get("tainted"))

    # ------------------------------------------------------------
    # Modifiers
    # ------------------------------------------------------------

    def _clear_modifiers(self) -> None:
        self._with_sql = ""
        self._with_params: Union[List[Any], Dict[str, Any]] = []
        self._alias_name: Optional[str] = None
        self._fetch_type: Optional[str] = None

    def with_sql(self, sql: str, bindings: Union[Sequence[Any], Mapping[str, Any], None] = None) -> "Bean":
        """Append SQL (ORDER BY, LIMIT...) to the next list load."""
        self._with_sql = f" {sql} "
        self._with_params = dict(bindings) if isinstance(bindings, Mapping) else list(bindings or [])
        return self

    def with_condition(self, sql: str, bindings: Union[Sequence[Any], Mapping[str, Any], None] = None) -> "Bean":
        """Add an AND condition to the next list load."""
        self._with_sql = f" AND {sql} "
        self._with_params = dict(bindings) if isinstance(bindings, Mapping) else list(bindings or [])
        return self

    def alias(self, name: str) -> "Bean":
        """Load the next own-list through <name>_id instead of <type>_id."""
        self._alias_name = check_identifier(name, "alias")
        return self

    def fetch_as(self, type_name: str) -> "Bean":
        """Load the next parent property as a bean of `type_name`."""
        self._fetch_type = check_identifier(type_name, "type")
        return self

    def _has_sql(self) -> bool:
        return self._with_sql != ""

    # ------------------------------------------------------------
    # Get / set
    # ------------------------------------------------------------

    def get(self, name: str) -> Any:
        """
        Read a property.

        Returns the cached scalar, the parent bean behind <name>_id, the
        own-/shared-list for list names, or None.
        """
        name = self._name(name)
        list_prop = parse_list_property(name, self._beautify)
        exists = name in self._properties
        field_link = f"{name}_id"

        if not exists and self._properties.get(field_link) is None and list_prop is None:
            self._clear_modifiers()
            return None

        different_alias = False
        if list_prop is not None and list_prop.is_own and self._alias_name is not None:
            loaded_alias = self._meta.get(f"sys.alias.{list_prop.type}")
            different_alias = loaded_alias is not None and loaded_alias != self._alias_name

        if exists and (list_prop is None or (not self._has_sql() and not different_alias)):
            self._clear_modifiers()
            return self._properties[name]

        if list_prop is None and self._properties.get(field_link) is not None:
            self._meta["tainted"] = True
            parent = self._meta.get(f"sys.parentcache.{name}")
            if parent is None:
                parent_type = self._fetch_type or self._meta.get(f"sys.typeof.{name}") or name
                parent = self._require_toolbox().oodb.load(parent_type, self._properties[field_link])
            self._properties[name] = parent
            self._clear_modifiers()
            return parent

        beans = self._load_list(list_prop)
        self._properties[name] = beans
        self._meta[f"sys.shadow.{name}"] = list(beans)
        self._meta["tainted"] = True
        self._clear_modifiers()
        return beans

    def _load_list(self, list_prop: Any) -> List["Bean"]:
        if list_prop.is_own:
            return self._own_list(list_prop.type)
        return self._shared_list(list_prop.type)

    def _own_list(self, type_name: str) -> List["Bean"]:
        if self._alias_name:
            parent_field = self._alias_name
            self._meta[f"sys.alias.{type_name}"] = self._alias_name
        else:
            parent_field = self.type
        if not self.id:
            return []

        link = check_identifier(f"{parent_field}_id", "property")
        if isinstance(self._with_params, dict):
            bindings: Any = dict(self._with_params)
            bindings[":owner_id"] = self.id
            sql = f" {link} = :owner_id {self._with_sql}"
        else:
            bindings = [self.id] + list(self._with_params)
            sql = f" {link} = ? {self._with_sql}"
        beans = self._require_toolbox().oodb.find(type_name, None, sql, bindings)
        for bean in beans:
            bean.set_meta(f"sys.parentcache.{parent_field}", self)
        return beans

    def _shared_list(self, type_name: str) -> List["Bean"]:
        if not self.id:
            return []
        return self._require_toolbox().association.related(self, type_name, self._with_sql, self._with_params)

    def set(self, name: str, value: Any) -> "Bean":
        """
        Write a property.

        Raises:
            ValidationError: on malformed names, a scalar assigned to a
                parent slot, lists outside own/shared names, dicts and
                other non-scalar values
        """
        name = check_identifier(self._name(name), "property")
        list_prop = parse_list_property(name, self._beautify)

        if list_prop is not None:
            if not isinstance(value, (list, tuple)):
                raise ValidationError(f"{name} only accepts a list of beans")
            if any(not isinstance(item, Bean) for item in value):
                raise ValidationError(f"{name} may only contain beans")
            different_alias = False
            if list_prop.is_own and self._alias_name is not None:
                loaded_alias = self._meta.get(f"sys.alias.{list_prop.type}")
                different_alias = loaded_alias != self._alias_name
            if name not in self._properties or self._has_sql() or different_alias:
                self._meta[f"sys.shadow.{name}"] = list(self._load_list(list_prop))
            self._clear_modifiers()
            self._meta["tainted"] = True
            self._meta["changed"] = True
            self._properties[name] = list(value)
            return self

        self._clear_modifiers()
        field_link = f"{name}_id"

        if field_link in self._properties and not isinstance(value, Bean):
            if value is None or value is False:
                self.unset(name)
                return self
            raise ValidationError(f"Cannot assign a scalar to parent property {name!r}; unset it first")

        if isinstance(value, Bean) or name == "id":
            pass
        elif isinstance(value, (list, tuple, dict, set)):
            raise ValidationError(f"Invalid value for property {name!r}: {type(value).__name__}")
        else:
            value = ValueNormalizer.normalize(value)

        self._meta["tainted"] = True
        self._meta["changed"] = True

        if name.endswith("_id") and name[:-3] in self._properties and isinstance(self._properties[name[:-3]], Bean):
            # the link column now decides; drop the stale parent
            del self._properties[name[:-3]]
            self._meta.pop(f"sys.parentcache.{name[:-3]}", None)

        self._properties[name] = value
        return self

    def unset(self, name: str) -> "Bean":
        """
        Remove a property.

        For a parent property the link column is cleared as well; for
        a list property the loaded list is forgotten.
        """
        name = self._name(name)
        if parse_list_property(name, self._beautify) is not None:
            self._properties.pop(name, None)
            self._meta.pop(f"sys.shadow.{name}", None)
            return self

        field_link = f"{name}_id"
        if self._properties.get(field_link) is not None:
            self._properties[field_link] = None
            self._meta["tainted"] = True
            self._meta["changed"] = True
        self._meta.pop(f"sys.parentcache.{name}", None)
        if name in self._properties:
            del self._properties[name]
            self._meta["tainted"] = True
            self._meta["changed"] = True
        return self

    def detach(self, name: str) -> Any:
        """
        Take a parent bean or list out of the property map without
        touching its link column. Used by the object database after the
        value has been persisted.
        """
        return self._properties.pop(name, None)

    def link(self, type_or_bean: Union[str, "Bean"], data: Optional[Mapping[str, Any]] = None) -> "Bean":
        """
        Append a link bean to own<Type> and return it.

        Args:
            type_or_bean: Type of a new link bean, or an existing bean
            data: Properties for a new link bean
        """
        if isinstance(type_or_bean, str):
            bean = self._require_toolbox().oodb.dispense(camel_to_snake(type_or_bean))
            bean.import_data(data or {})
        else:
            bean = type_or_bean
        list_name = own_list_name(bean.type)
        items = list(self.get(list_name))
        items.append(bean)
        self.set(list_name, items)
        return bean

    def fresh(self) -> "Bean":
        """A newly loaded copy of this bean."""
        return self._require_toolbox().oodb.load(self.type, self.id)

    def count_own(self, type_name: str) -> int:
        """Number of own-list beans of `type_name` without loading them."""
        link = self._alias_name or self.type
        self._clear_modifiers()
        if not self.id:
            return 0
        return self._require_toolbox().oodb.count(type_name, f" {check_identifier(link)}_id = ? ", [self.id])

    def count_shared(self, type_name: str) -> int:
        """Number of beans of `type_name` linked to this one."""
        self._clear_modifiers()
        return self._require_toolbox().association.related_count(self, type_name)

    # ------------------------------------------------------------
    # Change tracking
    # ------------------------------------------------------------

    def import_row(self, row: Mapping[str, Any]) -> "Bean":
        """
        Populate from a database row. The row becomes the 'old' snapshot.

        Column values are normalized the way set() normalizes them; the
        id is kept as the driver returned it.
        """
        values = {
            key: value if key == "id" else ValueNormalizer.from_database(value)
            for key, value in row.items()
        }
        self._properties = values
        self._meta["sys.orig"] = dict(values)
        self._meta["changed"] = False
        self._meta["tainted"] = False
        return self

    def import_data(
        self,
        data: Mapping[str, Any],
        selection: Optional[Sequence[str]] = None,
        not_null: bool = False,
    ) -> "Bean":
        """Set many properties at once, optionally only those in `selection`."""
        for key, value in data.items():
            if key == "__meta__":
                continue
            if selection is not None and key not in selection:
                continue
            if not_null and value is None:
                continue
            if key == "id":
                self.id = value
                continue
            self.set(key, value)
        return self

    def old(self, name: str) -> Any:
        """The value a property had when the bean was loaded."""
        return self._meta.get("sys.orig", {}).get(self._name(name))

    def has_changed(self, name: str) -> bool:
        name = self._name(name)
        if name not in self._properties:
            return False
        current = self._properties[name]
        original = self.old(name)
        if isinstance(current, (Bean, list)):
            return True
        return _text(original) != _text(current)

    # ------------------------------------------------------------
    # Views
    # ------------------------------------------------------------

    def properties(self) -> Dict[str, Any]:
        return dict(self._properties)

    def is_empty(self) -> bool:
        """True if no property besides id holds a value."""
        return not any(
            value not in (None, "", 0, "0", [], False)
            for key, value in self._properties.items()
            if key != "id"
        )

    def equals(self, other: Any) -> bool:
        """Same type and same id."""
        return (
            isinstance(other, Bean)
            and other.type == self.type
            and str(other.id) == str(self.id)
        )

    def export(self, meta: bool = False, parents: bool = False) -> Dict[str, Any]:
        """
        Plain dict of this bean.

        Loaded lists are exported as lists of dicts and loaded parents as
        nested dicts. With parents=True every <name>_id is resolved first.
        With meta=True a "__meta__" entry carries the public meta data.
        """
        if parents:
            for key in list(self._properties):
                if key.endswith("_id") and self._properties[key] is not None:
                    self.get(key[:-3])

        exported: Dict[str, Any] = {}
        for key, value in self._properties.items():
            if isinstance(value, Bean):
                value = value.export(meta, parents)
            elif isinstance(value, list):
                value = [item.export(meta, parents) for item in value]
            exported[key] = value
        if meta:
            exported["__meta__"] = {
                key: value
                for key, value in self._meta.items()
                if not key.startswith("sys.")
            }
        return exported

    def has_lists_or_beans(self) -> bool:
        return any(isinstance(value, (Bean, list)) for value in self._properties.values())

    # ------------------------------------------------------------
    # Mapping sugar
    # ------------------------------------------------------------

    def __getitem__(self, name: str) -> Any:
        return self.get(name)

    def __setitem__(self, name: str, value: Any) -> None:
        self.set(name, value)

    def __delitem__(self, name: str) -> None:
        self.unset(name)

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self._name(name) in self._properties

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._properties))

    def __len__(self) -> int:
        return len(self._properties)

    def items(self):
        return list(self._properties.items())

    def __repr__(self) -> str:
        return f"<Bean {self.type} id={self.id!r}>"


def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value)
