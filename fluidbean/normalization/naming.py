# ==============================================
# Naming Rules
# ==============================================
#
# PURPOSE:
#   All the string rules the engine applies to type names,
#   property names and derived names (list properties, link
#   tables, foreign key columns).
#
# FUNCTIONS:
# ----------
# - check_identifier(name, what) -> str
#     Raise ValidationError unless name matches ^[A-Za-z0-9_]+$.
# - camel_to_snake(name) / snake_to_camel(name)
# - parse_list_property(name, beautify) -> ListProperty | None
#     "ownBookPage" -> ListProperty("own", "book_page")
# - own_list_name(type) / shared_list_name(type)
# - link_type_name(type_a, type_b, renames) -> str
#     Sorted alphabetically, joined with "_", rename table applied.
# - link_columns(type_a, type_b) -> (col_a, col_b)
#     "<a>_id", "<b>_id" or "<b>2_id" when a == b.
#
# ==============================================

import re
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from fluidbean.errors import ValidationError

IDENTIFIER_PATTERN = re.compile(r"^[A-Za-z0-9_]+$")
LIST_PROPERTY_PATTERN = re.compile(r"^(own|shared)([A-Z][A-Za-z0-9_]*)$")
CAMEL_PATTERN = re.compile(r"(?<=[a-z0-9])([A-Z])|([A-Z])(?=[a-z])")


@dataclass(frozen=True)
class ListProperty:
    """A parsed own-/shared-list property name."""
    kind: str  # "own" or "shared"
    type: str  # target bean type

    @property
    def is_own(self) -> bool:
        return self.kind == "own"

    @property
    def is_shared(self) -> bool:
        return self.kind == "shared"


def is_identifier(name: object) -> bool:
    return isinstance(name, str) and bool(IDENTIFIER_PATTERN.match(name))


def check_identifier(name: object, what: str = "identifier") -> str:
    """
    Validate a type, property, table or column name.

    Raises:
        ValidationError: if the name contains anything but letters,
            digits and underscores (or is empty / not a string)
    """
    if not is_identifier(name):
        raise ValidationError(f"Invalid {what}: {name!r}")
    return name  # type: ignore[return-value]


def camel_to_snake(name: str) -> str:
    """bookPage -> book_page, BookPage -> book_page, book -> book"""
    if not name:
        return name
    head = name[0].lower() + name[1:]
    return CAMEL_PATTERN.sub(lambda m: "_" + (m.group(1) or m.group(2)), head).lower()


def snake_to_camel(name: str, upper_first: bool = True) -> str:
    """book_page -> BookPage"""
    parts = [p for p in name.split("_") if p]
    if not parts:
        return name
    camel = "".join(p[0].upper() + p[1:] for p in parts)
    if not upper_first:
        camel = camel[0].lower() + camel[1:]
    return camel


def parse_list_property(name: str, beautify: bool = True) -> Optional[ListProperty]:
    """
    Recognize own/shared list properties.

    A list property is "own" or "shared" immediately followed by an
    uppercase letter. The remainder names the target type.
    """
    match = LIST_PROPERTY_PATTERN.match(name)
    if not match:
        return None
    kind, rest = match.groups()
    if beautify:
        target = camel_to_snake(rest)
    else:
        target = rest[0].lower() + rest[1:]
    return ListProperty(kind=kind, type=target)


def own_list_name(bean_type: str) -> str:
    return "own" + snake_to_camel(bean_type)


def shared_list_name(bean_type: str) -> str:
    return "shared" + snake_to_camel(bean_type)


def link_type_name(type_a: str, type_b: str, renames: Optional[Dict[str, str]] = None) -> str:
    """
    Name of the implicit link type between two bean types.

    Examples:
        link_type_name("product", "order") -> "order_product"
        link_type_name("person", "person") -> "person_person"
    """
    name = "_".join(sorted([type_a, type_b]))
    if renames and name in renames:
        return renames[name]
    return name


def link_columns(type_a: str, type_b: str) -> Tuple[str, str]:
    """Foreign key columns of the link table, from the point of view of type_a."""
    col_a = f"{type_a}_id"
    col_b = f"{type_b}_id"
    if col_a == col_b:
        col_b = f"{type_b}2_id"
    return col_a, col_b
