# ==============================================
# SQL Helper
# ==============================================
#
# PURPOSE:
#   The shared helper library every dialect is composed with.
#   Nothing in here knows which database it is talking to; the
#   quote character and type table are handed in.
#
# CLASSES:
# --------
# - SQLHelper(quote)
#     esc(identifier, dont_quote=False) -> str
#     glue(sql, glue=None) -> str
#     conditions(conditions, bindings, add_sql) -> (sql, bindings)
#     in_clause(values, bindings) -> (placeholders, bindings)
#
# - TypeTable(sql_types, aliases)
#     Bidirectional map between type codes and SQL type strings.
#
# CONSTANTS:
# ----------
# - GLUE_AND / GLUE_WHERE   → how a caller fragment is attached
# - KEEP_CACHE              → trailing sentinel comment of cacheable reads
# - C_DATATYPE_RANGE_SPECIAL / C_DATATYPE_SPECIFIED
#
# ==============================================

import json
import re
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from fluidbean.errors import ValidationError
from fluidbean.normalization.naming import IDENTIFIER_PATTERN

GLUE_AND = "AND"
GLUE_WHERE = "WHERE"

KEEP_CACHE = "-- keep-cache"

# Codes at or above this value are "special" (dates, geometry, money)
C_DATATYPE_RANGE_SPECIAL = 80
# Column declared by hand: never widened
C_DATATYPE_SPECIFIED = 99

CLAUSE_PATTERN = re.compile(
    r"^(INNER|LEFT|RIGHT|JOIN|AND|OR|WHERE|ORDER|GROUP|HAVING|LIMIT|OFFSET)\s+",
    re.IGNORECASE,
)
DIGITS_PATTERN = re.compile(r"^\d+$")

Bindings = Union[List[Any], Dict[str, Any]]


def keeps_cache(sql: str) -> bool:
    """True if a statement carries the trailing keep-cache sentinel."""
    return sql.rstrip().endswith(KEEP_CACHE)


def cache_key(*parts: Any) -> str:
    return json.dumps(parts, sort_keys=True, default=str)


class SQLHelper:
    """Identifier escaping and WHERE-clause building."""

    def __init__(self, quote: str = "`"):
        self.quote = quote

    def esc(self, identifier: str, dont_quote: bool = False) -> str:
        """
        Check and quote a structural identifier (table or column).

        Raises:
            ValidationError: unless the identifier matches ^[A-Za-z0-9_]+$
        """
        if not isinstance(identifier, str) or not IDENTIFIER_PATTERN.match(identifier):
            raise ValidationError(f"Identifier does not conform to naming policy: {identifier!r}")
        if dont_quote:
            return identifier
        return f"{self.quote}{identifier}{self.quote}"

    def glue(self, sql: Optional[str], glue: Optional[str] = None) -> str:
        """
        Attach a caller supplied fragment to generated SQL.

        Fragments that already open with a clause keyword are kept as
        they are (a leading AND becomes WHERE when gluing with WHERE),
        anything else is prefixed with " AND " or " WHERE ".
        """
        if sql is None or sql.strip() == "":
            return ""
        stripped = sql.lstrip()
        if CLAUSE_PATTERN.match(stripped):
            if glue == GLUE_WHERE and stripped[:3].upper() == "AND":
                return " WHERE " + stripped[3:]
            return " " + sql
        prefix = " AND " if glue == GLUE_AND else " WHERE "
        return prefix + sql

    @staticmethod
    def new_bindings(bindings: Union[Sequence[Any], Mapping[str, Any], None]) -> Bindings:
        """Copy bindings, keeping their style (positional list or named dict)."""
        if isinstance(bindings, Mapping):
            return dict(bindings)
        return list(bindings or [])

    def conditions(
        self,
        conditions: Optional[Mapping[str, Any]],
        bindings: Union[Sequence[Any], Mapping[str, Any], None],
        add_sql: str = "",
    ) -> Tuple[str, Bindings]:
        """
        Turn {"col": [values]} into "WHERE ( col IN (...) AND ... )".

        Purely numeric value lists are written inline; everything else
        is bound, positionally (prepended to the caller's bindings) or
        through ":slotN" names when the caller uses named bindings.

        Returns:
            (sql, bindings) where sql already includes add_sql
        """
        bound = self.new_bindings(bindings)
        named = isinstance(bound, dict)
        prepend: List[Any] = []
        counter = 0
        parts: List[str] = []

        for column, values in (conditions or {}).items():
            if not isinstance(values, (list, tuple, set)):
                values = [values]
            values = list(values)
            if not values:
                continue
            column_sql = self.esc(column)
            texts = [str(v) for v in values]
            if all(DIGITS_PATTERN.match(t) for t in texts):
                parts.append(f"{column_sql} IN ( {','.join(texts)} )")
            elif named:
                slots = []
                for text in texts:
                    slot = f":slot{counter}"
                    counter += 1
                    slots.append(slot)
                    bound[slot] = text
                parts.append(f"{column_sql} IN ( {','.join(slots)} )")
            else:
                parts.append(f"{column_sql} IN ( {','.join('?' for _ in texts)} )")
                prepend.extend(texts)

        if not named:
            bound = prepend + bound

        if parts:
            sql = " WHERE ( " + " AND ".join(parts) + " ) "
            if add_sql:
                sql += add_sql
        else:
            sql = add_sql or ""
        return sql, bound

    def in_clause(
        self,
        values: Iterable[Any],
        bindings: Union[Sequence[Any], Mapping[str, Any], None] = None,
        prefix: str = "lid",
    ) -> Tuple[str, Bindings]:
        """
        Placeholders for an IN (...) list placed before the caller's SQL.

        Positional bindings get the values prepended, named bindings get
        ":<prefix>N" entries added.
        """
        values = list(values)
        bound = self.new_bindings(bindings)
        if isinstance(bound, dict):
            slots = []
            for i, value in enumerate(values):
                slot = f":{prefix}{i}"
                bound[slot] = value
                slots.append(slot)
            return ",".join(slots), bound
        return ",".join("?" for _ in values), values + bound


class TypeTable:
    """
    Map between a dialect's type codes and its SQL type strings.

    `sql_types` holds the canonical strings (bit-exact, used for DDL);
    `aliases` lists the spellings a live column may report back
    (lower-cased, trimmed) so that code() can recognize it.
    """

    def __init__(self, sql_types: Dict[int, str], aliases: Optional[Dict[str, int]] = None):
        self.sql_types = dict(sql_types)
        self._codes: Dict[str, int] = {
            self.normalize(sql): code for code, sql in self.sql_types.items()
        }
        for alias, code in (aliases or {}).items():
            self._codes[self.normalize(alias)] = code

    @staticmethod
    def normalize(sql_type: str) -> str:
        return re.sub(r"\s+", " ", str(sql_type).strip().lower())

    def sql(self, code: int) -> str:
        if code not in self.sql_types:
            raise ValidationError(f"Unknown type code: {code}")
        return self.sql_types[code]

    def code(self, sql_type: Optional[str], include_specials: bool = False) -> int:
        """
        Inverse lookup. Unknown types collapse to C_DATATYPE_SPECIFIED,
        and so do special types unless include_specials is set.
        """
        if sql_type is None:
            return C_DATATYPE_SPECIFIED
        code = self._codes.get(self.normalize(sql_type), C_DATATYPE_SPECIFIED)
        if not include_specials and code >= C_DATATYPE_RANGE_SPECIAL:
            return C_DATATYPE_SPECIFIED
        return code
