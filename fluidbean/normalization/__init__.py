# ==============================================
# NORMALIZATION
# ==============================================
#
# Value and name rules shared by beans, writers and the orchestrator.
#
# Modules:
# --------
# - type_detector.py    → Profile a scalar (numeric? leading zeros? date?)
# - value_normalizer.py → Coerce values assigned to bean properties
# - naming.py           → Identifier checks, list/link naming
#
# ==============================================

from .type_detector import TypeDetector, ValueKind, ValueProfile
from .value_normalizer import ValueNormalizer
from .naming import (
    ListProperty,
    camel_to_snake,
    check_identifier,
    is_identifier,
    link_columns,
    link_type_name,
    own_list_name,
    parse_list_property,
    shared_list_name,
    snake_to_camel,
)

__all__ = [
    "TypeDetector",
    "ValueKind",
    "ValueProfile",
    "ValueNormalizer",
    "ListProperty",
    "camel_to_snake",
    "check_identifier",
    "is_identifier",
    "link_columns",
    "link_type_name",
    "own_list_name",
    "parse_list_property",
    "shared_list_name",
    "snake_to_camel",
]
