# Overview: Permission system package.
# Re-exports the capability set and helpers used by services and decorators.

from .sections import Section
from .definitions import (
    Capability,
    ALL_CAPABILITIES,
    CAPABILITIES_BY_KEY,
    SECTION_CHILDREN,
)
from .helpers import (
    parse_capability,
    children_of,
    apply_permission_change,
    normalize_permission_map,
    has_capability,
    permission_map,
)

__all__ = [
    "Section",
    "Capability",
    "ALL_CAPABILITIES",
    "CAPABILITIES_BY_KEY",
    "SECTION_CHILDREN",
    "parse_capability",
    "children_of",
    "apply_permission_change",
    "normalize_permission_map",
    "has_capability",
    "permission_map",
]
