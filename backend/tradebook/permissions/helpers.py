# Overview: Capability parsing, the uncheck cascade, and per-user checks.

from __future__ import annotations

from typing import Iterable, Mapping

from ..exceptions import ValidationError
from .definitions import ALL_CAPABILITIES, CAPABILITIES_BY_KEY, SECTION_CHILDREN, Capability


def parse_capability(key) -> Capability:
    """Turn "vendors.payables" into a Capability; unknown keys are rejected."""
    if isinstance(key, Capability):
        return key
    if not isinstance(key, str) or key not in CAPABILITIES_BY_KEY:
        raise ValidationError("permissions", f"unknown permission {key!r}")
    return CAPABILITIES_BY_KEY[key]


def children_of(section: str) -> list[Capability]:
    return [Capability(section, child) for child in SECTION_CHILDREN.get(section, ())]


def apply_permission_change(granted: Iterable[Capability], capability: Capability, checked: bool) -> frozenset[Capability]:
    """
    Toggle one capability.

    Unchecking a section also clears every child of that section.
    Checking a child never grants its section.
    """
    result = set(granted)
    if checked:
        result.add(capability)
        return frozenset(result)

    result.discard(capability)
    if capability.is_section:
        for child in children_of(capability.section):
            result.discard(child)
    return frozenset(result)


def normalize_permission_map(mapping: Mapping[str, object]) -> frozenset[Capability]:
    """
    Resolve a {key: bool} map into the granted set.

    Keys are applied sections first, so an unchecked section clears children
    even if the same map lists them as checked.
    """
    if not isinstance(mapping, Mapping):
        raise ValidationError("permissions", "must be an object of permission flags")

    parsed = []
    for key, value in mapping.items():
        if not isinstance(value, bool):
            raise ValidationError("permissions", f"{key} must be true or false")
        parsed.append((parse_capability(key), value))

    granted: frozenset[Capability] = frozenset()
    children = [(cap, value) for cap, value in parsed if not cap.is_section]
    sections = [(cap, value) for cap, value in parsed if cap.is_section]
    for cap, value in children + sections:
        granted = apply_permission_change(granted, cap, value)
    return granted


def has_capability(user, capability: Capability) -> bool:
    """Admins hold everything; Workers hold only what was granted."""
    if user is None:
        return False
    if user.is_admin:
        return True
    return capability.key in user.permission_keys()


def permission_map(user) -> dict[str, bool]:
    """Full {key: bool} view of a user's capabilities, for the API."""
    if user.is_admin:
        return {cap.key: True for cap in ALL_CAPABILITIES}
    keys = user.permission_keys()
    return {cap.key: cap.key in keys for cap in ALL_CAPABILITIES}
