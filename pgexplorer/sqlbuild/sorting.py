"""Compile sort descriptors into ORDER BY fragments."""

from __future__ import annotations

import logging
from typing import Iterable, Mapping

from .filters import decode_payload
from .identifiers import sanitize_identifier
from .models import SortDescriptor, SortDirection

LOG = logging.getLogger(__name__)


def parse_sort(raw: object) -> SortDescriptor | None:
    """Normalize one raw sort entry; unknown directions are rejected here, not defaulted."""

    if not isinstance(raw, Mapping):
        return None
    column = raw.get("column")
    direction = raw.get("direction")
    if not isinstance(column, str) or not column or not isinstance(direction, str):
        return None
    try:
        return SortDescriptor(column, SortDirection(direction.lower()))
    except ValueError:
        return None


def parse_sorts(raw: object) -> list[SortDescriptor]:
    """Parse a JSON string or native list of sort payloads."""

    sorts: list[SortDescriptor] = []
    for entry in decode_payload(raw):
        descriptor = parse_sort(entry)
        if descriptor is None:
            LOG.debug("Dropping invalid sort payload: %r", entry)
            continue
        sorts.append(descriptor)
    return sorts


def compile_sorts(sorts: Iterable[SortDescriptor | Mapping[str, object]] | None) -> str:
    """Return ``col ASC, other DESC`` for the valid entries, or an empty string."""

    clauses: list[str] = []
    for entry in sorts or ():
        descriptor = entry if isinstance(entry, SortDescriptor) else parse_sort(entry)
        if descriptor is None:
            continue
        column = sanitize_identifier(descriptor.column)
        if not column:
            continue
        clauses.append(f"{column} {descriptor.direction.value.upper()}")
    return ", ".join(clauses)


__all__ = ["compile_sorts", "parse_sort", "parse_sorts"]
