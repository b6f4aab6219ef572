"""Votable entry kinds and how each one is stored."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class EntryKind(str, Enum):
    """Closed set of entry classes that can receive votes."""

    THREAD = "thread"
    SUBMISSION = "submission"


@dataclass(frozen=True)
class EntryKindStrategy:
    """Storage details for one entry kind.

    Attributes:
        tag: Short storage tag written into ledger and tally keys.
        label: Human-friendly name used in logs.
        thread_required: Whether a vote must name the thread that contains the entry.
            Submissions always live under a thread; top-level threads have no parent.
    """

    tag: str
    label: str
    thread_required: bool


ENTRY_KIND_STRATEGIES: dict[EntryKind, EntryKindStrategy] = {
    EntryKind.THREAD: EntryKindStrategy(tag="RWBF", label="thread", thread_required=False),
    EntryKind.SUBMISSION: EntryKindStrategy(
        tag="RWBS", label="submission", thread_required=True
    ),
}

_BY_TAG = {strategy.tag: kind for kind, strategy in ENTRY_KIND_STRATEGIES.items()}


def strategy_for(kind: EntryKind) -> EntryKindStrategy:
    """Return the storage strategy registered for ``kind``."""
    return ENTRY_KIND_STRATEGIES[kind]


def parse_entry_kind(value: EntryKind | str) -> EntryKind:
    """Resolve an enum member, enum value, or storage tag to an ``EntryKind``.

    Raises:
        ValueError: If ``value`` names no supported entry kind.
    """
    if isinstance(value, EntryKind):
        return value
    normalized = str(value).strip()
    if normalized in _BY_TAG:
        return _BY_TAG[normalized]
    try:
        return EntryKind(normalized.lower())
    except ValueError:
        raise ValueError(f"Unsupported entry kind: {value!r}") from None
