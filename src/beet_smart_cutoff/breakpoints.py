"""Suggested cutoffs at the date changes nearest a target entry count."""

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date
from enum import Enum

from beet_smart_cutoff.models import Item


@dataclass(frozen=True)
class Breakpoint:
    """Boundary between the newest `kept_count` items and everything older.

    `kept` is the oldest item still after the cutoff and `cut` the newest item
    on or before it. Their added dates always differ.
    """

    target: int
    index: int
    kept: Item
    cut: Item

    @property
    def kept_count(self) -> int:
        return self.index + 1

    @property
    def cutoff(self) -> date:
        return self.cut.added_date


class Status(str, Enum):
    found = "found"
    skipped = "skipped"
    out_of_range = "out_of_range"


@dataclass(frozen=True)
class Suggestion:
    target: int
    status: Status
    breakpoint: Breakpoint | None = None


def newest_first(items: Sequence[Item]) -> list[Item]:
    return sorted(items, key=lambda item: item.added, reverse=True)


def find_breakpoint(items: Sequence[Item], target: int) -> Breakpoint | None:
    """First date change that keeps more than `target` of the newest items.

    The first candidate boundary sits after the newest `target + 1` items,
    so a breakpoint always keeps at least `target + 1` of them. Returns None
    when the items run out before a date change is found.
    """
    ordered = newest_first(items)
    for index in range(target, len(ordered) - 1):
        kept, cut = ordered[index], ordered[index + 1]
        if kept.added_date != cut.added_date:
            return Breakpoint(target=target, index=index, kept=kept, cut=cut)
    return None


def suggest_breakpoints(items: Sequence[Item], targets: Sequence[int]) -> list[Suggestion]:
    """Breakpoints for each target, in target order.

    A target whose count is already covered by the previous breakpoint is
    skipped so that every numbered suggestion is distinct.
    """
    suggestions: list[Suggestion] = []
    prev_index: int | None = None
    for target in targets:
        if prev_index is not None and prev_index >= target:
            suggestions.append(Suggestion(target, Status.skipped))
            continue
        found = find_breakpoint(items, target)
        if found is None:
            suggestions.append(Suggestion(target, Status.out_of_range))
            continue
        prev_index = found.index
        suggestions.append(Suggestion(target, Status.found, found))
    return suggestions
