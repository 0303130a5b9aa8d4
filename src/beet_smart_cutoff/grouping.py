"""Grouping of library items by ordered regex rules.

Rules come from TIMELESS_ARGS, one `name::pattern` per line. Each item is
assigned to the first rule whose pattern matches its designated field; items
matching nothing fall into the default group.
"""

import logging
from collections.abc import Iterable, Sequence

from beet_smart_cutoff.models import ConfigError, GroupingRule, Item

logger = logging.getLogger(__name__)

RULE_SEPARATOR = "::"


def parse_rules(text: str) -> list[GroupingRule]:
    """Parse newline separated `name::pattern` lines into rules.

    Blank lines are ignored. The line is split at the first separator, so
    patterns may themselves contain `::`.

    Raises:
        ConfigError: On a line without a separator, an empty name, or an
            invalid regular expression.
    """
    rules: list[GroupingRule] = []
    for number, line in enumerate(text.splitlines(), 1):
        if not line.strip():
            continue
        name, sep, pattern = line.partition(RULE_SEPARATOR)
        name = name.strip()
        if not sep:
            raise ConfigError(
                f"TIMELESS_ARGS line {number}: expected name{RULE_SEPARATOR}pattern, got {line!r}"
            )
        if not name:
            raise ConfigError(f"TIMELESS_ARGS line {number}: empty group name in {line!r}")
        rules.append(GroupingRule.compile(name, pattern))
    return rules


def group_names(rules: Sequence[GroupingRule], default_group: str) -> list[str]:
    """Group names in presentation order: rule order, then the default group."""
    names: list[str] = []
    for rule in rules:
        if rule.name not in names:
            names.append(rule.name)
    if default_group not in names:
        names.append(default_group)
    return names


def classify(item: Item, rules: Sequence[GroupingRule], *, field: str, default_group: str) -> str:
    """Name of the group an item belongs to. First matching rule wins."""
    value = item.field(field)
    for rule in rules:
        if rule.matches(value):
            return rule.name
    return default_group


def group_items(
    items: Iterable[Item],
    rules: Sequence[GroupingRule],
    *,
    field: str,
    default_group: str,
) -> dict[str, list[Item]]:
    """Partition items into groups.

    Every rule's group and the default group are present in the result, even
    when empty. Item order within a group follows the input order.
    """
    groups: dict[str, list[Item]] = {name: [] for name in group_names(rules, default_group)}
    for item in items:
        groups[classify(item, rules, field=field, default_group=default_group)].append(item)

    logger.info(
        "Grouped items: %s",
        ", ".join(f"{name}={len(members)}" for name, members in groups.items()),
    )
    return groups
