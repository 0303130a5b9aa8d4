"""Interactive selection of smart playlist cutoff dates for a beets library.

Queries beets for recently added items, splits them into groups by regex
rules, asks the operator for one cutoff date per group and merges the result
into a shared JSON file.
"""

from beet_smart_cutoff.config import Settings, load_settings
from beet_smart_cutoff.models import (
    AbortRequested,
    ConfigError,
    CutoffDecision,
    CutoffError,
    GroupingRule,
    InputValidationError,
    Item,
    QueryProcessError,
    StoreAccessError,
    StoreCorruptError,
)

__all__ = [
    "AbortRequested",
    "ConfigError",
    "CutoffDecision",
    "CutoffError",
    "GroupingRule",
    "InputValidationError",
    "Item",
    "QueryProcessError",
    "Settings",
    "StoreAccessError",
    "StoreCorruptError",
    "load_settings",
]
