"""Pydantic models and error types for cutoff selection."""

import re
from datetime import date, datetime
from typing import Self

from pydantic import BaseModel, ConfigDict, Field


class CutoffError(Exception):
    """Base class for errors raised by beet-smart-cutoff."""


class ConfigError(CutoffError):
    """Raised when the environment or grouping rules are malformed.

    Always detected before any subprocess or interactive work begins.
    """


class QueryProcessError(CutoffError):
    """Raised when the beets query fails or produces unparseable output."""

    def __init__(self, message: str, command: list[str] | None = None):
        super().__init__(message)
        self.command = command or []


class InputValidationError(CutoffError):
    """Raised when the operator types a command or date that cannot be parsed.

    Handled inside the selector by re-prompting; never fatal.
    """


class AbortRequested(CutoffError):
    """Raised when the operator cancels the run."""


class StoreCorruptError(CutoffError):
    """Raised when the output file exists but is not a JSON object."""


class StoreAccessError(CutoffError):
    """Raised when the output file cannot be read or written."""


class Item(BaseModel):
    """A single library entry returned by `beet list`."""

    model_config = ConfigDict(frozen=True)

    id: str
    added: datetime
    attributes: dict[str, str] = Field(default_factory=dict)
    label: str = ""

    @property
    def added_date(self) -> date:
        """Calendar date the item was added to the library."""
        return self.added.date()

    def field(self, name: str) -> str:
        """Value of a named field, or an empty string when absent."""
        return self.attributes.get(name, "")


class GroupingRule(BaseModel):
    """A `(name, pattern)` pair classifying items into a group."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1)
    pattern: re.Pattern[str]

    @classmethod
    def compile(cls, name: str, pattern: str) -> Self:
        """Build a rule from a raw pattern string.

        Raises:
            ConfigError: If the pattern is not a valid regular expression.
        """
        try:
            compiled = re.compile(pattern)
        except re.error as e:
            raise ConfigError(
                f"invalid pattern {pattern!r} for group {name!r}: {e}"
            ) from e
        return cls(name=name, pattern=compiled)

    def matches(self, value: str) -> bool:
        return self.pattern.search(value) is not None


class CutoffDecision(BaseModel):
    """Outcome of the interactive step for one group.

    A decision without a date is an explicit skip.
    """

    model_config = ConfigDict(frozen=True)

    group: str
    cutoff: date | None = None

    @property
    def skipped(self) -> bool:
        return self.cutoff is None

    def to_json_value(self) -> str | None:
        """ISO-8601 date string, or None for a skipped group."""
        return self.cutoff.isoformat() if self.cutoff is not None else None
