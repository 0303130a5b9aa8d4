"""Configuration management using pydantic-settings."""

import logging
import shlex
from pathlib import Path
from typing import Any, Self

from pydantic import Field, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from beet_smart_cutoff.grouping import parse_rules
from beet_smart_cutoff.models import ConfigError, GroupingRule

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Run configuration loaded from environment variables.

    The variable names match the ones the shell wrapper exports
    (BEET_COMMAND, OUTPUT_FILE, OUTPUT_KEY, TIMELESS_ARGS), so no prefix
    is used. CLI overrides go through `load_settings` and take precedence.
    """

    model_config = SettingsConfigDict(
        env_file=(".env", ".env.local"),
        extra="ignore",
    )

    @model_validator(mode="after")
    def check_output_pairing(self) -> Self:
        """OUTPUT_FILE and OUTPUT_KEY only make sense together."""
        if self.output_file is not None and self.output_key is None:
            raise ValueError("missing OUTPUT_KEY for provided OUTPUT_FILE")
        if self.output_file is None and self.output_key is not None:
            raise ValueError("missing OUTPUT_FILE for provided OUTPUT_KEY")
        return self

    # === Beets ===
    beet_command: str = Field(
        validation_alias="BEET_COMMAND",
        description="Path to the `beet` command, optionally with arguments",
    )
    query: str = Field(
        default="",
        validation_alias="BEET_QUERY",
        description="Newline separated query terms passed to `beet list`",
    )
    albums: bool = Field(
        default=False,
        validation_alias="BEET_ALBUMS",
        description="Query albums instead of tracks",
    )
    added_format: str = Field(
        default="%Y-%m-%d %H:%M:%S",
        validation_alias="ADDED_FORMAT",
        description="strftime format beets uses for $added (its time_format)",
    )
    max_entries: int = Field(
        default=400,
        ge=1,
        validation_alias="MAX_ENTRIES",
        description="Truncate query results to this many newest items",
    )

    # === Grouping ===
    timeless_args: str = Field(
        default="",
        validation_alias="TIMELESS_ARGS",
        description="Newline separated `name::pattern` grouping rules",
    )
    group_field: str = Field(
        default="grouping",
        min_length=1,
        validation_alias="GROUP_FIELD",
        description="Item field the grouping patterns are matched against",
    )
    default_group: str = Field(
        default="ungrouped",
        min_length=1,
        validation_alias="DEFAULT_GROUP",
        description="Group for items matching no rule",
    )

    # === Selection ===
    target_counts: list[int] = Field(
        default=[30, 50, 70],
        validation_alias="TARGET_COUNTS",
        description="Entry counts to suggest breakpoints for",
    )
    date_format: str = Field(
        default="%Y-%m-%d",
        validation_alias="DATE_FORMAT",
        description="strptime format for cutoff dates typed by the operator",
    )
    timeline_lines: int = Field(
        default=20,
        ge=1,
        validation_alias="TIMELINE_LINES",
        description="Maximum timeline rows shown per group",
    )

    # === Output ===
    output_file: Path | None = Field(
        default=None,
        validation_alias="OUTPUT_FILE",
        description="JSON file the cutoffs are merged into",
    )
    output_key: str | None = Field(
        default=None,
        validation_alias="OUTPUT_KEY",
        description="Top-level key for this run's cutoffs",
    )

    @field_validator("target_counts")
    @classmethod
    def positive_counts(cls, value: list[int]) -> list[int]:
        if any(count < 1 for count in value):
            raise ValueError("target counts must be positive")
        return value

    @property
    def beet_argv(self) -> list[str]:
        """The beet command split into program and leading arguments."""
        return shlex.split(self.beet_command)

    @property
    def query_terms(self) -> list[str]:
        return [line for line in self.query.splitlines() if line.strip()]

    @property
    def writes_output(self) -> bool:
        return self.output_file is not None and self.output_key is not None

    def grouping_rules(self) -> list[GroupingRule]:
        """Parse TIMELESS_ARGS into ordered grouping rules.

        Raises:
            ConfigError: If a rule line or pattern is malformed.
        """
        return parse_rules(self.timeless_args)


def load_settings(**overrides: Any) -> Settings:
    """Read the environment once and apply CLI overrides.

    Overrides whose value is None are ignored so unset CLI options fall back
    to the environment.

    Raises:
        ConfigError: If required variables are missing or invalid, or the
            grouping rules do not parse.
    """
    values: dict[str, Any] = {}
    for name, value in overrides.items():
        if value is None:
            continue
        alias = Settings.model_fields[name].validation_alias
        values[alias if isinstance(alias, str) else name] = value
    try:
        settings = Settings(**values)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in err['loc']) or 'settings'}: {err['msg']}"
            for err in e.errors()
        )
        raise ConfigError(f"invalid configuration: {problems}") from e

    try:
        argv = settings.beet_argv
    except ValueError as e:
        raise ConfigError(f"cannot parse BEET_COMMAND {settings.beet_command!r}: {e}") from e
    if not argv:
        raise ConfigError("BEET_COMMAND is empty")

    rules = settings.grouping_rules()
    logger.debug(
        "Loaded %d grouping rule(s) matching field %r", len(rules), settings.group_field
    )
    return settings
