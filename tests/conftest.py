"""Shared test fixtures and configuration."""

import os
import sys
from collections.abc import Callable
from datetime import datetime
from pathlib import Path

import pytest

from beet_smart_cutoff.models import Item

CONFIG_ENV_VARS = (
    "BEET_COMMAND",
    "BEET_QUERY",
    "BEET_ALBUMS",
    "OUTPUT_FILE",
    "OUTPUT_KEY",
    "TIMELESS_ARGS",
    "GROUP_FIELD",
    "DEFAULT_GROUP",
    "MAX_ENTRIES",
    "TARGET_COUNTS",
    "DATE_FORMAT",
    "ADDED_FORMAT",
    "TIMELINE_LINES",
)


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "integration: mark test as integration test (requires beets)"
    )


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Isolate tests from the caller's environment and any .env files."""
    for name in CONFIG_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture
def make_item() -> Callable[..., Item]:
    """Factory for items added at a given ISO timestamp."""

    def _make(
        item_id: str, added: str, grouping: str = "", label: str = ""
    ) -> Item:
        return Item(
            id=item_id,
            added=datetime.fromisoformat(added),
            attributes={"grouping": grouping},
            label=label or f"Artist - Album - Track {item_id}",
        )

    return _make


@pytest.fixture
def fake_beet(tmp_path: Path) -> Callable[..., Path]:
    """Factory writing an executable stand-in for `beet`.

    The script prints the given lines to stdout, optional text to stderr,
    records its argv to `argv.txt` and exits with the given status.
    """

    def _make(lines: list[str], *, stderr: str = "", exit_code: int = 0) -> Path:
        script = tmp_path / "beet"
        argv_file = tmp_path / "argv.txt"
        script.write_text(
            f"#!{sys.executable}\n"
            "import sys\n"
            f"open({str(argv_file)!r}, 'w', encoding='utf-8').write('\\n'.join(sys.argv[1:]))\n"
            f"sys.stdout.write({''.join(line + chr(10) for line in lines)!r})\n"
            f"sys.stderr.write({stderr!r})\n"
            f"sys.exit({exit_code})\n",
            encoding="utf-8",
        )
        os.chmod(script, 0o755)
        return script

    return _make


@pytest.fixture
def beet_line() -> Callable[..., str]:
    """Builds one record in the `beet list --format` output contract."""

    def _line(item_id: str, added: str, grouping: str = "", label: str = "A - B - C") -> str:
        return "\t".join([item_id, added, grouping, label])

    return _line
