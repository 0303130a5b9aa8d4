"""Query adapter around the `beet` command line tool.

`beet list` is run with a `--format` template producing one tab-separated
record per line:

    $id<TAB>$added<TAB>$<group field><TAB><label>

Results are sorted newest first (`added-`) and truncated to `max_entries`.
"""

import logging
import subprocess
from collections.abc import Iterable
from datetime import date, datetime

from beet_smart_cutoff.config import Settings
from beet_smart_cutoff.models import Item, QueryProcessError

logger = logging.getLogger(__name__)

FIELD_SEPARATOR = "\t"
TRACK_LABEL = "$artist - $album - $title"
ALBUM_LABEL = "$albumartist - $album"

# Fixed album-level fields of a beets library. Albums may also carry
# flexible attributes under any other name.
ALBUM_FIELDS = frozenset(
    {
        "id", "added", "artpath", "album", "albumartist", "albumartist_sort",
        "albumartist_credit", "albumartists", "albumtype", "albumtypes", "albumstatus",
        "albumdisambig", "asin", "barcode", "catalognum", "comp", "country", "day",
        "discogs_albumid", "discogs_artistid", "discogs_labelid", "disctotal", "genre",
        "label", "language", "mb_albumartistid", "mb_albumid", "mb_releasegroupid",
        "month", "original_day", "original_month", "original_year",
        "release_group_title", "releasegroupdisambig", "script", "style", "year",
    }
)


class BeetCommand:
    """Builds and runs `beet list` queries for the configured library."""

    def __init__(self, settings: Settings) -> None:
        self._argv = settings.beet_argv
        self._query_terms = settings.query_terms
        self._albums = settings.albums
        self._group_field = settings.group_field
        self._added_format = settings.added_format
        self._max_entries = settings.max_entries
        if self._albums and self._group_field not in ALBUM_FIELDS:
            logger.warning(
                "GROUP_FIELD %r is not a standard album field; unless albums carry it as a "
                "flexible attribute, every album will fall into the default group",
                self._group_field,
            )

    @property
    def format_template(self) -> str:
        label = ALBUM_LABEL if self._albums else TRACK_LABEL
        return FIELD_SEPARATOR.join(["$id", "$added", f"${self._group_field}", label])

    def list_command(self) -> list[str]:
        """Full argv for the newest-first listing query."""
        command = [*self._argv, "list"]
        if self._albums:
            command.append("-a")
        command.extend(self._query_terms)
        command.extend(["added-", "--format", self.format_template])
        return command

    def query_items(self) -> list[Item]:
        """Run the listing query and parse its output.

        Returns:
            Items newest first, at most `max_entries` of them.

        Raises:
            QueryProcessError: If beets cannot be started, exits non-zero, or
                prints a line that does not match the record format.
        """
        command = self.list_command()
        stdout = run_checked(command)

        items: list[Item] = []
        for number, line in enumerate(stdout.splitlines(), 1):
            if not line.strip():
                continue
            if len(items) >= self._max_entries:
                logger.debug("Truncated results at %d entries", self._max_entries)
                break
            items.append(self.parse_line(line, number, command))

        logger.info("Fetched %d item(s) from beets", len(items))
        return items

    def parse_line(self, line: str, number: int, command: list[str] | None = None) -> Item:
        """Parse one record of `beet list` output into an Item."""
        parts = line.split(FIELD_SEPARATOR, 3)
        if len(parts) != 4:
            raise QueryProcessError(
                f"line {number} of beet output has {len(parts)} field(s), expected 4: {line!r}",
                command,
            )
        item_id, added, group_value, label = parts
        try:
            added_at = datetime.strptime(added.strip(), self._added_format)
        except ValueError as e:
            raise QueryProcessError(
                f"line {number} of beet output: cannot parse added date {added!r} "
                f"with format {self._added_format!r}",
                command,
            ) from e

        group_value = group_value.strip()
        if group_value == f"${self._group_field}":
            # beets leaves fields it cannot resolve unexpanded
            group_value = ""

        return Item(
            id=item_id.strip(),
            added=added_at,
            attributes={self._group_field: group_value},
            label=label.strip(),
        )


def run_checked(command: list[str]) -> str:
    """Run a command and return its stdout.

    Raises:
        QueryProcessError: If the process cannot be started, exits non-zero
            or writes non UTF-8 output.
    """
    logger.info("Running %s", subprocess.list2cmdline(command))
    try:
        result = subprocess.run(command, capture_output=True, check=False)
    except OSError as e:
        raise QueryProcessError(f"could not start {command[0]!r}: {e}", command) from e

    stderr = result.stderr.decode("utf-8", errors="replace").strip()
    if result.returncode != 0:
        detail = f": {stderr}" if stderr else ""
        raise QueryProcessError(
            f"{command[0]} exited with status {result.returncode}{detail}", command
        )
    if stderr:
        logger.warning("beet stderr: %s", stderr)

    try:
        return result.stdout.decode("utf-8")
    except UnicodeDecodeError as e:
        raise QueryProcessError(f"non-utf8 output from {command[0]}: {e}", command) from e


def count_added_after(items: Iterable[Item], cutoff: date) -> int:
    """Number of items added strictly after the cutoff date."""
    return sum(1 for item in items if item.added_date > cutoff)
