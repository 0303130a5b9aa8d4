"""Beet Smart Cutoff - CLI Entry Point."""

import json
import logging
from pathlib import Path
from typing import Annotated

import typer

from beet_smart_cutoff.beet import BeetCommand
from beet_smart_cutoff.config import Settings, load_settings
from beet_smart_cutoff.grouping import group_items
from beet_smart_cutoff.models import (
    AbortRequested,
    ConfigError,
    CutoffDecision,
    QueryProcessError,
    StoreAccessError,
    StoreCorruptError,
)
from beet_smart_cutoff.selector import CutoffSelector
from beet_smart_cutoff.store import load_document, merge_decisions, save_decisions

app = typer.Typer(
    help="Interactive tool for selecting cutoff dates for smart_playlists in a beets configuration"
)
logger = logging.getLogger(__name__)


def setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(message)s",
        datefmt="%H:%M:%S",
    )


def display_decisions(decisions: list[CutoffDecision]) -> None:
    """Display the chosen cutoffs to console."""
    print(f"\n{'=' * 60}")
    print("Cutoffs:")
    for decision in decisions:
        shown = decision.cutoff.isoformat() if decision.cutoff else "(skipped)"
        print(f"  {decision.group}: {shown}")
    print("=" * 60)


def run_selection(settings: Settings, *, dry_run: bool = False) -> list[CutoffDecision]:
    """Query beets, group the items, ask for cutoffs and store them.

    Raises:
        ConfigError, QueryProcessError, StoreCorruptError, StoreAccessError,
        AbortRequested.
    """
    rules = settings.grouping_rules()

    # fail fast if the output file cannot be read
    if settings.output_file is not None:
        load_document(settings.output_file)

    items = BeetCommand(settings).query_items()
    groups = group_items(
        items, rules, field=settings.group_field, default_group=settings.default_group
    )

    selector = CutoffSelector(
        targets=settings.target_counts,
        max_entries=settings.max_entries,
        date_format=settings.date_format,
        timeline_lines=settings.timeline_lines,
    )
    decisions = selector.run(groups)
    display_decisions(decisions)

    if settings.output_file is None or settings.output_key is None:
        logger.info("No OUTPUT_FILE/OUTPUT_KEY configured, not saving")
        return decisions

    if dry_run:
        document = merge_decisions(
            load_document(settings.output_file), settings.output_key, decisions
        )
        print(f"Dry run, would write to {settings.output_file}:")
        print(json.dumps(document, indent=2, ensure_ascii=False))
        return decisions

    save_decisions(settings.output_file, settings.output_key, decisions)
    print(
        f"Saved {len(decisions)} cutoff(s) under {settings.output_key!r} "
        f"in {settings.output_file}"
    )
    return decisions


@app.command()
def select(
    max_entries: Annotated[
        int | None,
        typer.Option("--max-entries", help="Truncate query results to this many newest items"),
    ] = None,
    output_file: Annotated[
        Path | None,
        typer.Option("--output-file", "-o", help="Output JSON file (overrides OUTPUT_FILE)"),
    ] = None,
    output_key: Annotated[
        str | None,
        typer.Option("--output-key", "-k", help="Key for this run (overrides OUTPUT_KEY)"),
    ] = None,
    dry_run: Annotated[
        bool,
        typer.Option("--dry-run", "-n", help="Show the merged document without writing it"),
    ] = False,
    verbose: Annotated[bool, typer.Option("--verbose", "-v")] = False,
) -> None:
    """Choose a cutoff date for every group and merge them into the output file."""
    setup_logging(verbose)

    try:
        settings = load_settings(
            max_entries=max_entries, output_file=output_file, output_key=output_key
        )
        run_selection(settings, dry_run=dry_run)
    except ConfigError as e:
        logger.error("Configuration error: %s", e)
        raise typer.Exit(1)
    except QueryProcessError as e:
        logger.error("beet query failed: %s", e)
        raise typer.Exit(1)
    except StoreCorruptError as e:
        logger.error("Refusing to overwrite output file: %s", e)
        raise typer.Exit(1)
    except StoreAccessError as e:
        logger.error("Cannot access output file: %s", e)
        raise typer.Exit(1)
    except AbortRequested:
        print("Aborted, nothing was written.")
        raise typer.Exit(1)


@app.command()
def show(
    output_file: Annotated[
        Path | None,
        typer.Option("--output-file", "-o", envvar="OUTPUT_FILE", help="Output JSON file"),
    ] = None,
    output_key: Annotated[
        str | None,
        typer.Option("--output-key", "-k", envvar="OUTPUT_KEY", help="Only show this key"),
    ] = None,
    verbose: Annotated[bool, typer.Option("--verbose", "-v")] = False,
) -> None:
    """Show the cutoffs stored in the output file."""
    setup_logging(verbose)

    if output_file is None:
        print("No output file configured (set OUTPUT_FILE or pass --output-file)")
        raise typer.Exit(1)

    try:
        document = load_document(output_file)
    except (StoreCorruptError, StoreAccessError) as e:
        logger.error("%s", e)
        raise typer.Exit(1)

    if output_key is not None:
        if output_key not in document:
            print(f"No cutoffs stored under {output_key!r} in {output_file}")
            raise typer.Exit(1)
        document = {output_key: document[output_key]}

    for name, entry in document.items():
        print(f"{name}:")
        if isinstance(entry, dict):
            for group, cutoff in entry.items():
                print(f"  {group}: {cutoff if cutoff is not None else '(skipped)'}")
        else:
            print(f"  {entry}")


if __name__ == "__main__":
    app()
