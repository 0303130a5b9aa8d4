"""Interactive cutoff selection.

The selection loop is an explicit state machine. `advance` is a pure
transition function over `SelectorState`; `CutoffSelector` is the terminal
driver that renders each group, reads operator commands and feeds the
resulting events through `advance`.
"""

import logging
from collections import Counter
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, replace
from datetime import date, datetime
from enum import Enum

from beet_smart_cutoff.beet import count_added_after
from beet_smart_cutoff.breakpoints import Breakpoint, Status, suggest_breakpoints
from beet_smart_cutoff.models import (
    AbortRequested,
    CutoffDecision,
    InputValidationError,
    Item,
)

logger = logging.getLogger(__name__)

PROMPT = "Enter selection [#/date/Custom/Skip/Back/Quit]:"
CUSTOM_PROMPT = "Enter custom target numbers (space separated):"


class Phase(str, Enum):
    """States of the selection loop."""

    idle = "idle"
    presenting = "presenting"
    awaiting_input = "awaiting_input"
    recorded = "recorded"
    skipped = "skipped"
    aborted = "aborted"
    done = "done"


TERMINAL_PHASES = frozenset({Phase.aborted, Phase.done})


# --- Events ---


@dataclass(frozen=True)
class Start:
    pass


@dataclass(frozen=True)
class Presented:
    pass


@dataclass(frozen=True)
class Choose:
    cutoff: date


@dataclass(frozen=True)
class Skip:
    pass


@dataclass(frozen=True)
class Back:
    pass


@dataclass(frozen=True)
class Retarget:
    targets: tuple[int, ...]


@dataclass(frozen=True)
class Invalid:
    message: str


@dataclass(frozen=True)
class Abort:
    pass


@dataclass(frozen=True)
class Continue:
    pass


Event = Start | Presented | Choose | Skip | Back | Retarget | Invalid | Abort | Continue


@dataclass(frozen=True)
class SelectorState:
    """Snapshot of the selection loop.

    `decisions` holds at most one decision per group, kept in group order.
    """

    groups: tuple[str, ...]
    targets: tuple[int, ...]
    phase: Phase = Phase.idle
    index: int = 0
    decisions: tuple[CutoffDecision, ...] = ()
    error: str | None = None

    @property
    def current_group(self) -> str | None:
        if self.phase in TERMINAL_PHASES or self.phase == Phase.idle:
            return None
        return self.groups[self.index]

    @property
    def finished(self) -> bool:
        return self.phase in TERMINAL_PHASES

    def decision_for(self, group: str) -> CutoffDecision | None:
        for decision in self.decisions:
            if decision.group == group:
                return decision
        return None

    def with_decision(self, decision: CutoffDecision) -> "SelectorState":
        by_group = {d.group: d for d in self.decisions}
        by_group[decision.group] = decision
        ordered = tuple(by_group[g] for g in self.groups if g in by_group)
        return replace(self, decisions=ordered)


def advance(state: SelectorState, event: Event) -> SelectorState:
    """Apply one event to the selection state.

    Raises:
        ValueError: If the event is not valid in the current phase.
    """
    if isinstance(event, Abort):
        if state.finished:
            raise ValueError(f"cannot abort from {state.phase.value}")
        return replace(state, phase=Phase.aborted, decisions=(), error=None)

    match state.phase, event:
        case Phase.idle, Start():
            if not state.groups:
                return replace(state, phase=Phase.done)
            return replace(state, phase=Phase.presenting, index=0)
        case Phase.presenting, Presented():
            return replace(state, phase=Phase.awaiting_input, error=None)
        case Phase.awaiting_input, Choose(cutoff=cutoff):
            decision = CutoffDecision(group=state.groups[state.index], cutoff=cutoff)
            return replace(state.with_decision(decision), phase=Phase.recorded, error=None)
        case Phase.awaiting_input, Skip():
            decision = CutoffDecision(group=state.groups[state.index])
            return replace(state.with_decision(decision), phase=Phase.skipped, error=None)
        case Phase.awaiting_input, Invalid(message=message):
            return replace(state, error=message)
        case Phase.awaiting_input, Retarget(targets=targets):
            return replace(state, phase=Phase.presenting, targets=targets, error=None)
        case Phase.awaiting_input, Back():
            if state.index == 0:
                return replace(state, error="already at the first group")
            return replace(state, phase=Phase.presenting, index=state.index - 1, error=None)
        case (Phase.recorded | Phase.skipped), Continue():
            if state.index + 1 >= len(state.groups):
                return replace(state, phase=Phase.done)
            return replace(state, phase=Phase.presenting, index=state.index + 1)

    raise ValueError(f"event {type(event).__name__} is not valid in phase {state.phase.value}")


# --- Operator input parsing ---


def parse_cutoff(text: str, date_format: str) -> date:
    """Parse an operator supplied cutoff date.

    Raises:
        InputValidationError: If the text does not match the date format.
    """
    try:
        return datetime.strptime(text.strip(), date_format).date()
    except ValueError as e:
        raise InputValidationError(
            f"invalid date {text!r}, expected format {date_format!r}"
        ) from e


def parse_targets(text: str, max_entries: int) -> tuple[int, ...]:
    """Parse space separated target counts.

    Raises:
        InputValidationError: On non-numeric, non-positive or too large counts.
    """
    targets: list[int] = []
    for token in text.split():
        try:
            number = int(token)
        except ValueError as e:
            raise InputValidationError(f"invalid custom input {token!r}: not a number") from e
        if number < 1:
            raise InputValidationError(f"invalid custom input {token!r}: must be positive")
        if number > max_entries:
            raise InputValidationError(
                f"{number} exceeds max_entries ({max_entries})"
            )
        targets.append(number)
    if not targets:
        raise InputValidationError("no target numbers given")
    return tuple(targets)


def parse_command(
    text: str,
    breakpoints: Sequence[Breakpoint],
    date_format: str,
) -> Event | None:
    """Turn one line of operator input into an event.

    Returns None for empty input, which simply re-prompts. The custom
    command needs a second prompt and is handled by the caller (see
    `is_custom_command`).

    Raises:
        InputValidationError: If the input is not a known command, a valid
            breakpoint number or a date.
    """
    command = text.strip().lower()
    match command:
        case "":
            return None
        case "q" | "quit" | "exit":
            return Abort()
        case "s" | "skip":
            return Skip()
        case "b" | "back":
            return Back()

    if command.isdigit():
        number = int(command)
        if 1 <= number <= len(breakpoints):
            return Choose(breakpoints[number - 1].cutoff)
        raise InputValidationError(f"invalid number {number}")

    try:
        return Choose(parse_cutoff(text, date_format))
    except InputValidationError as e:
        raise InputValidationError(f"unrecognized command {text.strip()!r} ({e})") from e


def is_custom_command(text: str) -> bool:
    return text.strip().lower() in ("c", "custom")


# --- Rendering ---


def format_timeline(items: Sequence[Item], max_lines: int) -> list[str]:
    """Distinct added dates with item counts, oldest first.

    Only the newest `max_lines` dates are kept; older ones are summarized.
    """
    counts = Counter(item.added_date for item in items)
    rows = [f"    {day.isoformat()}  {count:>4}" for day, count in sorted(counts.items())]
    if len(rows) <= max_lines:
        return rows
    hidden = len(rows) - max_lines
    return [f"    ... ({hidden} earlier date(s))", *rows[-max_lines:]]


def format_breakpoint(found: Breakpoint) -> str:
    count = found.kept_count
    kept, cut = found.kept, found.cut
    return (
        f"    {count}: {kept.added_date.isoformat()} {kept.label}\n"
        f"    {count + 1}: {cut.added_date.isoformat()} {cut.label}"
    )


class CutoffSelector:
    """Terminal driver for the selection state machine.

    Args:
        targets: Initial breakpoint target counts.
        max_entries: Upper bound for custom target counts.
        date_format: strptime format for typed cutoff dates.
        timeline_lines: Maximum timeline rows shown per group.
        read_line: Callable that shows a prompt and returns one line of input.
    """

    def __init__(
        self,
        targets: Sequence[int],
        max_entries: int,
        date_format: str = "%Y-%m-%d",
        timeline_lines: int = 20,
        read_line: Callable[[str], str] = input,
    ) -> None:
        self._targets = tuple(targets)
        self._max_entries = max_entries
        self._date_format = date_format
        self._timeline_lines = timeline_lines
        self._read_line = read_line

    def run(self, groups: Mapping[str, Sequence[Item]]) -> list[CutoffDecision]:
        """Ask for a cutoff for every group, in mapping order.

        Returns:
            One decision per group, in group order.

        Raises:
            AbortRequested: If the operator quits. No decisions are returned.
        """
        state = advance(SelectorState(groups=tuple(groups), targets=self._targets), Start())
        breakpoints: list[Breakpoint] = []

        while not state.finished:
            group = state.groups[state.index]
            items = groups[group]

            match state.phase:
                case Phase.presenting:
                    breakpoints = self.present(state, items)
                    state = advance(state, Presented())
                case Phase.awaiting_input:
                    if state.error:
                        print(state.error)
                    state = advance(state, self.read_event(breakpoints))
                case Phase.recorded:
                    decision = state.decision_for(group)
                    if decision is None or decision.cutoff is None:
                        raise RuntimeError(f"no cutoff recorded for group {group}")
                    remaining = count_added_after(items, decision.cutoff)
                    print(
                        f"Chose {decision.cutoff.isoformat()} for {group}, "
                        f"which gives {remaining} entries"
                    )
                    logger.info("Recorded cutoff %s for group %s", decision.cutoff, group)
                    state = advance(state, Continue())
                case Phase.skipped:
                    print(f"Skipped {group}")
                    logger.info("Skipped group %s", group)
                    state = advance(state, Continue())

        if state.phase == Phase.aborted:
            logger.info("Selection aborted, discarding all decisions")
            raise AbortRequested("selection aborted by operator")

        return list(state.decisions)

    def present(self, state: SelectorState, items: Sequence[Item]) -> list[Breakpoint]:
        """Print the group summary and numbered breakpoints."""
        group = state.current_group
        print(f"\n{'=' * 60}")
        print(f"[{state.index + 1}/{len(state.groups)}] Group: {group} ({len(items)} entries)")
        if items:
            dates = sorted(item.added_date for item in items)
            print(f"Added from {dates[0].isoformat()} to {dates[-1].isoformat()}")
            print("Timeline (oldest first):")
            for line in format_timeline(items, self._timeline_lines):
                print(line)
        else:
            print("(no entries)")

        previous = state.decision_for(group) if group is not None else None
        if previous is not None:
            shown = previous.cutoff.isoformat() if previous.cutoff else "skipped"
            print(f"Current decision: {shown}")

        found: list[Breakpoint] = []
        for suggestion in suggest_breakpoints(items, state.targets):
            match suggestion.status:
                case Status.skipped:
                    print(f"[skipping target: {suggestion.target}]")
                case Status.out_of_range:
                    print(f"[out of range: {suggestion.target}]")
                case Status.found if suggestion.breakpoint is not None:
                    found.append(suggestion.breakpoint)
                    print(f"[#{len(found)}] Breakpoint for {suggestion.target}:")
                    print(format_breakpoint(suggestion.breakpoint))
        return found

    def read_event(self, breakpoints: Sequence[Breakpoint]) -> Event:
        """Read operator input until it yields an event.

        End of input and Ctrl-C are treated as an abort.
        """
        while True:
            try:
                text = self._prompt(PROMPT)
                if is_custom_command(text):
                    return Retarget(parse_targets(self._prompt(CUSTOM_PROMPT), self._max_entries))
                event = parse_command(text, breakpoints, self._date_format)
            except InputValidationError as e:
                return Invalid(str(e))
            except (EOFError, KeyboardInterrupt):
                print()
                return Abort()
            if event is not None:
                return event

    def _prompt(self, message: str) -> str:
        return self._read_line(f"\n{message} ")
