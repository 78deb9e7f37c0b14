"""Task-time extraction from engine trace output."""
from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass
from typing import Callable, Iterable, Optional, Tuple

from .errors import TraceParseError

LOGGER = logging.getLogger(__name__)

COMPLETION_MARKER = "Stopped because no events left to process"
PLACEHOLDER_COLUMN = "------"

DECIMAL_PATTERN = re.compile(r"[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")
WHITESPACE_PATTERN = re.compile(r"\s+")


@dataclass(frozen=True)
class TimingStrategy:
    """One recognized layout of the completion-time line."""

    name: str
    extract: Callable[[str], Optional[float]]


def _to_number(token: str) -> Optional[float]:
    if not DECIMAL_PATTERN.fullmatch(token):
        return None
    return float(token)


def _bare_number(line: str) -> Optional[float]:
    # Older engines print the time on a line of its own.
    return _to_number(line)


def _padded_columns(line: str) -> Optional[float]:
    # Newer engines print "   1.300   ------   Stopped because no events left to process".
    # A placeholder column alone is enough to qualify the line.
    if COMPLETION_MARKER not in line and PLACEHOLDER_COLUMN not in line:
        return None
    for token in WHITESPACE_PATTERN.split(line):
        value = _to_number(token)
        if value is not None:
            return value
    return None


TASK_TIME_STRATEGIES: Tuple[TimingStrategy, ...] = (
    TimingStrategy("bare-number", _bare_number),
    TimingStrategy("padded-columns", _padded_columns),
)


def parse_task_time(line: Optional[str]) -> float:
    """Return the task completion time in seconds reported by ``line``.

    Strategies in :data:`TASK_TIME_STRATEGIES` are tried in order and the
    first one that yields a number wins. Raises :class:`TraceParseError`
    when the line is empty, matches no strategy, or reports a value that is
    not a non-negative finite number.
    """
    if line is None or not line.strip():
        raise TraceParseError("Empty or missing trace line", line)

    trimmed = line.strip()
    for strategy in TASK_TIME_STRATEGIES:
        value = strategy.extract(trimmed)
        if value is None:
            continue
        if not math.isfinite(value) or value < 0:
            raise TraceParseError(f"Task time out of range in line: {line!r}", line)
        LOGGER.debug("Parsed task time %s using %s strategy", value, strategy.name)
        return value
    raise TraceParseError(f"Could not parse task time from line: {line!r}", line)


def is_candidate_line(line: str) -> bool:
    """True when ``line`` looks like a completion-time line in any known layout."""
    trimmed = line.strip()
    if not trimmed:
        return False
    if COMPLETION_MARKER in trimmed or PLACEHOLDER_COLUMN in trimmed:
        return True
    return DECIMAL_PATTERN.fullmatch(trimmed) is not None


class TraceScanner:
    """Watches streamed trace lines for the completion-time report."""

    def __init__(self) -> None:
        self.task_time: Optional[float] = None
        self.matched_line: Optional[str] = None
        self.failed_line: Optional[str] = None
        self.error: Optional[TraceParseError] = None
        self.lines_seen = 0

    def feed(self, line: str) -> Optional[float]:
        """Consume one line and return the task time if this line reported it."""
        self.lines_seen += 1
        if not is_candidate_line(line):
            return None
        try:
            value = parse_task_time(line)
        except TraceParseError as exc:
            LOGGER.debug("Unrecognized completion line: %s", exc)
            self.failed_line = line
            self.error = exc
            return None
        self.task_time = value
        self.matched_line = line
        return value

    def feed_all(self, lines: Iterable[str]) -> Optional[float]:
        for line in lines:
            self.feed(line)
        return self.task_time

    @property
    def found(self) -> bool:
        return self.task_time is not None

    def result(self) -> float:
        """Return the last task time seen or raise the reason none was found."""
        if self.task_time is not None:
            return self.task_time
        if self.error is not None:
            raise self.error
        raise TraceParseError(
            f"No task completion line found in {self.lines_seen} line(s) of trace output"
        )


def find_task_time(lines: Iterable[str]) -> float:
    """Scan a complete trace buffer and return the reported task time."""
    scanner = TraceScanner()
    scanner.feed_all(lines)
    return scanner.result()


__all__ = [
    "COMPLETION_MARKER",
    "PLACEHOLDER_COLUMN",
    "TASK_TIME_STRATEGIES",
    "TimingStrategy",
    "TraceScanner",
    "find_task_time",
    "is_candidate_line",
    "parse_task_time",
]
