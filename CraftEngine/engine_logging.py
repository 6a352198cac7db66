"""
Structured logging for the craft-cost engine.

Provides insight into expansion and cost behaviour at multiple verbosity levels:
    - MINIMAL: Only final results and fetch failures
    - SUMMARY: Opportunity summaries and expand-all outcomes
    - DETAILED: Toggles, expand-all waves, ingredient tables
    - DEBUG: Every sub-recipe fetch
    - TRACE: Everything including per-node cost figures

Usage:
    from CraftEngine.engine_logging import EngineLogger, LogLevel

    logger = EngineLogger(level=LogLevel.DETAILED)
    controller = ExpansionController(catalog, logger=logger)
    ...
    logger.log_summary(summary)
"""
from __future__ import annotations

import sys
from dataclasses import dataclass, field
from datetime import datetime
from enum import IntEnum
from io import StringIO
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, TextIO, Tuple, Union

from .errors import ExpansionFailure


class LogLevel(IntEnum):
    """Verbosity levels for engine logging."""
    SILENT = 0      # No output at all
    MINIMAL = 10    # Only final results and errors
    SUMMARY = 20    # Summaries and batch outcomes
    DETAILED = 30   # Toggles, waves, tables
    DEBUG = 40      # Individual fetches
    TRACE = 50      # Per-node calculations


@dataclass
class LogEntry:
    """A single log entry with metadata."""
    timestamp: datetime
    level: LogLevel
    category: str
    message: str
    data: Optional[Dict[str, Any]] = None

    def format(self, include_timestamp: bool = True, include_level: bool = True) -> str:
        """Format the log entry as a string."""
        parts = []
        if include_timestamp:
            parts.append(f"[{self.timestamp.strftime('%H:%M:%S.%f')[:-3]}]")
        if include_level:
            parts.append(f"[{self.level.name:8}]")
        parts.append(f"[{self.category}]")
        parts.append(self.message)
        return " ".join(parts)


def _format_path(path: Sequence[int]) -> str:
    return "/".join(str(p) for p in path) or "<root>"


@dataclass
class EngineLogger:
    """
    Structured logger for the craft-cost engine.

    Collects log entries at various verbosity levels and can output
    to multiple destinations (console, file, string buffer).

    Attributes
    ----------
    level : LogLevel
        Minimum level to log (entries below this level are ignored)
    output : TextIO | None
        Output stream (defaults to sys.stderr)
    log_to_file : Path | None
        Optional path to also write logs to a file
    entries : list[LogEntry]
        All logged entries (for programmatic access)
    """
    level: LogLevel = LogLevel.SUMMARY
    output: Optional[TextIO] = None
    log_to_file: Optional[Path] = None
    include_timestamp: bool = True
    include_level: bool = True
    entries: List[LogEntry] = field(default_factory=list)
    _file_handle: Optional[TextIO] = field(default=None, repr=False)

    def __post_init__(self):
        if self.output is None:
            self.output = sys.stderr
        if self.log_to_file:
            self._file_handle = open(self.log_to_file, "w", encoding="utf-8")

    def close(self):
        """Close the file handle if opened."""
        if self._file_handle:
            self._file_handle.close()
            self._file_handle = None

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()

    def _log(self, level: LogLevel, category: str, message: str,
             data: Optional[Dict[str, Any]] = None) -> None:
        """Internal method to record and output a log entry."""
        if level > self.level:
            return

        entry = LogEntry(
            timestamp=datetime.now(),
            level=level,
            category=category,
            message=message,
            data=data,
        )
        self.entries.append(entry)

        formatted = entry.format(self.include_timestamp, self.include_level)
        if self.output:
            self.output.write(formatted + "\n")
            self.output.flush()
        if self._file_handle:
            self._file_handle.write(formatted + "\n")
            self._file_handle.flush()

    def _log_table(self, level: LogLevel, category: str,
                   headers: List[str], rows: List[List[Any]],
                   title: Optional[str] = None) -> None:
        """Log a formatted table."""
        if level > self.level:
            return

        all_rows = [headers] + rows
        widths = [max(len(str(row[i])) for row in all_rows) for i in range(len(headers))]

        lines = []
        if title:
            lines.append(title)
            lines.append("=" * len(title))

        header_line = " | ".join(str(h).ljust(w) for h, w in zip(headers, widths))
        lines.append(header_line)
        lines.append("-" * len(header_line))

        for row in rows:
            lines.append(" | ".join(str(v).ljust(w) for v, w in zip(row, widths)))

        for line in lines:
            self._log(level, category, line)

    # -------------------------------------------------------------------------
    # Fetch Logging
    # -------------------------------------------------------------------------

    def log_fetch_start(self, recipe_id: int, path: Sequence[int]) -> None:
        self._log(LogLevel.DEBUG, "FETCH",
                  f"Fetching recipe {recipe_id} for {_format_path(path)}",
                  {"recipe_id": recipe_id, "path": list(path)})

    def log_fetch_success(self, recipe_id: int, ingredient_count: int) -> None:
        self._log(LogLevel.DEBUG, "FETCH",
                  f"Recipe {recipe_id} loaded with {ingredient_count} ingredients")

    def log_fetch_failure(self, failure: ExpansionFailure) -> None:
        self._log(LogLevel.MINIMAL, "FETCH",
                  f"Could not load recipe {failure.sub_recipe_ref} at "
                  f"{_format_path(failure.path)} ({failure.kind.value}): {failure.message}",
                  {"path": list(failure.path), "kind": failure.kind.value})

    def log_fetch_cancelled(self, path: Sequence[int]) -> None:
        self._log(LogLevel.DETAILED, "FETCH",
                  f"Fetch for {_format_path(path)} cancelled, tree left untouched")

    # -------------------------------------------------------------------------
    # Expansion Logging
    # -------------------------------------------------------------------------

    def log_toggle(self, path: Sequence[int], old_state: Any, new_state: Any) -> None:
        self._log(LogLevel.DETAILED, "EXPAND",
                  f"{_format_path(path)}: {getattr(old_state, 'value', old_state)} -> "
                  f"{getattr(new_state, 'value', new_state)}")

    def log_toggle_rejected(self, path: Sequence[int], reason: str) -> None:
        self._log(LogLevel.DEBUG, "EXPAND",
                  f"Toggle on {_format_path(path)} ignored: {reason}")

    def log_expand_wave(self, wave: int, node_count: int, fetch_count: int) -> None:
        self._log(LogLevel.DETAILED, "EXPAND",
                  f"Expand-all wave {wave}: {node_count} nodes, {fetch_count} fetches")

    def log_expand_all_complete(self, fetch_count: int,
                                failures: Sequence[ExpansionFailure]) -> None:
        if failures:
            self._log(LogLevel.SUMMARY, "EXPAND",
                      f"Expand-all finished with {len(failures)} failed nodes "
                      f"({fetch_count} fetches)")
        else:
            self._log(LogLevel.SUMMARY, "EXPAND",
                      f"Expand-all finished ({fetch_count} fetches)")

    def log_collapse_all(self, collapsed_count: int) -> None:
        self._log(LogLevel.DETAILED, "EXPAND", f"Collapsed {collapsed_count} nodes")

    # -------------------------------------------------------------------------
    # Tree / Summary Logging
    # -------------------------------------------------------------------------

    def log_tree_opened(self, recipe_id: int, name: str, root_count: int,
                        stock_aware: bool) -> None:
        variant = "stock-aware" if stock_aware else "plain"
        self._log(LogLevel.SUMMARY, "TREE",
                  f"Opened recipe {recipe_id} ({name or 'unnamed'}), "
                  f"{root_count} ingredients, {variant}")

    def log_summary(self, summary: Any) -> None:
        """Log an OpportunitySummary."""
        flag = "" if summary.is_complete else " (incomplete prices)"
        self._log(LogLevel.SUMMARY, "SUMMARY",
                  f"Cost {summary.total_cost:,.0f}, margin {summary.margin:,.0f}, "
                  f"ROI {summary.roi:.1f}%{flag}")
        if summary.cost_to_complete is not None:
            self._log(LogLevel.SUMMARY, "SUMMARY",
                      f"Cost to complete {summary.cost_to_complete:,.0f}, "
                      f"owned {summary.total_owned_value:,.0f}")

    def log_rows(self, rows: Sequence[Any]) -> None:
        """Log visible ingredient rows as a table."""
        if self.level < LogLevel.DETAILED:
            return
        table = [
            ["  " * row.depth + row.name, row.required_quantity,
             "???" if row.unit_price is None else f"{row.unit_price:,.0f}",
             f"{row.cost:,.0f}", f"{row.percent:.0f}%", row.state]
            for row in rows
        ]
        self._log_table(LogLevel.DETAILED, "TREE",
                        ["Ingredient", "Qty", "Unit", "Cost", "Share", "State"],
                        table, title="Ingredients")

    # -------------------------------------------------------------------------
    # Utility Methods
    # -------------------------------------------------------------------------

    def get_all_entries(self) -> List[LogEntry]:
        """Return all logged entries."""
        return self.entries.copy()

    def get_entries_by_level(self, level: LogLevel) -> List[LogEntry]:
        """Return entries at or below a specific level."""
        return [e for e in self.entries if e.level <= level]

    def get_entries_by_category(self, category: str) -> List[LogEntry]:
        """Return entries matching a category."""
        return [e for e in self.entries if e.category == category]

    def to_string(self, level: Optional[LogLevel] = None) -> str:
        """Format all entries to a string."""
        entries = self.entries if level is None else self.get_entries_by_level(level)
        return "\n".join(e.format(self.include_timestamp, self.include_level)
                         for e in entries)

    def clear(self) -> None:
        """Clear all logged entries."""
        self.entries.clear()


def create_logger(
    level: Union[LogLevel, str, int] = LogLevel.SUMMARY,
    output: Optional[TextIO] = None,
    log_file: Optional[Path] = None,
) -> EngineLogger:
    """
    Factory function to create an EngineLogger.

    Parameters
    ----------
    level : LogLevel | str | int
        Verbosity level. Can be LogLevel enum, string name, or integer.
    output : TextIO | None
        Output stream. Defaults to sys.stderr.
    log_file : Path | None
        Optional path to write logs to file.
    """
    if isinstance(level, str):
        level = LogLevel[level.upper()]
    elif isinstance(level, int) and not isinstance(level, LogLevel):
        level = LogLevel(level)

    return EngineLogger(
        level=level,
        output=output,
        log_to_file=log_file,
    )


def create_string_logger(level: LogLevel = LogLevel.DETAILED) -> Tuple[EngineLogger, StringIO]:
    """
    Create a logger that writes to a string buffer.

    Useful for testing or capturing logs programmatically.
    """
    buffer = StringIO()
    logger = EngineLogger(level=level, output=buffer)
    return logger, buffer
