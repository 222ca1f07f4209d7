"""Output formatting utilities for the CLI."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from typing import Any, Iterable, Mapping

from rich.console import Console
from rich.table import Table
from rich.theme import Theme

_THEME = Theme(
    {
        "ok": "bold green",
        "warn": "yellow",
        "err": "bold red",
        "title": "bold cyan",
        "meta": "dim",
    }
)

console = Console(theme=_THEME)


def _decision_style(decision: str) -> str:
    """Return the theme style for a decision label."""
    if decision == "SKIP":
        return "meta"
    if decision.startswith("REBUILD") or decision in {"FULL", "DIFF", "LOG", "FULL_COPY_ONLY"}:
        return "warn"
    return "ok"


@dataclass(frozen=True)
class Out:
    """Output formatter for CLI messages and tables."""

    def info(self, msg: str) -> None:
        """Print an info message."""
        console.print(f"[title]›[/] {msg}")

    def success(self, msg: str) -> None:
        """Print a success message."""
        console.print(f"[ok]✓[/] {msg}")

    def warn(self, msg: str) -> None:
        """Print a warning message."""
        console.print(f"[warn]⚠[/] {msg}")

    def error(self, msg: str) -> None:
        """Print an error message."""
        console.print(f"[err]✗[/] {msg}")

    def header(self, title: str) -> None:
        """Print a header message."""
        console.print(f"[title]{title}[/]")

    def kv(self, items: Mapping[str, Any]) -> None:
        """Print key-value pairs."""
        for k, v in items.items():
            console.print(f"[meta]{k}[/]: {v}")

    def decisions_table(
        self,
        records: Iterable[Any],
        title: str = "Decisions",
        *,
        show_skipped: bool = False,
    ) -> None:
        """
        Render the decisions of a run.

        Expects objects with .database .operation .target .decision .reason
        .executed and .error (like sqlmaint.core.runs.ActionRecord).
        """
        t = Table(title=title, show_lines=False)
        t.add_column("Database", style="ok", no_wrap=True)
        t.add_column("Operation", no_wrap=True)
        t.add_column("Object")
        t.add_column("Decision", no_wrap=True)
        t.add_column("Reason", style="meta")
        t.add_column("Result")

        for r in records:
            if r.decision == "SKIP" and not show_skipped:
                continue
            style = _decision_style(r.decision)
            if r.error:
                result = f"[err]FAIL[/] {r.error}"
            elif r.executed:
                result = "[ok]OK[/]"
            else:
                result = "[meta]-[/]"
            operation = getattr(r.operation, "value", r.operation)
            t.add_row(
                r.database,
                str(operation),
                r.target,
                f"[{style}]{r.decision}[/{style}]",
                r.reason,
                result,
            )

        console.print(t)

    def run_summary(self, report: Any, *, log_path: Any = None) -> None:
        """Print counts per decision and the error total of a RunReport."""
        counts = Counter(r.decision for r in report.records)
        items: dict[str, Any] = {
            "Databases": len(report.databases),
            "Decisions": ", ".join(f"{k}={v}" for k, v in sorted(counts.items())) or "none",
            "Errors": report.error_count,
        }
        if log_path is not None:
            items["Log"] = log_path
        self.header("Summary")
        self.kv(items)


out = Out()
