"""Output formatters for console and JSON display."""

from __future__ import annotations

import json
from pathlib import Path
from typing import TYPE_CHECKING

from rich.console import Console
from rich.table import Table

if TYPE_CHECKING:
    from .core import Action, GitRepository, SweepSummary, SyncResult


class OutputFormatter:
    """Format output for console or JSON."""

    def __init__(self, console: Console, use_json: bool = False):
        self.console = console
        self.use_json = use_json

    def _print_json(self, output: dict):
        self.console.print(
            json.dumps(output, indent=2, default=str),
            markup=False,
            highlight=False,
            soft_wrap=True,
        )

    def _get_relative_path(self, path: Path, root: Path) -> str:
        """Get relative path from root."""
        try:
            return str(path.relative_to(root))
        except ValueError:
            return str(path)

    def print_sync_results(
        self,
        results: list[SyncResult],
        summary: SweepSummary,
        root_path: Path,
    ):
        """Print sync results."""
        if self.use_json:
            self._print_json(
                {
                    "root": str(root_path),
                    "results": [r.to_dict() for r in results],
                    "summary": summary.to_dict(),
                }
            )
        else:
            self._print_sync_table(results, summary, root_path)

    def _print_sync_table(
        self,
        results: list[SyncResult],
        summary: SweepSummary,
        root_path: Path,
    ):
        if not results:
            self.console.print(f"[dim]No repositories found in {root_path}[/]")
            return

        table = Table(title=f"Sweep Results: {root_path}")
        table.add_column("Repository", style="cyan", no_wrap=True)
        table.add_column("Branch")
        table.add_column("Outcome", justify="center")
        table.add_column("Message")

        for result in results:
            message = result.message
            if result.error:
                message = f"[red]{result.error[:80]}[/]"
            table.add_row(
                self._get_relative_path(result.path, root_path),
                f"[green]{result.branch}[/]" if result.branch else "[dim]-[/]",
                self._get_outcome_display(result),
                message,
            )

        self.console.print(table)
        self.console.print()
        self._print_summary(summary)

    def _get_outcome_display(self, result: SyncResult) -> str:
        """Get outcome label with icon."""
        from .core import SyncOutcome

        match result.outcome:
            case SyncOutcome.FAST_FORWARDED:
                return "[blue]⬇ fast-forward[/]"
            case SyncOutcome.WOULD_FAST_FORWARD:
                return "[blue]⬇ would fast-forward[/]"
            case SyncOutcome.UP_TO_DATE:
                return "[green]✓ up to date[/]"
            case SyncOutcome.MANUAL_MERGE:
                return "[yellow]⬆⬇ merge needed[/]"
            case SyncOutcome.UNRELATED:
                return "[yellow]unrelated history[/]"
            case SyncOutcome.FETCHED:
                return "[cyan]fetched only[/]"
            case SyncOutcome.SKIPPED:
                reason = result.skip_reason.value if result.skip_reason else "skipped"
                return f"[dim]skip: {reason}[/]"
            case SyncOutcome.ERROR:
                return "[red]✗ error[/]"
            case _:
                return "[dim]?[/]"

    def _print_summary(self, summary: SweepSummary):
        parts = [f"[bold]Total:[/] {summary.total}"]

        if summary.fast_forwarded > 0:
            parts.append(f"[blue]⬇ Fast-forwarded:[/] {summary.fast_forwarded}")
        if summary.up_to_date > 0:
            parts.append(f"[green]✓ Up to date:[/] {summary.up_to_date}")
        if summary.manual_merge > 0:
            parts.append(f"[yellow]⬆⬇ Merge needed:[/] {summary.manual_merge}")
        if summary.fetched > 0:
            parts.append(f"[cyan]Fetched only:[/] {summary.fetched}")
        if summary.skipped > 0:
            parts.append(f"[dim]Skipped:[/] {summary.skipped}")
        if summary.errors > 0:
            parts.append(f"[red]✗ Errors:[/] {summary.errors}")

        self.console.print(" | ".join(parts))

    def print_plan(self, planned: list[tuple[GitRepository, Action]], root_path: Path):
        """Print the action chosen for each repository."""
        if self.use_json:
            self._print_json(
                {
                    "root": str(root_path),
                    "repositories": [
                        {
                            "path": str(repo.path),
                            "name": repo.name,
                            "action": action.kind.value,
                            "skip_reason": getattr(action, "reason", None),
                        }
                        for repo, action in planned
                    ],
                }
            )
            return

        self.console.print(f"[bold]Found {len(planned)} repositories in {root_path}[/]\n")
        if not planned:
            return

        table = Table(title="Sweep Plan")
        table.add_column("Repository", style="cyan", no_wrap=True)
        table.add_column("Action", justify="center")
        table.add_column("Reason")

        for repo, action in planned:
            reason = getattr(action, "reason", None)
            match action.kind.value:
                case "pull":
                    label = "[blue]pull[/]"
                case "fetch":
                    label = "[cyan]fetch only[/]"
                case _:
                    label = "[dim]skip[/]"
            table.add_row(repo.name, label, reason.description if reason else "")

        self.console.print(table)
