"""Rich console setup and pipeline progress helpers."""

from __future__ import annotations

import logging
from typing import Protocol

from rich.console import Console
from rich.logging import RichHandler

console = Console()

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------


def setup_logging(*, verbose: bool = False, quiet: bool = False) -> None:
    """Configure root logger with Rich handler."""
    level = logging.DEBUG if verbose else (logging.ERROR if quiet else logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=verbose)],
        force=True,
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.DEBUG if verbose else logging.WARNING)


# ---------------------------------------------------------------------------
# Pipeline callbacks protocol
# ---------------------------------------------------------------------------


class PipelineCallbacks(Protocol):
    """Protocol for pipeline progress reporting."""

    def on_run_start(self, project_id: str) -> None: ...
    def on_phase_start(self, phase: str, description: str) -> None: ...
    def on_phase_end(self, phase: str, success: bool) -> None: ...
    def on_run_end(self, project_id: str, success: bool) -> None: ...
    def on_warning(self, message: str) -> None: ...
    def on_error(self, message: str) -> None: ...


class NullCallbacks:
    """Callbacks that report nothing (server and background use)."""

    def on_run_start(self, project_id: str) -> None:
        pass

    def on_phase_start(self, phase: str, description: str) -> None:
        pass

    def on_phase_end(self, phase: str, success: bool) -> None:
        pass

    def on_run_end(self, project_id: str, success: bool) -> None:
        pass

    def on_warning(self, message: str) -> None:
        pass

    def on_error(self, message: str) -> None:
        pass


class RichCallbacks:
    """Rich-based implementation of PipelineCallbacks."""

    def on_run_start(self, project_id: str) -> None:
        console.print(f"[bold]Pipeline run[/] [dim]{project_id}[/]")

    def on_phase_start(self, phase: str, description: str) -> None:
        console.rule(f"[bold blue]{phase}[/] — {description}")

    def on_phase_end(self, phase: str, success: bool) -> None:
        status = "[green]OK[/]" if success else "[red]FAILED[/]"
        console.print(f"  Phase {phase}: {status}")

    def on_run_end(self, project_id: str, success: bool) -> None:
        if success:
            console.print("\n[bold green]Model deployed successfully![/]")
        else:
            console.print("\n[bold red]Pipeline failed.[/]")

    def on_warning(self, message: str) -> None:
        console.print(f"  [yellow]WARNING:[/] {message}")

    def on_error(self, message: str) -> None:
        console.print(f"  [red]ERROR:[/] {message}")
