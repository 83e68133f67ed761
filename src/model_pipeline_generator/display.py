"""Rich renderables for projects and their pipeline stages."""

from __future__ import annotations

from typing import Any

from pydantic import ValidationError
from rich.console import Group, RenderableType
from rich.json import JSON
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from .models import (
    PHASE_SCHEMAS,
    ArchitectureSpec,
    DeploymentSpec,
    Phase,
    Project,
    ProjectStatus,
    StageStatus,
    TrainingMetrics,
    TrainingSpec,
)
from .stages import STAGES, StageView, derive_stages

STATUS_STYLES: dict[ProjectStatus, str] = {
    ProjectStatus.INITIALIZING: "bright_black",
    ProjectStatus.DESIGNING: "blue",
    ProjectStatus.TRAINING: "magenta",
    ProjectStatus.DEPLOYING: "yellow",
    ProjectStatus.DEPLOYED: "green",
    ProjectStatus.FAILED: "red",
}

_STAGE_ICONS: dict[StageStatus, tuple[str, str]] = {
    StageStatus.PENDING: ("○", "dim"),
    StageStatus.ACTIVE: ("◐", "cyan"),
    StageStatus.DONE: ("✓", "green"),
    StageStatus.FAILED: ("✗", "red"),
}


def status_badge(status: ProjectStatus) -> Text:
    """Coloured status label."""
    style = STATUS_STYLES.get(status, "bright_black")
    return Text(f" {status.value} ", style=f"bold {style} reverse")


# ---------------------------------------------------------------------------
# Stage summaries
# ---------------------------------------------------------------------------

def _architecture_summary(spec: ArchitectureSpec) -> str:
    parts = [spec.model_name or "unnamed model"]
    if spec.base_model:
        parts.append(f"base {spec.base_model}")
    if spec.estimated_params:
        parts.append(f"{spec.estimated_params} params")
    if spec.task:
        parts.append(spec.task)
    return " · ".join(parts)


def _training_summary(spec: TrainingSpec) -> str:
    parts = []
    if spec.optimizer:
        parts.append(spec.optimizer)
    if spec.learning_rate is not None:
        parts.append(f"lr={spec.learning_rate}")
    if spec.epochs is not None:
        parts.append(f"{spec.epochs} epochs")
    if spec.dataset:
        parts.append(f"on {spec.dataset}")
    if spec.hardware:
        parts.append(spec.hardware)
    return " · ".join(parts)


def _deployment_summary(spec: DeploymentSpec) -> str:
    parts = []
    if spec.docker_image:
        parts.append(spec.docker_image)
    if spec.port is not None:
        parts.append(f":{spec.port}{spec.endpoint or ''}")
    if spec.scaling and spec.scaling.max_replicas is not None:
        parts.append(f"{spec.scaling.min_replicas or 1}-{spec.scaling.max_replicas} replicas")
    return " · ".join(parts)


_SUMMARIZERS = {
    Phase.ARCHITECTURE: _architecture_summary,
    Phase.TRAINING: _training_summary,
    Phase.DEPLOYMENT: _deployment_summary,
}


def summarize_phase_result(phase: Phase, data: dict[str, Any] | None) -> str:
    """One-line summary of a phase result, or "" when nothing useful is known."""
    if not data or set(data) == {"raw"}:
        return ""
    try:
        spec = PHASE_SCHEMAS[phase].model_validate(data)
    except ValidationError:
        return ""
    return _SUMMARIZERS[phase](spec)


# ---------------------------------------------------------------------------
# Project rendering
# ---------------------------------------------------------------------------

def render_metrics(metrics: TrainingMetrics) -> Table:
    table = Table(show_header=True, header_style="dim", box=None, padding=(0, 2))
    table.add_column("accuracy", justify="right")
    table.add_column("f1 score", justify="right")
    table.add_column("loss", justify="right")
    table.add_row(f"{metrics.accuracy:.1f}%", f"{metrics.f1_score:.1f}%", f"{metrics.loss:.4f}")
    return table


def _render_stage(view: StageView, phase: Phase) -> Panel:
    icon, style = _STAGE_ICONS[view.status]
    title = Text.assemble((f"{icon} ", style), (view.label, "bold"))

    body: list[RenderableType] = [Text(view.description, style="dim")]
    if view.status == StageStatus.DONE and view.data:
        summary = summarize_phase_result(phase, view.data)
        if summary:
            body.append(Text(summary, style="cyan"))
        if view.metrics:
            body.append(render_metrics(view.metrics))
        if set(view.data) == {"raw"}:
            body.append(Text(str(view.data["raw"])))
        else:
            body.append(JSON.from_data(view.data))

    border = {StageStatus.ACTIVE: "cyan", StageStatus.FAILED: "red"}.get(view.status, "bright_black")
    return Panel(Group(*body), title=title, title_align="left", border_style=border)


def render_project(project: Project, current_phase: Phase | None = None) -> Group:
    """Header, prompt and one panel per pipeline stage."""
    header = Table.grid(expand=True)
    header.add_column()
    header.add_column(justify="right")
    header.add_row(Text(project.name or project.id, style="bold"), status_badge(project.status))

    parts: list[RenderableType] = [
        header,
        Text.assemble(("Prompt: ", "dim"), project.prompt),
    ]
    if project.model_type:
        parts.append(Text.assemble(("Type: ", "dim"), (project.model_type, "cyan")))

    for stage, view in zip(STAGES, derive_stages(project, current_phase)):
        parts.append(_render_stage(view, stage.phase))

    if project.status == ProjectStatus.FAILED:
        parts.append(Text(f"Pipeline failed. Retry with: mpg mode=retry project_id={project.id}", style="red"))
    elif project.status == ProjectStatus.DEPLOYED:
        parts.append(Text(
            "Deployed successfully. The model is described as ready to serve "
            "predictions via its Docker container endpoint.",
            style="green",
        ))
    return Group(*parts)


def render_project_list(projects: list[Project]) -> Table:
    table = Table(title="Projects", show_lines=False)
    table.add_column("ID", style="dim")
    table.add_column("Name")
    table.add_column("Type", style="cyan")
    table.add_column("Status")
    table.add_column("Created", style="dim")
    for p in projects:
        table.add_row(
            p.id,
            p.name,
            p.model_type or "—",
            status_badge(p.status),
            p.created_at.strftime("%Y-%m-%d %H:%M"),
        )
    return table
