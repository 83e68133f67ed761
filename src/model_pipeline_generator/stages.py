"""Stage presentation mapper.

Derives the display state of each pipeline stage from a project snapshot and
the orchestrator's current-phase marker. Pure functions only: the result
depends on the arguments alone and nothing here raises for projects whose
result fields disagree with their status.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel

from .models import Phase, Project, ProjectStatus, StageStatus, TrainingMetrics


@dataclass(frozen=True)
class StageDefinition:
    key: ProjectStatus
    phase: Phase
    label: str
    description: str


STAGES: tuple[StageDefinition, ...] = (
    StageDefinition(
        key=ProjectStatus.DESIGNING,
        phase=Phase.ARCHITECTURE,
        label=Phase.ARCHITECTURE.label,
        description="AI designs model architecture using PyTorch & Hugging Face",
    ),
    StageDefinition(
        key=ProjectStatus.TRAINING,
        phase=Phase.TRAINING,
        label=Phase.TRAINING.label,
        description="Configure training pipeline and train the model",
    ),
    StageDefinition(
        key=ProjectStatus.DEPLOYING,
        phase=Phase.DEPLOYMENT,
        label=Phase.DEPLOYMENT.label,
        description="Deploy model to containerized Docker environment",
    ),
)

STAGE_ORDER: tuple[ProjectStatus, ...] = (
    ProjectStatus.DESIGNING,
    ProjectStatus.TRAINING,
    ProjectStatus.DEPLOYING,
    ProjectStatus.DEPLOYED,
)


class StageView(BaseModel):
    """Everything the viewer needs to draw one stage."""
    key: ProjectStatus
    label: str
    description: str
    status: StageStatus
    data: dict[str, Any] | None = None
    metrics: TrainingMetrics | None = None


def _order_index(status: ProjectStatus) -> int:
    """Position in ``STAGE_ORDER``; -1 for initializing and failed."""
    try:
        return STAGE_ORDER.index(status)
    except ValueError:
        return -1


def derive_stage_status(
    project: Project,
    stage: StageDefinition,
    current_phase: Phase | None,
) -> StageStatus:
    """Display state of *stage*; checks run in priority order."""
    status = project.status
    if status == ProjectStatus.FAILED and current_phase == stage.phase:
        return StageStatus.FAILED
    if _order_index(stage.key) < _order_index(status) or status == ProjectStatus.DEPLOYED:
        return StageStatus.DONE
    if current_phase == stage.phase or status == stage.key:
        return StageStatus.ACTIVE
    return StageStatus.PENDING


def derive_stage_statuses(
    project: Project,
    current_phase: Phase | None,
) -> dict[ProjectStatus, StageStatus]:
    return {stage.key: derive_stage_status(project, stage, current_phase) for stage in STAGES}


def derive_stages(project: Project, current_phase: Phase | None) -> list[StageView]:
    """Stage views for *project* in pipeline order."""
    return [
        StageView(
            key=stage.key,
            label=stage.label,
            description=stage.description,
            status=derive_stage_status(project, stage, current_phase),
            data=project.phase_result(stage.phase),
            metrics=project.metrics if stage.phase is Phase.TRAINING else None,
        )
        for stage in STAGES
    ]
