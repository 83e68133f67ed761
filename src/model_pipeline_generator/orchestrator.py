"""Phase orchestrator: drives a project through the three generation phases.

Flow::

    initializing → designing → training → deploying → deployed
                       └──────────┴──────────┴──→ failed

Each phase persists its status, calls the generation client, then persists
its result before the next phase starts. Any error marks the project
``failed`` and stops the run; a retry starts again from the architecture
phase. Writes are separate store mutations, not one transaction.

The in-flight guard is per orchestrator instance (one process). Two
processes sharing a store can still start overlapping runs.
"""

from __future__ import annotations

import asyncio
import json
import logging
import random
from typing import Any

from .errors import GenerationError, ProjectNotFoundError
from .generation import GenerationClient
from .logging_config import NullCallbacks, PipelineCallbacks
from .models import (
    PHASE_ORDER,
    Phase,
    Project,
    ProjectStatus,
    RunResult,
    TrainingMetrics,
)
from .store import ProjectStore

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def build_context_prompt(prompt: str, phase: Phase, results: dict[Phase, dict[str, Any]]) -> str:
    """User content for *phase*: the original request plus all prior results."""
    if phase is Phase.ARCHITECTURE:
        return prompt
    parts = [
        f"Original request: {prompt}",
        f"Architecture: {json.dumps(results[Phase.ARCHITECTURE])}",
    ]
    if phase is Phase.DEPLOYMENT:
        parts.append(f"Training: {json.dumps(results[Phase.TRAINING])}")
    return "\n".join(parts)


def synthesize_metrics(rng: random.Random | None = None) -> TrainingMetrics:
    """Placeholder evaluation metrics.

    Nothing is trained, so these are pseudo-random values in plausible bands
    (accuracy 88-98 %, F1 85-95 %, loss 0.05-0.35). They are not measurements.
    """
    rng = rng or random.Random()
    return TrainingMetrics(
        accuracy=round(rng.uniform(88.0, 98.0), 1),
        f1_score=round(rng.uniform(85.0, 95.0), 1),
        loss=round(rng.uniform(0.05, 0.35), 4),
    )


def _model_type(architecture: dict[str, Any]) -> str:
    return architecture.get("model_type") or architecture.get("task") or "custom"


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------

class PhaseOrchestrator:
    """Runs the architecture → training → deployment sequence for projects."""

    def __init__(
        self,
        store: ProjectStore,
        client: GenerationClient,
        *,
        callbacks: PipelineCallbacks | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self.store = store
        self.client = client
        self.callbacks = callbacks or NullCallbacks()
        self._rng = rng or random.Random()

        # State
        self._in_flight: set[str] = set()
        self._current_phase: dict[str, Phase] = {}

    def is_in_flight(self, project_id: str) -> bool:
        return project_id in self._in_flight

    def current_phase(self, project_id: str) -> Phase | None:
        """Phase running now, or the phase a failed run stopped in."""
        return self._current_phase.get(project_id)

    async def run(self, project: Project | str) -> RunResult:
        """Run all three phases for *project*.

        A second call while a run for the same project is in flight, or a call
        on a ``deployed`` project, returns a skipped result without calling
        the generation client.
        """
        project_id = project if isinstance(project, str) else project.id
        # Checked and set before the first await, so concurrent callers see it.
        if project_id in self._in_flight:
            logger.info("Run already in flight for project %s; ignoring", project_id)
            return RunResult(project_id=project_id, success=False, skipped=True)

        self._in_flight.add(project_id)
        try:
            return await self._run(project_id)
        finally:
            self._in_flight.discard(project_id)

    async def _run(self, project_id: str) -> RunResult:
        completed: list[Phase] = []
        phase: Phase | None = None

        try:
            project = self.store.get(project_id)
            if project.status == ProjectStatus.DEPLOYED:
                logger.info("Project %s is already deployed; nothing to run", project_id)
                return RunResult(
                    project_id=project_id,
                    success=True,
                    skipped=True,
                    final_status=ProjectStatus.DEPLOYED,
                )
            if project.status not in (ProjectStatus.INITIALIZING, ProjectStatus.FAILED):
                # Left mid-pipeline by a run this process does not own.
                logger.warning(
                    "Project %s is %s with no local run; restarting from the first phase",
                    project_id, project.status.value,
                )

            self._current_phase.pop(project_id, None)
            self.callbacks.on_run_start(project_id)
            results: dict[Phase, dict[str, Any]] = {}

            for phase in PHASE_ORDER:
                self._current_phase[project_id] = phase
                self.store.update_partial(project_id, {"status": phase.status})
                self.callbacks.on_phase_start(phase.value, phase.label)

                context = build_context_prompt(project.prompt, phase, results)
                result = await self.client.generate(phase, context)
                if result.degraded:
                    self.callbacks.on_warning(
                        f"{phase.label}: reply was not valid JSON, keeping raw text"
                    )

                results[phase] = result.data
                self.store.update_partial(project_id, self._result_fields(phase, result.data))
                self.callbacks.on_phase_end(phase.value, True)
                completed.append(phase)

            self.store.update_partial(project_id, {"status": ProjectStatus.DEPLOYED})
            self._current_phase.pop(project_id, None)
            logger.info("Project %s deployed", project_id)
            self.callbacks.on_run_end(project_id, True)
            return RunResult(
                project_id=project_id,
                success=True,
                final_status=ProjectStatus.DEPLOYED,
                phases_completed=completed,
            )

        except Exception as e:
            logger.exception(
                "Pipeline failed for project %s during %s",
                project_id, phase.value if phase else "setup",
            )
            return self._fail(project_id, phase, completed, e)

    def _result_fields(self, phase: Phase, data: dict[str, Any]) -> dict[str, Any]:
        fields: dict[str, Any] = {phase.result_field: data}
        if phase is Phase.ARCHITECTURE:
            fields["model_type"] = _model_type(data)
        elif phase is Phase.TRAINING:
            fields["metrics"] = synthesize_metrics(self._rng)
        return fields

    def _fail(
        self,
        project_id: str,
        phase: Phase | None,
        completed: list[Phase],
        error: Exception,
    ) -> RunResult:
        message = str(error) or type(error).__name__
        self.callbacks.on_error(message)
        if phase is not None:
            self.callbacks.on_phase_end(phase.value, False)

        final_status: ProjectStatus | None = ProjectStatus.FAILED
        try:
            self.store.update_partial(project_id, {"status": ProjectStatus.FAILED})
        except Exception:
            logger.exception("Could not mark project %s as failed", project_id)
            final_status = None

        self.callbacks.on_run_end(project_id, False)
        if isinstance(error, GenerationError):
            kind, retryable = error.kind, error.retryable
        else:
            kind, retryable = type(error).__name__, False
        return RunResult(
            project_id=project_id,
            success=False,
            final_status=final_status,
            phases_completed=completed,
            failed_phase=phase,
            error_kind=kind,
            error_message=message,
            retryable=retryable,
        )


# ---------------------------------------------------------------------------
# Auto-start
# ---------------------------------------------------------------------------

class AutoStarter:
    """Starts a run for every project observed in ``initializing``.

    Subscribes to store notifications. Each ``(project id, status)`` pair
    triggers at most one run, and never while a run is in flight. A pair is
    forgotten once its run finishes; snapshots that no longer match the
    stored status are ignored.
    Must be used from inside a running event loop.
    """

    def __init__(self, orchestrator: PhaseOrchestrator, store: ProjectStore) -> None:
        self.orchestrator = orchestrator
        self.store = store
        self._seen: set[tuple[str, ProjectStatus]] = set()
        self._tasks: list[asyncio.Task[RunResult]] = []
        self._unsubscribe = store.subscribe(self.observe)

    def observe(self, project: Project) -> asyncio.Task[RunResult] | None:
        """Schedule a run for *project* if the auto-start rule applies."""
        if project.status != ProjectStatus.INITIALIZING:
            return None
        if self.orchestrator.is_in_flight(project.id):
            return None
        key = (project.id, project.status)
        if key in self._seen:
            return None
        try:
            if self.store.get(project.id).status != ProjectStatus.INITIALIZING:
                return None
        except ProjectNotFoundError:
            return None
        self._seen.add(key)

        logger.debug("Auto-starting pipeline for project %s", project.id)
        task = asyncio.get_running_loop().create_task(self.orchestrator.run(project.id))
        task.add_done_callback(lambda _: self._seen.discard(key))
        self._tasks.append(task)
        return task

    async def wait(self) -> list[RunResult]:
        """Wait for every scheduled run and return their results."""
        pending, self._tasks = self._tasks, []
        if not pending:
            return []
        return list(await asyncio.gather(*pending))

    def close(self) -> None:
        self._unsubscribe()
