"""CLI entry point using Hydra.

Usage examples:
  mpg mode=run prompt="Create a sentiment analysis model"
  mpg mode=retry project_id=<id>
  mpg mode=show project_id=<id>
  mpg mode=list
  mpg mode=delete project_id=<id>
  mpg mode=serve port=8080
  mpg --config-dir configs --config-name config mode=run backend=http prompt="..."
"""

from __future__ import annotations

import asyncio
import random
import sys
import warnings
from typing import Any

import hydra
from omegaconf import DictConfig, OmegaConf

from ._hydra_conf import CLI_ONLY_KEYS, register_configs
from .config import apply_env_fallbacks
from .display import render_project, render_project_list
from .errors import ProjectNotFoundError
from .generation import create_generation_client
from .logging_config import RichCallbacks, console, setup_logging
from .models import PipelineConfig, Project, RunResult
from .orchestrator import AutoStarter, PhaseOrchestrator
from .store import JsonProjectStore

register_configs()

# Suppress Hydra 1.1 deprecation warning about automatic schema matching.
warnings.filterwarnings("ignore", category=UserWarning, message=r"(?s).*ConfigStore schema.*")

# ---------------------------------------------------------------------------
# Hydra DictConfig -> Pydantic PipelineConfig bridge
# ---------------------------------------------------------------------------


def _to_pipeline_config(cfg: DictConfig) -> PipelineConfig:
    """Convert a Hydra DictConfig to a Pydantic PipelineConfig."""
    container: dict[str, Any] = OmegaConf.to_container(cfg, resolve=True)  # type: ignore[assignment]
    for key in CLI_ONLY_KEYS:
        container.pop(key, None)
    config = PipelineConfig.model_validate(container)
    return apply_env_fallbacks(config)


def _build_orchestrator(config: PipelineConfig) -> tuple[JsonProjectStore, PhaseOrchestrator]:
    store = JsonProjectStore(config.store_path)
    rng = random.Random(config.metrics_seed) if config.metrics_seed is not None else None
    orchestrator = PhaseOrchestrator(
        store,
        create_generation_client(config),
        callbacks=RichCallbacks(),
        rng=rng,
    )
    return store, orchestrator


async def _close_client(orchestrator: PhaseOrchestrator) -> None:
    aclose = getattr(orchestrator.client, "aclose", None)
    if aclose is not None:
        await aclose()


def _require(cfg: DictConfig, key: str) -> str:
    value = cfg.get(key) or ""
    if not str(value).strip():
        console.print(f"[red]Missing required option: {key}=...[/]")
        sys.exit(1)
    return str(value)


def _report(project: Project, result: RunResult, orchestrator: PhaseOrchestrator) -> None:
    console.print()
    console.print(render_project(project, orchestrator.current_phase(project.id)))
    if result.success:
        return
    if result.error_message:
        hint = " (retryable)" if result.retryable else ""
        console.print(f"  [red]{result.error_kind}: {result.error_message}{hint}[/]")
    sys.exit(1)


# ---------------------------------------------------------------------------
# Mode handlers
# ---------------------------------------------------------------------------


def _run_mode(cfg: DictConfig) -> None:
    config = _to_pipeline_config(cfg)
    prompt = _require(cfg, "prompt")
    store, orchestrator = _build_orchestrator(config)

    async def _main() -> tuple[Project, RunResult]:
        starter = AutoStarter(orchestrator, store)
        try:
            project = store.create(prompt, cfg.get("name"), owner=config.owner)
            console.print(f"[bold]Created project[/] {project.id}")
            results = await starter.wait()
            result = results[0] if results else await orchestrator.run(project)
        finally:
            starter.close()
            await _close_client(orchestrator)
        return store.get(project.id), result

    project, result = asyncio.run(_main())
    _report(project, result, orchestrator)


def _retry_mode(cfg: DictConfig) -> None:
    config = _to_pipeline_config(cfg)
    project_id = _require(cfg, "project_id")
    store, orchestrator = _build_orchestrator(config)

    project = store.get(project_id)

    async def _main() -> RunResult:
        try:
            return await orchestrator.run(project)
        finally:
            await _close_client(orchestrator)

    result = asyncio.run(_main())
    if result.skipped:
        console.print(f"[yellow]Nothing to run: project is {project.status.value}.[/]")
    _report(store.get(project_id), result, orchestrator)


def _show_mode(cfg: DictConfig) -> None:
    config = _to_pipeline_config(cfg)
    store = JsonProjectStore(config.store_path)
    console.print(render_project(store.get(_require(cfg, "project_id"))))


def _list_mode(cfg: DictConfig) -> None:
    config = _to_pipeline_config(cfg)
    projects = JsonProjectStore(config.store_path).fetch_all()
    if not projects:
        console.print("[dim]No projects yet. Start one with: mpg mode=run prompt=\"...\"[/]")
        return
    console.print(render_project_list(projects))


def _delete_mode(cfg: DictConfig) -> None:
    config = _to_pipeline_config(cfg)
    project_id = _require(cfg, "project_id")
    JsonProjectStore(config.store_path).delete(project_id)
    console.print(f"[green]Deleted project {project_id}[/]")


def _serve_mode(cfg: DictConfig) -> None:
    from .server import serve

    serve(_to_pipeline_config(cfg))


_MODE_DISPATCH: dict[str, Any] = {
    "run": _run_mode,
    "retry": _retry_mode,
    "show": _show_mode,
    "list": _list_mode,
    "delete": _delete_mode,
    "serve": _serve_mode,
}


# ---------------------------------------------------------------------------
# Hydra entry point
# ---------------------------------------------------------------------------


@hydra.main(config_path=None, config_name="config", version_base=None)
def hydra_entry(cfg: DictConfig) -> None:
    """Hydra-managed CLI entry point."""
    setup_logging(verbose=cfg.get("verbose", False), quiet=cfg.get("quiet", False))

    mode = cfg.get("mode", "run")
    handler = _MODE_DISPATCH.get(mode)
    if handler is None:
        console.print(f"[red]Unknown mode: {mode!r}. Choose from: {', '.join(_MODE_DISPATCH)}[/]")
        sys.exit(1)

    try:
        handler(cfg)
    except ProjectNotFoundError as e:
        console.print(f"[red]{e}[/]")
        sys.exit(1)


def main() -> None:
    """Package entry point (``[project.scripts]`` target)."""
    hydra_entry()  # pylint: disable=no-value-for-parameter
