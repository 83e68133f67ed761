"""AG2 agents, one per generation phase."""

from __future__ import annotations

import autogen

from ..models import Phase, PipelineConfig
from .architecture_designer import make_architecture_designer
from .deployment_planner import make_deployment_planner
from .training_planner import make_training_planner

__all__ = [
    "make_architecture_designer",
    "make_deployment_planner",
    "make_orchestrator",
    "make_phase_agent",
    "make_training_planner",
]


def make_phase_agent(phase: Phase, config: PipelineConfig) -> autogen.AssistantAgent:
    """Create the agent responsible for *phase*."""
    if phase is Phase.ARCHITECTURE:
        return make_architecture_designer(config)
    if phase is Phase.TRAINING:
        return make_training_planner(config)
    if phase is Phase.DEPLOYMENT:
        return make_deployment_planner(config)
    raise ValueError(f"Unknown phase: {phase!r}")


def make_orchestrator() -> autogen.UserProxyAgent:
    """Create the proxy that sends each phase request."""
    return autogen.UserProxyAgent(
        name="Orchestrator",
        human_input_mode="NEVER",
        code_execution_config=False,
    )
