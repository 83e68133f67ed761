"""DeploymentPlanner agent — describes a Docker deployment for the trained model."""

from __future__ import annotations

import autogen

from ..config import build_phase_llm_config
from ..models import Phase, PipelineConfig

SYSTEM_PROMPT = """\
You are an expert MLOps engineer. Given model architecture and training config,
generate a Docker deployment configuration.

Return a JSON object with:
- docker_image: string (base image)
- dockerfile: string (complete Dockerfile content for serving the model)
- port: number
- endpoint: string (API endpoint path)
- api_format: {{ "input": object, "output": object }} (example request/response)
- environment_vars: array of strings
- scaling: {{ "min_replicas": number, "max_replicas": number, "target_cpu": number }}
- health_check: string
- estimated_inference_time: string
- model_size: string

Return ONLY valid JSON. No markdown fences or explanations.
"""


def make_deployment_planner(config: PipelineConfig) -> autogen.AssistantAgent:
    """Create the DeploymentPlanner agent."""
    return autogen.AssistantAgent(
        name="DeploymentPlanner",
        system_message=SYSTEM_PROMPT.format(),
        llm_config=build_phase_llm_config(Phase.DEPLOYMENT, config),
    )
