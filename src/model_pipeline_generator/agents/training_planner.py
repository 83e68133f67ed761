"""TrainingPlanner agent — produces a training configuration for a designed architecture."""

from __future__ import annotations

import autogen

from ..config import build_phase_llm_config
from ..models import Phase, PipelineConfig

SYSTEM_PROMPT = """\
You are an expert ML engineer. Given model architecture info and the user's
original prompt, generate a training configuration.

Return a JSON object with:
- optimizer: string
- learning_rate: number
- batch_size: number
- epochs: number
- loss_function: string
- dataset: string (suggest a Hugging Face dataset)
- dataset_size: string
- preprocessing: array of strings
- augmentation: array of strings (if applicable)
- early_stopping: boolean
- metrics: array of strings to track
- estimated_training_time: string
- hardware: string (e.g. "NVIDIA A100 x1")

Return ONLY valid JSON. No markdown fences or explanations.
"""


def make_training_planner(config: PipelineConfig) -> autogen.AssistantAgent:
    """Create the TrainingPlanner agent."""
    return autogen.AssistantAgent(
        name="TrainingPlanner",
        system_message=SYSTEM_PROMPT,
        llm_config=build_phase_llm_config(Phase.TRAINING, config),
    )
