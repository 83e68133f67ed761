"""ArchitectureDesigner agent — designs the model architecture from the user's request."""

from __future__ import annotations

import autogen

from ..config import build_phase_llm_config
from ..models import Phase, PipelineConfig

SYSTEM_PROMPT = """\
You are an expert ML/AI architect. Given a user's description of an AI model
they want to build, generate a detailed architecture specification.

Return a JSON object with these fields:
- model_name: string (a clean name for the model)
- model_type: string (e.g. "transformer", "cnn", "rnn", "bert-fine-tune")
- base_model: string (a Hugging Face model, e.g. "bert-base-uncased", "gpt2", "resnet50")
- framework: "pytorch"
- task: string (e.g. "text-classification", "token-classification", "text-generation")
- layers: array of {{ "name", "type", "params" }} objects describing the architecture
- input_shape: string
- output_shape: string
- estimated_params: string (e.g. "110M")
- description: string (2-3 sentences about the architecture)

Return ONLY valid JSON. No markdown fences or explanations.
"""


def make_architecture_designer(config: PipelineConfig) -> autogen.AssistantAgent:
    """Create the ArchitectureDesigner agent."""
    return autogen.AssistantAgent(
        name="ArchitectureDesigner",
        system_message=SYSTEM_PROMPT.format(),
        llm_config=build_phase_llm_config(Phase.ARCHITECTURE, config),
    )
