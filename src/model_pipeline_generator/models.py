"""Pydantic models for the model pipeline generator."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class ProjectStatus(str, Enum):
    INITIALIZING = "initializing"
    DESIGNING = "designing"
    TRAINING = "training"
    DEPLOYING = "deploying"
    DEPLOYED = "deployed"
    FAILED = "failed"


class Phase(str, Enum):
    """One of the three ordered generation steps."""
    ARCHITECTURE = "architecture"
    TRAINING = "training"
    DEPLOYMENT = "deployment"

    @property
    def status(self) -> ProjectStatus:
        """Status persisted when this phase starts."""
        return _PHASE_STATUS[self]

    @property
    def result_field(self) -> str:
        """Project field holding this phase's result."""
        return _PHASE_FIELD[self]

    @property
    def label(self) -> str:
        return _PHASE_LABEL[self]


_PHASE_STATUS = {
    Phase.ARCHITECTURE: ProjectStatus.DESIGNING,
    Phase.TRAINING: ProjectStatus.TRAINING,
    Phase.DEPLOYMENT: ProjectStatus.DEPLOYING,
}

_PHASE_FIELD = {
    Phase.ARCHITECTURE: "architecture",
    Phase.TRAINING: "training_config",
    Phase.DEPLOYMENT: "deployment_config",
}

_PHASE_LABEL = {
    Phase.ARCHITECTURE: "Architecture Design",
    Phase.TRAINING: "Model Training",
    Phase.DEPLOYMENT: "Docker Deployment",
}

PHASE_ORDER: tuple[Phase, ...] = (Phase.ARCHITECTURE, Phase.TRAINING, Phase.DEPLOYMENT)


class StageStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    DONE = "done"
    FAILED = "failed"


class BackendKind(str, Enum):
    AGENT = "agent"
    HTTP = "http"


# ---------------------------------------------------------------------------
# Azure & Model Configuration
# ---------------------------------------------------------------------------

class AzureConfig(BaseModel):
    """Azure OpenAI connection settings."""
    api_key: str = Field(default="", description="Azure OpenAI API key")
    api_version: str = Field(default="", description="API version")
    endpoint: str = Field(default="", description="Azure endpoint URL")


class ModelEndpointOverride(BaseModel):
    """Per-model endpoint settings that take precedence over ``azure``."""
    endpoint: str = ""
    api_key: str | None = None
    api_version: str | None = None
    api_type: str | None = None


class ModelConfig(BaseModel):
    """LLM model configuration per phase."""
    default: str = Field(default="gpt-5.2", description="Default model")
    architecture: str | None = Field(default=None)
    training: str | None = Field(default=None)
    deployment: str | None = Field(default=None)
    overrides: dict[str, ModelEndpointOverride] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Phase result schemas
#
# Lenient views over the generated JSON. Every field is optional and unknown
# keys are kept; nothing here rejects a generation result.
# ---------------------------------------------------------------------------

class _LenientSchema(BaseModel):
    model_config = ConfigDict(extra="allow", protected_namespaces=())


class LayerSpec(_LenientSchema):
    name: str | None = None
    type: str | None = None
    params: Any = None


class ArchitectureSpec(_LenientSchema):
    """Architecture phase output."""
    model_name: str | None = Field(default=None, description="a clean name for the model")
    model_type: str | None = Field(default=None, description='e.g. "transformer", "cnn", "bert-fine-tune"')
    base_model: str | None = Field(default=None, description='Hugging Face id, e.g. "bert-base-uncased"')
    framework: str | None = Field(default=None, description='"pytorch"')
    task: str | None = Field(default=None, description='e.g. "text-classification"')
    layers: list[LayerSpec] | None = Field(default=None, description="array of { name, type, params }")
    input_shape: str | None = None
    output_shape: str | None = None
    estimated_params: str | None = Field(default=None, description='e.g. "110M"')
    description: str | None = Field(default=None, description="2-3 sentences about the architecture")


class TrainingSpec(_LenientSchema):
    """Training phase output."""
    optimizer: str | None = None
    learning_rate: float | None = None
    batch_size: int | None = None
    epochs: int | None = None
    loss_function: str | None = None
    dataset: str | None = Field(default=None, description="a Hugging Face dataset")
    dataset_size: str | None = None
    preprocessing: list[str] | None = None
    augmentation: list[str] | None = None
    early_stopping: bool | None = None
    metrics: list[str] | None = None
    estimated_training_time: str | None = None
    hardware: str | None = Field(default=None, description='e.g. "NVIDIA A100 x1"')


class ApiFormat(_LenientSchema):
    input: Any = None
    output: Any = None


class ScalingSpec(_LenientSchema):
    min_replicas: int | None = None
    max_replicas: int | None = None
    target_cpu: int | None = None


class DeploymentSpec(_LenientSchema):
    """Deployment phase output."""
    docker_image: str | None = None
    dockerfile: str | None = None
    port: int | None = None
    endpoint: str | None = None
    api_format: ApiFormat | None = None
    environment_vars: list[str] | None = None
    scaling: ScalingSpec | None = None
    health_check: str | None = None
    estimated_inference_time: str | None = None
    model_size: str | None = None


PHASE_SCHEMAS: dict[Phase, type[BaseModel]] = {
    Phase.ARCHITECTURE: ArchitectureSpec,
    Phase.TRAINING: TrainingSpec,
    Phase.DEPLOYMENT: DeploymentSpec,
}


# ---------------------------------------------------------------------------
# Generation
# ---------------------------------------------------------------------------

class GenerationResult(BaseModel):
    """Structured output of one generation call."""
    phase: Phase
    data: dict[str, Any] = Field(default_factory=dict)
    degraded: bool = Field(default=False, description="True when the reply was not valid JSON")
    raw_text: str = ""


class TrainingMetrics(BaseModel):
    """Synthesized stand-in for an evaluation run (not measured)."""
    accuracy: float = Field(..., description="percent")
    f1_score: float = Field(..., description="percent")
    loss: float


# ---------------------------------------------------------------------------
# Project
# ---------------------------------------------------------------------------

# Fields the orchestrator may change through ``ProjectStore.update_partial``.
MUTABLE_FIELDS = frozenset({
    "status",
    "architecture",
    "training_config",
    "deployment_config",
    "metrics",
    "model_type",
})


class Project(BaseModel):
    """One pipeline run and its persisted phase results."""
    model_config = ConfigDict(protected_namespaces=())

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    owner: str = ""
    name: str = ""
    prompt: str
    status: ProjectStatus = ProjectStatus.INITIALIZING
    model_type: str | None = None
    architecture: dict[str, Any] | None = None
    training_config: dict[str, Any] | None = None
    deployment_config: dict[str, Any] | None = None
    metrics: TrainingMetrics | None = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    def phase_result(self, phase: Phase) -> dict[str, Any] | None:
        return getattr(self, phase.result_field)


def project_name_from_prompt(prompt: str, limit: int = 50) -> str:
    """Derive a display name: the prompt, truncated with an ellipsis."""
    prompt = prompt.strip()
    return prompt[:limit] + "..." if len(prompt) > limit else prompt


# ---------------------------------------------------------------------------
# Run result
# ---------------------------------------------------------------------------

class RunResult(BaseModel):
    """Outcome of one ``PhaseOrchestrator.run`` invocation."""
    project_id: str
    success: bool
    skipped: bool = Field(default=False, description="No calls were made (in flight or terminal)")
    final_status: ProjectStatus | None = None
    phases_completed: list[Phase] = Field(default_factory=list)
    failed_phase: Phase | None = None
    error_kind: str | None = None
    error_message: str | None = None
    retryable: bool = False


# ---------------------------------------------------------------------------
# Pipeline Configuration (loaded from YAML / Hydra)
# ---------------------------------------------------------------------------

class PipelineConfig(BaseModel):
    """Full application configuration."""
    store_path: str = Field(default="projects.json", description="JSON file backing the project store")
    owner: str = Field(default="", description="Identity recorded on created projects")

    # Generation backend
    backend: BackendKind = Field(default=BackendKind.AGENT, description="agent | http")
    endpoint_url: str = Field(default="", description="Generation endpoint for the http backend")

    # Azure OpenAI
    azure: AzureConfig = Field(default_factory=AzureConfig)
    models: ModelConfig = Field(default_factory=ModelConfig)

    timeout: int = Field(default=120)
    seed: int = Field(default=42)
    metrics_seed: int | None = Field(default=None, description="Seed for synthesized metrics")

    # Generation endpoint server
    host: str = Field(default="127.0.0.1")
    port: int = Field(default=8000)
