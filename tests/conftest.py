"""Shared test fixtures."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any

import pytest

from model_pipeline_generator.errors import TransportError
from model_pipeline_generator.generation import to_generation_result
from model_pipeline_generator.models import GenerationResult, Phase
from model_pipeline_generator.store import InMemoryProjectStore

FIXTURES_DIR = Path(__file__).parent / "fixtures"
SAMPLE_CONFIG = FIXTURES_DIR / "sample_config.yaml"

SENTIMENT_PROMPT = "Create a sentiment analysis model"

ARCHITECTURE_RESULT: dict[str, Any] = {
    "model_name": "SentimentBERT",
    "model_type": "bert-fine-tune",
    "base_model": "bert-base-uncased",
    "framework": "pytorch",
    "task": "text-classification",
    "layers": [
        {"name": "encoder", "type": "BertModel", "params": {"hidden_size": 768}},
        {"name": "classifier", "type": "Linear", "params": {"out_features": 3}},
    ],
    "input_shape": "(batch, 512)",
    "output_shape": "(batch, 3)",
    "estimated_params": "110M",
    "description": "BERT encoder with a linear classification head.",
}

TRAINING_RESULT: dict[str, Any] = {
    "optimizer": "AdamW",
    "learning_rate": 2e-5,
    "batch_size": 32,
    "epochs": 3,
    "loss_function": "cross_entropy",
    "dataset": "imdb",
    "dataset_size": "50k reviews",
    "preprocessing": ["lowercase", "tokenize"],
    "augmentation": [],
    "early_stopping": True,
    "metrics": ["accuracy", "f1"],
    "estimated_training_time": "2 hours",
    "hardware": "NVIDIA A100 x1",
}

DEPLOYMENT_RESULT: dict[str, Any] = {
    "docker_image": "pytorch/pytorch:2.3.0-cuda12.1-cudnn8-runtime",
    "dockerfile": "FROM pytorch/pytorch:2.3.0\nCOPY . /app\nCMD [\"python\", \"serve.py\"]",
    "port": 8080,
    "endpoint": "/predict",
    "api_format": {"input": {"text": "great movie"}, "output": {"label": "positive"}},
    "environment_vars": ["MODEL_PATH=/models/sentiment"],
    "scaling": {"min_replicas": 1, "max_replicas": 4, "target_cpu": 70},
    "health_check": "/health",
    "estimated_inference_time": "15ms",
    "model_size": "420MB",
}

DEFAULT_RESULTS: dict[Phase, Any] = {
    Phase.ARCHITECTURE: ARCHITECTURE_RESULT,
    Phase.TRAINING: TRAINING_RESULT,
    Phase.DEPLOYMENT: DEPLOYMENT_RESULT,
}


class ScriptedClient:
    """Generation client stub returning canned results per phase.

    String responses go through the real reply parser; ``fail_on`` raises
    ``error`` for that phase; ``gate`` holds every call until it is set.
    """

    def __init__(
        self,
        responses: dict[Phase, Any] | None = None,
        *,
        fail_on: Phase | None = None,
        error: Exception | None = None,
        gate: asyncio.Event | None = None,
    ) -> None:
        self.responses = {**DEFAULT_RESULTS, **(responses or {})}
        self.fail_on = fail_on
        self.error = error or TransportError("connection reset")
        self.gate = gate
        self.calls: list[tuple[Phase, str]] = []

    @property
    def phases(self) -> list[Phase]:
        return [phase for phase, _ in self.calls]

    async def generate(self, phase: Phase, context_prompt: str) -> GenerationResult:
        self.calls.append((phase, context_prompt))
        if self.gate is not None:
            await self.gate.wait()
        else:
            await asyncio.sleep(0)
        if phase == self.fail_on:
            raise self.error
        value = self.responses[phase]
        if isinstance(value, str):
            return to_generation_result(phase, value)
        return GenerationResult(phase=phase, data=value, raw_text=json.dumps(value))


class RecordingStore(InMemoryProjectStore):
    """In-memory store that remembers every partial update in order."""

    def __init__(self) -> None:
        super().__init__()
        self.writes: list[dict[str, Any]] = []

    def update_partial(self, project_id, fields):
        self.writes.append(dict(fields))
        return super().update_partial(project_id, fields)

    @property
    def status_writes(self) -> list[str]:
        return [
            w["status"].value if hasattr(w["status"], "value") else w["status"]
            for w in self.writes
            if "status" in w
        ]


@pytest.fixture
def fixtures_dir() -> Path:
    return FIXTURES_DIR


@pytest.fixture
def sample_config_path() -> Path:
    return SAMPLE_CONFIG


@pytest.fixture
def store() -> RecordingStore:
    return RecordingStore()


@pytest.fixture
def project(store):
    return store.create(SENTIMENT_PROMPT)


@pytest.fixture
def client() -> ScriptedClient:
    return ScriptedClient()
