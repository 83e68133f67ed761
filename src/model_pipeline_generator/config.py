"""Configuration loader and per-phase LLM config builder."""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from .models import AzureConfig, ModelEndpointOverride, Phase, PipelineConfig

load_dotenv()

# ---------------------------------------------------------------------------
# YAML loading with ${ENV_VAR} interpolation
# ---------------------------------------------------------------------------

_ENV_RE = re.compile(r"\$\{([^}]+)\}")


def _resolve_env_vars(value: Any) -> Any:
    """Recursively resolve ``${ENV_VAR}`` references in strings."""
    if isinstance(value, str):
        def _replace(m: re.Match) -> str:
            return os.environ.get(m.group(1), "")
        return _ENV_RE.sub(_replace, value)
    if isinstance(value, dict):
        return {k: _resolve_env_vars(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_resolve_env_vars(v) for v in value]
    return value


def apply_env_fallbacks(config: PipelineConfig) -> PipelineConfig:
    """Fill empty credentials and identity from environment variables."""
    if not config.azure.api_key:
        config.azure.api_key = os.getenv("AZURE_OPENAI_API_KEY", "")
    if not config.azure.api_version:
        config.azure.api_version = os.getenv("AZURE_OPENAI_API_VERSION", "")
    if not config.azure.endpoint:
        config.azure.endpoint = os.getenv("AZURE_OPENAI_ENDPOINT", "")
    config.azure.endpoint = config.azure.endpoint.rstrip("/")
    if not config.endpoint_url:
        config.endpoint_url = os.getenv("MPG_ENDPOINT_URL", "")
    if not config.owner:
        config.owner = os.getenv("MPG_OWNER") or os.getenv("USER", "")
    return config


def load_config(config_path: str | Path) -> PipelineConfig:
    """Load a ``PipelineConfig`` from a YAML file."""
    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(path) as f:
        raw = yaml.safe_load(f) or {}

    resolved = _resolve_env_vars(raw)
    config = PipelineConfig.model_validate(resolved)
    return apply_env_fallbacks(config)


# ---------------------------------------------------------------------------
# LLM config builder
# ---------------------------------------------------------------------------

def _is_azure_openai_endpoint(endpoint: str) -> bool:
    """Return True for Azure OpenAI endpoints, False for Azure AI Model Inference."""
    lower = endpoint.lower()
    return "openai.azure.com" in lower or "cognitiveservices.azure.com" in lower


def _build_single_entry(
    model: str,
    azure: AzureConfig,
    override: ModelEndpointOverride | None = None,
) -> dict[str, Any]:
    """Build a single AG2 config_list entry for the given model.

    An override with ``api_type`` is used as-is with its endpoint as
    ``base_url``. Otherwise Azure OpenAI endpoints get deployment-based
    routing and anything else is treated as OpenAI-compatible.
    """
    api_key = azure.api_key
    api_version = azure.api_version
    endpoint = azure.endpoint
    forced_api_type: str | None = None

    if override:
        endpoint = override.endpoint.rstrip("/")
        if override.api_key:
            api_key = override.api_key
        if override.api_version:
            api_version = override.api_version
        forced_api_type = override.api_type

    entry: dict[str, Any] = {
        "model": model,
        "api_key": api_key,
    }

    if forced_api_type:
        entry["api_type"] = forced_api_type
        entry["base_url"] = endpoint
    elif endpoint and _is_azure_openai_endpoint(endpoint):
        entry.update({
            "api_type": "azure",
            "azure_endpoint": endpoint,
            "api_version": api_version,
            "azure_deployment": model,
        })
    elif endpoint:
        entry["base_url"] = endpoint
    return entry


def resolve_phase_model(phase: Phase | str, config: PipelineConfig) -> str:
    """Model name configured for *phase*, falling back to ``models.default``."""
    models = config.models
    phase_map: dict[str, str | None] = {
        Phase.ARCHITECTURE.value: models.architecture,
        Phase.TRAINING.value: models.training,
        Phase.DEPLOYMENT.value: models.deployment,
    }
    key = phase.value if isinstance(phase, Phase) else str(phase).lower()
    return phase_map.get(key) or models.default


def build_phase_llm_config(phase: Phase | str, config: PipelineConfig) -> dict[str, Any]:
    """Return an AG2-compatible ``llm_config`` dict for the given *phase*.

    If ``config.models.overrides`` has an entry for the chosen model name,
    its endpoint / api_key / api_version win over ``config.azure``.
    """
    chosen = resolve_phase_model(phase, config)
    override = config.models.overrides.get(chosen)
    entry = _build_single_entry(chosen, config.azure, override=override)
    return {
        "config_list": [entry],
        "timeout": config.timeout,
        "seed": config.seed,
    }


def has_credentials(phase: Phase | str, config: PipelineConfig) -> bool:
    """True when the model chosen for *phase* has an API key to call with."""
    chosen = resolve_phase_model(phase, config)
    override = config.models.overrides.get(chosen)
    if override and override.api_key:
        return True
    return bool(config.azure.api_key)
