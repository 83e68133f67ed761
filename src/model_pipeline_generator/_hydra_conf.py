"""Hydra structured config dataclasses.

These mirror the Pydantic ``PipelineConfig`` for Hydra schema validation.
At runtime the Hydra DictConfig is converted to ``PipelineConfig`` via
``cli._to_pipeline_config()``.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from hydra.core.config_store import ConfigStore


@dataclass
class AzureConf:
    api_key: str = "${oc.env:AZURE_OPENAI_API_KEY,''}"
    api_version: str = "${oc.env:AZURE_OPENAI_API_VERSION,''}"
    endpoint: str = "${oc.env:AZURE_OPENAI_ENDPOINT,''}"


@dataclass
class ModelEndpointOverrideConf:
    endpoint: str = ""
    api_key: str | None = None
    api_version: str | None = None
    api_type: str | None = None


@dataclass
class ModelConf:
    default: str = "gpt-5.2"
    architecture: str | None = None
    training: str | None = None
    deployment: str | None = None
    overrides: dict[str, ModelEndpointOverrideConf] = field(default_factory=dict)


@dataclass
class MpgConf:
    # --- CLI-only fields ---
    mode: str = "run"                     # run | retry | show | list | delete | serve
    prompt: str = ""
    name: str | None = None
    project_id: str = ""
    verbose: bool = False
    quiet: bool = False

    # --- PipelineConfig fields ---
    store_path: str = "projects.json"
    owner: str = ""

    # Generation backend
    backend: str = "agent"                # agent | http
    endpoint_url: str = "${oc.env:MPG_ENDPOINT_URL,''}"

    # Azure OpenAI
    azure: AzureConf = field(default_factory=AzureConf)
    models: ModelConf = field(default_factory=ModelConf)

    timeout: int = 120
    seed: int = 42
    metrics_seed: int | None = None

    # Endpoint server
    host: str = "127.0.0.1"
    port: int = 8000


# Keys in MpgConf that are NOT part of PipelineConfig.
CLI_ONLY_KEYS = frozenset({
    "mode", "prompt", "name", "project_id", "verbose", "quiet",
})


def register_configs() -> None:
    """Register the structured config schema with Hydra's ConfigStore.

    Two entries are stored:
    - ``mpg_schema``: referenced by user config files via ``defaults: [mpg_schema]``
    - ``config``: fallback when no ``--config-dir`` is provided (e.g. ``mpg mode=list``)
    """
    cs = ConfigStore.instance()
    cs.store(name="mpg_schema", node=MpgConf)
    cs.store(name="config", node=MpgConf)
