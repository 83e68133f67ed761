"""Tests for the generation client: reply parsing, error mapping, backends."""

from __future__ import annotations

import json
from unittest.mock import AsyncMock, patch

import httpx
import openai
import pytest
import respx

from conftest import ARCHITECTURE_RESULT
from model_pipeline_generator.errors import (
    ConfigError,
    GenerationError,
    ParseDegraded,
    QuotaExhausted,
    RateLimited,
    TransportError,
)
from model_pipeline_generator.generation import (
    AgentGenerationClient,
    HttpGenerationClient,
    create_generation_client,
    is_degraded,
    parse_generation_output,
    strip_code_fences,
    to_generation_result,
    translate_openai_error,
)
from model_pipeline_generator.models import BackendKind, Phase, PipelineConfig

ENDPOINT = "https://gen.example.com/functions/v1/generate-model"

_REQUEST = httpx.Request("POST", "https://test.openai.azure.com/openai/deployments/x/chat/completions")


def _status_error(cls, status: int, body=None):
    return cls("boom", response=httpx.Response(status, request=_REQUEST), body=body)


# ---------------------------------------------------------------------------
# Reply parsing
# ---------------------------------------------------------------------------


class TestStripCodeFences:
    def test_json_fence(self):
        assert strip_code_fences('```json\n{"a": 1}\n```') == '{"a": 1}'

    def test_bare_fence(self):
        assert strip_code_fences('```\n{"a": 1}\n```\n') == '{"a": 1}'

    def test_no_fence(self):
        assert strip_code_fences('  {"a": 1}  ') == '{"a": 1}'


class TestParseGenerationOutput:
    def test_plain_json(self):
        assert parse_generation_output(json.dumps(ARCHITECTURE_RESULT)) == ARCHITECTURE_RESULT

    def test_fenced_json(self):
        text = "```json\n" + json.dumps({"port": 8080}) + "\n```"
        assert parse_generation_output(text) == {"port": 8080}

    def test_invalid_json_raises_parse_degraded(self):
        with pytest.raises(ParseDegraded) as exc_info:
            parse_generation_output("Here is your model: BERT")
        assert exc_info.value.raw_text == "Here is your model: BERT"

    def test_non_object_json_is_degraded(self):
        with pytest.raises(ParseDegraded, match="expected a JSON object"):
            parse_generation_output("[1, 2, 3]")


class TestToGenerationResult:
    def test_success(self):
        result = to_generation_result(Phase.TRAINING, '{"epochs": 3}')
        assert result.phase == Phase.TRAINING
        assert result.data == {"epochs": 3}
        assert result.degraded is False

    def test_non_json_falls_back_to_raw(self):
        result = to_generation_result(Phase.ARCHITECTURE, "not json at all")
        assert result.data == {"raw": "not json at all"}
        assert result.degraded is True
        assert result.raw_text == "not json at all"
        assert is_degraded(result.data)

    def test_raw_keeps_original_text_with_fences(self):
        text = "```json\n{broken\n```"
        assert to_generation_result(Phase.DEPLOYMENT, text).data == {"raw": text}


# ---------------------------------------------------------------------------
# Error translation
# ---------------------------------------------------------------------------


class TestTranslateOpenaiError:
    def test_rate_limit(self):
        err = translate_openai_error(_status_error(openai.RateLimitError, 429))
        assert isinstance(err, RateLimited)
        assert err.retryable is True
        assert err.status_code == 429

    def test_insufficient_quota_429_is_quota(self):
        exc = _status_error(openai.RateLimitError, 429, body={"code": "insufficient_quota"})
        assert isinstance(translate_openai_error(exc), QuotaExhausted)

    def test_payment_required(self):
        err = translate_openai_error(_status_error(openai.APIStatusError, 402))
        assert isinstance(err, QuotaExhausted)
        assert err.retryable is False

    def test_authentication(self):
        err = translate_openai_error(_status_error(openai.AuthenticationError, 401))
        assert isinstance(err, ConfigError)

    def test_permission_denied(self):
        assert isinstance(translate_openai_error(_status_error(openai.PermissionDeniedError, 403)), ConfigError)

    def test_server_error(self):
        err = translate_openai_error(_status_error(openai.InternalServerError, 500))
        assert isinstance(err, TransportError)
        assert err.status_code == 500

    def test_connection_error(self):
        err = translate_openai_error(openai.APIConnectionError(request=_REQUEST))
        assert isinstance(err, TransportError)

    def test_timeout(self):
        assert isinstance(translate_openai_error(openai.APITimeoutError(request=_REQUEST)), TransportError)
        assert isinstance(translate_openai_error(TimeoutError("timed out")), TransportError)

    def test_unrelated_error_untouched(self):
        assert translate_openai_error(KeyError("x")) is None


# ---------------------------------------------------------------------------
# Agent backend
# ---------------------------------------------------------------------------


@pytest.fixture
def agent_config() -> PipelineConfig:
    return PipelineConfig(
        azure={"api_key": "k", "api_version": "2024-06-01", "endpoint": "https://test.openai.azure.com"},
    )


class TestAgentGenerationClient:
    @pytest.mark.asyncio
    async def test_missing_api_key_is_config_error(self):
        client = AgentGenerationClient(PipelineConfig())
        with pytest.raises(ConfigError):
            await client.generate(Phase.ARCHITECTURE, "Build a model")

    @pytest.mark.asyncio
    async def test_empty_prompt_rejected(self, agent_config):
        with pytest.raises(ValueError, match="non-empty"):
            await AgentGenerationClient(agent_config).generate(Phase.ARCHITECTURE, "   ")

    @pytest.mark.asyncio
    async def test_unknown_phase_rejected(self, agent_config):
        with pytest.raises(ValueError):
            await AgentGenerationClient(agent_config).generate("evaluation", "Build a model")

    @pytest.mark.asyncio
    async def test_parses_agent_reply(self, agent_config):
        client = AgentGenerationClient(agent_config)
        reply = "```json\n" + json.dumps(ARCHITECTURE_RESULT) + "\n```"
        with patch.object(client, "_complete", AsyncMock(return_value=reply)) as complete:
            result = await client.generate("architecture", "Build a sentiment model")

        complete.assert_awaited_once_with(Phase.ARCHITECTURE, "Build a sentiment model")
        assert result.data == ARCHITECTURE_RESULT
        assert result.degraded is False

    @pytest.mark.asyncio
    async def test_degrades_on_prose_reply(self, agent_config):
        client = AgentGenerationClient(agent_config)
        with patch.object(client, "_complete", AsyncMock(return_value="Sorry, I cannot do that.")):
            result = await client.generate(Phase.TRAINING, "context")
        assert result.data == {"raw": "Sorry, I cannot do that."}

    @pytest.mark.asyncio
    async def test_sdk_errors_are_translated(self, agent_config):
        client = AgentGenerationClient(agent_config)
        error = _status_error(openai.RateLimitError, 429)
        with patch.object(client, "_complete", AsyncMock(side_effect=error)):
            with pytest.raises(RateLimited) as exc_info:
                await client.generate(Phase.DEPLOYMENT, "context")
        assert exc_info.value.__cause__ is error

    @pytest.mark.asyncio
    async def test_unrelated_errors_propagate(self, agent_config):
        client = AgentGenerationClient(agent_config)
        with patch.object(client, "_complete", AsyncMock(side_effect=KeyError("choices"))):
            with pytest.raises(KeyError):
                await client.generate(Phase.DEPLOYMENT, "context")

    @pytest.mark.asyncio
    async def test_override_key_counts_as_credentials(self):
        config = PipelineConfig(
            models={
                "default": "claude-sonnet",
                "overrides": {"claude-sonnet": {"endpoint": "https://api.anthropic.com", "api_key": "a", "api_type": "anthropic"}},
            },
        )
        client = AgentGenerationClient(config)
        with patch.object(client, "_complete", AsyncMock(return_value="{}")):
            result = await client.generate(Phase.ARCHITECTURE, "Build a model")
        assert result.data == {}


# ---------------------------------------------------------------------------
# HTTP backend
# ---------------------------------------------------------------------------


class TestHttpGenerationClient:
    @pytest.mark.asyncio
    async def test_success(self):
        client = HttpGenerationClient(ENDPOINT)
        async with respx.mock() as mock:
            route = mock.post(ENDPOINT).mock(
                return_value=httpx.Response(200, json={"result": ARCHITECTURE_RESULT})
            )
            result = await client.generate(Phase.ARCHITECTURE, "Build a sentiment model")
        await client.aclose()

        assert result.data == ARCHITECTURE_RESULT
        assert result.degraded is False
        sent = json.loads(route.calls.last.request.content)
        assert sent == {"prompt": "Build a sentiment model", "phase": "architecture"}

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("status", "body", "error_cls"),
        [
            (429, {"error": "Rate limited. Please try again shortly."}, RateLimited),
            (402, {"error": "AI credits exhausted."}, QuotaExhausted),
            (401, {"error": "Invalid JWT"}, ConfigError),
            (500, {"error": "LLM_API_KEY is not configured"}, TransportError),
            (502, None, TransportError),
        ],
    )
    async def test_error_statuses(self, status, body, error_cls):
        client = HttpGenerationClient(ENDPOINT)
        response = httpx.Response(status, json=body) if body is not None else httpx.Response(status, text="Bad Gateway")
        async with respx.mock() as mock:
            mock.post(ENDPOINT).mock(return_value=response)
            with pytest.raises(error_cls) as exc_info:
                await client.generate(Phase.TRAINING, "context")
        await client.aclose()

        assert exc_info.value.status_code == status
        if body is not None:
            assert exc_info.value.message == body["error"]

    @pytest.mark.asyncio
    async def test_error_field_on_success_status_fails(self):
        client = HttpGenerationClient(ENDPOINT)
        async with respx.mock() as mock:
            mock.post(ENDPOINT).mock(return_value=httpx.Response(200, json={"error": "model overloaded"}))
            with pytest.raises(TransportError, match="model overloaded"):
                await client.generate(Phase.TRAINING, "context")
        await client.aclose()

    @pytest.mark.asyncio
    async def test_missing_result_fails(self):
        client = HttpGenerationClient(ENDPOINT)
        async with respx.mock() as mock:
            mock.post(ENDPOINT).mock(return_value=httpx.Response(200, json={"ok": True}))
            with pytest.raises(TransportError, match="no result"):
                await client.generate(Phase.TRAINING, "context")
        await client.aclose()

    @pytest.mark.asyncio
    async def test_network_error(self):
        client = HttpGenerationClient(ENDPOINT)
        async with respx.mock() as mock:
            mock.post(ENDPOINT).mock(side_effect=httpx.ConnectError("refused"))
            with pytest.raises(TransportError, match="refused"):
                await client.generate(Phase.TRAINING, "context")
        await client.aclose()

    @pytest.mark.asyncio
    async def test_timeout(self):
        client = HttpGenerationClient(ENDPOINT, timeout=0.1)
        async with respx.mock() as mock:
            mock.post(ENDPOINT).mock(side_effect=httpx.ReadTimeout("slow"))
            with pytest.raises(TransportError, match="timed out"):
                await client.generate(Phase.DEPLOYMENT, "context")
        await client.aclose()

    @pytest.mark.asyncio
    async def test_raw_fallback_from_endpoint_is_degraded(self):
        client = HttpGenerationClient(ENDPOINT)
        async with respx.mock() as mock:
            mock.post(ENDPOINT).mock(
                return_value=httpx.Response(200, json={"result": {"raw": "Use BERT."}})
            )
            result = await client.generate(Phase.ARCHITECTURE, "context")
        await client.aclose()

        assert result.data == {"raw": "Use BERT."}
        assert result.degraded is True
        assert result.raw_text == "Use BERT."

    @pytest.mark.asyncio
    async def test_string_result_is_parsed(self):
        client = HttpGenerationClient(ENDPOINT)
        async with respx.mock() as mock:
            mock.post(ENDPOINT).mock(
                return_value=httpx.Response(200, json={"result": '```json\n{"port": 80}\n```'})
            )
            result = await client.generate(Phase.DEPLOYMENT, "context")
        await client.aclose()
        assert result.data == {"port": 80}

    @pytest.mark.asyncio
    async def test_missing_url_is_config_error(self):
        with pytest.raises(ConfigError):
            await HttpGenerationClient("").generate(Phase.ARCHITECTURE, "context")

    def test_errors_share_base_class(self):
        for cls in (RateLimited, QuotaExhausted, ConfigError, TransportError):
            assert issubclass(cls, GenerationError)


class TestCreateGenerationClient:
    def test_agent_backend_default(self):
        assert isinstance(create_generation_client(PipelineConfig()), AgentGenerationClient)

    def test_http_backend(self):
        config = PipelineConfig(backend=BackendKind.HTTP, endpoint_url=ENDPOINT + "/", timeout=30)
        client = create_generation_client(config)
        assert isinstance(client, HttpGenerationClient)
        assert client.endpoint_url == ENDPOINT
        assert client.timeout == 30.0
