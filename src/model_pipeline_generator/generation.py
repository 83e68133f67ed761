"""Generation client: one structured-text generation call per pipeline phase.

Two backends implement the same ``GenerationClient`` protocol:

- ``AgentGenerationClient`` talks to the model directly through AG2 agents.
- ``HttpGenerationClient`` posts ``{prompt, phase}`` to a generation endpoint
  (see ``server.py``) and maps its status codes onto typed errors.

Replies are parsed leniently: code fences are stripped and the text is parsed
as JSON. Anything that is not a JSON object comes back as ``{"raw": text}``
with ``degraded=True`` instead of an error.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Protocol

import httpx
import openai

from .agents import make_orchestrator, make_phase_agent
from .config import has_credentials
from .errors import (
    ConfigError,
    GenerationError,
    ParseDegraded,
    QuotaExhausted,
    RateLimited,
    TransportError,
)
from .models import BackendKind, GenerationResult, Phase, PipelineConfig

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Reply parsing
# ---------------------------------------------------------------------------

_FENCE_RE = re.compile(r"```(?:json)?\n?")


def strip_code_fences(text: str) -> str:
    """Remove markdown code-fence markers and surrounding whitespace."""
    return _FENCE_RE.sub("", text).strip()


def parse_generation_output(text: str) -> dict[str, Any]:
    """Parse a model reply into a JSON object or raise ``ParseDegraded``."""
    clean = strip_code_fences(text)
    try:
        parsed = json.loads(clean)
    except json.JSONDecodeError as e:
        raise ParseDegraded(text, f"invalid JSON: {e}") from e
    if not isinstance(parsed, dict):
        raise ParseDegraded(text, f"expected a JSON object, got {type(parsed).__name__}")
    return parsed


def to_generation_result(phase: Phase, text: str) -> GenerationResult:
    """Build a ``GenerationResult``, degrading to ``{"raw": text}`` on bad JSON."""
    try:
        data = parse_generation_output(text)
    except ParseDegraded as e:
        logger.warning("Phase %s returned unparseable output (%s); keeping raw text", phase.value, e)
        return GenerationResult(phase=phase, data={"raw": e.raw_text}, degraded=True, raw_text=e.raw_text)
    return GenerationResult(phase=phase, data=data, raw_text=text)


def is_degraded(data: Any) -> bool:
    """True for the ``{"raw": ...}`` fallback shape."""
    return isinstance(data, dict) and set(data) == {"raw"}


def _extract_text(response: Any) -> str:
    """Extract the reply text from an AG2 chat result."""
    if hasattr(response, "summary") and response.summary:
        return str(response.summary)
    if hasattr(response, "chat_history") and response.chat_history:
        last = response.chat_history[-1]
        return (last.get("content") or "") if isinstance(last, dict) else str(last)
    return str(response)


def _check_request(phase: Phase | str, context_prompt: str) -> Phase:
    phase = Phase(phase)
    if not context_prompt or not context_prompt.strip():
        raise ValueError("context_prompt must be non-empty")
    return phase


# ---------------------------------------------------------------------------
# Error translation
# ---------------------------------------------------------------------------

def translate_openai_error(exc: BaseException) -> GenerationError | None:
    """Map an OpenAI SDK / AG2 exception onto the typed taxonomy.

    Returns ``None`` for exceptions that are not transport-level failures.
    """
    if isinstance(exc, (openai.AuthenticationError, openai.PermissionDeniedError)):
        return ConfigError(f"Model credentials rejected: {exc}", status_code=exc.status_code)
    if isinstance(exc, openai.RateLimitError):
        # OpenAI reports exhausted credits as a 429 with this code
        if getattr(exc, "code", None) == "insufficient_quota":
            return QuotaExhausted("AI credits exhausted.", status_code=exc.status_code)
        return RateLimited("Rate limited. Please try again shortly.", status_code=exc.status_code)
    if isinstance(exc, openai.APIStatusError):
        if exc.status_code == 402:
            return QuotaExhausted("AI credits exhausted.", status_code=402)
        return TransportError(f"Model API error: {exc}", status_code=exc.status_code)
    if isinstance(exc, openai.APIConnectionError):
        return TransportError(f"Model API unreachable: {exc}")
    if isinstance(exc, TimeoutError):
        # AG2 re-raises APITimeoutError as the builtin TimeoutError
        return TransportError(f"Model API call timed out: {exc}")
    return None


# ---------------------------------------------------------------------------
# Clients
# ---------------------------------------------------------------------------

class GenerationClient(Protocol):
    """Anything that can produce a phase result for a context prompt."""

    async def generate(self, phase: Phase, context_prompt: str) -> GenerationResult: ...


class AgentGenerationClient:
    """Generate phase results by chatting with the phase's AG2 agent."""

    def __init__(self, config: PipelineConfig) -> None:
        self.config = config

    async def generate(self, phase: Phase, context_prompt: str) -> GenerationResult:
        phase = _check_request(phase, context_prompt)
        if not has_credentials(phase, self.config):
            raise ConfigError("Azure OpenAI API key is not configured")

        try:
            text = await self._complete(phase, context_prompt)
        except GenerationError:
            raise
        except Exception as e:
            translated = translate_openai_error(e)
            if translated is None:
                raise
            raise translated from e
        return to_generation_result(phase, text)

    async def _complete(self, phase: Phase, context_prompt: str) -> str:
        orchestrator = make_orchestrator()
        agent = make_phase_agent(phase, self.config)
        response = await orchestrator.a_initiate_chat(
            agent,
            message=context_prompt,
            max_turns=1,
            silent=True,
        )
        return _extract_text(response)


class HttpGenerationClient:
    """Generate phase results through a remote generation endpoint."""

    def __init__(
        self,
        endpoint_url: str,
        *,
        timeout: float = 120.0,
        headers: dict[str, str] | None = None,
    ) -> None:
        self.endpoint_url = endpoint_url.rstrip("/")
        self.timeout = timeout
        self.headers = headers or {}
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                follow_redirects=True,
                timeout=self.timeout,
                headers=self.headers,
            )
        return self._client

    async def generate(self, phase: Phase, context_prompt: str) -> GenerationResult:
        phase = _check_request(phase, context_prompt)
        if not self.endpoint_url:
            raise ConfigError("Generation endpoint URL is not configured")

        client = await self._get_client()
        try:
            resp = await client.post(
                self.endpoint_url,
                json={"prompt": context_prompt, "phase": phase.value},
            )
        except httpx.TimeoutException as e:
            raise TransportError(f"Generation request timed out: {e}") from e
        except httpx.HTTPError as e:
            raise TransportError(f"Generation request failed: {e}") from e

        return self._handle_response(phase, resp)

    def _handle_response(self, phase: Phase, resp: httpx.Response) -> GenerationResult:
        try:
            body = resp.json()
        except ValueError:
            body = None
        message = body.get("error") if isinstance(body, dict) else None
        kind = body.get("kind") if isinstance(body, dict) else None
        status = resp.status_code

        if status == 429:
            raise RateLimited(message or "Rate limited. Please try again shortly.", status_code=status)
        if status == 402:
            raise QuotaExhausted(message or "AI credits exhausted.", status_code=status)
        if status in (401, 403) or kind == ConfigError.kind:
            raise ConfigError(message or f"Generation endpoint rejected credentials (HTTP {status})", status_code=status)
        if resp.is_error:
            raise TransportError(message or f"Generation endpoint returned HTTP {status}", status_code=status)
        if message:
            raise TransportError(str(message), status_code=status)
        if not isinstance(body, dict) or "result" not in body:
            raise TransportError("Generation endpoint returned no result", status_code=status)

        result = body["result"]
        if isinstance(result, str):
            return to_generation_result(phase, result)
        if not isinstance(result, dict):
            text = json.dumps(result)
            logger.warning("Phase %s result is not a JSON object; keeping raw text", phase.value)
            return GenerationResult(phase=phase, data={"raw": text}, degraded=True, raw_text=text)
        degraded = is_degraded(result)
        raw_text = str(result["raw"]) if degraded else json.dumps(result)
        if degraded:
            logger.warning("Phase %s: endpoint could not parse the model reply", phase.value)
        return GenerationResult(phase=phase, data=result, degraded=degraded, raw_text=raw_text)

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None


def create_generation_client(config: PipelineConfig) -> AgentGenerationClient | HttpGenerationClient:
    """Build the client selected by ``config.backend``."""
    if config.backend == BackendKind.HTTP:
        return HttpGenerationClient(config.endpoint_url, timeout=float(config.timeout))
    return AgentGenerationClient(config)
