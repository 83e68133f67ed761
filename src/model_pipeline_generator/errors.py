"""Typed errors raised by the generation client and project store."""

from __future__ import annotations


class GenerationError(Exception):
    """Base class for a failed generation call.

    ``retryable`` tells callers whether re-running the pipeline later can
    succeed without outside intervention.
    """

    kind = "generation_error"
    retryable = False

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class RateLimited(GenerationError):
    """The generation service throttled the request (HTTP 429)."""

    kind = "rate_limited"
    retryable = True


class QuotaExhausted(GenerationError):
    """Credits for the generation service are used up (HTTP 402)."""

    kind = "quota_exhausted"


class ConfigError(GenerationError):
    """Required configuration (API key, endpoint) is missing or rejected."""

    kind = "config_error"


class TransportError(GenerationError):
    """Network failure, timeout or generic remote failure."""

    kind = "transport_error"
    retryable = True


class ParseDegraded(ValueError):
    """Generated text was not a JSON object.

    Never escapes the generation client: it is turned into a ``{"raw": ...}``
    fallback result.
    """

    def __init__(self, raw_text: str, reason: str) -> None:
        super().__init__(reason)
        self.raw_text = raw_text


class ProjectNotFoundError(KeyError):
    """No project with the requested id exists in the store."""

    def __init__(self, project_id: str) -> None:
        super().__init__(project_id)
        self.project_id = project_id

    def __str__(self) -> str:
        return f"Project not found: {self.project_id}"
