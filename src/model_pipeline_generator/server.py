"""Generation endpoint: HTTP front for the agent-backed generation client.

``POST /generate-model`` takes ``{"prompt": str, "phase": str}`` and returns
``{"result": {...}}``. Failures return ``{"error": str}`` with 429 (rate
limited), 402 (credits exhausted) or 500 (anything else). A missing or
rejected model credential also carries ``"kind": "config_error"`` so callers
can tell it apart from a transient failure.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from .errors import ConfigError, QuotaExhausted, RateLimited
from .generation import AgentGenerationClient, GenerationClient
from .models import Phase, PipelineConfig

logger = logging.getLogger(__name__)


class GenerateRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    prompt: str = Field(..., min_length=1)
    phase: Phase


def create_app(client: GenerationClient) -> FastAPI:
    """Build the FastAPI app serving generation requests through *client*."""
    app = FastAPI(
        title="Model Pipeline Generator",
        description="Structured generation for architecture, training and deployment phases",
        version="0.1.0",
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health")
    async def health() -> dict:
        """Health check endpoint."""
        return {"status": "ok"}

    @app.post("/generate-model")
    async def generate_model(request: GenerateRequest) -> JSONResponse:
        try:
            result = await client.generate(request.phase, request.prompt)
        except RateLimited:
            return JSONResponse({"error": "Rate limited. Please try again shortly."}, status_code=429)
        except QuotaExhausted:
            return JSONResponse({"error": "AI credits exhausted."}, status_code=402)
        except ConfigError as e:
            logger.error("generate-model misconfigured: %s", e)
            return JSONResponse({"error": e.message, "kind": e.kind}, status_code=500)
        except Exception as e:
            logger.exception("generate-model error")
            return JSONResponse({"error": str(e) or "Unknown error"}, status_code=500)
        return JSONResponse({"result": result.data})

    return app


def serve(config: PipelineConfig) -> None:
    """Run the endpoint with uvicorn; always backed by the agent client."""
    import uvicorn

    app = create_app(AgentGenerationClient(config))
    logger.info("Serving generation endpoint on http://%s:%d", config.host, config.port)
    uvicorn.run(app, host=config.host, port=config.port, log_level="info")
