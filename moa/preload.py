"""Preload Ollama models on every endpoint so the first layer doesn't pay load time."""

import asyncio
import logging
from collections.abc import Sequence

import httpx

from moa.backends.base import BackendKind, parse_model_id
from moa.errors import UnsupportedBackendError
from moa.models import Endpoint, PipelineConfig

logger = logging.getLogger(__name__)

_TIMEOUT_SEC = 300.0
_KEEP_ALIVE_FOREVER = -1


def _ollama_model_name(model: str) -> str | None:
    try:
        kind, name = parse_model_id(model)
    except UnsupportedBackendError:
        return None
    return name if kind is BackendKind.OLLAMA else None


def unique_ollama_models(config: PipelineConfig, synthesis_model: str | None = None) -> list[str]:
    """Distinct Ollama model names used by the pipeline and the synthesizer, in first-seen order."""
    models = [agent.model for layer in config.layers for agent in layer.agents]
    uses_synthesis = any(layer.aggregation.method == "synthesis" for layer in config.layers)
    if synthesis_model and uses_synthesis:
        models.append(synthesis_model)

    names: list[str] = []
    for model in models:
        name = _ollama_model_name(model)
        if name and name not in names:
            names.append(name)
    return names


async def _preload_one(client: httpx.AsyncClient, endpoint: Endpoint, model: str) -> tuple[str, str, bool, str]:
    """Load a single model on one endpoint. Returns (model, uri, ok, error_message)."""
    url = f"{endpoint.uri.rstrip('/')}/api/generate"
    try:
        response = await client.post(
            url,
            json={"model": model, "keep_alive": _KEEP_ALIVE_FOREVER, "prompt": ""},
            timeout=_TIMEOUT_SEC,
        )
        response.raise_for_status()
        logger.debug("Preloaded model %s on %s", model, endpoint.uri)
        return model, endpoint.uri, True, ""
    except Exception as exc:
        logger.error("Failed to preload model %s on %s: %s", model, endpoint.uri, exc)
        return model, endpoint.uri, False, str(exc)


async def preload_models(
    models: Sequence[str],
    endpoints: Sequence[Endpoint],
    client: httpx.AsyncClient | None = None,
) -> dict[tuple[str, str], tuple[bool, str]]:
    """Preload every model on every endpoint in parallel.

    Returns:
        Dict mapping (model, endpoint uri) -> (ok, error_message).
        error_message is "" when ok is True.
    """
    logger.info("Preloading %d model(s) on %d endpoint(s): %s", len(models), len(endpoints), ", ".join(models))
    if client is None:
        async with httpx.AsyncClient() as owned_client:
            return await preload_models(models, endpoints, owned_client)

    results = await asyncio.gather(
        *(_preload_one(client, endpoint, model) for endpoint in endpoints for model in models)
    )
    return {(model, uri): (ok, err) for model, uri, ok, err in results}
