"""Agent invocation: endpoint assignment, backend dispatch, response normalization."""

import logging
import time
from collections.abc import Mapping

from config.config_loader import BackendConfig
from moa.backends.anthropic import AnthropicBackend
from moa.backends.base import Backend, BackendKind, BackendRequest, parse_model_id
from moa.backends.gemini import GeminiBackend
from moa.backends.llm_cli import LLMCliBackend
from moa.backends.openai_provider import OllamaBackend, OpenAIBackend
from moa.endpoints import EndpointSelector
from moa.errors import BackendInvocationError, EmptyResponseError, MoaError
from moa.models import Agent, Endpoint, ModelResponse

logger = logging.getLogger(__name__)

_DEFAULT_TIMEOUT_SEC = 300

BACKEND_CLASSES: dict[BackendKind, type[Backend]] = {
    BackendKind.OLLAMA: OllamaBackend,
    BackendKind.LLM: LLMCliBackend,
    BackendKind.OPENAI: OpenAIBackend,
    BackendKind.ANTHROPIC: AnthropicBackend,
    BackendKind.GEMINI: GeminiBackend,
}


class AgentInvoker:
    """Runs one agent prompt on the backend named by the agent's model prefix.

    Backends are built on first use. Failures are raised as MoaError
    subclasses; a successful call always carries non-blank, trimmed content.
    """

    def __init__(
        self,
        selector: EndpointSelector,
        backend_configs: Mapping[str, BackendConfig] | None = None,
        backends: Mapping[BackendKind, Backend] | None = None,
    ) -> None:
        self._selector = selector
        self._configs = dict(backend_configs or {})
        self._backends: dict[BackendKind, Backend] = dict(backends or {})

    @property
    def selector(self) -> EndpointSelector:
        return self._selector

    def backend_for(self, kind: BackendKind) -> Backend:
        backend = self._backends.get(kind)
        if backend is None:
            config = self._configs.get(kind.value) or BackendConfig(
                name=kind.value, timeout_sec=_DEFAULT_TIMEOUT_SEC
            )
            backend = BACKEND_CLASSES[kind](config)
            self._backends[kind] = backend
        return backend

    async def invoke(self, agent: Agent, prompt: str, system_prompt: str | None = None) -> ModelResponse:
        """Run the agent once.

        Args:
            agent: The agent whose model, temperature and endpoint override apply.
            prompt: The fully substituted user prompt.
            system_prompt: Overrides agent.system_prompt when given.

        Raises:
            UnsupportedBackendError: Unknown model prefix.
            EmptyResponseError: The backend produced blank output.
            BackendInvocationError: The backend call failed.
        """
        kind, model_name = parse_model_id(agent.model)
        endpoint = Endpoint(uri=agent.endpoint_uri) if agent.endpoint_uri else self._selector.next()
        logger.debug("Running agent %s with model %s on %s", agent.name, agent.model, endpoint.uri)
        logger.debug("Prompt for %s: %s", agent.name, prompt)

        request = BackendRequest(
            model=model_name,
            prompt=prompt,
            endpoint=endpoint,
            system_prompt=system_prompt if system_prompt is not None else agent.system_prompt,
            temperature=agent.temperature,
        )

        start = time.monotonic()
        try:
            backend = self.backend_for(kind)
            reply = await backend.generate(request)
        except MoaError:
            raise
        except Exception as exc:
            raise BackendInvocationError(kind.value, f"Error running model {agent.model}: {exc}") from exc
        latency = time.monotonic() - start

        content = reply.text.strip()
        if not content:
            raise EmptyResponseError(kind.value, agent.model)

        logger.info(
            "Agent %s (%s): %.2fs, %s tokens",
            agent.name,
            agent.model,
            latency,
            reply.token_count,
        )
        return ModelResponse(
            content=content,
            metadata={
                "agent": agent.name,
                "model": agent.model,
                "backend": kind.value,
                "endpoint": endpoint.uri,
                "latency_sec": latency,
                "token_count": reply.token_count,
            },
        )
