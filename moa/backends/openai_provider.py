"""OpenAI chat-completions backends: hosted OpenAI, and Ollama through its OpenAI-compatible API."""

import asyncio
import logging
import os
from abc import abstractmethod

from openai import AsyncOpenAI

from config.config_loader import BackendConfig
from moa.backends.base import Backend, BackendKind, BackendReply, BackendRequest
from moa.errors import BackendInvocationError
from moa.models import Endpoint

logger = logging.getLogger(__name__)


class ChatCompletionsBackend(Backend):
    """Shared request/response handling for OpenAI-compatible servers."""

    @abstractmethod
    def _client_for(self, endpoint: Endpoint) -> AsyncOpenAI:
        ...

    async def generate(self, request: BackendRequest) -> BackendReply:
        messages = []
        if request.system_prompt:
            messages.append({"role": "system", "content": request.system_prompt})
        messages.append({"role": "user", "content": request.prompt})

        kwargs = {}
        if request.temperature is not None:
            kwargs["temperature"] = request.temperature
        if self._config.max_tokens:
            kwargs["max_tokens"] = self._config.max_tokens

        client = self._client_for(request.endpoint)
        try:
            response = await asyncio.wait_for(
                client.chat.completions.create(
                    model=request.model,
                    messages=messages,
                    **kwargs,
                ),
                timeout=self._config.timeout_sec,
            )
        except TimeoutError as exc:
            raise BackendInvocationError(self.name, f"Request timed out after {self._config.timeout_sec}s") from exc
        except Exception as exc:
            raise BackendInvocationError(self.name, f"API call failed: {exc}") from exc

        choice = response.choices[0] if response.choices else None
        text = choice.message.content if choice and choice.message.content else ""

        token_count: int | None = None
        if response.usage:
            token_count = response.usage.total_tokens

        return BackendReply(text=text, token_count=token_count)


class OpenAIBackend(ChatCompletionsBackend):
    """Hosted OpenAI models via the openai SDK."""

    kind = BackendKind.OPENAI

    def __init__(self, config: BackendConfig) -> None:
        super().__init__(config)
        api_key = os.environ.get(config.api_key_env or "", "").strip()
        if not api_key:
            raise BackendInvocationError(self.name, f"Missing API key: {config.api_key_env}")
        self._client = AsyncOpenAI(api_key=api_key, base_url=config.base_url)

    def _client_for(self, endpoint: Endpoint) -> AsyncOpenAI:
        return self._client


class OllamaBackend(ChatCompletionsBackend):
    """Local Ollama servers; one client per endpoint at <uri>/v1."""

    kind = BackendKind.OLLAMA

    def __init__(self, config: BackendConfig) -> None:
        super().__init__(config)
        self._clients: dict[str, AsyncOpenAI] = {}

    def _client_for(self, endpoint: Endpoint) -> AsyncOpenAI:
        client = self._clients.get(endpoint.uri)
        if client is None:
            base_url = f"{endpoint.uri.rstrip('/')}/v1"
            # Ollama ignores the key but the SDK requires one.
            client = AsyncOpenAI(api_key="ollama", base_url=base_url)
            self._clients[endpoint.uri] = client
            logger.debug("Created Ollama client for %s", base_url)
        return client
