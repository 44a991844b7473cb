"""Anthropic Claude backend using anthropic SDK with native async."""

import asyncio
import os

import anthropic as anthropic_sdk

from config.config_loader import BackendConfig
from moa.backends.base import Backend, BackendKind, BackendReply, BackendRequest
from moa.errors import BackendInvocationError

_DEFAULT_MAX_TOKENS = 4096


class AnthropicBackend(Backend):
    """Anthropic Claude models via anthropic SDK."""

    kind = BackendKind.ANTHROPIC

    def __init__(self, config: BackendConfig) -> None:
        super().__init__(config)
        api_key = os.environ.get(config.api_key_env or "", "").strip()
        if not api_key:
            raise BackendInvocationError(self.name, f"Missing API key: {config.api_key_env}")
        self._client = anthropic_sdk.AsyncAnthropic(api_key=api_key)

    async def generate(self, request: BackendRequest) -> BackendReply:
        kwargs = {}
        if request.system_prompt:
            kwargs["system"] = request.system_prompt
        if request.temperature is not None:
            kwargs["temperature"] = request.temperature

        try:
            response = await asyncio.wait_for(
                self._client.messages.create(
                    model=request.model,
                    max_tokens=self._config.max_tokens or _DEFAULT_MAX_TOKENS,
                    messages=[{"role": "user", "content": request.prompt}],
                    **kwargs,
                ),
                timeout=self._config.timeout_sec,
            )
        except TimeoutError as exc:
            raise BackendInvocationError(self.name, f"Request timed out after {self._config.timeout_sec}s") from exc
        except Exception as exc:
            raise BackendInvocationError(self.name, f"API call failed: {exc}") from exc

        text_blocks = [b.text for b in (response.content or []) if b.type == "text"]

        token_count: int | None = None
        if response.usage:
            token_count = response.usage.input_tokens + response.usage.output_tokens

        return BackendReply(text="\n".join(text_blocks), token_count=token_count)
