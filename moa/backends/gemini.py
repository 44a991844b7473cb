"""Gemini backend using google-genai SDK with native async."""

import asyncio
import os

from google import genai
from google.genai import types as genai_types

from config.config_loader import BackendConfig
from moa.backends.base import Backend, BackendKind, BackendReply, BackendRequest
from moa.errors import BackendInvocationError


class GeminiBackend(Backend):
    """Google Gemini models via google-genai SDK."""

    kind = BackendKind.GEMINI

    def __init__(self, config: BackendConfig) -> None:
        super().__init__(config)
        api_key = os.environ.get(config.api_key_env or "", "").strip()
        if not api_key:
            raise BackendInvocationError(self.name, f"Missing API key: {config.api_key_env}")
        self._client = genai.Client(api_key=api_key)

    async def generate(self, request: BackendRequest) -> BackendReply:
        try:
            response = await asyncio.wait_for(
                self._client.aio.models.generate_content(
                    model=request.model,
                    contents=request.prompt,
                    config=genai_types.GenerateContentConfig(
                        max_output_tokens=self._config.max_tokens,
                        system_instruction=request.system_prompt,
                        temperature=request.temperature,
                    ),
                ),
                timeout=self._config.timeout_sec,
            )
        except TimeoutError as exc:
            raise BackendInvocationError(self.name, f"Request timed out after {self._config.timeout_sec}s") from exc
        except Exception as exc:
            raise BackendInvocationError(self.name, f"API call failed: {exc}") from exc

        token_count: int | None = None
        if response.usage_metadata:
            token_count = response.usage_metadata.total_token_count

        return BackendReply(text=response.text or "", token_count=token_count)
