"""Backend kinds, model identifier parsing, and the abstract backend."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum

from config.config_loader import BackendConfig
from moa.errors import UnsupportedBackendError
from moa.models import Endpoint


class BackendKind(Enum):
    OLLAMA = "ollama"
    LLM = "llm"
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    GEMINI = "gemini"


def parse_model_id(model: str) -> tuple[BackendKind, str]:
    """Split "backend:model" into its backend kind and the backend's model name.

    Everything after the first colon belongs to the model name, so
    "ollama:qwen2.5-coder:7b" maps to (OLLAMA, "qwen2.5-coder:7b").

    Raises:
        UnsupportedBackendError: If the prefix is missing or unknown.
    """
    prefix, sep, name = model.partition(":")
    if not sep or not name:
        raise UnsupportedBackendError(model)
    try:
        kind = BackendKind(prefix.strip().lower())
    except ValueError as exc:
        raise UnsupportedBackendError(model) from exc
    return kind, name


@dataclass(frozen=True)
class BackendRequest:
    model: str                  # backend-local model name, prefix stripped
    prompt: str
    endpoint: Endpoint
    system_prompt: str | None = None
    temperature: float | None = None


@dataclass(frozen=True)
class BackendReply:
    text: str
    token_count: int | None = None


class Backend(ABC):
    """One invocation style for a family of models."""

    kind: BackendKind

    def __init__(self, config: BackendConfig) -> None:
        self._config = config

    @property
    def name(self) -> str:
        return self.kind.value

    @abstractmethod
    async def generate(self, request: BackendRequest) -> BackendReply:
        """Run the model once.

        Returns:
            BackendReply with the raw text; blank text is left for the caller to reject.

        Raises:
            BackendInvocationError: On API/process failure or timeout.
        """
        ...
