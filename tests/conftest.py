"""Shared pytest fixtures."""

from collections.abc import Callable
from pathlib import Path

import pytest

from config.config_loader import BackendConfig
from moa.aggregation import Aggregator
from moa.backends.base import Backend, BackendKind, BackendReply, BackendRequest
from moa.chain import ChainController
from moa.endpoints import EndpointSelector
from moa.invoker import AgentInvoker
from moa.layer import LayerProcessor
from moa.models import Agent, AggregationStrategy, Endpoint, Layer, ModelResponse
from moa.prompts import PromptResolver

Reply = str | Exception | Callable[[BackendRequest], str]


class MockBackend(Backend):
    """Test double Backend.

    Replies are looked up by backend-local model name, falling back to
    `default`. A reply may be text, an exception to raise, or a function of
    the request (e.g. to echo the prompt). Every request is recorded.
    """

    def __init__(
        self,
        replies: dict[str, Reply] | None = None,
        default: Reply = "Mock response",
        kind: BackendKind = BackendKind.OLLAMA,
    ) -> None:
        super().__init__(BackendConfig(name=kind.value, timeout_sec=5))
        self.kind = kind
        self.replies = dict(replies or {})
        self.default = default
        self.requests: list[BackendRequest] = []

    async def generate(self, request: BackendRequest) -> BackendReply:
        self.requests.append(request)
        reply = self.replies.get(request.model, self.default)
        if isinstance(reply, Exception):
            raise reply
        if callable(reply):
            reply = reply(request)
        return BackendReply(text=reply, token_count=3)


def echo_prompt(request: BackendRequest) -> str:
    return request.prompt


def make_agent(name: str = "agent", template: str = "{input}", model: str = "ollama:m1", **kwargs) -> Agent:
    return Agent(name=name, model=model, prompt_template=template, **kwargs)


def make_layer(name: str, *agents: Agent, method: str = "concatenate", **strategy) -> Layer:
    return Layer(name=name, agents=tuple(agents), aggregation=AggregationStrategy(method=method, **strategy))


def responses(*contents: str) -> list[ModelResponse]:
    return [ModelResponse(content=c) for c in contents]


@pytest.fixture
def endpoints() -> list[Endpoint]:
    return [
        Endpoint(uri="http://gpu-a:11434", name="A", priority=1),
        Endpoint(uri="http://gpu-b:11434", name="B", priority=1),
    ]


@pytest.fixture
def selector(endpoints: list[Endpoint]) -> EndpointSelector:
    return EndpointSelector(endpoints)


@pytest.fixture
def mock_backend() -> MockBackend:
    return MockBackend()


@pytest.fixture
def invoker(selector: EndpointSelector, mock_backend: MockBackend) -> AgentInvoker:
    return AgentInvoker(selector, backends={BackendKind.OLLAMA: mock_backend})


@pytest.fixture
def resolver(tmp_path: Path) -> PromptResolver:
    return PromptResolver(tmp_path)


@pytest.fixture
def layer_processor(invoker: AgentInvoker, resolver: PromptResolver) -> LayerProcessor:
    return LayerProcessor(invoker, resolver)


@pytest.fixture
def aggregator(invoker: AgentInvoker, resolver: PromptResolver) -> Aggregator:
    return Aggregator(invoker, resolver, synthesis_model="ollama:synth")


@pytest.fixture
def controller(layer_processor: LayerProcessor, aggregator: Aggregator) -> ChainController:
    return ChainController(layer_processor, aggregator)


@pytest.fixture
def write_prompt(tmp_path: Path) -> Callable[[str, str], str]:
    """Write an XML prompt document under tmp_path and return its relative name."""

    def _write(name: str, body: str) -> str:
        (tmp_path / name).write_text(body, encoding="utf-8")
        return name

    return _write
