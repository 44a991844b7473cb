"""Tests for moa/invoker.py and model identifier parsing."""

import pytest

from config.config_loader import BackendConfig
from moa.backends.base import BackendKind, parse_model_id
from moa.backends.llm_cli import LLMCliBackend
from moa.endpoints import EndpointSelector
from moa.errors import BackendInvocationError, EmptyResponseError, UnsupportedBackendError
from moa.invoker import AgentInvoker
from tests.conftest import MockBackend, make_agent


@pytest.mark.parametrize(
    "model, expected",
    [
        ("ollama:llama3", (BackendKind.OLLAMA, "llama3")),
        ("ollama:qwen2.5-coder:7b-instruct-fp16", (BackendKind.OLLAMA, "qwen2.5-coder:7b-instruct-fp16")),
        ("llm:gpt-4o-mini", (BackendKind.LLM, "gpt-4o-mini")),
        ("anthropic:claude-sonnet-4-5", (BackendKind.ANTHROPIC, "claude-sonnet-4-5")),
    ],
)
def test_parse_model_id(model, expected):
    assert parse_model_id(model) == expected


@pytest.mark.parametrize("model", ["gpt-4", "mistral:7b", "ollama:", ""])
def test_parse_model_id_rejects_unknown_prefix(model):
    with pytest.raises(UnsupportedBackendError):
        parse_model_id(model)


async def test_invoke_returns_trimmed_content_and_metadata(invoker, mock_backend):
    mock_backend.default = "  The answer.\n\n"
    response = await invoker.invoke(make_agent("solver", model="ollama:llama3"), "prompt")

    assert response.content == "The answer."
    assert response.error is None
    assert response.metadata["agent"] == "solver"
    assert response.metadata["model"] == "ollama:llama3"
    assert response.metadata["backend"] == "ollama"
    assert response.metadata["token_count"] == 3
    assert mock_backend.requests[0].model == "llama3"


async def test_invoke_assigns_endpoints_round_robin(invoker, mock_backend, endpoints):
    agent = make_agent()
    for _ in range(3):
        await invoker.invoke(agent, "p")
    assert [r.endpoint for r in mock_backend.requests] == [endpoints[0], endpoints[1], endpoints[0]]


async def test_invoke_endpoint_override_skips_selector(invoker, mock_backend, selector, endpoints):
    agent = make_agent(endpoint_uri="http://pinned:11434")
    await invoker.invoke(agent, "p")
    assert mock_backend.requests[0].endpoint.uri == "http://pinned:11434"
    # cursor untouched
    assert selector.next() == endpoints[0]


async def test_invoke_passes_system_prompt_and_temperature(invoker, mock_backend):
    agent = make_agent(system_prompt="agent system", temperature=0.2)
    await invoker.invoke(agent, "p")
    await invoker.invoke(agent, "p", system_prompt="document system")

    assert mock_backend.requests[0].system_prompt == "agent system"
    assert mock_backend.requests[1].system_prompt == "document system"
    assert mock_backend.requests[0].temperature == 0.2


@pytest.mark.parametrize("blank", ["", "   ", "\n\t\n"])
async def test_invoke_blank_output_is_empty_response_error(invoker, mock_backend, blank):
    mock_backend.default = blank
    with pytest.raises(EmptyResponseError, match="empty response"):
        await invoker.invoke(make_agent(), "p")


async def test_invoke_unsupported_backend(invoker):
    with pytest.raises(UnsupportedBackendError, match="Unsupported model backend"):
        await invoker.invoke(make_agent(model="bedrock:titan"), "p")


async def test_invoke_backend_error_propagates(invoker, mock_backend):
    mock_backend.default = BackendInvocationError("ollama", "connection refused")
    with pytest.raises(BackendInvocationError, match="connection refused"):
        await invoker.invoke(make_agent(), "p")


async def test_invoke_wraps_unexpected_exceptions(invoker, mock_backend):
    mock_backend.default = RuntimeError("boom")
    with pytest.raises(BackendInvocationError, match="Error running model ollama:m1: boom"):
        await invoker.invoke(make_agent(), "p")


async def test_invoke_dispatches_by_prefix(selector):
    ollama = MockBackend(default="from ollama")
    llm = MockBackend(default="from llm", kind=BackendKind.LLM)
    invoker = AgentInvoker(selector, backends={BackendKind.OLLAMA: ollama, BackendKind.LLM: llm})

    first = await invoker.invoke(make_agent(model="ollama:a"), "p")
    second = await invoker.invoke(make_agent(model="llm:b"), "p")

    assert first.content == "from ollama"
    assert second.content == "from llm"
    assert len(ollama.requests) == len(llm.requests) == 1


def test_backend_for_builds_lazily_from_config():
    configs = {"llm": BackendConfig(name="llm", timeout_sec=12, command="/usr/local/bin/llm")}
    invoker = AgentInvoker(EndpointSelector([]), configs)

    backend = invoker.backend_for(BackendKind.LLM)

    assert isinstance(backend, LLMCliBackend)
    assert invoker.backend_for(BackendKind.LLM) is backend


async def test_missing_api_key_surfaces_as_backend_error(monkeypatch):
    monkeypatch.delenv("TEST_OPENAI_KEY", raising=False)
    configs = {"openai": BackendConfig(name="openai", timeout_sec=5, api_key_env="TEST_OPENAI_KEY")}
    invoker = AgentInvoker(EndpointSelector([]), configs)

    with pytest.raises(BackendInvocationError, match="Missing API key"):
        await invoker.invoke(make_agent(model="openai:gpt-4o"), "p")
