"""Tests for moa/models.py dataclasses."""

import dataclasses

import pytest

from moa.models import Agent, AggregationStrategy, Layer, ModelResponse, PipelineConfig


def test_model_response_defaults():
    r = ModelResponse(content="Use YAML.")
    assert r.error is None
    assert r.metadata == {}


def test_model_response_metadata_not_shared():
    a = ModelResponse(content="a")
    b = ModelResponse(content="b")
    a.metadata["agent"] = "x"
    assert b.metadata == {}


def test_agent_optional_fields():
    agent = Agent(name="analyst", model="ollama:llama3", prompt_template="{input}")
    assert agent.temperature is None
    assert agent.system_prompt is None
    assert agent.endpoint_uri is None


def test_config_types_are_frozen():
    agent = Agent(name="a", model="ollama:m", prompt_template="{input}")
    with pytest.raises(dataclasses.FrozenInstanceError):
        agent.model = "ollama:other"


def test_pipeline_config_defaults():
    layer = Layer(name="L", agents=(), aggregation=AggregationStrategy(method="concatenate"))
    config = PipelineConfig(layers=(layer,))
    assert config.max_iterations == 1
    assert config.stop_condition is None
