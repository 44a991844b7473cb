"""Pure dataclasses for the mixture-of-agents chain. No logic, no deps."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from moa.stop import StopCondition


@dataclass(frozen=True)
class Endpoint:
    uri: str
    name: str | None = None
    priority: int | None = None


@dataclass(frozen=True)
class Agent:
    name: str
    model: str                  # namespaced, e.g. "ollama:llama3" or "llm:gpt-4o-mini"
    prompt_template: str        # inline template or path to a .xml prompt document
    temperature: float | None = None
    system_prompt: str | None = None
    endpoint_uri: str | None = None


@dataclass(frozen=True)
class AggregationStrategy:
    method: str                 # "voting", "synthesis", "concatenate", "weighted"
    prompt_template: str | None = None
    weights: tuple[float, ...] | None = None
    comparator: str | None = None


@dataclass(frozen=True)
class Layer:
    name: str
    agents: tuple[Agent, ...]
    aggregation: AggregationStrategy


@dataclass
class ModelResponse:
    content: str
    metadata: dict[str, Any] = field(default_factory=dict)
    error: str | None = None


@dataclass
class QueryContext:
    original_query: str
    timestamp: str              # ISO 8601
    current_iteration: int = 0


@dataclass(frozen=True)
class PipelineConfig:
    layers: tuple[Layer, ...]
    max_iterations: int = 1
    stop_condition: StopCondition | None = None


@dataclass(frozen=True)
class ResolvedPrompt:
    template: str
    system_prompt: str | None = None


@dataclass
class LayerResult:
    iteration: int
    layer_name: str
    responses: list[ModelResponse]
    aggregate: ModelResponse
