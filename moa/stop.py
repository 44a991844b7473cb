"""Stop conditions evaluated against the aggregated response history after each layer."""

from abc import ABC, abstractmethod
from collections.abc import Callable, Mapping, Sequence
from typing import Any

from moa.errors import ConfigurationError
from moa.models import ModelResponse


class StopCondition(ABC):
    """Decides whether the chain should end early."""

    @abstractmethod
    def should_stop(self, history: Sequence[ModelResponse]) -> bool:
        ...


class ContainsTextStop(StopCondition):
    """Stop once the latest aggregate contains a marker (case-insensitive)."""

    def __init__(self, text: str) -> None:
        if not text:
            raise ConfigurationError("'contains' stop criteria needs a non-empty value")
        self.text = text

    def should_stop(self, history: Sequence[ModelResponse]) -> bool:
        return bool(history) and self.text.lower() in history[-1].content.lower()


class MaxResponsesStop(StopCondition):
    """Stop once the history holds at least `limit` aggregates."""

    def __init__(self, limit: int) -> None:
        if limit < 1:
            raise ConfigurationError(f"'max_responses' stop criteria must be >= 1, got {limit}")
        self.limit = limit

    def should_stop(self, history: Sequence[ModelResponse]) -> bool:
        return len(history) >= self.limit


class UnchangedStop(StopCondition):
    """Stop when the last two aggregates are identical after trimming."""

    def should_stop(self, history: Sequence[ModelResponse]) -> bool:
        return len(history) >= 2 and history[-1].content.strip() == history[-2].content.strip()


class CallableStop(StopCondition):
    """Adapter for a plain function over the history."""

    def __init__(self, predicate: Callable[[Sequence[ModelResponse]], bool]) -> None:
        self._predicate = predicate

    def should_stop(self, history: Sequence[ModelResponse]) -> bool:
        return bool(self._predicate(history))


def build_stop_condition(raw: Mapping[str, Any]) -> StopCondition:
    """Build a stop condition from a config mapping such as {"type": "contains", "value": "DONE"}."""
    if not isinstance(raw, Mapping):
        raise ConfigurationError("stop_criteria must be a mapping with a 'type'")
    kind = raw.get("type")
    value = raw.get("value")
    if kind == "contains":
        return ContainsTextStop(str(value or ""))
    if kind == "max_responses":
        try:
            return MaxResponsesStop(int(value))
        except (TypeError, ValueError) as exc:
            raise ConfigurationError(f"'max_responses' stop criteria needs an integer, got {value!r}") from exc
    if kind == "unchanged":
        return UnchangedStop()
    raise ConfigurationError(f"Unknown stop criteria type: {kind!r}")
