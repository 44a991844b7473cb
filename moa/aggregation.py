"""Reduce a layer's agent responses to a single response."""

import logging
import math
from collections import Counter
from collections.abc import Sequence

from moa.errors import AggregationError
from moa.invoker import AgentInvoker
from moa.models import Agent, AggregationStrategy, ModelResponse
from moa.prompts import (
    DEFAULT_AGGREGATION_TEMPLATE,
    PromptResolver,
    is_prompt_document,
    render_synthesis_prompt,
)

logger = logging.getLogger(__name__)

SYNTHESIZER_NAME = "synthesizer"
NO_RESPONSES_ERROR = "No responses to aggregate"


def concatenate(responses: Sequence[ModelResponse]) -> ModelResponse:
    return ModelResponse(
        content="\n\n".join(r.content.strip() for r in responses),
        metadata={"method": "concatenate", "responses": len(responses)},
    )


def _format_number(value: float) -> str:
    return str(int(value)) if value.is_integer() else repr(value)


def weighted_combine(
    responses: Sequence[ModelResponse],
    weights: Sequence[float] | None = None,
) -> ModelResponse:
    """Weighted sum of numeric response contents.

    Weights default to 1/N each. Raises AggregationError when there are fewer
    weights than responses or a content is not a finite number.
    """
    if weights is None:
        weights = [1 / len(responses)] * len(responses)
    if len(weights) < len(responses):
        raise AggregationError(
            f"Weighted aggregation needs {len(responses)} weight(s), got {len(weights)}"
        )

    total = 0.0
    for i, (response, weight) in enumerate(zip(responses, weights), start=1):
        text = response.content.strip()
        try:
            value = float(text)
        except ValueError:
            value = math.nan
        if not math.isfinite(value):
            raise AggregationError(f"Weighted aggregation needs numeric content; response {i} is {text[:40]!r}")
        total += value * weight
    if not math.isfinite(total):
        raise AggregationError(f"Weighted aggregation overflowed: total is {total}")

    return ModelResponse(
        content=_format_number(total),
        metadata={"method": "weighted", "weights": list(weights[:len(responses)])},
    )


def _normalize(content: str) -> str:
    return " ".join(content.split()).lower()


_COMPARATORS = {
    "exact": str.strip,
    "normalized": _normalize,
}


def vote(responses: Sequence[ModelResponse], comparator: str | None = None) -> ModelResponse:
    """Pick a response by vote.

    With no comparator (or "first") this returns the first response unchanged.
    "exact" and "normalized" run a plurality vote over trimmed or
    whitespace/case-normalized content; ties go to the earliest response.
    """
    if comparator in (None, "first"):
        return ModelResponse(content=responses[0].content, metadata={"method": "voting"})

    key_fn = _COMPARATORS.get(comparator)
    if key_fn is None:
        raise AggregationError(f"Unknown voting comparator: {comparator!r}")

    keys = [key_fn(r.content) for r in responses]
    counts = Counter(keys)
    best = max(counts.values())
    winner = next(i for i, k in enumerate(keys) if counts[k] == best)
    return ModelResponse(
        content=responses[winner].content,
        metadata={"method": "voting", "votes": best, "voters": len(responses)},
    )


class Aggregator:
    """Applies a layer's aggregation strategy. Synthesis runs a model through the invoker."""

    def __init__(self, invoker: AgentInvoker, resolver: PromptResolver, synthesis_model: str) -> None:
        self._invoker = invoker
        self._resolver = resolver
        self._synthesis_model = synthesis_model

    async def _synthesize(self, responses: Sequence[ModelResponse], template: str | None) -> ModelResponse:
        if not self._synthesis_model:
            raise AggregationError("Synthesis aggregation requires a synthesis model")
        synthesizer = Agent(
            name=SYNTHESIZER_NAME,
            model=self._synthesis_model,
            prompt_template=template or DEFAULT_AGGREGATION_TEMPLATE,
        )
        prompt = render_synthesis_prompt(synthesizer.prompt_template, responses)

        logger.info("Running synthesis of %d response(s) via %s", len(responses), synthesizer.model)
        result = await self._invoker.invoke(synthesizer, prompt)
        result.metadata["method"] = "synthesis"
        return result

    async def aggregate(self, responses: Sequence[ModelResponse], strategy: AggregationStrategy) -> ModelResponse:
        """Combine responses per strategy.

        Returns an error-bearing response for an empty input. Other failures
        (AggregationError, synthesis invocation errors) are raised.
        """
        if not responses:
            return ModelResponse(
                content="",
                error=NO_RESPONSES_ERROR,
                metadata={"error_type": AggregationError.__name__},
            )

        template = strategy.prompt_template
        if is_prompt_document(template):
            template = self._resolver.resolve(template).template

        method = strategy.method
        logger.debug("Aggregating %d response(s) with method %s", len(responses), method)
        if method == "synthesis":
            return await self._synthesize(responses, template)
        if method == "weighted":
            return weighted_combine(responses, strategy.weights)
        if method == "voting":
            return vote(responses, strategy.comparator)
        if method != "concatenate":
            logger.warning("Unknown aggregation method %r, concatenating responses", method)
        return concatenate(responses)
