"""Layer processing: per-agent prompt rendering and concurrent fan-out."""

import asyncio
import contextlib
import logging
from collections.abc import Sequence

from moa.invoker import AgentInvoker
from moa.models import Agent, Layer, ModelResponse, QueryContext
from moa.prompts import PromptResolver, render_agent_prompt

logger = logging.getLogger(__name__)


class LayerProcessor:
    """Runs every agent of a layer concurrently and collects their responses in order."""

    def __init__(
        self,
        invoker: AgentInvoker,
        resolver: PromptResolver,
        max_concurrency: int | None = None,
    ) -> None:
        self._invoker = invoker
        self._resolver = resolver
        self._max_concurrency = max_concurrency

    async def _run_agent(
        self,
        agent: Agent,
        current_input: str,
        prior_responses: Sequence[ModelResponse],
    ) -> ModelResponse:
        resolved = self._resolver.resolve(agent.prompt_template)
        system_prompt = resolved.system_prompt or agent.system_prompt
        prompt = render_agent_prompt(resolved.template, current_input, prior_responses)
        return await self._invoker.invoke(agent, prompt, system_prompt)

    async def _call_agent(
        self,
        agent: Agent,
        current_input: str,
        prior_responses: Sequence[ModelResponse],
        semaphore: asyncio.Semaphore | None,
    ) -> ModelResponse:
        """Run one agent.

        Never raises: any failure comes back as an error-bearing response so
        that sibling agents are unaffected.
        """
        try:
            async with semaphore if semaphore is not None else contextlib.nullcontext():
                return await self._run_agent(agent, current_input, prior_responses)
        except Exception as exc:
            logger.warning("Agent %s failed: %s", agent.name, exc)
            return ModelResponse(
                content="",
                error=str(exc),
                metadata={"agent": agent.name, "model": agent.model, "error_type": type(exc).__name__},
            )

    async def process(
        self,
        layer: Layer,
        current_input: str,
        prior_responses: Sequence[ModelResponse] = (),
        context: QueryContext | None = None,
    ) -> list[ModelResponse]:
        """Run all agents of `layer` and return one response per agent, in declared order.

        Args:
            layer: The layer to run.
            current_input: Text substituted for {input}.
            prior_responses: Aggregates so far, joined into {previous_responses}.
            context: Query context of the run, for logging.

        Returns:
            List of ModelResponse; failed agents carry `error`.
        """
        endpoint_count = len(self._invoker.selector) or 1
        logger.info(
            "Processing layer %s: %d agent(s) across %d endpoint(s)%s",
            layer.name,
            len(layer.agents),
            endpoint_count,
            f", iteration {context.current_iteration + 1}" if context is not None else "",
        )
        semaphore = asyncio.Semaphore(self._max_concurrency) if self._max_concurrency else None

        results = await asyncio.gather(
            *(self._call_agent(agent, current_input, prior_responses, semaphore) for agent in layer.agents)
        )

        failed = sum(1 for r in results if r.error)
        logger.info(
            "Layer %s complete: %d/%d agents succeeded",
            layer.name,
            len(results) - failed,
            len(results),
        )
        return list(results)
