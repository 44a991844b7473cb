"""Chain orchestration: iterations x layers, feeding each aggregate forward."""

import logging
from collections.abc import Callable
from datetime import datetime, timezone
from enum import Enum

from moa.aggregation import Aggregator
from moa.errors import LayerExecutionError
from moa.layer import LayerProcessor
from moa.models import LayerResult, ModelResponse, PipelineConfig, QueryContext
from moa.stop import CallableStop, StopCondition

logger = logging.getLogger(__name__)

_PREVIEW_CHARS = 100


class ChainState(Enum):
    IDLE = "idle"
    RUNNING = "running"
    STOPPED = "stopped"
    FAILED = "failed"
    COMPLETED = "completed"


def _preview(text: str) -> str:
    return text[:_PREVIEW_CHARS] + ("..." if len(text) > _PREVIEW_CHARS else "")


class ChainController:
    """Drives a pipeline run and owns its response history.

    `run` never raises; every failure becomes an error-bearing ModelResponse.
    """

    def __init__(self, layer_processor: LayerProcessor, aggregator: Aggregator) -> None:
        self._layers = layer_processor
        self._aggregator = aggregator
        self.state = ChainState.IDLE
        self.history: list[ModelResponse] = []
        self.context: QueryContext | None = None

    async def run(
        self,
        config: PipelineConfig,
        initial_input: str,
        on_layer_complete: Callable[[LayerResult], None] | None = None,
    ) -> ModelResponse:
        """Run every layer for up to config.max_iterations iterations.

        Args:
            config: Layers, iteration count and optional stop condition.
            initial_input: Text fed to the first layer.
            on_layer_complete: Optional callback invoked after each layer is aggregated.

        Returns:
            The aggregate that triggered the stop condition, the final aggregate
            with run metadata, or an error-bearing response.
        """
        self.state = ChainState.RUNNING
        self.history = []
        self.context = QueryContext(
            original_query=initial_input,
            timestamp=datetime.now(timezone.utc).isoformat(),
        )
        try:
            return await self._run(config, initial_input, on_layer_complete)
        except Exception as exc:
            self.state = ChainState.FAILED
            logger.error("MOA chain failed: %s", exc)
            metadata = {"error_type": type(exc).__name__, "total_responses": len(self.history)}
            if isinstance(exc, LayerExecutionError):
                metadata["failed_layer"] = exc.layer_name
                metadata["error_type"] = exc.error_type or metadata["error_type"]
            return ModelResponse(content="", error=f"Error in MOA chain: {exc}", metadata=metadata)

    async def _run(
        self,
        config: PipelineConfig,
        initial_input: str,
        on_layer_complete: Callable[[LayerResult], None] | None,
    ) -> ModelResponse:
        max_iterations = config.max_iterations or 1
        stop = config.stop_condition
        if stop is not None and not isinstance(stop, StopCondition):
            stop = CallableStop(stop)

        current_input = initial_input
        logger.info("Starting MOA chain with %d max iteration(s), %d layer(s)", max_iterations, len(config.layers))

        for iteration in range(max_iterations):
            logger.info("Iteration %d started", iteration + 1)
            self.context.current_iteration = iteration

            for layer in config.layers:
                logger.debug("Current input for layer %s: %s", layer.name, _preview(current_input))
                responses = await self._layers.process(layer, current_input, list(self.history), self.context)

                failures = [r for r in responses if r.error]
                if failures:
                    first = failures[0]
                    logger.error(
                        "Errors in layer %s: %s",
                        layer.name,
                        [f"{r.metadata.get('agent', '?')}: {r.error}" for r in failures],
                    )
                    raise LayerExecutionError(layer.name, first.error, first.metadata.get("error_type"))

                try:
                    aggregated = await self._aggregator.aggregate(responses, layer.aggregation)
                except Exception as exc:
                    raise LayerExecutionError(
                        layer.name, f"aggregation failed: {exc}", type(exc).__name__
                    ) from exc
                if aggregated.error:
                    raise LayerExecutionError(layer.name, aggregated.error, aggregated.metadata.get("error_type"))

                self.history.append(aggregated)
                current_input = aggregated.content
                logger.debug("Layer %s aggregate: %s", layer.name, _preview(aggregated.content))

                if on_layer_complete:
                    on_layer_complete(LayerResult(
                        iteration=iteration,
                        layer_name=layer.name,
                        responses=responses,
                        aggregate=aggregated,
                    ))

                if stop is not None and stop.should_stop(self.history):
                    logger.info("Stop criteria met after layer %s, ending iterations", layer.name)
                    self.state = ChainState.STOPPED
                    return aggregated

            logger.info("Iteration %d completed", iteration + 1)

        self.state = ChainState.COMPLETED
        logger.info("MOA chain completed. Total responses: %d", len(self.history))
        return ModelResponse(
            content=current_input,
            metadata={
                "iterations": max_iterations,
                "total_responses": len(self.history),
                "final_response_length": len(current_input),
            },
        )
