"""Click CLI: loads settings and pipeline, preloads models, runs the chain, writes the result."""

import asyncio
import dataclasses
import logging
import sys
from pathlib import Path

import click
from dotenv import load_dotenv
from rich.console import Console
from rich.logging import RichHandler
from rich.progress import Progress, SpinnerColumn, TextColumn, TimeElapsedColumn

from config.config_loader import Settings, load_pipeline, load_settings
from moa.aggregation import Aggregator
from moa.chain import ChainController
from moa.endpoints import FALLBACK_ENDPOINT, EndpointSelector
from moa.errors import ConfigurationError
from moa.inputs import effective_iterations, read_query
from moa.invoker import AgentInvoker
from moa.layer import LayerProcessor
from moa.models import LayerResult, ModelResponse, PipelineConfig
from moa.output import print_layer_summary, print_result, save_result
from moa.preload import preload_models, unique_ollama_models
from moa.prompts import PromptResolver

logger = logging.getLogger(__name__)

console = Console(legacy_windows=False)


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
    )


def build_controller(settings: Settings, base_dir: Path | None = None) -> ChainController:
    """Wire selector, invoker, resolver, layer processor and aggregator from settings."""
    selector = EndpointSelector(settings.endpoints)
    invoker = AgentInvoker(selector, settings.backends)
    resolver = PromptResolver(base_dir)
    layers = LayerProcessor(invoker, resolver, max_concurrency=settings.max_concurrency)
    aggregator = Aggregator(invoker, resolver, settings.synthesis_model)
    return ChainController(layers, aggregator)


def _preload_or_exit(pipeline: PipelineConfig, settings: Settings) -> None:
    models = unique_ollama_models(pipeline, settings.synthesis_model)
    if not models:
        return
    endpoints = settings.endpoints or [FALLBACK_ENDPOINT]
    results = asyncio.run(preload_models(models, endpoints))

    failed = {key: err for key, (ok, err) in results.items() if not ok}
    for model, uri in sorted(failed):
        short_err = failed[(model, uri)].splitlines()[0][:120] if failed[(model, uri)] else "unknown error"
        console.print(f"  [red]FAIL[/red] {model} @ {uri}: {short_err}")
    if failed:
        console.print("\n[bold red]Error:[/bold red] Failed to preload models. Use --no-preload to skip.")
        sys.exit(1)
    console.print(f"[dim]Preloaded {len(models)} model(s) on {len(endpoints)} endpoint(s)[/dim]")


async def _run_chain(controller: ChainController, pipeline: PipelineConfig, query: str) -> tuple[ModelResponse, list[LayerResult]]:
    completed: list[LayerResult] = []

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        TimeElapsedColumn(),
        console=console,
        transient=True,
    ) as progress:

        def on_layer_complete(result: LayerResult) -> None:
            completed.append(result)
            progress.print(
                f"[green]OK[/green] Iteration {result.iteration + 1}, layer {result.layer_name} "
                f"({len(result.responses)} responses)"
            )

        progress.add_task("Running mixture-of-agents chain...", total=None)
        result = await controller.run(pipeline, query, on_layer_complete=on_layer_complete)

    return result, completed


@click.command()
@click.argument("prompt_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument("config_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--iterations", default=None, type=int, help="Max iterations (default: front matter, then pipeline file)")
@click.option("--output", "output_path", default=None, help="Output directory (default: from settings / OUTPUT_DIR)")
@click.option("--synthesis-model", default=None, help="Model used by synthesis aggregation")
@click.option("--settings", "settings_path", default=None, type=click.Path(exists=True, dir_okay=False, path_type=Path),
              help="Alternative settings.yaml")
@click.option("--no-preload", is_flag=True, default=False, help="Skip preloading Ollama models")
@click.option("--verbose", is_flag=True, help="Enable DEBUG-level logging")
def main(
    prompt_file: Path,
    config_file: Path,
    iterations: int | None,
    output_path: str | None,
    synthesis_model: str | None,
    settings_path: Path | None,
    no_preload: bool,
    verbose: bool,
) -> None:
    """Mixture-of-agents chain runner.

    \b
    Examples:
      moa-chain question.md pipelines/basic.json
      moa-chain question.md pipelines/basic.json --iterations 2 --no-preload
      moa-chain question.md pipelines/basic.json --synthesis-model llm:gpt-4o-mini
    """
    load_dotenv()
    _setup_logging(verbose)

    try:
        settings = load_settings(settings_path) if settings_path else load_settings()
        pipeline = load_pipeline(config_file, default_model=settings.default_model or None)
        query, meta = read_query(prompt_file)
        pipeline = dataclasses.replace(
            pipeline,
            max_iterations=effective_iterations(iterations, meta, pipeline.max_iterations),
        )
    except (FileNotFoundError, ConfigurationError) as exc:
        console.print(f"[bold red]Config error:[/bold red] {exc}")
        sys.exit(1)

    if not query:
        console.print(f"[bold red]Error:[/bold red] Prompt file is empty: {prompt_file}")
        sys.exit(1)

    if synthesis_model:
        settings.synthesis_model = synthesis_model
    output_dir = Path(output_path) if output_path else settings.output_dir

    if not no_preload:
        _preload_or_exit(pipeline, settings)

    console.print(
        f"\n[bold cyan]MoA Chain[/bold cyan] | {len(pipeline.layers)} layer(s), "
        f"{pipeline.max_iterations} iteration(s)"
    )
    console.print(f"Query: [italic]{query[:80]}{'...' if len(query) > 80 else ''}[/italic]\n")

    controller = build_controller(settings)
    result, completed = asyncio.run(_run_chain(controller, pipeline, query))

    for layer_result in completed:
        print_layer_summary(layer_result)

    if result.error:
        console.print(f"[bold red]Error:[/bold red] {result.error}")
        sys.exit(1)

    print_result(result)
    saved_path = save_result(result, output_dir)
    console.print(f"\n[dim]Saved to: {saved_path}[/dim]")


if __name__ == "__main__":
    main()
