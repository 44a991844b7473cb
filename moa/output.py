"""Rich console output and result file save for chain runs."""

import logging
from pathlib import Path

from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.rule import Rule
from rich.text import Text

from moa.models import LayerResult, ModelResponse

logger = logging.getLogger(__name__)

console = Console(legacy_windows=False)

DEFAULT_OUTPUT_FILENAME = "final_moa_output.txt"


def _response_preview(response: ModelResponse, words: int = 50) -> str:
    """Return first N words of a response."""
    all_words = response.content.split()
    preview = " ".join(all_words[:words])
    if len(all_words) > words:
        preview += "..."
    return preview


def print_layer_summary(result: LayerResult) -> None:
    """Print each agent's response preview and the layer aggregate."""
    console.print(Rule(f"[bold cyan]Iteration {result.iteration + 1} | Layer {result.layer_name}[/bold cyan]"))
    for resp in result.responses:
        latency = resp.metadata.get("latency_sec")
        console.print(
            Panel(
                _response_preview(resp),
                title=f"[bold]{resp.metadata.get('agent', 'agent')}[/bold] ({resp.metadata.get('model', '?')})",
                subtitle=f"{latency:.1f}s" if latency is not None else None,
                border_style="dim",
            )
        )
    method = result.aggregate.metadata.get("method", "aggregate")
    console.print(
        Panel(
            _response_preview(result.aggregate),
            title=f"[bold green]Aggregate[/bold green] ({method})",
            border_style="green",
        )
    )


def print_result(response: ModelResponse) -> None:
    """Print the final response using Rich markdown, with run metadata if present."""
    console.print(Rule("[bold green]Final Response[/bold green]"))
    if response.metadata:
        summary = " | ".join(f"{k}: {v}" for k, v in response.metadata.items())
        console.print(Text(summary, style="dim"))
    console.print(Markdown(response.content))


def save_result(response: ModelResponse, output_dir: Path, filename: str = DEFAULT_OUTPUT_FILENAME) -> Path:
    """Write the final response content to output_dir/filename and return the path."""
    output_dir.mkdir(parents=True, exist_ok=True)
    filepath = output_dir / filename
    filepath.write_text(response.content, encoding="utf-8")
    logger.info("Result saved to: %s", filepath)
    return filepath
