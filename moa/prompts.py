"""Prompt resolution (inline text or XML prompt documents) and placeholder substitution."""

import logging
import re
import xml.etree.ElementTree as ET
from collections.abc import Sequence
from pathlib import Path

from moa.errors import PromptResolutionError
from moa.models import ModelResponse, ResolvedPrompt

logger = logging.getLogger(__name__)

MAX_PROMPT_FILE_BYTES = 1024 * 1024
PROMPT_DOCUMENT_SUFFIX = ".xml"

INPUT_PLACEHOLDER = "{input}"
PREVIOUS_RESPONSES_PLACEHOLDER = "{previous_responses}"
RESPONSES_PLACEHOLDER = "{responses}"

_AGENT_PLACEHOLDER_RE = re.compile(
    "|".join(re.escape(p) for p in (INPUT_PLACEHOLDER, PREVIOUS_RESPONSES_PLACEHOLDER))
)

# Aggregation prompt from the Mixture-of-Agents paper.
DEFAULT_AGGREGATION_TEMPLATE = """
You are tasked with synthesizing multiple responses to create a comprehensive and accurate final answer.

Previous responses:
{responses}

Please analyze these responses and:
1. Identify common themes and key points
2. Note any contradictions or inconsistencies
3. Synthesize a final response that:
- Incorporates the best elements from each response
- Resolves any contradictions
- Provides a coherent and complete answer

Final synthesized response:"""


def is_prompt_document(source: str | None) -> bool:
    return bool(source) and source.strip().lower().endswith(PROMPT_DOCUMENT_SUFFIX)


def _element_text(element: ET.Element | None) -> str | None:
    if element is None:
        return None
    return "".join(element.itertext()).strip()


class PromptResolver:
    """Turns an agent or strategy prompt source into a template and optional system prompt.

    Document references are resolved relative to base_dir and must stay inside it.
    """

    def __init__(self, base_dir: Path | None = None) -> None:
        self._base_dir = (base_dir or Path.cwd()).resolve()

    def resolve(self, source: str) -> ResolvedPrompt:
        if not is_prompt_document(source):
            return ResolvedPrompt(template=source)
        try:
            return self._read_document(source.strip())
        except PromptResolutionError as exc:
            logger.error("Failed to read/parse XML prompt file %s: %s", source, exc)
            raise

    def _read_document(self, source: str) -> ResolvedPrompt:
        path = (self._base_dir / source).resolve()
        if not path.is_relative_to(self._base_dir):
            raise PromptResolutionError(
                f"Prompt file must be within {self._base_dir}: {source}"
            )
        if not path.is_file():
            raise PromptResolutionError(f"Prompt file not found: {source}")

        try:
            size = path.stat().st_size
            if size > MAX_PROMPT_FILE_BYTES:
                raise PromptResolutionError(
                    f"Prompt file too large: {size} bytes (max {MAX_PROMPT_FILE_BYTES} bytes)"
                )
            data = path.read_bytes()
        except OSError as exc:
            raise PromptResolutionError(f"Could not read prompt file {source}: {exc}") from exc

        try:
            root = ET.fromstring(data)
        except ET.ParseError as exc:
            raise PromptResolutionError(f"Invalid XML in {source}: {exc}") from exc

        if root.tag != "prompt":
            raise PromptResolutionError(
                f"Invalid XML: missing root <prompt> element in {source}"
            )

        template = _element_text(next(root.iter("template"), None))
        if template is None:
            raise PromptResolutionError(f"Invalid XML: missing <template> element in {source}")

        system_prompt = _element_text(next(root.iter("system"), None)) or None
        logger.debug("Loaded prompt document %s (system prompt: %s)", source, system_prompt is not None)
        return ResolvedPrompt(template=template, system_prompt=system_prompt)


def render_agent_prompt(
    template: str,
    current_input: str,
    prior_responses: Sequence[ModelResponse],
) -> str:
    """Fill {input} and {previous_responses} in an agent template.

    Substitution is a single pass, so placeholder-like text inside the input
    is never expanded a second time.
    """
    values = {
        INPUT_PLACEHOLDER: current_input,
        PREVIOUS_RESPONSES_PLACEHOLDER: "\n".join(r.content for r in prior_responses),
    }
    return _AGENT_PLACEHOLDER_RE.sub(lambda m: values[m.group(0)], template)


def render_responses_block(responses: Sequence[ModelResponse]) -> str:
    """Format responses as 1-indexed "Response <i>:" blocks separated by blank lines."""
    return "\n\n".join(
        f"Response {i}:\n{r.content}" for i, r in enumerate(responses, start=1)
    )


def render_synthesis_prompt(template: str, responses: Sequence[ModelResponse]) -> str:
    return template.replace(RESPONSES_PLACEHOLDER, render_responses_block(responses))
