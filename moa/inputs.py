"""Query file reading with optional YAML front matter."""

from pathlib import Path

import frontmatter
import yaml

from moa.errors import ConfigurationError


def read_query(file_path: Path) -> tuple[str, dict]:
    """Read the initial chain input from a text or markdown file.

    Returns:
        (content, metadata) where content is the trimmed body and metadata is
        the front matter dict (e.g. {"max_iterations": 2}); {} without front matter.
    """
    try:
        post = frontmatter.load(str(file_path))
    except (yaml.YAMLError, UnicodeDecodeError) as exc:
        raise ConfigurationError(f"Could not parse query file {file_path}: {exc}") from exc
    return post.content.strip(), dict(post.metadata)


def effective_iterations(cli_value: int | None, metadata: dict, pipeline_value: int) -> int:
    """CLI flag wins, then front matter, then the pipeline file."""
    if cli_value is not None:
        value = cli_value
    elif "max_iterations" in metadata:
        try:
            value = int(metadata["max_iterations"])
        except (TypeError, ValueError) as exc:
            raise ConfigurationError(
                f"max_iterations in front matter must be an integer, got {metadata['max_iterations']!r}"
            ) from exc
    else:
        value = pipeline_value
    if value < 1:
        raise ConfigurationError(f"max_iterations must be at least 1, got {value}")
    return value
