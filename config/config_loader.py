"""Load settings.yaml and pipeline files into typed dataclasses."""

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from moa.endpoints import load_endpoints
from moa.errors import ConfigurationError
from moa.models import Agent, AggregationStrategy, Endpoint, Layer, PipelineConfig
from moa.stop import build_stop_condition

logger = logging.getLogger(__name__)

_SETTINGS_PATH = Path(__file__).parent / "settings.yaml"


@dataclass
class BackendConfig:
    name: str
    timeout_sec: int
    max_tokens: int | None = None
    api_key_env: str | None = None
    base_url: str | None = None
    command: str | None = None


@dataclass
class Settings:
    output_dir: Path
    default_model: str
    synthesis_model: str
    max_instances: int
    max_concurrency: int | None = None
    backends: dict[str, BackendConfig] = field(default_factory=dict)
    endpoints: list[Endpoint] = field(default_factory=list)


def _env_override(environ: Mapping[str, str], key: str, fallback: Any) -> Any:
    value = environ.get(key, "").strip()
    return value if value else fallback


def load_settings(
    settings_path: Path = _SETTINGS_PATH,
    environ: Mapping[str, str] | None = None,
) -> Settings:
    """Load settings.yaml, letting OUTPUT_DIR, DEFAULT_MODEL, SYNTHESIS_MODEL
    and MAX_INSTANCES from the environment take precedence.

    Raises FileNotFoundError if the settings file is missing and
    ConfigurationError if a value has the wrong type.
    """
    if environ is None:
        environ = os.environ
    if not settings_path.exists():
        raise FileNotFoundError(f"Settings file not found: {settings_path}")

    with settings_path.open("r", encoding="utf-8") as f:
        try:
            raw = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ConfigurationError(f"Could not parse {settings_path}: {exc}") from exc
    if not isinstance(raw, Mapping):
        raise ConfigurationError(f"{settings_path} must contain a mapping")

    defaults_raw = raw.get("defaults") or {}
    if not isinstance(defaults_raw, Mapping):
        raise ConfigurationError(f"{settings_path}: defaults must be a mapping")
    try:
        max_instances = int(_env_override(environ, "MAX_INSTANCES", defaults_raw.get("max_instances", 2)))
        max_concurrency_raw = defaults_raw.get("max_concurrency")
        max_concurrency = int(max_concurrency_raw) if max_concurrency_raw else None

        backends: dict[str, BackendConfig] = {}
        for backend_name, backend_raw in (raw.get("backends") or {}).items():
            backend_raw = backend_raw or {}
            max_tokens = backend_raw.get("max_tokens")
            backends[backend_name] = BackendConfig(
                name=backend_name,
                timeout_sec=int(backend_raw.get("timeout_sec", 300)),
                max_tokens=int(max_tokens) if max_tokens is not None else None,
                api_key_env=backend_raw.get("api_key_env"),
                base_url=backend_raw.get("base_url"),
                command=backend_raw.get("command"),
            )
    except (AttributeError, TypeError, ValueError) as exc:
        raise ConfigurationError(f"Invalid value in {settings_path}: {exc}") from exc

    settings = Settings(
        output_dir=Path(_env_override(environ, "OUTPUT_DIR", defaults_raw.get("output_dir", "output"))),
        default_model=str(_env_override(environ, "DEFAULT_MODEL", defaults_raw.get("default_model", ""))),
        synthesis_model=str(_env_override(environ, "SYNTHESIS_MODEL", defaults_raw.get("synthesis_model", ""))),
        max_instances=max_instances,
        max_concurrency=max_concurrency,
        backends=backends,
        endpoints=load_endpoints(environ, max_instances),
    )
    logger.info(
        "Loaded settings: %d endpoint(s), synthesis model %s",
        len(settings.endpoints),
        settings.synthesis_model or "(none)",
    )
    return settings


def _get(raw: Mapping[str, Any], snake: str, camel: str | None = None, default: Any = None) -> Any:
    """Read a key in snake_case, falling back to the camelCase spelling."""
    if snake in raw:
        return raw[snake]
    if camel is not None and camel in raw:
        return raw[camel]
    return default


def _parse_weights(raw: Any, where: str) -> tuple[float, ...] | None:
    if raw is None:
        return None
    if not isinstance(raw, list):
        raise ConfigurationError(f"{where}: weights must be a list of numbers")
    try:
        return tuple(float(w) for w in raw)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"{where}: weights must be numbers ({exc})") from exc


def _parse_agent(raw: Mapping[str, Any], where: str, default_model: str | None) -> Agent:
    if not isinstance(raw, Mapping):
        raise ConfigurationError(f"{where}: agent must be a mapping")
    name = raw.get("name")
    if not name:
        raise ConfigurationError(f"{where}: agent is missing 'name'")
    model = raw.get("model") or default_model
    if not model:
        raise ConfigurationError(f"{where}: agent '{name}' is missing 'model'")
    prompt_template = _get(raw, "prompt_template", "promptTemplate")
    if not prompt_template:
        raise ConfigurationError(f"{where}: agent '{name}' is missing 'prompt_template'")
    temperature = raw.get("temperature")
    try:
        temperature = float(temperature) if temperature is not None else None
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"{where}: agent '{name}' has invalid temperature") from exc
    return Agent(
        name=str(name),
        model=str(model),
        prompt_template=str(prompt_template),
        temperature=temperature,
        system_prompt=_get(raw, "system_prompt", "systemPrompt"),
        endpoint_uri=_get(raw, "endpoint_uri", "instanceUri"),
    )


def _parse_layer(raw: Mapping[str, Any], index: int, default_model: str | None) -> Layer:
    if not isinstance(raw, Mapping):
        raise ConfigurationError(f"Layer {index}: must be a mapping")
    name = str(raw.get("name") or f"layer-{index + 1}")
    where = f"Layer {name}"

    agents_raw = raw.get("agents")
    if not agents_raw:
        raise ConfigurationError(f"{where}: at least one agent is required")
    agents = tuple(_parse_agent(a, where, default_model) for a in agents_raw)

    strategy_raw = _get(raw, "aggregation", "aggregationStrategy") or {}
    if not isinstance(strategy_raw, Mapping):
        raise ConfigurationError(f"{where}: aggregation strategy must be a mapping")
    weights = _parse_weights(strategy_raw.get("weights"), where)
    if weights is not None and len(weights) < len(agents):
        raise ConfigurationError(
            f"{where}: {len(weights)} weight(s) for {len(agents)} agent(s)"
        )
    strategy = AggregationStrategy(
        method=str(strategy_raw.get("method", "concatenate")),
        prompt_template=_get(strategy_raw, "prompt_template", "promptTemplate"),
        weights=weights,
        comparator=strategy_raw.get("comparator"),
    )
    return Layer(name=name, agents=agents, aggregation=strategy)


def parse_pipeline(raw: Any, default_model: str | None = None) -> PipelineConfig:
    """Build a PipelineConfig from an already-decoded document."""
    if not isinstance(raw, Mapping):
        raise ConfigurationError("Pipeline configuration must be a mapping")

    layers_raw = raw.get("layers")
    if not layers_raw:
        raise ConfigurationError("Pipeline configuration has no layers")
    layers = tuple(_parse_layer(layer_raw, i, default_model) for i, layer_raw in enumerate(layers_raw))

    max_iterations = _get(raw, "max_iterations", "maxIterations", 1)
    try:
        max_iterations = int(max_iterations)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"max_iterations must be an integer, got {max_iterations!r}") from exc
    if max_iterations < 1:
        raise ConfigurationError(f"max_iterations must be at least 1, got {max_iterations}")

    stop_raw = _get(raw, "stop_criteria", "stopCriteria")
    stop_condition = build_stop_condition(stop_raw) if stop_raw else None

    return PipelineConfig(layers=layers, max_iterations=max_iterations, stop_condition=stop_condition)


def load_pipeline(path: Path, default_model: str | None = None) -> PipelineConfig:
    """Load a pipeline from a JSON or YAML file.

    Raises FileNotFoundError if the file is missing, ConfigurationError if it
    is malformed.
    """
    if not path.exists():
        raise FileNotFoundError(f"Pipeline file not found: {path}")

    with path.open("r", encoding="utf-8") as f:
        try:
            raw = yaml.safe_load(f)
        except yaml.YAMLError as exc:
            raise ConfigurationError(f"Could not parse {path}: {exc}") from exc

    config = parse_pipeline(raw, default_model=default_model)
    logger.info(
        "Loaded pipeline %s: %d layer(s), %d max iteration(s)",
        path.name,
        len(config.layers),
        config.max_iterations,
    )
    return config
