"""Error kinds raised inside the chain. The controller turns them into error responses."""


class MoaError(Exception):
    """Base class for every failure the chain knows how to report."""


class ConfigurationError(MoaError):
    """Raised when a pipeline or settings document is malformed."""


class PromptResolutionError(MoaError):
    """Raised when a prompt document cannot be located, read or parsed."""


class UnsupportedBackendError(MoaError):
    """Raised when a model identifier carries an unknown backend prefix."""

    def __init__(self, model: str) -> None:
        self.model = model
        super().__init__(f"Unsupported model backend in: {model}")


class BackendInvocationError(MoaError):
    """Raised when a backend call fails."""

    def __init__(self, backend: str, message: str) -> None:
        self.backend = backend
        super().__init__(f"[{backend}] {message}")


class EmptyResponseError(BackendInvocationError):
    """Raised when a backend returns blank output."""

    def __init__(self, backend: str, model: str) -> None:
        self.model = model
        super().__init__(backend, f"Model {model} returned empty response")


class AggregationError(MoaError):
    """Raised when a layer's responses cannot be combined."""


class LayerExecutionError(MoaError):
    """Raised by the chain when any agent of a layer failed."""

    def __init__(self, layer_name: str, message: str, error_type: str | None = None) -> None:
        self.layer_name = layer_name
        self.error_type = error_type
        super().__init__(f"Layer {layer_name} execution failed: {message}")
