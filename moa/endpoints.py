"""Round-robin endpoint selection and endpoint discovery from the environment."""

import logging
import threading
from collections.abc import Mapping, Sequence

from moa.models import Endpoint

logger = logging.getLogger(__name__)

FALLBACK_ENDPOINT = Endpoint(uri="http://localhost:11434")

_URL_PREFIX = "OLLAMA_API_URL_"
_PRIORITY_PREFIX = "OLLAMA_PRIORITY_"


class EndpointSelector:
    """Hands out configured endpoints in round-robin order.

    The cursor is the only shared mutable state in a chain run, so every
    read-and-advance happens under a lock.
    """

    def __init__(self, endpoints: Sequence[Endpoint] = ()) -> None:
        self._endpoints: tuple[Endpoint, ...] = tuple(endpoints)
        self._index = 0
        self._lock = threading.Lock()

    @property
    def endpoints(self) -> tuple[Endpoint, ...]:
        return self._endpoints

    def __len__(self) -> int:
        return len(self._endpoints)

    def next(self) -> Endpoint:
        if not self._endpoints:
            return FALLBACK_ENDPOINT
        with self._lock:
            endpoint = self._endpoints[self._index]
            self._index = (self._index + 1) % len(self._endpoints)
        return endpoint


def load_endpoints(environ: Mapping[str, str], max_instances: int) -> list[Endpoint]:
    """Collect OLLAMA_API_URL_<NAME> endpoints, keeping at most max_instances.

    Priority comes from OLLAMA_PRIORITY_<NAME> and defaults to 1.
    """
    endpoints: list[Endpoint] = []
    for key, value in environ.items():
        if not key.startswith(_URL_PREFIX) or not value.strip():
            continue
        name = key[len(_URL_PREFIX):]
        raw_priority = environ.get(f"{_PRIORITY_PREFIX}{name}", "1")
        try:
            priority = int(raw_priority)
        except ValueError:
            logger.warning("Ignoring non-integer priority for endpoint %s: %r", name, raw_priority)
            priority = 1
        endpoints.append(Endpoint(uri=value.strip(), name=name, priority=priority))

    if len(endpoints) > max_instances:
        logger.info("Using %d of %d configured endpoints", max_instances, len(endpoints))
    return endpoints[:max(max_instances, 0)]
