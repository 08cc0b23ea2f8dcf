"""
Runtime context shared between provisioning steps.

Values discovered while the pipeline runs (credentials, cluster-internal
addresses, derived URLs) are published here by the step that found them and
read by later steps. Only keys from the registry below can be published, and
reading an unpublished key raises DependencyMissing instead of returning an
empty value.
"""

from dataclasses import dataclass
from typing import Any, Dict, Iterable, Optional

from lakeboot.errors import DependencyMissing, PipelineError
from lakeboot.utils import mask_secret


@dataclass(frozen=True)
class ContextKey:
    """A registered runtime value."""

    name: str
    description: str
    secret: bool = False


# Object store (MinIO)
OBJECT_STORE_ACCESS_KEY = "object_store.access_key"
OBJECT_STORE_SECRET_KEY = "object_store.secret_key"
OBJECT_STORE_ENDPOINT = "object_store.endpoint"
OBJECT_STORE_CONSOLE_URL = "object_store.console_url"

# Hive metastore
METASTORE_ADDRESS = "metastore.address"
METASTORE_URI = "metastore.uri"

# Dremio
CATALOG_URL = "catalog.url"

# Host
CLUSTER_HOST_IP = "cluster.host_ip"


KEY_REGISTRY: Dict[str, ContextKey] = {
    key.name: key
    for key in (
        ContextKey(OBJECT_STORE_ACCESS_KEY, "Object store access key", secret=True),
        ContextKey(OBJECT_STORE_SECRET_KEY, "Object store secret key", secret=True),
        ContextKey(OBJECT_STORE_ENDPOINT, "Object store cluster-internal address"),
        ContextKey(OBJECT_STORE_CONSOLE_URL, "Object store console address"),
        ContextKey(METASTORE_ADDRESS, "Metastore cluster-internal host:port"),
        ContextKey(METASTORE_URI, "Metastore thrift URI"),
        ContextKey(CATALOG_URL, "Catalog engine UI URL"),
        ContextKey(CLUSTER_HOST_IP, "Host IPv4 address used for load balancing"),
    )
}

OBJECT_STORE_CREDENTIALS = (
    OBJECT_STORE_ACCESS_KEY,
    OBJECT_STORE_SECRET_KEY,
    OBJECT_STORE_ENDPOINT,
)


def ensure_registered(keys: Iterable[str]) -> None:
    """
    Check that every key is in the registry.

    Raises:
        PipelineError: If a key is unknown
    """
    for key in keys:
        if key not in KEY_REGISTRY:
            raise PipelineError(f"Unknown context key: '{key}'")


class RuntimeContext:
    """
    Key/value store of values discovered during a bootstrap run.

    Created empty at the start of a run; each step reads the keys it declared
    and publishes the keys it provides.
    """

    def __init__(self, initial: Optional[Dict[str, Any]] = None):
        self._values: Dict[str, Any] = {}
        self._publishers: Dict[str, Optional[str]] = {}
        for key, value in (initial or {}).items():
            self.publish(key, value)

    def publish(self, key: str, value: Any, step_id: Optional[str] = None) -> None:
        """
        Publish a value.

        Args:
            key: Registered context key
            value: Discovered value (must not be None or empty)
            step_id: Publishing step, kept for diagnostics

        Raises:
            PipelineError: If the key is unknown or the value is empty
        """
        ensure_registered([key])
        if value is None or value == "":
            raise PipelineError(
                f"Refusing to publish empty value for '{key}'"
                + (f" from step '{step_id}'" if step_id else "")
            )
        self._values[key] = value
        self._publishers[key] = step_id

    def require(self, key: str, step_id: Optional[str] = None) -> Any:
        """
        Read a published value.

        Raises:
            DependencyMissing: If the key has not been published
        """
        if key not in self._values:
            raise DependencyMissing(key, step_id)
        return self._values[key]

    def get(self, key: str, default: Any = None) -> Any:
        return self._values.get(key, default)

    def has(self, key: str) -> bool:
        return key in self._values

    def missing(self, keys: Iterable[str]) -> list:
        """Return the keys from `keys` that have not been published."""
        return [key for key in keys if key not in self._values]

    def publisher(self, key: str) -> Optional[str]:
        """Return the step that published `key`."""
        return self._publishers.get(key)

    def snapshot(self) -> Dict[str, Any]:
        """Return a copy of all published values."""
        return dict(self._values)

    def redacted(self) -> Dict[str, Any]:
        """Return published values with secrets masked."""
        result = {}
        for key, value in self._values.items():
            if KEY_REGISTRY[key].secret:
                result[key] = mask_secret(str(value))
            else:
                result[key] = value
        return result

    def __contains__(self, key: str) -> bool:
        return key in self._values

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        return f"RuntimeContext(keys={sorted(self._values)})"
