"""Cluster runtime adapter (kubectl)."""

import base64
import binascii
import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from lakeboot.errors import ExternalCallFailure
from lakeboot.tools.base import Presence, ToolAdapter, is_not_found


@dataclass(frozen=True)
class ServiceAddress:
    """Cluster-internal address of a service."""

    name: str
    namespace: str
    cluster_ip: str
    ports: List[int] = field(default_factory=list)

    def port(self, index: int = 0) -> int:
        if index >= len(self.ports):
            raise LookupError(
                f"Service {self.namespace}/{self.name} has no port at index {index}"
            )
        return self.ports[index]

    def host_port(self, index: int = 0) -> str:
        return f"{self.cluster_ip}:{self.port(index)}"


class ClusterRuntime(ToolAdapter):
    """
    Read and create cluster objects through kubectl.

    Lookups return None / Presence.ABSENT for missing objects and raise
    ExternalCallFailure for anything else, so an unreachable API server is
    never mistaken for a missing object.
    """

    def __init__(self, command=("microk8s", "kubectl"), runner=None, sudo: bool = False):
        super().__init__(command, runner=runner, sudo=sudo)

    def _get_json(self, kind: str, name: str, namespace: Optional[str] = None) -> Optional[Dict[str, Any]]:
        args = ["get", kind, name, "-o", "json"]
        if namespace:
            args += ["-n", namespace]
        result = self.execute(*args, check=False)
        if result.ok:
            try:
                return json.loads(result.stdout)
            except json.JSONDecodeError as e:
                raise ExternalCallFailure(
                    result.command, message=f"Invalid JSON from kubectl get {kind} {name}: {e}"
                )
        if is_not_found(result.stderr):
            return None
        raise ExternalCallFailure(result.command, result.returncode, result.stderr)

    def _presence(self, kind: str, name: str, namespace: Optional[str] = None) -> Presence:
        try:
            found = self._get_json(kind, name, namespace)
        except ExternalCallFailure:
            return Presence.UNKNOWN
        return Presence.EXISTS if found is not None else Presence.ABSENT

    # Namespaces

    def namespace_exists(self, name: str) -> Presence:
        return self._presence("namespace", name)

    def create_namespace(self, name: str) -> bool:
        """
        Create a namespace; an existing namespace is a no-op.

        Returns:
            True if the namespace was created, False if it already existed
        """
        result = self.execute("create", "namespace", name, check=False)
        if result.ok:
            return True
        if "alreadyexists" in result.stderr.lower().replace(" ", ""):
            return False
        raise ExternalCallFailure(result.command, result.returncode, result.stderr)

    # Services

    def get_service(self, name: str, namespace: str) -> Optional[ServiceAddress]:
        """Return the service's cluster IP and ports, or None if it does not exist."""
        data = self._get_json("service", name, namespace)
        if data is None:
            return None

        spec = data.get("spec", {})
        cluster_ip = spec.get("clusterIP")
        if not cluster_ip or cluster_ip == "None":
            return None
        ports = [int(p["port"]) for p in spec.get("ports", []) if "port" in p]
        return ServiceAddress(name=name, namespace=namespace, cluster_ip=cluster_ip, ports=ports)

    # Secrets

    def get_secret(self, name: str, namespace: str, key: str) -> Optional[bytes]:
        """Return a decoded secret value, or None if the secret or key is missing."""
        data = self._get_json("secret", name, namespace)
        if data is None:
            return None
        encoded = (data.get("data") or {}).get(key)
        if encoded is None:
            return None
        try:
            return base64.b64decode(encoded)
        except (binascii.Error, ValueError) as e:
            raise ExternalCallFailure(
                ["kubectl", "get", "secret", name], message=f"Secret {namespace}/{name} key {key} is not base64: {e}"
            )

    def secret_exists(self, name: str, namespace: str) -> Presence:
        return self._presence("secret", name, namespace)

    def create_secret_from_file(self, name: str, namespace: str, path: Path) -> None:
        self.execute(
            "create", "secret", "generic", name,
            f"--from-file={path}", "-n", namespace,
        )

    def secret_matches_file(self, name: str, namespace: str, path: Path) -> bool:
        """True if the secret holds exactly the content of `path` under its file name."""
        stored = self.get_secret(name, namespace, Path(path).name)
        return stored is not None and stored == Path(path).read_bytes()

    # Service accounts

    def service_account_exists(self, name: str, namespace: str) -> Presence:
        return self._presence("serviceaccount", name, namespace)
