"""Compute client adapter (spark-client service-account registry)."""

from typing import Dict, Mapping

from lakeboot.errors import ExternalCallFailure
from lakeboot.templates import parse_properties
from lakeboot.tools.base import ToolAdapter


class SparkClientRegistry(ToolAdapter):
    """Service accounts and configuration profiles of the Spark client."""

    def __init__(self, command=("spark-client.service-account-registry",), runner=None):
        super().__init__(command, runner=runner, sudo=False)

    def create_service_account(self, username: str, namespace: str) -> bool:
        """
        Register a service account; an existing one is a no-op.

        Returns:
            True if created, False if it already existed
        """
        result = self.execute("create", "--username", username, "--namespace", namespace, check=False)
        if result.ok:
            return True
        if "already exists" in (result.stderr + result.stdout).lower():
            return False
        raise ExternalCallFailure(result.command, result.returncode, result.stderr)

    def set_config(self, username: str, namespace: str, key_values: Mapping[str, str]) -> None:
        args = ["add-config", "--username", username, "--namespace", namespace]
        for key, value in key_values.items():
            args += ["--conf", f"{key}={value}"]
        secrets = [v for k, v in key_values.items() if k.endswith((".access.key", ".secret.key"))]
        self.execute(*args, redact=secrets)

    def get_config_text(self, username: str, namespace: str) -> str:
        return self.execute("get-config", "--username", username, "--namespace", namespace).stdout

    def get_config(self, username: str, namespace: str) -> Dict[str, str]:
        return parse_properties(self.get_config_text(username, namespace))
