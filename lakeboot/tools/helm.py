"""Chart installer adapter (helm)."""

import json
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from lakeboot.errors import ExternalCallFailure
from lakeboot.templates import ConfigDocument
from lakeboot.tools.base import ToolAdapter


@dataclass(frozen=True)
class ReleaseInfo:
    """An installed release."""

    name: str
    namespace: str
    status: str
    chart: str = ""

    @property
    def deployed(self) -> bool:
        return self.status == "deployed"


class ChartInstaller(ToolAdapter):
    """
    Install releases and manage chart repositories through helm.

    install_or_upgrade always uses `helm upgrade --install`, so repeating it
    never fails on "already installed".
    """

    def __init__(self, command=("microk8s", "helm"), runner=None, sudo: bool = True, values_dir: Optional[Path] = None):
        super().__init__(command, runner=runner, sudo=sudo)
        self.values_dir = Path(values_dir) if values_dir else None

    def _json(self, *args: str) -> Any:
        result = self.execute(*args)
        try:
            return json.loads(result.stdout or "null")
        except json.JSONDecodeError as e:
            raise ExternalCallFailure(result.command, message=f"Invalid JSON from helm: {e}")

    # Repositories

    def repositories(self) -> Dict[str, str]:
        """Return registered repositories as name -> URL."""
        result = self.execute("repo", "list", "-o", "json", check=False)
        if not result.ok:
            if "no repositories" in result.stderr.lower():
                return {}
            raise ExternalCallFailure(result.command, result.returncode, result.stderr)
        entries = json.loads(result.stdout or "[]") or []
        return {entry["name"]: entry["url"] for entry in entries}

    def add_repository(self, name: str, url: str) -> None:
        self.execute("repo", "add", name, url)

    def update_repositories(self) -> None:
        self.execute("repo", "update")

    # Releases

    def find_release(self, name: str, namespace: Optional[str] = None) -> Optional[ReleaseInfo]:
        """
        Find a release by name in any namespace.

        When `namespace` is given, an entry in that namespace wins over
        same-named releases elsewhere; another namespace is returned only
        when none matches.
        """
        entries = self._json("list", "--all-namespaces", "--all", "-o", "json", "--filter", f"^{name}$") or []
        matches = [
            ReleaseInfo(
                name=name,
                namespace=entry.get("namespace", ""),
                status=entry.get("status", ""),
                chart=entry.get("chart", ""),
            )
            for entry in entries
            if entry.get("name") == name
        ]
        for release in matches:
            if release.namespace == namespace:
                return release
        return matches[0] if matches else None

    def get_values(self, name: str, namespace: str) -> Dict[str, Any]:
        """Return the user-supplied values of a release."""
        return self._json("get", "values", name, "-n", namespace, "-o", "json") or {}

    def install_or_upgrade(
        self,
        release: str,
        namespace: str,
        chart: str,
        values: Optional[ConfigDocument] = None,
        version: Optional[str] = None,
    ) -> None:
        """
        Install or upgrade a release.

        Args:
            release: Release name
            namespace: Target namespace
            chart: Chart reference (repo/chart or local path)
            values: Values document; written to values_dir/<release>/values.yaml
                (or a temporary file) and passed with -f
            version: Optional chart version
        """
        args = ["upgrade", "--install", release, chart, "--namespace", namespace]
        if version:
            args += ["--version", str(version)]

        if values is None:
            self.execute(*args)
            return

        if self.values_dir is not None:
            values_file = values.write(self.values_dir / release / "values.yaml")
            self.execute(*args, "-f", str(values_file))
            return

        with tempfile.TemporaryDirectory(prefix="lakeboot-") as tmp:
            values_file = values.write(Path(tmp) / "values.yaml")
            self.execute(*args, "-f", str(values_file))
