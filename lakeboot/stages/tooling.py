"""Tool installation: CLIs and chart repositories used by later steps."""

from typing import Any, Dict, List

from lakeboot.context import RuntimeContext
from lakeboot.errors import ResourceConflict
from lakeboot.pipeline import Step
from lakeboot.stages.base import Provisioner, snap_step


class ToolInstaller(Provisioner):
    """Install the object-store CLI, the Spark client and helm repositories."""

    name = "tools"

    def steps(self) -> List[Step]:
        steps = [
            snap_step(
                self.step_id(snap_cfg["name"]),
                self.tools.snap,
                snap_cfg["name"],
                channel=snap_cfg.get("channel"),
                classic=bool(snap_cfg.get("classic", False)),
            )
            for snap_cfg in self.config.tools.get("snaps", [])
        ]

        repos = dict(self.config.tools.get("helm_repos", {}))
        if repos:
            steps.append(self._helm_repos_step(repos))
        return steps

    def _helm_repos_step(self, repos: Dict[str, str]) -> Step:
        installer = self.tools.installer

        def pending() -> Dict[str, str]:
            registered = installer.repositories()
            missing = {}
            for name, url in repos.items():
                if name not in registered:
                    missing[name] = url
                elif registered[name].rstrip("/") != url.rstrip("/"):
                    raise ResourceConflict(
                        f"helm repository {name}", expected=url, actual=registered[name]
                    )
            return missing

        def add(ctx: RuntimeContext) -> Dict[str, Any]:
            missing = pending()
            for name, url in missing.items():
                self.logger.info(f"Adding helm repository {name} ({url})")
                installer.add_repository(name, url)
            if missing:
                installer.update_repositories()
            return {"added": sorted(missing)}

        return Step(
            id=self.step_id("helm-repos"),
            description=f"Helm repositories: {', '.join(sorted(repos))}",
            check=lambda ctx: not pending(),
            action=add,
        )
