"""Redis cache and the table definition the query engine mounts."""

from pathlib import Path
from typing import Any, Dict, List

from lakeboot.context import RuntimeContext
from lakeboot.errors import ConfigError, ResourceConflict
from lakeboot.pipeline import Step
from lakeboot.stages.base import Provisioner, confirm_presence, namespace_step, release_step
from lakeboot.templates import REDIS_VALUES


class CacheProvisioner(Provisioner):
    """Create the table definition secret and deploy Redis."""

    name = "cache"

    def steps(self) -> List[Step]:
        cfg = self.config.cache
        namespace = cfg["namespace"]
        namespace_id = f"namespace.{namespace}"

        return [
            namespace_step(namespace_id, self.tools.cluster, namespace),
            self._table_secret_step(depends_on=(namespace_id,)),
            release_step(
                self.step_id("deploy"),
                self.tools.installer,
                release=cfg["release"],
                namespace=namespace,
                chart=cfg["chart"],
                template=REDIS_VALUES,
                settings={"persistence_size": cfg["persistence_size"]},
                depends_on=(namespace_id,),
            ),
        ]

    def _table_secret_step(self, depends_on) -> Step:
        cfg = self.config.cache
        cluster = self.tools.cluster
        name = cfg["table_secret"]
        namespace = cfg["namespace"]
        path = self.config.get_table_definition_path()

        def definition() -> Path:
            if not path.is_file():
                raise ConfigError(f"Redis table definition not found: {path}")
            return path

        def current(ctx: RuntimeContext) -> bool:
            if not confirm_presence(cluster.secret_exists(name, namespace), f"secret {namespace}/{name}"):
                return False
            if not cluster.secret_matches_file(name, namespace, definition()):
                raise ResourceConflict(
                    f"secret {namespace}/{name}",
                    expected=f"content of {path.name}",
                    actual="different content",
                )
            return True

        def create(ctx: RuntimeContext) -> Dict[str, Any]:
            cluster.create_secret_from_file(name, namespace, definition())
            return {"secret": name, "source": str(path)}

        return Step(
            id=self.step_id("table-secret"),
            description=f"Secret '{name}' from {path.name}",
            check=current,
            action=create,
            depends_on=tuple(depends_on),
        )
