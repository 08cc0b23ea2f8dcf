"""Dremio catalog engine with distributed storage in the object store."""

from typing import Any, Dict, List

from lakeboot import context as keys
from lakeboot.context import RuntimeContext
from lakeboot.pipeline import Step
from lakeboot.stages.base import Provisioner, namespace_step, release_step
from lakeboot.templates import DREMIO_VALUES


class CatalogProvisioner(Provisioner):
    """Deploy Dremio and publish its UI address."""

    name = "catalog"

    def steps(self) -> List[Step]:
        cfg = self.config.catalog
        namespace = cfg["namespace"]
        namespace_id = f"namespace.{namespace}"

        settings = {
            name: cfg[name]
            for name in (
                "coordinator_cpu",
                "coordinator_memory",
                "executor_cpu",
                "executor_memory",
                "executor_count",
                "bucket",
            )
        }

        return [
            namespace_step(namespace_id, self.tools.cluster, namespace),
            release_step(
                self.step_id("deploy"),
                self.tools.installer,
                release=cfg["release"],
                namespace=namespace,
                chart=cfg["chart"],
                template=DREMIO_VALUES,
                settings=settings,
                depends_on=(namespace_id,),
                discover=self._discover_url,
                provides=(keys.CATALOG_URL,),
            ),
        ]

    def _discover_url(self, ctx: RuntimeContext) -> Dict[str, Any]:
        cfg = self.config.catalog
        cluster = self.tools.cluster
        index = int(cfg["ui_port_index"])

        def ui_address():
            service = cluster.get_service(cfg["service"], cfg["namespace"])
            if service is None:
                return None
            # LookupError until the UI port is listed; treated as not ready.
            return service.host_port(index)

        address = self.poller.require(f"service {cfg['namespace']}/{cfg['service']}", ui_address)
        return {keys.CATALOG_URL: f"http://{address}"}
