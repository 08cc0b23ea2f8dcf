"""Hive metastore backed by PostgreSQL, configured against the object store."""

from typing import Any, Dict, List

from lakeboot import context as keys
from lakeboot.context import RuntimeContext
from lakeboot.pipeline import Step
from lakeboot.stages.base import Provisioner, namespace_step, release_step
from lakeboot.templates import HIVE_METASTORE_VALUES, POSTGRESQL_VALUES


class MetastoreProvisioner(Provisioner):
    """Deploy the metastore database and the metastore service."""

    name = "metastore"

    def steps(self) -> List[Step]:
        cfg = self.config.metastore
        installer = self.tools.installer
        namespace = cfg["namespace"]
        db_host = f"{cfg['database_release']}.{namespace}.svc.cluster.local"

        database_settings = {
            "db_password": cfg["database_password"],
            "db_name": cfg["database_name"],
            "db_user": cfg["database_user"],
        }
        metastore_settings = {
            **database_settings,
            "metastore_host": f"{cfg['service']}.{namespace}.svc.cluster.local",
            "metastore_port": cfg["port"],
            "db_host": db_host,
            "db_port": cfg["database_port"],
            "warehouse": cfg["warehouse"],
        }

        return [
            namespace_step(f"namespace.{namespace}", self.tools.cluster, namespace),
            release_step(
                self.step_id("database"),
                installer,
                release=cfg["database_release"],
                namespace=namespace,
                chart=cfg["database_chart"],
                template=POSTGRESQL_VALUES,
                settings=database_settings,
                depends_on=(f"namespace.{namespace}",),
            ),
            release_step(
                self.step_id("deploy"),
                installer,
                release=cfg["release"],
                namespace=namespace,
                chart=cfg["chart"],
                template=HIVE_METASTORE_VALUES,
                settings=metastore_settings,
                depends_on=(self.step_id("database"),),
                discover=self._discover_address,
                provides=(keys.METASTORE_ADDRESS, keys.METASTORE_URI),
            ),
        ]

    def _discover_address(self, ctx: RuntimeContext) -> Dict[str, Any]:
        cfg = self.config.metastore
        cluster = self.tools.cluster
        service = self.poller.require(
            f"service {cfg['namespace']}/{cfg['service']}",
            lambda: cluster.get_service(cfg["service"], cfg["namespace"]),
        )
        address = service.host_port(0)
        return {
            keys.METASTORE_ADDRESS: address,
            keys.METASTORE_URI: f"thrift://{address}",
        }
