"""Trino query engine with object-store catalogs."""

from typing import List, Optional

from lakeboot.pipeline import Step
from lakeboot.stages.base import Provisioner, namespace_step, release_step
from lakeboot.templates import TRINO_VALUES, TRINO_VALUES_WITH_CACHE


class QueryEngineProvisioner(Provisioner):
    """
    Deploy Trino.

    The `minio` (Hive) and `iceberg` catalogs read the metastore URI and the
    object-store credentials from the runtime context. With the cache in the
    stack the table definition secret is mounted and a `redis` catalog added.
    """

    name = "query-engine"

    def __init__(self, *args, with_cache: bool = False, **kwargs):
        super().__init__(*args, **kwargs)
        self.with_cache = with_cache

    def steps(self) -> List[Step]:
        cfg = self.config.query_engine
        namespace = cfg["namespace"]
        namespace_id = f"namespace.{namespace}"

        settings = {"image_tag": cfg["image_tag"]}
        template = TRINO_VALUES
        depends_on: List[str] = [namespace_id]
        if self.with_cache:
            cache_cfg = self.config.cache
            template = TRINO_VALUES_WITH_CACHE
            settings.update(
                redis_host=cache_cfg["host"],
                redis_tables=cache_cfg["tables"],
                table_mount_path=cfg["table_mount_path"],
                table_secret=cache_cfg["table_secret"],
            )
            depends_on += ["cache.table-secret", "cache.deploy"]

        return [
            namespace_step(namespace_id, self.tools.cluster, namespace),
            release_step(
                self.step_id("deploy"),
                self.tools.installer,
                release=cfg["release"],
                namespace=namespace,
                chart=cfg["chart"],
                template=template,
                settings=settings,
                version=self._chart_version(),
                depends_on=depends_on,
            ),
        ]

    def _chart_version(self) -> Optional[str]:
        version = self.config.query_engine.get("chart_version")
        return str(version) if version else None
