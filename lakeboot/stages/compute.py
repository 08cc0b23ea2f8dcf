"""
Spark client configuration.

Registers the Spark service account and writes its configuration profile:
event logging into the object store, S3A driver settings with the
discovered credentials, and Hive metastore settings when a metastore is part
of the stack. The resulting profile is snapshotted to a local file.
"""

from typing import Any, Dict, List

from lakeboot.context import RuntimeContext
from lakeboot.pipeline import Step
from lakeboot.stages.base import Provisioner, confirm_presence, namespace_step
from lakeboot.templates import SPARK_PROFILE, SPARK_PROFILE_WITH_METASTORE, ConfigDocument


class ComputeClientConfigurer(Provisioner):
    """Service account, configuration profile and profile snapshot."""

    name = "compute"

    def __init__(self, *args, with_metastore: bool = False, configure_only: bool = False, **kwargs):
        """
        Initialize configurer.

        Args:
            with_metastore: Add the Hive metastore settings to the profile
            configure_only: Only write the profile and snapshot; the namespace
                and service account are assumed to exist
        """
        super().__init__(*args, **kwargs)
        self.with_metastore = with_metastore
        self.configure_only = configure_only

    @property
    def template(self):
        return SPARK_PROFILE_WITH_METASTORE if self.with_metastore else SPARK_PROFILE

    def steps(self) -> List[Step]:
        cfg = self.config.compute
        username = cfg["username"]
        namespace = cfg["namespace"]
        namespace_id = f"namespace.{namespace}"

        if self.configure_only:
            return self._profile_steps(depends_on=())

        account = Step(
            id=self.step_id("service-account"),
            description=f"Spark service account {namespace}/{username}",
            check=lambda ctx: confirm_presence(
                self.tools.cluster.service_account_exists(username, namespace),
                f"service account {namespace}/{username}",
            ),
            action=lambda ctx: {"created": self.tools.spark.create_service_account(username, namespace)},
            depends_on=(namespace_id,),
        )
        return [
            namespace_step(namespace_id, self.tools.cluster, namespace),
            account,
            *self._profile_steps(depends_on=(account.id,)),
        ]

    def render_profile(self, ctx: RuntimeContext) -> ConfigDocument:
        """Render the profile from the runtime context and configuration."""
        store_cfg = self.config.object_store
        settings = {
            "event_log_bucket": store_cfg["event_log_bucket"],
            "event_log_prefix": store_cfg["event_log_prefix"],
            "namespace": self.config.compute["namespace"],
            "warehouse": self.config.metastore["warehouse"],
        }
        return self.template.render(ctx, settings, step_id=self.step_id("profile"))

    def _profile_steps(self, depends_on) -> List[Step]:
        cfg = self.config.compute
        spark = self.tools.spark
        username = cfg["username"]
        namespace = cfg["namespace"]
        snapshot_path = self.config.get_snapshot_path()

        def profile_current(ctx: RuntimeContext) -> bool:
            current = spark.get_config(username, namespace)
            desired = self.render_profile(ctx).as_dict()
            return all(current.get(key) == value for key, value in desired.items())

        def write_profile(ctx: RuntimeContext) -> Dict[str, Any]:
            desired = self.render_profile(ctx).as_dict()
            spark.set_config(username, namespace, desired)
            return {"settings": len(desired)}

        def snapshot_current(ctx: RuntimeContext) -> bool:
            if not snapshot_path.is_file():
                return False
            return snapshot_path.read_text() == spark.get_config_text(username, namespace)

        def write_snapshot(ctx: RuntimeContext) -> Dict[str, Any]:
            text = spark.get_config_text(username, namespace)
            snapshot_path.parent.mkdir(parents=True, exist_ok=True)
            snapshot_path.write_text(text)
            self.logger.info(f"Spark profile snapshot written to {snapshot_path}")
            return {"path": str(snapshot_path)}

        profile = Step(
            id=self.step_id("profile"),
            description=f"Spark profile for {namespace}/{username}",
            check=profile_current,
            action=write_profile,
            depends_on=tuple(depends_on),
            requires=tuple(self.template.required_keys),
        )
        return [
            profile,
            Step(
                id=self.step_id("snapshot"),
                description=f"Snapshot profile to {snapshot_path}",
                check=snapshot_current,
                action=write_snapshot,
                depends_on=(profile.id,),
            ),
        ]
