"""
Object store provisioning (MinIO addon).

Deploys the object store, discovers the generated console credentials and
the cluster-internal address, and publishes them for every downstream step.
Buckets and the Spark event-log marker are created check-then-act; a bucket
whose existence cannot be determined fails the step instead of being
treated as present.
"""

from typing import Any, Dict, List

from lakeboot import context as keys
from lakeboot.context import RuntimeContext
from lakeboot.errors import ExternalCallFailure
from lakeboot.pipeline import Criticality, Step
from lakeboot.stages.base import Provisioner, confirm_presence
from lakeboot.tools import ObjectStoreClient


def provision_buckets(client: ObjectStoreClient, buckets: List[str]) -> Dict[str, str]:
    """
    Create the buckets that do not exist yet.

    Every bucket is probed before anything is created, so an unreachable
    store or a foreign bucket fails the step without partial work.

    Returns:
        Mapping of bucket name to "created" or "exists"
    """
    existing = {name: confirm_presence(client.bucket_exists(name), f"bucket {name}") for name in buckets}

    report = {}
    for name in buckets:
        if existing[name]:
            report[name] = "exists"
        else:
            client.create_bucket(name)
            report[name] = "created"
    return report


class ObjectStoreProvisioner(Provisioner):
    """Deploy MinIO, publish its credentials and provision buckets."""

    name = "object-store"

    def __init__(self, *args, discover_only: bool = False, **kwargs):
        super().__init__(*args, **kwargs)
        self.discover_only = discover_only

    def steps(self) -> List[Step]:
        if self.discover_only:
            # Deployed by an earlier full run; only read its credentials.
            return [
                Step(
                    id=self.step_id("credentials"),
                    description="Discover object store credentials and endpoint",
                    check=lambda ctx: True,
                    action=lambda ctx: None,
                    discover=self._discover_credentials,
                    provides=keys.OBJECT_STORE_CREDENTIALS,
                )
            ]

        store_cfg = self.config.object_store
        buckets = self.config.get_buckets()
        marker_bucket = store_cfg["event_log_bucket"]
        marker_key = store_cfg["event_log_prefix"]
        client = self.tools.object_store

        return [
            self._deploy_step(),
            Step(
                id=self.step_id("profile"),
                description=f"AWS CLI profile '{store_cfg['profile']}'",
                check=self._profile_current,
                action=self._configure_profile,
                depends_on=(self.step_id("deploy"),),
                requires=keys.OBJECT_STORE_CREDENTIALS,
            ),
            Step(
                id=self.step_id("buckets"),
                description=f"Buckets: {', '.join(buckets)}",
                check=lambda ctx: all(
                    confirm_presence(client.bucket_exists(name), f"bucket {name}") for name in buckets
                ),
                action=lambda ctx: {"buckets": provision_buckets(client, buckets)},
                depends_on=(self.step_id("profile"),),
            ),
            Step(
                id=self.step_id("event-log-marker"),
                description=f"Marker object s3://{marker_bucket}/{marker_key}",
                check=lambda ctx: confirm_presence(
                    client.object_exists(marker_bucket, marker_key),
                    f"object s3://{marker_bucket}/{marker_key}",
                ),
                action=lambda ctx: client.put_object(marker_bucket, marker_key),
                depends_on=(self.step_id("buckets"),),
            ),
            # Nothing to provision; the step only publishes the console address.
            Step(
                id=self.step_id("console"),
                description="Report the object store console URL",
                check=lambda ctx: True,
                action=lambda ctx: None,
                discover=self._discover_console,
                provides=(keys.OBJECT_STORE_CONSOLE_URL,),
                depends_on=(self.step_id("deploy"),),
                criticality=Criticality.ADVISORY,
            ),
        ]

    def _deploy_step(self) -> Step:
        addon = self.config.object_store["addon"]
        microk8s = self.tools.microk8s

        return Step(
            id=self.step_id("deploy"),
            description=f"Enable the {addon} addon and discover credentials",
            check=lambda ctx: addon in microk8s.enabled_addons(),
            action=lambda ctx: microk8s.enable(addon),
            discover=self._discover_credentials,
            provides=keys.OBJECT_STORE_CREDENTIALS,
        )

    def _discover_credentials(self, ctx: RuntimeContext) -> Dict[str, Any]:
        store_cfg = self.config.object_store
        cluster = self.tools.cluster
        namespace = store_cfg["namespace"]

        service = self.poller.require(
            f"service {namespace}/{store_cfg['service']}",
            lambda: cluster.get_service(store_cfg["service"], namespace),
        )

        def read(field: str) -> str:
            value = self.poller.require(
                f"secret {namespace}/{store_cfg['secret']} ({field})",
                lambda: cluster.get_secret(store_cfg["secret"], namespace, field),
            )
            return value.decode("utf-8").strip()

        return {
            keys.OBJECT_STORE_ACCESS_KEY: read(store_cfg["access_key_field"]),
            keys.OBJECT_STORE_SECRET_KEY: read(store_cfg["secret_key_field"]),
            keys.OBJECT_STORE_ENDPOINT: service.cluster_ip,
        }

    def _discover_console(self, ctx: RuntimeContext) -> Dict[str, Any]:
        store_cfg = self.config.object_store
        service = self.tools.cluster.get_service(store_cfg["console_service"], store_cfg["namespace"])
        if service is None:
            raise ExternalCallFailure(
                ["kubectl", "get", "service", store_cfg["console_service"]],
                message=f"Console service {store_cfg['console_service']} not found",
            )
        return {keys.OBJECT_STORE_CONSOLE_URL: service.host_port(0)}

    def _desired_profile(self, ctx: RuntimeContext) -> Dict[str, str]:
        return {
            "aws_access_key_id": ctx.require(keys.OBJECT_STORE_ACCESS_KEY),
            "aws_secret_access_key": ctx.require(keys.OBJECT_STORE_SECRET_KEY),
            "region": self.config.object_store["region"],
            "endpoint_url": f"http://{ctx.require(keys.OBJECT_STORE_ENDPOINT)}",
        }

    def _profile_current(self, ctx: RuntimeContext) -> bool:
        client = self.tools.object_store
        return all(
            client.profile_value(key) == value
            for key, value in self._desired_profile(ctx).items()
        )

    def _configure_profile(self, ctx: RuntimeContext) -> Dict[str, Any]:
        desired = self._desired_profile(ctx)
        self.tools.object_store.configure_profile(
            access_key=desired["aws_access_key_id"],
            secret_key=desired["aws_secret_access_key"],
            region=desired["region"],
            endpoint_url=desired["endpoint_url"],
        )
        return {"profile": self.config.object_store["profile"]}
