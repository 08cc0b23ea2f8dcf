"""Collaborator adapters for the external CLIs lakeboot drives."""

from dataclasses import dataclass
from typing import Optional

from lakeboot.tools.base import CommandResult, CommandRunner, Presence, ToolAdapter
from lakeboot.tools.helm import ChartInstaller, ReleaseInfo
from lakeboot.tools.host import HostSystem, Microk8sClient, SnapClient
from lakeboot.tools.kubectl import ClusterRuntime, ServiceAddress
from lakeboot.tools.s3 import ObjectStoreClient
from lakeboot.tools.spark import SparkClientRegistry


@dataclass
class Toolbox:
    """The set of collaborators a pipeline talks to."""

    cluster: ClusterRuntime
    installer: ChartInstaller
    object_store: ObjectStoreClient
    spark: SparkClientRegistry
    snap: SnapClient
    microk8s: Microk8sClient
    host: HostSystem


def build_toolbox(config, runner: Optional[CommandRunner] = None) -> Toolbox:
    """Create CLI-backed collaborators from a BootstrapConfig."""
    commands = config.commands
    runner = runner or CommandRunner(timeout=commands.get("timeout_seconds", 600))
    sudo = bool(commands.get("sudo", True))

    return Toolbox(
        cluster=ClusterRuntime(commands["kubectl"], runner=runner),
        installer=ChartInstaller(
            commands["helm"], runner=runner, sudo=sudo, values_dir=config.get_values_dir()
        ),
        object_store=ObjectStoreClient(
            config.object_store["profile"], command=commands["aws"], runner=runner
        ),
        spark=SparkClientRegistry(commands["spark_registry"], runner=runner),
        snap=SnapClient(commands["snap"], runner=runner, sudo=sudo),
        microk8s=Microk8sClient(commands["microk8s"], runner=runner, sudo=sudo),
        host=HostSystem(runner=runner, sudo=sudo),
    )


__all__ = [
    "ChartInstaller",
    "ClusterRuntime",
    "CommandResult",
    "CommandRunner",
    "HostSystem",
    "Microk8sClient",
    "ObjectStoreClient",
    "Presence",
    "ReleaseInfo",
    "ServiceAddress",
    "SnapClient",
    "SparkClientRegistry",
    "ToolAdapter",
    "Toolbox",
    "build_toolbox",
]
