"""
Cluster bootstrap: bring the MicroK8s control plane online.

Installs the snap, aliases kubectl, grants the operator access, writes the
kubeconfig and enables the baseline addons. MetalLB is optional and
advisory: without a host address load balancing is simply unavailable.
"""

from typing import Any, Dict, List

from lakeboot import context as keys
from lakeboot.context import RuntimeContext
from lakeboot.errors import ExternalCallFailure
from lakeboot.pipeline import Criticality, Step
from lakeboot.stages.base import Provisioner, snap_step


class ClusterBootstrapper(Provisioner):
    """Steps that make the single-node cluster usable."""

    name = "cluster"

    def steps(self) -> List[Step]:
        cluster_cfg = self.config.cluster
        snap = self.tools.snap
        microk8s = self.tools.microk8s
        host = self.tools.host
        user = self.config.user
        group = cluster_cfg["group"]
        kube_dir = self.config.get_kube_dir()
        kubeconfig = kube_dir / "config"
        addons = list(cluster_cfg.get("addons", []))

        def wait_for_control_plane(ctx: RuntimeContext) -> None:
            self.poller.require(
                "microk8s control plane",
                lambda: microk8s.wait_ready(timeout=self.poller.poll_interval),
            )

        def kubeconfig_current(ctx: RuntimeContext) -> bool:
            if not kubeconfig.exists():
                return False
            return kubeconfig.read_text() == microk8s.kubeconfig()

        def write_kubeconfig(ctx: RuntimeContext) -> Dict[str, Any]:
            kubeconfig.parent.mkdir(parents=True, exist_ok=True)
            kubeconfig.write_text(microk8s.kubeconfig())
            return {"path": str(kubeconfig)}

        def enable_addons(ctx: RuntimeContext) -> Dict[str, Any]:
            enabled = microk8s.enabled_addons()
            missing = [addon for addon in addons if addon not in enabled]
            for addon in missing:
                self.logger.info(f"Enabling addon {addon}")
                microk8s.enable(addon)
            return {"enabled": missing}

        def grant_access(ctx: RuntimeContext) -> Dict[str, Any]:
            host.add_user_to_group(user, group)
            return {"user": user, "group": group}

        steps = [
            snap_step(
                self.step_id("install"),
                snap,
                "microk8s",
                channel=cluster_cfg["channel"],
                classic="strict" not in cluster_cfg["channel"],
            ),
            Step(
                id=self.step_id("alias-kubectl"),
                description="Alias 'kubectl' to microk8s.kubectl",
                check=lambda ctx: snap.aliases().get("kubectl") == "microk8s.kubectl",
                action=lambda ctx: snap.alias("microk8s.kubectl", "kubectl"),
                depends_on=(self.step_id("install"),),
            ),
            Step(
                id=self.step_id("user-group"),
                description=f"Add {user} to group {group}",
                check=lambda ctx: group in host.user_groups(user),
                action=grant_access,
                depends_on=(self.step_id("install"),),
            ),
            Step(
                id=self.step_id("kube-dir"),
                description=f"Own {kube_dir}",
                check=lambda ctx: host.owner(kube_dir) == user,
                action=lambda ctx: host.take_ownership(kube_dir, user),
            ),
            Step(
                id=self.step_id("ready"),
                description="Wait for the control plane",
                check=lambda ctx: microk8s.is_running(),
                action=wait_for_control_plane,
                depends_on=(self.step_id("install"),),
            ),
            Step(
                id=self.step_id("kubeconfig"),
                description=f"Write {kubeconfig}",
                check=kubeconfig_current,
                action=write_kubeconfig,
                depends_on=(self.step_id("ready"), self.step_id("kube-dir")),
            ),
            Step(
                id=self.step_id("addons"),
                description=f"Enable addons: {', '.join(addons)}",
                check=lambda ctx: set(addons) <= microk8s.enabled_addons(),
                action=enable_addons,
                depends_on=(self.step_id("ready"),),
            ),
        ]

        if cluster_cfg.get("metallb"):
            steps.append(self._metallb_step())

        return steps

    def _metallb_step(self) -> Step:
        microk8s = self.tools.microk8s
        host = self.tools.host

        def host_ip(ctx: RuntimeContext) -> Dict[str, Any]:
            ip = host.host_ipv4()
            if not ip:
                raise ExternalCallFailure(
                    ["ip", "route"], message="Failed to retrieve host IP address; load balancing will not work"
                )
            return {keys.CLUSTER_HOST_IP: ip}

        def enable(ctx: RuntimeContext) -> Dict[str, Any]:
            ip = host_ip(ctx)[keys.CLUSTER_HOST_IP]
            microk8s.enable("metallb", f"{ip}-{ip}")
            return {"range": f"{ip}-{ip}"}

        return Step(
            id=self.step_id("metallb"),
            description="Enable MetalLB on the host address",
            check=lambda ctx: "metallb" in microk8s.enabled_addons(),
            action=enable,
            discover=host_ip,
            provides=(keys.CLUSTER_HOST_IP,),
            depends_on=(self.step_id("addons"),),
            criticality=Criticality.ADVISORY,
        )
