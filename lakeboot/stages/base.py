"""
Base classes and step factories for provisioners.

Every provisioner turns its part of the configuration into Steps. The
factories here implement the shared check-then-act patterns: namespaces,
snaps and chart releases.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from lakeboot.config import BootstrapConfig
from lakeboot.context import RuntimeContext
from lakeboot.errors import ExternalCallFailure, ResourceConflict
from lakeboot.pipeline import Criticality, Step
from lakeboot.readiness import ReadinessPoller
from lakeboot.templates import ConfigDocument, ConfigTemplate
from lakeboot.tools import ChartInstaller, ClusterRuntime, Presence, SnapClient, Toolbox
from lakeboot.utils import get_logger


def confirm_presence(presence: Presence, resource: str) -> bool:
    """
    Turn a Presence into "already done?".

    Returns:
        True for EXISTS, False for ABSENT

    Raises:
        ResourceConflict: For CONFLICT
        ExternalCallFailure: For UNKNOWN, so a failed check never passes as "exists"
    """
    if presence == Presence.EXISTS:
        return True
    if presence == Presence.ABSENT:
        return False
    if presence == Presence.CONFLICT:
        raise ResourceConflict(resource, expected="owned by this bootstrap", actual="another owner")
    raise ExternalCallFailure([resource], message=f"Could not determine whether {resource} exists")


def namespace_step(
    step_id: str,
    cluster: ClusterRuntime,
    name: str,
    depends_on: Sequence[str] = (),
) -> Step:
    """Create namespace `name` unless it exists."""
    return Step(
        id=step_id,
        description=f"Namespace '{name}'",
        check=lambda ctx: confirm_presence(cluster.namespace_exists(name), f"namespace {name}"),
        action=lambda ctx: {"created": cluster.create_namespace(name)},
        depends_on=tuple(depends_on),
    )


def snap_step(
    step_id: str,
    snap: SnapClient,
    name: str,
    channel: Optional[str] = None,
    classic: bool = False,
    depends_on: Sequence[str] = (),
) -> Step:
    """Install snap `name` unless installed."""

    def install(ctx: RuntimeContext) -> Dict[str, Any]:
        snap.install(name, channel=channel, classic=classic)
        return {"snap": name, "channel": channel}

    return Step(
        id=step_id,
        description=f"Snap '{name}'" + (f" ({channel})" if channel else ""),
        check=lambda ctx: confirm_presence(snap.installed(name), f"snap {name}"),
        action=install,
        depends_on=tuple(depends_on),
    )


def release_step(
    step_id: str,
    installer: ChartInstaller,
    release: str,
    namespace: str,
    chart: str,
    template: Optional[ConfigTemplate] = None,
    settings: Optional[Mapping[str, Any]] = None,
    version: Optional[str] = None,
    depends_on: Sequence[str] = (),
    discover: Optional[Callable[[RuntimeContext], Mapping[str, Any]]] = None,
    provides: Sequence[str] = (),
    criticality: Criticality = Criticality.CRITICAL,
) -> Step:
    """
    Install or upgrade a release from a freshly rendered values document.

    Skipped only when the release is deployed in `namespace` with exactly the
    rendered values. A release of the same name in another namespace is a
    ResourceConflict.
    """

    def render(ctx: RuntimeContext) -> Optional[ConfigDocument]:
        if template is None:
            return None
        return template.render(ctx, settings, step_id=step_id)

    def is_current(ctx: RuntimeContext) -> bool:
        document = render(ctx)
        existing = installer.find_release(release, namespace)
        if existing is None:
            return False
        if existing.namespace != namespace:
            raise ResourceConflict(
                f"release {release}",
                expected=f"namespace {namespace}",
                actual=f"namespace {existing.namespace}",
            )
        if not existing.deployed:
            return False
        expected = document.as_dict() if document is not None else {}
        return installer.get_values(release, namespace) == expected

    def install(ctx: RuntimeContext) -> Dict[str, Any]:
        installer.install_or_upgrade(release, namespace, chart, values=render(ctx), version=version)
        return {"release": release, "namespace": namespace, "chart": chart}

    return Step(
        id=step_id,
        description=f"Release '{release}' ({chart}) in '{namespace}'",
        check=is_current,
        action=install,
        discover=discover,
        depends_on=tuple(depends_on),
        requires=tuple(template.required_keys) if template is not None else (),
        provides=tuple(provides),
        criticality=criticality,
    )


class Provisioner(ABC):
    """
    Abstract base class for provisioners.

    Each provisioner must implement:
    - steps(): The ordered steps for its component
    """

    name = "provisioner"

    def __init__(
        self,
        config: BootstrapConfig,
        tools: Toolbox,
        poller: ReadinessPoller,
        logger: Optional[logging.Logger] = None,
    ):
        """
        Initialize provisioner.

        Args:
            config: Bootstrap configuration
            tools: Collaborator adapters
            poller: Readiness poller with configured defaults
            logger: Logger instance
        """
        self.config = config
        self.tools = tools
        self.poller = poller
        self.logger = logger or get_logger(f"stages.{self.name}")

    @abstractmethod
    def steps(self) -> List[Step]:
        """
        Build this component's steps.

        Returns:
            Steps in execution order
        """
        pass

    def step_id(self, suffix: str) -> str:
        return f"{self.name}.{suffix}"

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self.name})"
