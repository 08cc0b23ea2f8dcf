"""
Stack assembly.

A stack variant is an ordered list of components. Each component's
provisioner contributes its steps; namespace steps shared between
components (several components deploy into `trino`) are kept once, at their
first position.
"""

import logging
from typing import Callable, Dict, List, Optional, Sequence

from lakeboot.config import STACK_VARIANTS, BootstrapConfig
from lakeboot.errors import ConfigError
from lakeboot.pipeline import Pipeline, Step, StepResult
from lakeboot.readiness import ReadinessPoller
from lakeboot.stages import (
    CacheProvisioner,
    CatalogProvisioner,
    ClusterBootstrapper,
    ComputeClientConfigurer,
    MetastoreProvisioner,
    ObjectStoreProvisioner,
    Provisioner,
    QueryEngineProvisioner,
    ToolInstaller,
)
from lakeboot.tools import Toolbox
from lakeboot.utils import get_logger

STACK_COMPONENTS: Dict[str, Sequence[str]] = {
    "full": (
        "cluster", "tools", "object-store", "metastore",
        "cache", "query-engine", "catalog", "compute",
    ),
    "hive-trino": (
        "cluster", "tools", "object-store", "metastore",
        "cache", "query-engine", "compute",
    ),
    "dremio": ("cluster", "tools", "object-store", "catalog", "compute"),
    "compute-only": ("object-store", "compute"),
}

NAMESPACE_PREFIX = "namespace."


def build_provisioners(
    config: BootstrapConfig,
    tools: Toolbox,
    poller: ReadinessPoller,
    stack: Optional[str] = None,
) -> List[Provisioner]:
    """
    Create the provisioners of a stack variant, in execution order.

    Raises:
        ConfigError: If the stack variant is unknown
    """
    stack = stack or config.stack
    if stack not in STACK_COMPONENTS:
        raise ConfigError(f"Unknown stack '{stack}'. Choose one of: {', '.join(STACK_VARIANTS)}")

    components = STACK_COMPONENTS[stack]
    has_metastore = "metastore" in components
    compute_only = stack == "compute-only"

    factories: Dict[str, Callable[[], Provisioner]] = {
        "cluster": lambda: ClusterBootstrapper(config, tools, poller),
        "tools": lambda: ToolInstaller(config, tools, poller),
        "object-store": lambda: ObjectStoreProvisioner(
            config, tools, poller, discover_only=compute_only
        ),
        "metastore": lambda: MetastoreProvisioner(config, tools, poller),
        "cache": lambda: CacheProvisioner(config, tools, poller),
        "query-engine": lambda: QueryEngineProvisioner(
            config, tools, poller, with_cache="cache" in components
        ),
        "catalog": lambda: CatalogProvisioner(config, tools, poller),
        "compute": lambda: ComputeClientConfigurer(
            config, tools, poller, with_metastore=has_metastore, configure_only=compute_only
        ),
    }
    return [factories[component]() for component in components]


def collect_steps(provisioners: Sequence[Provisioner]) -> List[Step]:
    """Concatenate provisioner steps, keeping each namespace step once."""
    steps: List[Step] = []
    seen = set()
    for provisioner in provisioners:
        for step in provisioner.steps():
            if step.id in seen and step.id.startswith(NAMESPACE_PREFIX):
                continue
            seen.add(step.id)
            steps.append(step)
    return steps


def build_steps(
    config: BootstrapConfig,
    tools: Toolbox,
    poller: ReadinessPoller,
    stack: Optional[str] = None,
) -> List[Step]:
    """Build the ordered step list for a stack variant."""
    return collect_steps(build_provisioners(config, tools, poller, stack))


def build_pipeline(
    config: BootstrapConfig,
    tools: Toolbox,
    stack: Optional[str] = None,
    poller: Optional[ReadinessPoller] = None,
    logger: Optional[logging.Logger] = None,
    on_step: Optional[Callable[[Step, StepResult], None]] = None,
) -> Pipeline:
    """
    Build a validated pipeline for a stack variant.

    Args:
        config: Bootstrap configuration
        tools: Collaborator adapters
        stack: Stack variant (defaults to config.stack)
        poller: Readiness poller (defaults to the configured interval and budget)
        logger: Logger for the sequencer
        on_step: Callback invoked after each step

    Returns:
        Pipeline whose step order has been validated

    Raises:
        ConfigError: Unknown stack variant
        PipelineOrderError: A step depends on a later step
        DependencyMissing: A step reads a key no earlier step provides
    """
    if poller is None:
        poller = ReadinessPoller(
            poll_interval=config.get_poll_interval(),
            max_wait=config.get_max_wait(),
            logger=get_logger("readiness"),
        )
    steps = build_steps(config, tools, poller, stack)
    return Pipeline(steps, logger=logger, on_step=on_step)
