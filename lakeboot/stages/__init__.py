"""Provisioners: each turns one component of the stack into pipeline steps."""

from lakeboot.stages.base import Provisioner, confirm_presence, namespace_step, release_step, snap_step
from lakeboot.stages.cache import CacheProvisioner
from lakeboot.stages.catalog import CatalogProvisioner
from lakeboot.stages.cluster import ClusterBootstrapper
from lakeboot.stages.compute import ComputeClientConfigurer
from lakeboot.stages.metastore import MetastoreProvisioner
from lakeboot.stages.object_store import ObjectStoreProvisioner, provision_buckets
from lakeboot.stages.query_engine import QueryEngineProvisioner
from lakeboot.stages.tooling import ToolInstaller

__all__ = [
    "CacheProvisioner",
    "CatalogProvisioner",
    "ClusterBootstrapper",
    "ComputeClientConfigurer",
    "MetastoreProvisioner",
    "ObjectStoreProvisioner",
    "Provisioner",
    "QueryEngineProvisioner",
    "ToolInstaller",
    "confirm_presence",
    "namespace_step",
    "provision_buckets",
    "release_step",
    "snap_step",
]
