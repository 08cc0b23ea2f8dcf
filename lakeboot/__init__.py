"""
lakeboot - Single-node data lakehouse bootstrapper

Brings up MicroK8s, MinIO, a Hive metastore, Redis, Trino, Dremio and a
configured Spark client as one ordered, idempotent pipeline.
"""

__version__ = "0.1.0"
__author__ = "Local Pipeline Team"


__all__ = ["BootstrapConfig", "load_config", "get_lakeboot_home"]

from .config import BootstrapConfig, load_config, get_lakeboot_home
