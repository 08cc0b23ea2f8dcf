"""
Configuration management for lakeboot.

Loads config.yaml from LAKEBOOT_HOME (default ~/.config/lakeboot) or an
explicit path, deep-merges it over the built-in defaults and loads an
optional .env file so secrets can stay out of the YAML.
"""

import copy
import getpass
import os
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from dotenv import load_dotenv

from lakeboot.errors import ConfigError
from lakeboot.templates import is_yaml_safe


STACK_VARIANTS = ("full", "hive-trino", "dremio", "compute-only")

DEFAULTS: Dict[str, Any] = {
    "stack": "full",
    "user": None,
    "env_file": None,
    "commands": {
        "sudo": True,
        "snap": ["snap"],
        "microk8s": ["microk8s"],
        "kubectl": ["microk8s", "kubectl"],
        "helm": ["microk8s", "helm"],
        "aws": ["aws"],
        "spark_registry": ["spark-client.service-account-registry"],
        "timeout_seconds": 600,
    },
    "cluster": {
        "channel": "1.28-strict/stable",
        "group": "snap_microk8s",
        "kube_dir": "~/.kube",
        "addons": ["rbac", "storage", "hostpath-storage"],
        "metallb": False,
    },
    "tools": {
        "snaps": [
            {"name": "aws-cli", "classic": True},
            {"name": "spark-client", "channel": "3.4/edge"},
        ],
        "helm_repos": {
            "bitnami": "https://charts.bitnami.com/bitnami",
            "trino": "https://trinodb.github.io/charts/",
        },
    },
    "object_store": {
        "addon": "minio",
        "namespace": "minio-operator",
        "service": "minio",
        "console_service": "microk8s-console",
        "secret": "microk8s-user-1",
        "access_key_field": "CONSOLE_ACCESS_KEY",
        "secret_key_field": "CONSOLE_SECRET_KEY",
        "profile": "minio-local",
        "region": "us-west-2",
        "buckets": ["raw", "curated", "analytics", "artifacts", "logs", "dremio", "warehouse"],
        "event_log_bucket": "logs",
        "event_log_prefix": "spark-events/",
    },
    "metastore": {
        "namespace": "trino",
        "database_release": "hive-metastore-postgresql",
        "database_chart": "bitnami/postgresql",
        "database_name": "metastore_db",
        "database_user": "admin",
        "database_password": "admin",
        "database_port": 5432,
        "release": "my-hive-metastore",
        "chart": "k8s/charts/hive-metastore",
        "service": "my-hive-metastore",
        "port": 9083,
        "warehouse": "s3a://warehouse",
    },
    "cache": {
        "namespace": "trino",
        "release": "my-redis",
        "chart": "bitnami/redis",
        "host": "my-redis-master",
        "table_secret": "redis-table-definition",
        "table_definition": None,
        "tables": "test",
        "persistence_size": "1Gi",
    },
    "query_engine": {
        "namespace": "trino",
        "release": "my-trino",
        "chart": "trino/trino",
        "chart_version": "0.7.0",
        "image_tag": "372",
        "table_mount_path": "/etc/redis",
    },
    "catalog": {
        "namespace": "dremio",
        "release": "my-dremio",
        "chart": "k8s/charts/dremio_v2",
        "service": "dremio-client",
        "ui_port_index": 1,
        "bucket": "dremio",
        "coordinator_cpu": 2,
        "coordinator_memory": 4096,
        "executor_cpu": 2,
        "executor_memory": 4096,
        "executor_count": 1,
    },
    "compute": {
        "username": "spark",
        "namespace": "spark",
        "snapshot_path": "properties.conf",
    },
    "readiness": {
        "poll_interval": 10,
        "max_wait": 600,
    },
    "paths": {
        "values_dir": "k8s",
    },
    "logging": {
        "output": "logs/lakeboot-{date}.log",
        "level": "INFO",
        "format": "structured",
        "console": False,
    },
}

# Environment overrides: variable -> (section, key)
ENV_OVERRIDES = {
    "LAKEBOOT_METASTORE_DB_PASSWORD": ("metastore", "database_password"),
    "LAKEBOOT_STACK": (None, "stack"),
    "LAKEBOOT_USER": (None, "user"),
}


def get_lakeboot_home() -> Path:
    """Return the lakeboot configuration directory."""
    return Path(os.environ.get("LAKEBOOT_HOME", "~/.config/lakeboot")).expanduser()


def deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """
    Recursively merge `override` into a copy of `base`.

    Nested dicts are merged; every other value (lists included) replaces
    the default.
    """
    merged = copy.deepcopy(base)
    for key, value in (override or {}).items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


class BootstrapConfig:
    """Complete bootstrap configuration."""

    def __init__(self, data: Optional[Dict[str, Any]] = None, config_path: Optional[Path] = None):
        self.config_path = config_path
        self.raw_config = deep_merge(DEFAULTS, data or {})

        self.stack: str = self.raw_config["stack"]
        self.user: str = self.raw_config.get("user") or os.environ.get("USER") or getpass.getuser()
        self.commands: Dict[str, Any] = self.raw_config["commands"]
        self.cluster: Dict[str, Any] = self.raw_config["cluster"]
        self.tools: Dict[str, Any] = self.raw_config["tools"]
        self.object_store: Dict[str, Any] = self.raw_config["object_store"]
        self.metastore: Dict[str, Any] = self.raw_config["metastore"]
        self.cache: Dict[str, Any] = self.raw_config["cache"]
        self.query_engine: Dict[str, Any] = self.raw_config["query_engine"]
        self.catalog: Dict[str, Any] = self.raw_config["catalog"]
        self.compute: Dict[str, Any] = self.raw_config["compute"]
        self.readiness: Dict[str, Any] = self.raw_config["readiness"]
        self.paths: Dict[str, Any] = self.raw_config["paths"]
        self.logging: Dict[str, Any] = self.raw_config["logging"]

    def get_poll_interval(self) -> float:
        return float(self.readiness.get("poll_interval", 10))

    def get_max_wait(self) -> float:
        return float(self.readiness.get("max_wait", 600))

    def get_buckets(self) -> List[str]:
        return list(self.object_store.get("buckets", []))

    def get_values_dir(self) -> Path:
        return Path(self.paths.get("values_dir", "k8s")).expanduser()

    def get_snapshot_path(self) -> Path:
        return Path(self.compute.get("snapshot_path", "properties.conf")).expanduser()

    def get_kube_dir(self) -> Path:
        return Path(self.cluster.get("kube_dir", "~/.kube")).expanduser()

    def get_table_definition_path(self) -> Path:
        """Redis table definition file (packaged default unless configured)."""
        configured = self.cache.get("table_definition")
        if configured:
            return Path(configured).expanduser()
        return Path(__file__).parent / "resources" / "redis" / "table_definition.json"

    def get_log_file_path(self) -> Optional[Path]:
        """Get log file path with date interpolation (None disables file logging)."""
        log_output = self.logging.get("output")
        if not log_output:
            return None
        log_output = log_output.replace("{date}", datetime.now().strftime("%Y-%m-%d"))
        return Path(log_output).expanduser()

    def get_log_level(self) -> str:
        return str(self.logging.get("level", "INFO")).upper()

    def get_log_format(self) -> str:
        """Get log format (structured or pretty)."""
        return self.logging.get("format", "structured")

    def should_log_to_console(self) -> bool:
        return bool(self.logging.get("console", False))

    def validate(self) -> None:
        """
        Validate the configuration.

        Raises:
            ConfigError: If a value is missing or out of range
        """
        if self.stack not in STACK_VARIANTS:
            raise ConfigError(
                f"Unknown stack '{self.stack}'. Choose one of: {', '.join(STACK_VARIANTS)}"
            )

        if self.get_poll_interval() <= 0:
            raise ConfigError("readiness.poll_interval must be positive")

        if self.get_max_wait() <= 0:
            raise ConfigError("readiness.max_wait must be positive")

        buckets = self.get_buckets()
        if not buckets:
            raise ConfigError("object_store.buckets must list at least one bucket")
        if len(set(buckets)) != len(buckets):
            raise ConfigError("object_store.buckets contains duplicates")

        for section, key in (
            ("object_store", "event_log_bucket"),
            ("catalog", "bucket"),
        ):
            bucket = getattr(self, section).get(key)
            if bucket not in buckets:
                raise ConfigError(f"{section}.{key} '{bucket}' is not in object_store.buckets")

        for key in ("database_name", "database_user", "database_password"):
            if not is_yaml_safe(self.metastore.get(key, "")):
                raise ConfigError(
                    f"metastore.{key} must not contain quotes, backslashes or line breaks"
                )

        if self.get_log_format() not in ("structured", "pretty"):
            raise ConfigError("logging.format must be 'structured' or 'pretty'")

        for name in ("kubectl", "helm", "microk8s", "snap", "aws", "spark_registry"):
            command = self.commands.get(name)
            if not isinstance(command, list) or not command:
                raise ConfigError(f"commands.{name} must be a non-empty list")

    def __repr__(self) -> str:
        return f"BootstrapConfig(stack={self.stack}, path={self.config_path})"


def _apply_env_overrides(data: Dict[str, Any]) -> Dict[str, Any]:
    for variable, (section, key) in ENV_OVERRIDES.items():
        value = os.environ.get(variable)
        if not value:
            continue
        if section is None:
            data[key] = value
        else:
            data.setdefault(section, {})[key] = value
    return data


def load_config(config_path: Optional[Path] = None) -> BootstrapConfig:
    """
    Load bootstrap configuration.

    Args:
        config_path: Path to config file. Defaults to $LAKEBOOT_HOME/config.yaml;
            when that file does not exist the built-in defaults are used.

    Returns:
        BootstrapConfig instance

    Raises:
        ConfigError: If an explicit file is missing or the YAML is invalid
    """
    explicit = config_path is not None
    if config_path is None:
        config_path = get_lakeboot_home() / "config.yaml"
    config_path = Path(config_path).expanduser()

    data: Dict[str, Any] = {}
    if config_path.exists():
        try:
            with open(config_path, "r") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML syntax in {config_path}: {e}")
        if not isinstance(data, dict):
            raise ConfigError(f"Configuration file {config_path} must contain a mapping")
    elif explicit:
        raise ConfigError(f"Configuration file not found: {config_path}")

    env_file = data.get("env_file")
    if env_file:
        load_dotenv(Path(env_file).expanduser(), override=False)
    else:
        default_env = get_lakeboot_home() / ".env"
        if default_env.exists():
            load_dotenv(default_env, override=False)

    data = _apply_env_overrides(data)
    return BootstrapConfig(data, config_path=config_path if config_path.exists() else None)
