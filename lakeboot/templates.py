"""
Configuration documents for deployed releases.

Each release has a fixed schema: a block of text with `${name}` placeholders.
Placeholders are bound either to runtime context keys (credentials,
endpoints, metastore URI) or to plain settings from the configuration.
Substitution is literal; any placeholder without a value is an error,
never a blank.
"""

import string
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import yaml

from lakeboot import context as keys
from lakeboot.context import RuntimeContext
from lakeboot.errors import ConfigError, DependencyMissing


def _placeholders(text: str) -> List[str]:
    """Return placeholder names in order of first appearance."""
    names: List[str] = []
    for match in string.Template.pattern.finditer(text):
        name = match.group("named") or match.group("braced")
        if name and name not in names:
            names.append(name)
    return names


def parse_properties(text: str) -> Dict[str, str]:
    """Parse `key=value` lines, ignoring blanks and comments."""
    result: Dict[str, str] = {}
    for line in text.splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        result[key.strip()] = value.strip()
    return result


@dataclass(frozen=True)
class ConfigDocument:
    """A rendered configuration artifact."""

    name: str
    text: str
    format: str = "yaml"
    values: Mapping[str, Any] = field(default_factory=dict, repr=False)

    def as_dict(self) -> Dict[str, Any]:
        """Parsed view of the document."""
        if self.format == "properties":
            return parse_properties(self.text)
        return yaml.safe_load(self.text) or {}

    def write(self, path: Path) -> Path:
        """Write the document to `path`, creating parent directories."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(self.text)
        return path


@dataclass(frozen=True)
class ConfigTemplate:
    """Fixed schema for one release's configuration."""

    name: str
    text: str
    format: str = "yaml"
    bindings: Mapping[str, str] = field(default_factory=dict)

    @property
    def placeholders(self) -> List[str]:
        return _placeholders(self.text)

    @property
    def required_keys(self) -> List[str]:
        """Context keys this template reads."""
        return [self.bindings[name] for name in self.placeholders if name in self.bindings]

    def render(
        self,
        ctx: Optional[RuntimeContext] = None,
        settings: Optional[Mapping[str, Any]] = None,
        step_id: Optional[str] = None,
    ) -> ConfigDocument:
        """
        Substitute context values and settings into the schema.

        Args:
            ctx: Runtime context for bound placeholders
            settings: Values for the remaining placeholders
            step_id: Rendering step, used in error messages

        Returns:
            ConfigDocument

        Raises:
            DependencyMissing: If a placeholder has no value
            ConfigError: If a value cannot be placed literally in the document
        """
        settings = settings or {}
        values: Dict[str, Any] = {}
        for name in self.placeholders:
            if name in self.bindings:
                if ctx is None:
                    raise DependencyMissing(self.bindings[name], step_id)
                values[name] = ctx.require(self.bindings[name], step_id)
            elif name in settings and settings[name] is not None:
                values[name] = settings[name]
            else:
                raise DependencyMissing(f"{self.name}.{name}", step_id)

            if self.format == "yaml" and not is_yaml_safe(values[name]):
                raise ConfigError(
                    f"Value for '{name}' in {self.name} contains a quote, backslash "
                    f"or line break and cannot be substituted literally"
                )

        text = string.Template(self.text).substitute(
            {name: _literal(value) for name, value in values.items()}
        )
        return ConfigDocument(name=self.name, text=text, format=self.format, values=values)


# Characters that change the meaning of a double-quoted YAML scalar
YAML_UNSAFE_CHARACTERS = ('"', "\\", "\n", "\r")


def is_yaml_safe(value: Any) -> bool:
    """True if `value` can be substituted into a quoted YAML scalar as is."""
    text = _literal(value)
    return not any(char in text for char in YAML_UNSAFE_CHARACTERS)


def _literal(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


OBJECT_STORE_BINDINGS = {
    "access_key": keys.OBJECT_STORE_ACCESS_KEY,
    "secret_key": keys.OBJECT_STORE_SECRET_KEY,
    "endpoint": keys.OBJECT_STORE_ENDPOINT,
}


POSTGRESQL_VALUES = ConfigTemplate(
    name="hive-metastore-postgresql",
    text="""\
global:
  postgresql:
    auth:
      postgresPassword: "${db_password}"
      database: "${db_name}"
      username: "${db_user}"
      password: "${db_password}"
""",
)


HIVE_METASTORE_VALUES = ConfigTemplate(
    name="hive-metastore",
    text="""\
conf:
  hiveSite:
    hive.metastore.uris: "thrift://${metastore_host}:${metastore_port}"
    javax.jdo.option.ConnectionDriverName: org.postgresql.Driver
    javax.jdo.option.ConnectionURL: "jdbc:postgresql://${db_host}:${db_port}/${db_name}"
    javax.jdo.option.ConnectionUserName: "${db_user}"
    javax.jdo.option.ConnectionPassword: "${db_password}"
    fs.defaultFS: "${warehouse}"
    hive.metastore.warehouse.dir: "${warehouse}"
    fs.s3a.connection.ssl.enabled: false
    fs.s3a.impl: org.apache.hadoop.fs.s3a.S3AFileSystem
    fs.s3a.endpoint: "http://${endpoint}"
    fs.s3a.access.key: "${access_key}"
    fs.s3a.secret.key: "${secret_key}"
    fs.s3a.path.style.access: true

hiveMetastoreDb:
  host: ${db_host}
  port: ${db_port}
""",
    bindings=OBJECT_STORE_BINDINGS,
)


REDIS_VALUES = ConfigTemplate(
    name="redis",
    text="""\
architecture: standalone
auth:
  enabled: false
master:
  persistence:
    size: ${persistence_size}
""",
)


_TRINO_CATALOGS = """\
image:
  tag: ${image_tag}

catalogs:
  minio: |
    connector.name=hive-hadoop2
    hive.metastore.uri=${metastore_uri}
    hive.s3.path-style-access=true
    hive.s3.endpoint=http://${endpoint}
    hive.s3.aws-access-key=${access_key}
    hive.s3.aws-secret-key=${secret_key}
    hive.non-managed-table-writes-enabled=true
    hive.s3select-pushdown.enabled=true
    hive.storage-format=ORC
    hive.allow-drop-table=true
    hive.s3.ssl.enabled=false

  iceberg: |
    connector.name=iceberg
    hive.metastore.uri=${metastore_uri}
    s3.endpoint=http://${endpoint}
    s3.path-style-access=true
    s3.aws-access-key=${access_key}
    s3.aws-secret-key=${secret_key}
    fs.native-s3.enabled=true
"""

TRINO_VALUES = ConfigTemplate(
    name="trino",
    text=_TRINO_CATALOGS,
    bindings={**OBJECT_STORE_BINDINGS, "metastore_uri": keys.METASTORE_URI},
)

TRINO_VALUES_WITH_CACHE = ConfigTemplate(
    name="trino",
    text=_TRINO_CATALOGS + """\

  redis: |
    connector.name=redis
    redis.nodes=${redis_host}:6379
    redis.table-names=${redis_tables}
    redis.table-description-dir=${table_mount_path}
    redis.hide-internal-columns=false

secretMounts:
  - name: redis-table-schema-volume
    path: ${table_mount_path}
    secretName: ${table_secret}
""",
    bindings={**OBJECT_STORE_BINDINGS, "metastore_uri": keys.METASTORE_URI},
)


def _dremio_property(name: str, description: str, value: str) -> str:
    return (
        "      <property>\n"
        f"          <name>{name}</name>\n"
        f"          <description>{description}</description>\n"
        f"          <value>{value}</value>\n"
        "      </property>\n"
    )


DREMIO_VALUES = ConfigTemplate(
    name="dremio",
    text="""\
coordinator:
  cpu: ${coordinator_cpu}
  memory: ${coordinator_memory}

executor:
  cpu: ${executor_cpu}
  memory: ${executor_memory}
  count: ${executor_count}

zookeeper:
  image: zookeeper
  imageTag: 3.8.4-jre-17
  cpu: 0.5
  memory: 1024
  count: 1

distStorage:
  type: "aws"

  aws:
    bucketName: "${bucket}"
    path: "/"
    authentication: "accessKeySecret"
    credentials:
      accessKey: "${access_key}"
      secret: "${secret_key}"

    extraProperties: |
"""
    + _dremio_property(
        "fs.dremioS3.impl",
        "The FileSystem implementation.",
        "com.dremio.plugins.s3.store.S3FileSystem",
    )
    + _dremio_property("fs.s3a.access.key", "Object store access key ID.", "${access_key}")
    + _dremio_property("fs.s3a.secret.key", "Object store secret key.", "${secret_key}")
    + _dremio_property(
        "fs.s3a.aws.credentials.provider",
        "The credential provider type.",
        "org.apache.hadoop.fs.s3a.SimpleAWSCredentialsProvider",
    )
    + _dremio_property(
        "fs.s3a.endpoint",
        "Object store address without the http(s):// prefix.",
        "${endpoint}",
    )
    + _dremio_property("fs.s3a.path.style.access", "Must be true.", "true")
    + _dremio_property("dremio.s3.compat", "Must be true.", "true")
    + _dremio_property("fs.s3a.connection.ssl.enabled", "Use SSL with the object store.", "false"),
    bindings=OBJECT_STORE_BINDINGS,
)


_SPARK_PROFILE = """\
spark.eventLog.enabled=true
spark.eventLog.dir=s3a://${event_log_bucket}/${event_log_prefix}
spark.history.fs.logDirectory=s3a://${event_log_bucket}/${event_log_prefix}
spark.hadoop.fs.s3a.aws.credentials.provider=org.apache.hadoop.fs.s3a.SimpleAWSCredentialsProvider
spark.hadoop.fs.s3a.connection.ssl.enabled=false
spark.hadoop.fs.s3a.path.style.access=true
spark.hadoop.fs.s3a.access.key=${access_key}
spark.hadoop.fs.s3a.endpoint=${endpoint}
spark.hadoop.fs.s3a.secret.key=${secret_key}
spark.kubernetes.namespace=${namespace}
"""

SPARK_PROFILE = ConfigTemplate(
    name="spark-profile",
    text=_SPARK_PROFILE,
    format="properties",
    bindings=OBJECT_STORE_BINDINGS,
)

SPARK_PROFILE_WITH_METASTORE = ConfigTemplate(
    name="spark-profile",
    text=_SPARK_PROFILE + """\
spark.sql.catalogImplementation=hive
spark.hadoop.hive.metastore.uris=${metastore_uri}
spark.sql.warehouse.dir=${warehouse}
""",
    format="properties",
    bindings={**OBJECT_STORE_BINDINGS, "metastore_uri": keys.METASTORE_URI},
)
