"""Shared fixtures: in-memory collaborators standing in for the host CLIs."""

from pathlib import Path
from typing import Dict, Optional, Set

import pytest

from lakeboot import context as keys
from lakeboot.config import BootstrapConfig
from lakeboot.context import RuntimeContext
from lakeboot.readiness import ReadinessPoller
from lakeboot.templates import parse_properties
from lakeboot.tools import Presence, ReleaseInfo, ServiceAddress, Toolbox

ACCESS_KEY = "minio-access"
SECRET_KEY = "minio-secret-value"
MINIO_IP = "10.152.183.128"


class FakeClock:
    """Monotonic clock advanced only by sleep()."""

    def __init__(self):
        self.now = 0.0
        self.sleeps = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class FakeCluster:
    def __init__(self):
        self.namespaces: Set[str] = {"default", "kube-system"}
        self.services: Dict[tuple, ServiceAddress] = {}
        self.secrets: Dict[tuple, Dict[str, bytes]] = {}
        self.service_accounts: Set[tuple] = set()
        self.unreachable = False
        self.created_namespaces = []

    def add_service(self, name, namespace, cluster_ip, ports):
        self.services[(namespace, name)] = ServiceAddress(name, namespace, cluster_ip, list(ports))

    def namespace_exists(self, name):
        if self.unreachable:
            return Presence.UNKNOWN
        return Presence.EXISTS if name in self.namespaces else Presence.ABSENT

    def create_namespace(self, name):
        created = name not in self.namespaces
        self.namespaces.add(name)
        self.created_namespaces.append(name)
        return created

    def get_service(self, name, namespace):
        return self.services.get((namespace, name))

    def get_secret(self, name, namespace, key):
        return self.secrets.get((namespace, name), {}).get(key)

    def secret_exists(self, name, namespace):
        return Presence.EXISTS if (namespace, name) in self.secrets else Presence.ABSENT

    def create_secret_from_file(self, name, namespace, path):
        self.secrets[(namespace, name)] = {Path(path).name: Path(path).read_bytes()}

    def secret_matches_file(self, name, namespace, path):
        stored = self.get_secret(name, namespace, Path(path).name)
        return stored == Path(path).read_bytes()

    def service_account_exists(self, name, namespace):
        return Presence.EXISTS if (namespace, name) in self.service_accounts else Presence.ABSENT


class FakeInstaller:
    def __init__(self):
        self.repos: Dict[str, str] = {}
        self.releases: Dict[str, ReleaseInfo] = {}
        self.values: Dict[str, dict] = {}
        self.installs = []
        self.repo_updates = 0
        # Same-named releases owned by someone else, listed before ours
        self.foreign: Dict[str, list] = {}

    def repositories(self):
        return dict(self.repos)

    def add_repository(self, name, url):
        self.repos[name] = url

    def update_repositories(self):
        self.repo_updates += 1

    def find_release(self, name, namespace=None):
        candidates = self.foreign.get(name, []) + [r for r in [self.releases.get(name)] if r]
        for release in candidates:
            if release.namespace == namespace:
                return release
        return candidates[0] if candidates else None

    def get_values(self, name, namespace):
        return self.values.get(name, {})

    def install_or_upgrade(self, release, namespace, chart, values=None, version=None):
        self.installs.append((release, namespace, chart, version))
        self.releases[release] = ReleaseInfo(release, namespace, "deployed", chart)
        self.values[release] = values.as_dict() if values is not None else {}


class FakeObjectStore:
    def __init__(self):
        self.profile: Dict[str, str] = {}
        self.buckets: Dict[str, Presence] = {}
        self.objects: Set[tuple] = set()
        self.created = []

    def profile_value(self, key):
        return self.profile.get(key)

    def configure_profile(self, access_key, secret_key, region, endpoint_url):
        self.profile.update(
            aws_access_key_id=access_key,
            aws_secret_access_key=secret_key,
            region=region,
            endpoint_url=endpoint_url,
        )

    def bucket_exists(self, name):
        return self.buckets.get(name, Presence.ABSENT)

    def create_bucket(self, name):
        self.created.append(name)
        self.buckets[name] = Presence.EXISTS

    def list_objects(self, bucket, prefix=""):
        return sorted(key for b, key in self.objects if b == bucket and key.startswith(prefix))

    def object_exists(self, bucket, key):
        return Presence.EXISTS if (bucket, key) in self.objects else Presence.ABSENT

    def put_object(self, bucket, key, body=b""):
        self.objects.add((bucket, key))


class FakeSpark:
    def __init__(self, cluster: FakeCluster):
        self.cluster = cluster
        self.configs: Dict[tuple, Dict[str, str]] = {}
        self.set_calls = 0

    def create_service_account(self, username, namespace):
        created = (namespace, username) not in self.cluster.service_accounts
        self.cluster.service_accounts.add((namespace, username))
        return created

    def set_config(self, username, namespace, key_values):
        self.set_calls += 1
        self.configs.setdefault((namespace, username), {}).update(key_values)

    def get_config_text(self, username, namespace):
        config = self.configs.get((namespace, username), {})
        return "".join(f"{key}={value}\n" for key, value in sorted(config.items()))

    def get_config(self, username, namespace):
        return parse_properties(self.get_config_text(username, namespace))


class FakeSnap:
    def __init__(self):
        self.snaps: Dict[str, Optional[str]] = {}
        self.alias_map: Dict[str, str] = {}

    def installed(self, name):
        return Presence.EXISTS if name in self.snaps else Presence.ABSENT

    def install(self, name, channel=None, classic=False):
        self.snaps[name] = channel

    def aliases(self):
        return dict(self.alias_map)

    def alias(self, target, alias):
        self.alias_map[alias] = target


class FakeMicrok8s:
    def __init__(self, cluster: FakeCluster):
        self.cluster = cluster
        self.running = False
        self.addons: Set[str] = set()

    def is_running(self):
        return self.running

    def wait_ready(self, timeout=None):
        self.running = True
        return True

    def enabled_addons(self):
        return set(self.addons)

    def enable(self, addon, argument=None):
        self.addons.add(addon)
        if addon == "minio":
            self.cluster.add_service("minio", "minio-operator", MINIO_IP, [80])
            self.cluster.add_service("microk8s-console", "minio-operator", "10.152.183.20", [9090])
            self.cluster.secrets[("minio-operator", "microk8s-user-1")] = {
                "CONSOLE_ACCESS_KEY": ACCESS_KEY.encode(),
                "CONSOLE_SECRET_KEY": SECRET_KEY.encode(),
            }

    def kubeconfig(self):
        return "apiVersion: v1\nkind: Config\n"


class FakeHost:
    def __init__(self):
        self.groups: Dict[str, Set[str]] = {}
        self.owners: Dict[str, str] = {}
        self.ip: Optional[str] = "192.168.1.10"

    def user_groups(self, user):
        return set(self.groups.get(user, set()))

    def add_user_to_group(self, user, group):
        self.groups.setdefault(user, set()).add(group)

    def owner(self, path):
        return self.owners.get(str(path))

    def take_ownership(self, path, user):
        Path(path).mkdir(parents=True, exist_ok=True)
        self.owners[str(path)] = user

    def host_ipv4(self):
        return self.ip


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def poller(clock):
    return ReadinessPoller(poll_interval=1, max_wait=3, clock=clock, sleep=clock.sleep)


@pytest.fixture
def config(tmp_path):
    return BootstrapConfig(
        {
            "user": "tester",
            "cluster": {"kube_dir": str(tmp_path / ".kube")},
            "compute": {"snapshot_path": str(tmp_path / "properties.conf")},
            "paths": {"values_dir": str(tmp_path / "k8s")},
            "readiness": {"poll_interval": 1, "max_wait": 3},
            "logging": {"output": None},
        }
    )


@pytest.fixture
def cluster():
    cluster = FakeCluster()
    # Services that appear once the charts are running
    cluster.add_service("my-hive-metastore", "trino", "10.152.183.50", [9083])
    cluster.add_service("dremio-client", "dremio", "10.152.183.60", [31010, 9047])
    return cluster


@pytest.fixture
def tools(cluster):
    return Toolbox(
        cluster=cluster,
        installer=FakeInstaller(),
        object_store=FakeObjectStore(),
        spark=FakeSpark(cluster),
        snap=FakeSnap(),
        microk8s=FakeMicrok8s(cluster),
        host=FakeHost(),
    )


@pytest.fixture
def store_context():
    """Context as published by a deployed object store."""
    return RuntimeContext(
        {
            keys.OBJECT_STORE_ACCESS_KEY: ACCESS_KEY,
            keys.OBJECT_STORE_SECRET_KEY: SECRET_KEY,
            keys.OBJECT_STORE_ENDPOINT: MINIO_IP,
        }
    )
