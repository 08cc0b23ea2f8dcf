"""Tests for the CLI-backed collaborator adapters (subprocess patched)."""

import base64
import json
import subprocess
from unittest.mock import patch

import pytest

from lakeboot.errors import ExternalCallFailure
from lakeboot.templates import ConfigDocument
from lakeboot.tools import (
    ChartInstaller,
    ClusterRuntime,
    CommandRunner,
    HostSystem,
    Microk8sClient,
    ObjectStoreClient,
    Presence,
    SnapClient,
    SparkClientRegistry,
)


def completed(returncode=0, stdout="", stderr=""):
    return subprocess.CompletedProcess(args=[], returncode=returncode, stdout=stdout, stderr=stderr)


@pytest.fixture
def mock_run():
    with patch("lakeboot.tools.base.subprocess.run") as mock:
        mock.return_value = completed()
        yield mock


def command_of(mock_run, index=-1):
    return mock_run.call_args_list[index][0][0]


class TestCommandRunner:
    def test_captures_output(self, mock_run):
        mock_run.return_value = completed(stdout="hello\n")
        result = CommandRunner().run(["echo", "hello"])

        assert result.ok
        assert result.stdout == "hello\n"
        kwargs = mock_run.call_args[1]
        assert kwargs["capture_output"] is True
        assert kwargs["text"] is True
        assert kwargs["check"] is False

    def test_missing_binary(self, mock_run):
        mock_run.side_effect = FileNotFoundError()
        with pytest.raises(ExternalCallFailure, match="Command not found: helm"):
            CommandRunner().run(["helm", "version"])

    def test_timeout(self, mock_run):
        mock_run.side_effect = subprocess.TimeoutExpired(cmd="kubectl", timeout=5)
        with pytest.raises(ExternalCallFailure, match="timed out"):
            CommandRunner(timeout=5).run(["kubectl", "get", "pods"])

    def test_check_raises_on_non_zero(self, mock_run):
        mock_run.return_value = completed(returncode=2, stderr="bad flag")
        with pytest.raises(ExternalCallFailure) as exc_info:
            CommandRunner().run(["aws", "--nope"], check=True)
        assert exc_info.value.returncode == 2
        assert exc_info.value.stderr == "bad flag"

    def test_non_zero_returned_without_check(self, mock_run):
        mock_run.return_value = completed(returncode=1)
        assert not CommandRunner().run(["false"]).ok


class TestClusterRuntime:
    def test_get_service(self, mock_run):
        mock_run.return_value = completed(
            stdout=json.dumps({"spec": {"clusterIP": "10.152.183.50", "ports": [{"port": 9083}]}})
        )
        service = ClusterRuntime(["kubectl"]).get_service("my-hive-metastore", "trino")

        assert service.cluster_ip == "10.152.183.50"
        assert service.host_port(0) == "10.152.183.50:9083"
        assert command_of(mock_run) == [
            "kubectl", "get", "service", "my-hive-metastore", "-o", "json", "-n", "trino",
        ]

    def test_missing_port_index(self, mock_run):
        mock_run.return_value = completed(
            stdout=json.dumps({"spec": {"clusterIP": "10.0.0.9", "ports": [{"port": 31010}]}})
        )
        service = ClusterRuntime(["kubectl"]).get_service("dremio-client", "dremio")
        with pytest.raises(LookupError):
            service.host_port(1)

    def test_service_not_found(self, mock_run):
        mock_run.return_value = completed(
            returncode=1, stderr='Error from server (NotFound): services "minio" not found'
        )
        assert ClusterRuntime(["kubectl"]).get_service("minio", "minio-operator") is None

    def test_api_unreachable_raises(self, mock_run):
        mock_run.return_value = completed(returncode=1, stderr="The connection to the server was refused")
        with pytest.raises(ExternalCallFailure):
            ClusterRuntime(["kubectl"]).get_service("minio", "minio-operator")

    def test_namespace_presence_unknown_when_unreachable(self, mock_run):
        mock_run.return_value = completed(returncode=1, stderr="connection refused")
        assert ClusterRuntime(["kubectl"]).namespace_exists("trino") == Presence.UNKNOWN

    def test_namespace_absent(self, mock_run):
        mock_run.return_value = completed(returncode=1, stderr='namespaces "trino" not found')
        assert ClusterRuntime(["kubectl"]).namespace_exists("trino") == Presence.ABSENT

    def test_get_secret_decodes(self, mock_run):
        encoded = base64.b64encode(b"minio-access").decode()
        mock_run.return_value = completed(stdout=json.dumps({"data": {"CONSOLE_ACCESS_KEY": encoded}}))

        runtime = ClusterRuntime(["kubectl"])

        assert runtime.get_secret("microk8s-user-1", "minio-operator", "CONSOLE_ACCESS_KEY") == b"minio-access"
        assert runtime.get_secret("microk8s-user-1", "minio-operator", "OTHER") is None

    def test_create_namespace_already_exists(self, mock_run):
        mock_run.return_value = completed(
            returncode=1, stderr='Error from server (AlreadyExists): namespaces "trino" already exists'
        )
        assert ClusterRuntime(["kubectl"]).create_namespace("trino") is False


class TestChartInstaller:
    def test_find_release(self, mock_run):
        mock_run.return_value = completed(
            stdout=json.dumps([
                {"name": "my-trino", "namespace": "trino", "status": "deployed", "chart": "trino-0.7.0"}
            ])
        )
        release = ChartInstaller(["helm"], sudo=False).find_release("my-trino")

        assert release.namespace == "trino"
        assert release.deployed
        assert "--all-namespaces" in command_of(mock_run)

    def test_find_release_prefers_target_namespace(self, mock_run):
        mock_run.return_value = completed(
            stdout=json.dumps([
                {"name": "my-trino", "namespace": "other", "status": "deployed", "chart": "trino-0.6.0"},
                {"name": "my-trino", "namespace": "trino", "status": "deployed", "chart": "trino-0.7.0"},
            ])
        )
        installer = ChartInstaller(["helm"], sudo=False)

        assert installer.find_release("my-trino", "trino").namespace == "trino"
        assert installer.find_release("my-trino", "analytics").namespace == "other"

    def test_find_release_absent(self, mock_run):
        mock_run.return_value = completed(stdout="[]")
        assert ChartInstaller(["helm"], sudo=False).find_release("my-trino") is None

    def test_install_writes_values_file(self, mock_run, tmp_path):
        installer = ChartInstaller(["helm"], sudo=False, values_dir=tmp_path / "k8s")
        document = ConfigDocument(name="trino", text="image:\n  tag: 372\n")

        installer.install_or_upgrade("my-trino", "trino", "trino/trino", values=document, version="0.7.0")

        values_file = tmp_path / "k8s" / "my-trino" / "values.yaml"
        assert values_file.read_text() == "image:\n  tag: 372\n"
        assert command_of(mock_run) == [
            "helm", "upgrade", "--install", "my-trino", "trino/trino",
            "--namespace", "trino", "--version", "0.7.0", "-f", str(values_file),
        ]

    def test_sudo_prefix(self, mock_run):
        ChartInstaller(["microk8s", "helm"], sudo=True).update_repositories()
        assert command_of(mock_run) == ["sudo", "microk8s", "helm", "repo", "update"]

    def test_no_repositories(self, mock_run):
        mock_run.return_value = completed(returncode=1, stderr="Error: no repositories to show")
        assert ChartInstaller(["helm"], sudo=False).repositories() == {}


class TestObjectStoreClient:
    @pytest.mark.parametrize(
        "returncode,stderr,expected",
        [
            (0, "", Presence.EXISTS),
            (254, "An error occurred (404) when calling the HeadBucket operation: Not Found", Presence.ABSENT),
            (255, 'Could not connect to the endpoint URL: "http://10.152.183.128/raw"', Presence.UNKNOWN),
            (255, 'Could not connect to the endpoint URL: "http://10.0.0.5:4040/raw"', Presence.UNKNOWN),
            (255, 'Could not connect to the endpoint URL: "http://10.0.0.5/raw-404"', Presence.UNKNOWN),
            (254, "An error occurred (400) when calling the HeadBucket operation: Bad Request", Presence.UNKNOWN),
        ],
    )
    def test_bucket_exists(self, mock_run, returncode, stderr, expected):
        mock_run.return_value = completed(returncode=returncode, stderr=stderr)
        assert ObjectStoreClient("minio-local").bucket_exists("raw") == expected

    def test_forbidden_with_bad_credentials_is_unknown(self, mock_run):
        mock_run.return_value = completed(
            returncode=254,
            stderr="An error occurred (403) when calling the HeadBucket operation: Forbidden",
        )
        assert ObjectStoreClient("minio-local").bucket_exists("raw") == Presence.UNKNOWN
        assert command_of(mock_run)[:2] == ["aws", "s3api"]
        assert "list-buckets" in command_of(mock_run)

    def test_forbidden_with_working_credentials_is_conflict(self, mock_run):
        mock_run.side_effect = [
            completed(
                returncode=254,
                stderr="An error occurred (403) when calling the HeadBucket operation: Forbidden",
            ),
            completed(stdout=json.dumps({"Buckets": []})),
        ]
        assert ObjectStoreClient("minio-local").bucket_exists("raw") == Presence.CONFLICT

    def test_object_missing(self, mock_run):
        mock_run.return_value = completed(
            returncode=254, stderr="An error occurred (404) when calling the HeadObject operation: Not Found"
        )
        assert ObjectStoreClient("minio-local").object_exists("logs", "spark-events/") == Presence.ABSENT

    def test_object_forbidden_is_unknown(self, mock_run):
        mock_run.return_value = completed(
            returncode=254, stderr="An error occurred (403) when calling the HeadObject operation: Forbidden"
        )
        assert ObjectStoreClient("minio-local").object_exists("logs", "spark-events/") == Presence.UNKNOWN

    def test_bucket_exists_unknown_when_cli_missing(self, mock_run):
        mock_run.side_effect = FileNotFoundError()
        assert ObjectStoreClient("minio-local").bucket_exists("raw") == Presence.UNKNOWN

    def test_create_bucket_uses_profile(self, mock_run):
        ObjectStoreClient("minio-local").create_bucket("raw")
        assert command_of(mock_run) == ["aws", "s3", "mb", "s3://raw", "--profile", "minio-local"]

    def test_create_bucket_already_owned(self, mock_run):
        mock_run.return_value = completed(returncode=1, stderr="BucketAlreadyOwnedByYou")
        ObjectStoreClient("minio-local").create_bucket("raw")

    def test_configure_profile(self, mock_run):
        ObjectStoreClient("minio-local").configure_profile("AK", "SK", "us-west-2", "http://10.0.0.1")

        commands = [call[0][0] for call in mock_run.call_args_list]
        assert ["aws", "configure", "set", "region", "us-west-2", "--profile", "minio-local"] in commands
        assert ["aws", "configure", "set", "endpoint_url", "http://10.0.0.1", "--profile", "minio-local"] in commands
        assert len(commands) == 4

    def test_profile_value_unset(self, mock_run):
        mock_run.return_value = completed(returncode=1)
        assert ObjectStoreClient("minio-local").profile_value("region") is None

    def test_list_objects(self, mock_run):
        mock_run.return_value = completed(stdout=json.dumps({"Contents": [{"Key": "spark-events/"}]}))
        assert ObjectStoreClient("minio-local").list_objects("logs") == ["spark-events/"]


class TestHostAdapters:
    def test_snap_aliases(self, mock_run):
        mock_run.return_value = completed(
            stdout="Command           Alias    Notes\nmicrok8s.kubectl  kubectl  manual\n"
        )
        assert SnapClient(["snap"]).aliases() == {"kubectl": "microk8s.kubectl"}

    def test_snap_not_installed(self, mock_run):
        mock_run.return_value = completed(returncode=1, stderr="error: no matching snaps installed")
        assert SnapClient(["snap"]).installed("aws-cli") == Presence.ABSENT

    def test_snap_install_classic(self, mock_run):
        SnapClient(["snap"], sudo=True).install("aws-cli", classic=True)
        assert command_of(mock_run) == ["sudo", "snap", "install", "aws-cli", "--classic"]

    def test_enabled_addons(self, mock_run):
        mock_run.return_value = completed(
            stdout=(
                "microk8s:\n  running: true\n"
                "addons:\n"
                "  - name: dns\n    status: enabled\n"
                "  - name: minio\n    status: disabled\n"
            )
        )
        assert Microk8sClient(["microk8s"], sudo=False).enabled_addons() == {"dns"}

    def test_enable_with_argument(self, mock_run):
        Microk8sClient(["microk8s"], sudo=False).enable("metallb", "192.168.1.10-192.168.1.10")
        assert command_of(mock_run) == ["microk8s", "enable", "metallb:192.168.1.10-192.168.1.10"]

    def test_host_ipv4(self, mock_run):
        mock_run.return_value = completed(
            stdout=json.dumps([{"dst": "2.2.2.2", "dev": "eth0", "prefsrc": "192.168.1.10"}])
        )
        assert HostSystem().host_ipv4() == "192.168.1.10"

    def test_host_ipv4_unavailable(self, mock_run):
        mock_run.return_value = completed(returncode=2, stderr="Network is unreachable")
        assert HostSystem().host_ipv4() is None


class TestSparkClientRegistry:
    def test_set_config(self, mock_run):
        SparkClientRegistry(["registry"]).set_config(
            "spark", "spark", {"spark.eventLog.enabled": "true", "spark.hadoop.fs.s3a.access.key": "AK"}
        )
        assert command_of(mock_run) == [
            "registry", "add-config", "--username", "spark", "--namespace", "spark",
            "--conf", "spark.eventLog.enabled=true",
            "--conf", "spark.hadoop.fs.s3a.access.key=AK",
        ]

    def test_create_existing_account(self, mock_run):
        mock_run.return_value = completed(returncode=1, stderr="Service account spark already exists")
        assert SparkClientRegistry(["registry"]).create_service_account("spark", "spark") is False

    def test_get_config(self, mock_run):
        mock_run.return_value = completed(stdout="spark.kubernetes.namespace=spark\n")
        assert SparkClientRegistry(["registry"]).get_config("spark", "spark") == {
            "spark.kubernetes.namespace": "spark"
        }
