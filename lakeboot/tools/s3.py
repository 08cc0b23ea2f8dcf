"""Object store adapter (aws CLI against the MinIO profile)."""

import json
import re
import tempfile
from pathlib import Path
from typing import List, Optional

from lakeboot.errors import ExternalCallFailure
from lakeboot.tools.base import CommandResult, Presence, ToolAdapter


# botocore: "An error occurred (<code>) when calling the <Operation> operation: ..."
ERROR_CODE_PATTERN = re.compile(r"An error occurred \(([^)]+)\) when calling the \w+ operation")

ABSENT_CODES = {"404", "NoSuchBucket", "NoSuchKey", "NotFound"}
FORBIDDEN_CODES = {"403", "AccessDenied", "Forbidden"}


def error_code(result: CommandResult) -> Optional[str]:
    """Return the service error code of a failed call, or None for client-side failures."""
    match = ERROR_CODE_PATTERN.search(result.stderr)
    return match.group(1) if match else None


def classify_head_error(result: CommandResult) -> Presence:
    """
    Map a failed head-bucket/head-object call to a Presence.

    Only a service-reported 404 is ABSENT. Everything else, including a 403
    (which is also how bad credentials are answered) and connection errors,
    is UNKNOWN.
    """
    if error_code(result) in ABSENT_CODES:
        return Presence.ABSENT
    return Presence.UNKNOWN


class ObjectStoreClient(ToolAdapter):
    """S3-compatible object store operations through a named aws CLI profile."""

    def __init__(self, profile: str, command=("aws",), runner=None):
        super().__init__(command, runner=runner, sudo=False)
        self.profile = profile

    def _aws(self, *args: str, check: bool = True, **kwargs) -> CommandResult:
        return self.execute(*args, "--profile", self.profile, check=check, **kwargs)

    # Profile

    def profile_value(self, key: str) -> Optional[str]:
        """Return a profile setting, or None when unset."""
        result = self.execute("configure", "get", key, "--profile", self.profile, check=False)
        value = result.stdout.strip()
        return value if result.ok and value else None

    def configure_profile(self, access_key: str, secret_key: str, region: str, endpoint_url: str) -> None:
        settings = (
            ("aws_access_key_id", access_key),
            ("aws_secret_access_key", secret_key),
            ("region", region),
            ("endpoint_url", endpoint_url),
        )
        for key, value in settings:
            self.execute(
                "configure", "set", key, value, "--profile", self.profile,
                redact=(access_key, secret_key),
            )

    # Buckets

    def bucket_exists(self, name: str) -> Presence:
        """
        Probe a bucket.

        A 403 is CONFLICT only when the profile's credentials are shown to
        work (list-buckets succeeds); otherwise it is an auth failure and
        stays UNKNOWN.
        """
        try:
            result = self._aws("s3api", "head-bucket", "--bucket", name, check=False)
            if result.ok:
                return Presence.EXISTS
            if error_code(result) in FORBIDDEN_CODES:
                return Presence.CONFLICT if self.credentials_valid() else Presence.UNKNOWN
        except ExternalCallFailure:
            return Presence.UNKNOWN
        return classify_head_error(result)

    def credentials_valid(self) -> bool:
        """True if the profile can make an authenticated call."""
        return self._aws("s3api", "list-buckets", "--output", "json", check=False).ok

    def create_bucket(self, name: str) -> None:
        result = self._aws("s3", "mb", f"s3://{name}", check=False)
        if result.ok or "bucketalreadyownedbyyou" in result.stderr.lower():
            return
        raise ExternalCallFailure(result.command, result.returncode, result.stderr)

    def list_objects(self, bucket: str, prefix: str = "") -> List[str]:
        args = ["s3api", "list-objects-v2", "--bucket", bucket, "--output", "json"]
        if prefix:
            args += ["--prefix", prefix]
        result = self._aws(*args)
        if not result.stdout.strip():
            return []
        data = json.loads(result.stdout)
        return [item["Key"] for item in data.get("Contents", [])]

    # Objects

    def object_exists(self, bucket: str, key: str) -> Presence:
        try:
            result = self._aws("s3api", "head-object", "--bucket", bucket, "--key", key, check=False)
        except ExternalCallFailure:
            return Presence.UNKNOWN
        if result.ok:
            return Presence.EXISTS
        return classify_head_error(result)

    def put_object(self, bucket: str, key: str, body: bytes = b"") -> None:
        if not body:
            self._aws("s3api", "put-object", "--bucket", bucket, "--key", key)
            return
        with tempfile.TemporaryDirectory(prefix="lakeboot-") as tmp:
            body_file = Path(tmp) / "body"
            body_file.write_bytes(body)
            self._aws("s3api", "put-object", "--bucket", bucket, "--key", key, "--body", str(body_file))
