"""Host-level adapters: snap packages, MicroK8s and the local system."""

import json
from pathlib import Path
from typing import Dict, Optional, Set

import yaml

from lakeboot.errors import ExternalCallFailure
from lakeboot.tools.base import Presence, ToolAdapter


class SnapClient(ToolAdapter):
    """Install snaps and manage snap aliases."""

    def __init__(self, command=("snap",), runner=None, sudo: bool = True):
        super().__init__(command, runner=runner, sudo=sudo)

    def installed(self, name: str) -> Presence:
        # Listing needs no privileges
        result = self.runner.run(self.command + ["list", name])
        if result.ok:
            return Presence.EXISTS
        if "no matching snaps" in result.stderr.lower():
            return Presence.ABSENT
        return Presence.UNKNOWN

    def install(self, name: str, channel: Optional[str] = None, classic: bool = False) -> None:
        args = ["install", name]
        if channel:
            args += ["--channel", channel]
        if classic:
            args.append("--classic")
        self.execute(*args)

    def aliases(self) -> Dict[str, str]:
        """Return snap aliases as alias -> command."""
        result = self.runner.run(self.command + ["aliases"], check=True)
        aliases = {}
        for line in result.stdout.splitlines()[1:]:
            parts = line.split()
            if len(parts) >= 2:
                aliases[parts[1]] = parts[0]
        return aliases

    def alias(self, target: str, alias: str) -> None:
        self.execute("alias", target, alias)


class Microk8sClient(ToolAdapter):
    """Control-plane status, addons and kubeconfig of MicroK8s."""

    def __init__(self, command=("microk8s",), runner=None, sudo: bool = True):
        super().__init__(command, runner=runner, sudo=sudo)

    def is_running(self) -> bool:
        result = self.execute("status", check=False)
        return result.ok and "microk8s is running" in result.stdout.lower()

    def wait_ready(self, timeout: Optional[int] = None) -> bool:
        """Block until the control plane reports ready (or the timeout passes)."""
        args = ["status", "--wait-ready"]
        if timeout:
            args += ["--timeout", str(int(timeout))]
        return self.execute(*args, check=False).ok

    def enabled_addons(self) -> Set[str]:
        result = self.execute("status", "--format", "yaml")
        try:
            status = yaml.safe_load(result.stdout) or {}
        except yaml.YAMLError as e:
            raise ExternalCallFailure(result.command, message=f"Unreadable microk8s status: {e}")
        return {
            addon["name"]
            for addon in status.get("addons", [])
            if addon.get("status") == "enabled"
        }

    def enable(self, addon: str, argument: Optional[str] = None) -> None:
        self.execute("enable", f"{addon}:{argument}" if argument else addon)

    def kubeconfig(self) -> str:
        return self.execute("config").stdout


class HostSystem(ToolAdapter):
    """Users, groups, directories and addresses of the local host."""

    def __init__(self, runner=None, sudo: bool = True):
        super().__init__(("sudo",) if sudo else ("env",), runner=runner, sudo=False)

    def user_groups(self, user: str) -> Set[str]:
        result = self.runner.run(["id", "-nG", user], check=True)
        return set(result.stdout.split())

    def add_user_to_group(self, user: str, group: str) -> None:
        self.execute("usermod", "-a", "-G", group, user)

    def owner(self, path: Path) -> Optional[str]:
        try:
            return Path(path).owner()
        except (FileNotFoundError, KeyError):
            return None

    def take_ownership(self, path: Path, user: str) -> None:
        """Create `path` and make it owned by `user` and readable by everyone."""
        Path(path).mkdir(parents=True, exist_ok=True)
        self.execute("chown", "-f", "-R", user, str(path))
        self.execute("chmod", "-R", "a+r", str(path))

    def host_ipv4(self) -> Optional[str]:
        """Source address of the default IPv4 route, or None if unavailable."""
        result = self.runner.run(["ip", "-4", "-j", "route", "get", "2.2.2.2"])
        if not result.ok:
            return None
        try:
            routes = json.loads(result.stdout or "[]")
        except json.JSONDecodeError:
            return None
        for route in routes:
            if route.get("prefsrc"):
                return route["prefsrc"]
        return None
