"""Service manager sources: systemd, launchd, and a no-op fallback."""

import logging
import re
import subprocess

from pywitr.config import DEFAULT_TIMEOUT
from pywitr.errors import SourceUnavailable
from pywitr.sources import ServiceManagerSource

logger = logging.getLogger(__name__)

# Unit names and launchd labels are passed to external tools; keep them tame
SERVICE_LABEL_RE = re.compile(r"^[A-Za-z0-9._-]{1,256}$")

LAUNCHD_PREFIXES = ("", "com.apple.", "org.", "io.", "homebrew.mxcl.")


def is_valid_service_label(label: str) -> bool:
    """Check a unit name or launchd label contains only safe characters."""
    return bool(SERVICE_LABEL_RE.match(label))


def _run(tool: str, args: list[str], timeout: float) -> subprocess.CompletedProcess:
    try:
        return subprocess.run(
            [tool, *args],
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except FileNotFoundError as exc:
        raise SourceUnavailable(tool, f"{tool} not installed") from exc
    except subprocess.TimeoutExpired as exc:
        raise SourceUnavailable(tool, f"timed out after {timeout}s") from exc


class SystemdServiceManager(ServiceManagerSource):
    """Resolves `<name>.service` to its MainPID through systemctl."""

    name = "systemd"

    def __init__(self, timeout: float = DEFAULT_TIMEOUT) -> None:
        self._timeout = timeout

    @staticmethod
    def unit_names(name: str) -> list[str]:
        if name.endswith(".service"):
            return [name]
        return [f"{name}.service"]

    def find_service_main_pid(self, name: str) -> int | None:
        if not is_valid_service_label(name):
            logger.debug("not querying systemd for invalid unit name %r", name)
            return None
        for unit in self.unit_names(name):
            result = _run(
                "systemctl",
                ["show", "-p", "MainPID", "--value", "--", unit],
                self._timeout,
            )
            if result.returncode != 0:
                continue
            try:
                pid = int(result.stdout.strip())
            except ValueError:
                continue
            if pid > 0:
                return pid
        return None


class LaunchdServiceManager(ServiceManagerSource):
    """Resolves a launchd label (trying common reverse-domain prefixes) to its PID."""

    name = "launchd"

    def __init__(self, timeout: float = DEFAULT_TIMEOUT) -> None:
        self._timeout = timeout

    @staticmethod
    def labels(name: str) -> list[str]:
        return [prefix + name for prefix in LAUNCHD_PREFIXES]

    @staticmethod
    def parse_pid(output: str) -> int | None:
        """Extract 'pid = N' from `launchctl print` output."""
        for line in output.splitlines():
            line = line.strip()
            if line.startswith("pid = "):
                try:
                    pid = int(line[len("pid = ") :])
                except ValueError:
                    continue
                if pid > 0:
                    return pid
        return None

    def find_service_main_pid(self, name: str) -> int | None:
        if not is_valid_service_label(name):
            logger.debug("not querying launchd for invalid label %r", name)
            return None
        for label in self.labels(name):
            result = _run("launchctl", ["print", f"system/{label}"], self._timeout)
            if result.returncode != 0:
                continue
            pid = self.parse_pid(result.stdout)
            if pid is not None:
                return pid
        return None


class NullServiceManager(ServiceManagerSource):
    """Service manager for platforms without one we know how to query."""

    name = "none"

    def find_service_main_pid(self, name: str) -> int | None:
        return None
