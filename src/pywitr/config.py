"""Runtime configuration for pywitr, read from the environment."""

import logging
import os
from dataclasses import dataclass, replace
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 2.0
MIN_TIMEOUT = 0.1


@dataclass(slots=True, frozen=True)
class Settings:
    """Knobs shared by the sources and the CLI."""

    timeout: float = DEFAULT_TIMEOUT  # Seconds per subprocess query
    launchers_path: Path | None = None  # None means the packaged table
    log_level: str = "WARNING"
    proc_root: Path = Path("/proc")
    color: bool = True

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> "Settings":
        """
        Build settings from environment variables.

        Args:
            environ: Mapping to read from. Defaults to os.environ.
        """
        env = os.environ if environ is None else environ
        timeout = DEFAULT_TIMEOUT
        raw_timeout = env.get("PYWITR_TIMEOUT")
        if raw_timeout:
            try:
                timeout = float(raw_timeout)
            except ValueError:
                logger.warning("ignoring invalid PYWITR_TIMEOUT=%r", raw_timeout)
        launchers = env.get("PYWITR_LAUNCHERS")
        return cls(
            timeout=max(MIN_TIMEOUT, timeout),
            launchers_path=Path(launchers) if launchers else None,
            log_level=env.get("PYWITR_LOG_LEVEL", "WARNING").upper(),
            proc_root=Path(env.get("PYWITR_PROC_ROOT", "/proc")),
            color="NO_COLOR" not in env,
        )

    def with_overrides(self, **changes) -> "Settings":
        """Return a copy with the non-None keyword values applied."""
        changes = {k: v for k, v in changes.items() if v is not None}
        timeout = changes.get("timeout")
        if timeout is not None and timeout < MIN_TIMEOUT:
            logger.warning("timeout %r is below the minimum, using %s", timeout, MIN_TIMEOUT)
            changes["timeout"] = MIN_TIMEOUT
        return replace(self, **changes)
