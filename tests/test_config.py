"""Tests for environment-driven settings."""

from pathlib import Path

from pywitr.config import DEFAULT_TIMEOUT, MIN_TIMEOUT, Settings


def test_defaults():
    settings = Settings.from_env({})
    assert settings.timeout == DEFAULT_TIMEOUT
    assert settings.launchers_path is None
    assert settings.log_level == "WARNING"
    assert settings.proc_root == Path("/proc")
    assert settings.color is True


def test_environment_values():
    settings = Settings.from_env(
        {
            "PYWITR_TIMEOUT": "0.5",
            "PYWITR_LAUNCHERS": "/etc/pywitr/launchers.toml",
            "PYWITR_LOG_LEVEL": "debug",
            "PYWITR_PROC_ROOT": "/host/proc",
            "NO_COLOR": "",
        }
    )
    assert settings.timeout == 0.5
    assert settings.launchers_path == Path("/etc/pywitr/launchers.toml")
    assert settings.log_level == "DEBUG"
    assert settings.proc_root == Path("/host/proc")
    assert settings.color is False


def test_invalid_timeout_falls_back():
    assert Settings.from_env({"PYWITR_TIMEOUT": "soon"}).timeout == DEFAULT_TIMEOUT


def test_timeout_minimum():
    assert Settings.from_env({"PYWITR_TIMEOUT": "0.001"}).timeout == MIN_TIMEOUT


def test_overrides_skip_none():
    settings = Settings().with_overrides(timeout=5.0, launchers_path=None)
    assert settings.timeout == 5.0
    assert settings.launchers_path is None


def test_overrides_skip_none():
    settings = Settings().with_overrides(timeout=None, launchers_path=Path("x.toml"))
    assert settings.timeout == DEFAULT_TIMEOUT
    assert settings.launchers_path == Path("x.toml")


def test_override_timeout_minimum():
    assert Settings().with_overrides(timeout=-1.0).timeout == MIN_TIMEOUT
    assert Settings().with_overrides(timeout=0).timeout == MIN_TIMEOUT
    assert Settings().with_overrides(timeout=5.0).timeout == 5.0
