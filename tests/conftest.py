"""
Top-level pytest conftest.py -- shared fixtures.

Provides:
    has_docker      - session-scoped check for a reachable Docker engine
    requires_docker - skip the test when Docker is not reachable
    isolated_home   - HOME and launcher environment redirected to tmp_path
"""

import shutil
import subprocess

import pytest


@pytest.fixture(scope="session")
def has_docker():
    """Check whether a Docker engine is reachable on this system."""
    if shutil.which("docker") is None:
        return False
    result = subprocess.run(
        ["docker", "info"], capture_output=True, check=False, timeout=10,
    )
    return result.returncode == 0


@pytest.fixture(autouse=False)
def requires_docker(has_docker):
    """Skip the test when Docker is not available."""
    if not has_docker:
        pytest.skip("Docker is not available")


@pytest.fixture
def isolated_home(tmp_path, monkeypatch):
    """Point HOME at a fresh directory and clear launcher environment overrides.

    Yields the fake home ``pathlib.Path``.
    """
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.delenv("XDG_CONFIG_HOME", raising=False)
    for var in (
        "CLAUDE_SANDBOX_HOME",
        "CLAUDE_SANDBOX_IMAGE",
        "CLAUDE_SANDBOX_SSH_KEY",
        "CLAUDE_SANDBOX_VERBOSE",
        "CLAUDE_SANDBOX_DEBUG",
        "CLAUDE_SANDBOX_VM_START_TIMEOUT",
        "CLAUDE_SANDBOX_DAEMON_START_TIMEOUT",
    ):
        monkeypatch.delenv(var, raising=False)
    yield home
