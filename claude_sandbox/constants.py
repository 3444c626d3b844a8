"""Configuration defaults for claude-sandbox.

Constants describe the image contract and the launcher's fixed defaults.
Accessor functions read environment overrides at call time so tests and
users can redirect them without re-importing the module.
"""

from __future__ import annotations

import os
from pathlib import Path


def _env_int(key: str, default: int) -> int:
    """Read an integer from an environment variable, returning default on parse failure."""
    try:
        return int(os.environ.get(key, str(default)))
    except (ValueError, TypeError):
        return default


# ============================================================================
# Directory & Path Constants
# ============================================================================


def get_sandbox_home() -> Path:
    """Get the persistent configuration directory.

    Respects CLAUDE_SANDBOX_HOME environment variable override.
    Defaults to ~/.claude-sandbox if not set. Its contents outlive every
    session: it is mounted read-write as the container home.

    Returns:
        Path to the persistent configuration directory
    """
    home_str = os.environ.get("CLAUDE_SANDBOX_HOME")
    if home_str:
        return Path(home_str).expanduser()
    return Path.home() / ".claude-sandbox"


def get_session_lock_path() -> Path:
    """Lock file serializing name allocation across concurrent launches."""
    return get_sandbox_home() / "sessions.lock"


def get_ssh_dir() -> Path:
    """Default directory bare SSH key names are resolved against."""
    return Path.home() / ".ssh"


def get_ide_dir() -> Path:
    """Host directory holding Claude Code IDE integration lock files."""
    return Path.home() / ".claude" / "ide"


# ============================================================================
# Container Constants (image contract)
# ============================================================================

DOCKER_IMAGE: str = "claude-code-sandbox:latest"
"""Default image reference for sessions."""

CONTAINER_HOME: str = "/home/claude"
"""Home directory of the in-container user; the persistent directory mounts here."""

CONTAINER_GITCONFIG: str = f"{CONTAINER_HOME}/.gitconfig"
CONTAINER_KNOWN_HOSTS: str = f"{CONTAINER_HOME}/.ssh/known_hosts"
CONTAINER_IDE_DIR: str = f"{CONTAINER_HOME}/.claude/ide"

SSH_AGENT_CONTAINER_SOCK: str = "/ssh-agent"
"""In-container path of the host agent socket for native daemons."""

VM_SSH_AGENT_SOCK: str = "/run/host-services/ssh-auth.sock"
"""Well-known agent socket exposed inside VM-backed engines."""

SESSION_BASE_NAME: str = "claude-sandbox"
"""Base name of session containers (``claude-sandbox-0``, ``-1``, ...)."""

PASSTHROUGH_ENV: tuple[str, ...] = (
    "TERM",
    "COLORTERM",
    "LANG",
    "ANTHROPIC_API_KEY",
    "CLAUDE_CODE_OAUTH_TOKEN",
)
"""Host environment variables copied into the session when set."""


def get_docker_image() -> str:
    """Get the session image reference (CLAUDE_SANDBOX_IMAGE override)."""
    return os.environ.get("CLAUDE_SANDBOX_IMAGE", DOCKER_IMAGE)


# ============================================================================
# Credential Defaults
# ============================================================================

DEFAULT_SSH_KEY_NAME: str = "id_ed25519"
"""Key registered with the agent when neither --ssh-key nor the env var is set."""

SSH_KEY_ENV_VAR: str = "CLAUDE_SANDBOX_SSH_KEY"

# ============================================================================
# Resource Limit Defaults
# ============================================================================

DEFAULT_CPUS: str = "4"
"""CPU limit applied when --cpus is not given."""

DEFAULT_MEMORY: str = "8g"
"""Memory limit applied when --memory is not given."""

# ============================================================================
# Runtime Start / Poll Constants (seconds)
# ============================================================================

VM_START_TIMEOUT: int = 60
"""Wait budget after starting a VM-backed engine (Colima boots a VM)."""

DAEMON_START_TIMEOUT: int = 30
"""Wait budget after starting a native daemon (or when no starter exists)."""

RUNTIME_POLL_INTERVAL: float = 1.0
"""Seconds between engine status polls."""


def get_vm_start_timeout() -> int:
    """Get the VM engine start budget (CLAUDE_SANDBOX_VM_START_TIMEOUT)."""
    return _env_int("CLAUDE_SANDBOX_VM_START_TIMEOUT", VM_START_TIMEOUT)


def get_daemon_start_timeout() -> int:
    """Get the native daemon start budget (CLAUDE_SANDBOX_DAEMON_START_TIMEOUT)."""
    return _env_int("CLAUDE_SANDBOX_DAEMON_START_TIMEOUT", DAEMON_START_TIMEOUT)


# ============================================================================
# Subprocess Timeout Constants (seconds)
# ============================================================================

TIMEOUT_DOCKER_QUERY: int = 10
"""Timeout for docker info/ps/context queries."""

TIMEOUT_DOCKER_CREATE: int = 60
"""Timeout for docker create (name reservation)."""

TIMEOUT_DOCKER_STOP: int = 30
"""Timeout for docker stop / rm -f."""

TIMEOUT_DOCKER_PROBE: int = 30
"""Timeout for short throwaway docker run probes."""

TIMEOUT_RUNTIME_START: int = 180
"""Timeout for the runtime start command itself (colima start, systemctl)."""

TIMEOUT_LOCAL_CMD: int = 5
"""Timeout for quick local commands (ssh-add -l, ssh-keygen)."""

SESSION_LOCK_TIMEOUT: int = 30
"""Seconds to wait for the session allocation lock."""


# ============================================================================
# Runtime Flag Defaults (read from environment)
# ============================================================================


def get_sandbox_debug() -> int:
    """Get CLAUDE_SANDBOX_DEBUG flag from environment.

    Returns:
        1 if enabled, 0 if disabled (default)
    """
    return _env_int("CLAUDE_SANDBOX_DEBUG", 0)


def get_sandbox_verbose() -> int:
    """Get CLAUDE_SANDBOX_VERBOSE flag from environment.

    Returns:
        1 if enabled, 0 if disabled (default)
    """
    return _env_int("CLAUDE_SANDBOX_VERBOSE", 0)
