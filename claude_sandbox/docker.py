"""Docker operations for claude-sandbox.

Wraps the docker CLI via subprocess. Queries never raise on a missing or
unreachable engine; they report through their return value. Operations that
a launch depends on raise the matching ``claude_sandbox.errors`` exception.
"""

from __future__ import annotations

import json
import subprocess
import sys
from typing import Any

from claude_sandbox.constants import (
    TIMEOUT_DOCKER_CREATE,
    TIMEOUT_DOCKER_PROBE,
    TIMEOUT_DOCKER_QUERY,
    TIMEOUT_DOCKER_STOP,
    get_sandbox_verbose,
)
from claude_sandbox.errors import LaunchFailure, NameCollision, RuntimeUnavailable
from claude_sandbox.utils import log_debug, log_warn


# ============================================================================
# Internal Helpers
# ============================================================================


def _run_cmd(
    args: list[str],
    *,
    quiet: bool = False,
    check: bool = False,
    timeout: float | None = None,
) -> subprocess.CompletedProcess[str]:
    """Run a command, capturing or suppressing output.

    Prints "+ <cmd>" to stderr when CLAUDE_SANDBOX_VERBOSE=1.

    Args:
        args: Command and arguments.
        quiet: If True, discard stdout and stderr instead of capturing them.
        check: If True, raise CalledProcessError on non-zero exit.
        timeout: Optional timeout in seconds.

    Returns:
        CompletedProcess result.

    Raises:
        subprocess.CalledProcessError: If check=True and command fails.
        subprocess.TimeoutExpired: If timeout is exceeded.
    """
    if get_sandbox_verbose():
        print(f"+ {' '.join(args)}", file=sys.stderr)

    kwargs: dict[str, Any] = {"check": check, "text": True}
    if timeout is not None:
        kwargs["timeout"] = timeout
    if quiet:
        kwargs["stdout"] = subprocess.DEVNULL
        kwargs["stderr"] = subprocess.DEVNULL
    else:
        kwargs["stdout"] = subprocess.PIPE
        kwargs["stderr"] = subprocess.PIPE

    return subprocess.run(args, **kwargs)


def _error_text(result: subprocess.CompletedProcess[str]) -> str:
    """Return the most useful diagnostic text from a failed command."""
    return (result.stderr or result.stdout or "").strip()


# ============================================================================
# Engine Status
# ============================================================================


def engine_is_reachable() -> bool:
    """Check whether the docker daemon answers a status query.

    Returns:
        True if ``docker info`` succeeds.
    """
    try:
        result = _run_cmd(["docker", "info"], quiet=True, timeout=TIMEOUT_DOCKER_QUERY)
    except (OSError, subprocess.TimeoutExpired) as exc:
        log_debug(f"docker info failed: {exc}")
        return False
    return result.returncode == 0


def docker_context() -> str:
    """Return the active docker CLI context name, or empty string."""
    try:
        result = _run_cmd(["docker", "context", "show"], timeout=TIMEOUT_DOCKER_QUERY)
    except (OSError, subprocess.TimeoutExpired) as exc:
        log_debug(f"Could not read docker context: {exc}")
        return ""
    if result.returncode != 0:
        return ""
    return result.stdout.strip()


def engine_operating_system() -> str:
    """Return the engine's OperatingSystem string (e.g. ``Docker Desktop``)."""
    try:
        result = _run_cmd(
            ["docker", "info", "--format", "{{.OperatingSystem}}"],
            timeout=TIMEOUT_DOCKER_QUERY,
        )
    except (OSError, subprocess.TimeoutExpired) as exc:
        log_debug(f"Could not read engine operating system: {exc}")
        return ""
    if result.returncode != 0:
        return ""
    return result.stdout.strip()


# ============================================================================
# Session Queries
# ============================================================================


def list_container_names(prefix: str) -> list[str]:
    """List names of all containers (any state) whose name starts with *prefix*.

    Docker's name filter is an unanchored regex; callers must still match
    names exactly.

    Raises:
        RuntimeUnavailable: If the engine cannot be queried.
    """
    cmd = ["docker", "ps", "-a", "--filter", f"name=^{prefix}", "--format", "{{.Names}}"]
    try:
        result = _run_cmd(cmd, timeout=TIMEOUT_DOCKER_QUERY)
    except (OSError, subprocess.TimeoutExpired) as exc:
        raise RuntimeUnavailable("Could not list existing sessions", detail=str(exc)) from exc
    if result.returncode != 0:
        raise RuntimeUnavailable("Could not list existing sessions", detail=_error_text(result))
    return [line.strip() for line in result.stdout.splitlines() if line.strip()]


def list_sessions(prefix: str) -> list[dict[str, str]]:
    """Return name, state, status and creation time of containers matching *prefix*.

    Raises:
        RuntimeUnavailable: If the engine cannot be queried.
    """
    cmd = [
        "docker", "ps", "-a",
        "--filter", f"name=^{prefix}",
        "--format", "{{json .}}",
    ]
    try:
        result = _run_cmd(cmd, timeout=TIMEOUT_DOCKER_QUERY)
    except (OSError, subprocess.TimeoutExpired) as exc:
        raise RuntimeUnavailable("Could not list sessions", detail=str(exc)) from exc
    if result.returncode != 0:
        raise RuntimeUnavailable("Could not list sessions", detail=_error_text(result))

    sessions: list[dict[str, str]] = []
    for line in result.stdout.splitlines():
        if not line.strip():
            continue
        try:
            row = json.loads(line)
        except json.JSONDecodeError:
            log_debug(f"Skipping unparseable docker ps line: {line!r}")
            continue
        sessions.append({
            "name": row.get("Names", ""),
            "state": row.get("State", ""),
            "status": row.get("Status", ""),
            "created": row.get("CreatedAt", ""),
        })
    return sessions


# ============================================================================
# Session Lifecycle
# ============================================================================


def create_container(create_args: list[str], name: str) -> str:
    """Reserve *name* by creating (not starting) the session container.

    ``docker create --name`` fails atomically when the name is taken, which
    makes it the reservation point for the allocated identity.

    Args:
        create_args: Full ``docker create ...`` command.
        name: Session name embedded in *create_args* (for diagnostics).

    Returns:
        The new container ID.

    Raises:
        NameCollision: If another container already holds *name*.
        LaunchFailure: If the engine rejects the invocation for any other reason.
    """
    try:
        result = _run_cmd(create_args, timeout=TIMEOUT_DOCKER_CREATE)
    except (OSError, subprocess.TimeoutExpired) as exc:
        # The daemon may have registered the name before the client gave up.
        remove_container(name)
        raise LaunchFailure(f"Could not create session {name}", detail=str(exc)) from exc
    except KeyboardInterrupt:
        remove_container(name)
        raise

    if result.returncode != 0:
        text = _error_text(result)
        if "is already in use" in text:
            raise NameCollision(f"Session name {name} is already in use", detail=text)
        raise LaunchFailure(f"Docker rejected session {name}", detail=text)
    return result.stdout.strip()


def start_container(name: str, *, interactive: bool = True) -> int:
    """Start a created session attached to the caller's standard streams.

    Blocks until the session exits.

    Returns:
        The session's exit code, unchanged.
    """
    cmd = ["docker", "start", "--attach"]
    if interactive:
        cmd.append("--interactive")
    cmd.append(name)
    if get_sandbox_verbose():
        print(f"+ {' '.join(cmd)}", file=sys.stderr)
    result = subprocess.run(cmd, check=False)
    return result.returncode


def remove_container(name: str) -> None:
    """Force-remove a session container. Best-effort.

    Args:
        name: Container name.
    """
    try:
        result = _run_cmd(["docker", "rm", "-f", name], quiet=True, timeout=TIMEOUT_DOCKER_STOP)
    except (OSError, subprocess.SubprocessError) as exc:
        log_warn(f"Could not remove session {name}: {exc}")
        return
    if result.returncode != 0:
        log_debug(f"docker rm -f {name} exited {result.returncode}")


def stop_container(name: str) -> bool:
    """Stop a running session. The engine removes it (``--rm``).

    Returns:
        True if docker reported success.
    """
    try:
        result = _run_cmd(["docker", "stop", name], timeout=TIMEOUT_DOCKER_STOP)
    except (OSError, subprocess.SubprocessError) as exc:
        log_debug(f"docker stop {name} failed: {exc}")
        return False
    if result.returncode != 0:
        log_debug(f"docker stop {name}: {_error_text(result)}")
        return False
    return True


def container_status(name: str) -> str:
    """Return the container's state (``created``, ``running``...), or empty if absent."""
    try:
        result = _run_cmd(
            ["docker", "inspect", "--format", "{{.State.Status}}", name],
            timeout=TIMEOUT_DOCKER_QUERY,
        )
    except (OSError, subprocess.TimeoutExpired) as exc:
        log_debug(f"docker inspect {name} failed: {exc}")
        return ""
    if result.returncode != 0:
        return ""
    return result.stdout.strip()


# ============================================================================
# Probes
# ============================================================================


def socket_group_id(image: str, sock_path: str) -> int | None:
    """Discover the numeric group owning *sock_path* as the engine sees it.

    For VM-backed engines the socket lives inside the VM, so the host cannot
    stat it. A throwaway container of the session image mounts it and runs
    ``stat``.

    Returns:
        The group id, or None if it could not be determined.
    """
    cmd = [
        "docker", "run", "--rm",
        "--entrypoint", "stat",
        "--mount", f"type=bind,source={sock_path},target={sock_path}",
        image,
        "-c", "%g", sock_path,
    ]
    try:
        result = _run_cmd(cmd, timeout=TIMEOUT_DOCKER_PROBE)
    except (OSError, subprocess.TimeoutExpired) as exc:
        log_debug(f"Socket group probe failed: {exc}")
        return None
    if result.returncode != 0:
        log_debug(f"Socket group probe exited {result.returncode}: {_error_text(result)}")
        return None
    try:
        return int(result.stdout.strip())
    except ValueError:
        log_debug(f"Unexpected socket group probe output: {result.stdout!r}")
        return None
