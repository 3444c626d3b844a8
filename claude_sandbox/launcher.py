"""Session launch: compose the container invocation and run it.

A launch is split in two halves so the allocation lock is held only as long
as needed:

* ``reserve_session`` creates (but does not start) the named container. The
  engine rejects a duplicate name atomically, which is how concurrent
  launches detect a race.
* ``attach_session`` starts it attached to the caller's terminal and blocks
  until it exits, returning the session's exit code unchanged.

``run_session`` drives the whole pipeline from raw command-line tokens.
"""

from __future__ import annotations

import os
import sys
from collections.abc import Sequence
from pathlib import Path

from claude_sandbox.atomic_io import file_lock
from claude_sandbox.constants import (
    CONTAINER_HOME,
    CONTAINER_IDE_DIR,
    PASSTHROUGH_ENV,
    SESSION_BASE_NAME,
    get_docker_image,
    get_ide_dir,
    get_sandbox_home,
    get_session_lock_path,
)
from claude_sandbox.credentials import CredentialForwarder
from claude_sandbox.docker import (
    container_status,
    create_container,
    remove_container,
    start_container,
)
from claude_sandbox.errors import LaunchFailure, NameCollision
from claude_sandbox.invocation import normalize
from claude_sandbox.models import CredentialBundle, InvocationSpec, Mount, SessionIdentity
from claude_sandbox.runtime import ensure_ready
from claude_sandbox.session_names import allocate
from claude_sandbox.utils import log_debug, log_warn

# Conventional exit status after SIGINT
EXIT_INTERRUPTED = 130


def _is_tty() -> bool:
    return sys.stdin.isatty() and sys.stdout.isatty()


def session_mounts(config_dir: Path, cwd: Path, bundle: CredentialBundle) -> list[Mount]:
    """Mounts for a session: persistent home, IDE locks, working dir, credentials.

    The working directory is mounted at its own host path so paths reported
    inside the session match the host.
    """
    mounts = [Mount(source=str(config_dir), target=CONTAINER_HOME, read_only=False)]
    ide_dir = get_ide_dir()
    if ide_dir.is_dir():
        mounts.append(Mount(source=str(ide_dir), target=CONTAINER_IDE_DIR))
    mounts.append(Mount(source=str(cwd), target=str(cwd), read_only=False))
    mounts.extend(bundle.mounts)
    return mounts


def build_create_command(
    identity: SessionIdentity,
    bundle: CredentialBundle,
    spec: InvocationSpec,
    *,
    image: str | None = None,
    cwd: Path | None = None,
    config_dir: Path | None = None,
    tty: bool | None = None,
) -> list[str]:
    """Build the ``docker create`` command for a session."""
    cwd = cwd or Path.cwd()
    config_dir = config_dir or get_sandbox_home()
    tty = _is_tty() if tty is None else tty

    cmd = ["docker", "create", "--rm", "--name", identity.name, "--interactive"]
    if tty:
        cmd.append("--tty")

    cmd.extend(["--cpus", spec.limits.cpus, "--memory", spec.limits.memory])

    for gid in bundle.group_ids:
        cmd.extend(["--group-add", str(gid)])

    for mount in session_mounts(config_dir, cwd, bundle):
        cmd.extend(["--mount", mount.to_mount_arg()])
    cmd.extend(["-w", str(cwd)])

    # "-e NAME" makes docker read the value from its own environment,
    # keeping secrets off the command line.
    for name in PASSTHROUGH_ENV:
        if os.environ.get(name):
            cmd.extend(["-e", name])
    for key, value in bundle.env.items():
        cmd.extend(["-e", f"{key}={value}"])

    cmd.append(image or get_docker_image())
    cmd.extend(spec.entrypoint_args())
    return cmd


def reserve_session(
    identity: SessionIdentity,
    bundle: CredentialBundle,
    spec: InvocationSpec,
    *,
    image: str | None = None,
) -> None:
    """Create the session container under *identity*'s name.

    Raises:
        NameCollision: If the name was taken since allocation.
        LaunchFailure: If the engine rejects the invocation.
    """
    cmd = build_create_command(identity, bundle, spec, image=image)
    container_id = create_container(cmd, identity.name)
    log_debug(f"Reserved session {identity.name} ({container_id[:12]})")


def attach_session(name: str) -> int:
    """Start a reserved session attached to this terminal and wait for it.

    Never leaves the named container behind: on interrupt, or when the
    container could not be started, it is force-removed.

    Returns:
        The session's exit code, unchanged.
    """
    try:
        exit_code = start_container(name, interactive=True)
    except KeyboardInterrupt:
        remove_container(name)
        return EXIT_INTERRUPTED
    except OSError as exc:
        remove_container(name)
        raise LaunchFailure(f"Could not start session {name}", detail=str(exc)) from exc

    if container_status(name) == "created":
        # Never ran, so --rm will not clean it up.
        remove_container(name)
        raise LaunchFailure(f"Session {name} failed to start")
    return exit_code


def launch(
    identity: SessionIdentity,
    bundle: CredentialBundle,
    spec: InvocationSpec,
    *,
    image: str | None = None,
) -> int:
    """Create and run one session, returning its exit code."""
    reserve_session(identity, bundle, spec, image=image)
    return attach_session(identity.name)


def _allocate_and_reserve(
    base_name: str,
    bundle: CredentialBundle,
    spec: InvocationSpec,
    image: str,
) -> SessionIdentity:
    """Allocate a name and reserve it, re-allocating once on collision."""
    identity = allocate(base_name)
    try:
        reserve_session(identity, bundle, spec, image=image)
    except NameCollision as exc:
        log_warn(f"{exc}; allocating a new name")
        identity = allocate(base_name)
        reserve_session(identity, bundle, spec, image=image)
    return identity


def run_session(raw_args: Sequence[str], *, base_name: str = SESSION_BASE_NAME) -> int:
    """Launch a session from raw command-line tokens.

    Raises:
        RuntimeUnavailable, CredentialUnavailable, NameCollision, LaunchFailure
    """
    spec = normalize(raw_args)
    ensure_ready()

    image = get_docker_image()
    forwarder = CredentialForwarder(image=image)
    log_debug(f"Credential forwarding strategy: {forwarder.strategy.name}")
    bundle = forwarder.prepare(spec.ssh_key, forward_ssh=spec.forward_ssh)

    reserved: SessionIdentity | None = None
    try:
        try:
            with file_lock(get_session_lock_path()):
                reserved = _allocate_and_reserve(base_name, bundle, spec, image)
        except OSError as exc:
            raise LaunchFailure("Could not reserve a session name", detail=str(exc)) from exc
        log_debug(f"Starting session {reserved.name}")
    except BaseException:
        # Created but never started, so --rm will not reclaim the name.
        if reserved is not None:
            remove_container(reserved.name)
        raise

    return attach_session(reserved.name)
