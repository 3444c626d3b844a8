"""Host credential forwarding for sandbox sessions.

SECURITY-CRITICAL: private keys never enter the container. The key is
registered with the host's SSH agent and only the agent socket is
forwarded; the git identity is copied into the persistent directory and
mounted read-only.

The forwarding mechanism depends on where the engine runs:

* VM-backed engines (Colima, Docker Desktop, OrbStack) expose the host agent
  at a well-known socket inside the VM. The socket's owning group is only
  visible from inside the VM, so it is discovered with a throwaway container.
* Native daemons bind-mount the host ``SSH_AUTH_SOCK`` directly.

The strategy is chosen from a ``HostCapabilities`` probe, never from the
host platform name, so tests can inject any capability set.
"""

from __future__ import annotations

import os
import shutil
import stat
import subprocess
from abc import ABC, abstractmethod
from pathlib import Path

from claude_sandbox.atomic_io import atomic_copy
from claude_sandbox.constants import (
    CONTAINER_GITCONFIG,
    CONTAINER_KNOWN_HOSTS,
    DEFAULT_SSH_KEY_NAME,
    SSH_AGENT_CONTAINER_SOCK,
    SSH_KEY_ENV_VAR,
    TIMEOUT_DOCKER_QUERY,
    TIMEOUT_LOCAL_CMD,
    VM_SSH_AGENT_SOCK,
    get_docker_image,
    get_sandbox_home,
    get_ssh_dir,
)
from claude_sandbox.docker import docker_context, engine_operating_system, socket_group_id
from claude_sandbox.errors import CredentialUnavailable
from claude_sandbox.models import CredentialBundle, HostCapabilities, Mount
from claude_sandbox.utils import log_debug, log_progress, log_warn

VM_CONTEXTS = frozenset({"colima", "desktop-linux", "orbstack", "rancher-desktop"})
"""Docker contexts whose engine runs inside a VM."""

VM_ENGINE_MARKERS = ("Docker Desktop", "OrbStack")

# ssh-add -l exit status when it cannot talk to the agent
_SSH_ADD_NO_AGENT = 2


# ============================================================================
# Capability Probe
# ============================================================================


def _host_agent_sock() -> str:
    sock = os.environ.get("SSH_AUTH_SOCK", "")
    if not sock:
        return ""
    return sock if Path(sock).exists() else ""


def _colima_running() -> bool:
    if not shutil.which("colima"):
        return False
    try:
        result = subprocess.run(
            ["colima", "status"],
            capture_output=True, text=True, check=False,
            timeout=TIMEOUT_DOCKER_QUERY,
        )
    except (OSError, subprocess.TimeoutExpired) as exc:
        log_debug(f"colima status failed: {exc}")
        return False
    return result.returncode == 0


def probe_capabilities() -> HostCapabilities:
    """Inspect the host and active engine."""
    return HostCapabilities(
        docker_context=docker_context(),
        engine_os=engine_operating_system(),
        colima_running=_colima_running(),
        host_agent_sock=_host_agent_sock(),
    )


def is_vm_backed(caps: HostCapabilities) -> bool:
    """Whether the active engine runs inside a virtualization layer.

    The active context and the engine itself decide. A running Colima VM
    only decides when neither could be read.
    """
    context = caps.docker_context
    if context in VM_CONTEXTS or context.startswith("colima-"):
        return True
    if any(marker in caps.engine_os for marker in VM_ENGINE_MARKERS):
        return True
    if context or caps.engine_os:
        return False
    return caps.colima_running


# ============================================================================
# Forwarding Strategies
# ============================================================================


class CredentialForwardStrategy(ABC):
    """Exposes the host SSH agent inside a session."""

    name: str = ""

    def __init__(self, caps: HostCapabilities) -> None:
        self.caps = caps

    @abstractmethod
    def forward(self, image: str) -> CredentialBundle:
        """Return the socket mount, environment and groups for the agent."""


class VmSocketStrategy(CredentialForwardStrategy):
    """Agent socket published by the VM at a well-known path."""

    name = "vm-socket"

    def forward(self, image: str) -> CredentialBundle:
        group_ids: list[int] = []
        gid = socket_group_id(image, VM_SSH_AGENT_SOCK)
        if gid is None:
            log_warn(
                f"Could not determine the group owning {VM_SSH_AGENT_SOCK}; "
                "git over SSH may fail inside the session."
            )
        else:
            group_ids.append(gid)
        return CredentialBundle(
            strategy=self.name,
            mounts=[Mount(source=VM_SSH_AGENT_SOCK, target=VM_SSH_AGENT_SOCK, read_only=False)],
            env={"SSH_AUTH_SOCK": VM_SSH_AGENT_SOCK},
            group_ids=group_ids,
        )


class HostSocketStrategy(CredentialForwardStrategy):
    """Host agent socket bind-mounted directly (native daemon)."""

    name = "host-socket"

    def forward(self, image: str) -> CredentialBundle:
        sock = self.caps.host_agent_sock
        if not sock:
            raise CredentialUnavailable(
                "SSH agent socket not found (SSH_AUTH_SOCK is unset or stale)",
                detail="Start an agent with: eval \"$(ssh-agent)\"",
            )
        group_ids: list[int] = []
        try:
            st = os.stat(sock)
        except OSError as exc:
            raise CredentialUnavailable(f"Cannot stat SSH agent socket {sock}", detail=str(exc)) from exc
        if st.st_mode & (stat.S_IRGRP | stat.S_IWGRP):
            group_ids.append(st.st_gid)
        return CredentialBundle(
            strategy=self.name,
            mounts=[Mount(source=sock, target=SSH_AGENT_CONTAINER_SOCK, read_only=False)],
            env={"SSH_AUTH_SOCK": SSH_AGENT_CONTAINER_SOCK},
            group_ids=group_ids,
        )


def select_strategy(caps: HostCapabilities) -> CredentialForwardStrategy:
    """Pick the forwarding strategy for the probed host."""
    if is_vm_backed(caps):
        return VmSocketStrategy(caps)
    return HostSocketStrategy(caps)


# ============================================================================
# SSH Key Registration
# ============================================================================


def resolve_key_path(requested: str | None = None) -> Path:
    """Resolve which private key to register.

    Precedence: *requested* (``--ssh-key``) > ``CLAUDE_SANDBOX_SSH_KEY`` >
    ``id_ed25519``. A bare name is looked up in ``~/.ssh``; anything with a
    path separator or a leading ``~`` is used as a path.
    """
    name = requested or os.environ.get(SSH_KEY_ENV_VAR) or DEFAULT_SSH_KEY_NAME
    if os.sep in name or name.startswith("~"):
        return Path(name).expanduser().resolve()
    return get_ssh_dir() / name


def _key_fingerprint(key_path: Path) -> str:
    """Fingerprint of *key_path* as printed by ``ssh-add -l``, or empty string."""
    pub = key_path.with_name(key_path.name + ".pub")
    target = pub if pub.is_file() else key_path
    try:
        result = subprocess.run(
            ["ssh-keygen", "-l", "-f", str(target)],
            capture_output=True, text=True, check=False,
            timeout=TIMEOUT_LOCAL_CMD,
        )
    except (OSError, subprocess.TimeoutExpired) as exc:
        log_debug(f"ssh-keygen failed for {target}: {exc}")
        return ""
    fields = result.stdout.split()
    if result.returncode != 0 or len(fields) < 2:
        return ""
    return fields[1]


def register_key(key_path: Path) -> None:
    """Make sure *key_path* is loaded in the host SSH agent.

    Raises:
        CredentialUnavailable: If the key is missing, no agent is reachable,
            or ``ssh-add`` fails.
    """
    if not key_path.is_file():
        raise CredentialUnavailable(
            f"SSH key not found: {key_path}",
            detail=f"Pass --ssh-key <name|path> or set {SSH_KEY_ENV_VAR}.",
        )
    if not os.environ.get("SSH_AUTH_SOCK"):
        raise CredentialUnavailable(
            "No SSH agent available (SSH_AUTH_SOCK is not set)",
            detail="Start an agent with: eval \"$(ssh-agent)\"",
        )

    try:
        listed = subprocess.run(
            ["ssh-add", "-l"],
            capture_output=True, text=True, check=False,
            timeout=TIMEOUT_LOCAL_CMD,
        )
    except (OSError, subprocess.TimeoutExpired) as exc:
        raise CredentialUnavailable("Could not query the SSH agent", detail=str(exc)) from exc
    if listed.returncode == _SSH_ADD_NO_AGENT:
        raise CredentialUnavailable(
            "Could not connect to the SSH agent",
            detail=(listed.stderr or listed.stdout).strip(),
        )

    fingerprint = _key_fingerprint(key_path)
    if fingerprint and fingerprint in listed.stdout:
        log_debug(f"SSH key already loaded: {key_path}")
        return

    log_progress(f"Adding SSH key {key_path} to agent")
    try:
        # Attached to the terminal: ssh-add may prompt for a passphrase.
        added = subprocess.run(["ssh-add", str(key_path)], check=False)
    except OSError as exc:
        raise CredentialUnavailable("Could not run ssh-add", detail=str(exc)) from exc
    if added.returncode != 0:
        raise CredentialUnavailable(f"ssh-add failed for {key_path} (exit {added.returncode})")


# ============================================================================
# Git Identity
# ============================================================================


def _git_identity_sources() -> list[Path]:
    xdg = os.environ.get("XDG_CONFIG_HOME") or str(Path.home() / ".config")
    return [Path.home() / ".gitconfig", Path(xdg) / "git" / "config"]


def copy_git_identity(config_dir: Path) -> Path | None:
    """Copy the host git identity into *config_dir*, replacing any old copy.

    Returns:
        Path of the copy, or None if the host has no git config.
    """
    for source in _git_identity_sources():
        if source.is_file():
            dest = config_dir / ".gitconfig"
            atomic_copy(source, dest)
            log_debug(f"Copied git identity {source} -> {dest}")
            return dest
    log_warn("No git identity found (~/.gitconfig); commits inside the session will lack an author.")
    return None


# ============================================================================
# Forwarder
# ============================================================================


class CredentialForwarder:
    """Prepares the credential bundle for one launch."""

    def __init__(
        self,
        caps: HostCapabilities | None = None,
        *,
        image: str | None = None,
        config_dir: Path | None = None,
    ) -> None:
        self.caps = caps if caps is not None else probe_capabilities()
        self.strategy = select_strategy(self.caps)
        self.image = image or get_docker_image()
        self.config_dir = config_dir or get_sandbox_home()

    def prepare(self, requested_key: str | None = None, *, forward_ssh: bool = True) -> CredentialBundle:
        """Register the SSH key, refresh the git identity, pick the socket mechanism.

        Raises:
            CredentialUnavailable: If SSH forwarding is requested and the key
                or agent is unavailable.
        """
        key_path: Path | None = None
        if forward_ssh:
            key_path = resolve_key_path(requested_key)
            register_key(key_path)

        self.config_dir.mkdir(parents=True, exist_ok=True)
        mounts: list[Mount] = []
        gitconfig = copy_git_identity(self.config_dir)
        if gitconfig is not None:
            mounts.append(Mount(source=str(gitconfig), target=CONTAINER_GITCONFIG))

        known_hosts = get_ssh_dir() / "known_hosts"
        if known_hosts.is_file():
            mounts.append(Mount(source=str(known_hosts), target=CONTAINER_KNOWN_HOSTS))

        if key_path is None:
            return CredentialBundle(strategy="none", mounts=mounts)

        agent = self.strategy.forward(self.image)
        return agent.model_copy(update={
            "key_path": str(key_path),
            "mounts": mounts + agent.mounts,
        })
