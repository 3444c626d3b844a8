from __future__ import annotations

import csv
import io
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from claude_sandbox.constants import DEFAULT_CPUS, DEFAULT_MEMORY


class RuntimeState(str, Enum):
    """Reachability of the container engine, derived fresh on every launch."""

    UNAVAILABLE = "unavailable"
    STARTING = "starting"
    READY = "ready"


class SessionIdentity(BaseModel):
    """Unique session name: a base name plus a non-negative integer suffix."""

    model_config = ConfigDict(frozen=True)

    base_name: str
    """Human-readable prefix shared by all sessions."""

    index: int = Field(ge=0)
    """Lowest suffix not in use at allocation time."""

    @property
    def name(self) -> str:
        """Container name, e.g. ``sandbox-0``."""
        return f"{self.base_name}-{self.index}"

    def __str__(self) -> str:
        return self.name


class Mount(BaseModel):
    """A (source-path, mount-target, access-mode) triple."""

    model_config = ConfigDict(frozen=True)

    source: str
    target: str
    read_only: bool = True

    def to_mount_arg(self) -> str:
        """Render as a docker ``--mount`` value.

        The value is one CSV record, so paths containing ``:`` need no
        escaping and fields containing ``,`` or ``"`` are quoted.
        """
        fields = ["type=bind", f"source={self.source}", f"target={self.target}"]
        if self.read_only:
            fields.append("readonly")
        buf = io.StringIO()
        csv.writer(buf, lineterminator="").writerow(fields)
        return buf.getvalue()


class CredentialBundle(BaseModel):
    """Credential forwarding mechanism for one session.

    Returned by CredentialForwarder.prepare(), consumed by the launcher.
    """

    strategy: str = "none"
    """Name of the forwarding strategy that produced this bundle."""

    key_path: str = ""
    """SSH private key registered with the host agent (empty when not forwarding)."""

    mounts: list[Mount] = Field(default_factory=list)
    """Agent socket, git identity and known_hosts mounts."""

    env: dict[str, str] = Field(default_factory=dict)
    """Environment set inside the session (SSH_AUTH_SOCK)."""

    group_ids: list[int] = Field(default_factory=list)
    """Supplementary groups granting access to the forwarded socket."""


class ResourceLimits(BaseModel):
    """CPU and memory limits, passed to the engine unvalidated."""

    model_config = ConfigDict(frozen=True)

    cpus: str = DEFAULT_CPUS
    memory: str = DEFAULT_MEMORY


class InvocationSpec(BaseModel):
    """Normalized launcher input. Immutable once built."""

    model_config = ConfigDict(frozen=True)

    passthrough: tuple[str, ...] = ()
    """Flags for the in-container entrypoint, in the order given."""

    prompt: str | None = None
    """Synthesized one-shot prompt text, delivered as ``-p <prompt>``."""

    trailing: tuple[str, ...] = ()
    """Free text left over when an explicit prompt flag was already given."""

    limits: ResourceLimits = Field(default_factory=ResourceLimits)

    ssh_key: str | None = None
    """``--ssh-key`` override (bare key name or path)."""

    forward_ssh: bool = True
    """False when ``--no-ssh`` was given."""

    def entrypoint_args(self) -> list[str]:
        """Arguments appended after the image reference."""
        args = list(self.passthrough) + list(self.trailing)
        if self.prompt is not None:
            args.extend(["-p", self.prompt])
        return args


class HostCapabilities(BaseModel):
    """Result of the host capability probe used to pick a forwarding strategy."""

    docker_context: str = ""
    """Active docker CLI context (``colima``, ``desktop-linux``, ``default``...)."""

    engine_os: str = ""
    """``docker info`` OperatingSystem string."""

    colima_running: bool = False
    """Whether ``colima status`` reports a running VM."""

    host_agent_sock: str = ""
    """Host SSH_AUTH_SOCK when it points at an existing socket."""
