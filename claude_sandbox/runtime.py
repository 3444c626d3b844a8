"""Container engine readiness probe.

``ensure_ready()`` gates every launch: it checks that the docker engine
answers, and if not, starts it with whichever starter tool the host has
(Colima for VM-backed engines, systemd for native daemons), then polls at a
fixed interval until a bounded budget runs out.
"""

from __future__ import annotations

import math
import shutil
import subprocess
import time
from typing import Callable, NamedTuple

from claude_sandbox.constants import (
    RUNTIME_POLL_INTERVAL,
    TIMEOUT_RUNTIME_START,
    get_daemon_start_timeout,
    get_vm_start_timeout,
)
from claude_sandbox.docker import engine_is_reachable
from claude_sandbox.errors import RuntimeUnavailable
from claude_sandbox.models import RuntimeState
from claude_sandbox.utils import log_debug, log_progress, log_warn


class EngineStarter(NamedTuple):
    """A start command and the wait budget that applies after running it."""

    tool: str
    command: list[str]
    budget: Callable[[], int]


STARTERS: tuple[EngineStarter, ...] = (
    EngineStarter("colima", ["colima", "start", "--ssh-agent"], get_vm_start_timeout),
    EngineStarter("systemctl", ["sudo", "systemctl", "start", "docker"], get_daemon_start_timeout),
)
"""Tried in order; the first whose tool is on PATH is used."""

REMEDIATION = (
    "Start your container runtime and try again:\n"
    "  macOS:  colima start --ssh-agent\n"
    "  Linux:  sudo systemctl start docker"
)


def _find_starter() -> EngineStarter | None:
    for starter in STARTERS:
        if shutil.which(starter.tool):
            return starter
    return None


def start_engine() -> int:
    """Run the host's engine starter as a best-effort side effect.

    A missing starter tool or a failing start command is not fatal; the
    caller still polls.

    Returns:
        Seconds to wait for the engine to come up.
    """
    starter = _find_starter()
    if starter is None:
        log_debug("No runtime starter found on PATH; waiting without starting")
        return get_daemon_start_timeout()

    log_progress(f"Docker is not running, starting it with {starter.tool}...")
    try:
        result = subprocess.run(
            starter.command,
            check=False,
            timeout=TIMEOUT_RUNTIME_START,
        )
        if result.returncode != 0:
            log_warn(f"'{' '.join(starter.command)}' exited with {result.returncode}")
    except (OSError, subprocess.TimeoutExpired) as exc:
        log_warn(f"Could not run '{' '.join(starter.command)}': {exc}")
    return starter.budget()


def wait_for_engine(timeout: float, interval: float = RUNTIME_POLL_INTERVAL) -> int:
    """Poll the engine every *interval* seconds for at most *timeout* seconds.

    Returns:
        The number of polls it took for the engine to answer.

    Raises:
        RuntimeUnavailable: After ``ceil(timeout / interval)`` failed polls.
    """
    max_polls = max(1, math.ceil(timeout / interval))
    for poll in range(1, max_polls + 1):
        time.sleep(interval)
        if engine_is_reachable():
            log_debug(f"Engine reachable after {poll} poll(s)")
            return poll
    raise RuntimeUnavailable(
        f"Docker did not become reachable within {timeout:g}s",
        detail=REMEDIATION,
    )


def ensure_ready() -> RuntimeState:
    """Make sure the container engine is reachable.

    Returns:
        RuntimeState.READY.

    Raises:
        RuntimeUnavailable: If the engine is still unreachable after the
            start budget.
    """
    if engine_is_reachable():
        return RuntimeState.READY

    state = RuntimeState.STARTING
    log_debug(f"Runtime state: {state.value}")
    budget = start_engine()
    wait_for_engine(budget)
    log_progress("Docker is now running.")
    return RuntimeState.READY
