"""Doctor command: report what a launch would use, without launching.

Checks the engine, the credential forwarding strategy the capability probe
selects, the SSH key that would be registered, and the persistent
directory. Does not start the engine or touch the agent.
"""

from __future__ import annotations

import os
import sys

import click

from claude_sandbox.constants import get_docker_image, get_sandbox_home
from claude_sandbox.credentials import probe_capabilities, resolve_key_path, select_strategy
from claude_sandbox.docker import engine_is_reachable
from claude_sandbox.models import RuntimeState
from claude_sandbox.utils import format_kv, log_section


@click.command()
@click.option("--ssh-key", "ssh_key", default=None, help="Key name or path to check")
def doctor(ssh_key: str | None) -> None:
    """Check the runtime and credential setup."""
    problems = 0

    log_section("Runtime")
    reachable = engine_is_reachable()
    state = RuntimeState.READY if reachable else RuntimeState.UNAVAILABLE
    click.echo(format_kv("engine", state.value))
    if not reachable:
        problems += 1

    caps = probe_capabilities()
    strategy = select_strategy(caps)
    click.echo(format_kv("context", caps.docker_context or "(unknown)"))
    click.echo(format_kv("image", get_docker_image()))

    log_section("Credentials")
    click.echo(format_kv("strategy", strategy.name))
    agent = os.environ.get("SSH_AUTH_SOCK", "")
    click.echo(format_kv("agent", agent or "(not set)"))
    if not agent:
        problems += 1

    key_path = resolve_key_path(ssh_key)
    key_state = "found" if key_path.is_file() else "missing"
    click.echo(format_kv("ssh key", f"{key_path} ({key_state})"))
    if not key_path.is_file():
        problems += 1

    log_section("Storage")
    config_dir = get_sandbox_home()
    click.echo(format_kv("config dir", f"{config_dir}{'' if config_dir.is_dir() else ' (created on first launch)'}"))

    if problems:
        click.echo()
        click.echo(f"{problems} problem(s) found.")
        sys.exit(1)
