"""Stop command: stop one running session.

The session was started with ``--rm``, so stopping it also removes it and
frees its name.
"""

from __future__ import annotations

import sys

import click

from claude_sandbox.constants import SESSION_BASE_NAME
from claude_sandbox.docker import stop_container
from claude_sandbox.session_names import used_indices
from claude_sandbox.utils import log_error, log_info


@click.command()
@click.argument("name")
def stop(name: str) -> None:
    """Stop a running session by NAME (e.g. claude-sandbox-0)."""
    if not used_indices(SESSION_BASE_NAME, [name]):
        log_error(f"'{name}' is not a session name ({SESSION_BASE_NAME}-N)")
        sys.exit(1)

    log_info(f"Stopping session: {name}...")
    if not stop_container(name):
        log_error(f"Could not stop session {name}")
        sys.exit(1)
