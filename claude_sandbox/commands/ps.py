"""Ps command: list sessions known to the engine.

Shows running and stopped-but-named sessions, the same set the name
allocator treats as taken.

Flags:
  --json: Output results as JSON array
"""

from __future__ import annotations

import json

import click

from claude_sandbox.commands._helpers import exit_with_error
from claude_sandbox.constants import SESSION_BASE_NAME
from claude_sandbox.docker import list_sessions
from claude_sandbox.errors import SandboxError
from claude_sandbox.session_names import used_indices
from claude_sandbox.utils import BOLD, RESET, format_table_row


def _session_rows() -> list[dict[str, str]]:
    rows = list_sessions(f"{SESSION_BASE_NAME}-")
    return [
        row for row in rows
        if used_indices(SESSION_BASE_NAME, [row["name"]])
    ]


@click.command()
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def ps(as_json: bool) -> None:
    """List sandbox sessions."""
    try:
        rows = _session_rows()
    except SandboxError as exc:
        exit_with_error(exc)

    if as_json:
        click.echo(json.dumps(rows, indent=2))
        return

    if not rows:
        click.echo("No sessions.")
        return

    click.echo(f"{BOLD}{format_table_row('NAME', 'STATE', 'STATUS')}{RESET}")
    for row in rows:
        click.echo(format_table_row(row["name"], f"{row['state']:<10}", row["status"]))
