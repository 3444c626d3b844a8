"""Run command: launch one Claude Code session in a fresh container.

Every token after ``run`` is handed to the invocation normalizer untouched:
launcher flags (``--ssh-key``, ``--cpus``, ``--memory``, ``--no-ssh``) are
consumed, other flags reach the in-container entrypoint, and free text
becomes a one-shot prompt.
"""

from __future__ import annotations

import click

from claude_sandbox.commands._helpers import RAW_ARGS_KEY, exit_with_error
from claude_sandbox.errors import SandboxError
from claude_sandbox.launcher import run_session


@click.command(
    context_settings={
        "ignore_unknown_options": True,
        "allow_interspersed_args": False,
        "help_option_names": [],
    },
)
@click.argument("args", nargs=-1, type=click.UNPROCESSED)
@click.pass_context
def run(ctx: click.Context, args: tuple[str, ...]) -> None:
    """Launch a session; free text becomes the prompt.

    \b
    Launcher options:
      --ssh-key NAME|PATH  key to register with the SSH agent
      --cpus N             CPU limit (default 4)
      --memory SIZE        memory limit (default 8g)
      --no-ssh             do not forward the SSH agent
    All other flags are passed to Claude Code.
    """
    raw_args = ctx.meta.get(RAW_ARGS_KEY, list(args))
    try:
        exit_code = run_session(raw_args)
    except SandboxError as exc:
        exit_with_error(exc)
    ctx.exit(exit_code)
