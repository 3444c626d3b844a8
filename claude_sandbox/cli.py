"""Click-based CLI entrypoint for claude-sandbox.

Subcommands are loaded lazily. Anything that is not a subcommand name (free
text, entrypoint flags, or nothing at all) is routed to ``run``, so
``ccs fix the failing test`` and ``ccs --model opus`` launch a session
directly.
"""

from __future__ import annotations

import importlib
import os
import sys

import click

from claude_sandbox import __version__
from claude_sandbox.commands._helpers import RAW_ARGS_KEY
from claude_sandbox.utils import log_debug

DEFAULT_COMMAND = "run"

_LAZY_COMMANDS: dict[str, tuple[str, str]] = {
    "doctor": ("claude_sandbox.commands.doctor", "doctor"),
    "ps": ("claude_sandbox.commands.ps", "ps"),
    "run": ("claude_sandbox.commands.run", "run"),
    "stop": ("claude_sandbox.commands.stop", "stop"),
}

_GROUP_OPTIONS = frozenset({"--help", "--version"})


class SandboxGroup(click.Group):
    """Custom Click group with lazy loading and a default command.

    Behaviour:
    * Command modules are imported on first access, not at import time.
    * When the first token is not a subcommand or a group option, the
      invocation is rewritten to ``run <tokens...>``.
    * Tokens for ``run`` are stashed verbatim in ``ctx.meta`` because Click's
      parser would otherwise swallow a leading ``--``.
    """

    def list_commands(self, ctx: click.Context) -> list[str]:
        """Return all available command names (eager + lazy)."""
        eager = set(self.commands or {})
        return sorted(eager | _LAZY_COMMANDS.keys())

    def get_command(self, ctx: click.Context, cmd_name: str) -> click.Command | None:
        """Look up a command, importing lazily if needed."""
        cmd = self.commands.get(cmd_name)
        if cmd is not None:
            return cmd

        entry = _LAZY_COMMANDS.get(cmd_name)
        if entry is None:
            return None

        module_path, attr_name = entry
        mod = importlib.import_module(module_path)
        loaded_cmd: click.Command = getattr(mod, attr_name)
        # Cache so subsequent lookups skip the import
        self.add_command(loaded_cmd, cmd_name)
        return loaded_cmd

    def parse_args(self, ctx: click.Context, args: list[str]) -> list[str]:
        """Route non-subcommand invocations to the default command."""
        args = list(args)
        if not args or (args[0] not in _GROUP_OPTIONS and args[0] not in self.list_commands(ctx)):
            log_debug(f"No subcommand given, defaulting to '{DEFAULT_COMMAND}'")
            args = [DEFAULT_COMMAND, *args]
        if args[0] == DEFAULT_COMMAND:
            ctx.meta[RAW_ARGS_KEY] = args[1:]
        return super().parse_args(ctx, args)


@click.group(cls=SandboxGroup)
@click.version_option(__version__, prog_name="claude-sandbox")
@click.pass_context
def cli(ctx: click.Context) -> None:
    """claude-sandbox - run Claude Code in a throwaway Docker container.

    Without a subcommand, all arguments are passed to `run`.
    """
    ctx.ensure_object(dict)


# ---------------------------------------------------------------------------
# Entry Point
# ---------------------------------------------------------------------------


def _validate_lazy_commands() -> None:
    """Verify all lazy command entries resolve to valid modules.

    Only runs when CLAUDE_SANDBOX_VALIDATE_COMMANDS=1 is set (debug/CI).
    """
    if not os.environ.get("CLAUDE_SANDBOX_VALIDATE_COMMANDS"):
        return
    for cmd_name, (module_path, attr_name) in _LAZY_COMMANDS.items():
        try:
            mod = importlib.import_module(module_path)
            if not hasattr(mod, attr_name):
                raise RuntimeError(
                    f"Lazy command '{cmd_name}' is broken: "
                    f"{module_path}.{attr_name} not found"
                )
        except ImportError as exc:
            raise RuntimeError(
                f"Lazy command '{cmd_name}' is broken: {exc}"
            ) from exc


def main() -> None:
    """Entry point for the CLI.

    Uses ``standalone_mode=False`` so exit codes are managed here: a
    session's exit code reaches the shell unchanged, launcher failures exit
    with their classification code, and Click usage errors exit 1.
    """
    _validate_lazy_commands()
    try:
        result = cli(standalone_mode=False)
    except click.UsageError as exc:
        click.echo(f"Error: {exc.format_message()}", err=True)
        sys.exit(1)
    except click.Abort:
        sys.exit(130)
    if isinstance(result, int):
        sys.exit(result)


if __name__ == "__main__":
    main()
