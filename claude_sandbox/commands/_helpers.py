"""Shared helpers for CLI commands."""

from __future__ import annotations

import sys
from typing import NoReturn

from claude_sandbox.errors import SandboxError
from claude_sandbox.utils import log_error

RAW_ARGS_KEY = "claude_sandbox.raw_args"
"""ctx.meta key holding the untouched tokens destined for ``run``."""


def exit_with_error(exc: SandboxError) -> NoReturn:
    """Report a launcher failure and exit with its classification code.

    Prints one ``Error:`` line, then the underlying tool's own text when
    there is any.
    """
    log_error(str(exc))
    if exc.detail:
        print(exc.detail, file=sys.stderr)
    sys.exit(exc.exit_code)
