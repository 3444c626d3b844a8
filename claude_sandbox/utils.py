"""Logging and formatting utilities for claude-sandbox.

Info-level output goes to stdout. Launcher progress goes to stderr, as do
warnings and errors with a ``Warning:`` / ``Error:`` prefix. Debug output is gated on
``CLAUDE_SANDBOX_DEBUG=1``.
"""

from __future__ import annotations

import os
import sys

from claude_sandbox.constants import get_sandbox_debug


# Color codes - respect TERM environment variable
def _should_use_colors() -> bool:
    """Check if colors should be used based on TERM environment variable."""
    term = os.environ.get("TERM", "")
    if not term or term == "dumb":
        return False
    return True


_USE_COLORS = _should_use_colors()

# ANSI color codes
BOLD = "\033[1m" if _USE_COLORS else ""
RESET = "\033[0m" if _USE_COLORS else ""


def log_info(msg: str) -> None:
    """Log an info message to stdout.

    Args:
        msg: The message to log.
    """
    print(msg)


def log_debug(msg: str) -> None:
    """Log a debug message (only if CLAUDE_SANDBOX_DEBUG=1).

    Args:
        msg: The message to log.
    """
    if get_sandbox_debug():
        print(f"DEBUG: {msg}", file=sys.stderr)


def log_progress(msg: str) -> None:
    """Log launcher progress to stderr.

    Used while a session is being set up, so a one-shot session's stdout
    carries only its own output.

    Args:
        msg: The message to log.
    """
    print(msg, file=sys.stderr)


def log_warn(msg: str) -> None:
    """Log a warning message to stderr.

    Args:
        msg: The message to log.
    """
    print(f"Warning: {msg}", file=sys.stderr)


def log_error(msg: str) -> None:
    """Log an error message to stderr.

    Args:
        msg: The message to log.
    """
    print(f"Error: {msg}", file=sys.stderr)


def log_section(msg: str) -> None:
    """Log a section header with bold formatting."""
    print()
    print(f"{BOLD}▸ {msg}{RESET}")


# Formatting helper functions (pure functions, not logging)


def format_kv(key: str, value: str) -> str:
    """Format a key-value pair with 2 spaces indent.

    Args:
        key: The key name.
        value: The value.

    Returns:
        Formatted string "  {key}: {value}".
    """
    return f"  {key}: {value}"


def format_table_row(
    name: str, *cols: str, name_width: int = 24
) -> str:
    """Format a table row with a fixed-width name column.

    Args:
        name: The name column (leftmost).
        *cols: Additional columns to display.
        name_width: Width of the name column (default 24 chars).

    Returns:
        Formatted table row string.
    """
    row = f"  {name:<{name_width}}"
    for col in cols:
        row += f" {col}"
    return row
