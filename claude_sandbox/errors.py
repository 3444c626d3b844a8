"""Exception hierarchy for claude-sandbox.

Each launch failure kind maps to its own exception and process exit code so
the CLI can report one clear line and exit with a stable classification.

This module is a base-layer module: it must NOT import from any
other ``claude_sandbox`` submodule.
"""

from __future__ import annotations


class SandboxError(Exception):
    """Base exception for all claude-sandbox errors."""

    exit_code: int = 1

    def __init__(self, message: str, *args: object, detail: str = "") -> None:
        super().__init__(message, *args)
        self.detail = detail


class RuntimeUnavailable(SandboxError):
    """The container engine is unreachable after the bounded start attempt."""

    exit_code = 69


class CredentialUnavailable(SandboxError):
    """The SSH agent is unreachable or the requested key does not exist."""

    exit_code = 77


class NameCollision(SandboxError):
    """Another launch reserved the allocated session name first."""

    exit_code = 75


class LaunchFailure(SandboxError):
    """The engine rejected the composed session invocation."""

    exit_code = 70
