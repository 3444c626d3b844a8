"""Command-line normalization for session launches.

Raw tokens are classified by a small deterministic grammar:

1. Launcher flags (``--ssh-key``, ``--cpus``, ``--memory``, ``--no-ssh``)
   are consumed and never reach the container. ``--flag value`` and
   ``--flag=value`` are equivalent.
2. Entrypoint flags listed in ``ENTRYPOINT_VALUE_FLAGS`` take the next token
   as their value verbatim, even when it starts with ``-``.
3. Any other token starting with ``-`` is an unknown flag with no value and
   is passed through unchanged.
4. ``--`` ends flag parsing; everything after it is prompt text.
5. Everything else is prompt text. When no explicit ``-p``/``--print`` was
   given, the text is joined with spaces and delivered as ``-p <text>``
   after all other flags.

Normalization does no I/O and never fails; malformed values are left for
the engine or the in-container entrypoint to reject.
"""

from __future__ import annotations

from collections.abc import Sequence

from claude_sandbox.constants import DEFAULT_CPUS, DEFAULT_MEMORY
from claude_sandbox.models import InvocationSpec, ResourceLimits

# Launcher flag -> number of values it consumes
LAUNCHER_FLAGS: dict[str, int] = {
    "--ssh-key": 1,
    "--cpus": 1,
    "--memory": 1,
    "--no-ssh": 0,
}

PROMPT_FLAGS = frozenset({"-p", "--print"})

ENTRYPOINT_VALUE_FLAGS = frozenset({
    "-p", "--print",
    "-r", "--resume",
    "--model",
    "--fallback-model",
    "--output-format",
    "--input-format",
    "--permission-mode",
    "--append-system-prompt",
    "--system-prompt",
    "--add-dir",
    "--allowedTools", "--allowed-tools",
    "--disallowedTools", "--disallowed-tools",
    "--session-id",
    "--settings",
    "--agents",
    "--max-turns",
})

END_OF_FLAGS = "--"


def _split_inline(token: str) -> tuple[str, str | None]:
    """Split ``--flag=value`` into its parts; other tokens have no inline value."""
    if token.startswith("--") and "=" in token:
        name, _, value = token.partition("=")
        return name, value
    return token, None


def normalize(raw_args: Sequence[str]) -> InvocationSpec:
    """Classify *raw_args* into an InvocationSpec."""
    passthrough: list[str] = []
    free_text: list[str] = []
    launcher: dict[str, str] = {}
    forward_ssh = True
    explicit_prompt = False

    i = 0
    n = len(raw_args)
    while i < n:
        token = raw_args[i]
        i += 1

        if token == END_OF_FLAGS:
            free_text.extend(raw_args[i:])
            break

        if not token.startswith("-") or token == "-":
            free_text.append(token)
            continue

        name, inline = _split_inline(token)

        if name in LAUNCHER_FLAGS:
            if LAUNCHER_FLAGS[name] == 0:
                forward_ssh = False
            elif inline is not None:
                launcher[name] = inline
            elif i < n:
                launcher[name] = raw_args[i]
                i += 1
            # a trailing launcher flag without a value is dropped
            continue

        if name in PROMPT_FLAGS:
            explicit_prompt = True

        passthrough.append(token)
        if name in ENTRYPOINT_VALUE_FLAGS and inline is None and i < n:
            passthrough.append(raw_args[i])
            i += 1

    limits = ResourceLimits(
        cpus=launcher.get("--cpus", DEFAULT_CPUS),
        memory=launcher.get("--memory", DEFAULT_MEMORY),
    )

    prompt: str | None = None
    trailing: tuple[str, ...] = ()
    if free_text:
        if explicit_prompt:
            trailing = tuple(free_text)
        else:
            prompt = " ".join(free_text)

    return InvocationSpec(
        passthrough=tuple(passthrough),
        prompt=prompt,
        trailing=trailing,
        limits=limits,
        ssh_key=launcher.get("--ssh-key"),
        forward_ssh=forward_ssh,
    )
