"""claude-sandbox - Docker-based session launcher for running Claude Code."""

from importlib.metadata import PackageNotFoundError, version as _pkg_version

try:
    __version__ = _pkg_version("claude-sandbox")
except PackageNotFoundError:
    __version__ = "0.4.0"  # fallback for editable installs / dev
