"""Unit tests for claude_sandbox.credentials.

Strategies are selected from injected HostCapabilities; ssh-add, ssh-keygen
and docker are mocked so no agent or engine is needed.
"""
from __future__ import annotations

import os
import subprocess
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from claude_sandbox.constants import (
    CONTAINER_GITCONFIG,
    CONTAINER_KNOWN_HOSTS,
    SSH_AGENT_CONTAINER_SOCK,
    VM_SSH_AGENT_SOCK,
)
from claude_sandbox.credentials import (
    CredentialForwarder,
    HostSocketStrategy,
    VmSocketStrategy,
    copy_git_identity,
    is_vm_backed,
    register_key,
    resolve_key_path,
    select_strategy,
)
from claude_sandbox.errors import CredentialUnavailable
from claude_sandbox.models import HostCapabilities


def _completed(stdout="", stderr="", returncode=0):
    cp = MagicMock(spec=subprocess.CompletedProcess)
    cp.stdout = stdout
    cp.stderr = stderr
    cp.returncode = returncode
    return cp


FINGERPRINT = "SHA256:abcdefghijklmnop"


def _fake_ssh(listed="", list_rc=0, add_rc=0):
    """Return a subprocess.run side effect emulating ssh-add and ssh-keygen."""
    calls: list[list[str]] = []

    def run(args, **kwargs):
        calls.append(list(args))
        if args[:2] == ["ssh-add", "-l"]:
            return _completed(stdout=listed, returncode=list_rc)
        if args[0] == "ssh-keygen":
            return _completed(stdout=f"256 {FINGERPRINT} me@host (ED25519)\n")
        if args[0] == "ssh-add":
            return _completed(returncode=add_rc)
        raise AssertionError(f"unexpected command {args}")

    run.calls = calls
    return run


@pytest.fixture
def ssh_home(isolated_home, monkeypatch, tmp_path):
    """Fake home with ~/.ssh/id_ed25519 and a live-looking agent socket."""
    ssh_dir = isolated_home / ".ssh"
    ssh_dir.mkdir()
    (ssh_dir / "id_ed25519").write_text("PRIVATE")
    sock = tmp_path / "agent.sock"
    sock.write_text("")
    monkeypatch.setenv("SSH_AUTH_SOCK", str(sock))
    return isolated_home


# ---------------------------------------------------------------------------
# Key resolution
# ---------------------------------------------------------------------------


class TestResolveKeyPath:

    def test_default_key(self, isolated_home):
        assert resolve_key_path() == isolated_home / ".ssh" / "id_ed25519"

    def test_env_overrides_default(self, isolated_home, monkeypatch):
        monkeypatch.setenv("CLAUDE_SANDBOX_SSH_KEY", "id_work")
        assert resolve_key_path() == isolated_home / ".ssh" / "id_work"

    def test_flag_overrides_env(self, isolated_home, monkeypatch):
        monkeypatch.setenv("CLAUDE_SANDBOX_SSH_KEY", "id_work")
        assert resolve_key_path("custom") == isolated_home / ".ssh" / "custom"

    def test_absolute_path(self, isolated_home, tmp_path):
        key = tmp_path / "keys" / "deploy"
        assert resolve_key_path(str(key)) == key.resolve()

    def test_tilde_path(self, isolated_home):
        assert resolve_key_path("~/keys/deploy") == (isolated_home / "keys" / "deploy").resolve()


# ---------------------------------------------------------------------------
# Strategy selection
# ---------------------------------------------------------------------------


class TestStrategySelection:

    @pytest.mark.parametrize("caps", [
        HostCapabilities(colima_running=True),
        HostCapabilities(docker_context="colima"),
        HostCapabilities(docker_context="colima-work"),
        HostCapabilities(docker_context="desktop-linux"),
        HostCapabilities(engine_os="Docker Desktop"),
        HostCapabilities(engine_os="OrbStack"),
    ])
    def test_vm_backed(self, caps):
        assert is_vm_backed(caps)
        assert isinstance(select_strategy(caps), VmSocketStrategy)

    def test_native_daemon(self):
        caps = HostCapabilities(docker_context="default", engine_os="Ubuntu 24.04 LTS")
        assert not is_vm_backed(caps)
        assert isinstance(select_strategy(caps), HostSocketStrategy)

    def test_native_context_wins_over_running_colima(self):
        caps = HostCapabilities(
            docker_context="default", engine_os="Ubuntu 24.04 LTS", colima_running=True,
        )
        assert not is_vm_backed(caps)
        assert isinstance(select_strategy(caps), HostSocketStrategy)

    def test_colima_breaks_tie_when_engine_unreadable(self):
        assert is_vm_backed(HostCapabilities(colima_running=True))
        assert not is_vm_backed(HostCapabilities())


class TestVmSocketStrategy:

    @patch("claude_sandbox.credentials.socket_group_id", return_value=102)
    def test_mounts_vm_socket_with_group(self, mock_gid):
        bundle = VmSocketStrategy(HostCapabilities(colima_running=True)).forward("img:1")
        mock_gid.assert_called_once_with("img:1", VM_SSH_AGENT_SOCK)
        assert bundle.strategy == "vm-socket"
        assert bundle.group_ids == [102]
        assert bundle.env == {"SSH_AUTH_SOCK": VM_SSH_AGENT_SOCK}
        assert [m.to_mount_arg() for m in bundle.mounts] == [
            f"type=bind,source={VM_SSH_AGENT_SOCK},target={VM_SSH_AGENT_SOCK}"
        ]

    @patch("claude_sandbox.credentials.socket_group_id", return_value=None)
    def test_unknown_group_warns(self, _mock_gid, capsys):
        bundle = VmSocketStrategy(HostCapabilities(colima_running=True)).forward("img")
        assert bundle.group_ids == []
        assert "Warning:" in capsys.readouterr().err


class TestHostSocketStrategy:

    def test_no_socket(self):
        with pytest.raises(CredentialUnavailable):
            HostSocketStrategy(HostCapabilities()).forward("img")

    def test_group_accessible_socket(self, tmp_path):
        sock = tmp_path / "agent.sock"
        sock.write_text("")
        os.chmod(sock, 0o660)
        bundle = HostSocketStrategy(HostCapabilities(host_agent_sock=str(sock))).forward("img")
        assert bundle.group_ids == [sock.stat().st_gid]
        assert bundle.mounts[0].source == str(sock)
        assert bundle.mounts[0].target == SSH_AGENT_CONTAINER_SOCK
        assert bundle.env == {"SSH_AUTH_SOCK": SSH_AGENT_CONTAINER_SOCK}

    def test_owner_only_socket(self, tmp_path):
        sock = tmp_path / "agent.sock"
        sock.write_text("")
        os.chmod(sock, 0o600)
        bundle = HostSocketStrategy(HostCapabilities(host_agent_sock=str(sock))).forward("img")
        assert bundle.group_ids == []


# ---------------------------------------------------------------------------
# Key registration
# ---------------------------------------------------------------------------


class TestRegisterKey:

    def test_missing_key(self, ssh_home):
        with pytest.raises(CredentialUnavailable, match="SSH key not found"):
            register_key(ssh_home / ".ssh" / "nope")

    def test_no_agent(self, ssh_home, monkeypatch):
        monkeypatch.delenv("SSH_AUTH_SOCK")
        with pytest.raises(CredentialUnavailable, match="No SSH agent"):
            register_key(ssh_home / ".ssh" / "id_ed25519")

    def test_agent_unreachable(self, ssh_home):
        fake = _fake_ssh(list_rc=2)
        with patch("claude_sandbox.credentials.subprocess.run", side_effect=fake):
            with pytest.raises(CredentialUnavailable, match="Could not connect"):
                register_key(ssh_home / ".ssh" / "id_ed25519")

    def test_adds_key_when_absent(self, ssh_home, capsys):
        fake = _fake_ssh(listed="The agent has no identities.\n", list_rc=1)
        key = ssh_home / ".ssh" / "id_ed25519"
        with patch("claude_sandbox.credentials.subprocess.run", side_effect=fake):
            register_key(key)
        assert ["ssh-add", str(key)] in fake.calls
        out, err = capsys.readouterr()
        assert out == ""
        assert "Adding SSH key" in err

    def test_skips_loaded_key(self, ssh_home):
        fake = _fake_ssh(listed=f"256 {FINGERPRINT} me@host (ED25519)\n")
        key = ssh_home / ".ssh" / "id_ed25519"
        with patch("claude_sandbox.credentials.subprocess.run", side_effect=fake):
            register_key(key)
        assert ["ssh-add", str(key)] not in fake.calls

    def test_ssh_add_failure(self, ssh_home):
        fake = _fake_ssh(list_rc=1, add_rc=1)
        with patch("claude_sandbox.credentials.subprocess.run", side_effect=fake):
            with pytest.raises(CredentialUnavailable, match="ssh-add failed"):
                register_key(ssh_home / ".ssh" / "id_ed25519")


# ---------------------------------------------------------------------------
# Git identity
# ---------------------------------------------------------------------------


class TestCopyGitIdentity:

    def test_copies_and_overwrites(self, isolated_home, tmp_path):
        (isolated_home / ".gitconfig").write_text("[user]\n\tname = New\n")
        config_dir = tmp_path / "cfg"
        config_dir.mkdir()
        (config_dir / ".gitconfig").write_text("[user]\n\tname = Old\n")
        dest = copy_git_identity(config_dir)
        assert dest == config_dir / ".gitconfig"
        assert "New" in dest.read_text()

    def test_xdg_fallback(self, isolated_home, tmp_path):
        xdg = isolated_home / ".config" / "git"
        xdg.mkdir(parents=True)
        (xdg / "config").write_text("[user]\n\tname = Xdg\n")
        config_dir = tmp_path / "cfg"
        config_dir.mkdir()
        dest = copy_git_identity(config_dir)
        assert "Xdg" in dest.read_text()

    def test_absent_warns(self, isolated_home, tmp_path, capsys):
        assert copy_git_identity(tmp_path) is None
        assert "No git identity found" in capsys.readouterr().err


# ---------------------------------------------------------------------------
# Forwarder
# ---------------------------------------------------------------------------


class TestCredentialForwarder:

    def test_prepare_forwards_agent(self, ssh_home, tmp_path):
        (ssh_home / ".gitconfig").write_text("[user]\n")
        (ssh_home / ".ssh" / "known_hosts").write_text("github.com ssh-ed25519 AAAA\n")
        config_dir = tmp_path / "cfg"
        forwarder = CredentialForwarder(
            HostCapabilities(colima_running=True), image="img", config_dir=config_dir,
        )
        fake = _fake_ssh(listed=f"256 {FINGERPRINT} me@host (ED25519)\n")
        with patch("claude_sandbox.credentials.subprocess.run", side_effect=fake), \
                patch("claude_sandbox.credentials.socket_group_id", return_value=0):
            bundle = forwarder.prepare("id_ed25519")

        assert config_dir.is_dir()
        assert bundle.strategy == "vm-socket"
        assert bundle.key_path == str(ssh_home / ".ssh" / "id_ed25519")
        targets = [m.target for m in bundle.mounts]
        assert targets == [CONTAINER_GITCONFIG, CONTAINER_KNOWN_HOSTS, VM_SSH_AGENT_SOCK]
        assert all(m.read_only for m in bundle.mounts[:2])
        assert bundle.group_ids == [0]

    def test_prepare_missing_key_fails(self, ssh_home, tmp_path):
        forwarder = CredentialForwarder(
            HostCapabilities(colima_running=True), image="img", config_dir=tmp_path / "cfg",
        )
        with pytest.raises(CredentialUnavailable):
            forwarder.prepare("does-not-exist")

    def test_prepare_without_ssh(self, isolated_home, tmp_path):
        (isolated_home / ".gitconfig").write_text("[user]\n")
        forwarder = CredentialForwarder(HostCapabilities(), image="img", config_dir=tmp_path / "cfg")
        with patch("claude_sandbox.credentials.subprocess.run") as mock_run:
            bundle = forwarder.prepare(forward_ssh=False)
        mock_run.assert_not_called()
        assert bundle.strategy == "none"
        assert bundle.env == {}
        assert [m.target for m in bundle.mounts] == [CONTAINER_GITCONFIG]

    def test_default_config_dir(self, isolated_home, monkeypatch, tmp_path):
        monkeypatch.setenv("CLAUDE_SANDBOX_HOME", str(tmp_path / "persist"))
        forwarder = CredentialForwarder(HostCapabilities(), image="img")
        assert forwarder.config_dir == Path(tmp_path / "persist")
