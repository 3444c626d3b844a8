"""Unit tests for claude_sandbox.models domain models.

Tests construction, validation, defaults, immutability and rendering for
the Pydantic models.
"""
from __future__ import annotations

import pytest
from pydantic import ValidationError

from claude_sandbox.constants import DEFAULT_CPUS, DEFAULT_MEMORY
from claude_sandbox.models import (
    CredentialBundle,
    InvocationSpec,
    Mount,
    ResourceLimits,
    RuntimeState,
    SessionIdentity,
)


class TestSessionIdentity:

    def test_name_renders_base_and_index(self):
        identity = SessionIdentity(base_name="sandbox", index=3)
        assert identity.name == "sandbox-3"
        assert str(identity) == "sandbox-3"

    def test_negative_index_rejected(self):
        with pytest.raises(ValidationError):
            SessionIdentity(base_name="sandbox", index=-1)

    def test_frozen(self):
        identity = SessionIdentity(base_name="sandbox", index=0)
        with pytest.raises(ValidationError):
            identity.index = 1


class TestMount:

    def test_read_only_by_default(self):
        assert Mount(source="/a", target="/b").to_mount_arg() == "type=bind,source=/a,target=/b,readonly"

    def test_read_write(self):
        assert Mount(source="/a", target="/b", read_only=False).to_mount_arg() == "type=bind,source=/a,target=/b"

    def test_colon_in_path_needs_no_escaping(self):
        arg = Mount(source="/x/a:b", target="/x/a:b", read_only=False).to_mount_arg()
        assert arg == "type=bind,source=/x/a:b,target=/x/a:b"

    def test_comma_in_path_is_quoted(self):
        arg = Mount(source="/x/a,b", target="/work").to_mount_arg()
        assert arg == 'type=bind,"source=/x/a,b",target=/work,readonly'


class TestResourceLimits:

    def test_defaults(self):
        limits = ResourceLimits()
        assert limits.cpus == DEFAULT_CPUS
        assert limits.memory == DEFAULT_MEMORY


class TestInvocationSpec:

    def test_defaults(self):
        spec = InvocationSpec()
        assert spec.passthrough == ()
        assert spec.prompt is None
        assert spec.forward_ssh is True
        assert spec.entrypoint_args() == []

    def test_prompt_is_appended_last(self):
        spec = InvocationSpec(passthrough=("--model", "opus"), prompt="fix it")
        assert spec.entrypoint_args() == ["--model", "opus", "-p", "fix it"]

    def test_trailing_text_follows_flags(self):
        spec = InvocationSpec(passthrough=("-p", "one"), trailing=("two",))
        assert spec.entrypoint_args() == ["-p", "one", "two"]

    def test_immutable(self):
        spec = InvocationSpec()
        with pytest.raises(ValidationError):
            spec.prompt = "changed"

    def test_equality_by_value(self):
        assert InvocationSpec(prompt="x") == InvocationSpec(prompt="x")


class TestCredentialBundle:

    def test_defaults_are_empty(self):
        bundle = CredentialBundle()
        assert bundle.strategy == "none"
        assert bundle.mounts == []
        assert bundle.env == {}
        assert bundle.group_ids == []

    def test_lists_not_shared_between_instances(self):
        a = CredentialBundle()
        b = CredentialBundle()
        a.group_ids.append(5)
        assert b.group_ids == []


def test_runtime_state_values():
    assert {s.value for s in RuntimeState} == {"unavailable", "starting", "ready"}
