"""Tests for RecordingControl: the global flag and request-scoped switches."""

from __future__ import annotations

import asyncio
import threading

import pytest

from version_trail.errors import ValidationError
from version_trail.recording.control import RecordingControl


def test_enabled_by_default():
    control = RecordingControl()
    assert control.enabled is True
    assert control.is_enabled("Widget") is True


def test_global_flag_disables_every_type():
    control = RecordingControl()
    control.enabled = False
    assert control.is_enabled() is False
    assert control.is_enabled("Widget") is False


def test_global_flag_toggle_is_idempotent():
    control = RecordingControl(enabled=False)
    control.enabled = False
    control.enabled = True
    control.enabled = True
    assert control.is_enabled("Widget") is True


def test_disable_one_type_leaves_others_recording():
    control = RecordingControl()
    control.disable("Widget")
    assert control.is_enabled("Widget") is False
    assert control.is_enabled("Article") is True
    control.enable("Widget")
    assert control.is_enabled("Widget") is True


def test_request_block_sets_and_restores_whodunnit():
    control = RecordingControl()
    control.whodunnit = "outer"
    with control.request(whodunnit="inner"):
        assert control.whodunnit == "inner"
    assert control.whodunnit == "outer"


def test_request_block_restores_state_after_error():
    control = RecordingControl()
    with pytest.raises(RuntimeError):
        with control.request(whodunnit="Alice", enabled_for={"Widget": False}):
            raise RuntimeError("boom")
    assert control.whodunnit is None
    assert control.is_enabled("Widget") is True


def test_request_block_can_reenable_a_disabled_type():
    control = RecordingControl()
    control.disable("Widget")
    with control.request(enabled_for={"Widget": True}):
        assert control.is_enabled("Widget") is True
    assert control.is_enabled("Widget") is False


def test_request_metadata_is_read_only_and_scoped():
    control = RecordingControl()
    with control.request(metadata={"ip": "10.0.0.1"}):
        assert control.request_metadata == {"ip": "10.0.0.1"}
        with pytest.raises(TypeError):
            control.request_metadata["ip"] = "spoofed"  # type: ignore[index]
    assert control.request_metadata == {}


def test_request_metadata_rejects_version_field_names():
    control = RecordingControl()
    with pytest.raises(ValidationError):
        control.request_metadata = {"event": "login"}
    with pytest.raises(ValidationError):
        with control.request(metadata={"whodunnit": "spoofed", "ip": "10.0.0.1"}):
            pass
    assert control.request_metadata == {}


def test_disabled_block_suspends_one_type():
    control = RecordingControl()
    with control.disabled("Widget"):
        assert control.is_enabled("Widget") is False
    assert control.is_enabled("Widget") is True


def test_whodunnit_is_isolated_between_threads():
    control = RecordingControl()
    control.whodunnit = "main"
    seen: dict[str, str | None] = {}
    other_enabled: dict[str, bool] = {}
    barrier = threading.Barrier(2)

    def worker(name: str) -> None:
        control.whodunnit = name
        control.disable(f"Type{name}")
        barrier.wait()
        seen[name] = control.whodunnit
        other = "b" if name == "a" else "a"
        other_enabled[name] = control.is_enabled(f"Type{other}")

    threads = [threading.Thread(target=worker, args=(name,)) for name in ("a", "b")]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert seen["a"] == "a"
    assert seen["b"] == "b"
    assert other_enabled == {"a": True, "b": True}
    assert control.whodunnit == "main"


def test_global_flag_is_shared_between_threads():
    control = RecordingControl()
    thread = threading.Thread(target=setattr, args=(control, "enabled", False))
    thread.start()
    thread.join()
    assert control.enabled is False


@pytest.mark.asyncio
async def test_whodunnit_is_isolated_between_tasks():
    control = RecordingControl()

    async def handle(name: str) -> str | None:
        with control.request(whodunnit=name):
            await asyncio.sleep(0)
            return control.whodunnit

    results = await asyncio.gather(handle("Alice"), handle("Bob"))
    assert results == ["Alice", "Bob"]
    assert control.whodunnit is None
