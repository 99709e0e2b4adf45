"""Unit tests for RecordingStore and HandleRegistry."""

import pytest

from speakdrill.lib.exceptions import HandleRevokedError
from speakdrill.models.recording import RecordingArtifact
from speakdrill.services.recording.store import HANDLE_SCHEME, HandleRegistry, RecordingStore


def artifact(data: bytes = b"audio") -> RecordingArtifact:
    return RecordingArtifact(data=data, media_type="audio/ogg;codecs=opus")


class TestHandleRegistry:
    """Tests for handle issue and revocation."""

    def test_create_and_resolve(self):
        registry = HandleRegistry()
        recording = artifact()

        handle = registry.create("q1", recording)

        assert handle.url.startswith(HANDLE_SCHEME)
        assert registry.resolve(handle.url) is recording
        assert registry.is_live(handle.url)

    def test_revoke_is_idempotent(self):
        registry = HandleRegistry()
        handle = registry.create("q1", artifact())

        registry.revoke(handle)
        registry.revoke(handle)
        registry.revoke(None)

        assert handle.revoked
        assert registry.live_count() == 0
        with pytest.raises(HandleRevokedError) as exc_info:
            registry.resolve(handle.url)
        assert exc_info.value.url == handle.url

    def test_urls_are_unique(self):
        registry = HandleRegistry()

        urls = {registry.create("q1", artifact()).url for _ in range(20)}

        assert len(urls) == 20


class TestRecordingStore:
    """Tests for per-item recording state."""

    def test_state_created_lazily(self):
        store = RecordingStore()

        assert store.peek("q1") is None
        state = store.get("q1")

        assert store.peek("q1") is state
        assert not state.has_recording

    def test_replace_revokes_previous_handle(self):
        store = RecordingStore()
        first = store.replace("q1", artifact(b"one")).handle

        second = store.replace("q1", artifact(b"two")).handle

        assert first.revoked
        assert not second.revoked
        assert store.registry.live_count() == 1
        assert store.registry.resolve(second.url).data == b"two"

    def test_replace_clears_fallback_flag(self):
        store = RecordingStore()
        store.mark_unavailable("q1")

        state = store.replace("q1", artifact())

        assert not state.capture_unavailable
        assert store.has_result("q1")

    def test_clear_drops_everything(self):
        store = RecordingStore()
        handle = store.replace("q1", artifact()).handle
        store.mark_unavailable("q1")

        state = store.clear("q1")

        assert handle.revoked
        assert state.artifact is None
        assert not state.capture_unavailable
        assert not store.has_result("q1")

    def test_completion_status(self):
        store = RecordingStore()
        store.replace("a", artifact())
        store.mark_unavailable("b")

        status = store.completion_status(["a", "b", "c"])

        assert status == {"a": True, "b": True, "c": False}
        assert store.peek("c") is None

    def test_close_revokes_all(self):
        store = RecordingStore()
        handles = [store.replace(item_id, artifact()).handle for item_id in ("a", "b")]

        store.close()

        assert all(handle.revoked for handle in handles)
        assert store.registry.live_count() == 0
        assert store.completion_status() == {}
