"""Per-item recording state and revocable playable handles.

The RecordingStore owns one ItemRecordingState per visited item. Installing
a new artifact revokes the previous handle in the same synchronous call, so
an item never has two live handles.
"""

import logging
from typing import Optional

from speakdrill.lib.exceptions import HandleRevokedError
from speakdrill.lib.timestamps import generate_uuid
from speakdrill.models.recording import ItemRecordingState, PlayableHandle, RecordingArtifact

logger = logging.getLogger(__name__)

HANDLE_SCHEME = "recording://"


class HandleRegistry:
    """
    Issues and revokes playable handles for recording artifacts.

    A handle resolves to its artifact until revoked. Revocation is
    synchronous and idempotent.
    """

    def __init__(self):
        self._live: dict[str, RecordingArtifact] = {}

    def create(self, item_id: str, artifact: RecordingArtifact) -> PlayableHandle:
        """Issue a new handle for ``artifact``."""
        url = f"{HANDLE_SCHEME}{generate_uuid()}"
        self._live[url] = artifact
        logger.debug(f"Issued handle {url} for item {item_id}")
        return PlayableHandle(url=url, item_id=item_id)

    def resolve(self, url: str) -> RecordingArtifact:
        """
        Look up the artifact behind a handle URL.

        Raises:
            HandleRevokedError: If the handle was revoked or never issued
        """
        artifact = self._live.get(url)
        if artifact is None:
            raise HandleRevokedError(url)
        return artifact

    def revoke(self, handle: Optional[PlayableHandle]) -> None:
        """Release a handle. Safe to call more than once."""
        if handle is None or handle.revoked:
            return
        self._live.pop(handle.url, None)
        handle.revoked = True
        logger.debug(f"Revoked handle {handle.url}")

    def is_live(self, url: str) -> bool:
        return url in self._live

    def live_count(self) -> int:
        """Number of handles not yet revoked."""
        return len(self._live)

    def revoke_all(self) -> None:
        self._live.clear()


class RecordingStore:
    """
    Holder of the latest recording per item for the life of a session.

    Example:
        store = RecordingStore()
        state = store.replace("q1", artifact)
        store.registry.resolve(state.handle.url)  # -> artifact
    """

    def __init__(self, registry: Optional[HandleRegistry] = None):
        self.registry = registry or HandleRegistry()
        self._states: dict[str, ItemRecordingState] = {}

    def get(self, item_id: str) -> ItemRecordingState:
        """Return the state for ``item_id``, creating it on first visit."""
        state = self._states.get(item_id)
        if state is None:
            state = ItemRecordingState(item_id=item_id)
            self._states[item_id] = state
        return state

    def peek(self, item_id: str) -> Optional[ItemRecordingState]:
        """Return the state for ``item_id`` without creating it."""
        return self._states.get(item_id)

    def replace(self, item_id: str, artifact: RecordingArtifact) -> ItemRecordingState:
        """
        Install ``artifact`` as the item's recording.

        The previous handle is revoked before the new one is issued.
        """
        state = self.get(item_id)
        self.registry.revoke(state.handle)
        state.artifact = artifact
        state.handle = self.registry.create(item_id, artifact)
        state.capture_unavailable = False
        logger.info(
            f"Stored recording for {item_id} ({artifact.size_bytes} bytes, {artifact.media_type})"
        )
        return state

    def clear(self, item_id: str) -> ItemRecordingState:
        """Drop the item's recording, revoke its handle and reset the fallback flag."""
        state = self.get(item_id)
        self.registry.revoke(state.handle)
        state.artifact = None
        state.handle = None
        state.capture_unavailable = False
        return state

    def mark_unavailable(self, item_id: str) -> ItemRecordingState:
        """Flag that capture was attempted without a usable device."""
        state = self.get(item_id)
        state.capture_unavailable = True
        return state

    def has_result(self, item_id: str) -> bool:
        """True when the item has a recording or a fallback acknowledgment."""
        state = self._states.get(item_id)
        return state is not None and state.is_attempted

    def completion_status(self, item_ids: Optional[list[str]] = None) -> dict[str, bool]:
        """Map item id -> whether it has a result.

        Args:
            item_ids: Items to report on; defaults to every visited item
        """
        ids = item_ids if item_ids is not None else list(self._states)
        return {item_id: self.has_result(item_id) for item_id in ids}

    def close(self) -> None:
        """Revoke every handle and forget all state."""
        for state in self._states.values():
            self.registry.revoke(state.handle)
            state.handle = None
        self._states.clear()
        self.registry.revoke_all()
