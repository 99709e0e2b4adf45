"""Shared pytest fixtures for all test types."""

import json
from pathlib import Path

import pytest

from speakdrill.lib.config import (
    CaptureConfig,
    CatalogConfig,
    PracticeConfig,
    reset_all_configs,
)
from speakdrill.models.item import PracticeItem
from speakdrill.models.session import SessionQueue
from speakdrill.services.audio.mock_device import MockCaptureDevice, MockPlaybackBackend
from speakdrill.services.audio.scrubber import AudioScrubber
from speakdrill.services.recording.store import RecordingStore
from speakdrill.services.session.controller import SessionController

# Short timings keep controller tests fast; assertions allow this much slack
DELAY = 0.05
TICK = 0.05
TOLERANCE = 0.02


@pytest.fixture(autouse=True)
def _reset_configs():
    """Config singletons must not leak between tests."""
    reset_all_configs()
    yield
    reset_all_configs()


@pytest.fixture
def practice_config() -> PracticeConfig:
    return PracticeConfig(
        post_prompt_delay_seconds=DELAY,
        countdown_tick_seconds=TICK,
        export_prefix="LR",
    )


@pytest.fixture
def capture_config() -> CaptureConfig:
    return CaptureConfig(sample_rate=16000, channels=1, block_size=256)


@pytest.fixture
def catalog_config(tmp_path) -> CatalogConfig:
    return CatalogConfig(
        catalog_source=str(tmp_path / "TestData.json"),
        cache_dir=str(tmp_path / "cache"),
        selection_file=str(tmp_path / "cache" / "selected.json"),
    )


@pytest.fixture
def sample_records() -> list[dict]:
    """Normalized catalogue rows."""
    return [
        {
            "id": "01-01",
            "date": 20240101,
            "set": "01",
            "num": 1,
            "timeSec": 30,
            "scene": "Airport",
            "prompt": "Ask for directions",
            "audio": "01-01.mp3",
            "picture": "01-01.png",
            "script": "Excuse me, where is gate 5?",
            "type": "simple",
            "length": 6,
            "difficulty": 1,
        },
        {
            "id": "01-02",
            "date": 20240101,
            "set": "01",
            "num": 2,
            "timeSec": 45,
            "scene": "Hotel",
            "prompt": "Complain about the room",
            "audio": "01-02.mp3",
            "picture": "",
            "script": "The air conditioning in my room is broken.",
            "type": "compound",
            "length": 9,
            "difficulty": 3,
        },
        {
            "id": "02-01",
            "date": 20240108,
            "set": "02",
            "num": 1,
            "timeSec": 60,
            "scene": "Airport",
            "prompt": "Describe lost luggage",
            "audio": "",
            "picture": "",
            "script": "",
            "type": "complex",
            "length": 14,
            "difficulty": 5,
        },
    ]


@pytest.fixture
def catalog_file(tmp_path, sample_records) -> Path:
    path = tmp_path / "TestData.json"
    path.write_text(json.dumps({"version": "v1", "items": sample_records}), encoding="utf-8")
    return path


@pytest.fixture
def make_controller(practice_config):
    """Factory for controllers wired to simulated audio.

    Call inside the test body so the controller binds to the test's loop.
    """

    def factory(
        items: list[PracticeItem],
        device: MockCaptureDevice | None = None,
        prompt_backend: MockPlaybackBackend | None = None,
    ) -> SessionController:
        return SessionController(
            SessionQueue(items),
            device or MockCaptureDevice(),
            store=RecordingStore(),
            prompt=AudioScrubber(prompt_backend or MockPlaybackBackend(default_duration=0.05), name="prompt"),
            review=AudioScrubber(MockPlaybackBackend(default_duration=0.05), name="recording"),
            config=practice_config,
        )

    return factory
