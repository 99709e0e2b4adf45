"""Terminal practice session runner.

Two modes share one SessionController:
- auto: play each prompt, wait, record, export and advance without input
- interactive: single-key commands read from stdin in a worker thread
"""

import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional

from speakdrill.lib.config import (
    CaptureConfig,
    CatalogConfig,
    PracticeConfig,
    get_capture_config,
    get_catalog_config,
    get_practice_config,
)
from speakdrill.lib.messages import (
    MARKER_SAVED,
    NO_RECORDING,
    RECORDING_SAVED,
    SESSION_COMPLETE,
    position_text,
)
from speakdrill.models.session import SessionPhase, SessionQueue, SessionSnapshot, SessionStatus
from speakdrill.services.audio.capture import CaptureDevice
from speakdrill.services.audio.devices import SoundDeviceCaptureDevice, SoundDevicePlaybackBackend
from speakdrill.services.audio.mock_device import MockCaptureDevice, MockPlaybackBackend
from speakdrill.services.audio.scrubber import AudioScrubber
from speakdrill.services.export.service import ExportService
from speakdrill.services.session.controller import SessionController

logger = logging.getLogger(__name__)

HELP_TEXT = """Commands:
  p  play/pause prompt      s  start without prompt
  x  stop recording         r  redo this item
  l  play/pause recording   d  download
  n  next item              b  previous item
  q  quit"""


def build_controller(
    queue: SessionQueue,
    mock_device: bool = False,
    practice_config: Optional[PracticeConfig] = None,
    capture_config: Optional[CaptureConfig] = None,
    catalog_config: Optional[CatalogConfig] = None,
) -> SessionController:
    """Wire a controller with hardware or simulated audio."""
    practice_config = practice_config or get_practice_config()
    capture_config = capture_config or get_capture_config()
    catalog_config = catalog_config or get_catalog_config()

    device: CaptureDevice
    if mock_device:
        device = MockCaptureDevice(capture_config, chunk_interval=0.05)
        prompt = AudioScrubber(MockPlaybackBackend(default_duration=1.0), name="prompt")
        review = AudioScrubber(MockPlaybackBackend(default_duration=1.0), name="recording")
    else:
        timeout = catalog_config.fetch_timeout_seconds
        device = SoundDeviceCaptureDevice(capture_config)
        prompt = AudioScrubber(SoundDevicePlaybackBackend(timeout), name="prompt")
        review = AudioScrubber(SoundDevicePlaybackBackend(timeout), name="recording")

    return SessionController(
        queue,
        device,
        prompt=prompt,
        review=review,
        config=practice_config,
    )


def render(snapshot: SessionSnapshot) -> str:
    """One status line for the terminal."""
    parts = [position_text(snapshot.index, snapshot.total), snapshot.item_id, snapshot.phase.value]
    if snapshot.status_text:
        parts.append(snapshot.status_text)
    if snapshot.remaining_seconds is not None:
        parts.append(f"{snapshot.remaining_seconds}s")
    return " | ".join(parts)


def save_current(controller: SessionController, exporter: ExportService, out_dir: Path) -> Path:
    """Export the current item and report it."""
    artifact = exporter.export(controller.current_item, controller.current_state)
    path = exporter.save(artifact, out_dir)
    template = MARKER_SAVED if artifact.is_fallback else RECORDING_SAVED
    print(template.format(filename=path.name))
    return path


async def run_auto(
    controller: SessionController,
    exporter: ExportService,
    out_dir: Path,
) -> list[Path]:
    """
    Run every item unattended and export each result.

    Items with an invalid duration are skipped.

    Returns:
        Paths of the exported files
    """
    saved: list[Path] = []
    await controller.start()
    try:
        while True:
            snapshot = controller.snapshot()
            print(render(snapshot))
            if snapshot.status != SessionStatus.INVALID_DURATION:
                if controller.play_prompt() or controller.trigger_manual_start():
                    await controller.wait_for_phase(SessionPhase.COMPLETE)
                    print(render(controller.snapshot()))
                    saved.append(save_current(controller, exporter, out_dir))
            if not await controller.next():
                break
        print(SESSION_COMPLETE)
    finally:
        await controller.close()
    return saved


async def run_interactive(
    controller: SessionController,
    exporter: ExportService,
    out_dir: Path,
) -> None:
    """Drive the controller from single-letter commands on stdin."""
    loop = asyncio.get_running_loop()
    last_line: list[str] = [""]

    def on_change(snapshot: SessionSnapshot) -> None:
        line = render(snapshot)
        if line != last_line[0]:
            last_line[0] = line
            print(line)

    controller.on_change(on_change)
    await controller.start()
    print(HELP_TEXT)
    try:
        while True:
            raw = await loop.run_in_executor(None, sys.stdin.readline)
            if raw == "":
                break
            command = raw.strip().lower()[:1]
            if command == "q":
                break
            await _dispatch(command, controller, exporter, out_dir)
    finally:
        await controller.close()


async def _dispatch(
    command: str,
    controller: SessionController,
    exporter: ExportService,
    out_dir: Path,
) -> None:
    if command == "p":
        if controller.phase == SessionPhase.PLAYING_PROMPT:
            controller.prompt.toggle()
        elif not controller.play_prompt():
            print(controller.snapshot().status_text or "Prompt not available now.")
    elif command == "s":
        if not controller.trigger_manual_start():
            print("Start is only available when the item has no playable prompt.")
    elif command == "x":
        controller.stop_recording()
    elif command == "r":
        await controller.redo()
    elif command == "l":
        if not controller.review.available:
            print(NO_RECORDING)
        else:
            controller.review.toggle()
    elif command == "d":
        save_current(controller, exporter, out_dir)
    elif command == "n":
        if not await controller.next():
            print(SESSION_COMPLETE)
    elif command == "b":
        await controller.previous()
    elif command:
        print(HELP_TEXT)
