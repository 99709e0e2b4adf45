"""Practice session control."""

from speakdrill.services.session.controller import SessionController
from speakdrill.services.session.timers import Countdown, ScheduledTask

__all__ = ["SessionController", "Countdown", "ScheduledTask"]
