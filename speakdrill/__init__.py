"""Prompted speaking practice: play a prompt, pause, record, review."""

__version__ = "0.1.0"
