"""Resilient remote control for the Yandex Music desktop app over CDP."""

__version__ = "0.1.0"
