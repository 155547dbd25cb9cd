"""
Binary Live API - persistent-connection client for the Binary.com streaming API.

This package keeps one long-lived websocket session open, correlates many
concurrent requests over it, buffers traffic while disconnected and replays
active subscriptions after every reconnect.
"""

from .errors import LiveError
from .events import LiveEvents
from .session import LiveApi

__version__ = "1.0.0"
__author__ = "Binary Live API Team"

__all__ = ["LiveApi", "LiveEvents", "LiveError"]
