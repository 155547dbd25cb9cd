"""Publish/subscribe emitter used to deliver server pushes to listeners."""

import logging
from collections import defaultdict
from typing import Any, Callable, Dict, List

logger = logging.getLogger(__name__)

Handler = Callable[[Dict[str, Any]], Any]


class LiveEvents:
    """
    Named-channel event emitter.

    Channels are message types (``tick``, ``balance``, ...) plus ``error``.
    Handlers run synchronously, in registration order, with the decoded frame.
    """

    def __init__(self):
        self._handlers: Dict[str, List[Handler]] = defaultdict(list)

    def on(self, name: str, handler: Handler) -> Handler:
        """Register a handler for a channel."""
        self._handlers[name].append(handler)
        return handler

    def once(self, name: str, handler: Handler) -> Handler:
        """Register a handler that is removed after its first delivery."""
        def _once(data: Dict[str, Any]):
            self.off(name, _once)
            return handler(data)

        return self.on(name, _once)

    def off(self, name: str, handler: Handler):
        """Remove a handler; unknown handlers are ignored."""
        handlers = self._handlers.get(name)
        if handlers and handler in handlers:
            handlers.remove(handler)

    def ignore_all(self):
        """Drop every registered handler."""
        self._handlers.clear()

    def listener_count(self, name: str) -> int:
        return len(self._handlers.get(name, []))

    def emit(self, name: str, data: Dict[str, Any]):
        """Deliver ``data`` to every handler of ``name``."""
        # Copy so handlers may unregister themselves while being called
        for handler in list(self._handlers.get(name, [])):
            try:
                handler(data)
            except Exception as e:
                logger.error(f"Handler error for {name}: {e}", exc_info=True)
