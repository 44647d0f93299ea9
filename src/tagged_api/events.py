"""
Subscriptions to result ``stat`` values.
"""
import logging
from typing import Callable, Dict, List

from .types import ApiResult, CallRecord, EventCallback

logger = logging.getLogger("tagged_api.events")


class EventHub:
    """
    Notifies subscribers when a result carries a given ``stat``.

    Example:
        hub = EventHub()
        unsubscribe = hub.on("not_logged_in", lambda call, result: redirect_to_login())
    """

    def __init__(self) -> None:
        self._listeners: Dict[str, List[EventCallback]] = {}

    def on(self, tag: str, callback: EventCallback) -> Callable[[], bool]:
        """Register a callback for a tag. Returns a function that removes it."""
        self._listeners.setdefault(tag, []).append(callback)
        return lambda: self.off(tag, callback)

    def off(self, tag: str, callback: EventCallback) -> bool:
        """Remove one registration of a callback."""
        callbacks = self._listeners.get(tag)
        if not callbacks or callback not in callbacks:
            return False
        callbacks.remove(callback)
        if not callbacks:
            del self._listeners[tag]
        return True

    def has(self, tag: str) -> bool:
        """Check if any callback is registered for a tag."""
        return bool(self._listeners.get(tag))

    def emit(self, tag: str, call: CallRecord, result: ApiResult) -> None:
        """Invoke every callback for a tag in registration order."""
        for callback in list(self._listeners.get(tag, ())):
            try:
                callback(call, result)
            except Exception:
                logger.exception(f"EventHub.emit: subscriber for {tag!r} failed on {call.method}")

    def clear(self) -> None:
        """Remove every callback."""
        self._listeners.clear()
