"""
Event dispatch shared by Model and ModelArray.

Every observable object carries its own listener table. Subscribing returns a
cancellation handle, so hosts can detach without keeping the callback around:

    unsubscribe = model.on("change", on_change)
    ...
    unsubscribe()

Dispatch is synchronous and happens before the mutating call returns.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

from modelstate.config import get_config

logger = logging.getLogger(__name__)

EventCallback = Callable[['Event'], None]
Unsubscribe = Callable[[], None]


@dataclass(frozen=True)
class Event:
    """A dispatched event: its type plus the detail payload."""
    type: str
    detail: Dict[str, Any] = field(default_factory=dict)

    @property
    def emitter(self) -> Any:
        return self.detail.get('emitter')


class Listener:
    """Per-instance event subscription and dispatch.

    The listener table is stored with ``object.__setattr__`` so subclasses that
    intercept attribute writes (Model) never see it as data.
    """

    def __init__(self) -> None:
        object.__setattr__(self, '_listeners', {})

    def on(self, event_type: str, callback: EventCallback) -> Unsubscribe:
        """Subscribe to an event type.

        Args:
            event_type: Event name, e.g. "change" or "change:person:name"
            callback: Called with the Event

        Returns:
            A function that removes this subscription when called
        """
        if not callable(callback):
            raise TypeError("Event callback must be callable")
        callbacks = self._listeners.setdefault(event_type, [])
        if callback not in callbacks:
            callbacks.append(callback)

        def unsubscribe() -> None:
            self.off(event_type, callback)
        return unsubscribe

    def off(self, event_type: Optional[str] = None, callback: Optional[EventCallback] = None) -> None:
        """Unsubscribe.

        With no callback every listener of ``event_type`` is dropped; with no
        event type every listener is dropped.
        """
        if event_type is None:
            self._listeners.clear()
            return
        callbacks = self._listeners.get(event_type)
        if not callbacks:
            return
        if callback is None:
            del self._listeners[event_type]
        elif callback in callbacks:
            callbacks.remove(callback)
            if not callbacks:
                del self._listeners[event_type]

    def has_listeners(self, event_type: Optional[str] = None) -> bool:
        if event_type is None:
            return bool(self._listeners)
        return bool(self._listeners.get(event_type))

    def emit(self, event_type: str, **detail: Any) -> Event:
        """Dispatch an event to the listeners of ``event_type``.

        Listeners run on a snapshot of the table, so a callback may unsubscribe
        itself. Errors are logged and swallowed unless the active config sets
        ``raise_listener_errors``.
        """
        event = Event(event_type, detail)
        callbacks = self._listeners.get(event_type)
        if not callbacks:
            return event
        for callback in list(callbacks):
            try:
                callback(event)
            except Exception as e:
                if get_config().raise_listener_errors:
                    raise
                logger.warning(f"Error in {event_type!r} listener {callback!r}: {e}")
        return event
