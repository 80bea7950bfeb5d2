"""This module provides the BoardEvents enumeration and the EventEmitter class used to deliver decoded board traffic to
the consumer.

Every event is identified by a BoardEvents member and an optional key. Keys are used to address per-resource listeners
(for example, the digital pin number for DIGITAL_READ, or the correlation id for ONEWIRE_READ_REPLY), which is how the
sub-protocols correlate replies with the requests that are waiting for them. Listeners subscribed without a key receive
every event of the given type.
"""

from enum import Enum, auto
from typing import Any, Callable, Hashable, Optional
from dataclasses import dataclass

from ataraxis_base_utilities import LogLevel, console


class BoardEvents(Enum):
    """Stores the types of events emitted by the Board class."""

    # Lifecycle
    CONNECT = auto()
    READY = auto()
    ERROR = auto()
    CLOSE = auto()
    DISCONNECT = auto()

    # Handshake replies
    REPORT_VERSION = auto()
    QUERY_FIRMWARE = auto()
    CAPABILITY_QUERY = auto()
    ANALOG_MAPPING_QUERY = auto()

    # Pin traffic
    DIGITAL_READ = auto()
    ANALOG_READ = auto()
    PIN_STATE = auto()
    STRING = auto()

    # Sub-protocols
    I2C_REPLY = auto()
    ONEWIRE_SEARCH_REPLY = auto()
    ONEWIRE_SEARCH_ALARMS_REPLY = auto()
    ONEWIRE_READ_REPLY = auto()
    SERIAL_DATA = auto()
    STEPPER_DONE = auto()
    PING_READ = auto()


@dataclass
class _Listener:
    """Stores a single subscribed callback.

    Attributes:
        callback: The function to call with the event payload.
        once: Determines whether the listener is removed after its first invocation.
    """

    callback: Callable[..., Any]
    once: bool = False


class EventEmitter:
    """Dispatches events to the callbacks subscribed to them.

    Dispatch is synchronous: emit() calls every matching listener before returning. This matches the single-threaded
    processing model of the board session, where all events are produced while parsing the received bytes.

    Notes:
        Listeners subscribed to a specific key are called before the listeners subscribed to the whole event type.
        A listener may safely unsubscribe itself (or others) from within its callback.

    Attributes:
        _listeners: Maps (event, key) tuples to the lists of subscribed listeners. Key-less subscriptions use None as
            the key.
    """

    def __init__(self) -> None:
        self._listeners: dict[tuple[BoardEvents, Optional[Hashable]], list[_Listener]] = {}

    def __repr__(self) -> str:
        return f"EventEmitter(subscriptions={sum(len(listeners) for listeners in self._listeners.values())})"

    def on(self, event: BoardEvents, callback: Callable[..., Any], key: Optional[Hashable] = None) -> None:
        """Subscribes the callback to all future events of the given type (and key, if provided)."""
        self._listeners.setdefault((event, key), []).append(_Listener(callback=callback))

    def once(self, event: BoardEvents, callback: Callable[..., Any], key: Optional[Hashable] = None) -> None:
        """Subscribes the callback to the next event of the given type (and key, if provided) only."""
        self._listeners.setdefault((event, key), []).append(_Listener(callback=callback, once=True))

    def off(
        self, event: BoardEvents, callback: Optional[Callable[..., Any]] = None, key: Optional[Hashable] = None
    ) -> None:
        """Removes the callback from the (event, key) subscription list.

        If the callback is not provided, removes all listeners subscribed to the (event, key) pair.
        """
        slot = (event, key)
        if callback is None:
            self._listeners.pop(slot, None)
            return

        listeners = [listener for listener in self._listeners.get(slot, []) if listener.callback is not callback]
        if listeners:
            self._listeners[slot] = listeners
        else:
            self._listeners.pop(slot, None)

    def has_listeners(self, event: BoardEvents, key: Optional[Hashable] = None) -> bool:
        """Returns True if at least one listener is subscribed to the (event, key) pair."""
        return bool(self._listeners.get((event, key)))

    def emit(self, event: BoardEvents, *args: Any, key: Optional[Hashable] = None) -> bool:
        """Calls all listeners subscribed to the event (and key), passing them the positional arguments.

        Args:
            event: The type of the emitted event.
            *args: The payload passed to each listener.
            key: The resource key of the event. When provided, key-specific listeners are called first, followed by
                the key-less listeners of the same event type.

        Returns:
            True if at least one listener was called, False otherwise.
        """
        slots = [(event, key)] if key is None else [(event, key), (event, None)]
        called = False
        for slot in slots:
            listeners = self._listeners.get(slot)
            if not listeners:
                continue

            # Removes one-shot listeners before calling them, so that re-entrant emits do not call them twice.
            remaining = [listener for listener in listeners if not listener.once]
            if remaining:
                self._listeners[slot] = remaining
            else:
                self._listeners.pop(slot, None)

            for listener in listeners:
                listener.callback(*args)
                called = True

        if not called:
            console.echo(message=f"No listeners for {event.name} event with key {key}.", level=LogLevel.DEBUG)
        return called
