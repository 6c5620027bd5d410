"""Typed events published by the Toon client.

Subscribers register a plain callable on the EventBus and receive event
objects. `subscribe` returns the matching unsubscribe callable, so the
subscriber decides when delivery stops.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from .models import Credentials, ThermostatStatus

_LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class Event:
    KIND = "event"

    @property
    def kind(self) -> str:
        return self.KIND


@dataclass(frozen=True)
class TokensRefreshed(Event):
    """New credentials were obtained. Callers persist them."""

    KIND = "tokens_refreshed"

    credentials: "Credentials"


@dataclass(frozen=True)
class ValueChanged(Event):
    """A known status value changed to a different value."""

    KIND = "value_changed"

    field: str
    value: Any


@dataclass(frozen=True)
class Initialized(Event):
    """The first status snapshot was fetched. Fired once per client."""

    KIND = "initialized"

    status: "ThermostatStatus"


@dataclass(frozen=True)
class DeviceOnline(Event):
    KIND = "online"


@dataclass(frozen=True)
class DeviceOffline(Event):
    KIND = "offline"


EventCallback = Callable[[Event], None]


class EventBus:
    """Fan-out of events to subscribed callbacks."""

    def __init__(self) -> None:
        self._subscribers: list[tuple[EventCallback, Optional[frozenset[str]]]] = []

    def subscribe(
        self, callback: EventCallback, *, kinds: Optional[Iterable[str]] = None
    ) -> Callable[[], bool]:
        """Register `callback` for all events, or only for the given kinds.

        Subscribing a registered callback again replaces its kind filter.

        Returns:
            A callable that removes the subscription again.
        """
        kind_filter = frozenset(kinds) if kinds is not None else None
        for index, (cb, _) in enumerate(self._subscribers):
            if cb == callback:
                self._subscribers[index] = (callback, kind_filter)
                break
        else:
            self._subscribers.append((callback, kind_filter))
        return lambda: self.unsubscribe(callback)

    def unsubscribe(self, callback: EventCallback) -> bool:
        for entry in self._subscribers:
            if entry[0] == callback:
                self._subscribers.remove(entry)
                return True
        return False

    def emit(self, event: Event) -> None:
        _LOGGER.debug("Emitting %s", event.kind)
        # Copy so callbacks may unsubscribe while being notified.
        for callback, kind_filter in list(self._subscribers):
            if kind_filter is not None and event.kind not in kind_filter:
                continue
            try:
                callback(event)
            except Exception:  # noqa: BLE001
                _LOGGER.exception("Subscriber failed while handling %s", event.kind)
