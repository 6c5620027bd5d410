"""Online/offline tracking for the thermostat behind the API."""

import logging
from typing import Optional

from .events import DeviceOffline, DeviceOnline, EventBus
from .models import ConnectivityState

_LOGGER = logging.getLogger(__name__)


class ConnectivityTracker:
    """Holds the connectivity state and publishes its edges.

    Only this class changes the state. An event is emitted when the state
    actually changes, never for a repeated mark.
    """

    def __init__(self, events: EventBus) -> None:
        self._events = events
        self._state = ConnectivityState.UNKNOWN

    @property
    def state(self) -> ConnectivityState:
        return self._state

    @property
    def is_offline(self) -> bool:
        return self._state is ConnectivityState.OFFLINE

    def mark_online(self) -> bool:
        """Record a successful call. Returns True if the state changed."""
        if self._state is ConnectivityState.ONLINE:
            return False
        previous = self._transition(ConnectivityState.ONLINE)
        if previous is ConnectivityState.OFFLINE:
            _LOGGER.info("Device back online")
        self._events.emit(DeviceOnline())
        return True

    def mark_offline(self) -> bool:
        """Record a communicationError. Returns True if the state changed."""
        if self._state is ConnectivityState.OFFLINE:
            return False
        self._transition(ConnectivityState.OFFLINE)
        _LOGGER.warning("communicationError received, device offline")
        self._events.emit(DeviceOffline())
        return True

    def _transition(self, state: ConnectivityState) -> Optional[ConnectivityState]:
        previous = self._state
        self._state = state
        _LOGGER.debug("Connectivity %s -> %s", previous.value, state.value)
        return previous
