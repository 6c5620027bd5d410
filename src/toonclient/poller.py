"""Status polling and change detection for a Toon thermostat."""

from __future__ import annotations

import asyncio
import logging
from contextlib import suppress
from dataclasses import replace
from typing import Any

from .connection import ToonConnector
from .const import (
    DEFAULT_POLL_INTERVAL,
    ENDPOINT_CONSUMPTION_ELECTRICITY,
    ENDPOINT_CONSUMPTION_GAS,
    ENDPOINT_STATUS,
)
from .events import EventBus, Initialized, ValueChanged
from .exceptions import ToonError
from .models import TRACKED_FIELDS, ThermostatStatus
from .parsing import parse_latest_flow, parse_preset_temperatures, parse_status

_LOGGER = logging.getLogger(__name__)


class StatusPoller:
    """Fetch the thermostat status, keep the last known values, emit changes.

    A value going from unknown to known is not a change. The first fetch
    that returns any status value emits a single `Initialized` event instead,
    and only once for the lifetime of the poller. Values recorded by writes
    before that fetch do not count.
    """

    def __init__(
        self,
        connector: ToonConnector,
        events: EventBus,
        include_consumption: bool = False,
    ) -> None:
        self._connector = connector
        self._events = events
        self.include_consumption = include_consumption
        self.preset_temperatures: dict[str, float] = {}
        self._status = ThermostatStatus()
        self._initialized = False
        self._task: asyncio.Task[None] | None = None

    @property
    def status(self) -> ThermostatStatus:
        """A copy of the current snapshot."""
        return replace(self._status, connectivity=self._connector.connectivity.state)

    @property
    def initialized(self) -> bool:
        return self._initialized

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def async_refresh(self) -> ThermostatStatus:
        """Fetch the status once and apply it to the snapshot.

        Returns:
            The updated snapshot.
        """
        data = await self._connector.get(ENDPOINT_STATUS)
        values = parse_status(data)
        self.preset_temperatures.update(parse_preset_temperatures(data))

        if self.include_consumption:
            await self._async_add_consumption(values)

        self._apply(values)

        status = self.status
        if values and not self._initialized:
            self._initialized = True
            _LOGGER.info("Thermostat initialized")
            self._events.emit(Initialized(status))

        return status

    def record(self, field: str, value: Any) -> None:
        """Store a value the client has just written, without an event."""
        if field not in TRACKED_FIELDS:
            raise ValueError(f"Unknown status field '{field}'")
        setattr(self._status, field, value)

    def start(self, interval: float = DEFAULT_POLL_INTERVAL) -> None:
        """Poll in the background every `interval` seconds."""
        if interval <= 0:
            raise ValueError(f"interval must be positive, got {interval}")
        if self.is_running:
            return
        _LOGGER.debug("Starting status polling every %ss", interval)
        self._task = asyncio.ensure_future(self._async_poll_loop(interval))

    async def async_stop(self) -> None:
        """Cancel the background polling task."""
        task = self._task
        self._task = None
        if task is not None and not task.done():
            task.cancel()
            with suppress(asyncio.CancelledError):
                await task

    async def _async_poll_loop(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            try:
                await self.async_refresh()
            except ToonError as err:
                _LOGGER.warning("Status poll failed: %s", err)

    def _apply(self, values: dict[str, Any]) -> None:
        for field in TRACKED_FIELDS:
            if field not in values:
                continue
            new_value = values[field]
            previous = getattr(self._status, field)
            if previous is not None and previous != new_value:
                _LOGGER.debug("%s changed %s -> %s", field, previous, new_value)
                self._events.emit(ValueChanged(field, new_value))
            setattr(self._status, field, new_value)

    async def _async_add_consumption(self, values: dict[str, Any]) -> None:
        """Fill power and gas from the consumption flows when status lacks them."""
        flows = (
            ("measure_power", ENDPOINT_CONSUMPTION_ELECTRICITY, 1),
            ("meter_gas", ENDPOINT_CONSUMPTION_GAS, 1000),
        )
        for field, endpoint, divisor in flows:
            if field in values:
                continue
            try:
                data = await self._connector.get(endpoint)
            except ToonError as err:
                _LOGGER.warning("Failed to fetch %s: %s", endpoint, err)
                continue
            value = parse_latest_flow(data, divisor)
            if value is not None:
                values[field] = value
