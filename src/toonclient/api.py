"""Toon API Client."""

import logging
from typing import Any, Optional

from .auth import AbstractAuth
from .connection import ToonConnector
from .connectivity import ConnectivityTracker
from .const import (
    DEFAULT_CONCURRENCY,
    DEFAULT_POLL_INTERVAL,
    ENDPOINT_AGREEMENTS,
    ENDPOINT_TEMPERATURE,
    ENDPOINT_TEMPERATURE_STATES,
    PROGRAM_KEEP,
    PROGRAM_OFF,
    PROGRAM_ON,
)
from .events import EventBus
from .exceptions import ToonApiError, ToonMissingArgumentError
from .models import Agreement, Credentials, TemperatureState, ThermostatStatus
from .parsing import degrees_to_centi
from .poller import StatusPoller

_LOGGER = logging.getLogger(__name__)


class ToonClient:
    """Client for one Toon thermostat.

    All calls of one client are serialized; see `ToonConnector`.

    Attributes:
        auth: Token manager shared with the connector.
        connector: Queued, self-recovering HTTP layer.
        poller: Status snapshot and change detection.
    """

    def __init__(
        self,
        auth: AbstractAuth,
        concurrency: int = DEFAULT_CONCURRENCY,
        include_consumption: bool = False,
    ) -> None:
        """Initialize the client.

        Args:
            auth: Authentication handler providing the access token.
            concurrency: Maximum number of API calls in flight.
            include_consumption: Also read the electricity and gas flow
                endpoints on every status fetch.
        """
        self.auth = auth
        self.connectivity = ConnectivityTracker(auth.events)
        self.connector = ToonConnector(auth, self.connectivity, concurrency)
        self.poller = StatusPoller(self.connector, auth.events, include_consumption)

    @property
    def events(self) -> EventBus:
        """Event bus for tokens, value changes and connectivity."""
        return self.auth.events

    @property
    def status(self) -> ThermostatStatus:
        """Last known status, without a network call."""
        return self.poller.status

    @property
    def agreement_id(self) -> Optional[str]:
        return self.connector.agreement_id

    @property
    def is_offline(self) -> bool:
        return self.connectivity.is_offline

    async def get_status(self) -> ThermostatStatus:
        """Fetch the thermostat status and update the snapshot.

        Returns:
            The updated status snapshot.
        """
        _LOGGER.debug("Fetching status...")
        return await self.poller.async_refresh()

    async def set_target_temperature(self, temperature: float) -> float:
        """Set a new target temperature, overriding the program.

        Args:
            temperature: Target in degrees Celsius.

        Returns:
            The temperature that was set.
        """
        if temperature is None:
            raise ToonMissingArgumentError("missing temperature argument")

        _LOGGER.debug("Setting target temperature to %s", temperature)
        await self.connector.put(
            ENDPOINT_TEMPERATURE, {"value": degrees_to_centi(temperature)}
        )
        self.poller.record("target_temperature", temperature)
        return temperature

    async def update_state(self, state: str, keep_program: bool = False) -> Any:
        """Activate a preset (comfort, home, sleep, away).

        Args:
            state: Preset name.
            keep_program: Resume the program at its next switch point.

        Raises:
            ValueError: If `state` is not a known preset.
        """
        if not state:
            raise ToonMissingArgumentError("missing state argument")
        temperature_state = TemperatureState.from_name(state)

        body = {"temperatureState": temperature_state.value}
        if keep_program:
            body["state"] = PROGRAM_KEEP

        _LOGGER.debug("Setting state to %s (%s)", state, body)
        result = await self.connector.put(ENDPOINT_TEMPERATURE_STATES, body)

        self.poller.record("temperature_state", temperature_state.label)
        preset = self.poller.preset_temperatures.get(temperature_state.label)
        if preset is not None:
            self.poller.record("target_temperature", preset)
        return result

    async def enable_program(self) -> Any:
        """Enable the temperature program."""
        _LOGGER.debug("Enabling program")
        return await self.connector.put(ENDPOINT_TEMPERATURE_STATES, {"state": PROGRAM_ON})

    async def disable_program(self) -> Any:
        """Disable the temperature program."""
        _LOGGER.debug("Disabling program")
        return await self.connector.put(ENDPOINT_TEMPERATURE_STATES, {"state": PROGRAM_OFF})

    async def get_agreements(self) -> list[Agreement]:
        """Get the agreements (displays) available to the account."""
        _LOGGER.debug("Fetching agreements...")
        data = await self.connector.get(ENDPOINT_AGREEMENTS)
        if not isinstance(data, list):
            raise ToonApiError("failed to get agreements")

        agreements = [Agreement.from_api(item) for item in data]
        _LOGGER.debug("Found %s agreements", len(agreements))
        return agreements

    async def set_agreement(self, agreement_id: str) -> Any:
        """Bind the client to an agreement and fetch its initial status.

        Args:
            agreement_id: Id of the agreement, see `get_agreements`.

        Returns:
            The response of the bind call.
        """
        result = await self.connector.bind(agreement_id)
        _LOGGER.debug("Successful post of agreement")
        await self.poller.async_refresh()
        return result

    async def async_fetch_details_from_code(self, code: str) -> Credentials:
        """Exchange an OAuth authorization code for tokens."""
        return await self.auth.async_fetch_details_from_code(code)

    async def refresh_tokens(self) -> Credentials:
        """Force a token refresh."""
        return await self.auth.async_refresh_access_token()

    def start_polling(self, interval: float = DEFAULT_POLL_INTERVAL) -> None:
        """Fetch the status every `interval` seconds in the background."""
        self.poller.start(interval)

    async def destroy(self) -> None:
        """Stop polling and drop queued calls. Calls in flight run to completion."""
        await self.poller.async_stop()
        self.connector.queue.abort_all()
        _LOGGER.debug("Client destroyed")
