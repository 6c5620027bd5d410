import asyncio

import pytest

from toonclient.models import Credentials


@pytest.fixture
def settle():
    """Return a coroutine function that lets scheduled tasks run a few steps."""

    async def _settle(rounds: int = 5) -> None:
        for _ in range(rounds):
            await asyncio.sleep(0)

    return _settle


@pytest.fixture
def credentials():
    """A token pair without known expiry."""
    return Credentials(access_token="old_access_token", refresh_token="test_refresh_token")


@pytest.fixture
def token_response():
    """Body returned by the token endpoint."""
    return {
        "access_token": "new_access_token",
        "refresh_token": "new_refresh_token",
        "expires_in": 3600,
        "token_type": "Bearer",
    }


@pytest.fixture
def status_payload():
    """Factory for /status bodies."""

    def _make(
        current=2050,
        setpoint=2100,
        active_state=1,
        power=350,
        power_day=4200,
        gas_day=1500,
    ):
        return {
            "thermostatInfo": {
                "currentDisplayTemp": current,
                "currentSetpoint": setpoint,
                "activeState": active_state,
                "programState": 1,
            },
            "powerUsage": {"value": power, "dayUsage": power_day},
            "gasUsage": {"dayUsage": gas_day},
            "thermostatStates": {
                "state": [
                    {"id": 0, "tempValue": 2000},
                    {"id": 1, "tempValue": 1800},
                    {"id": 2, "tempValue": 1500},
                    {"id": 3, "tempValue": 1200},
                ]
            },
        }

    return _make
