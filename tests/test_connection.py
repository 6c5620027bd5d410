"""Tests for toonclient.connection module."""

import asyncio
import time

import aiohttp
import pytest
from aioresponses import aioresponses
from yarl import URL

from toonclient.auth import OAuth
from toonclient.connection import ToonConnector, is_communication_error
from toonclient.connectivity import ConnectivityTracker
from toonclient.const import API_BASE_URL, ENDPOINT_TOKEN
from toonclient.events import DeviceOffline, DeviceOnline
from toonclient.exceptions import (
    ToonAbortedError,
    ToonAuthError,
    ToonConnectionError,
    ToonDeviceOfflineError,
    ToonForbiddenError,
    ToonNotFoundError,
    ToonRateLimitError,
    ToonServerInternalError,
    ToonTokenError,
    ToonValidationError,
)
from toonclient.models import Credentials

STATUS_URL = f"{API_BASE_URL}/status"
TEMPERATURE_URL = f"{API_BASE_URL}/temperature"
AGREEMENTS_URL = f"{API_BASE_URL}/agreements"


def make_connector(session, credentials=None):
    """Build a connector wired the way ToonClient wires it."""
    auth = OAuth("test_client_id", "http://localhost:4200/", session, credentials)
    connectivity = ConnectivityTracker(auth.events)
    return ToonConnector(auth, connectivity)


def test_is_communication_error():
    assert is_communication_error({"type": "communicationError"})
    assert is_communication_error({"errorCode": "communicationError"})
    assert not is_communication_error({"type": "internalError"})
    assert not is_communication_error({})


class TestRequest:
    """Plain requests and error classification."""

    @pytest.mark.asyncio
    async def test_success_returns_json_and_sends_bearer(self, credentials):
        with aioresponses() as m:
            m.get(STATUS_URL, payload={"thermostatInfo": {}})

            async with aiohttp.ClientSession() as session:
                connector = make_connector(session, credentials)
                result = await connector.get("/status")

            request = m.requests[("GET", URL(STATUS_URL))][0]
            assert request.kwargs["headers"]["Authorization"] == "Bearer old_access_token"
            assert request.kwargs["headers"]["Accept"] == "application/json"

        assert result == {"thermostatInfo": {}}

    @pytest.mark.asyncio
    async def test_put_sends_json_body(self, credentials):
        with aioresponses() as m:
            m.put(TEMPERATURE_URL, payload={})

            async with aiohttp.ClientSession() as session:
                connector = make_connector(session, credentials)
                await connector.put("/temperature", {"value": 2150})

            request = m.requests[("PUT", URL(TEMPERATURE_URL))][0]
            assert request.kwargs["json"] == {"value": 2150}

    @pytest.mark.asyncio
    async def test_empty_body_returns_empty_dict(self, credentials):
        with aioresponses() as m:
            m.put(TEMPERATURE_URL, status=204, body="")

            async with aiohttp.ClientSession() as session:
                connector = make_connector(session, credentials)
                result = await connector.put("/temperature", {"value": 2150})

        assert result == {}

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "status,expected",
        [
            (400, ToonValidationError),
            (403, ToonForbiddenError),
            (404, ToonNotFoundError),
            (503, ToonServerInternalError),
        ],
    )
    async def test_error_status_is_classified(self, credentials, status, expected):
        with aioresponses() as m:
            m.get(STATUS_URL, status=status, payload={"description": "nope"})

            async with aiohttp.ClientSession() as session:
                connector = make_connector(session, credentials)
                with pytest.raises(expected) as exc_info:
                    await connector.get("/status")

            # Not recoverable: sent exactly once.
            assert len(m.requests[("GET", URL(STATUS_URL))]) == 1

        assert exc_info.value.status == status
        assert exc_info.value.error_body == {"description": "nope"}

    @pytest.mark.asyncio
    async def test_network_error_is_wrapped(self, credentials):
        with aioresponses() as m:
            m.get(STATUS_URL, exception=aiohttp.ClientConnectionError("reset"))

            async with aiohttp.ClientSession() as session:
                connector = make_connector(session, credentials)
                with pytest.raises(ToonConnectionError):
                    await connector.get("/status")

    @pytest.mark.asyncio
    async def test_timeout_is_wrapped(self, credentials):
        with aioresponses() as m:
            m.get(STATUS_URL, exception=asyncio.TimeoutError())

            async with aiohttp.ClientSession() as session:
                connector = make_connector(session, credentials)
                with pytest.raises(ToonConnectionError):
                    await connector.get("/status")

    @pytest.mark.asyncio
    async def test_missing_token_sends_nothing(self):
        with aioresponses() as m:
            async with aiohttp.ClientSession() as session:
                connector = make_connector(session)
                with pytest.raises(ToonAuthError):
                    await connector.get("/status")

            assert not m.requests


class TestUnauthorizedRecovery:
    """401 handling."""

    @pytest.mark.asyncio
    async def test_401_refreshes_and_retries_with_new_token(self, credentials, token_response):
        # Arrange: First attempt rejected, token refresh works, retry succeeds.
        with aioresponses() as m:
            m.put(TEMPERATURE_URL, status=401, payload={"fault": {"faultstring": "expired"}})
            m.post(ENDPOINT_TOKEN, payload=token_response)
            m.put(TEMPERATURE_URL, payload={"value": 2150})

            async with aiohttp.ClientSession() as session:
                connector = make_connector(session, credentials)

                # Act
                result = await connector.put("/temperature", {"value": 2150})

            # Assert: Second attempt carried the refreshed token.
            calls = m.requests[("PUT", URL(TEMPERATURE_URL))]
            assert len(calls) == 2
            assert calls[0].kwargs["headers"]["Authorization"] == "Bearer old_access_token"
            assert calls[1].kwargs["headers"]["Authorization"] == "Bearer new_access_token"
            assert len(m.requests[("POST", URL(ENDPOINT_TOKEN))]) == 1

        assert result == {"value": 2150}
        assert connector.auth.credentials.refresh_token == "new_refresh_token"

    @pytest.mark.asyncio
    async def test_second_401_is_terminal(self, credentials, token_response):
        with aioresponses() as m:
            m.get(STATUS_URL, status=401, repeat=True)
            m.post(ENDPOINT_TOKEN, payload=token_response, repeat=True)

            async with aiohttp.ClientSession() as session:
                connector = make_connector(session, credentials)
                with pytest.raises(ToonAuthError) as exc_info:
                    await connector.get("/status")

            assert len(m.requests[("GET", URL(STATUS_URL))]) == 2
            assert len(m.requests[("POST", URL(ENDPOINT_TOKEN))]) == 1

        assert exc_info.value.status == 401

    @pytest.mark.asyncio
    async def test_refresh_failure_propagates(self, credentials):
        with aioresponses() as m:
            m.get(STATUS_URL, status=401)
            m.post(ENDPOINT_TOKEN, status=400, body="invalid_grant")

            async with aiohttp.ClientSession() as session:
                connector = make_connector(session, credentials)
                with pytest.raises(ToonAuthError) as exc_info:
                    await connector.get("/status")

            assert len(m.requests[("GET", URL(STATUS_URL))]) == 1

        assert exc_info.value.status == 400


class TestRateLimit:
    """429 handling."""

    @pytest.mark.asyncio
    async def test_429_aborts_queued_requests(self, credentials):
        # Arrange: First call rate limited.
        with aioresponses() as m:
            m.get(STATUS_URL, status=429)
            m.get(STATUS_URL, payload={}, repeat=True)

            async with aiohttp.ClientSession() as session:
                connector = make_connector(session, credentials)

                # Act: Three calls submitted together, one slot.
                results = await asyncio.gather(
                    connector.get("/status"),
                    connector.get("/status"),
                    connector.get("/status"),
                    return_exceptions=True,
                )

            # Assert: Only the first reached the server.
            assert len(m.requests[("GET", URL(STATUS_URL))]) == 1

        assert isinstance(results[0], ToonRateLimitError)
        assert isinstance(results[1], ToonAbortedError)
        assert isinstance(results[2], ToonAbortedError)
        assert connector.queue.size == 0

    @pytest.mark.asyncio
    async def test_queue_usable_after_429(self, credentials):
        with aioresponses() as m:
            m.get(STATUS_URL, status=429)
            m.get(STATUS_URL, payload={"ok": 1})

            async with aiohttp.ClientSession() as session:
                connector = make_connector(session, credentials)
                with pytest.raises(ToonRateLimitError):
                    await connector.get("/status")
                assert await connector.get("/status") == {"ok": 1}


class TestCommunicationError:
    """500 with communicationError body."""

    @pytest.mark.asyncio
    async def test_offline_then_online(self, credentials):
        # Arrange: Two offline answers, then a normal one.
        events = []
        with aioresponses() as m:
            m.get(STATUS_URL, status=500, payload={"type": "communicationError"})
            m.get(STATUS_URL, status=500, payload={"errorCode": "communicationError"})
            m.get(STATUS_URL, payload={})

            async with aiohttp.ClientSession() as session:
                connector = make_connector(session, credentials)
                connector.agreement_id = "agreement-1"
                connector.auth.events.subscribe(events.append)

                # Act
                for _ in range(2):
                    with pytest.raises(ToonDeviceOfflineError):
                        await connector.get("/status")
                assert connector.connectivity.is_offline
                await connector.get("/status")

            # Assert: No rebind and no resubmission for offline answers.
            assert ("POST", URL(AGREEMENTS_URL)) not in m.requests
            assert len(m.requests[("GET", URL(STATUS_URL))]) == 3

        assert events == [DeviceOffline(), DeviceOnline()]
        assert not connector.connectivity.is_offline


class TestServerErrorRecovery:
    """Plain 500 handling."""

    @pytest.mark.asyncio
    async def test_500_rebinds_and_retries(self, credentials):
        with aioresponses() as m:
            m.get(STATUS_URL, status=500, payload={"type": "internalError"})
            m.post(AGREEMENTS_URL, payload={})
            m.get(STATUS_URL, payload={"ok": 1})

            async with aiohttp.ClientSession() as session:
                connector = make_connector(session, credentials)
                connector.agreement_id = "agreement-1"
                result = await connector.get("/status")

            rebind = m.requests[("POST", URL(AGREEMENTS_URL))]
            assert len(rebind) == 1
            assert rebind[0].kwargs["json"] == {"agreementId": "agreement-1"}

        assert result == {"ok": 1}

    @pytest.mark.asyncio
    async def test_second_500_is_terminal(self, credentials):
        with aioresponses() as m:
            m.get(STATUS_URL, status=500, repeat=True)
            m.post(AGREEMENTS_URL, payload={})

            async with aiohttp.ClientSession() as session:
                connector = make_connector(session, credentials)
                connector.agreement_id = "agreement-1"
                with pytest.raises(ToonServerInternalError):
                    await connector.get("/status")

            assert len(m.requests[("GET", URL(STATUS_URL))]) == 2
            assert len(m.requests[("POST", URL(AGREEMENTS_URL))]) == 1

    @pytest.mark.asyncio
    async def test_500_without_agreement_is_not_recovered(self, credentials):
        with aioresponses() as m:
            m.get(STATUS_URL, status=500)

            async with aiohttp.ClientSession() as session:
                connector = make_connector(session, credentials)
                with pytest.raises(ToonServerInternalError):
                    await connector.get("/status")

            assert ("POST", URL(AGREEMENTS_URL)) not in m.requests

    @pytest.mark.asyncio
    async def test_failing_rebind_is_not_recovered(self, credentials):
        with aioresponses() as m:
            m.get(STATUS_URL, status=500)
            m.post(AGREEMENTS_URL, status=500, repeat=True)

            async with aiohttp.ClientSession() as session:
                connector = make_connector(session, credentials)
                connector.agreement_id = "agreement-1"
                with pytest.raises(ToonServerInternalError):
                    await connector.get("/status")

            assert len(m.requests[("POST", URL(AGREEMENTS_URL))]) == 1


class TestBind:
    @pytest.mark.asyncio
    async def test_bind_remembers_agreement(self, credentials):
        with aioresponses() as m:
            m.post(AGREEMENTS_URL, payload={})

            async with aiohttp.ClientSession() as session:
                connector = make_connector(session, credentials)
                await connector.bind("agreement-1")

        assert connector.agreement_id == "agreement-1"

    @pytest.mark.asyncio
    async def test_bind_requires_id(self, credentials):
        with aioresponses() as m:
            async with aiohttp.ClientSession() as session:
                connector = make_connector(session, credentials)
                with pytest.raises(ValueError):
                    await connector.bind("")

            assert not m.requests

    @pytest.mark.asyncio
    async def test_failed_bind_keeps_previous_agreement(self, credentials):
        # Arrange: A working binding, then a bind to an unknown agreement.
        with aioresponses() as m:
            m.post(AGREEMENTS_URL, payload={})
            m.post(AGREEMENTS_URL, status=404, payload={"description": "unknown agreement"})

            async with aiohttp.ClientSession() as session:
                connector = make_connector(session, credentials)
                await connector.bind("agreement-1")

                # Act
                with pytest.raises(ToonNotFoundError):
                    await connector.bind("agreement-2")

        # Assert: Later recoveries still rebind the working agreement.
        assert connector.agreement_id == "agreement-1"

    @pytest.mark.asyncio
    async def test_bind_recovered_by_rebind_keeps_new_agreement(self, credentials):
        """A 500 on the bind itself rebinds the agreement being bound."""
        with aioresponses() as m:
            m.post(AGREEMENTS_URL, status=500)
            m.post(AGREEMENTS_URL, payload={}, repeat=True)

            async with aiohttp.ClientSession() as session:
                connector = make_connector(session, credentials)
                await connector.bind("agreement-2")

            posts = m.requests[("POST", URL(AGREEMENTS_URL))]
            assert [call.kwargs["json"] for call in posts] == [{"agreementId": "agreement-2"}] * 3

        assert connector.agreement_id == "agreement-2"


class TestTokenEndpointFailure:
    """Failures of the token endpoint are never recovered as API errors."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [401, 500])
    async def test_failed_proactive_refresh_is_not_recovered(self, status):
        # Arrange: Expired token, token endpoint failing, agreement bound.
        expired = Credentials("old_access_token", "test_refresh_token", time.time() - 10)

        with aioresponses() as m:
            m.post(ENDPOINT_TOKEN, status=status, body="token endpoint error", repeat=True)

            async with aiohttp.ClientSession() as session:
                connector = make_connector(session, expired)
                connector.agreement_id = "agreement-1"

                # Act
                with pytest.raises(ToonTokenError) as exc_info:
                    await connector.get("/status")

            # Assert: One refresh attempt, no API call, no rebind.
            assert len(m.requests[("POST", URL(ENDPOINT_TOKEN))]) == 1
            assert ("GET", URL(STATUS_URL)) not in m.requests
            assert ("POST", URL(AGREEMENTS_URL)) not in m.requests

        assert exc_info.value.status == status

    @pytest.mark.asyncio
    async def test_failed_refresh_after_401_is_not_retried(self, credentials):
        with aioresponses() as m:
            m.get(STATUS_URL, status=401, repeat=True)
            m.post(ENDPOINT_TOKEN, status=500, body="down", repeat=True)

            async with aiohttp.ClientSession() as session:
                connector = make_connector(session, credentials)
                with pytest.raises(ToonTokenError):
                    await connector.get("/status")

            assert len(m.requests[("GET", URL(STATUS_URL))]) == 1
            assert len(m.requests[("POST", URL(ENDPOINT_TOKEN))]) == 1
