"""Connection handling for the Toon API.

Every call goes through the connector's request queue. Failed calls are
classified by HTTP status and, where the status allows it, recovered once:
a 401 refreshes the tokens, a 500 rebinds the agreement. A 429 drops every
queued call. A descriptor that was already resubmitted is never recovered
again.
"""

import asyncio
import logging
from typing import Any, Dict, Optional

import aiohttp

from .auth import AbstractAuth
from .connectivity import ConnectivityTracker
from .const import API_BASE_URL, COMMUNICATION_ERROR, DEFAULT_CONCURRENCY, ENDPOINT_AGREEMENTS
from .exceptions import (
    ToonApiError,
    ToonAuthError,
    ToonConnectionError,
    ToonDeviceOfflineError,
    ToonError,
    ToonForbiddenError,
    ToonMissingArgumentError,
    ToonNotFoundError,
    ToonRateLimitError,
    ToonServerInternalError,
    ToonTokenError,
    ToonValidationError,
)
from .models import RequestDescriptor
from .queue import RequestQueue
from .utils import mask_pii

_LOGGER = logging.getLogger(__name__)


def is_communication_error(error_body: Dict[str, Any]) -> bool:
    """Return True if an error body says the thermostat is unreachable."""
    return (
        error_body.get("type") == COMMUNICATION_ERROR
        or error_body.get("errorCode") == COMMUNICATION_ERROR
    )


async def raise_for_status(response: aiohttp.ClientResponse) -> None:
    """
    Parses the response and raises specific ToonErrors if status >= 400.

    The error body is kept on the exception so callers can inspect it.
    """
    status = response.status
    if status < 400:
        return

    error_body: Dict[str, Any] = {}
    error_message = f"HTTP {status}"

    try:
        data = await response.json(content_type=None)
    except ValueError:
        # Body is not JSON.
        data = None

    if isinstance(data, dict):
        error_body = data
        fault = data.get("fault") if isinstance(data.get("fault"), dict) else {}
        error_message = (
            data.get("description")
            or data.get("message")
            or fault.get("faultstring")
            or data.get("type")
            or error_message
        )

    _LOGGER.error("API Error %s: %s", status, error_message)

    if status == 401:
        raise ToonAuthError(f"Unauthorized: {error_message}", status, error_body)

    if status == 403:
        raise ToonForbiddenError(f"Forbidden: {error_message}", status, error_body)

    if status == 404:
        raise ToonNotFoundError(f"Not Found: {error_message}", status, error_body)

    if status == 429:
        raise ToonRateLimitError("Rate Limit Exceeded", status, error_body)

    if status in (400, 422):
        raise ToonValidationError(error_message, status, error_body)

    if status == 500 and is_communication_error(error_body):
        raise ToonDeviceOfflineError(
            f"Device offline: {error_message}", status, error_body
        )

    if status >= 500:
        raise ToonServerInternalError(
            f"Server Error {status}: {error_message}", status, error_body
        )

    raise ToonApiError(f"Unknown Error {status}: {error_message}", status, error_body)


class ToonConnector:
    """Handles queued, authenticated HTTP calls to the Toon API.

    Attributes:
        auth: Token manager attaching and refreshing bearer tokens.
        connectivity: Tracker told about successes and offline errors.
        queue: Request serializer owned by this connector.
        agreement_id: The agreement calls are bound to, reused on rebind.
    """

    def __init__(
        self,
        auth: AbstractAuth,
        connectivity: ConnectivityTracker,
        concurrency: int = DEFAULT_CONCURRENCY,
    ) -> None:
        self.auth = auth
        self.connectivity = connectivity
        self.queue = RequestQueue(concurrency)
        self.agreement_id: Optional[str] = None

    async def get(self, path: str) -> Any:
        return await self.request(RequestDescriptor("GET", path))

    async def put(self, path: str, body: Dict[str, Any]) -> Any:
        return await self.request(RequestDescriptor("PUT", path, body=body))

    async def post(self, path: str, body: Dict[str, Any]) -> Any:
        return await self.request(RequestDescriptor("POST", path, body=body))

    async def bind(self, agreement_id: str) -> Any:
        """Select the agreement that subsequent calls apply to."""
        if not agreement_id:
            raise ToonMissingArgumentError("missing agreementId argument")

        # Remembered before posting so a recovery of this very call can rebind.
        previous = self.agreement_id
        self.agreement_id = agreement_id
        _LOGGER.debug(mask_pii(f"Binding agreementId={agreement_id}"))
        try:
            return await self.post(ENDPOINT_AGREEMENTS, {"agreementId": agreement_id})
        except ToonError:
            if self.agreement_id == agreement_id:
                self.agreement_id = previous
            raise

    async def rebind(self) -> Any:
        """Bind the remembered agreement again, without recovery."""
        if not self.agreement_id:
            raise ToonMissingArgumentError("missing agreementId argument")

        _LOGGER.debug(mask_pii(f"Rebinding agreementId={self.agreement_id}"))
        descriptor = RequestDescriptor(
            "POST",
            ENDPOINT_AGREEMENTS,
            body={"agreementId": self.agreement_id},
            allow_retry=False,
        )
        return await self.request(descriptor)

    async def request(self, descriptor: RequestDescriptor) -> Any:
        """
        Central request logic.
        Queues the call, then recovers from a failure at most once.
        """
        if not self.auth.has_access_token:
            raise ToonAuthError("missing access token")

        try:
            result = await self.queue.enqueue(lambda: self._send(descriptor))
        except ToonApiError as err:
            return await self._recover(descriptor, err)

        self.connectivity.mark_online()
        return result

    async def _recover(self, descriptor: RequestDescriptor, error: ToonApiError) -> Any:
        """Apply the recovery action for `error` or re-raise it."""
        if isinstance(error, ToonTokenError):
            # The token endpoint failed, not the API call.
            raise error

        status = error.status
        if status == 401:
            if not descriptor.allow_retry:
                _LOGGER.error("401 after retry, giving up")
                raise error
            _LOGGER.warning("401 unauthorized, refreshing access tokens")
            await self.auth.async_refresh_access_token()
            _LOGGER.debug("Refreshed tokens, retrying request")
            return await self.request(descriptor.without_retry())

        if isinstance(error, ToonDeviceOfflineError):
            # An unreachable device is not fixed by resending.
            self.connectivity.mark_offline()
            raise error

        if status == 500:
            if not descriptor.allow_retry or not self.agreement_id:
                raise error
            _LOGGER.warning("500 server error, agreement may be unset; rebinding")
            await self.rebind()
            _LOGGER.debug("Rebound agreement, retrying request")
            return await self.request(descriptor.without_retry())

        raise error

    async def _send(self, descriptor: RequestDescriptor) -> Any:
        """Perform one HTTP call. Runs inside the request queue."""
        url = f"{API_BASE_URL}{descriptor.path}"
        headers = {"Accept": "application/json", **descriptor.headers}
        kwargs: Dict[str, Any] = {"headers": headers}
        if descriptor.body is not None:
            kwargs["json"] = descriptor.body

        try:
            _LOGGER.debug(
                mask_pii(f"Request: {descriptor.method} {url} {descriptor.body or ''}")
            )
            async with await self.auth.request(descriptor.method, url, **kwargs) as resp:

                # Verify response status and raise exceptions if needed.
                await raise_for_status(resp)

                # Return parsed JSON for success.
                try:
                    data = await resp.json(content_type=None)
                except ValueError:
                    return {}
                return data if data is not None else {}

        except ToonRateLimitError:
            # Abort before this job frees its slot, so no queued call starts.
            _LOGGER.warning("429 too many requests, aborting queued requests")
            self.queue.abort_all()
            raise
        except ToonError:
            # Re-raise classified errors.
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            # Wrap low-level network errors.
            raise ToonConnectionError(f"Network error: {e}") from e
