"""Authentication module for the Toon API."""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional
from urllib.parse import urlencode

import aiohttp
import pkce

from .const import ENDPOINT_AUTHORIZE, ENDPOINT_TOKEN, TOKEN_EXPIRY_MARGIN
from .events import EventBus, TokensRefreshed
from .exceptions import ToonConnectionError, ToonMissingArgumentError, ToonTokenError
from .models import Credentials

_LOGGER = logging.getLogger(__name__)


class AbstractAuth(ABC):
    """Abstract class to make authenticated requests."""

    def __init__(
        self, websession: aiohttp.ClientSession, events: Optional[EventBus] = None
    ) -> None:
        """Initialize the auth."""
        self.websession = websession
        self.events = events or EventBus()

    @property
    def has_access_token(self) -> bool:
        """Return False if a request is certain to fail for lack of a token."""
        return True

    @abstractmethod
    async def async_get_access_token(self) -> str:
        """Return a valid access token."""

    @abstractmethod
    async def async_refresh_access_token(self) -> Credentials:
        """Replace the current tokens with fresh ones."""

    async def async_fetch_details_from_code(self, code: str) -> Credentials:
        """Exchange an authorization code for tokens."""
        raise NotImplementedError("This auth does not support the authorization code flow.")

    async def request(self, method: str, url: str, **kwargs: Any) -> aiohttp.ClientResponse:
        """Make an authenticated request."""
        access_token = await self.async_get_access_token()

        headers = kwargs.get("headers", {}).copy()
        headers["Authorization"] = f"Bearer {access_token}"
        kwargs["headers"] = headers

        return await self.websession.request(method, url, **kwargs)


class OAuth(AbstractAuth):
    """OAuth2 implementation for the Toon API.

    Only one token refresh is ever in flight. Callers asking for a refresh
    while one is running wait for that refresh and share its outcome.
    Credentials are kept in memory; subscribe to `TokensRefreshed` on
    `events` to store them.
    """

    def __init__(
        self,
        client_id: str,
        redirect_uri: str,
        websession: aiohttp.ClientSession,
        credentials: Optional[Credentials] = None,
        client_secret: Optional[str] = None,
        events: Optional[EventBus] = None,
    ) -> None:
        super().__init__(websession, events)
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self._credentials = credentials
        self._pkce_verifier: Optional[str] = None
        self._refresh_task: Optional[asyncio.Task] = None

    @property
    def credentials(self) -> Optional[Credentials]:
        return self._credentials

    @property
    def has_access_token(self) -> bool:
        return self._credentials is not None and bool(self._credentials.access_token)

    def set_credentials(self, credentials: Credentials) -> None:
        """Restore a previously stored token pair."""
        self._credentials = credentials

    def get_authorization_url(self) -> str:
        """Generate authorization URL and PKCE challenge."""
        self._pkce_verifier, code_challenge = pkce.generate_pkce_pair()

        params = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "code_challenge": code_challenge,
            "code_challenge_method": "S256",
        }

        return f"{ENDPOINT_AUTHORIZE}?{urlencode(params)}"

    async def async_fetch_details_from_code(self, code: str) -> Credentials:
        """Exchange an authorization code for tokens."""
        if not code:
            raise ToonMissingArgumentError("missing authorization code")

        data = {
            "grant_type": "authorization_code",
            "redirect_uri": self.redirect_uri,
            "code": code,
        }
        if self._pkce_verifier:
            data["code_verifier"] = self._pkce_verifier

        token_data = await self._async_token_request(data, "fetch token")
        self._credentials = Credentials.from_token_response(token_data)
        self._pkce_verifier = None
        _LOGGER.debug("Exchanged authorization code for tokens")
        self.events.emit(TokensRefreshed(self._credentials))
        return self._credentials

    async def async_refresh_access_token(self) -> Credentials:
        """Refresh the access token.

        Raises:
            ToonTokenError: No refresh token is available or the token
                endpoint rejected it.
            ToonConnectionError: The token endpoint could not be reached.
        """
        if self._credentials is None or not self._credentials.refresh_token:
            raise ToonTokenError("No refresh token available.")

        task = self._refresh_task
        if task is None:
            _LOGGER.debug("Starting token refresh")
            task = asyncio.ensure_future(self._async_do_refresh())
            self._refresh_task = task
        else:
            _LOGGER.debug("Token refresh already in progress, waiting for it")

        # Shield so a cancelled waiter does not cancel the refresh for everyone.
        return await asyncio.shield(task)

    async def async_get_access_token(self) -> str:
        """Return valid access token, refreshing if it is known to be expiring."""
        if self._credentials is None or not self._credentials.access_token:
            raise ToonTokenError("No tokens loaded. Please authenticate first.")

        if self._credentials.refresh_token and self._credentials.is_expiring(
            TOKEN_EXPIRY_MARGIN
        ):
            _LOGGER.debug("Access token about to expire, refreshing")
            await self.async_refresh_access_token()

        return self._credentials.access_token

    async def _async_do_refresh(self) -> Credentials:
        data = {
            "grant_type": "refresh_token",
            "refresh_token": self._credentials.refresh_token,
        }
        try:
            token_data = await self._async_token_request(data, "refresh token")
        finally:
            self._refresh_task = None

        # Both tokens are replaced in one assignment.
        self._credentials = Credentials.from_token_response(
            token_data, previous=self._credentials
        )
        _LOGGER.info("Access token refreshed")
        self.events.emit(TokensRefreshed(self._credentials))
        return self._credentials

    async def _async_token_request(self, data: Dict[str, str], action: str) -> Dict[str, Any]:
        """POST to the token endpoint and return the JSON body."""
        data = {**data, "client_id": self.client_id}
        if self.client_secret:
            data["client_secret"] = self.client_secret

        try:
            async with self.websession.post(ENDPOINT_TOKEN, data=data) as resp:
                if resp.status != 200:
                    text = await resp.text()
                    raise ToonTokenError(
                        f"Failed to {action}: {text}", status=resp.status
                    )
                token_data = await resp.json(content_type=None)
        except aiohttp.ClientError as err:
            raise ToonConnectionError(f"Failed to {action}: {err}") from err

        if not isinstance(token_data, dict) or not token_data.get("access_token"):
            raise ToonTokenError(f"Failed to {action}: no access token in response")
        return token_data
