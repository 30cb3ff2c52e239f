"""OAuth2 client-credentials token cache for the OpenSky API."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable

import httpx

from forceflow.config import settings
from forceflow.errors import AuthError, TransportError

logger = logging.getLogger("forceflow.ingestors.credentials")


class OpenSkyCredentialManager:
    """Obtain and cache a bearer token for the OpenSky feed.

    The token is reused until ``expires_in`` minus a refresh margin has
    elapsed. Without configured client credentials ``get_token`` returns
    ``None`` and callers proceed with a weaker auth mode.
    """

    def __init__(
        self,
        *,
        token_url: str | None = None,
        client_id: str | None = None,
        client_secret: str | None = None,
        timeout: float | None = None,
        refresh_margin_seconds: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.token_url = token_url or settings.opensky_token_url
        self.client_id = client_id if client_id is not None else settings.opensky_client_id
        self.client_secret = (
            client_secret if client_secret is not None else settings.opensky_client_secret
        )
        self.timeout = timeout if timeout is not None else settings.opensky_token_timeout
        self.refresh_margin_seconds = (
            refresh_margin_seconds
            if refresh_margin_seconds is not None
            else settings.token_refresh_margin_seconds
        )
        self.transport = transport
        self._clock = clock
        self._lock = asyncio.Lock()
        self._access_token: str | None = None
        self._expires_at: float | None = None

    @property
    def configured(self) -> bool:
        return bool(self.client_id and self.client_secret)

    @property
    def token_valid(self) -> bool:
        return (
            self._access_token is not None
            and self._expires_at is not None
            and self._clock() < self._expires_at
        )

    def invalidate(self) -> None:
        """Drop the cached token so the next call re-authenticates."""

        self._access_token = None
        self._expires_at = None

    async def get_token(self) -> str | None:
        """Return a valid bearer token, exchanging credentials when needed.

        Raises ``AuthError`` when the endpoint rejects the credentials or
        returns a malformed body, ``TransportError`` when it cannot be reached.
        The cache is cleared on every failure.
        """

        if self.token_valid:
            return self._access_token

        if not self.configured:
            logger.debug("No OpenSky OAuth2 credentials configured")
            return None

        async with self._lock:
            # Another caller may have refreshed while we waited
            if self.token_valid:
                return self._access_token
            try:
                return await self._exchange()
            except (AuthError, TransportError):
                self.invalidate()
                raise

    async def _exchange(self) -> str:
        logger.info("Obtaining OpenSky OAuth2 access token")
        form = {
            "grant_type": "client_credentials",
            "client_id": self.client_id,
            "client_secret": self.client_secret,
        }
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self.transport
            ) as client:
                response = await client.post(self.token_url, data=form)
        except httpx.TimeoutException as exc:
            logger.error("OpenSky token request timed out: %s", exc)
            raise TransportError("OpenSky token request timed out") from exc
        except httpx.RequestError as exc:
            logger.error("OpenSky token request failed: %s", exc)
            raise TransportError("OpenSky token request failed") from exc

        if response.status_code >= 500:
            logger.error("OpenSky token endpoint returned HTTP %s", response.status_code)
            raise TransportError(
                "OpenSky token endpoint unavailable", status_code=response.status_code
            )
        if response.status_code >= 400:
            logger.error(
                "OpenSky token request rejected: status=%s body=%s",
                response.status_code,
                response.text,
            )
            raise AuthError(f"OpenSky token request rejected with HTTP {response.status_code}")

        try:
            payload = response.json()
            token = payload["access_token"]
            expires_in = float(payload["expires_in"])
        except (ValueError, KeyError, TypeError) as exc:
            logger.error("Malformed OpenSky token response: %s", exc)
            raise AuthError("Malformed OpenSky token response") from exc

        if not isinstance(token, str) or not token:
            raise AuthError("OpenSky token response contained an empty token")

        self._access_token = token
        self._expires_at = self._clock() + expires_in - self.refresh_margin_seconds
        logger.info("OpenSky OAuth2 token obtained; valid for %.0f s", expires_in)
        return token


__all__ = ["OpenSkyCredentialManager"]
