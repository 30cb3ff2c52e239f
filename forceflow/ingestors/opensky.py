"""Bounded-region snapshot fetcher for the OpenSky REST API."""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
from typing import Any, Literal

import httpx

from forceflow.config import settings
from forceflow.errors import AuthError, TransportError
from forceflow.ingestors.credentials import OpenSkyCredentialManager
from forceflow.models.air_traffic import BoundingBox

logger = logging.getLogger("forceflow.ingestors.opensky")

AuthMode = Literal["oauth2", "basic_auth", "anonymous"]


@dataclass
class FeedSnapshot:
    """Raw state arrays from one request and how they were obtained."""

    states: list[Any] = field(default_factory=list)
    auth_mode: AuthMode = "anonymous"
    rate_limited: bool = False


class OpenSkyFeedFetcher:
    """Fetch aircraft state vectors inside a bounding box."""

    def __init__(
        self,
        *,
        base_url: str | None = None,
        timeout: float | None = None,
        credentials: OpenSkyCredentialManager | None = None,
        username: str | None = None,
        password: str | None = None,
        user_agent: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = (base_url or settings.opensky_base_url).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.opensky_timeout
        self.credentials = credentials or OpenSkyCredentialManager(transport=transport)
        self.username = username if username is not None else settings.opensky_username
        self.password = password if password is not None else settings.opensky_password
        self.user_agent = user_agent or settings.user_agent
        self.transport = transport
        self.last_auth_mode: AuthMode | None = None

    @property
    def basic_auth_configured(self) -> bool:
        return bool(self.username and self.password)

    @property
    def preferred_auth_mode(self) -> AuthMode:
        """Auth mode the configuration would use when nothing has failed."""

        if self.credentials.configured:
            return "oauth2"
        if self.basic_auth_configured:
            return "basic_auth"
        return "anonymous"

    async def _request_auth(self) -> tuple[AuthMode, dict[str, str], httpx.BasicAuth | None]:
        headers = {"User-Agent": self.user_agent}
        try:
            token = await self.credentials.get_token()
        except (AuthError, TransportError) as exc:
            logger.warning("OAuth2 token failed, falling back to basic auth or anonymous: %s", exc)
            token = None

        if token:
            headers["Authorization"] = f"Bearer {token}"
            return "oauth2", headers, None
        if self.basic_auth_configured:
            logger.info("Using OpenSky basic authentication (deprecated)")
            return "basic_auth", headers, httpx.BasicAuth(self.username, self.password)
        logger.info("Using OpenSky anonymous access (limited rate)")
        return "anonymous", headers, None

    async def fetch_snapshot(self, bounds: BoundingBox) -> FeedSnapshot:
        """Request ``/states/all`` for ``bounds``.

        Returns a rate-limited empty snapshot on HTTP 429. Raises
        ``AuthError`` on HTTP 401 (after dropping the cached token) and
        ``TransportError`` on timeouts, connection failures, other non-2xx
        responses or an unparseable body.
        """

        auth_mode, headers, auth = await self._request_auth()
        self.last_auth_mode = auth_mode
        request_kwargs: dict[str, Any] = {"params": bounds.as_params(), "headers": headers}
        if auth is not None:
            request_kwargs["auth"] = auth

        logger.info("Fetching aircraft states from OpenSky (%s)", auth_mode)
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self.transport
            ) as client:
                response = await client.get(f"{self.base_url}/states/all", **request_kwargs)
        except httpx.TimeoutException as exc:
            logger.error("OpenSky request timed out: %s", exc)
            raise TransportError("OpenSky request timed out") from exc
        except httpx.RequestError as exc:
            logger.error("No response from OpenSky API: %s", exc)
            raise TransportError("OpenSky request failed") from exc

        if response.status_code == 401:
            logger.error("OpenSky authentication failed - check credentials or token expiry")
            self.credentials.invalidate()
            raise AuthError("OpenSky rejected the request credentials")
        if response.status_code == 429:
            logger.warning("OpenSky rate limit exceeded, backing off until next cycle")
            return FeedSnapshot(auth_mode=auth_mode, rate_limited=True)
        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            logger.error(
                "OpenSky API error: %s %s", exc.response.status_code, exc.response.reason_phrase
            )
            raise TransportError(
                "OpenSky API error", status_code=exc.response.status_code
            ) from exc

        try:
            payload = response.json()
        except ValueError as exc:
            logger.error("Failed to parse OpenSky JSON response: %s", exc)
            raise TransportError("OpenSky returned a malformed payload") from exc

        states = payload.get("states") if isinstance(payload, dict) else None
        if not states:
            logger.warning("No states data received from OpenSky")
            return FeedSnapshot(auth_mode=auth_mode)
        if not isinstance(states, list):
            logger.warning("Unexpected OpenSky states type %s", type(states).__name__)
            return FeedSnapshot(auth_mode=auth_mode)

        logger.info("Received %s aircraft states from OpenSky", len(states))
        return FeedSnapshot(states=states, auth_mode=auth_mode)


__all__ = ["AuthMode", "FeedSnapshot", "OpenSkyFeedFetcher"]
