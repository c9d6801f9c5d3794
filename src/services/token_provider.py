"""Bearer token acquisition and caching for the Booker API.

One ``TokenProvider`` is created per process and injected wherever a
credential is needed. The check-then-refresh sequence runs under an
``asyncio.Lock`` so concurrent callers share a single in-flight refresh.
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import json
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass

import httpx

from src.config.settings import Settings
from src.shared.errors import CredentialUnavailableError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Credential:
    """A bearer token and the epoch second it expires at."""

    token: str
    expires_at: int

    def is_fresh(self, now: float, margin_seconds: int) -> bool:
        """True while ``now`` is more than ``margin_seconds`` before expiry."""
        return now < self.expires_at - margin_seconds


def decode_token_expiry(token: str) -> int | None:
    """Read the ``exp`` claim from a three-segment signed token.

    Args:
        token: Token string ``header.payload.signature``.

    Returns:
        Expiry epoch second, or None if it cannot be decoded.
    """
    claims = decode_token_claims(token)
    if claims is None:
        return None
    exp = claims.get("exp")
    if isinstance(exp, (int, float)) and not isinstance(exp, bool):
        return int(exp)
    return None


def decode_token_claims(token: str) -> dict | None:
    """Decode the middle segment of a signed token as base64 JSON.

    Args:
        token: Token string.

    Returns:
        Claims dict, or None when the token is not decodable.
    """
    parts = token.split(".")
    if len(parts) < 2:
        return None
    segment = parts[1]
    padded = segment + "=" * (-len(segment) % 4)
    try:
        decoded = base64.urlsafe_b64decode(padded.replace("+", "-").replace("/", "_"))
        claims = json.loads(decoded.decode("utf-8"))
    except (binascii.Error, ValueError, UnicodeDecodeError):
        return None
    return claims if isinstance(claims, dict) else None


class TokenProvider:
    """Caches a short-lived bearer token, refreshing ahead of expiry.

    Attributes:
        settings: Application settings (API key, domain, lifetimes).
    """

    def __init__(
        self,
        settings: Settings,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize TokenProvider.

        Args:
            settings: Application settings.
            transport: Optional httpx transport (tests inject a mock).
            clock: Source of the current epoch time.
        """
        self.settings = settings
        self._transport = transport
        self._clock = clock
        self._credential: Credential | None = None
        self._lock = asyncio.Lock()
        self.refresh_count = 0

    @property
    def credential(self) -> Credential | None:
        """The cached credential, fresh or not."""
        return self._credential

    def is_fresh(self) -> bool:
        """Whether the cached credential can be used without a refresh."""
        return self._credential is not None and self._credential.is_fresh(
            self._clock(), self.settings.token_safety_margin_seconds,
        )

    async def get_token(self) -> str:
        """Return a fresh bearer token, refreshing at most once under contention.

        Returns:
            Bearer token string.

        Raises:
            CredentialUnavailableError: If issuance fails.
        """
        if self.is_fresh():
            return self._credential.token  # type: ignore[union-attr]
        async with self._lock:
            if self.is_fresh():
                return self._credential.token  # type: ignore[union-attr]
            self._credential = await self._issue()
            return self._credential.token

    def invalidate(self) -> None:
        """Drop the cached credential so the next call refreshes."""
        self._credential = None

    async def _issue(self) -> Credential:
        """Call the token issuance endpoint and build a Credential.

        Returns:
            Newly issued credential.

        Raises:
            CredentialUnavailableError: On missing key, HTTP or network
                failure, or a response without a token.
        """
        if not self.settings.booker_api_key:
            raise CredentialUnavailableError("BOOKER_API_KEY not configured")

        params = {"key": self.settings.booker_api_key, "sub": self.settings.booker_subject}
        try:
            async with httpx.AsyncClient(
                transport=self._transport,
                timeout=self.settings.booker_request_timeout_seconds,
            ) as client:
                response = await client.get(self.settings.token_url, params=params)
        except httpx.TransportError as exc:
            logger.warning("token_refresh_network_error", extra={"error": type(exc).__name__})
            raise CredentialUnavailableError(
                f"Failed to reach token endpoint: {type(exc).__name__}",
            ) from exc

        if not response.is_success:
            logger.warning("token_refresh_failed", extra={"status": response.status_code})
            raise CredentialUnavailableError(
                f"Failed to get token: {response.status_code}",
                status_code=response.status_code,
            )
        try:
            data = response.json()
        except ValueError as exc:
            raise CredentialUnavailableError("Token endpoint returned invalid JSON") from exc
        token = data.get("token") if isinstance(data, dict) else None
        if not token or not isinstance(token, str):
            raise CredentialUnavailableError("No token in token endpoint response")

        now = int(self._clock())
        expires_at = decode_token_expiry(token)
        if expires_at is None:
            expires_at = now + self.settings.token_default_ttl_seconds
        self.refresh_count += 1
        logger.info("token_refreshed", extra={"expires_in": expires_at - now})
        return Credential(token=token, expires_at=expires_at)
