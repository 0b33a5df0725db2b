from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable

import httpx

from leadflow.db.encoding import utcnow
from leadflow.models.errors import InvalidRequestError, ServiceUnavailableError

logger = logging.getLogger(__name__)

MICROSOFT_TOKEN_URL = "https://login.microsoftonline.com/common/oauth2/v2.0/token"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"


@dataclass(frozen=True)
class OAuthProvider:
    name: str
    token_url: str
    client_id: str
    client_secret: str | None = None


class OAuthTokenRefresher:
    """Performs the ``refresh_token`` grant for stored platform connections."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        providers: dict[str, OAuthProvider],
        *,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.http_client = http_client
        self.providers = providers
        self._clock = clock

    def provider_for(self, connection: dict[str, Any]) -> OAuthProvider | None:
        name = str(connection.get("provider") or connection.get("channel") or "").lower()
        if name in ("outlook", "office365", "microsoft"):
            name = "microsoft"
        elif name in ("gmail", "google"):
            name = "google"
        return self.providers.get(name)

    async def refresh(self, connection: dict[str, Any]) -> dict[str, Any]:
        """Return the connection fields to persist after a successful refresh."""
        provider = self.provider_for(connection)
        if provider is None:
            raise InvalidRequestError(message=f"No OAuth provider configured for {connection.get('channel')}")
        refresh_token = connection.get("refreshToken")
        if not refresh_token:
            raise InvalidRequestError(message=f"Connection {connection.get('objectId')} has no refresh token")

        data = {
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
            "client_id": provider.client_id,
        }
        if provider.client_secret:
            data["client_secret"] = provider.client_secret

        try:
            response = await self.http_client.post(
                provider.token_url,
                data=data,
                headers={"Content-Type": "application/x-www-form-urlencoded"},
                timeout=30.0,
            )
        except httpx.HTTPError as exc:
            raise ServiceUnavailableError(message=f"{provider.name} token endpoint unreachable: {exc}") from exc

        if response.status_code != 200:
            payload = response.json() if response.content else {}
            detail = payload.get("error_description") or payload.get("error") or response.status_code
            raise ServiceUnavailableError(message=f"{provider.name} token refresh failed: {detail}")

        token = response.json()
        expires_in = int(token.get("expires_in") or 3600)
        updates = {
            "accessToken": token["access_token"],
            "expiresAt": self._clock() + timedelta(seconds=expires_in),
            "lastRefreshedAt": self._clock(),
        }
        if token.get("refresh_token"):
            updates["refreshToken"] = token["refresh_token"]
        return updates


def build_oauth_providers(settings: Any) -> dict[str, OAuthProvider]:
    providers: dict[str, OAuthProvider] = {}
    if settings.microsoft_client_id:
        providers["microsoft"] = OAuthProvider(
            name="microsoft",
            token_url=MICROSOFT_TOKEN_URL,
            client_id=settings.microsoft_client_id,
            client_secret=settings.microsoft_client_secret,
        )
    if settings.google_client_id:
        providers["google"] = OAuthProvider(
            name="google",
            token_url=GOOGLE_TOKEN_URL,
            client_id=settings.google_client_id,
            client_secret=settings.google_client_secret,
        )
    return providers
