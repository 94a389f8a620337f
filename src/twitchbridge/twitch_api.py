from __future__ import annotations

import logging
import os
import time
from dataclasses import dataclass
from typing import Any, Optional

import httpx

from .token_store import Credential

logger = logging.getLogger(__name__)

OAUTH_BASE = "https://id.twitch.tv/oauth2"
HELIX_BASE = "https://api.twitch.tv/helix"


class TwitchAPIError(RuntimeError):
    """Raised for any transport or protocol failure talking to Twitch."""


@dataclass(frozen=True)
class UserIdentity:
    id: str
    login: str
    display_name: str = ""

    @property
    def name(self) -> str:
        return self.login

    @classmethod
    def from_helix(cls, data: dict) -> "UserIdentity":
        return cls(
            id=str(data["id"]),
            login=data.get("login", ""),
            display_name=data.get("display_name") or data.get("login", ""),
        )


class TwitchAPI:
    """Minimal helper for the Twitch OAuth and Helix endpoints this app needs.

    Responsibilities implemented here:
    - Exchange an authorization code for a user token.
    - Refresh a user token.
    - Look up the user behind a token, or a user by id.
    - Revoke a token.

    Notes:
    - Credentials are read from environment variables when they are not
      provided to the constructor. Do NOT commit secrets into the repository.
    - `transport` is passed to `httpx.AsyncClient`; tests use
      `httpx.MockTransport`.
    """

    def __init__(
        self,
        client_id: str | None = None,
        client_secret: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = 10.0,
    ) -> None:
        # Prefer explicit args, otherwise fall back to environment variables.
        self.client_id = client_id or os.getenv("TWITCH_CLIENT_ID", "")
        self.client_secret = client_secret or os.getenv("TWITCH_CLIENT_SECRET", "")
        self._transport = transport
        self._timeout = timeout

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self._timeout, transport=self._transport)

    async def _request(self, method: str, url: str, **kwargs: Any) -> Any:
        try:
            async with self._client() as client:
                resp = await client.request(method, url, **kwargs)
                resp.raise_for_status()
                if not resp.content:
                    return {}
                return resp.json()
        except httpx.HTTPStatusError as exc:
            raise TwitchAPIError(
                f"{method} {url} returned {exc.response.status_code}"
            ) from exc
        except httpx.HTTPError as exc:
            raise TwitchAPIError(f"{method} {url} failed: {exc}") from exc
        except ValueError as exc:
            raise TwitchAPIError(f"{method} {url} returned invalid JSON") from exc

    def _credential_from_payload(self, payload: Any) -> Optional[Credential]:
        if not isinstance(payload, dict) or not payload.get("access_token"):
            return None
        scopes = payload.get("scope") or []
        if isinstance(scopes, str):
            scopes = scopes.split()
        expires_in = payload.get("expires_in")
        try:
            return Credential(
                access_token=str(payload["access_token"]),
                refresh_token=payload.get("refresh_token"),
                expires_in=int(expires_in) if expires_in is not None else None,
                obtained_at=time.time(),
                scopes=tuple(str(s) for s in scopes),
            )
        except (TypeError, ValueError, OverflowError) as exc:
            raise TwitchAPIError(f"malformed token payload: {exc}") from exc

    async def exchange_code(self, code: str, redirect_uri: str) -> Optional[Credential]:
        """Exchange an authorization code for a user credential.

        Returns None when Twitch answers without an access token.
        """
        payload = await self._request(
            "POST",
            f"{OAUTH_BASE}/token",
            data={
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "code": code,
                "grant_type": "authorization_code",
                "redirect_uri": redirect_uri,
            },
        )
        return self._credential_from_payload(payload)

    async def refresh(self, credential: Credential) -> Credential:
        if not credential.refresh_token:
            raise TwitchAPIError("credential has no refresh token")
        payload = await self._request(
            "POST",
            f"{OAUTH_BASE}/token",
            data={
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "grant_type": "refresh_token",
                "refresh_token": credential.refresh_token,
            },
        )
        refreshed = self._credential_from_payload(payload)
        if refreshed is None:
            raise TwitchAPIError("token refresh returned no access token")
        return refreshed

    async def get_helix(
        self, path: str, access_token: str, params: dict | None = None
    ) -> dict:
        """Perform a GET request against the Helix API with a user token.

        Example: await api.get_helix('users', token, {'id': '1234'})
        """
        headers = {
            "Client-Id": self.client_id,
            "Authorization": f"Bearer {access_token}",
        }
        res = await self._request(
            "GET", f"{HELIX_BASE}/{path.lstrip('/')}", params=params, headers=headers
        )
        return res if isinstance(res, dict) else {}

    def _first_user(self, res: dict) -> Optional[UserIdentity]:
        data = res.get("data") or []
        if not data:
            return None
        try:
            return UserIdentity.from_helix(data[0])
        except (KeyError, TypeError) as exc:
            raise TwitchAPIError(f"malformed user payload: {exc}") from exc

    async def get_authorized_user(self, access_token: str) -> Optional[UserIdentity]:
        """Return the user the token belongs to, or None."""
        return self._first_user(await self.get_helix("users", access_token))

    async def get_user_by_id(
        self, user_id: str, access_token: str
    ) -> Optional[UserIdentity]:
        if not user_id:
            return None
        return self._first_user(
            await self.get_helix("users", access_token, {"id": user_id})
        )

    async def revoke(self, access_token: str) -> None:
        await self._request(
            "POST",
            f"{OAUTH_BASE}/revoke",
            data={"client_id": self.client_id, "token": access_token},
        )
