import logging
import time
from typing import Callable, Optional

import httpx

from .models import FetchFailure, LiveSnapshot, SnapshotResult

log = logging.getLogger(__name__)

AUTH_URL = "https://id.twitch.tv/oauth2/token"
BASE_URL = "https://api.twitch.tv/helix"
# refresh the app token this long before Twitch says it expires
TOKEN_EXPIRY_MARGIN_SEC = 600
THUMBNAIL_SIZE = ("1280", "720")


class TwitchClient:
    """Helix client for one broadcaster using an app access token."""

    def __init__(self, client_id: str, client_secret: str, username: str,
                 http: Optional[httpx.AsyncClient] = None, clock: Callable[[], float] = time.monotonic):
        self._client_id = client_id
        self._client_secret = client_secret
        self.username = username
        self._http = http or httpx.AsyncClient(timeout=10)
        self._clock = clock
        self._token: Optional[str] = None
        self._token_expires_at = 0.0
        self._user_id: Optional[str] = None

    async def _get_token(self) -> str:
        if self._token and self._clock() < self._token_expires_at:
            return self._token
        log.info("Requesting new Twitch app access token")
        r = await self._http.post(AUTH_URL, params={
            "client_id": self._client_id,
            "client_secret": self._client_secret,
            "grant_type": "client_credentials",
        })
        r.raise_for_status()
        data = r.json()
        self._token = data["access_token"]
        self._token_expires_at = self._clock() + int(data.get("expires_in", 3600)) - TOKEN_EXPIRY_MARGIN_SEC
        return self._token

    async def _helix_get(self, path: str, params: dict) -> dict:
        token = await self._get_token()
        headers = {"Client-ID": self._client_id, "Authorization": f"Bearer {token}"}
        r = await self._http.get(f"{BASE_URL}/{path}", params=params, headers=headers)
        if r.status_code == 401:
            # token revoked before its advertised expiry
            self._token = None
        r.raise_for_status()
        return r.json()

    async def get_user_id(self) -> Optional[str]:
        if self._user_id:
            return self._user_id
        data = await self._helix_get("users", {"login": self.username.lower()})
        users = data.get("data") or []
        if not users:
            log.warning("Twitch user %s not found", self.username)
            return None
        self._user_id = users[0]["id"]
        log.info("Resolved Twitch user %s -> %s", self.username, self._user_id)
        return self._user_id

    async def get_live_snapshot(self) -> SnapshotResult:
        try:
            user_id = await self.get_user_id()
            if not user_id:
                return FetchFailure(f"user {self.username} not found")
            data = await self._helix_get("streams", {"user_id": user_id})
        except httpx.HTTPStatusError as e:
            log.warning("Twitch API returned %s: %s", e.response.status_code, e.response.text)
            return FetchFailure(f"HTTP {e.response.status_code}")
        except (httpx.HTTPError, KeyError, ValueError) as e:
            log.warning("Twitch API request failed: %s", e)
            return FetchFailure(str(e) or type(e).__name__)
        streams = data.get("data") or []
        if not streams:
            return LiveSnapshot.offline()
        return parse_stream(streams[0])

    async def aclose(self):
        await self._http.aclose()


def parse_stream(stream: dict) -> LiveSnapshot:
    thumb = stream.get("thumbnail_url")
    if thumb:
        thumb = thumb.replace("{width}", THUMBNAIL_SIZE[0]).replace("{height}", THUMBNAIL_SIZE[1])
    return LiveSnapshot(
        is_live=True,
        session_id=stream.get("id"),
        title=stream.get("title"),
        category=stream.get("game_name") or None,
        category_id=stream.get("game_id") or None,
        viewer_count=stream.get("viewer_count"),
        started_at=stream.get("started_at"),
        thumbnail_url=thumb,
    )
