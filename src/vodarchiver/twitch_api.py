"""
Twitch Helix API client for VOD Archiver.
Handles app authentication and archive VOD listing.
"""

import asyncio
from datetime import datetime, timedelta
from typing import List, Optional, Tuple

import aiohttp

from .errors import ConfigurationError, UpstreamError
from .logger import get_logger
from .models import RemoteVod


class TwitchAPI:
    """
    Twitch Helix API client.

    Features:
    - Client Credentials authentication
    - Automatic token refresh
    - User id lookup
    - Archive VOD listing
    """

    BASE_URL = "https://api.twitch.tv/helix"
    AUTH_URL = "https://id.twitch.tv/oauth2/token"

    def __init__(self, client_id: str, client_secret: str):
        """
        Initialize Twitch API client.

        Args:
            client_id: Twitch application Client ID.
            client_secret: Twitch application Client Secret.
        """
        self.client_id = client_id
        self.client_secret = client_secret

        self._app_token: Optional[str] = None
        self._token_expires: Optional[datetime] = None
        self._session: Optional[aiohttp.ClientSession] = None
        self._logger = get_logger('twitch_api')

    async def connect(self) -> None:
        """
        Open the HTTP session and obtain an app access token.

        Raises:
            ConfigurationError: If the token grant is rejected.
        """
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=30))
        await self._refresh_token()
        self._logger.info("Connected to Twitch API")

    async def disconnect(self) -> None:
        """Close session."""
        if self._session:
            await self._session.close()
            self._session = None

    async def __aenter__(self) -> 'TwitchAPI':
        await self.connect()
        return self

    async def __aexit__(self, *exc) -> None:
        await self.disconnect()

    async def _refresh_token(self) -> None:
        """Get or refresh app access token."""
        try:
            async with self._session.post(
                self.AUTH_URL,
                params={
                    'client_id': self.client_id,
                    'client_secret': self.client_secret,
                    'grant_type': 'client_credentials'
                }
            ) as resp:
                if resp.status != 200:
                    raise ConfigurationError(f"Unable to obtain Twitch token ({resp.status})")
                data = await resp.json()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise ConfigurationError(f"Unable to obtain Twitch token: {e}") from e

        if not data.get('access_token'):
            raise ConfigurationError("Twitch token response missing access_token")

        self._app_token = data['access_token']
        expires_in = data.get('expires_in', 3600)
        self._token_expires = datetime.now() + timedelta(seconds=expires_in - 60)
        self._logger.debug("Got new app access token")

    async def _ensure_token(self) -> None:
        """Ensure we have a valid token."""
        if not self._app_token or datetime.now() >= self._token_expires:
            await self._refresh_token()

    def _headers(self) -> dict:
        """Get request headers."""
        return {
            'Client-ID': self.client_id,
            'Authorization': f'Bearer {self._app_token}'
        }

    async def _get(self, path: str, params) -> Tuple[int, dict]:
        await self._ensure_token()
        async with self._session.get(
            f"{self.BASE_URL}/{path}",
            headers=self._headers(),
            params=params
        ) as resp:
            if resp.status != 200:
                text = await resp.text()
                self._logger.error(f"API error on /{path}: {resp.status} - {text}")
                return resp.status, {}
            return resp.status, await resp.json()

    async def get_user_id(self, login: str) -> str:
        """
        Resolve a channel login to its Twitch user id.

        Raises:
            ConfigurationError: If the user cannot be fetched or does not exist.
        """
        try:
            status, data = await self._get('users', {'login': login})
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise ConfigurationError(f"Unable to fetch Twitch user: {e}") from e

        if status != 200:
            raise ConfigurationError(f"Unable to fetch Twitch user ({status})")

        users = data.get('data', [])
        if not users:
            raise ConfigurationError(f"Twitch user not found for login \"{login}\"")
        return str(users[0]['id'])

    async def get_archive_videos(self, user_id: str, first: int = 20) -> List[RemoteVod]:
        """
        List the channel's most recent archived broadcasts.

        Args:
            user_id: Twitch user id.
            first: Page size (max 100).

        Raises:
            UpstreamError: If the listing fails.
        """
        params = {'user_id': user_id, 'type': 'archive', 'first': str(min(100, max(1, first)))}
        try:
            status, data = await self._get('videos', params)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise UpstreamError(f"Unable to fetch Twitch archives: {e}") from e

        if status != 200:
            raise UpstreamError(f"Unable to fetch Twitch archives ({status})", status)

        return [RemoteVod.from_api(item) for item in data.get('data', []) if item.get('id')]


class RemoteVodSource:
    """Channel-level view of the Twitch archive listing."""

    def __init__(self, api: TwitchAPI, channel_login: str, page_size: int = 20):
        self.api = api
        self.channel_login = channel_login
        self.page_size = page_size
        self._user_id: Optional[str] = None

    async def user_id(self) -> str:
        if self._user_id is None:
            self._user_id = await self.api.get_user_id(self.channel_login)
        return self._user_id

    async def fetch(self) -> List[RemoteVod]:
        """Recent archive VODs for the configured channel."""
        vods = await self.api.get_archive_videos(await self.user_id(), self.page_size)
        if not vods:
            get_logger('twitch_api').info("No Twitch archives found yet.")
        return vods
