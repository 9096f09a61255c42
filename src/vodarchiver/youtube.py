"""
YouTube Data API client for VOD Archiver.

Credentials come from an OAuth client secret file plus a previously
authorized token file (created by a separate auth bootstrap step).
"""

import asyncio
import json
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import AsyncIterator, Optional

import aiofiles
import aiohttp
from google.auth.exceptions import RefreshError
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials

from .errors import ConfigurationError, UpstreamError
from .logger import get_logger
from .models import parse_iso8601_duration, parse_timestamp


API_URL = "https://www.googleapis.com/youtube/v3"
UPLOAD_URL = "https://www.googleapis.com/upload/youtube/v3/videos"
TOKEN_URI = "https://oauth2.googleapis.com/token"
SCOPES = ["https://www.googleapis.com/auth/youtube"]
UPLOAD_CHUNK_SIZE = 8 * 1024 * 1024


@dataclass
class VideoDetails:
    """Server-side facts about an uploaded video."""
    duration_seconds: int = 0
    thumbnail_url: Optional[str] = None


def token_expiry(token: dict) -> Optional[datetime]:
    """
    Expiry of a stored token as a naive UTC datetime (what google-auth expects).

    Accepts ``expiry_date`` in epoch milliseconds (googleapis token files)
    and ``expiry`` as an ISO-8601 string (google-auth ``to_json``).
    """
    expiry_date = token.get('expiry_date')
    if isinstance(expiry_date, (int, float)) and not isinstance(expiry_date, bool):
        return datetime.fromtimestamp(expiry_date / 1000, tz=timezone.utc).replace(tzinfo=None)

    parsed = parse_timestamp(token.get('expiry'))
    if parsed is None:
        return None
    return parsed.astimezone(timezone.utc).replace(tzinfo=None)


def load_credentials(client_secret_path: str, token_path: str) -> Credentials:
    """
    Build OAuth credentials from the client secret and stored token.

    Raises:
        ConfigurationError: If either file is missing or invalid.
    """
    secret_file = Path(client_secret_path)
    token_file = Path(token_path)
    if not secret_file.exists():
        raise ConfigurationError(f"Missing YouTube OAuth client file at {secret_file}")
    if not token_file.exists():
        raise ConfigurationError(f"Missing YouTube OAuth token at {token_file}")

    try:
        secrets = json.loads(secret_file.read_text(encoding='utf-8'))
        token = json.loads(token_file.read_text(encoding='utf-8'))
    except ValueError as e:
        raise ConfigurationError(f"Invalid YouTube OAuth JSON: {e}") from e

    details = secrets.get('installed') or secrets.get('web') or {}
    if not details.get('client_id') or not details.get('client_secret'):
        raise ConfigurationError("Invalid YouTube OAuth client secret JSON")
    if not token.get('refresh_token') and not (token.get('access_token') or token.get('token')):
        raise ConfigurationError("YouTube OAuth token has neither access nor refresh token")

    access_token = token.get('access_token') or token.get('token')
    expiry = token_expiry(token)
    if expiry is None and token.get('refresh_token'):
        # Unknown age: refresh on first use
        access_token = None

    return Credentials(
        token=access_token,
        expiry=expiry,
        refresh_token=token.get('refresh_token'),
        token_uri=details.get('token_uri', TOKEN_URI),
        client_id=details['client_id'],
        client_secret=details['client_secret'],
        scopes=str(token.get('scope') or '').split() or SCOPES,
    )


async def _file_chunks(path: str) -> AsyncIterator[bytes]:
    async with aiofiles.open(path, 'rb') as f:
        while True:
            chunk = await f.read(UPLOAD_CHUNK_SIZE)
            if not chunk:
                break
            yield chunk


class YouTubeClient:
    """
    YouTube Data API v3 client.

    Features:
    - OAuth token refresh (google-auth)
    - Resumable single-request uploads streamed from disk
    - Video details and snippet updates
    """

    def __init__(self, credentials: Credentials, notify_subscribers: bool = True):
        self._credentials = credentials
        self.notify_subscribers = notify_subscribers
        self._session: Optional[aiohttp.ClientSession] = None
        self._logger = get_logger('youtube')

    @classmethod
    def from_files(cls, client_secret_path: str, token_path: str, notify_subscribers: bool = True) -> 'YouTubeClient':
        return cls(load_credentials(client_secret_path, token_path), notify_subscribers)

    async def connect(self) -> None:
        if self._session is None:
            # Uploads of multi-GB files need no total timeout
            self._session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=None, sock_connect=30))
        await self._ensure_token()
        self._logger.info("Connected to YouTube API")

    async def disconnect(self) -> None:
        if self._session:
            await self._session.close()
            self._session = None

    async def _ensure_token(self) -> None:
        if self._credentials.valid:
            return
        try:
            # google-auth refresh is blocking
            await asyncio.to_thread(self._credentials.refresh, Request())
        except RefreshError as e:
            raise ConfigurationError(f"YouTube token refresh failed: {e}") from e

    async def _headers(self) -> dict:
        await self._ensure_token()
        return {'Authorization': f'Bearer {self._credentials.token}'}

    async def _request_json(self, method: str, url: str, **kwargs) -> dict:
        headers = await self._headers()
        headers.update(kwargs.pop('headers', {}))
        try:
            async with self._session.request(method, url, headers=headers, **kwargs) as resp:
                if resp.status not in (200, 201):
                    text = await resp.text()
                    raise UpstreamError(f"YouTube API {method} {url} failed: {resp.status} - {text[:300]}", resp.status)
                return await resp.json()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise UpstreamError(f"YouTube API {method} {url} failed: {e}") from e

    async def ensure_category(self, category_id: str) -> None:
        """
        Raises:
            ConfigurationError: If the category id does not exist.
        """
        data = await self._request_json(
            'GET', f"{API_URL}/videoCategories",
            params={'part': 'snippet', 'id': category_id}
        )
        if not data.get('items'):
            raise ConfigurationError(f"YouTube category {category_id} is invalid")

    async def upload_video(
        self,
        file_path: str,
        title: str,
        description: str,
        category_id: str,
        privacy_status: str
    ) -> str:
        """
        Upload a video file.

        Returns:
            The new YouTube video id.

        Raises:
            UpstreamError: If the session cannot be created or the upload fails.
        """
        size = Path(file_path).stat().st_size
        body = {
            'snippet': {
                'title': title,
                'description': description,
                'categoryId': category_id,
            },
            'status': {'privacyStatus': privacy_status},
        }

        headers = await self._headers()
        headers.update({
            'X-Upload-Content-Type': 'video/*',
            'X-Upload-Content-Length': str(size),
            'Content-Type': 'application/json; charset=UTF-8',
        })
        params = {
            'uploadType': 'resumable',
            'part': 'snippet,status',
            'notifySubscribers': 'true' if self.notify_subscribers else 'false',
        }
        try:
            async with self._session.post(UPLOAD_URL, params=params, headers=headers, data=json.dumps(body)) as resp:
                if resp.status != 200:
                    text = await resp.text()
                    raise UpstreamError(f"YouTube upload session failed: {resp.status} - {text[:300]}", resp.status)
                session_url = resp.headers.get('Location')
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise UpstreamError(f"YouTube upload session failed: {e}") from e
        if not session_url:
            raise UpstreamError("YouTube upload session returned no Location header")

        self._logger.info(f"Uploading to YouTube: {file_path} ({size / (1024 * 1024):.1f} MB)")
        data = await self._request_json(
            'PUT', session_url,
            headers={'Content-Type': 'video/*', 'Content-Length': str(size)},
            data=_file_chunks(file_path)
        )

        video_id = data.get('id')
        if not video_id:
            raise UpstreamError("YouTube upload succeeded without a returned video ID")
        return str(video_id)

    async def get_video_details(self, video_id: str) -> VideoDetails:
        data = await self._request_json(
            'GET', f"{API_URL}/videos",
            params={'part': 'contentDetails,snippet', 'id': video_id}
        )
        items = data.get('items') or []
        if not items:
            return VideoDetails()

        item = items[0]
        thumbnails = (item.get('snippet') or {}).get('thumbnails') or {}
        thumbnail = (thumbnails.get('medium') or thumbnails.get('default') or {}).get('url')
        return VideoDetails(
            duration_seconds=parse_iso8601_duration((item.get('contentDetails') or {}).get('duration')),
            thumbnail_url=thumbnail,
        )

    async def update_video_metadata(
        self,
        video_id: str,
        title: str,
        description: str,
        category_id: str
    ) -> bool:
        """
        Overwrite title/description of an uploaded video.

        Returns:
            False if the video no longer exists.
        """
        data = await self._request_json(
            'GET', f"{API_URL}/videos",
            params={'part': 'snippet', 'id': video_id}
        )
        items = data.get('items') or []
        if not items or not items[0].get('snippet'):
            self._logger.warning(f"YouTube video {video_id} not found, metadata not updated")
            return False

        snippet = dict(items[0]['snippet'])
        snippet.update({'title': title, 'description': description, 'categoryId': category_id})
        # Read-only snippet fields are rejected by videos.update
        for key in ('thumbnails', 'channelTitle', 'localized', 'publishedAt', 'channelId', 'liveBroadcastContent'):
            snippet.pop(key, None)

        await self._request_json(
            'PUT', f"{API_URL}/videos",
            params={'part': 'snippet'},
            json={'id': video_id, 'snippet': snippet}
        )
        return True
