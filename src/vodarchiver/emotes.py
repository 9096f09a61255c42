"""
Third-party emote catalogs (FrankerFaceZ, BetterTTV, 7TV).

Every source is optional: an unreachable or malformed catalog is logged
and contributes an empty list.
"""

import asyncio
from typing import Any, Iterable, List, Optional

import aiohttp

from .logger import get_logger
from .models import EmbeddedEmote, Emote, EmoteBundle, EmoteCatalogs


FFZ_ROOM_URL = "https://api.frankerfacez.com/v1/room/id/{user_id}"
BTTV_GLOBAL_URL = "https://api.betterttv.net/3/cached/emotes/global"
BTTV_USER_URL = "https://api.betterttv.net/3/cached/users/twitch/{user_id}"
SEVENTV_GLOBAL_URL = "https://7tv.io/v3/emote-sets/global"
SEVENTV_USER_URL = "https://7tv.io/v3/users/twitch/{user_id}"


def dedupe_emotes(emotes: Iterable[Emote]) -> List[Emote]:
    """Drop repeated (code, id) pairs, keeping first-seen order."""
    seen = set()
    result = []
    for emote in emotes:
        key = (emote.code, emote.id)
        if key in seen:
            continue
        seen.add(key)
        result.append(emote)
    return result


def _emote(emote_id: Any, code: Any) -> Optional[Emote]:
    emote_id = str(emote_id or '').strip()
    code = str(code or '').strip()
    if not emote_id or not code:
        return None
    return Emote(id=emote_id, code=code)


def parse_ffz_room(data: Any) -> List[Emote]:
    if not isinstance(data, dict):
        return []
    room = data.get('room')
    sets = data.get('sets')
    if not isinstance(room, dict) or not isinstance(sets, dict) or room.get('set') is None:
        return []
    room_set = sets.get(str(room['set']))
    emoticons = room_set.get('emoticons') if isinstance(room_set, dict) else None
    if not isinstance(emoticons, list):
        return []
    return [e for e in (_emote(item.get('id'), item.get('name')) for item in emoticons if isinstance(item, dict)) if e]


def parse_bttv(global_data: Any, user_data: Any) -> List[Emote]:
    combined = []
    if isinstance(global_data, list):
        combined.extend(global_data)
    if isinstance(user_data, dict):
        for key in ('channelEmotes', 'sharedEmotes'):
            if isinstance(user_data.get(key), list):
                combined.extend(user_data[key])
    emotes = (_emote(item.get('id'), item.get('code')) for item in combined if isinstance(item, dict))
    return [e for e in emotes if e]


def _seventv_set_emotes(emote_set: Any) -> List[Emote]:
    if not isinstance(emote_set, dict) or not isinstance(emote_set.get('emotes'), list):
        return []
    emotes = (_emote(item.get('id'), item.get('name')) for item in emote_set['emotes'] if isinstance(item, dict))
    return [e for e in emotes if e]


def parse_seventv(global_data: Any, user_data: Any) -> List[Emote]:
    user_set = user_data.get('emote_set') if isinstance(user_data, dict) else None
    return _seventv_set_emotes(global_data) + _seventv_set_emotes(user_set)


class EmoteAggregator:
    """Fetches and merges the channel's live third-party emote catalogs."""

    def __init__(self, session: Optional[aiohttp.ClientSession] = None, timeout_seconds: float = 20.0):
        self._session = session
        self._owns_session = session is None
        self._timeout = aiohttp.ClientTimeout(total=timeout_seconds)
        self._logger = get_logger('emotes')

    async def close(self) -> None:
        if self._owns_session and self._session:
            await self._session.close()
            self._session = None

    async def _fetch_json(self, url: str) -> Any:
        """GET a JSON document; None on any failure."""
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
        try:
            async with self._session.get(url) as resp:
                if resp.status != 200:
                    self._logger.warning(f"Emote catalog unavailable ({resp.status}): {url}")
                    return None
                return await resp.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            self._logger.warning(f"Emote catalog request failed: {url} - {e}")
            return None

    async def fetch_ffz(self, user_id: str) -> List[Emote]:
        data = await self._fetch_json(FFZ_ROOM_URL.format(user_id=user_id))
        return dedupe_emotes(parse_ffz_room(data))

    async def fetch_bttv(self, user_id: str) -> List[Emote]:
        global_data, user_data = await asyncio.gather(
            self._fetch_json(BTTV_GLOBAL_URL),
            self._fetch_json(BTTV_USER_URL.format(user_id=user_id)),
        )
        return dedupe_emotes(parse_bttv(global_data, user_data))

    async def fetch_seventv(self, user_id: str) -> List[Emote]:
        global_data, user_data = await asyncio.gather(
            self._fetch_json(SEVENTV_GLOBAL_URL),
            self._fetch_json(SEVENTV_USER_URL.format(user_id=user_id)),
        )
        return dedupe_emotes(parse_seventv(global_data, user_data))

    async def fetch_catalogs(self, user_id: str) -> EmoteCatalogs:
        """Query all three providers concurrently."""
        ffz, bttv, seventv = await asyncio.gather(
            self.fetch_ffz(user_id),
            self.fetch_bttv(user_id),
            self.fetch_seventv(user_id),
        )
        self._logger.info(f"Emote catalogs: {len(ffz)} FFZ, {len(bttv)} BTTV, {len(seventv)} 7TV")
        return EmoteCatalogs(ffz=ffz, bttv=bttv, seventv=seventv)


def build_bundle(
    vod_id: str,
    catalogs: EmoteCatalogs,
    embedded: Optional[List[EmbeddedEmote]] = None
) -> EmoteBundle:
    return EmoteBundle(vod_id=str(vod_id), catalogs=catalogs, embedded=list(embedded or []))
