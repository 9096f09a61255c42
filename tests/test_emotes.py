from __future__ import annotations

import asyncio

from fakes import FakeResponse, FakeSession

from vodarchiver.emotes import (
    BTTV_GLOBAL_URL,
    FFZ_ROOM_URL,
    SEVENTV_GLOBAL_URL,
    EmoteAggregator,
    build_bundle,
    dedupe_emotes,
    parse_bttv,
    parse_ffz_room,
    parse_seventv,
)
from vodarchiver.models import EmbeddedEmote, Emote, EmoteCatalogs


FFZ_ROOM = {
    "room": {"set": 123},
    "sets": {"123": {"emoticons": [{"id": 1, "name": "OMEGALUL"}, {"id": 2, "name": ""}]}},
}
BTTV_GLOBAL = [{"id": "g1", "code": "FeelsGoodMan"}]
BTTV_USER = {
    "channelEmotes": [{"id": "c1", "code": "catJAM"}],
    "sharedEmotes": [{"id": "g1", "code": "FeelsGoodMan"}, {"id": "s1", "code": "pepeD"}],
}
SEVENTV_GLOBAL = {"emotes": [{"id": "7g", "name": "EZ"}]}
SEVENTV_USER = {"emote_set": {"emotes": [{"id": "7u", "name": "Clap"}]}}


class TestParsers:
    def test_ffz_room_set(self):
        assert parse_ffz_room(FFZ_ROOM) == [Emote(id="1", code="OMEGALUL")]

    def test_ffz_without_room(self):
        assert parse_ffz_room({"sets": {}}) == []
        assert parse_ffz_room(None) == []

    def test_ffz_malformed_room(self):
        assert parse_ffz_room({"room": "gone", "sets": {}}) == []
        assert parse_ffz_room({"room": {"set": 1}, "sets": []}) == []
        assert parse_ffz_room({"room": {"set": 1}, "sets": {"1": "x"}}) == []
        assert parse_ffz_room({"room": {"set": 1}, "sets": {"1": {"emoticons": None}}}) == []

    def test_bttv_global_channel_and_shared(self):
        codes = [e.code for e in dedupe_emotes(parse_bttv(BTTV_GLOBAL, BTTV_USER))]
        assert codes == ["FeelsGoodMan", "catJAM", "pepeD"]

    def test_seventv_global_and_user(self):
        assert parse_seventv(SEVENTV_GLOBAL, SEVENTV_USER) == [
            Emote(id="7g", code="EZ"),
            Emote(id="7u", code="Clap"),
        ]

    def test_seventv_user_without_set(self):
        assert parse_seventv(None, {"id": "x"}) == []


def test_dedupe_keeps_same_code_with_other_id():
    emotes = [Emote("1", "a"), Emote("1", "a"), Emote("2", "a")]
    assert dedupe_emotes(emotes) == [Emote("1", "a"), Emote("2", "a")]


class TestEmoteAggregator:
    def test_failed_provider_contributes_empty_list(self, monkeypatch):
        responses = {
            FFZ_ROOM_URL.format(user_id="42"): FFZ_ROOM,
            BTTV_GLOBAL_URL: BTTV_GLOBAL,
            SEVENTV_GLOBAL_URL: None,
        }

        async def fake_fetch(url):
            return responses.get(url)

        aggregator = EmoteAggregator()
        monkeypatch.setattr(aggregator, "_fetch_json", fake_fetch)

        async def scenario():
            try:
                return await aggregator.fetch_catalogs("42")
            finally:
                await aggregator.close()

        catalogs = asyncio.run(scenario())

        assert [e.code for e in catalogs.ffz] == ["OMEGALUL"]
        assert [e.code for e in catalogs.bttv] == ["FeelsGoodMan"]
        assert catalogs.seventv == []


def test_bundle_document_keys():
    catalogs = EmoteCatalogs(ffz=[Emote("1", "OMEGALUL")])
    bundle = build_bundle("111", catalogs, [EmbeddedEmote(id="e1", code="catJAM")])
    data = bundle.to_dict()
    assert data["twitchVodId"] == "111"
    assert data["ffz_emotes"] == [{"id": "1", "code": "OMEGALUL", "name": "OMEGALUL"}]
    assert data["bttv_emotes"] == []
    assert data["7tv_emotes"] == []
    assert data["embedded_emotes"][0]["code"] == "catJAM"


def test_unexpected_ffz_document_is_an_empty_catalog():
    aggregator = EmoteAggregator(session=FakeSession([FakeResponse(200, {"room": "gone", "sets": {}})]))
    assert asyncio.run(aggregator.fetch_ffz("42")) == []
