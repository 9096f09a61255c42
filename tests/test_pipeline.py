from __future__ import annotations

import asyncio
import json
from pathlib import Path

import pytest
from fakes import (
    FakeChatDownloader,
    FakeEmoteAggregator,
    FakeTwitchAPI,
    FakeYouTube,
    iso_ms,
    make_config,
    make_vod,
    write_recording,
)

from vodarchiver.errors import ConfigurationError, UpstreamError
from vodarchiver.pipeline import ArchivePipeline


NOW = iso_ms("2024-05-03T00:00:00Z") / 1000

RAW_CHAT = {
    "video": {"chapters": [{"gameId": "1", "gameDisplayName": "Just Chatting",
                            "startMilliseconds": 0, "lengthMilliseconds": 60000}]},
    "comments": [{"_id": "c1", "content_offset_seconds": 5,
                  "commenter": {"display_name": "Viewer"}, "message": {"body": "hi"}}],
    "embeddedData": {"thirdParty": [{"id": "e1", "name": "catJAM"}]},
}


def read_json(path) -> object:
    return json.loads(Path(path).read_text(encoding="utf-8"))


def never_called():
    raise AssertionError("YouTube client must not be created")


class Harness:
    """Wires a pipeline to fakes sharing one workspace."""

    def __init__(self, tmp_path, vods=None, youtube=None, failing_chats=None, **config_overrides):
        self.config = make_config(tmp_path, **config_overrides)
        self.recordings = Path(self.config.recordings.directory)
        self.twitch = FakeTwitchAPI(vods if vods is not None else [make_vod("111", "2024-05-01T10:00:00Z")])
        self.youtube = youtube or FakeYouTube()
        self.chat = FakeChatDownloader({"111": RAW_CHAT}, failing=failing_chats)
        self.emotes = FakeEmoteAggregator()
        self.published = []

    def pipeline(self, youtube_factory=None) -> ArchivePipeline:
        return ArchivePipeline(
            self.config,
            twitch_api=self.twitch,
            youtube_factory=youtube_factory or (lambda: self.youtube),
            chat_downloader=self.chat,
            emote_aggregator=self.emotes,
            publish_hook=self.published.append,
            clock=lambda: NOW,
        )

    def run(self, youtube_factory=None):
        return asyncio.run(self.pipeline(youtube_factory).run())


class TestArchivePipeline:
    def test_matched_recording_is_archived(self, tmp_path):
        harness = Harness(tmp_path, vods=[
            make_vod("111", "2024-05-01T10:00:00Z"),
            make_vod("222", "2024-04-20T10:00:00Z"),
        ])
        write_recording(harness.recordings, "stream.mp4", "2024-05-01T12:00:00Z")
        write_recording(harness.recordings, "ancient.mp4", "2024-03-01T12:00:00Z")

        summary = harness.run()

        assert summary.ok
        assert [(u.vod_id, u.part_number) for u in summary.uploaded] == [("111", 1)]
        assert [Path(p).name for p in summary.unmatched] == ["ancient.mp4"]
        assert harness.chat.calls == ["111"]

        vods = read_json(harness.config.archive.vods_path)
        assert [v["id"] for v in vods] == ["111"]
        assert vods[0]["youtube"][0]["id"] == "yt1"
        assert vods[0]["chapters"][0]["name"] == "Just Chatting"

        comments = read_json(Path(harness.config.archive.comments_dir) / "111.json")
        assert comments["comments"][0]["message"] == [{"text": "hi"}]
        emotes = read_json(Path(harness.config.archive.emotes_dir) / "111.json")
        assert emotes["embedded_emotes"][0]["code"] == "catJAM"
        assert emotes["ffz_emotes"][0]["code"] == "OMEGALUL"

        state = read_json(harness.config.state.state_file)
        assert len(state["processedFiles"]) == 1
        assert state["processedVodIds"]["111"]["metadata_version"] >= 1
        assert not (Path(harness.config.chat.temp_dir) / "111-chat-raw.json").exists()
        assert harness.published and harness.published[0]

    def test_second_run_is_idempotent(self, tmp_path):
        harness = Harness(tmp_path)
        write_recording(harness.recordings, "stream.mp4", "2024-05-01T12:00:00Z")
        harness.run()

        summary = harness.run(youtube_factory=never_called)

        assert summary.uploaded == []
        assert harness.chat.calls == ["111"]
        assert len(harness.youtube.uploads) == 1
        assert harness.twitch.list_calls == 1

    def test_later_recording_becomes_next_part(self, tmp_path):
        harness = Harness(tmp_path)
        write_recording(harness.recordings, "first.mp4", "2024-05-01T12:00:00Z")
        harness.run()

        write_recording(harness.recordings, "second.mp4", "2024-05-01T16:00:00Z")
        summary = harness.run()

        assert [u.part_number for u in summary.uploaded] == [2]
        assert harness.youtube.uploads[1]["title"].endswith(" - Part 2")
        vods = read_json(harness.config.archive.vods_path)
        assert [p["part"] for p in vods[0]["youtube"]] == [1, 2]
        updated = [u["id"] for u in harness.youtube.updates]
        assert updated[-2:] == ["yt1", "yt2"]

    def test_chat_failure_skips_only_that_vod(self, tmp_path):
        harness = Harness(
            tmp_path,
            vods=[make_vod("111", "2024-05-01T10:00:00Z"), make_vod("333", "2024-04-25T10:00:00Z")],
            failing_chats={"111"},
        )
        write_recording(harness.recordings, "may.mp4", "2024-05-01T12:00:00Z")
        write_recording(harness.recordings, "april.mp4", "2024-04-25T12:00:00Z")

        summary = harness.run()

        assert not summary.ok
        assert list(summary.failed_vods) == ["111"]
        assert [u.vod_id for u in summary.uploaded] == ["333"]
        state = read_json(harness.config.state.state_file)
        assert [Path(p).name for p in state["processedFiles"]] == ["april.mp4"]

    def test_upload_failure_aborts_run(self, tmp_path):
        harness = Harness(tmp_path, youtube=FakeYouTube(fail_on_upload=1))
        write_recording(harness.recordings, "stream.mp4", "2024-05-01T12:00:00Z")

        with pytest.raises(UpstreamError):
            harness.run()

        assert harness.twitch.connected is False
        assert harness.youtube.connected is False

    def test_emote_backfill_for_archived_vods(self, tmp_path):
        harness = Harness(tmp_path)
        vods_path = Path(harness.config.archive.vods_path)
        vods_path.parent.mkdir(parents=True)
        vods_path.write_text(json.dumps([{"id": "50", "title": "old", "youtube": []}]), encoding="utf-8")

        summary = harness.run(youtube_factory=never_called)

        assert summary.backfilled_vods == ["50"]
        assert harness.twitch.list_calls == 0
        bundle = read_json(Path(harness.config.archive.emotes_dir) / "50.json")
        assert bundle["bttv_emotes"][0]["code"] == "catJAM"
        assert bundle["embedded_emotes"] == []
        state = read_json(harness.config.state.state_file)
        assert state["processedVodIds"]["50"]["emotes_backfilled_at"]

    def test_archived_vod_with_failing_chat_gets_emotes(self, tmp_path):
        harness = Harness(tmp_path, failing_chats={"111"})
        vods_path = Path(harness.config.archive.vods_path)
        vods_path.parent.mkdir(parents=True)
        vods_path.write_text(json.dumps([{"id": "111", "title": "Chill stream", "youtube": []}]), encoding="utf-8")
        write_recording(harness.recordings, "stream.mp4", "2024-05-01T12:00:00Z")

        summary = harness.run()

        assert list(summary.failed_vods) == ["111"]
        assert summary.backfilled_vods == ["111"]
        assert summary.uploaded == []
        bundle = read_json(Path(harness.config.archive.emotes_dir) / "111.json")
        assert bundle["ffz_emotes"][0]["code"] == "OMEGALUL"
        assert not (Path(harness.config.archive.comments_dir) / "111.json").exists()

    def test_dry_run_writes_nothing(self, tmp_path):
        harness = Harness(tmp_path, dry_run=True)
        write_recording(harness.recordings, "stream.mp4", "2024-05-01T12:00:00Z")

        summary = harness.run(youtube_factory=never_called)

        assert summary.chat_exports == ["111"]
        assert summary.uploaded == []
        assert not Path(harness.config.archive.vods_path).exists()
        assert not Path(harness.config.state.state_file).exists()
        assert harness.published == []

    def test_nothing_to_do_makes_no_calls(self, tmp_path):
        harness = Harness(tmp_path)
        write_recording(harness.recordings, "fresh.mp4", "2024-05-02T23:55:00Z")

        summary = harness.run(youtube_factory=never_called)

        assert summary.uploaded == []
        assert harness.twitch.list_calls == 0
        assert harness.emotes.calls == 0

    def test_missing_recordings_directory(self, tmp_path):
        harness = Harness(tmp_path)
        harness.config.recordings.directory = str(tmp_path / "gone")
        with pytest.raises(ConfigurationError):
            harness.run()
