from __future__ import annotations

import asyncio
import json
from datetime import datetime

import pytest
from fakes import FakeResponse, FakeSession, StaticCredentials

from vodarchiver.errors import ConfigurationError, UpstreamError
from vodarchiver.youtube import YouTubeClient, load_credentials, token_expiry


def write_oauth_files(tmp_path, token: dict):
    secret = tmp_path / "client_secret.json"
    secret.write_text(json.dumps({
        "installed": {"client_id": "cid.apps.googleusercontent.com", "client_secret": "shh"},
    }), encoding="utf-8")
    token_file = tmp_path / "token.json"
    token_file.write_text(json.dumps(token), encoding="utf-8")
    return str(secret), str(token_file)


def make_client(responses) -> YouTubeClient:
    client = YouTubeClient(StaticCredentials())
    client._session = FakeSession(responses)
    return client


class TestLoadCredentials:
    def test_expired_token_needs_refresh(self, tmp_path):
        """A stored token past its expiry_date must not be treated as valid."""
        paths = write_oauth_files(tmp_path, {
            "access_token": "old",
            "refresh_token": "refresh",
            "expiry_date": 1700000000000,
        })
        creds = load_credentials(*paths)
        assert creds.expiry == datetime(2023, 11, 14, 22, 13, 20)
        assert not creds.valid

    def test_future_iso_expiry_is_valid(self, tmp_path):
        paths = write_oauth_files(tmp_path, {
            "token": "fresh",
            "refresh_token": "refresh",
            "expiry": "2100-01-01T00:00:00Z",
        })
        creds = load_credentials(*paths)
        assert creds.valid
        assert creds.token == "fresh"

    def test_unknown_age_refreshes_first(self, tmp_path):
        paths = write_oauth_files(tmp_path, {"access_token": "maybe-old", "refresh_token": "refresh"})
        creds = load_credentials(*paths)
        assert creds.token is None
        assert not creds.valid
        assert creds.refresh_token == "refresh"

    def test_missing_token_file(self, tmp_path):
        secret, _ = write_oauth_files(tmp_path, {})
        with pytest.raises(ConfigurationError):
            load_credentials(secret, str(tmp_path / "absent.json"))

    def test_token_file_without_tokens(self, tmp_path):
        paths = write_oauth_files(tmp_path, {"scope": "x"})
        with pytest.raises(ConfigurationError):
            load_credentials(*paths)


def test_token_expiry_ignores_garbage():
    assert token_expiry({"expiry": "soon"}) is None
    assert token_expiry({"expiry_date": True}) is None


class TestUploadVideo:
    def test_resumable_session_then_body(self, tmp_path):
        video = tmp_path / "part.mp4"
        video.write_bytes(b"\0" * 64)
        client = make_client([
            FakeResponse(200, headers={"Location": "https://upload.example/session/1"}),
            FakeResponse(200, {"id": "vid1"}),
        ])

        video_id = asyncio.run(client.upload_video(str(video), "Title", "Desc", "20", "private"))

        assert video_id == "vid1"
        session_call, body_call = client._session.calls
        assert session_call["params"]["uploadType"] == "resumable"
        assert session_call["headers"]["X-Upload-Content-Length"] == "64"
        assert json.loads(session_call["data"])["status"] == {"privacyStatus": "private"}
        assert body_call["method"] == "PUT"
        assert body_call["url"] == "https://upload.example/session/1"

    def test_missing_location_header(self, tmp_path):
        video = tmp_path / "part.mp4"
        video.write_bytes(b"\0")
        client = make_client([FakeResponse(200)])
        with pytest.raises(UpstreamError):
            asyncio.run(client.upload_video(str(video), "T", "D", "20", "private"))

    def test_rejected_session(self, tmp_path):
        video = tmp_path / "part.mp4"
        video.write_bytes(b"\0")
        client = make_client([FakeResponse(403, text="quotaExceeded")])
        with pytest.raises(UpstreamError) as excinfo:
            asyncio.run(client.upload_video(str(video), "T", "D", "20", "private"))
        assert excinfo.value.status == 403

    def test_body_timeout_is_upstream_error(self, tmp_path):
        video = tmp_path / "part.mp4"
        video.write_bytes(b"\0")
        client = make_client([
            FakeResponse(200, headers={"Location": "https://upload.example/session/1"}),
            asyncio.TimeoutError(),
        ])
        with pytest.raises(UpstreamError):
            asyncio.run(client.upload_video(str(video), "T", "D", "20", "private"))


class TestVideoCalls:
    def test_video_details(self):
        client = make_client([FakeResponse(200, {"items": [{
            "contentDetails": {"duration": "PT1H2M3S"},
            "snippet": {"thumbnails": {"default": {"url": "d"}, "medium": {"url": "m"}}},
        }]})])
        details = asyncio.run(client.get_video_details("vid1"))
        assert details.duration_seconds == 3723
        assert details.thumbnail_url == "m"

    def test_metadata_update_drops_read_only_fields(self):
        client = make_client([
            FakeResponse(200, {"items": [{"snippet": {
                "title": "old",
                "description": "old",
                "categoryId": "22",
                "tags": ["vod"],
                "thumbnails": {},
                "channelTitle": "Channel",
                "publishedAt": "2024-05-01T00:00:00Z",
            }}]}),
            FakeResponse(200, {"id": "vid1"}),
        ])

        assert asyncio.run(client.update_video_metadata("vid1", "new", "text", "20")) is True

        snippet = client._session.calls[1]["json"]["snippet"]
        assert snippet == {"title": "new", "description": "text", "categoryId": "20", "tags": ["vod"]}

    def test_metadata_update_for_deleted_video(self):
        client = make_client([FakeResponse(200, {"items": []})])
        assert asyncio.run(client.update_video_metadata("gone", "t", "d", "20")) is False
        assert len(client._session.calls) == 1

    def test_unknown_category(self):
        client = make_client([FakeResponse(200, {"items": []})])
        with pytest.raises(ConfigurationError):
            asyncio.run(client.ensure_category("999"))

    def test_server_error(self):
        client = make_client([FakeResponse(500, text="backendError")])
        with pytest.raises(UpstreamError) as excinfo:
            asyncio.run(client.get_video_details("vid1"))
        assert excinfo.value.status == 500


def test_access_token_only_is_kept(tmp_path):
    paths = write_oauth_files(tmp_path, {"token": "bare"})
    creds = load_credentials(*paths)
    assert creds.token == "bare"
    assert creds.refresh_token is None
