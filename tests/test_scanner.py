from __future__ import annotations

import pytest
from fakes import iso_ms, write_recording

from vodarchiver.errors import ConfigurationError
from vodarchiver.scanner import scan_recordings, select_candidates


EXTENSIONS = [".mp4", ".mkv"]


class TestScanRecordings:
    def test_finds_videos_recursively(self, tmp_path):
        write_recording(tmp_path / "2024", "a.mp4", "2024-05-01T12:00:00Z", size=32)
        write_recording(tmp_path / "2024" / "may", "b.MKV", "2024-05-02T12:00:00Z")
        (tmp_path / "notes.txt").write_text("not a video")

        found = scan_recordings(str(tmp_path), EXTENSIONS)

        assert sorted(r.name for r in found) == ["a.mp4", "b.MKV"]
        first = next(r for r in found if r.name == "a.mp4")
        assert first.size == 32
        assert first.modified_at_ms == pytest.approx(iso_ms("2024-05-01T12:00:00Z"))

    def test_missing_directory(self, tmp_path):
        with pytest.raises(ConfigurationError):
            scan_recordings(str(tmp_path / "missing"), EXTENSIONS)


class TestSelectCandidates:
    def test_skips_fresh_and_completed(self, tmp_path):
        write_recording(tmp_path, "done.mp4", "2024-05-01T10:00:00Z")
        write_recording(tmp_path, "ready.mp4", "2024-05-01T11:00:00Z")
        write_recording(tmp_path, "fresh.mp4", "2024-05-01T11:55:00Z")
        recordings = scan_recordings(str(tmp_path), EXTENSIONS)
        done = next(r.path for r in recordings if r.name == "done.mp4")

        candidates = select_candidates(
            recordings,
            [done],
            min_age_minutes=10,
            now_ms=iso_ms("2024-05-01T12:00:00Z"),
        )

        assert [r.name for r in candidates] == ["ready.mp4"]

    def test_sorted_oldest_first(self, tmp_path):
        write_recording(tmp_path, "a.mp4", "2024-05-02T10:00:00Z")
        write_recording(tmp_path, "b.mp4", "2024-05-01T10:00:00Z")
        recordings = scan_recordings(str(tmp_path), EXTENSIONS)

        candidates = select_candidates(recordings, [], 0, now_ms=iso_ms("2024-06-01T00:00:00Z"))

        assert [r.name for r in candidates] == ["b.mp4", "a.mp4"]
