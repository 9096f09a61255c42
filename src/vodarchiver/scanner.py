"""
Recording scanner for VOD Archiver.
Finds finished local recordings that still need to be archived.
"""

import os
import time
from pathlib import Path
from typing import Iterable, List, Optional

from .errors import ConfigurationError
from .logger import get_logger
from .models import RecordingFile


_logger = get_logger('scanner')


def scan_recordings(root: str, extensions: Iterable[str]) -> List[RecordingFile]:
    """
    Recursively list video files below a directory.

    Args:
        root: Recordings directory.
        extensions: Lowercase extensions including the dot.

    Returns:
        One RecordingFile per matching file, in directory walk order.

    Raises:
        ConfigurationError: If the directory does not exist.
    """
    root_path = Path(root)
    if not root_path.is_dir():
        raise ConfigurationError(f"Recording directory does not exist: {root}")

    wanted = {ext.lower() for ext in extensions}
    files = []

    for dirpath, dirnames, filenames in os.walk(root_path):
        dirnames.sort()
        for filename in sorted(filenames):
            if Path(filename).suffix.lower() not in wanted:
                continue

            full_path = Path(dirpath, filename).resolve()
            try:
                stat = full_path.stat()
            except OSError as e:
                _logger.warning(f"Cannot stat {full_path}: {e}")
                continue

            files.append(RecordingFile(
                path=str(full_path),
                name=filename,
                size=stat.st_size,
                modified_at_ms=stat.st_mtime * 1000,
            ))

    return files


def select_candidates(
    recordings: Iterable[RecordingFile],
    completed_paths: Iterable[str],
    min_age_minutes: float,
    now_ms: Optional[float] = None
) -> List[RecordingFile]:
    """
    Drop recordings that are too fresh or already archived.

    The result is sorted oldest first; the order decides part numbering.
    """
    if now_ms is None:
        now_ms = time.time() * 1000
    min_age_ms = min_age_minutes * 60 * 1000
    completed = set(completed_paths)

    candidates = [
        recording for recording in recordings
        if now_ms - recording.modified_at_ms >= min_age_ms
        and recording.path not in completed
    ]
    candidates.sort(key=lambda recording: recording.modified_at_ms)
    return candidates
