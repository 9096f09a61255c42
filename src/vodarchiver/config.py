"""
Configuration module for VOD Archiver.
Loads settings from YAML file and provides typed configuration.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, List

import yaml

from .errors import ConfigurationError


DEFAULT_VIDEO_EXTENSIONS = [".mp4", ".mkv", ".mov", ".flv", ".m4v"]


@dataclass
class TwitchConfig:
    """Twitch API configuration."""
    client_id: str = ""           # Twitch app Client ID
    client_secret: str = ""       # Twitch app Client Secret
    channel_login: str = ""       # Channel whose archives are matched
    vod_page_size: int = 20       # Most recent archive VODs to consider


@dataclass
class YouTubeConfig:
    """YouTube upload configuration."""
    client_secret_path: str = "./secrets/youtube_client_secret.json"
    token_path: str = "./secrets/youtube_token.json"
    privacy_status: str = "private"
    category_id: str = "20"       # Gaming
    notify_subscribers: bool = True


@dataclass
class RecordingsConfig:
    """Local recordings settings."""
    directory: str = ""
    extensions: List[str] = field(default_factory=lambda: list(DEFAULT_VIDEO_EXTENSIONS))
    min_age_minutes: float = 10.0  # Skip files that may still be written
    max_per_run: int = 0           # 0 = no limit


@dataclass
class MatchingConfig:
    """Recording <-> VOD matching policy."""
    max_delta_hours: float = 48.0


@dataclass
class ChatConfig:
    """Chat export tool settings."""
    downloader_path: str = "./tools/TwitchDownloaderCLI"
    temp_dir: str = "./data/tmp"
    threads: int = 8
    timeout_seconds: int = 3600


@dataclass
class ArchiveConfig:
    """Published archive output locations."""
    site_url: str = ""
    vods_path: str = "./public/data/vods.json"
    comments_dir: str = "./public/data/comments"
    emotes_dir: str = "./public/data/emotes"


@dataclass
class LoggingConfig:
    """Logging settings."""
    level: str = "INFO"
    file: str = "./logs/archiver.log"
    max_size_mb: int = 10
    backup_count: int = 5


@dataclass
class StateConfig:
    """State persistence settings."""
    state_file: str = "./data/pipeline-state.json"


@dataclass
class Config:
    """Main configuration container."""
    twitch: TwitchConfig
    recordings: RecordingsConfig
    youtube: YouTubeConfig = field(default_factory=YouTubeConfig)
    matching: MatchingConfig = field(default_factory=MatchingConfig)
    chat: ChatConfig = field(default_factory=ChatConfig)
    archive: ArchiveConfig = field(default_factory=ArchiveConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    state: StateConfig = field(default_factory=StateConfig)
    dry_run: bool = False


def as_bool(value: Any, default: bool) -> bool:
    """Parse bool from YAML value with safe fallbacks."""
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    if isinstance(value, str):
        text = value.strip().lower()
        if text in ("1", "true", "yes", "y", "on"):
            return True
        if text in ("0", "false", "no", "n", "off"):
            return False
    return default


def as_float(value: Any, default: float) -> float:
    """Parse float from YAML value with safe fallbacks."""
    if value is None or isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip().replace(",", "."))
        except ValueError:
            return default
    return default


def as_int(value: Any, default: int) -> int:
    """Parse int from YAML value with safe fallbacks."""
    if value is None:
        return default
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return default
        try:
            return int(float(text.replace(",", ".")))
        except ValueError:
            return default
    return default


def _normalize_extensions(values: Any) -> List[str]:
    if not values:
        return list(DEFAULT_VIDEO_EXTENSIONS)
    result = []
    for value in values:
        ext = str(value).strip().lower()
        if not ext:
            continue
        result.append(ext if ext.startswith('.') else f'.{ext}')
    return result or list(DEFAULT_VIDEO_EXTENSIONS)


def load_config(config_path: str = "config.yaml") -> Config:
    """
    Load configuration from YAML file.

    Args:
        config_path: Path to YAML configuration file.

    Returns:
        Config object with all settings.

    Raises:
        FileNotFoundError: If config file doesn't exist.
        ConfigurationError: If the file is empty or required fields are missing.
    """
    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path}\n"
            f"Please create a config.yaml file. See config.example.yaml for reference."
        )

    with open(config_path, 'r', encoding='utf-8') as f:
        data = yaml.safe_load(f)

    if not data or not isinstance(data, dict):
        raise ConfigurationError("Configuration file is empty")

    twitch_data = data.get('twitch') or {}
    twitch_config = TwitchConfig(
        client_id=os.environ.get('TWITCH_CLIENT_ID') or str(twitch_data.get('client_id', '') or ''),
        client_secret=os.environ.get('TWITCH_CLIENT_SECRET') or str(twitch_data.get('client_secret', '') or ''),
        channel_login=str(twitch_data.get('channel_login', '') or '').strip().lower(),
        vod_page_size=min(100, max(1, as_int(twitch_data.get('vod_page_size'), 20))),
    )

    youtube_data = data.get('youtube') or {}
    youtube_config = YouTubeConfig(
        client_secret_path=youtube_data.get('client_secret_path', YouTubeConfig.client_secret_path),
        token_path=youtube_data.get('token_path', YouTubeConfig.token_path),
        privacy_status=youtube_data.get('privacy_status', 'private'),
        category_id=str(youtube_data.get('category_id', '20')),
        notify_subscribers=as_bool(youtube_data.get('notify_subscribers'), True),
    )

    recordings_data = data.get('recordings') or {}
    recordings_config = RecordingsConfig(
        directory=str(recordings_data.get('directory', '') or ''),
        extensions=_normalize_extensions(recordings_data.get('extensions')),
        min_age_minutes=max(0.0, as_float(recordings_data.get('min_age_minutes'), 10.0)),
        max_per_run=max(0, as_int(recordings_data.get('max_per_run'), 0)),
    )

    matching_data = data.get('matching') or {}
    matching_config = MatchingConfig(
        max_delta_hours=max(0.0, as_float(matching_data.get('max_delta_hours'), 48.0)),
    )

    chat_data = data.get('chat') or {}
    chat_config = ChatConfig(
        downloader_path=chat_data.get('downloader_path', ChatConfig.downloader_path),
        temp_dir=chat_data.get('temp_dir', ChatConfig.temp_dir),
        threads=max(1, as_int(chat_data.get('threads'), 8)),
        timeout_seconds=max(1, as_int(chat_data.get('timeout_seconds'), 3600)),
    )

    archive_data = data.get('archive') or {}
    archive_config = ArchiveConfig(
        site_url=str(archive_data.get('site_url', '') or '').rstrip('/'),
        vods_path=archive_data.get('vods_path', ArchiveConfig.vods_path),
        comments_dir=archive_data.get('comments_dir', ArchiveConfig.comments_dir),
        emotes_dir=archive_data.get('emotes_dir', ArchiveConfig.emotes_dir),
    )

    logging_data = data.get('logging') or {}
    logging_config = LoggingConfig(
        level=logging_data.get('level', 'INFO'),
        file=logging_data.get('file', LoggingConfig.file),
        max_size_mb=as_int(logging_data.get('max_size_mb'), 10),
        backup_count=as_int(logging_data.get('backup_count'), 5),
    )

    state_data = data.get('state') or {}
    state_config = StateConfig(
        state_file=state_data.get('state_file', StateConfig.state_file),
    )

    required = [
        ('twitch.client_id', twitch_config.client_id),
        ('twitch.client_secret', twitch_config.client_secret),
        ('twitch.channel_login', twitch_config.channel_login),
        ('recordings.directory', recordings_config.directory),
    ]
    missing = [name for name, value in required if not value]
    if missing:
        raise ConfigurationError(f"Missing required configuration: {', '.join(missing)}")

    return Config(
        twitch=twitch_config,
        recordings=recordings_config,
        youtube=youtube_config,
        matching=matching_config,
        chat=chat_config,
        archive=archive_config,
        logging=logging_config,
        state=state_config,
        dry_run=as_bool(data.get('dry_run'), False),
    )


def create_example_config(path: str = "config.example.yaml") -> None:
    """Create an example configuration file."""
    example = """# VOD Archiver Configuration

twitch:
  client_id: YOUR_CLIENT_ID  # or TWITCH_CLIENT_ID env var
  client_secret: YOUR_CLIENT_SECRET  # or TWITCH_CLIENT_SECRET env var
  channel_login: your_channel
  vod_page_size: 20  # Most recent archive VODs considered for matching

youtube:
  client_secret_path: ./secrets/youtube_client_secret.json
  token_path: ./secrets/youtube_token.json
  privacy_status: private  # private, unlisted or public
  category_id: "20"
  notify_subscribers: true

recordings:
  directory: /mnt/stream-archives
  extensions: [.mp4, .mkv, .mov, .flv, .m4v]
  min_age_minutes: 10  # Skip files modified more recently than this
  max_per_run: 0  # 0 = no limit

matching:
  max_delta_hours: 48  # Max distance between file mtime and VOD creation

chat:
  downloader_path: ./tools/TwitchDownloaderCLI
  temp_dir: ./data/tmp
  threads: 8
  timeout_seconds: 3600

archive:
  site_url: https://example.github.io/archive
  vods_path: ./public/data/vods.json
  comments_dir: ./public/data/comments
  emotes_dir: ./public/data/emotes

logging:
  level: INFO  # DEBUG, INFO, WARNING, ERROR
  file: ./logs/archiver.log
  max_size_mb: 10
  backup_count: 5

state:
  state_file: ./data/pipeline-state.json

dry_run: false
"""
    with open(path, 'w', encoding='utf-8') as f:
        f.write(example)


if __name__ == '__main__':
    create_example_config()
    print("Created config.example.yaml")
