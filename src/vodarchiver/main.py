"""
VOD Archiver - command line entry point.
"""

import argparse
import asyncio
import sys
from typing import List, Optional

from .config import load_config
from .errors import ArchiverError
from .logger import get_logger, setup_logging
from .pipeline import ArchivePipeline


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="vod-archiver",
        description="Match local stream recordings to Twitch VODs and archive them on YouTube."
    )
    parser.add_argument("--config", default="config.yaml", help="Path to YAML configuration")
    parser.add_argument("--dry-run", action="store_true", help="Match and export chat without uploading or writing")
    return parser.parse_args(argv)


async def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point. Returns the process exit code."""
    args = parse_args(argv)

    try:
        config = load_config(args.config)
    except FileNotFoundError as e:
        print(f"Error: {e}")
        return 1
    except ArchiverError as e:
        print(f"Configuration error: {e}")
        return 1

    if args.dry_run:
        config.dry_run = True

    setup_logging(
        level=config.logging.level,
        log_file=config.logging.file,
        max_size_mb=config.logging.max_size_mb,
        backup_count=config.logging.backup_count
    )
    logger = get_logger('app')

    pipeline = ArchivePipeline(config)
    try:
        summary = await pipeline.run()
    except ArchiverError as e:
        logger.error(f"Pipeline aborted: {e}")
        return 1
    except Exception:
        logger.exception("Fatal error")
        return 1

    if not summary.ok:
        for vod_id, reason in summary.failed_vods.items():
            logger.error(f"VOD {vod_id} not archived: {reason}")
        return 1

    logger.info("Local archive pipeline finished.")
    return 0


def cli() -> None:
    sys.exit(asyncio.run(main()))


if __name__ == '__main__':
    cli()
