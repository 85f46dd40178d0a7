"""Uploaded-file tree replication for snapshots and restores."""

import os
import shutil
from enum import Enum
from pathlib import Path

from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from ..._utils import logger
from ..models import CopyStats


class CopyMode(str, Enum):
    OVERWRITE = "overwrite"
    NEWER_ONLY = "newer_only"


class AssetReplicator:
    """Mirror a directory tree file by file.

    Snapshots copy with ``OVERWRITE``. Restores copy with ``NEWER_ONLY`` so files
    uploaded after the snapshot was taken are never clobbered by older copies.
    A file that still fails after retries is logged and counted; the walk goes on.
    """

    def __init__(self, max_attempts: int = 3):
        """Initialize replicator.

        Args:
            max_attempts: Attempts per file before it is counted as failed
        """
        self.max_attempts = max_attempts

    async def replicate(self, source: Path, destination: Path, mode: CopyMode) -> CopyStats:
        """Copy every file under ``source`` into ``destination``.

        Args:
            source: Directory to copy from
            destination: Directory to copy into (created if missing)
            mode: Overwrite unconditionally, or only when missing/strictly newer

        Returns:
            CopyStats with copied, skipped and failed file counts
        """
        stats = CopyStats()
        source = Path(source)
        destination = Path(destination)

        if not source.is_dir():
            logger.info(f"No asset directory at {source}, skipping file copy")
            return stats

        try:
            destination.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            stats.failed = sum(len(files) for _, _, files in os.walk(source))
            logger.error(f"Failed to create asset directory {destination}, {stats.failed} files not copied: {e}")
            return stats

        for root, dirs, files in os.walk(source):
            dirs.sort()
            relative = Path(root).relative_to(source)
            target_dir = destination / relative
            try:
                target_dir.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                logger.error(f"Failed to create directory {target_dir}: {e}")
                stats.failed += len(files)
                continue

            for name in sorted(files):
                source_file = Path(root) / name
                target_file = target_dir / name

                if mode == CopyMode.NEWER_ONLY and not self._should_copy(source_file, target_file):
                    stats.skipped += 1
                    continue

                try:
                    self._copy_file(source_file, target_file)
                    stats.copied += 1
                except OSError as e:
                    logger.error(f"Failed to copy {source_file} -> {target_file}: {e}")
                    stats.failed += 1

        logger.info(
            f"Copied assets {source} -> {destination} ({mode.value}): "
            f"{stats.copied} copied, {stats.skipped} skipped, {stats.failed} failed"
        )
        return stats

    @staticmethod
    def _should_copy(source_file: Path, target_file: Path) -> bool:
        try:
            target_mtime = target_file.stat().st_mtime_ns
        except FileNotFoundError:
            return True
        try:
            return source_file.stat().st_mtime_ns > target_mtime
        except OSError as e:
            logger.warning(f"Cannot stat {source_file}: {e}")
            return True

    def _copy_file(self, source_file: Path, target_file: Path) -> None:
        copier = retry(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=0.1, max=2),
            retry=retry_if_exception_type(OSError),
            reraise=True,
        )(shutil.copy2)
        copier(source_file, target_file)
