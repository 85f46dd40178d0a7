"""On-disk snapshot store.

Layout::

    <base>/<class>/<name>/
        database.json   serialized entity dump
        files/          copy of uploaded assets
        manifest.json   written last; marks the snapshot complete

Snapshots are assembled in a hidden staging folder next to their final
location and renamed into place only after the manifest is written, so a
folder under a retention class either is complete or does not exist.
"""

import shutil
import uuid
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional

from .._utils import logger, utc_now
from .exceptions import SnapshotNotFoundError, SnapshotWriteError
from .exporters import AssetReplicator, CopyMode
from .models import STORED_CLASSES, LoadedSnapshot, RetentionClass, SnapshotInfo, SnapshotManifest
from .utils import (
    DUMP_FILENAME,
    FILES_DIRNAME,
    MANIFEST_FILENAME,
    compute_checksum,
    generate_snapshot_name,
    load_dump,
    load_manifest,
    save_dump,
    save_manifest,
    validate_snapshot_name,
    verify_checksum,
)


class SnapshotStore:
    """Read and write snapshot folders under one base directory."""

    def __init__(
        self,
        base_dir: str,
        replicator: Optional[AssetReplicator] = None,
        format_version: str = "3.0.0",
    ):
        self.base_dir = Path(base_dir)
        self.base_dir.mkdir(parents=True, exist_ok=True)
        self.replicator = replicator or AssetReplicator()
        self.format_version = format_version

    def class_dir(self, retention_class: RetentionClass) -> Path:
        return self.base_dir / RetentionClass(retention_class).folder

    def resolve(self, retention_class: RetentionClass, name: str) -> Path:
        """Path of a snapshot folder, rejecting names that escape the class directory."""
        retention_class = RetentionClass(retention_class)
        if retention_class not in STORED_CLASSES:
            raise ValueError(f"Invalid snapshot class: {retention_class.value}")
        return self.class_dir(retention_class) / validate_snapshot_name(name)

    def contains(self, path: Path) -> bool:
        """Whether ``path`` is a snapshot folder inside this store."""
        try:
            relative = Path(path).resolve().relative_to(self.base_dir.resolve())
        except ValueError:
            return False
        return len(relative.parts) == 2 and relative.parts[0] in {c.value for c in STORED_CLASSES}

    async def write_snapshot(
        self,
        retention_class: RetentionClass,
        data: Dict[str, List[dict]],
        assets_dir: Optional[Path] = None,
        now: Optional[datetime] = None,
    ) -> Path:
        """Write a complete snapshot and publish it atomically.

        Args:
            retention_class: Retention class (decides folder and name)
            data: Entity dump from the exporter
            assets_dir: Upload directory to copy into ``files/``
            now: Snapshot time (defaults to current UTC time)

        Returns:
            Path to the published snapshot folder

        Raises:
            SnapshotWriteError: If the dump, assets or manifest cannot be written
        """
        retention_class = RetentionClass(retention_class)
        now = now or utc_now()
        name = generate_snapshot_name(retention_class, now)
        target = self.class_dir(retention_class) / name
        staging = target.parent / f".staging-{name}-{uuid.uuid4().hex[:8]}"

        try:
            staging.mkdir(parents=True)

            dump_path = staging / DUMP_FILENAME
            size = await save_dump(data, dump_path)
            checksum = compute_checksum(dump_path)

            if assets_dir is not None:
                await self.replicator.replicate(
                    Path(assets_dir), staging / FILES_DIRNAME, CopyMode.OVERWRITE
                )

            manifest = SnapshotManifest(
                created_at=now,
                retention_class=retention_class,
                size_bytes=size,
                checksum=checksum,
                record_counts={
                    entity: len(records) if isinstance(records, list) else 0
                    for entity, records in data.items()
                },
                format_version=self.format_version,
            )
            await save_manifest(manifest.model_dump(mode="json"), staging / MANIFEST_FILENAME)

            if target.exists():
                logger.info(f"Replacing existing snapshot: {target}")
                shutil.rmtree(target)
            staging.rename(target)

        except (OSError, TypeError, ValueError) as e:
            raise SnapshotWriteError(f"Failed to write {retention_class.value} snapshot {name}: {e}") from e

        finally:
            # Clean up staging directory
            if staging.exists():
                shutil.rmtree(staging, ignore_errors=True)

        logger.info(f"Snapshot written: {target} ({size:,} bytes, {sum(manifest.record_counts.values())} records)")
        return target

    async def read_manifest(self, path: Path) -> Optional[SnapshotManifest]:
        manifest_path = Path(path) / MANIFEST_FILENAME
        if not manifest_path.exists():
            return None
        return SnapshotManifest(**await load_manifest(manifest_path))

    async def list_snapshots(self) -> List[SnapshotInfo]:
        """List complete snapshots of every class, newest first."""
        snapshots = []

        for retention_class in STORED_CLASSES:
            class_dir = self.class_dir(retention_class)
            if not class_dir.is_dir():
                continue

            for folder in class_dir.iterdir():
                if not folder.is_dir() or folder.name.startswith("."):
                    continue
                try:
                    manifest = await self.read_manifest(folder)
                except (OSError, ValueError) as e:
                    logger.warning(f"Failed to read manifest for {folder}: {e}")
                    continue
                if manifest is None:
                    continue

                snapshots.append(SnapshotInfo(
                    path=folder,
                    retention_class=retention_class,
                    name=folder.name,
                    manifest=manifest,
                ))

        # Sort by creation time (newest first)
        snapshots.sort(key=lambda s: s.manifest.created_at, reverse=True)
        return snapshots

    async def load_snapshot(self, path: Path) -> LoadedSnapshot:
        """Load a snapshot's dump and manifest.

        A missing or mismatching manifest is only logged: the dump is the
        authoritative artifact.

        Raises:
            SnapshotNotFoundError: If the dump file is missing
        """
        path = Path(path)
        dump_path = path / DUMP_FILENAME
        if not dump_path.is_file():
            raise SnapshotNotFoundError(dump_path)

        manifest = None
        verified = False
        try:
            manifest = await self.read_manifest(path)
        except (OSError, ValueError) as e:
            logger.warning(f"Unreadable manifest for {path}: {e}")

        if manifest is None:
            logger.warning(f"Snapshot has no manifest, loading dump anyway: {path}")
        else:
            verified = verify_checksum(dump_path, manifest.checksum)
            if verified:
                logger.info(f"Dump checksum verified: {manifest.checksum}")
            else:
                logger.warning(f"Checksum mismatch for snapshot at {path}")

        data = await load_dump(dump_path)
        return LoadedSnapshot(path=path, manifest=manifest, data=data, checksum_verified=verified)

    async def delete_snapshot(self, path: Path) -> bool:
        """Delete a snapshot folder.

        Returns:
            True if deleted, False if not found or outside the store
        """
        path = Path(path)
        if not self.contains(path):
            logger.warning(f"Refusing to delete path outside snapshot store: {path}")
            return False
        if not path.is_dir():
            return False

        shutil.rmtree(path)
        logger.info(f"Deleted snapshot: {path}")
        return True
