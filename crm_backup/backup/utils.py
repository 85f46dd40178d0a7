"""Utility functions for backup/restore operations."""

import hashlib
import json
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from .._utils import logger, utc_now
from .models import RetentionClass

DUMP_FILENAME = "database.json"
MANIFEST_FILENAME = "manifest.json"
FILES_DIRNAME = "files"


def compute_checksum(file_path: Path) -> str:
    """Compute SHA-256 checksum of file.

    Args:
        file_path: Path to file

    Returns:
        SHA-256 checksum as hex string with 'sha256:' prefix
    """
    sha256 = hashlib.sha256()

    with open(file_path, "rb") as f:
        for chunk in iter(lambda: f.read(8192), b""):
            sha256.update(chunk)

    return f"sha256:{sha256.hexdigest()}"


def verify_checksum(file_path: Path, expected_checksum: str) -> bool:
    """Verify file checksum.

    Args:
        file_path: Path to file
        expected_checksum: Expected checksum (with 'sha256:' prefix)

    Returns:
        True if checksum matches, False otherwise
    """
    actual_checksum = compute_checksum(file_path)
    return actual_checksum == expected_checksum


def generate_snapshot_name(retention_class: RetentionClass, now: Optional[datetime] = None) -> str:
    """Generate the folder name for a snapshot.

    Returns:
        ``YYYY-MM-DD`` for daily, ``YYYY-MM`` for monthly, ``YYYY`` for yearly and
        ``manual-YYYY-MM-DDTHH-MM-SS-mmmZ`` for manual snapshots
    """
    now = now or utc_now()
    retention_class = RetentionClass(retention_class)

    if retention_class is RetentionClass.DAILY:
        return now.strftime("%Y-%m-%d")
    if retention_class is RetentionClass.MONTHLY:
        return now.strftime("%Y-%m")
    if retention_class is RetentionClass.YEARLY:
        return now.strftime("%Y")

    timestamp = now.strftime("%Y-%m-%dT%H-%M-%S") + f"-{now.microsecond // 1000:03d}Z"
    return f"manual-{timestamp}"


def validate_snapshot_name(name: str) -> str:
    """Reject folder names that could escape the retention class directory."""
    if not name or name in (".", "..") or ".." in name or "/" in name or "\\" in name:
        raise ValueError(f"Invalid snapshot name: {name!r}")
    if name.startswith("."):
        raise ValueError(f"Invalid snapshot name: {name!r}")
    return name


async def save_dump(data: Dict[str, List[dict]], output_path: Path) -> int:
    """Serialize the entity dump to JSON.

    Returns:
        Size of the written file in bytes
    """
    with open(output_path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2, default=str)

    size = output_path.stat().st_size
    logger.debug(f"Dump saved: {output_path} ({size:,} bytes)")
    return size


async def load_dump(dump_path: Path) -> Dict[str, Any]:
    with open(dump_path, "r", encoding="utf-8") as f:
        data = json.load(f)

    if not isinstance(data, dict):
        raise ValueError(f"Dump is not a mapping of entity types: {dump_path}")

    logger.debug(f"Dump loaded: {dump_path}")
    return data


async def save_manifest(manifest: Dict[str, Any], output_path: Path) -> None:
    """Save manifest JSON to file.

    Args:
        manifest: Manifest dictionary
        output_path: Output file path
    """
    with open(output_path, "w") as f:
        json.dump(manifest, f, indent=2, default=str)

    logger.debug(f"Manifest saved: {output_path}")


async def load_manifest(manifest_path: Path) -> Dict[str, Any]:
    """Load manifest JSON from file.

    Args:
        manifest_path: Manifest file path

    Returns:
        Manifest dictionary
    """
    with open(manifest_path, "r") as f:
        manifest = json.load(f)

    logger.debug(f"Manifest loaded: {manifest_path}")
    return manifest
