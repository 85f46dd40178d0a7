"""Exporters for snapshot contents: relational entities and uploaded assets."""

from .entity_exporter import EntityExporter
from .asset_replicator import AssetReplicator, CopyMode

__all__ = ["EntityExporter", "AssetReplicator", "CopyMode"]
