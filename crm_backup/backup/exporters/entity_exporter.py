"""Relational entity exporter for snapshots."""

from typing import Dict, List

from sqlalchemy.ext.asyncio import AsyncEngine

from ..._utils import logger
from ..registry import EntityRegistry


class EntityExporter:
    """Read every registered entity table into a JSON-ready mapping."""

    def __init__(self, engine: AsyncEngine, registry: EntityRegistry):
        """Initialize exporter.

        Args:
            engine: Async engine for the live CRM database
            registry: Entity registry defining tables and dependency order
        """
        self.engine = engine
        self.registry = registry
        self._last_counts: Dict[str, int] = {}

    async def export(self) -> Dict[str, List[dict]]:
        """Export all entity types, parents before children.

        All tables are read inside one transaction. Any read failure propagates
        so that a partial export is never published as a snapshot.

        Returns:
            Mapping of entity type name to its rows, ordered by primary key
        """
        logger.info(f"Exporting {len(self.registry)} entity types...")
        data: Dict[str, List[dict]] = {}

        async with self.engine.connect() as conn:
            async with conn.begin():
                for descriptor in self.registry:
                    rows = await descriptor.fetch_all(conn)
                    data[descriptor.name] = rows
                    logger.debug(f"Exported {descriptor.name}: {len(rows)} records")

        self._last_counts = {name: len(rows) for name, rows in data.items()}
        logger.info(f"Entity export complete: {sum(self._last_counts.values())} records")
        return data

    async def get_statistics(self) -> Dict[str, int]:
        """Get record counts from the last export.

        Returns:
            Dictionary with record counts per entity type
        """
        return dict(self._last_counts)
