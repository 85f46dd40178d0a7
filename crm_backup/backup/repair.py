"""Post-merge repair of foreign keys nulled by earlier deletions.

When a referenced row is deleted under an ``ON DELETE SET NULL`` policy and
later comes back through a restore, the rows that pointed at it still hold a
null. This pass walks a fixed set of (entity, field) references and copies the
snapshot value back wherever the live field is null and the referenced row is
present again. Non-null live values are never touched.
"""

from typing import Any, Dict, List

from sqlalchemy.ext.asyncio import AsyncEngine

from .._utils import logger
from .merge import RECORD_ERRORS
from .registry import EntityRegistry, ReferenceSpec


class ReferenceRepairer:
    """Backfill null foreign keys from snapshot values."""

    def __init__(self, engine: AsyncEngine, registry: EntityRegistry):
        self.engine = engine
        self.registry = registry

    async def repair(self, data: Dict[str, Any]) -> Dict[str, int]:
        """Run every configured reference repair.

        Args:
            data: Snapshot dump (entity type -> records)

        Returns:
            Number of repaired references keyed by ``"<entity>.<field>"``
        """
        repaired = {}
        for spec in self.registry.repair_references:
            records = data.get(spec.entity)
            if not records or not isinstance(records, list):
                continue
            repaired[spec.key] = await self.repair_reference(spec, records)

        total = sum(repaired.values())
        if total > 0:
            logger.info(f"Total orphaned references fixed: {total}")
        else:
            logger.info("No orphaned references found")
        return repaired

    async def repair_reference(self, spec: ReferenceSpec, records: List[dict]) -> int:
        descriptor = self.registry.get(spec.entity)
        target = self.registry.get(spec.target)
        fixed = 0

        for record in records:
            if not isinstance(record, dict):
                continue
            record_id = record.get(descriptor.primary_key)
            value = record.get(spec.field)
            if record_id is None or value is None:
                continue

            try:
                async with self.engine.begin() as conn:
                    if await descriptor.backfill(conn, record_id, spec.field, value, target):
                        fixed += 1
            except RECORD_ERRORS as e:
                logger.warning(f"Could not fix {spec.key} for {record_id}: {e}")

        if fixed > 0:
            logger.info(f"Fixed {fixed} orphaned {spec.key} references")
        return fixed
