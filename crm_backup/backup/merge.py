"""Non-destructive merge of a snapshot into the live database.

Entity types are merged strictly in registry order, one record at a time, each
record in its own short transaction so a failing record never takes others
with it. The merge never deletes:

- a record missing from the live database is inserted as-is;
- an existing timestamped record is updated only when the snapshot copy is
  strictly newer; older or unparseable timestamps are recorded as conflicts;
- an existing non-timestamped record is never modified.

Self-referential entity types are merged in two passes: rows are first
inserted with the self reference stripped, then the reference is backfilled
once every row of the type exists.
"""

from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine

from .._utils import logger, parse_timestamp
from .models import Conflict, RestoreReport, RestoreResult
from .registry import EntityDescriptor, EntityRegistry

ProgressCallback = Callable[[str, int], None]

NOT_AN_OBJECT = "Record is not an object"

# Progress range covered by the per-entity merge
MERGE_PROGRESS_START = 30
MERGE_PROGRESS_END = 80

RECORD_ERRORS = (SQLAlchemyError, ValueError, TypeError)


class MergeRestoreEngine:
    """Merge snapshot records into the live database entity by entity."""

    def __init__(self, engine: AsyncEngine, registry: EntityRegistry):
        """Initialize merge engine.

        Args:
            engine: Async engine for the live CRM database
            registry: Entity registry defining tables, flags and order
        """
        self.engine = engine
        self.registry = registry

    async def merge(
        self,
        data: Dict[str, Any],
        on_progress: Optional[ProgressCallback] = None,
        result: Optional[RestoreResult] = None,
    ) -> List[RestoreReport]:
        """Merge every entity type present in the snapshot.

        Args:
            data: Snapshot dump (entity type -> records)
            on_progress: Called synchronously with (phase, percent)
            result: Receives each entity report as soon as that type is merged,
                so a merge aborted partway still leaves the finished reports

        Returns:
            One RestoreReport per entity type found in the snapshot
        """
        for name in data:
            if name not in self.registry:
                logger.warning(f"Snapshot contains unknown entity type, ignoring: {name}")

        present = []
        for descriptor in self.registry:
            records = data.get(descriptor.name)
            if records is None:
                continue
            if not isinstance(records, list):
                logger.warning(f"Snapshot data for {descriptor.name} is not a list, ignoring")
                continue
            present.append(descriptor)
        reports = []

        for index, descriptor in enumerate(present, start=1):
            if on_progress:
                span = MERGE_PROGRESS_END - MERGE_PROGRESS_START
                on_progress(f"Merging {descriptor.name}", MERGE_PROGRESS_START + (index * span) // len(present))

            records = data[descriptor.name]
            if descriptor.self_reference:
                report = await self.merge_self_referential(descriptor, records)
            else:
                report = await self.merge_entity(descriptor, records)
            reports.append(report)
            if result is not None:
                result.add_reports([report])

        return reports

    async def merge_entity(self, descriptor: EntityDescriptor, records: List[dict]) -> RestoreReport:
        """Merge one entity type with the general insert / newer-wins policy."""
        report = RestoreReport(entity=descriptor.name)
        logger.info(f"Merging {descriptor.name} ({len(records)} records)")

        for record in records:
            if not isinstance(record, dict):
                report.conflicts.append(Conflict(reason=NOT_AN_OBJECT))
                continue
            record_id = record.get(descriptor.primary_key)
            if record_id is None:
                report.conflicts.append(Conflict(reason="Record has no primary identifier"))
                continue

            try:
                await self._merge_record(descriptor, record, report)
            except RECORD_ERRORS as e:
                logger.error(f"Error restoring {descriptor.name} record {record_id}: {e}")
                report.conflicts.append(Conflict(record_id=str(record_id), reason=f"Error: {e}"))

        logger.info(
            f"{descriptor.name}: {report.inserted} inserted, {report.updated} updated, "
            f"{report.skipped} skipped, {len(report.conflicts)} conflicts"
        )
        return report

    async def _merge_record(self, descriptor: EntityDescriptor, record: dict, report: RestoreReport) -> None:
        record_id = record[descriptor.primary_key]

        async with self.engine.connect() as conn:
            existing = await descriptor.lookup(conn, record_id)

        if existing is None:
            await self._insert(descriptor, record, report)
            return

        if not descriptor.timestamped:
            # Existing data whose provenance cannot be compared is never overwritten
            report.skipped += 1
            logger.debug(f"Skipped {descriptor.name} record (no timestamp): {record_id}")
            return

        snapshot_ts = parse_timestamp(record.get(descriptor.timestamp_field))
        current_ts = parse_timestamp(existing.get(descriptor.timestamp_field))

        if snapshot_ts is None or current_ts is None:
            report.skipped += 1
            report.conflicts.append(Conflict(
                record_id=str(record_id),
                reason="No timestamp available for comparison",
            ))
            return

        if snapshot_ts > current_ts:
            async with self.engine.begin() as conn:
                await descriptor.update(conn, record_id, record)
            report.updated += 1
            logger.debug(f"Updated {descriptor.name} record: {record_id}")
            return

        report.skipped += 1
        if snapshot_ts < current_ts:
            report.conflicts.append(Conflict(
                record_id=str(record_id),
                reason="Current data is newer",
                snapshot_timestamp=snapshot_ts.isoformat(),
                current_timestamp=current_ts.isoformat(),
            ))

    async def _insert(
        self,
        descriptor: EntityDescriptor,
        record: dict,
        report: RestoreReport,
        reason_prefix: str = "Insert failed",
    ) -> bool:
        record_id = record[descriptor.primary_key]
        try:
            async with self.engine.begin() as conn:
                values = await self._resolve_forward_references(conn, descriptor, record)
                await descriptor.insert(conn, values)
        except RECORD_ERRORS as e:
            logger.error(f"Failed to insert {descriptor.name} record {record_id}: {e}")
            report.conflicts.append(Conflict(record_id=str(record_id), reason=f"{reason_prefix}: {e}"))
            return False

        report.inserted += 1
        logger.debug(f"Inserted {descriptor.name} record: {record_id}")
        return True

    async def _resolve_forward_references(self, conn, descriptor: EntityDescriptor, record: dict) -> dict:
        """Null out forward references whose target is not restored yet.

        The reference repair pass sets them once the target entity type is merged.
        """
        if not descriptor.forward_references:
            return record

        values = dict(record)
        for field_name, target in descriptor.forward_references.items():
            target_id = values.get(field_name)
            if target_id is None:
                continue
            if not await self.registry.get(target).exists(conn, target_id):
                values[field_name] = None
        return values

    async def merge_self_referential(self, descriptor: EntityDescriptor, records: List[dict]) -> RestoreReport:
        """Two-pass merge for an entity type that references itself.

        Pass 1 fills gaps only: missing rows are inserted without the self
        reference, existing rows are left untouched. Pass 2 backfills the self
        reference where the target now exists and the live row has none.
        """
        field_name = descriptor.self_reference
        report = RestoreReport(entity=descriptor.name)
        logger.info(f"Using two-pass merge for {descriptor.name} ({len(records)} records)")

        # Pass 1: insert missing rows without the self reference
        for record in records:
            if not isinstance(record, dict):
                report.conflicts.append(Conflict(reason=NOT_AN_OBJECT))
                continue
            record_id = record.get(descriptor.primary_key)
            if record_id is None:
                report.conflicts.append(Conflict(reason="Record has no primary identifier"))
                continue

            stripped = {k: v for k, v in record.items() if k != field_name}
            try:
                async with self.engine.connect() as conn:
                    exists = await descriptor.exists(conn, record_id)
            except RECORD_ERRORS as e:
                logger.error(f"Error in pass 1 for {descriptor.name} {record_id}: {e}")
                report.conflicts.append(Conflict(record_id=str(record_id), reason=f"Pass 1 Error: {e}"))
                continue

            if exists:
                report.skipped += 1
            else:
                await self._insert(descriptor, stripped, report, reason_prefix="Pass 1 insert failed")

        # Pass 2: backfill self references
        links = 0
        for record in records:
            if not isinstance(record, dict):
                continue
            record_id = record.get(descriptor.primary_key)
            target_id = record.get(field_name)
            if record_id is None or target_id is None:
                continue
            try:
                async with self.engine.begin() as conn:
                    if await descriptor.backfill(conn, record_id, field_name, target_id, descriptor):
                        links += 1
            except RECORD_ERRORS as e:
                logger.warning(f"Could not set {field_name} for {descriptor.name} {record_id}: {e}")

        logger.info(
            f"{descriptor.name}: {report.inserted} inserted, {report.updated} updated, "
            f"{report.skipped} skipped, {links} {field_name} links restored"
        )
        return report
