"""Entity registry: typed per-table descriptors and restore ordering.

Every table that takes part in snapshots is described once by an
``EntityDescriptor``. The descriptor knows its primary key, whether it carries
an ``updated_at`` timestamp used for conflict resolution, its self-referencing
field (if any), and which of its foreign keys point "forward" to entity types
restored later. All reads and writes go through SQLAlchemy Core statements
built from the table definition, so records coming out of a snapshot are
coerced to the column types and unknown keys are dropped.

Dependency order is derived from the foreign-key graph with networkx: parents
come before children, self references and declared forward references are
ignored, and ties are broken by a preferred order so exports stay stable.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

import networkx as nx
from sqlalchemy import Boolean, Date, DateTime, MetaData, Table, insert, select, update
from sqlalchemy.ext.asyncio import AsyncConnection

from .._utils import logger, parse_timestamp
from ..schema import Base


@dataclass(frozen=True)
class SelfReference:
    """Nullable foreign key from an entity type to itself (merged in two passes)."""
    entity: str
    field: str


@dataclass(frozen=True)
class ReferenceSpec:
    """Foreign key checked by the reference repair pass."""
    entity: str
    field: str
    target: str

    @property
    def key(self) -> str:
        return f"{self.entity}.{self.field}"


@dataclass
class EntityDescriptor:
    """Typed access to one entity table."""
    name: str
    table: Table
    timestamped: bool = False
    timestamp_field: str = "updated_at"
    self_reference: Optional[str] = None
    # field -> target entity, for references to entity types restored later
    forward_references: Dict[str, str] = field(default_factory=dict)

    @property
    def primary_key(self) -> str:
        return list(self.table.primary_key.columns)[0].name

    def coerce(self, record: Dict[str, Any]) -> Dict[str, Any]:
        """Convert a snapshot record to column-typed values, dropping unknown keys."""
        values = {}
        for column in self.table.columns:
            if column.name in record:
                values[column.name] = _coerce_value(column, record[column.name])
        return values

    async def lookup(self, conn: AsyncConnection, record_id: Any) -> Optional[Dict[str, Any]]:
        pk = self.table.c[self.primary_key]
        result = await conn.execute(select(self.table).where(pk == record_id))
        row = result.first()
        return dict(row._mapping) if row is not None else None

    async def exists(self, conn: AsyncConnection, record_id: Any) -> bool:
        pk = self.table.c[self.primary_key]
        result = await conn.execute(select(pk).where(pk == record_id))
        return result.first() is not None

    async def insert(self, conn: AsyncConnection, record: Dict[str, Any]) -> None:
        await conn.execute(insert(self.table).values(**self.coerce(record)))

    async def update(self, conn: AsyncConnection, record_id: Any, values: Dict[str, Any]) -> None:
        coerced = self.coerce(values)
        coerced.pop(self.primary_key, None)
        if not coerced:
            return
        pk = self.table.c[self.primary_key]
        await conn.execute(update(self.table).where(pk == record_id).values(**coerced))

    async def backfill(
        self,
        conn: AsyncConnection,
        record_id: Any,
        field_name: str,
        value: Any,
        target: "EntityDescriptor",
    ) -> bool:
        """Set a null reference field if the referenced row exists.

        Never overwrites a non-null value. The row's own timestamp is kept so a
        repaired reference does not look like a newer edit on the next restore.

        Returns:
            True if the field was set
        """
        live = await self.lookup(conn, record_id)
        if live is None or live.get(field_name) is not None:
            return False
        if not await target.exists(conn, value):
            return False

        values = {field_name: value}
        if self.timestamp_field in self.table.c and live.get(self.timestamp_field) is not None:
            values[self.timestamp_field] = live[self.timestamp_field]
        await self.update(conn, record_id, values)
        return True

    async def fetch_all(self, conn: AsyncConnection) -> List[Dict[str, Any]]:
        pk = self.table.c[self.primary_key]
        result = await conn.execute(select(self.table).order_by(pk))
        return [dict(row._mapping) for row in result]


def _coerce_value(column, value: Any) -> Any:
    if value is None:
        return None

    column_type = column.type
    if isinstance(column_type, DateTime):
        parsed = parse_timestamp(value)
        if parsed is None:
            raise ValueError(f"Invalid datetime for column {column.name}: {value!r}")
        if not column_type.timezone:
            parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
        return parsed
    if isinstance(column_type, Date):
        if isinstance(value, datetime):
            return value.date()
        if isinstance(value, date):
            return value
        return date.fromisoformat(str(value)[:10])
    if isinstance(column_type, Boolean) and isinstance(value, int):
        return bool(value)
    return value


class EntityRegistry:
    """Descriptors for every snapshotted entity type, in dependency order."""

    def __init__(
        self,
        descriptors: Sequence[EntityDescriptor],
        repair_references: Sequence[ReferenceSpec] = (),
    ):
        self._descriptors: Dict[str, EntityDescriptor] = {d.name: d for d in descriptors}
        self._order: List[str] = [d.name for d in descriptors]
        self.repair_references: List[ReferenceSpec] = list(repair_references)

        for spec in self.repair_references:
            if spec.entity not in self._descriptors or spec.target not in self._descriptors:
                raise ValueError(f"Repair reference {spec.key} names an unknown entity type")

    @property
    def order(self) -> List[str]:
        return list(self._order)

    def __iter__(self) -> Iterator[EntityDescriptor]:
        return (self._descriptors[name] for name in self._order)

    def __contains__(self, name: str) -> bool:
        return name in self._descriptors

    def __len__(self) -> int:
        return len(self._order)

    def get(self, name: str) -> Optional[EntityDescriptor]:
        return self._descriptors.get(name)

    @property
    def self_referential(self) -> List[EntityDescriptor]:
        return [d for d in self if d.self_reference]

    @classmethod
    def from_metadata(
        cls,
        metadata: MetaData,
        timestamped: Iterable[str] = (),
        self_references: Iterable[SelfReference] = (),
        forward_references: Iterable[Tuple[str, str]] = (),
        repair_references: Iterable[Tuple[str, str]] = (),
        preferred_order: Sequence[str] = (),
    ) -> "EntityRegistry":
        """Build a registry from SQLAlchemy metadata.

        Args:
            metadata: Metadata holding every entity table
            timestamped: Entity types eligible for update-on-restore
            self_references: Self-referencing fields merged in two passes
            forward_references: (entity, field) pairs pointing at entity types restored later
            repair_references: (entity, field) pairs backfilled after the merge
            preferred_order: Tie-break order for entity types with no dependency between them

        Returns:
            EntityRegistry with descriptors in dependency order
        """
        tables = metadata.tables
        timestamped = set(timestamped)
        self_refs = {ref.entity: ref.field for ref in self_references}
        forward = set(forward_references)

        for name in list(timestamped) + list(self_refs):
            if name not in tables:
                raise ValueError(f"Unknown entity type: {name}")

        order = dependency_order(tables.values(), self_refs, forward, preferred_order)

        descriptors = []
        for name in order:
            table = tables[name]
            descriptors.append(EntityDescriptor(
                name=name,
                table=table,
                timestamped=name in timestamped,
                self_reference=self_refs.get(name),
                forward_references={
                    fld: _reference_target(table, fld)
                    for entity, fld in forward if entity == name
                },
            ))

        specs = [
            ReferenceSpec(entity=entity, field=fld, target=_reference_target(tables[entity], fld))
            for entity, fld in repair_references
        ]
        return cls(descriptors, specs)


def _reference_target(table: Table, field_name: str) -> str:
    if field_name not in table.c:
        raise ValueError(f"Unknown field {table.name}.{field_name}")
    foreign_keys = list(table.c[field_name].foreign_keys)
    if not foreign_keys:
        raise ValueError(f"{table.name}.{field_name} is not a foreign key")
    return foreign_keys[0].column.table.name


def dependency_order(
    tables: Iterable[Table],
    self_references: Dict[str, str],
    forward_references: Iterable[Tuple[str, str]],
    preferred_order: Sequence[str] = (),
) -> List[str]:
    """Order tables so that every referenced table precedes its referrers.

    Raises:
        ValueError: If the remaining foreign-key graph has a cycle
    """
    forward = set(forward_references)
    graph = nx.DiGraph()
    tables = list(tables)
    for table in tables:
        graph.add_node(table.name)

    for table in tables:
        for fk in table.foreign_keys:
            target = fk.column.table.name
            if target == table.name:
                if self_references.get(table.name) != fk.parent.name:
                    logger.warning(
                        f"Self reference {table.name}.{fk.parent.name} is not declared for two-pass merge"
                    )
                continue
            if (table.name, fk.parent.name) in forward:
                continue
            graph.add_edge(target, table.name)

    rank = {name: index for index, name in enumerate(preferred_order)}

    def sort_key(name: str):
        return (rank.get(name, len(rank)), name)

    try:
        return list(nx.lexicographical_topological_sort(graph, key=sort_key))
    except nx.NetworkXUnfeasible:
        cycle = nx.find_cycle(graph)
        path = " -> ".join(edge[0] for edge in cycle)
        raise ValueError(f"Circular dependency between entity types: {path}")


# CRM schema configuration

CRM_ENTITY_ORDER = [
    "system_settings",
    "pipeline_stages",
    "form_templates",
    "users",
    "teams",
    "campaigns",
    "campaign_teams",
    "campaign_qcs",
    "leads",
    "lead_notes",
    "lead_audits",
    "client_notes",
    "client_schedules",
    "leave_requests",
    "it_tickets",
    "it_ticket_responses",
    "it_ticket_status_history",
    "it_assignments",
    "login_history",
    "daily_top_agents",
]

CRM_TIMESTAMPED = [
    "system_settings",
    "pipeline_stages",
    "form_templates",
    "leads",
    "client_notes",
    "client_schedules",
    "it_tickets",
]

CRM_SELF_REFERENCES = [SelfReference("users", "account_manager_id")]

CRM_FORWARD_REFERENCES = [("users", "team_id")]

CRM_REPAIR_REFERENCES = [
    ("users", "team_id"),
    ("users", "account_manager_id"),
    ("teams", "team_leader_user_id"),
    ("campaigns", "client_id"),
    ("campaigns", "qc_user_id"),
    ("campaigns", "form_template_id"),
    ("leads", "campaign_id"),
    ("leads", "qc_user_id"),
    ("leave_requests", "manager_id"),
    ("it_tickets", "assigned_it_id"),
]


def build_crm_registry(metadata: Optional[MetaData] = None) -> EntityRegistry:
    """Registry for the CRM schema defined in ``crm_backup.schema``."""
    return EntityRegistry.from_metadata(
        metadata if metadata is not None else Base.metadata,
        timestamped=CRM_TIMESTAMPED,
        self_references=CRM_SELF_REFERENCES,
        forward_references=CRM_FORWARD_REFERENCES,
        repair_references=CRM_REPAIR_REFERENCES,
        preferred_order=CRM_ENTITY_ORDER,
    )
