"""Test utilities for crm-backup tests."""
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import func, insert, select
from sqlalchemy.ext.asyncio import AsyncEngine

from crm_backup.backup.registry import build_crm_registry
from crm_backup.schema import Base

_registry = build_crm_registry()


def ts(value: str) -> datetime:
    """Naive UTC datetime from an ISO string, as stored by SQLite."""
    return datetime.fromisoformat(value)


async def insert_rows(engine: AsyncEngine, table: str, rows: List[Dict[str, Any]]) -> None:
    """Insert rows directly, bypassing the merge (values coerced like snapshot records)."""
    descriptor = _registry.get(table)
    async with engine.begin() as conn:
        for row in rows:
            await conn.execute(insert(descriptor.table).values(**descriptor.coerce(row)))


async def fetch_row(engine: AsyncEngine, table: str, record_id: str) -> Optional[Dict[str, Any]]:
    t = Base.metadata.tables[table]
    async with engine.connect() as conn:
        result = await conn.execute(select(t).where(t.c.id == record_id))
        row = result.first()
    return dict(row._mapping) if row is not None else None


async def count_rows(engine: AsyncEngine, table: str) -> int:
    t = Base.metadata.tables[table]
    async with engine.connect() as conn:
        result = await conn.execute(select(func.count()).select_from(t))
        return result.scalar_one()


def make_user(user_id: str, **overrides) -> Dict[str, Any]:
    user = {
        "id": user_id,
        "email": f"{user_id}@example.com",
        "name": user_id.title(),
        "role": "Agent",
        "is_active": True,
        "team_id": None,
        "account_manager_id": None,
        "created_at": "2024-01-01 09:00:00",
        "updated_at": "2024-01-01 09:00:00",
    }
    user.update(overrides)
    return user


def make_lead(lead_id: str, updated_at: Optional[str] = "2024-01-01 10:00:00", **overrides) -> Dict[str, Any]:
    lead = {
        "id": lead_id,
        "name": f"Lead {lead_id}",
        "phone": "555-0100",
        "email": None,
        "status": "New",
        "custom_fields": {"source": "web"},
        "campaign_id": None,
        "agent_id": None,
        "qc_user_id": None,
        "pipeline_stage_id": None,
        "created_at": "2024-01-01 09:00:00",
        "updated_at": updated_at,
    }
    lead.update(overrides)
    return lead
