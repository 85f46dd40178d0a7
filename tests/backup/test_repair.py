"""Tests for the post-merge reference repair pass."""

import pytest
from sqlalchemy import delete

from crm_backup.backup.merge import MergeRestoreEngine
from crm_backup.backup.repair import ReferenceRepairer
from crm_backup.schema import FormTemplate
from tests.utils import fetch_row, insert_rows, make_user


@pytest.fixture
def repairer(engine, registry):
    return ReferenceRepairer(engine, registry)


@pytest.mark.asyncio
async def test_restored_parent_is_relinked(engine, registry, repairer):
    """A deleted parent nulls its children; restoring it brings the link back."""
    template = {"id": "f1", "name": "Default", "fields": [], "updated_at": "2024-01-01"}
    campaign = {"id": "c1", "name": "Spring", "form_template_id": "f1"}
    await insert_rows(engine, "form_templates", [template])
    await insert_rows(engine, "campaigns", [campaign])

    async with engine.begin() as conn:
        await conn.execute(delete(FormTemplate.__table__).where(FormTemplate.__table__.c.id == "f1"))
    assert (await fetch_row(engine, "campaigns", "c1"))["form_template_id"] is None

    snapshot = {"form_templates": [template], "campaigns": [campaign]}
    await MergeRestoreEngine(engine, registry).merge(snapshot)
    repaired = await repairer.repair(snapshot)

    assert repaired["campaigns.form_template_id"] == 1
    assert (await fetch_row(engine, "campaigns", "c1"))["form_template_id"] == "f1"


@pytest.mark.asyncio
async def test_team_link_restored_after_teams(engine, registry, repairer):
    snapshot = {
        "users": [make_user("lead", team_id="t1"), make_user("agent", team_id="t1")],
        "teams": [{"id": "t1", "name": "Red", "team_leader_user_id": "lead"}],
    }
    await MergeRestoreEngine(engine, registry).merge(snapshot)

    repaired = await repairer.repair(snapshot)

    assert repaired["users.team_id"] == 2
    assert repaired["teams.team_leader_user_id"] == 0
    assert (await fetch_row(engine, "users", "agent"))["team_id"] == "t1"


@pytest.mark.asyncio
async def test_non_null_value_is_never_overwritten(engine, repairer):
    await insert_rows(engine, "users", [make_user("qc1"), make_user("qc2")])
    await insert_rows(engine, "campaigns", [{"id": "c1", "name": "Spring", "qc_user_id": "qc2"}])

    repaired = await repairer.repair({"campaigns": [{"id": "c1", "qc_user_id": "qc1"}]})

    assert repaired["campaigns.qc_user_id"] == 0
    assert (await fetch_row(engine, "campaigns", "c1"))["qc_user_id"] == "qc2"


@pytest.mark.asyncio
async def test_missing_target_is_not_linked(engine, repairer):
    await insert_rows(engine, "campaigns", [{"id": "c1", "name": "Spring"}])

    repaired = await repairer.repair({"campaigns": [{"id": "c1", "client_id": "deleted-client"}]})

    assert repaired["campaigns.client_id"] == 0
    assert (await fetch_row(engine, "campaigns", "c1"))["client_id"] is None


@pytest.mark.asyncio
async def test_missing_live_record_is_ignored(repairer):
    repaired = await repairer.repair({"leave_requests": [{"id": "lr1", "manager_id": "u1"}]})

    assert repaired == {"leave_requests.manager_id": 0}


@pytest.mark.asyncio
async def test_only_entities_in_snapshot_are_reported(repairer):
    assert await repairer.repair({}) == {}
