"""SQLAlchemy models for the CRM tables covered by snapshots."""

from datetime import date, datetime
from typing import Any, Optional
from uuid import uuid4

from sqlalchemy import JSON, Boolean, Date, DateTime, ForeignKey, Integer, String, Text, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def _uuid() -> str:
    return str(uuid4())


class Base(DeclarativeBase):
    pass


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), onupdate=func.now()
    )


class IDMixin:
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)


# Configuration

class SystemSetting(Base, IDMixin, TimestampMixin):
    __tablename__ = "system_settings"

    key: Mapped[str] = mapped_column(String(100), unique=True)
    category: Mapped[str] = mapped_column(String(50), default="general")
    value: Mapped[Any] = mapped_column(JSON)
    updated_by: Mapped[Optional[str]] = mapped_column(String(36))


class PipelineStage(Base, IDMixin, TimestampMixin):
    __tablename__ = "pipeline_stages"

    name: Mapped[str] = mapped_column(String(100))
    position: Mapped[int] = mapped_column(Integer, default=0)
    color: Mapped[Optional[str]] = mapped_column(String(20))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)


class FormTemplate(Base, IDMixin, TimestampMixin):
    __tablename__ = "form_templates"

    name: Mapped[str] = mapped_column(String(200))
    fields: Mapped[Any] = mapped_column(JSON, default=list)


# People

class User(Base, IDMixin, TimestampMixin):
    __tablename__ = "users"

    email: Mapped[str] = mapped_column(String(255), unique=True)
    name: Mapped[str] = mapped_column(String(200))
    role: Mapped[str] = mapped_column(String(50), default="Agent")
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    # teams are restored after users, so this link is backfilled by the repair pass
    team_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("teams.id", ondelete="SET NULL", use_alter=True, name="fk_users_team_id")
    )
    account_manager_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL")
    )


class Team(Base, IDMixin):
    __tablename__ = "teams"

    name: Mapped[str] = mapped_column(String(200))
    team_leader_user_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL")
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())


# Campaigns and leads

class Campaign(Base, IDMixin):
    __tablename__ = "campaigns"

    name: Mapped[str] = mapped_column(String(200))
    status: Mapped[str] = mapped_column(String(50), default="Active")
    client_id: Mapped[Optional[str]] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"))
    qc_user_id: Mapped[Optional[str]] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"))
    form_template_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("form_templates.id", ondelete="SET NULL")
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())


class CampaignTeam(Base, IDMixin):
    __tablename__ = "campaign_teams"

    campaign_id: Mapped[str] = mapped_column(ForeignKey("campaigns.id", ondelete="CASCADE"))
    team_id: Mapped[str] = mapped_column(ForeignKey("teams.id", ondelete="CASCADE"))


class CampaignQC(Base, IDMixin):
    __tablename__ = "campaign_qcs"

    campaign_id: Mapped[str] = mapped_column(ForeignKey("campaigns.id", ondelete="CASCADE"))
    user_id: Mapped[str] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"))


class Lead(Base, IDMixin, TimestampMixin):
    __tablename__ = "leads"

    name: Mapped[str] = mapped_column(String(200))
    phone: Mapped[Optional[str]] = mapped_column(String(50))
    email: Mapped[Optional[str]] = mapped_column(String(255))
    status: Mapped[str] = mapped_column(String(50), default="New")
    custom_fields: Mapped[Optional[Any]] = mapped_column(JSON)
    campaign_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("campaigns.id", ondelete="SET NULL")
    )
    agent_id: Mapped[Optional[str]] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"))
    qc_user_id: Mapped[Optional[str]] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"))
    pipeline_stage_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("pipeline_stages.id", ondelete="SET NULL")
    )


class LeadNote(Base, IDMixin):
    __tablename__ = "lead_notes"

    lead_id: Mapped[str] = mapped_column(ForeignKey("leads.id", ondelete="CASCADE"))
    author_id: Mapped[Optional[str]] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"))
    content: Mapped[str] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())


class LeadAudit(Base, IDMixin):
    __tablename__ = "lead_audits"

    lead_id: Mapped[str] = mapped_column(ForeignKey("leads.id", ondelete="CASCADE"))
    user_id: Mapped[Optional[str]] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"))
    action: Mapped[str] = mapped_column(String(50))
    changes: Mapped[Optional[Any]] = mapped_column(JSON)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())


# Client workspace

class ClientNote(Base, IDMixin, TimestampMixin):
    __tablename__ = "client_notes"

    client_id: Mapped[str] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"))
    author_id: Mapped[Optional[str]] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"))
    content: Mapped[str] = mapped_column(Text)


class ClientSchedule(Base, IDMixin, TimestampMixin):
    __tablename__ = "client_schedules"

    client_id: Mapped[str] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"))
    title: Mapped[str] = mapped_column(String(200))
    scheduled_at: Mapped[datetime] = mapped_column(DateTime)


class LeaveRequest(Base, IDMixin):
    __tablename__ = "leave_requests"

    user_id: Mapped[str] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"))
    manager_id: Mapped[Optional[str]] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"))
    start_date: Mapped[date] = mapped_column(Date)
    end_date: Mapped[date] = mapped_column(Date)
    reason: Mapped[Optional[str]] = mapped_column(Text)
    status: Mapped[str] = mapped_column(String(50), default="Pending")
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())


# IT desk

class ITTicket(Base, IDMixin, TimestampMixin):
    __tablename__ = "it_tickets"

    created_by_id: Mapped[str] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"))
    assigned_it_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL")
    )
    title: Mapped[str] = mapped_column(String(200))
    description: Mapped[Optional[str]] = mapped_column(Text)
    status: Mapped[str] = mapped_column(String(50), default="Open")
    priority: Mapped[str] = mapped_column(String(20), default="Medium")


class ITTicketResponse(Base, IDMixin):
    __tablename__ = "it_ticket_responses"

    ticket_id: Mapped[str] = mapped_column(ForeignKey("it_tickets.id", ondelete="CASCADE"))
    user_id: Mapped[Optional[str]] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"))
    message: Mapped[str] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())


class ITTicketStatusHistory(Base, IDMixin):
    __tablename__ = "it_ticket_status_history"

    ticket_id: Mapped[str] = mapped_column(ForeignKey("it_tickets.id", ondelete="CASCADE"))
    changed_by_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL")
    )
    from_status: Mapped[Optional[str]] = mapped_column(String(50))
    to_status: Mapped[str] = mapped_column(String(50))
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())


class ITAssignment(Base, IDMixin):
    __tablename__ = "it_assignments"

    it_user_id: Mapped[str] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"))
    team_id: Mapped[str] = mapped_column(ForeignKey("teams.id", ondelete="CASCADE"))
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())


# Daily aggregates

class LoginHistory(Base, IDMixin):
    __tablename__ = "login_history"

    user_id: Mapped[str] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"))
    login_at: Mapped[datetime] = mapped_column(DateTime)
    ip_address: Mapped[Optional[str]] = mapped_column(String(64))
    user_agent: Mapped[Optional[str]] = mapped_column(String(255))


class DailyTopAgent(Base, IDMixin):
    __tablename__ = "daily_top_agents"

    day: Mapped[date] = mapped_column(Date, unique=True)
    user_id: Mapped[str] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"))
    lead_count: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
