# classes/entities.py
from datetime import date, datetime, timezone
from uuid import uuid4

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, declarative_base, mapped_column

from typing import Any, TypeAlias

UUID: TypeAlias = str
Base = declarative_base()


def _new_id() -> str:
    return str(uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
    )

    def to_dict(self) -> dict[str, Any]:
        return {
            attr.key: _iso(getattr(self, attr.key))
            for attr in self.__mapper__.column_attrs
        }


class TeamMember(Base, TimestampMixin):
    __tablename__ = "team_members"

    id: Mapped[UUID] = mapped_column(String(36), primary_key=True, default=_new_id)
    nick: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    role: Mapped[str] = mapped_column(String, nullable=False)


class Project(Base, TimestampMixin):
    __tablename__ = "projects"

    id: Mapped[UUID] = mapped_column(String(36), primary_key=True, default=_new_id)
    name: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    description: Mapped[str | None] = mapped_column(Text)
    # active | on-hold | completed
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="active")
    color: Mapped[str] = mapped_column(String(16), nullable=False, default="#4f6ff5")
    category: Mapped[str | None] = mapped_column(String)


class CheckInTemplate(Base, TimestampMixin):
    __tablename__ = "check_in_templates"

    id: Mapped[UUID] = mapped_column(String(36), primary_key=True, default=_new_id)
    name: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    description: Mapped[str | None] = mapped_column(Text)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
    )


class TemplateGoalArea(Base, TimestampMixin):
    __tablename__ = "template_goal_areas"

    id: Mapped[UUID] = mapped_column(String(36), primary_key=True, default=_new_id)
    template_id: Mapped[UUID] = mapped_column(
        String(36),
        ForeignKey("check_in_templates.id", ondelete="CASCADE"),
        nullable=False,
    )
    name: Mapped[str] = mapped_column(String, nullable=False)
    display_order: Mapped[int] = mapped_column(Integer, nullable=False)


class TemplateGoal(Base, TimestampMixin):
    __tablename__ = "template_goals"

    id: Mapped[UUID] = mapped_column(String(36), primary_key=True, default=_new_id)
    goal_area_id: Mapped[UUID] = mapped_column(
        String(36),
        ForeignKey("template_goal_areas.id", ondelete="CASCADE"),
        nullable=False,
    )
    goal: Mapped[str] = mapped_column(String, nullable=False)
    success_criteria: Mapped[str] = mapped_column(Text, nullable=False, default="")
    # optional default URL, copied at check-in but editable
    report_url: Mapped[str | None] = mapped_column(String)
    display_order: Mapped[int] = mapped_column(Integer, nullable=False)


class Requirement(Base, TimestampMixin):
    __tablename__ = "requirements"

    id: Mapped[UUID] = mapped_column(String(36), primary_key=True, default=_new_id)
    project_id: Mapped[UUID] = mapped_column(
        String(36),
        ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
    )
    name: Mapped[str] = mapped_column(String, nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    # recurring | one-time
    type: Mapped[str] = mapped_column(String(20), nullable=False)
    # daily | weekly | monthly | quarterly
    recurrence: Mapped[str | None] = mapped_column(String(20))
    due_date: Mapped[date] = mapped_column(Date, nullable=False)
    # pending | completed | overdue
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    owner_id: Mapped[UUID | None] = mapped_column(String(36), ForeignKey("team_members.id"))
    is_per_member_check_in: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    # null if not using a check-in template
    template_id: Mapped[UUID | None] = mapped_column(String(36), ForeignKey("check_in_templates.id"))

    __table_args__ = (
        Index("ix_requirements_project_id", "project_id"),
    )


class AiExecutionLog(Base, TimestampMixin):
    """
    One row per agent invocation. Append-only: nothing updates or deletes these rows.
    """
    __tablename__ = "ai_execution_logs"

    id: Mapped[UUID] = mapped_column(String(36), primary_key=True, default=_new_id)
    prompt: Mapped[str] = mapped_column(Text, nullable=False)
    success: Mapped[bool] = mapped_column(Boolean, nullable=False)
    operations_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    success_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    error_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    # JSON-encoded list of operation results
    operations: Mapped[str] = mapped_column(Text, nullable=False, default="[]")
    execution_time_ms: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    automation_id: Mapped[UUID | None] = mapped_column(String(36))

    __table_args__ = (
        Index("ix_ai_execution_logs_created_at", "created_at"),
    )


class AiAutomation(Base, TimestampMixin):
    __tablename__ = "ai_automations"

    id: Mapped[UUID] = mapped_column(String(36), primary_key=True, default=_new_id)
    name: Mapped[str] = mapped_column(String, nullable=False)
    prompt: Mapped[str] = mapped_column(Text, nullable=False)
    rules: Mapped[str | None] = mapped_column(Text)
    # daily | weekly | monthly
    schedule: Mapped[str] = mapped_column(String(20), nullable=False)
    # 0 = Sunday ... 6 = Saturday
    day_of_week: Mapped[int | None] = mapped_column(Integer)
    day_of_month: Mapped[int | None] = mapped_column(Integer)
    enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    last_run_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    last_run_status: Mapped[str | None] = mapped_column(String(20))
    last_run_summary: Mapped[str | None] = mapped_column(Text)
    last_run_log_id: Mapped[UUID | None] = mapped_column(String(36))
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
    )
