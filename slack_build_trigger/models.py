"""SQLAlchemy models for local accounts, jobs, and queued builds."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import List

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from slack_build_trigger.db import Base


class User(Base):
    """A local account that Slack users can link to."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    username: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    display_name: Mapped[str | None] = mapped_column(String(128), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC))

    slack_account: Mapped["SlackAccount"] = relationship(
        "SlackAccount", back_populates="user", uselist=False, cascade="all, delete-orphan"
    )


class SlackAccount(Base):
    """Linkage between a local account and a Slack user."""

    __tablename__ = "slack_accounts"
    __table_args__ = (
        UniqueConstraint("user_id", name="uq_slack_accounts_user"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    team_id: Mapped[str] = mapped_column(String(32), nullable=False, default="")
    slack_user_id: Mapped[str] = mapped_column(String(32), nullable=False, default="")
    slack_user_name: Mapped[str] = mapped_column(String(128), nullable=False, default="")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    linked_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC))

    user: Mapped[User] = relationship("User", back_populates="slack_account")


class Job(Base):
    """A buildable job registered with the automation server."""

    __tablename__ = "jobs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    full_name: Mapped[str] = mapped_column(String(512), nullable=False, unique=True)
    disabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    grants: Mapped[List["JobGrant"]] = relationship(
        "JobGrant", back_populates="job", cascade="all, delete-orphan"
    )
    builds: Mapped[List["Build"]] = relationship(
        "Build", back_populates="job", cascade="all, delete-orphan", order_by="Build.number"
    )


class JobGrant(Base):
    """Permission granted on a job to a username, ``authenticated`` or ``anonymous``."""

    __tablename__ = "job_grants"
    __table_args__ = (
        UniqueConstraint("job_id", "grantee", "permission", name="uq_job_grants"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    job_id: Mapped[int] = mapped_column(ForeignKey("jobs.id", ondelete="CASCADE"), nullable=False)
    grantee: Mapped[str] = mapped_column(String(64), nullable=False)
    permission: Mapped[str] = mapped_column(String(16), nullable=False)

    job: Mapped[Job] = relationship("Job", back_populates="grants")


class Build(Base):
    """A queued build along with the Slack cause that triggered it."""

    __tablename__ = "builds"
    __table_args__ = (
        UniqueConstraint("job_id", "number", name="uq_builds_job_number"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    job_id: Mapped[int] = mapped_column(ForeignKey("jobs.id", ondelete="CASCADE"), nullable=False)
    number: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="QUEUED")
    queued_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC))
    triggered_by: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    slack_team_domain: Mapped[str] = mapped_column(String(128), nullable=False)
    slack_channel_name: Mapped[str | None] = mapped_column(String(128), nullable=True)
    slack_user_id: Mapped[str] = mapped_column(String(32), nullable=False)
    slack_user_name: Mapped[str] = mapped_column(String(128), nullable=False)

    job: Mapped[Job] = relationship("Job", back_populates="builds")
