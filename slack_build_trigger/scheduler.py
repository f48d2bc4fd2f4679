"""Queueing builds for jobs found through Slack."""

from __future__ import annotations

from typing import Protocol

import structlog
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from slack_build_trigger.causes import BuildTriggerCause
from slack_build_trigger.db import session_scope
from slack_build_trigger.jobs import Job
from slack_build_trigger.models import Build, Job as JobRow

MAX_NUMBER_ATTEMPTS = 5


class BuildScheduler(Protocol):
    def enqueue(self, job: Job, cause: BuildTriggerCause) -> None: ...


class SchedulingError(Exception):
    """Raised when a build cannot be queued."""


def _next_build_number(session: Session, job_id: int) -> int:
    last_number = session.scalar(select(func.max(Build.number)).where(Build.job_id == job_id))
    return (last_number or 0) + 1


class SqlBuildScheduler:
    """Records queued builds in the ``builds`` table for the executor to pick up.

    Build numbers are allocated optimistically: when a concurrent request
    claims the same number first, ``uq_builds_job_number`` rejects the insert
    and the allocation is retried with a fresh transaction.
    """

    def enqueue(self, job: Job, cause: BuildTriggerCause) -> None:
        log = structlog.get_logger().bind(job=job.full_name, slack_user_id=cause.slack_user_id)
        for attempt in range(1, MAX_NUMBER_ATTEMPTS + 1):
            try:
                number = self._insert_build(job, cause)
            except IntegrityError:
                log.info("build_number_conflict", attempt=attempt)
                continue
            log.info("build_queued", number=number, cause=cause.short_description)
            return
        raise SchedulingError(
            f"Could not allocate a build number for '{job.full_name}' after {MAX_NUMBER_ATTEMPTS} attempts"
        )

    def _insert_build(self, job: Job, cause: BuildTriggerCause) -> int:
        with session_scope() as session:
            row = session.scalars(select(JobRow).where(JobRow.full_name == job.full_name)).one_or_none()
            if row is None:
                raise SchedulingError(f"Job '{job.full_name}' no longer exists")
            build = Build(
                job_id=row.id,
                number=_next_build_number(session, row.id),
                status="QUEUED",
                triggered_by=cause.triggered_by.id if cause.triggered_by else None,
                slack_team_domain=cause.team_domain,
                slack_channel_name=cause.channel_name,
                slack_user_id=cause.slack_user_id,
                slack_user_name=cause.slack_user_name,
            )
            session.add(build)
            session.flush()
            return build.number
