"""Job registry access and the permission-aware job search."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Protocol, Sequence
from urllib.parse import quote

from sqlalchemy import select
from sqlalchemy.orm import selectinload

from slack_build_trigger.db import session_scope
from slack_build_trigger.identities import Principal
from slack_build_trigger.models import Job as JobRow


class Permission(str, Enum):
    READ = "read"
    BUILD = "build"


class Job(Protocol):
    """What the search needs to know about a job."""

    @property
    def name(self) -> str: ...

    @property
    def full_name(self) -> str: ...

    @property
    def url(self) -> str: ...

    def is_buildable(self) -> bool: ...

    def has_permission(self, principal: Principal, permission: Permission) -> bool: ...


class JobRegistry(Protocol):
    def all_jobs(self) -> Sequence[Job]: ...


def job_url(full_name: str) -> str:
    """Return the path of a job relative to the server root, one ``job/`` per folder level."""

    return "".join(f"job/{quote(part, safe='')}/" for part in full_name.split("/") if part)


@dataclass(frozen=True)
class RegisteredJob:
    """A job row detached from its session, with its permission grants."""

    id: int
    name: str
    full_name: str
    disabled: bool = False
    grants: frozenset[tuple[str, str]] = field(default_factory=frozenset)

    @property
    def url(self) -> str:
        return job_url(self.full_name)

    def is_buildable(self) -> bool:
        return not self.disabled

    def has_permission(self, principal: Principal, permission: Permission) -> bool:
        holders = principal.grantees()
        return any(grantee in holders and granted == permission.value for grantee, granted in self.grants)


class SqlJobRegistry:
    """Job registry backed by the ``jobs`` and ``job_grants`` tables."""

    def all_jobs(self) -> List[RegisteredJob]:
        with session_scope() as session:
            rows = session.scalars(
                select(JobRow).options(selectinload(JobRow.grants)).order_by(JobRow.id)
            ).all()
            return [
                RegisteredJob(
                    id=row.id,
                    name=row.name,
                    full_name=row.full_name,
                    disabled=row.disabled,
                    grants=frozenset((grant.grantee, grant.permission) for grant in row.grants),
                )
                for row in rows
            ]


class SearchStatus(str, Enum):
    FOUND = "found"
    NO_MATCH = "no_match"
    AMBIGUOUS = "ambiguous"
    NOT_BUILDABLE = "not_buildable"
    BUILD_NOT_PERMITTED = "build_not_permitted"


@dataclass(frozen=True)
class JobSearchResult:
    """Outcome of a job search; ``jobs`` holds the job(s) the status refers to."""

    status: SearchStatus
    jobs: tuple[Job, ...] = ()

    def __post_init__(self) -> None:
        count = len(self.jobs)
        if self.status is SearchStatus.NO_MATCH and count:
            raise ValueError("NO_MATCH cannot carry jobs")
        if self.status is SearchStatus.AMBIGUOUS and count < 2:
            raise ValueError("AMBIGUOUS requires at least two jobs")
        if self.status not in (SearchStatus.NO_MATCH, SearchStatus.AMBIGUOUS) and count != 1:
            raise ValueError(f"{self.status.name} requires exactly one job")

    @property
    def job(self) -> Job | None:
        return self.jobs[0] if len(self.jobs) == 1 else None

    @classmethod
    def found(cls, job: Job) -> "JobSearchResult":
        return cls(SearchStatus.FOUND, (job,))

    @classmethod
    def no_match(cls) -> "JobSearchResult":
        return cls(SearchStatus.NO_MATCH)

    @classmethod
    def ambiguous(cls, jobs: Sequence[Job]) -> "JobSearchResult":
        return cls(SearchStatus.AMBIGUOUS, tuple(jobs))

    @classmethod
    def not_buildable(cls, job: Job) -> "JobSearchResult":
        return cls(SearchStatus.NOT_BUILDABLE, (job,))

    @classmethod
    def build_not_permitted(cls, job: Job) -> "JobSearchResult":
        return cls(SearchStatus.BUILD_NOT_PERMITTED, (job,))


class JobFinder:
    """Finds the single job a slash command refers to, as seen by a principal."""

    def __init__(self, registry: JobRegistry) -> None:
        self._registry = registry

    def find_job(self, search_text: str, principal: Principal) -> JobSearchResult:
        jobs = self._find_matching_jobs(search_text, principal)
        if not jobs:
            return JobSearchResult.no_match()

        # Several jobs share the short name, e.g. in different folders
        if len(jobs) > 1:
            return JobSearchResult.ambiguous(jobs)

        job = jobs[0]
        if not job.is_buildable():
            return JobSearchResult.not_buildable(job)

        if not job.has_permission(principal, Permission.BUILD):
            return JobSearchResult.build_not_permitted(job)

        return JobSearchResult.found(job)

    def _find_matching_jobs(self, search_text: str, principal: Principal) -> List[Job]:
        # Unreadable jobs are dropped before matching so their existence never leaks
        return [
            job
            for job in self._registry.all_jobs()
            if job.has_permission(principal, Permission.READ)
            and search_text in (job.name, job.full_name)
        ]
