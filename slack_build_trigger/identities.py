"""Local identities, Slack account linkage, and scoped impersonation."""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Callable, Iterable, Iterator, List, Protocol, Sequence, TypeVar

import structlog
from sqlalchemy import select
from structlog.contextvars import bind_contextvars, get_contextvars, unbind_contextvars

from slack_build_trigger.db import session_scope
from slack_build_trigger.models import SlackAccount, User

ANONYMOUS = "anonymous"
AUTHENTICATED = "authenticated"

T = TypeVar("T")


@dataclass(frozen=True)
class Identity:
    """Handle to a local account."""

    id: int
    username: str


@dataclass(frozen=True)
class AccountLink:
    """Stored association between a local account and a Slack user."""

    team_id: str
    slack_user_id: str
    slack_user_name: str
    is_active: bool


class IdentityDirectory(Protocol):
    def list_identities(self) -> Sequence[Identity]: ...

    def get_identity(self, username: str) -> Identity | None: ...

    def get_link(self, identity: Identity) -> AccountLink | None: ...

    def find_linked_identity(self, slack_user_id: str) -> Identity | None: ...

    def link_account(
        self, identity: Identity, *, team_id: str, slack_user_id: str, slack_user_name: str
    ) -> AccountLink: ...

    def deactivate_link(self, identity: Identity) -> None: ...


class SqlIdentityDirectory:
    """Identity directory backed by the ``users`` and ``slack_accounts`` tables."""

    def list_identities(self) -> List[Identity]:
        with session_scope() as session:
            rows = session.scalars(select(User).order_by(User.id)).all()
            return [Identity(id=row.id, username=row.username) for row in rows]

    def get_identity(self, username: str) -> Identity | None:
        with session_scope() as session:
            row = session.scalars(select(User).where(User.username == username)).one_or_none()
            if row is None:
                return None
            return Identity(id=row.id, username=row.username)

    def get_link(self, identity: Identity) -> AccountLink | None:
        with session_scope() as session:
            row = session.scalars(
                select(SlackAccount).where(SlackAccount.user_id == identity.id)
            ).one_or_none()
            if row is None:
                return None
            return AccountLink(
                team_id=row.team_id,
                slack_user_id=row.slack_user_id,
                slack_user_name=row.slack_user_name,
                is_active=row.is_active,
            )

    def find_linked_identity(self, slack_user_id: str) -> Identity | None:
        """Return the lowest-id account with an active link to *slack_user_id*."""

        with session_scope() as session:
            row = session.execute(
                select(User.id, User.username)
                .join(SlackAccount, SlackAccount.user_id == User.id)
                .where(SlackAccount.slack_user_id == slack_user_id, SlackAccount.is_active.is_(True))
                .order_by(User.id)
                .limit(1)
            ).first()
            if row is None:
                return None
            return Identity(id=row.id, username=row.username)

    def link_account(
        self, identity: Identity, *, team_id: str, slack_user_id: str, slack_user_name: str
    ) -> AccountLink:
        with session_scope() as session:
            row = session.scalars(
                select(SlackAccount).where(SlackAccount.user_id == identity.id)
            ).one_or_none()
            if row is None:
                row = SlackAccount(user_id=identity.id)
                session.add(row)
            row.team_id = team_id
            row.slack_user_id = slack_user_id
            row.slack_user_name = slack_user_name
            row.is_active = True
            row.linked_at = datetime.now(UTC)
        structlog.get_logger().info(
            "slack_account_linked", username=identity.username, team_id=team_id, slack_user_id=slack_user_id
        )
        return AccountLink(
            team_id=team_id, slack_user_id=slack_user_id, slack_user_name=slack_user_name, is_active=True
        )

    def deactivate_link(self, identity: Identity) -> None:
        # Linkage rows are kept for auditing; deactivating clears the Slack side.
        with session_scope() as session:
            row = session.scalars(
                select(SlackAccount).where(SlackAccount.user_id == identity.id)
            ).one_or_none()
            if row is None or not row.is_active:
                return
            row.team_id = ""
            row.slack_user_id = ""
            row.slack_user_name = ""
            row.is_active = False
        structlog.get_logger().info("slack_account_unlinked", username=identity.username)


class UserResolver(Protocol):
    """Strategy mapping a Slack user to a local identity, if it can."""

    def resolve_user(self, slack_user_id: str, slack_user_name: str) -> Identity | None: ...


class LinkedAccountResolver:
    """Resolves Slack users who linked their account through the OAuth 2.0 flow."""

    def __init__(self, directory: IdentityDirectory) -> None:
        self._directory = directory

    def resolve_user(self, slack_user_id: str, slack_user_name: str) -> Identity | None:
        # TODO: match on team_id once workspaces are scoped per deployment
        if not slack_user_id:
            return None
        return self._directory.find_linked_identity(slack_user_id)


class ResolverChain:
    """Ordered registry of :class:`UserResolver` strategies."""

    def __init__(self, resolvers: Iterable[UserResolver] = ()) -> None:
        self._resolvers: List[UserResolver] = list(resolvers)

    def register(self, resolver: UserResolver) -> None:
        self._resolvers.append(resolver)

    def resolve(self, slack_user_id: str, slack_user_name: str) -> Identity | None:
        """Ask each strategy in turn; the first identity returned wins."""

        for resolver in self._resolvers:
            identity = resolver.resolve_user(slack_user_id, slack_user_name)
            if identity is not None:
                return identity
        return None


class ImpersonationError(Exception):
    """Raised when a principal is used outside the scope that created it."""


class Principal:
    """The privilege set that permission checks run under."""

    def __init__(self, identity: Identity | None) -> None:
        self._identity = identity
        self._active = True

    @property
    def identity(self) -> Identity | None:
        return self._identity

    @property
    def is_anonymous(self) -> bool:
        return self._identity is None

    @property
    def name(self) -> str:
        return ANONYMOUS if self._identity is None else self._identity.username

    @property
    def active(self) -> bool:
        return self._active

    def revoke(self) -> None:
        self._active = False

    def grantees(self) -> frozenset[str]:
        """Return the grant names this principal holds, for use in permission checks."""

        if not self._active:
            raise ImpersonationError(f"Privileges of '{self.name}' were used after their scope ended")
        if self._identity is None:
            return frozenset({ANONYMOUS})
        return frozenset({ANONYMOUS, AUTHENTICATED, self._identity.username})

    def __repr__(self) -> str:
        return f"Principal({self.name!r}, active={self._active})"


@contextmanager
def impersonate(identity: Identity | None) -> Iterator[Principal]:
    """Run the enclosed block with *identity*'s privileges, or anonymous ones for ``None``."""

    principal = Principal(identity)
    previous = get_contextvars().get("acting_as")
    bind_contextvars(acting_as=principal.name)
    try:
        yield principal
    finally:
        principal.revoke()
        if previous is None:
            unbind_contextvars("acting_as")
        else:
            bind_contextvars(acting_as=previous)


def run_as(identity: Identity | None, func: Callable[..., T], /, *args: Any, **kwargs: Any) -> T:
    """Call ``func(principal, *args, **kwargs)`` inside :func:`impersonate`."""

    with impersonate(identity) as principal:
        return func(principal, *args, **kwargs)
