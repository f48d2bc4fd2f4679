"""The closed set of results a slash command can produce."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from slack_build_trigger.identities import Identity
from slack_build_trigger.jobs import Job


class Audience(str, Enum):
    CHANNEL = "channel"
    USER = "user"
    PLAIN = "plain"


class OutcomeKind(Enum):
    """Every pipeline result, paired with who may see the reply."""

    MALFORMED_REQUEST = ("malformed_request", Audience.USER)
    INVALID_SIGNATURE = ("invalid_signature", Audience.CHANNEL)
    HEALTH_OK = ("health_ok", Audience.PLAIN)
    UNKNOWN_COMMAND = ("unknown_command", Audience.CHANNEL)
    INCOMPLETE_REQUEST = ("incomplete_request", Audience.USER)
    OAUTH_NOT_CONFIGURED = ("oauth_not_configured", Audience.CHANNEL)
    ALREADY_CONNECTED = ("already_connected", Audience.USER)
    CONNECT_PROMPT = ("connect_prompt", Audience.USER)
    DISCONNECTED = ("disconnected", Audience.USER)
    HELP_TEXT = ("help_text", Audience.USER)
    NO_MATCH = ("no_match", Audience.USER)
    AMBIGUOUS = ("ambiguous", Audience.USER)
    NOT_BUILDABLE = ("not_buildable", Audience.CHANNEL)
    BUILD_NOT_PERMITTED = ("build_not_permitted", Audience.USER)
    BUILD_TRIGGERED = ("build_triggered", Audience.CHANNEL)
    INTERNAL_ERROR = ("internal_error", Audience.USER)

    def __init__(self, label: str, audience: Audience) -> None:
        self.label = label
        self.audience = audience


@dataclass(frozen=True)
class Outcome:
    """A pipeline result and the data its reply needs."""

    kind: OutcomeKind
    command: str | None = None
    search_text: str | None = None
    jobs: tuple[Job, ...] = ()
    identity: Identity | None = None
    connect_url: str | None = None

    @property
    def audience(self) -> Audience:
        return self.kind.audience

    @property
    def job(self) -> Job | None:
        return self.jobs[0] if len(self.jobs) == 1 else None
