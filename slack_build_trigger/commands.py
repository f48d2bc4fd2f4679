"""The inbound slash-command value object."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict

from slack_build_trigger.query import parse_query_string

REQUIRED_FIELDS = ("team_domain", "channel_name", "user_id", "user_name", "text", "response_url")


class IncomingCommand(BaseModel):
    """A slash command exactly as Slack delivered it."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    raw_body: bytes
    timestamp: str | None = None
    signature: str | None = None

    ssl_check: str | None = None
    command: str | None = None
    team_domain: str | None = None
    channel_name: str | None = None
    user_id: str | None = None
    user_name: str | None = None
    text: str | None = None
    response_url: str | None = None

    @classmethod
    def from_wire(cls, body: bytes, *, timestamp: str | None, signature: str | None) -> "IncomingCommand":
        fields = parse_query_string(body)
        fields.update(raw_body=body, timestamp=timestamp, signature=signature)
        return cls.model_validate(fields)

    def missing_fields(self) -> list[str]:
        return [name for name in REQUIRED_FIELDS if getattr(self, name) is None]
