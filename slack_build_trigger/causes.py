"""Attribution records for builds started from Slack."""

from __future__ import annotations

from dataclasses import dataclass

from slack_build_trigger.identities import Identity

# Slack reports these in place of a channel name for DMs and private groups.
PSEUDO_CHANNEL_NAMES = frozenset({"directmessage", "privategroup"})


@dataclass(frozen=True)
class BuildTriggerCause:
    """Who started a build from Slack, and from where."""

    team_domain: str
    channel_name: str | None
    slack_user_id: str
    slack_user_name: str
    triggered_by: Identity | None = None

    @property
    def slack_user_url(self) -> str:
        return f"https://{self.team_domain}.slack.com/team/{self.slack_user_id}"

    @property
    def short_description(self) -> str:
        user = self.triggered_by.username if self.triggered_by else "anonymous"
        if self.channel_name is None:
            return f"Started by user {user} ({self.slack_user_name}) via Slack"
        return f"Started by user {user} ({self.slack_user_name}) via #{self.channel_name} on Slack"


def create_build_trigger_cause(
    *,
    team_domain: str,
    channel_name: str,
    slack_user_id: str,
    slack_user_name: str,
    triggered_by: Identity | None,
) -> BuildTriggerCause:
    # A real channel named "directmessage" is indistinguishable here and loses its name too.
    channel = None if channel_name in PSEUDO_CHANNEL_NAMES else channel_name
    return BuildTriggerCause(
        team_domain=team_domain,
        channel_name=channel,
        slack_user_id=slack_user_id,
        slack_user_name=slack_user_name,
        triggered_by=triggered_by,
    )
