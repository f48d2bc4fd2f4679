"""Linking a local account to a Slack user through Slack's OAuth 2.0 identity flow."""

from __future__ import annotations

import json
from dataclasses import dataclass
from urllib.parse import quote

import structlog
from slack_sdk import WebClient
from slack_sdk.errors import SlackApiError, SlackRequestError

from slack_build_trigger.config import TriggerConfig
from slack_build_trigger.identities import IdentityDirectory
from slack_build_trigger.redaction import redact, truncate

OAUTH_AUTHORIZE_URL = "https://slack.com/oauth/authorize"
LOG_PAYLOAD_LIMIT = 2000
REPLY_PAYLOAD_LIMIT = 10000


@dataclass(frozen=True)
class ConnectResult:
    """Plain-text message for the browser, or a URL to redirect it to."""

    message: str = ""
    redirect_url: str | None = None
    linked: bool = False


def build_authorize_url(client_id: str) -> str:
    return f"{OAUTH_AUTHORIZE_URL}?scope=identity.basic&client_id={quote(client_id, safe='')}"


class AccountConnector:
    """Drives both halves of the browser-side connect flow."""

    def __init__(
        self,
        *,
        config: TriggerConfig,
        directory: IdentityDirectory,
        client: WebClient | None = None,
    ) -> None:
        self._config = config
        self._directory = directory
        self._client = client or WebClient()

    def start(self, username: str | None) -> ConnectResult:
        if not username:
            return ConnectResult("You must log in to the build server first.")
        if not self._config.has_oauth_configured:
            return ConnectResult("The build server does not have the Slack OAuth client ID and secret configured.")
        return ConnectResult(redirect_url=build_authorize_url(self._config.client_id))

    def complete(self, username: str | None, *, code: str | None, error: str | None) -> ConnectResult:
        if not self._config.has_oauth_configured:
            return ConnectResult("The build server does not have the Slack OAuth client ID and secret configured.")

        identity = self._directory.get_identity(username) if username else None
        if identity is None:
            return ConnectResult("You must log in to the build server first.")

        log = structlog.get_logger().bind(username=identity.username)
        if error is not None:
            log.info("slack_oauth_declined", error=error)
            return ConnectResult("You cancelled the request to connect, or something went wrong.")
        if not code:
            log.info("slack_oauth_code_missing")
            return ConnectResult("Try again. Slack did not send an authorisation code.")

        client_secret = self._config.client_secret.get_secret_value()
        try:
            response = self._client.oauth_access(
                client_id=self._config.client_id,
                client_secret=client_secret,
                code=code,
            )
        except SlackApiError as exc:
            body = json.dumps(getattr(exc.response, "data", {}) or {})
            log.info(
                "slack_oauth_rejected",
                response=truncate(redact(body, [client_secret]), LOG_PAYLOAD_LIMIT),
            )
            return ConnectResult("Try again. Something went wrong while connecting to Slack.")
        except (SlackRequestError, OSError) as exc:
            message = redact(str(exc), [client_secret])
            log.info("slack_oauth_unreachable", error=truncate(message, LOG_PAYLOAD_LIMIT))
            return ConnectResult(
                "Try again. An error occurred while attempting to reach Slack: "
                + truncate(message, REPLY_PAYLOAD_LIMIT)
            )

        data = response.data if isinstance(response.data, dict) else {}
        team_id = (data.get("team") or {}).get("id")
        slack_user = data.get("user") or {}
        slack_user_id = slack_user.get("id")
        if not team_id or not slack_user_id:
            log.info(
                "slack_oauth_unexpected_payload",
                response=truncate(redact(json.dumps(data), [client_secret]), LOG_PAYLOAD_LIMIT),
            )
            return ConnectResult("Try again. Something went wrong while connecting to Slack.")

        self._directory.link_account(
            identity,
            team_id=team_id,
            slack_user_id=slack_user_id,
            slack_user_name=slack_user.get("name") or "",
        )
        return ConnectResult("Success! Your Slack account is now connected to the build server.", linked=True)
