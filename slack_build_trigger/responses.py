"""Rendering pipeline outcomes into Slack slash-command replies."""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict

from slack_build_trigger.jobs import Job
from slack_build_trigger.outcomes import Audience, Outcome, OutcomeKind

JSON_CONTENT_TYPE = "application/json; charset=UTF-8"
TEXT_CONTENT_TYPE = "text/plain; charset=UTF-8"


class Visibility(str, Enum):
    CHANNEL = "in_channel"
    USER_PRIVATE = "ephemeral"
    PLAIN = "plain"


_VISIBILITY_BY_AUDIENCE = {
    Audience.CHANNEL: Visibility.CHANNEL,
    Audience.USER: Visibility.USER_PRIVATE,
    Audience.PLAIN: Visibility.PLAIN,
}


@dataclass(frozen=True)
class Reply:
    visibility: Visibility
    text: str


def to_wire(reply: Reply) -> tuple[str, str]:
    """Return the response body and content type for *reply*."""

    if reply.visibility is Visibility.PLAIN:
        return reply.text, TEXT_CONTENT_TYPE
    payload = {"response_type": reply.visibility.value, "text": reply.text}
    return json.dumps(payload, ensure_ascii=False), JSON_CONTENT_TYPE


_Template = Callable[["ResponseFormatter", Outcome], str]
_TEMPLATES: Dict[OutcomeKind, _Template] = {}


def _template(kind: OutcomeKind) -> Callable[[_Template], _Template]:
    def register(func: _Template) -> _Template:
        _TEMPLATES[kind] = func
        return func

    return register


class ResponseFormatter:
    """Turns an :class:`Outcome` into a :class:`Reply` addressed to the right audience."""

    def __init__(self, *, root_url: str, configure_url: str) -> None:
        self.root_url = root_url
        self.configure_url = configure_url

    def render(self, outcome: Outcome) -> Reply:
        text = _TEMPLATES[outcome.kind](self, outcome)
        return Reply(visibility=_VISIBILITY_BY_AUDIENCE[outcome.audience], text=text)

    def job_link(self, job: Job) -> str:
        """Link to the job in Slack markup, labelled with its full name."""

        return f"<{self.root_url}{job.url}|{job.full_name}>"

    def connect_hint(self, outcome: Outcome) -> str:
        if outcome.identity is not None:
            return ""
        return f"\n:lock: Use `{outcome.command} connect` to connect your Slack account to the build server"

    @_template(OutcomeKind.MALFORMED_REQUEST)
    def _malformed_request(self, outcome: Outcome) -> str:
        return ":face_with_raised_eyebrow: The build server received an invalid message from Slack. Try again."

    @_template(OutcomeKind.INVALID_SIGNATURE)
    def _invalid_signature(self, outcome: Outcome) -> str:
        return (
            ":fire: The build server could not verify the message from Slack. "
            f"Is the correct signing secret configured? {self.configure_url}"
        )

    @_template(OutcomeKind.HEALTH_OK)
    def _health_ok(self, outcome: Outcome) -> str:
        return ":+1: Hello, ssl_check!"

    @_template(OutcomeKind.UNKNOWN_COMMAND)
    def _unknown_command(self, outcome: Outcome) -> str:
        return f":fire: Unknown command: {outcome.command}"

    @_template(OutcomeKind.INCOMPLETE_REQUEST)
    def _incomplete_request(self, outcome: Outcome) -> str:
        return ":fire: Slack did not send the expected data, so no build was started. Try again? :shrug:"

    @_template(OutcomeKind.OAUTH_NOT_CONFIGURED)
    def _oauth_not_configured(self, outcome: Outcome) -> str:
        return f":fire: The Slack OAuth client ID and secret have not been configured: {self.configure_url}"

    @_template(OutcomeKind.ALREADY_CONNECTED)
    def _already_connected(self, outcome: Outcome) -> str:
        username = outcome.identity.username if outcome.identity else "an unknown user"
        return f'You\'re already connected as "{username}" on the build server. :ok_hand:'

    @_template(OutcomeKind.CONNECT_PROMPT)
    def _connect_prompt(self, outcome: Outcome) -> str:
        return (
            ":point_up: Connecting your Slack account lets you trigger builds of the jobs you have "
            f"permission for. Click here to connect: {outcome.connect_url}"
        )

    @_template(OutcomeKind.DISCONNECTED)
    def _disconnected(self, outcome: Outcome) -> str:
        return ":raised_hands: Your Slack account has been disconnected from the build server."

    @_template(OutcomeKind.HELP_TEXT)
    def _help_text(self, outcome: Outcome) -> str:
        command = outcome.command
        return "\n".join(
            [
                f":wave: You can use this command to trigger builds on <{self.root_url}|the build server>:",
                ':small_blue_diamond: Start a build of "my job":',
                f"> `{command} my job`",
                ':small_blue_diamond: Start a build of the "deploy" job in the "Web Site" folder:',
                f"> `{command} Web Site/deploy`",
                ":small_orange_diamond: Parameterised jobs are built with their default values; "
                "parameter values cannot be given here yet.",
                ":lock: Connect your Slack account, so you can build the jobs you have access to:",
                f"> `{command} connect`",
                ":unlock: Disconnect your Slack account:",
                f"> `{command} disconnect`",
            ]
        )

    @_template(OutcomeKind.NO_MATCH)
    def _no_match(self, outcome: Outcome) -> str:
        return (
            f':warning: Could not find a job called "{outcome.search_text}". '
            "Do you have permission to view it?" + self.connect_hint(outcome)
        )

    @_template(OutcomeKind.AMBIGUOUS)
    def _ambiguous(self, outcome: Outcome) -> str:
        lines = [f':thinking_face: There are multiple jobs called "{outcome.search_text}"; try again with the full name:']
        lines.extend(f":small_blue_diamond: {self.job_link(job)}" for job in outcome.jobs)
        return "\n".join(lines)

    @_template(OutcomeKind.NOT_BUILDABLE)
    def _not_buildable(self, outcome: Outcome) -> str:
        return f':no_entry_sign: The job "{self.job_link(outcome.jobs[0])}" is currently disabled'

    @_template(OutcomeKind.BUILD_NOT_PERMITTED)
    def _build_not_permitted(self, outcome: Outcome) -> str:
        return (
            f':no_entry: You don\'t have permission to build "{self.job_link(outcome.jobs[0])}"'
            + self.connect_hint(outcome)
        )

    @_template(OutcomeKind.BUILD_TRIGGERED)
    def _build_triggered(self, outcome: Outcome) -> str:
        return f':bulb: Successfully triggered a build of "{self.job_link(outcome.jobs[0])}"'

    @_template(OutcomeKind.INTERNAL_ERROR)
    def _internal_error(self, outcome: Outcome) -> str:
        return ":fire: Something went wrong while handling your command. Try again later."


_UNRENDERED = set(OutcomeKind) - set(_TEMPLATES)
if _UNRENDERED:  # pragma: no cover - guards against adding a kind without a template
    raise RuntimeError(f"No reply template for: {', '.join(sorted(kind.name for kind in _UNRENDERED))}")
