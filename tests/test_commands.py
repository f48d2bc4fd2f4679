"""Tests for building IncomingCommand values from Slack requests."""

from pathlib import Path
import sys

import pytest
from pydantic import ValidationError

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from slack_build_trigger.commands import IncomingCommand  # noqa: E402


def test_from_wire_extracts_known_fields():
    body = (
        b"token=abc&team_domain=example&channel_name=dev&user_id=U1&user_name=jo"
        b"&command=%2Fbuild&text=Web+Site%2Fdeploy&response_url=https%3A%2F%2Fhooks.slack.com%2Fx"
    )

    command = IncomingCommand.from_wire(body, timestamp="123", signature="v0=abc")

    assert command.raw_body == body
    assert command.timestamp == "123"
    assert command.command == "/build"
    assert command.text == "Web Site/deploy"
    assert command.response_url == "https://hooks.slack.com/x"
    assert command.ssl_check is None
    assert command.missing_fields() == []


def test_missing_fields_are_reported_in_order():
    command = IncomingCommand.from_wire(b"command=%2Fbuild&user_id=U1", timestamp=None, signature=None)

    assert command.missing_fields() == ["team_domain", "channel_name", "user_name", "text", "response_url"]


def test_body_cannot_override_headers():
    command = IncomingCommand.from_wire(b"signature=forged&timestamp=1", timestamp=None, signature=None)

    assert command.signature is None
    assert command.timestamp is None


def test_commands_are_immutable():
    command = IncomingCommand.from_wire(b"text=deploy", timestamp="1", signature="v0=x")

    with pytest.raises(ValidationError):
        command.text = "other"
