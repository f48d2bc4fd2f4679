"""Utilities for validating Slack request signatures."""

from __future__ import annotations

import hmac
import time
from hashlib import sha256


SLACK_SIGNATURE_HEADER = "X-Slack-Signature"
SLACK_TIMESTAMP_HEADER = "X-Slack-Request-Timestamp"
VERSION = "v0"


class VerificationError(Exception):
    """Raised when an inbound webhook cannot be attributed to Slack."""


class MissingHeadersError(VerificationError):
    """Raised when the timestamp or signature header is absent."""


class SignatureMismatchError(VerificationError):
    """Raised when the request was not signed with the configured secret."""


class StaleRequestError(SignatureMismatchError):
    """Raised when the request timestamp falls outside the accepted window."""


def _to_bytes(value: str | bytes) -> bytes:
    if isinstance(value, bytes):
        return value
    return value.encode("utf-8")


def compute_signature(signing_secret: str, timestamp: str, body: str | bytes) -> str:
    """Return Slack-compatible signature for the provided payload."""

    basestring = f"{VERSION}:{timestamp}:".encode("utf-8") + _to_bytes(body)
    secret = signing_secret.encode("utf-8")
    digest = hmac.new(secret, basestring, sha256).hexdigest()
    return f"{VERSION}={digest}"


def verify_request(
    *,
    body: str | bytes,
    timestamp: str | None,
    signature: str | None,
    signing_secret: str | None,
    tolerance: int | None = None,
) -> None:
    """Check that *body* was signed by Slack, raising a :class:`VerificationError` if not.

    The timestamp is only checked against the clock when *tolerance* is given.
    """

    if not timestamp or not signature:
        raise MissingHeadersError("X-Slack-Request-Timestamp and X-Slack-Signature are required")

    if not signing_secret:
        raise SignatureMismatchError("No signing secret is configured")

    if tolerance is not None:
        try:
            request_ts = int(timestamp)
        except (TypeError, ValueError) as exc:
            raise StaleRequestError("Request timestamp is not an integer") from exc
        if abs(int(time.time()) - request_ts) > tolerance:
            raise StaleRequestError("Request timestamp is outside the accepted window")

    expected = compute_signature(signing_secret, timestamp, body)
    if not hmac.compare_digest(expected.encode("utf-8"), signature.encode("utf-8")):
        raise SignatureMismatchError("Request signature does not match")
