"""Sequencing of verification, routing, and job builds for slash commands."""

from __future__ import annotations

import structlog

from slack_build_trigger.causes import create_build_trigger_cause
from slack_build_trigger.commands import IncomingCommand
from slack_build_trigger.config import TriggerConfig
from slack_build_trigger.identities import IdentityDirectory, ResolverChain, impersonate
from slack_build_trigger.jobs import JobFinder, SearchStatus
from slack_build_trigger.outcomes import Outcome, OutcomeKind
from slack_build_trigger.redaction import redact, truncate
from slack_build_trigger.scheduler import BuildScheduler
from slack_build_trigger.security import MissingHeadersError, VerificationError, verify_request

_SEARCH_FAILURES = {
    SearchStatus.NO_MATCH: OutcomeKind.NO_MATCH,
    SearchStatus.AMBIGUOUS: OutcomeKind.AMBIGUOUS,
    SearchStatus.NOT_BUILDABLE: OutcomeKind.NOT_BUILDABLE,
    SearchStatus.BUILD_NOT_PERMITTED: OutcomeKind.BUILD_NOT_PERMITTED,
}


class CommandDispatcher:
    """Runs one slash command through each gate in turn; the first failing gate decides the outcome."""

    def __init__(
        self,
        *,
        config: TriggerConfig,
        resolvers: ResolverChain,
        directory: IdentityDirectory,
        job_finder: JobFinder,
        scheduler: BuildScheduler,
        connect_url: str,
        request_tolerance: int | None = None,
    ) -> None:
        self._config = config
        self._resolvers = resolvers
        self._directory = directory
        self._job_finder = job_finder
        self._scheduler = scheduler
        self._connect_url = connect_url
        self._request_tolerance = request_tolerance

    def _secrets(self) -> list[str | None]:
        return [
            self._config.signing_secret.get_secret_value() if self._config.signing_secret else None,
            self._config.client_secret.get_secret_value() if self._config.client_secret else None,
        ]

    def dispatch(self, request: IncomingCommand) -> Outcome:
        log = structlog.get_logger().bind(command=request.command, slack_user_id=request.user_id)

        signing_secret = self._config.signing_secret
        try:
            verify_request(
                body=request.raw_body,
                timestamp=request.timestamp,
                signature=request.signature,
                signing_secret=signing_secret.get_secret_value() if signing_secret else None,
                tolerance=self._request_tolerance,
            )
        except MissingHeadersError:
            log.warning("slack_webhook_missing_headers")
            return Outcome(OutcomeKind.MALFORMED_REQUEST)
        except VerificationError as exc:
            log.info(
                "slack_webhook_invalid_signature",
                reason=str(exc),
                signing_secret_configured=signing_secret is not None,
            )
            return Outcome(OutcomeKind.INVALID_SIGNATURE)

        # Slack probes the endpoint with ssl_check when the command is configured
        if request.ssl_check == "1":
            log.debug("slack_ssl_check")
            return Outcome(OutcomeKind.HEALTH_OK)

        command = request.command
        if command is None or not command.startswith("/"):
            log.info("slack_webhook_unknown_command")
            return Outcome(OutcomeKind.UNKNOWN_COMMAND, command=command)

        missing = request.missing_fields()
        if missing:
            log.warning("slack_webhook_incomplete", missing=missing)
            return Outcome(OutcomeKind.INCOMPLETE_REQUEST, command=command)

        try:
            return self._route(request, command)
        except Exception as exc:
            log.error(
                "slack_command_failed",
                error_type=type(exc).__name__,
                error=truncate(redact(str(exc), self._secrets()), 2000),
            )
            return Outcome(OutcomeKind.INTERNAL_ERROR, command=command)

    def _route(self, request: IncomingCommand, command: str) -> Outcome:
        text = request.text.strip()
        if text == "connect":
            return self._connect(request, command)
        if text == "disconnect":
            return self._disconnect(request, command)
        if text in ("", "help"):
            return Outcome(OutcomeKind.HELP_TEXT, command=command)
        return self._build(request, command, text)

    def _connect(self, request: IncomingCommand, command: str) -> Outcome:
        if not self._config.has_oauth_configured:
            return Outcome(OutcomeKind.OAUTH_NOT_CONFIGURED, command=command)

        identity = self._resolvers.resolve(request.user_id, request.user_name)
        if identity is not None:
            return Outcome(OutcomeKind.ALREADY_CONNECTED, command=command, identity=identity)

        return Outcome(OutcomeKind.CONNECT_PROMPT, command=command, connect_url=self._connect_url)

    def _disconnect(self, request: IncomingCommand, command: str) -> Outcome:
        identity = self._resolvers.resolve(request.user_id, request.user_name)
        if identity is not None:
            self._directory.deactivate_link(identity)
        return Outcome(OutcomeKind.DISCONNECTED, command=command, identity=identity)

    def _build(self, request: IncomingCommand, command: str, search_text: str) -> Outcome:
        log = structlog.get_logger().bind(search_text=search_text, slack_user_id=request.user_id)
        identity = self._resolvers.resolve(request.user_id, request.user_name)

        with impersonate(identity) as principal:
            result = self._job_finder.find_job(search_text, principal)
            if result.status is SearchStatus.FOUND:
                cause = create_build_trigger_cause(
                    team_domain=request.team_domain,
                    channel_name=request.channel_name,
                    slack_user_id=request.user_id,
                    slack_user_name=request.user_name,
                    triggered_by=identity,
                )
                self._scheduler.enqueue(result.job, cause)

        if result.status is not SearchStatus.FOUND:
            log.info("job_search_failed", status=result.status.value, matches=len(result.jobs))
            return Outcome(
                _SEARCH_FAILURES[result.status],
                command=command,
                search_text=search_text,
                jobs=result.jobs,
                identity=identity,
            )

        log.info("job_build_triggered", job=result.job.full_name)
        return Outcome(
            OutcomeKind.BUILD_TRIGGERED,
            command=command,
            search_text=search_text,
            jobs=result.jobs,
            identity=identity,
        )
