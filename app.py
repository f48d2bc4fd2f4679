"""Application entry point for the Slack Build Trigger service."""

from __future__ import annotations

from pathlib import Path
from uuid import uuid4

from flask import Flask, Response, jsonify, redirect, request
from slack_sdk import WebClient
from sqlalchemy import text
import structlog
from structlog.contextvars import bind_contextvars, unbind_contextvars

from slack_build_trigger.commands import IncomingCommand
from slack_build_trigger.config import AppSettings, GlobalConfiguration, get_settings
from slack_build_trigger.connect import AccountConnector
from slack_build_trigger.db import session_scope
from slack_build_trigger.dispatcher import CommandDispatcher
from slack_build_trigger.identities import (
    IdentityDirectory,
    LinkedAccountResolver,
    ResolverChain,
    SqlIdentityDirectory,
    UserResolver,
)
from slack_build_trigger.jobs import JobFinder, JobRegistry, SqlJobRegistry
from slack_build_trigger.logging_config import configure_logging
from slack_build_trigger.responses import ResponseFormatter, to_wire
from slack_build_trigger.scheduler import BuildScheduler, SqlBuildScheduler
from slack_build_trigger.security import SLACK_SIGNATURE_HEADER, SLACK_TIMESTAMP_HEADER

WEBHOOK_NAMESPACE = "slack-trigger"
CONNECT_NAMESPACE = "slack-trigger-connect"


def _register_error_handlers(flask_app: Flask) -> None:
    """Register a JSON error handler that attaches a trace identifier."""

    @flask_app.errorhandler(Exception)
    def handle_unexpected_error(error: Exception):  # type: ignore[override]
        trace_id = str(uuid4())
        flask_app.logger.exception(
            "Unhandled application error", extra={"trace_id": trace_id}, exc_info=error
        )
        response = jsonify({"error": "internal_server_error", "trace_id": trace_id})
        response.status_code = 500
        return response


def _build_resolver_chain(directory: IdentityDirectory, extra: list[UserResolver] | None) -> ResolverChain:
    chain = ResolverChain([LinkedAccountResolver(directory)])
    for resolver in extra or []:
        chain.register(resolver)
    return chain


def _plain_text(message: str, status: int = 200) -> Response:
    return Response(message, status=status, content_type="text/plain; charset=UTF-8")


_LOGGING_CONFIGURED = False


def _load_version() -> str:
    version_file = Path(__file__).resolve().parent / "VERSION"
    if version_file.exists():
        return version_file.read_text(encoding="utf-8").strip()
    return "unknown"


def create_app(
    *,
    configuration: GlobalConfiguration | None = None,
    directory: IdentityDirectory | None = None,
    registry: JobRegistry | None = None,
    scheduler: BuildScheduler | None = None,
    resolvers: list[UserResolver] | None = None,
    oauth_client: WebClient | None = None,
) -> Flask:
    """Create and configure the Flask application.

    Collaborators default to the SQLAlchemy-backed implementations; *resolvers*
    are appended after the built-in linked-account resolver.
    """

    global _LOGGING_CONFIGURED
    if not _LOGGING_CONFIGURED:
        configure_logging()
        _LOGGING_CONFIGURED = True

    settings: AppSettings = get_settings()
    if configuration is None:
        configuration = GlobalConfiguration.from_settings(settings)
        configuration.load()

    directory = directory or SqlIdentityDirectory()
    job_finder = JobFinder(registry or SqlJobRegistry())
    scheduler = scheduler or SqlBuildScheduler()
    resolver_chain = _build_resolver_chain(directory, resolvers)
    formatter = ResponseFormatter(root_url=settings.root_url, configure_url=settings.configure_url)

    flask_app = Flask(__name__)
    flask_app.config["APP_VERSION"] = _load_version()
    flask_app.logger.setLevel("INFO")
    flask_app.extensions["slack_build_trigger"] = configuration

    _register_error_handlers(flask_app)

    # Slack calls this server-to-server; Flask applies no CSRF checks to it.
    @flask_app.route(f"/{WEBHOOK_NAMESPACE}/build", methods=["POST"])
    def slack_build():
        trace_id = str(uuid4())
        bind_contextvars(trace_id=trace_id)
        try:
            command = IncomingCommand.from_wire(
                request.get_data(),
                timestamp=request.headers.get(SLACK_TIMESTAMP_HEADER),
                signature=request.headers.get(SLACK_SIGNATURE_HEADER),
            )
            dispatcher = CommandDispatcher(
                config=configuration.snapshot(),
                resolvers=resolver_chain,
                directory=directory,
                job_finder=job_finder,
                scheduler=scheduler,
                connect_url=settings.connect_url,
                request_tolerance=settings.request_tolerance,
            )
            outcome = dispatcher.dispatch(command)
            structlog.get_logger().info(
                "slack_command_handled", outcome=outcome.kind.label, audience=outcome.audience.value
            )
            body, content_type = to_wire(formatter.render(outcome))
            return Response(body, status=200, content_type=content_type)
        finally:
            unbind_contextvars("trace_id")

    @flask_app.route(f"/{CONNECT_NAMESPACE}/", methods=["GET"])
    def slack_connect():
        connector = AccountConnector(config=configuration.snapshot(), directory=directory, client=oauth_client)
        result = connector.start(request.remote_user)
        if result.redirect_url:
            return redirect(result.redirect_url)
        return _plain_text(result.message)

    @flask_app.route(f"/{CONNECT_NAMESPACE}/oauth2_response", methods=["GET"])
    def slack_oauth2_response():
        connector = AccountConnector(config=configuration.snapshot(), directory=directory, client=oauth_client)
        result = connector.complete(
            request.remote_user,
            code=request.args.get("code"),
            error=request.args.get("error"),
        )
        return _plain_text(result.message)

    @flask_app.route("/healthz", methods=["GET"])
    def healthz():
        health: dict[str, object] = {"ok": True}
        health["version"] = flask_app.config.get("APP_VERSION", "unknown")
        try:
            get_settings()
            health["config"] = "valid"
        except Exception as exc:  # pragma: no cover - settings are validated at start-up
            health["config"] = "invalid"
            health["config_error"] = str(exc)
            health["ok"] = False

        snapshot = configuration.snapshot()
        health["signing_secret"] = "set" if snapshot.signing_secret else "missing"
        health["oauth"] = "configured" if snapshot.has_oauth_configured else "missing"

        try:
            with session_scope() as session:
                session.execute(text("SELECT 1"))
            health["db"] = "up"
        except Exception as exc:
            health["db"] = "down"
            health["db_error"] = str(exc)
            health["ok"] = False

        status = 200 if health["ok"] else 503
        return jsonify(health), status

    return flask_app


if __name__ == "__main__":  # pragma: no cover - manual execution helper
    application = create_app()
    application.run(host="0.0.0.0", port=3000, debug=True)
