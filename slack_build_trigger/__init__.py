"""Slack Build Trigger package initialisation."""

from .config import AppSettings, GlobalConfiguration, TriggerConfig, get_settings  # noqa: F401
from .db import Base, get_engine, get_session_factory, session_scope  # noqa: F401
from .dispatcher import CommandDispatcher  # noqa: F401
from .logging_config import configure_logging  # noqa: F401
from .models import Build, Job, JobGrant, SlackAccount, User  # noqa: F401

__all__ = [
    "AppSettings",
    "GlobalConfiguration",
    "TriggerConfig",
    "get_settings",
    "Base",
    "get_engine",
    "get_session_factory",
    "session_scope",
    "CommandDispatcher",
    "configure_logging",
    "Build",
    "Job",
    "JobGrant",
    "SlackAccount",
    "User",
]
