"""Utility script to reset the local SQLite database.

Usage:
    python scripts/reset_local_db.py [--seed]

Environment:
    Ensure DATABASE_URL and ROOT_URL are available in the current shell
    before running this script.

With ``--seed`` an ``admin`` account and a ``deploy`` job that any linked
Slack user may read and build are created.
"""

from __future__ import annotations

import sys

from slack_build_trigger.db import create_schema, drop_schema, session_scope
from slack_build_trigger.models import Job, JobGrant, User


def reset_database() -> None:
    drop_schema()
    create_schema()
    print("Local database reset.")


def seed_database() -> None:
    with session_scope() as session:
        session.add(User(username="admin", display_name="Administrator"))
        job = Job(name="deploy", full_name="deploy")
        job.grants = [
            JobGrant(grantee="authenticated", permission="read"),
            JobGrant(grantee="authenticated", permission="build"),
        ]
        session.add(job)
    print("Seeded admin user and deploy job.")


if __name__ == "__main__":
    reset_database()
    if "--seed" in sys.argv[1:]:
        seed_database()
