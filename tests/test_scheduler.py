"""Tests for build causes and the build queue."""

from pathlib import Path
import sys
import threading

import pytest
from sqlalchemy import select
from structlog.testing import capture_logs

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from slack_build_trigger import config  # noqa: E402
from slack_build_trigger.causes import BuildTriggerCause, create_build_trigger_cause  # noqa: E402
from slack_build_trigger.db import create_schema, drop_schema, get_engine, get_session_factory, session_scope  # noqa: E402
from slack_build_trigger.identities import Identity  # noqa: E402
from slack_build_trigger.jobs import RegisteredJob  # noqa: E402
from slack_build_trigger.models import Build, Job, User  # noqa: E402
from slack_build_trigger import scheduler as scheduler_module  # noqa: E402
from slack_build_trigger.scheduler import SchedulingError, SqlBuildScheduler  # noqa: E402


@pytest.mark.parametrize("channel", ["directmessage", "privategroup"])
def test_pseudo_channels_are_dropped(channel):
    cause = create_build_trigger_cause(
        team_domain="acme",
        channel_name=channel,
        slack_user_id="U1",
        slack_user_name="alice.s",
        triggered_by=None,
    )

    assert cause.channel_name is None
    assert cause.short_description == "Started by user anonymous (alice.s) via Slack"


def test_cause_describes_channel_and_user():
    cause = create_build_trigger_cause(
        team_domain="acme",
        channel_name="dev",
        slack_user_id="U1",
        slack_user_name="alice.s",
        triggered_by=Identity(id=1, username="alice"),
    )

    assert cause.channel_name == "dev"
    assert cause.short_description == "Started by user alice (alice.s) via #dev on Slack"
    assert cause.slack_user_url == "https://acme.slack.com/team/U1"


@pytest.fixture
def database(monkeypatch, tmp_path):
    monkeypatch.setenv("ROOT_URL", "https://ci.example.com/")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path / 'builds.db'}")
    config.get_settings.cache_clear()
    get_engine.cache_clear()
    get_session_factory.cache_clear()
    create_schema()
    yield
    drop_schema()
    config.get_settings.cache_clear()
    get_engine.cache_clear()
    get_session_factory.cache_clear()


def test_enqueue_numbers_builds_per_job(database):
    with session_scope() as session:
        user = User(username="alice")
        session.add_all([user, Job(name="deploy", full_name="web/deploy"), Job(name="lint", full_name="lint")])
        session.flush()
        alice = Identity(id=user.id, username=user.username)

    scheduler = SqlBuildScheduler()
    deploy = RegisteredJob(id=1, name="deploy", full_name="web/deploy")
    lint = RegisteredJob(id=2, name="lint", full_name="lint")
    cause = BuildTriggerCause("acme", "dev", "U1", "alice.s", triggered_by=alice)

    with capture_logs() as logs:
        scheduler.enqueue(deploy, cause)
        scheduler.enqueue(deploy, cause)
        scheduler.enqueue(lint, cause)

    with session_scope() as session:
        rows = session.execute(
            select(Job.full_name, Build.number, Build.triggered_by, Build.slack_channel_name)
            .join(Build, Build.job_id == Job.id)
            .order_by(Build.id)
        ).all()

    assert [tuple(row) for row in rows] == [
        ("web/deploy", 1, alice.id, "dev"),
        ("web/deploy", 2, alice.id, "dev"),
        ("lint", 1, alice.id, "dev"),
    ]
    assert [entry["event"] for entry in logs] == ["build_queued"] * 3
    assert logs[0]["cause"] == "Started by user alice (alice.s) via #dev on Slack"


def test_enqueue_rejects_unknown_job(database):
    cause = BuildTriggerCause("acme", None, "U1", "alice.s")

    with pytest.raises(SchedulingError):
        SqlBuildScheduler().enqueue(RegisteredJob(id=9, name="gone", full_name="gone"), cause)


def test_concurrent_enqueues_get_distinct_numbers(database, monkeypatch):
    with session_scope() as session:
        session.add(Job(name="deploy", full_name="deploy"))

    # Both requests read the same highest build number before either inserts
    barrier = threading.Barrier(2)
    lock = threading.Lock()
    reads = []
    original = scheduler_module._next_build_number

    def next_number_after_both_read(session, job_id):
        number = original(session, job_id)
        with lock:
            reads.append(number)
            first_round = len(reads) <= 2
        if first_round:
            barrier.wait(timeout=10)
        return number

    monkeypatch.setattr(scheduler_module, "_next_build_number", next_number_after_both_read)

    job = RegisteredJob(id=1, name="deploy", full_name="deploy")
    errors = []

    def trigger(user_name):
        try:
            SqlBuildScheduler().enqueue(job, BuildTriggerCause("acme", "dev", user_name, user_name))
        except Exception as exc:  # pragma: no cover - reported by the assertion below
            errors.append(exc)

    with capture_logs() as logs:
        threads = [threading.Thread(target=trigger, args=(name,)) for name in ("U1", "U2")]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=30)

    assert errors == []
    assert reads[:2] == [1, 1]
    with session_scope() as session:
        numbers = sorted(session.scalars(select(Build.number)).all())
    assert numbers == [1, 2]
    assert [entry["event"] for entry in logs].count("build_number_conflict") == 1


def test_enqueue_gives_up_after_repeated_conflicts(database, monkeypatch):
    with session_scope() as session:
        session.add(Job(name="deploy", full_name="deploy"))
    cause = BuildTriggerCause("acme", "dev", "U1", "alice.s")
    job = RegisteredJob(id=1, name="deploy", full_name="deploy")
    SqlBuildScheduler().enqueue(job, cause)

    monkeypatch.setattr(scheduler_module, "_next_build_number", lambda session, job_id: 1)

    with pytest.raises(SchedulingError, match="after 5 attempts"):
        SqlBuildScheduler().enqueue(job, cause)
