"""Shared test fixtures."""
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from notifications.config import ThresholdConfig
from notifications.models import DispatchResult, NotificationLogEntry
from notifications.service import CampaignRunner
from notifications.store import Base, ProfileModel, SqlActivityRepository, SqlNotificationLog
from notifications.templates import TemplateRenderer

NOW = datetime(2024, 3, 20, 9, 0, tzinfo=timezone.utc)


class FakeDispatcher:
    """Records every send; per-address failures are configurable."""

    def __init__(self, fail_for=(), raise_for=()):
        self.fail_for = set(fail_for)
        self.raise_for = set(raise_for)
        self.calls = []

    def send(self, recipient_email, message):
        self.calls.append((recipient_email, message))
        if recipient_email in self.raise_for:
            raise TimeoutError("dispatch timed out")
        if recipient_email in self.fail_for:
            return DispatchResult(False, "HTTP 500: upstream error")
        return DispatchResult(True)

    def recipients(self):
        return [email for email, _ in self.calls]


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False, future=True)


@pytest.fixture
def add_student(session_factory):
    def _add(user_id, name, days_ago=None, last_login=None, role="student"):
        if last_login is None and days_ago is not None:
            last_login = (NOW - timedelta(days=days_ago)).isoformat()
        with session_factory.begin() as session:
            session.add(
                ProfileModel(
                    id=user_id,
                    email=f"{name.lower()}@example.com",
                    full_name=name,
                    role=role,
                    last_login=last_login,
                )
            )

    return _add


@pytest.fixture
def notification_log(session_factory):
    return SqlNotificationLog(session_factory)


@pytest.fixture
def log_sent(notification_log):
    def _log(user_id, category, hours_ago, outcome="sent"):
        notification_log.append(
            NotificationLogEntry(
                user_id=user_id,
                category=category,
                sent_at=NOW - timedelta(hours=hours_ago),
                outcome=outcome,
                failure_detail="boom" if outcome == "failed" else None,
            )
        )

    return _log


@pytest.fixture
def dispatcher():
    return FakeDispatcher()


@pytest.fixture
def make_runner(session_factory, notification_log):
    def _make(dispatcher, page_size=500, thresholds=(3, 7, 14)):
        return CampaignRunner(
            repository=SqlActivityRepository(session_factory, page_size=page_size),
            log=notification_log,
            dispatcher=dispatcher,
            renderer=TemplateRenderer("https://skillup.example"),
            thresholds=ThresholdConfig(tuple(thresholds)),
            clock=lambda: NOW,
        )

    return _make
