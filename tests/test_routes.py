import pytest

import app
from notifications.config import NotifierSettings
from notifications.runtime import build_runtime
from notifications.scheduler import CycleLockUnavailable, LocalCycleLock

from conftest import FakeDispatcher


@pytest.fixture
def runtime(monkeypatch, session_factory):
    wired = build_runtime(NotifierSettings(), session_factory=session_factory, dispatcher=FakeDispatcher())
    monkeypatch.setattr(app, "get_runtime", lambda: wired)
    return wired


def test_health():
    with app.app.test_client() as client:
        response = client.get("/api/health")
        assert response.status_code == 200
        assert response.get_json()["status"] == "ok"


def test_welcome_requires_fields(runtime):
    with app.app.test_client() as client:
        response = client.post("/api/email/welcome", json={"userEmail": "a@example.com"})
        assert response.status_code == 400
        assert "Missing required fields" in response.get_json()["error"]
    assert runtime.dispatcher.calls == []


def test_welcome_sends_and_logs(runtime):
    with app.app.test_client() as client:
        response = client.post(
            "/api/email/welcome",
            json={"userEmail": "nora@example.com", "userName": "Nora", "userId": "u-nora"},
        )
        assert response.status_code == 200
        assert response.get_json()["success"] is True
    assert runtime.dispatcher.recipients() == ["nora@example.com"]


def test_welcome_failure_returns_500(monkeypatch, session_factory):
    wired = build_runtime(
        NotifierSettings(),
        session_factory=session_factory,
        dispatcher=FakeDispatcher(fail_for={"nora@example.com"}),
    )
    monkeypatch.setattr(app, "get_runtime", lambda: wired)

    with app.app.test_client() as client:
        response = client.post(
            "/api/email/welcome",
            json={"userEmail": "nora@example.com", "userName": "Nora", "userId": "u-nora"},
        )
        assert response.status_code == 500
        assert response.get_json()["details"] == "HTTP 500: upstream error"


def test_check_inactivity_runs_cycle(runtime, add_student):
    add_student("u-carol", "Carol")

    with app.app.test_client() as client:
        response = client.post("/api/email/check-inactivity")
        assert response.status_code == 200
        body = response.get_json()
        assert body["report"]["usersScanned"] == 1
        assert body["report"]["notificationsSkipped"] == 1


def test_check_inactivity_conflicts_with_running_cycle(runtime):
    # hold the scheduler lock as if a beat tick were mid-cycle
    lock = runtime.scheduler._lock
    assert lock.acquire(blocking=False)
    try:
        with app.app.test_client() as client:
            response = client.post("/api/email/check-inactivity")
            assert response.status_code == 409
    finally:
        lock.release()


def test_check_inactivity_after_shutdown(runtime):
    runtime.scheduler.shutdown()

    with app.app.test_client() as client:
        response = client.post("/api/email/check-inactivity")
        assert response.status_code == 503


def test_welcome_returns_200_when_log_write_fails(runtime, monkeypatch):
    def broken_append(entry):
        raise TimeoutError("log write timed out")

    monkeypatch.setattr(runtime.log, "append", broken_append)

    with app.app.test_client() as client:
        response = client.post(
            "/api/email/welcome",
            json={"userEmail": "nora@example.com", "userName": "Nora", "userId": "u-nora"},
        )
        assert response.status_code == 200
    assert runtime.dispatcher.recipients() == ["nora@example.com"]


def test_check_inactivity_refused_while_worker_holds_cycle_lock(monkeypatch, session_factory, add_student):
    add_student("u-carol", "Carol")
    shared = LocalCycleLock()
    web = build_runtime(
        NotifierSettings(), session_factory=session_factory, dispatcher=FakeDispatcher(), cycle_lock=shared
    )
    monkeypatch.setattr(app, "get_runtime", lambda: web)

    # the worker process is mid-cycle on a beat tick
    assert shared.acquire()
    try:
        with app.app.test_client() as client:
            response = client.post("/api/email/check-inactivity")
            assert response.status_code == 409
    finally:
        shared.release()
    assert web.dispatcher.calls == []


def test_check_inactivity_when_cycle_lock_unreachable(monkeypatch, session_factory):
    class UnreachableLock:
        def acquire(self):
            raise CycleLockUnavailable("Connection refused")

        def release(self):
            raise AssertionError("never acquired")

    web = build_runtime(
        NotifierSettings(), session_factory=session_factory, dispatcher=FakeDispatcher(), cycle_lock=UnreachableLock()
    )
    monkeypatch.setattr(app, "get_runtime", lambda: web)

    with app.app.test_client() as client:
        response = client.post("/api/email/check-inactivity")
        assert response.status_code == 503
