from contextlib import contextmanager
from datetime import datetime

import pytest

from niena.core.errors import NotFoundError
from niena.services import notification_service


SENT = datetime(2024, 6, 1, 9, 0)


class FakeResult:
    def __init__(self, rows, rowcount=0):
        self.rows = rows
        self.rowcount = rowcount

    def mappings(self):
        return self

    def fetchone(self):
        return self.rows[0] if self.rows else None

    def fetchall(self):
        return self.rows


class FakeSession:
    def __init__(self, results):
        self.results = list(results)
        self.statements = []

    def execute(self, statement, params=None):
        self.statements.append((" ".join(str(statement).split()), params))
        return self.results.pop(0) if self.results else FakeResult([])


@pytest.fixture
def session(monkeypatch):
    def install(*results):
        fake = FakeSession(results)

        @contextmanager
        def fake_db_session():
            yield fake

        monkeypatch.setattr(notification_service, "get_db_session", fake_db_session)
        return fake
    return install


def test_latest_carries_read_state(session):
    fake = session(FakeResult([
        {"announcement_id": 2, "title": "New feature", "content": "Cover letters", "sent_at": SENT,
         "read_at": None},
        {"announcement_id": 1, "title": "Welcome", "content": "Hello", "sent_at": SENT,
         "read_at": datetime(2024, 6, 2)},
    ]))

    latest = notification_service.get_latest(42)

    assert [(n["id"], n["isRead"]) for n in latest] == [(2, False), (1, True)]
    assert latest[1]["readAt"] == datetime(2024, 6, 2)
    sql, params = fake.statements[0]
    assert "ORDER BY a.sent_at DESC" in sql
    assert ":uid = ANY(a.target_user_ids)" in sql
    assert params == {"uid": 42, "limit": notification_service.DEFAULT_LIMIT}


def test_latest_limit_is_clamped(session):
    fake = session(FakeResult([]), FakeResult([]))

    notification_service.get_latest(42, limit=500)
    notification_service.get_latest(42, limit=0)

    assert [params["limit"] for _, params in fake.statements] == [notification_service.MAX_LIMIT, 1]


def test_unread_count_only_counts_since_signup(session):
    fake = session(FakeResult([(4,)]))

    assert notification_service.get_unread_count(42) == 4
    sql, _ = fake.statements[0]
    assert "a.sent_at >= u.created_at" in sql
    assert "NOT EXISTS" in sql


def test_unread_count_without_row(session):
    session(FakeResult([]))
    assert notification_service.get_unread_count(42) == 0


def test_mark_as_read_upserts(session):
    fake = session(FakeResult([(1,)]), FakeResult([]))

    notification_service.mark_as_read(42, 7)

    sql, params = fake.statements[1]
    assert sql.startswith("INSERT INTO announcement_reads")
    assert "DO UPDATE SET read_at = CURRENT_TIMESTAMP" in sql
    assert params == {"uid": 42, "aid": 7}


def test_mark_as_read_of_hidden_announcement(session):
    fake = session(FakeResult([]))

    with pytest.raises(NotFoundError):
        notification_service.mark_as_read(42, 7)
    assert len(fake.statements) == 1


def test_mark_all_as_read_reports_new_reads(session):
    fake = session(FakeResult([], rowcount=3))

    assert notification_service.mark_all_as_read(42) == 3
    sql, params = fake.statements[0]
    assert "ON CONFLICT (user_id, announcement_id) DO NOTHING" in sql
    assert params == {"uid": 42}
