from contextlib import contextmanager

import pytest

from niena.core.errors import InvalidRequestError, NotFoundError
from niena.services import category_service


DATA = {"category_id": 3, "category": "Data Analyst", "location": "Accra", "active": True,
        "last_fetched_at": None}


class FakeResult:
    def __init__(self, rows):
        self.rows = rows

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
        return FakeResult(self.results.pop(0) if self.results else [])


@pytest.fixture
def session(monkeypatch):
    def install(*results):
        fake = FakeSession(results)

        @contextmanager
        def fake_db_session():
            yield fake

        monkeypatch.setattr(category_service, "get_db_session", fake_db_session)
        return fake
    return install


def test_list_newest_first(session):
    fake = session([DATA, dict(DATA, category_id=2, category="Nurse")])

    categories = category_service.list_categories()

    assert [c["category_id"] for c in categories] == [3, 2]
    assert "ORDER BY category_id DESC" in fake.statements[0][0]


def test_create_category(session):
    fake = session([DATA])

    assert category_service.create_category("Data Analyst", "Accra") == DATA
    assert fake.statements[0][1] == {"category": "Data Analyst", "location": "Accra", "active": True}


def test_update_only_sends_editable_fields(session):
    fake = session([dict(DATA, active=False)])

    updated = category_service.update_category(3, {"active": False, "last_fetched_at": "2024-01-01"})

    sql, params = fake.statements[0]
    assert updated["active"] is False
    assert "SET active = :active WHERE" in sql
    assert params == {"active": False, "id": 3}


def test_update_with_nothing_to_change(session):
    fake = session()
    with pytest.raises(InvalidRequestError):
        category_service.update_category(3, {})
    assert fake.statements == []


def test_update_missing_category(session):
    session([])
    with pytest.raises(NotFoundError):
        category_service.update_category(99, {"category": "Chef"})


def test_delete_category(session):
    fake = session([(3,)])
    category_service.delete_category(3)
    assert fake.statements[0][0].startswith("DELETE FROM job_categories")


def test_delete_missing_category(session):
    session([])
    with pytest.raises(NotFoundError):
        category_service.delete_category(99)
