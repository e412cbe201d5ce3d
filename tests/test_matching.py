from contextlib import contextmanager

import pytest

from niena.core.errors import NotFoundError
from niena.services import matching_service
from niena.services.embedding_service import (
    JOB_RESPONSIBILITIES,
    JOB_SKILLS,
    RESUME_EXPERIENCE,
    RESUME_SKILLS,
)
from niena.services.matching_service import average_similarity, combine_scores, recommend_jobs


def test_identical_vectors_have_similarity_one():
    assert average_similarity([[1.0, 2.0, 3.0]], [[1.0, 2.0, 3.0]]) == 1.0


def test_orthogonal_vectors_have_similarity_zero():
    assert average_similarity([[1.0, 0.0]], [[0.0, 1.0]]) == 0.0


def test_average_over_all_pairs():
    # pairs: (a1,b1)=1, (a2,b1)=0
    assert average_similarity([[1.0, 0.0], [0.0, 1.0]], [[1.0, 0.0]]) == 0.5


def test_empty_side_gives_zero():
    assert average_similarity([], [[1.0, 0.0]]) == 0.0
    assert average_similarity([[1.0, 0.0]], []) == 0.0


def test_zero_vector_counts_as_zero():
    assert average_similarity([[0.0, 0.0]], [[1.0, 0.0]]) == 0.0


def test_dimension_mismatch_raises():
    with pytest.raises(ValueError):
        average_similarity([[1.0, 0.0]], [[1.0, 0.0, 0.0]])


def test_combine_scores():
    assert combine_scores(0.8, 0.5) == round(0.8 * 0.7 + 0.5 * 0.3 + 0.1, 3)
    assert combine_scores(0, 0.5) == 0.6
    assert combine_scores(0, 0) == 0.1


@pytest.fixture
def jobs(monkeypatch):
    rows = [
        {"job_id": 1, "job_title": "Backend Engineer"},
        {"job_id": 2, "job_title": "Accountant"},
        {"job_id": 3, "job_title": "No embeddings yet"},
    ]
    monkeypatch.setattr(matching_service, "_all_jobs", lambda: [dict(r) for r in rows])
    return rows


def test_recommend_jobs_ranks_by_total_similarity(monkeypatch, jobs, embedding_cache):
    monkeypatch.setattr(matching_service, "_user_resume_ids", lambda user_id: [7])
    embedding_cache.store_embeddings(RESUME_SKILLS, 7, ["python"], [[1.0, 0.0]], "h1")
    embedding_cache.store_embeddings(RESUME_EXPERIENCE, 7, ["apis"], [[0.0, 1.0]], "h2")
    embedding_cache.store_embeddings(JOB_SKILLS, 1, ["python"], [[1.0, 0.0]], "h3")
    embedding_cache.store_embeddings(JOB_RESPONSIBILITIES, 1, ["apis"], [[0.0, 1.0]], "h4")
    embedding_cache.store_embeddings(JOB_SKILLS, 2, ["ledgers"], [[0.0, 1.0]], "h5")
    embedding_cache.store_embeddings(JOB_RESPONSIBILITIES, 2, ["audits"], [[1.0, 0.0]], "h6")

    results = recommend_jobs(42, plan="FREE", embeddings=embedding_cache)

    assert [job["job_id"] for job in results][0] == 1
    best = results[0]
    assert best["skill_similarity"] == 1.0
    assert best["responsibility_similarity"] == 1.0
    assert best["total_similarity"] == 1.1

    no_vectors = next(job for job in results if job["job_id"] == 3)
    assert no_vectors["total_similarity"] == 0.1


def test_recommend_jobs_empty_without_resumes(monkeypatch, jobs, embedding_cache):
    monkeypatch.setattr(matching_service, "_user_resume_ids", lambda user_id: [])
    assert recommend_jobs(42, embeddings=embedding_cache) == []


def test_recommend_jobs_respects_limit_and_plan(monkeypatch, jobs, embedding_cache):
    monkeypatch.setattr(matching_service, "_user_resume_ids", lambda user_id: [7])
    assert len(recommend_jobs(42, plan="FREE", limit=2, embeddings=embedding_cache)) == 2

    monkeypatch.setattr(matching_service, "get_plan_limits", lambda plan: {"weekly_matches": 1})
    assert len(recommend_jobs(42, plan="FREE", embeddings=embedding_cache)) == 1


class FakeRow:
    pass


class FakeResult:
    def __init__(self, row=None):
        self.row = row

    def fetchone(self):
        return self.row


class JobViewsSession:
    """Job and job_views tables kept in memory, answering record_view's statements."""

    def __init__(self, job_ids):
        self.view_counts = {job_id: 0 for job_id in job_ids}
        self.views = []

    def execute(self, statement, params=None):
        sql = " ".join(str(statement).split())
        if sql.startswith("SELECT 1 FROM jobs"):
            return FakeResult(FakeRow() if params["jid"] in self.view_counts else None)
        if sql.startswith("SELECT 1 FROM job_views") and "user_id = :uid" in sql:
            seen = any(v["jid"] == params["jid"] and v["uid"] == params["uid"] for v in self.views)
            return FakeResult(FakeRow() if seen else None)
        if sql.startswith("SELECT 1 FROM job_views") and "ip_address = :ip" in sql:
            seen = any(v["jid"] == params["jid"] and v["ip"] == params["ip"] for v in self.views)
            return FakeResult(FakeRow() if seen else None)
        if sql.startswith("INSERT INTO job_views"):
            self.views.append(dict(params))
            return FakeResult()
        if sql.startswith("UPDATE jobs SET view_count = view_count + 1"):
            self.view_counts[params["jid"]] += 1
            return FakeResult()
        raise AssertionError(f"unexpected statement: {sql}")


@pytest.fixture
def job_views(monkeypatch):
    session = JobViewsSession([5, 6])

    @contextmanager
    def fake_db_session():
        yield session

    monkeypatch.setattr(matching_service, "get_db_session", fake_db_session)
    return session


def test_signed_in_user_counts_once_per_job(job_views):
    first = matching_service.record_view(5, 42, "10.0.0.1")
    again = matching_service.record_view(5, 42, "10.0.0.2")

    assert first == {"success": True, "viewed": True}
    assert again == {"success": True, "viewed": False}
    assert job_views.view_counts[5] == 1
    assert len(job_views.views) == 1


def test_different_users_each_count(job_views):
    matching_service.record_view(5, 42, "10.0.0.1")
    matching_service.record_view(5, 43, "10.0.0.1")

    assert job_views.view_counts[5] == 2


def test_anonymous_views_count_once_per_ip(job_views):
    assert matching_service.record_view(6, None, "10.0.0.9")["viewed"] is True
    assert matching_service.record_view(6, None, "10.0.0.9")["viewed"] is False
    assert matching_service.record_view(6, None, "10.0.0.10")["viewed"] is True

    assert job_views.view_counts[6] == 2
    assert job_views.view_counts[5] == 0


def test_view_of_missing_job(job_views):
    with pytest.raises(NotFoundError):
        matching_service.record_view(99, 42, "10.0.0.1")
    assert job_views.views == []
