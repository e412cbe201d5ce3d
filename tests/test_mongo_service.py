from niena.services import mongo_service
from niena.services.mongo_service import EmbeddingCacheService, RawJobPostingService


class FakeCollection:
    def __init__(self, docs=None):
        self.docs = list(docs or [])
        self.queries = []
        self.updates = []

    def find(self, query, projection=None):
        self.queries.append(query)
        wanted = query.get("entity_id", {}).get("$in")
        return [
            doc for doc in self.docs
            if doc["entity_type"] == query["entity_type"] and (wanted is None or doc["entity_id"] in wanted)
        ]

    def update_one(self, query, update, upsert=False):
        self.updates.append((query, update, upsert))


def use_collection(monkeypatch, collection):
    monkeypatch.setattr(mongo_service, "get_collection", lambda name: collection)


def test_vectors_for_entities_are_flattened(monkeypatch):
    collection = FakeCollection([
        {"entity_type": "resume_skills", "entity_id": 1, "vectors": [[1.0, 0.0]]},
        {"entity_type": "resume_skills", "entity_id": 2, "vectors": [[0.0, 1.0], [0.5, 0.5]]},
        {"entity_type": "resume_skills", "entity_id": 3, "vectors": [[9.0, 9.0]]},
        {"entity_type": "resume_experience", "entity_id": 1, "vectors": [[2.0, 2.0]]},
    ])
    use_collection(monkeypatch, collection)

    vectors = EmbeddingCacheService().get_vectors_for("resume_skills", [1, 2])

    assert vectors == [[1.0, 0.0], [0.0, 1.0], [0.5, 0.5]]


def test_vectors_for_no_entities_skips_query(monkeypatch):
    collection = FakeCollection()
    use_collection(monkeypatch, collection)

    assert EmbeddingCacheService().get_vectors_for("job_skills", []) == []
    assert collection.queries == []


def test_vectors_by_type(monkeypatch):
    collection = FakeCollection([
        {"entity_type": "job_skills", "entity_id": 7, "vectors": [[1.0]]},
        {"entity_type": "job_skills", "entity_id": 8},
        {"entity_type": "job_responsibilities", "entity_id": 7, "vectors": [[3.0]]},
    ])
    use_collection(monkeypatch, collection)

    assert EmbeddingCacheService().get_all_by_type("job_skills") == {7: [[1.0]], 8: []}


def test_raw_posting_is_upserted_by_job_id(monkeypatch):
    collection = FakeCollection()
    use_collection(monkeypatch, collection)

    RawJobPostingService().save(12, {"job_id": "abc"}, category="Data")

    query, update, upsert = collection.updates[0]
    assert query == {"job_id": 12}
    assert update["$set"]["item"] == {"job_id": "abc"}
    assert update["$set"]["category"] == "Data"
    assert upsert is True
