"""
Shared fixtures: a scripted LLM client and in-memory document stores.
"""
import json
from typing import Any, Dict, List

import pytest

from niena.core.errors import InsufficientCreditsError
from niena.services import account_service
from niena.services.llm_client import extract_json


class FakeLLM:
    """
    Returns queued chat answers in order. Dicts and lists are sent back as
    JSON text, exceptions are raised. Embeddings are a fixed function of
    the text so the same text always gets the same vector.
    """

    def __init__(self, responses: List[Any] = None):
        self.responses = list(responses or [])
        self.calls: List[Dict[str, Any]] = []
        self.embedded: List[str] = []

    def queue(self, *responses):
        self.responses.extend(responses)

    def chat(self, system_prompt, user_content, max_tokens=2000, temperature=0.2, json_mode=False):
        self.calls.append({
            "system_prompt": system_prompt,
            "user_content": user_content,
            "max_tokens": max_tokens,
            "json_mode": json_mode,
        })
        if not self.responses:
            raise AssertionError("FakeLLM ran out of queued responses")
        answer = self.responses.pop(0)
        if isinstance(answer, Exception):
            raise answer
        if isinstance(answer, (dict, list)):
            return json.dumps(answer)
        return answer

    def extract_json(self, text):
        return extract_json(text)

    def embed(self, text):
        self.embedded.append(text)
        return [float(len(text) % 7 + 1), 1.0, float(text.count(" ") % 3)]


class FakeRawResumes:
    def __init__(self):
        self.docs = {}

    def save(self, resume_id, user_id, content):
        self.docs[resume_id] = {"user_id": user_id, "content": content}

    def get_content(self, resume_id):
        doc = self.docs.get(resume_id)
        return doc["content"] if doc else None

    def delete(self, resume_id):
        return self.docs.pop(resume_id, None) is not None


class FakeAnalyses:
    FIELDS = ("extracted_data", "analysis_data", "score_data", "autofix_data")

    def __init__(self):
        self.docs = {}

    def save_outputs(self, resume_id, outputs, role=None):
        doc = self.docs.setdefault(resume_id, {"version": 0})
        doc.update({k: v for k, v in outputs.items() if k in self.FIELDS})
        doc["version"] += 1
        if role is not None:
            doc["role"] = role

    def get(self, resume_id):
        return self.docs.get(resume_id)

    def delete(self, resume_id):
        return self.docs.pop(resume_id, None) is not None


class FakeTailoredOutputs:
    def __init__(self):
        self.docs = {}

    def save(self, tailored_id, data):
        self.docs.setdefault(tailored_id, {}).update(data)

    def get(self, tailored_id):
        return self.docs.get(tailored_id)

    def delete(self, tailored_id):
        return self.docs.pop(tailored_id, None) is not None


class FakeRawPostings:
    def __init__(self):
        self.docs = {}

    def save(self, job_id, item, category=None):
        self.docs[job_id] = {"item": item, "category": category}


class FakeEmbeddingCache:
    def __init__(self):
        self.docs = {}

    def store_embeddings(self, entity_type, entity_id, chunks, vectors, text_hash):
        self.docs[(entity_type, entity_id)] = {
            "chunks": chunks, "vectors": vectors, "text_hash": text_hash
        }

    def get_text_hash(self, entity_type, entity_id):
        doc = self.docs.get((entity_type, entity_id))
        return doc["text_hash"] if doc else None

    def get_vectors_for(self, entity_type, entity_ids):
        vectors = []
        for entity_id in entity_ids:
            doc = self.docs.get((entity_type, entity_id))
            if doc:
                vectors.extend(doc["vectors"])
        return vectors

    def get_all_by_type(self, entity_type):
        return {eid: doc["vectors"] for (etype, eid), doc in self.docs.items() if etype == entity_type}

    def delete_entity(self, entity_id, entity_types):
        removed = 0
        for entity_type in entity_types:
            if self.docs.pop((entity_type, entity_id), None) is not None:
                removed += 1
        return removed


class EventRecorder:
    def __init__(self):
        self.events = []

    def __call__(self, user_id, event_type, data=None):
        self.events.append((user_id, event_type, data or {}))
        return 0

    def types(self):
        return [event_type for _, event_type, _ in self.events]


@pytest.fixture
def fake_llm():
    return FakeLLM()


@pytest.fixture
def raw_resumes():
    return FakeRawResumes()


@pytest.fixture
def analyses():
    return FakeAnalyses()


@pytest.fixture
def tailored_outputs():
    return FakeTailoredOutputs()


@pytest.fixture
def raw_postings():
    return FakeRawPostings()


@pytest.fixture
def embedding_cache():
    return FakeEmbeddingCache()


@pytest.fixture
def credits(monkeypatch):
    """Tracks credit consumption and refunds in place of the users table."""

    ledger = {"consumed": 0, "refunded": 0, "balance": 3}

    def consume(user_id):
        if ledger["balance"] <= 0:
            raise InsufficientCreditsError("No resume credits left. Please upgrade your plan.")
        ledger["balance"] -= 1
        ledger["consumed"] += 1
        return ledger["balance"]

    def refund(user_id):
        ledger["balance"] += 1
        ledger["refunded"] += 1

    monkeypatch.setattr(account_service, "consume_resume_credit", consume)
    monkeypatch.setattr(account_service, "refund_resume_credit", refund)
    return ledger
