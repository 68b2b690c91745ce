"""Shared fixtures for Relatix tests.

Provides:
- json_store: a JsonDocumentStore in a temp directory
- fake_firestore: an in-memory stand-in for the firebase-admin Firestore client
- clock: a controllable monotonic clock for timed questions
- app / client: the Flask app wired to json_store and the fake clock
- make_question: factory for hand-built questions
"""

import os
import random
import uuid
from collections import defaultdict

import pytest

# Set env vars before any relatix imports
os.environ.setdefault("RELATIX_STORE", "json")
os.environ.setdefault("RELATIX_SECRET_KEY", "test-secret")
os.environ.setdefault("RELATIX_ADMIN_PASSWORD", "test-password")

from relatix.app import create_app  # noqa: E402
from relatix.store import JsonDocumentStore  # noqa: E402


# ---------------------------------------------------------------------------
# In-memory fake Firestore
# ---------------------------------------------------------------------------

class FakeSnapshot:
    def __init__(self, ref, data):
        self.id = ref.id
        self.reference = ref
        self._data = data

    def to_dict(self):
        return dict(self._data)


class FakeDocumentRef:
    def __init__(self, store, collection, doc_id=None):
        self._store = store
        self._collection = collection
        self.id = doc_id or uuid.uuid4().hex[:20]

    def set(self, data):
        self._store[self._collection][self.id] = dict(data)

    def delete(self):
        self._store[self._collection].pop(self.id, None)


class FakeQuery:
    """Mimics the google-cloud-firestore query chain."""

    def __init__(self, store, collection):
        self._store = store
        self._collection = collection
        self._filters = []
        self._order = None
        self._limit = None

    def _copy(self):
        q = FakeQuery(self._store, self._collection)
        q._filters = list(self._filters)
        q._order = self._order
        q._limit = self._limit
        return q

    def where(self, filter=None):
        q = self._copy()
        q._filters.append((filter.field_path, filter.op_string, filter.value))
        return q

    def order_by(self, field, direction="ASCENDING"):
        q = self._copy()
        q._order = (field, direction == "DESCENDING")
        return q

    def limit(self, n):
        q = self._copy()
        q._limit = n
        return q

    def stream(self):
        rows = list(self._store[self._collection].items())
        for field, op, value in self._filters:
            assert op == "==", op
            rows = [(i, d) for i, d in rows if d.get(field) == value]
        if self._order:
            field, desc = self._order
            rows.sort(key=lambda row: row[1].get(field), reverse=desc)
        if self._limit is not None:
            rows = rows[:self._limit]
        for doc_id, data in rows:
            yield FakeSnapshot(FakeDocumentRef(self._store, self._collection, doc_id), data)


class FakeCollection(FakeQuery):
    def document(self, doc_id=None):
        return FakeDocumentRef(self._store, self._collection, doc_id)

    def add(self, data):
        ref = self.document()
        ref.set(data)
        return None, ref


class FakeBatch:
    def __init__(self, client):
        self._client = client
        self._ops = []

    def delete(self, ref):
        self._ops.append(ref.delete)

    def set(self, ref, data):
        self._ops.append(lambda: ref.set(data))

    def commit(self):
        if self._client.fail_with is not None:
            raise self._client.fail_with
        for op in self._ops:
            op()
        self._client.commits += 1


class FakeFirestoreClient:
    def __init__(self):
        self.data = defaultdict(dict)
        self.commits = 0
        self.fail_with = None

    def collection(self, name):
        return FakeCollection(self.data, name)

    def batch(self):
        return FakeBatch(self)


@pytest.fixture
def fake_firestore():
    return FakeFirestoreClient()


# ---------------------------------------------------------------------------
# Clock, store, app
# ---------------------------------------------------------------------------

class FakeClock:
    def __init__(self, start=1000.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def json_store(tmp_path):
    return JsonDocumentStore(tmp_path / "data")


@pytest.fixture
def app(json_store, clock, tmp_path):
    app = create_app({
        "TESTING": True,
        "STORE": json_store,
        "DATA_DIR": tmp_path / "data",
        "RNG": random.Random(7),
        "CLOCK": clock,
        "ADAPTIVE_QUESTIONS": False,
        "USE_DIFFICULTY_MULTIPLIER": False,
    })
    return app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def bank(app):
    return {q["id"]: q for q in app.extensions["relatix.questions"]}


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------

def make_question(qid="q1", level=1, q_type="multiple-choice", difficulty="easy",
                  correct="who", options=None, text="The girl ___ lives here is nice.",
                  explanation="Use 'who' for people."):
    if options is None:
        options = [] if q_type == "sentence-completion" else ["who", "which", "where"]
    return {
        "id": qid,
        "level": level,
        "type": q_type,
        "text": text,
        "options": options,
        "correct": correct,
        "difficulty": difficulty,
        "explanation": explanation,
    }


def make_score(name="ANA", score=50, date="2026-01-01T00:00:00+00:00"):
    return {"name": name, "avatar": "", "score": score, "date": date}
