# tests/conftest.py
import copy

import pytest
from bson import ObjectId

import config
from routes import ai, auth, performance, simulations, users
from services import question_supply

OPERATORS = {
    "$gte": lambda value, arg: value is not None and value >= arg,
    "$gt": lambda value, arg: value is not None and value > arg,
    "$lte": lambda value, arg: value is not None and value <= arg,
    "$lt": lambda value, arg: value is not None and value < arg,
    "$ne": lambda value, arg: value != arg,
    "$in": lambda value, arg: value in arg,
}


def matches(doc, query):
    for key, condition in query.items():
        value = doc.get(key)
        if isinstance(condition, dict) and condition and all(k.startswith("$") for k in condition):
            if not all(OPERATORS[op](value, arg) for op, arg in condition.items()):
                return False
        elif value != condition:
            return False
    return True


class FakeResult:
    def __init__(self, matched_count=0, inserted_id=None):
        self.matched_count = matched_count
        self.modified_count = matched_count
        self.inserted_id = inserted_id


class FakeCursor:
    def __init__(self, docs):
        self._docs = docs
        self._limit = None

    def sort(self, key, direction=1):
        self._docs = sorted(self._docs, key=lambda d: d.get(key), reverse=direction < 0)
        return self

    def skip(self, count):
        self._docs = self._docs[count:]
        return self

    def limit(self, count):
        self._limit = count
        return self

    async def to_list(self, length=None):
        docs = self._docs
        for bound in (self._limit, length):
            if bound:
                docs = docs[:bound]
        return [copy.deepcopy(d) for d in docs]


class FakeCollection:
    """Just enough of motor's collection API for the routes and services."""

    def __init__(self):
        self.docs = []

    async def insert_one(self, document):
        document.setdefault("_id", ObjectId())
        self.docs.append(copy.deepcopy(document))
        return FakeResult(1, document["_id"])

    async def insert_many(self, documents):
        for document in documents:
            await self.insert_one(document)
        return FakeResult(len(documents))

    async def find_one(self, query):
        for doc in self.docs:
            if matches(doc, query):
                return copy.deepcopy(doc)
        return None

    def find(self, query=None):
        return FakeCursor([d for d in self.docs if matches(d, query or {})])

    async def update_one(self, query, update):
        for doc in self.docs:
            if matches(doc, query):
                doc.update(update.get("$set", {}))
                for key, amount in update.get("$inc", {}).items():
                    doc[key] = doc.get(key, 0) + amount
                return FakeResult(1)
        return FakeResult(0)

    async def count_documents(self, query):
        return sum(1 for d in self.docs if matches(d, query))

    async def create_index(self, *args, **kwargs):
        return "index"


class FakeDB:
    def __init__(self):
        self._collections = {}

    def __getitem__(self, name):
        return self._collections.setdefault(name, FakeCollection())

    def __getattr__(self, name):
        if name.startswith("_"):
            raise AttributeError(name)
        return self[name]


@pytest.fixture
def fake_db(monkeypatch):
    db = FakeDB()
    for module in (auth, users, simulations, performance, ai, question_supply):
        monkeypatch.setattr(module, "db", db)
    return db


@pytest.fixture(autouse=True)
def grok_provider(monkeypatch):
    monkeypatch.setattr(config, "AI_PROVIDER", "grok")
    monkeypatch.setattr(config, "XAI_API_KEY", "test-key")
    monkeypatch.setattr(config, "XAI_MODEL", "grok-3")
    monkeypatch.setattr(config, "XAI_FALLBACK_MODEL", "grok-3-mini")
