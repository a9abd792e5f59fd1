"""
Shared fixtures: an in-memory stand-in for the slice of a pymongo
collection that ``MongoStore`` uses, plus bookstore sample data.
"""

from __future__ import annotations

import copy
from itertools import count
from types import SimpleNamespace
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import pytest
from bson import ObjectId
from pymongo.errors import OperationFailure

from query_service.store import MongoStore


# =============================================================================
# Expression / filter evaluation
# =============================================================================

_MISSING = object()


def _get(doc: Dict[str, Any], path: str) -> Any:
    value: Any = doc
    for part in path.split("."):
        if not isinstance(value, dict) or part not in value:
            return _MISSING
        value = value[part]
    return value


def _evaluate(expr: Any, doc: Dict[str, Any]) -> Any:
    if isinstance(expr, str) and expr.startswith("$"):
        value = _get(doc, expr[1:])
        return None if value is _MISSING else value
    if isinstance(expr, dict) and len(expr) == 1:
        operator, args = next(iter(expr.items()))
        if operator == "$subtract":
            left, right = (_evaluate(a, doc) for a in args)
            return None if left is None or right is None else left - right
        if operator == "$mod":
            left, right = (_evaluate(a, doc) for a in args)
            return None if left is None or right is None else left % right
    return expr


def _compare(value: Any, operator: str, operand: Any) -> bool:
    if operator == "$eq":
        return value == operand
    if operator == "$ne":
        return value != operand
    if operator == "$in":
        return value in operand
    if value is _MISSING or value is None:
        return False
    if operator == "$gt":
        return value > operand
    if operator == "$gte":
        return value >= operand
    if operator == "$lt":
        return value < operand
    if operator == "$lte":
        return value <= operand
    raise OperationFailure(f"unknown operator: {operator}", code=2)


def _matches(doc: Dict[str, Any], mongo_filter: Dict[str, Any]) -> bool:
    for field, condition in mongo_filter.items():
        value = _get(doc, field)
        if isinstance(condition, dict) and condition and all(k.startswith("$") for k in condition):
            if not all(_compare(value, op, operand) for op, operand in condition.items()):
                return False
        elif value is _MISSING or value != condition:
            return False
    return True


def _project(doc: Dict[str, Any], projection: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    if not projection:
        return copy.deepcopy(doc)
    out: Dict[str, Any] = {}
    if projection.get("_id", 1) and "_id" in doc:
        out["_id"] = doc["_id"]
    for field, spec in projection.items():
        if field == "_id":
            continue
        if spec in (1, True):
            value = _get(doc, field)
            if value is not _MISSING:
                out[field] = copy.deepcopy(value)
        elif spec not in (0, False):
            out[field] = _evaluate(spec, doc)
    return out


def _sort_docs(docs: List[Dict[str, Any]], keys: Sequence[Tuple[str, int]]) -> List[Dict[str, Any]]:
    ordered = list(docs)
    for field, direction in reversed(list(keys)):
        present = [d for d in ordered if _get(d, field) not in (_MISSING, None)]
        absent = [d for d in ordered if _get(d, field) in (_MISSING, None)]
        present.sort(key=lambda d: _get(d, field), reverse=direction == -1)
        ordered = absent + present if direction == 1 else present + absent
    return ordered


# =============================================================================
# Stub collection
# =============================================================================


class StubCursor:
    def __init__(self, collection: "StubCollection", mongo_filter, projection):
        self._collection = collection
        self._filter = mongo_filter or {}
        self._projection = projection
        self._sort: List[Tuple[str, int]] = []
        self._skip = 0
        self._limit = 0

    def sort(self, keys):
        self._sort = list(keys)
        return self

    def skip(self, n: int):
        self._skip = n
        return self

    def limit(self, n: int):
        self._limit = n
        return self

    def _matched(self) -> List[Dict[str, Any]]:
        docs = [d for d in self._collection.docs if _matches(d, self._filter)]
        if self._sort:
            docs = _sort_docs(docs, self._sort)
        docs = docs[self._skip:]
        if self._limit:
            docs = docs[:self._limit]
        return docs

    def __iter__(self):
        self._collection._maybe_fail("find")
        return iter([_project(d, self._projection) for d in self._matched()])

    def explain(self) -> Dict[str, Any]:
        self._collection._maybe_fail("explain")
        returned = self._matched()
        indexed = self._collection.indexed_prefix_fields()
        uses_index = any(field in indexed for field in self._filter)
        return {
            "queryPlanner": {
                "winningPlan": {"stage": "FETCH" if uses_index else "COLLSCAN"},
            },
            "executionStats": {
                "executionTimeMillis": 0,
                "nReturned": len(returned),
                "totalKeysExamined": len(returned) if uses_index else 0,
                "totalDocsExamined": len(returned) if uses_index else len(self._collection.docs),
            },
        }


class StubCollection:
    """Enough of ``pymongo.collection.Collection`` for ``MongoStore``.

    ``fail_on`` maps a method name (find, update_one, delete_one, aggregate,
    create_index, explain) to an exception raised on the next call.
    """

    def __init__(self, docs: Optional[List[Dict[str, Any]]] = None, name: str = "books"):
        self.name = name
        self.database = SimpleNamespace(name="plp_bookstore")
        self.docs: List[Dict[str, Any]] = [copy.deepcopy(d) for d in docs or []]
        for doc in self.docs:
            doc.setdefault("_id", ObjectId())
        self.indexes: Dict[str, Dict[str, Any]] = {"_id_": {"key": [("_id", 1)]}}
        self.fail_on: Dict[str, BaseException] = {}
        self.calls: List[str] = []

    def _maybe_fail(self, method: str) -> None:
        self.calls.append(method)
        exc = self.fail_on.pop(method, None)
        if exc is not None:
            raise exc

    def indexed_prefix_fields(self) -> set:
        return {info["key"][0][0] for info in self.indexes.values()}

    def find(self, mongo_filter=None, projection=None):
        return StubCursor(self, mongo_filter, projection)

    def update_one(self, mongo_filter, update, upsert=False):
        self._maybe_fail("update_one")
        for doc in self.docs:
            if _matches(doc, mongo_filter):
                before = copy.deepcopy(doc)
                self._apply(doc, update)
                return SimpleNamespace(
                    matched_count=1, modified_count=int(before != doc), upserted_id=None,
                )
        if upsert:
            doc = {k: v for k, v in mongo_filter.items() if not isinstance(v, dict)}
            doc["_id"] = ObjectId()
            self._apply(doc, update)
            self.docs.append(doc)
            return SimpleNamespace(matched_count=0, modified_count=0, upserted_id=doc["_id"])
        return SimpleNamespace(matched_count=0, modified_count=0, upserted_id=None)

    @staticmethod
    def _apply(doc: Dict[str, Any], update: Dict[str, Any]) -> None:
        for operator, fields in update.items():
            for field, value in fields.items():
                if operator == "$set":
                    doc[field] = value
                elif operator == "$inc":
                    doc[field] = doc.get(field, 0) + value
                else:
                    raise OperationFailure(f"Unknown modifier: {operator}", code=9)

    def delete_one(self, mongo_filter):
        self._maybe_fail("delete_one")
        for position, doc in enumerate(self.docs):
            if _matches(doc, mongo_filter):
                del self.docs[position]
                return SimpleNamespace(deleted_count=1)
        return SimpleNamespace(deleted_count=0)

    def aggregate(self, pipeline):
        self._maybe_fail("aggregate")
        docs = [copy.deepcopy(d) for d in self.docs]
        for stage in pipeline:
            operator, spec = next(iter(stage.items()))
            if operator == "$match":
                docs = [d for d in docs if _matches(d, spec)]
            elif operator == "$project":
                docs = [_project(d, spec) for d in docs]
            elif operator == "$group":
                docs = self._group(docs, spec)
            elif operator == "$sort":
                docs = _sort_docs(docs, list(spec.items()))
            elif operator == "$limit":
                docs = docs[:spec]
            else:
                raise OperationFailure(f"Unrecognized pipeline stage name: '{operator}'", code=40324)
        return iter(docs)

    @staticmethod
    def _group(docs: List[Dict[str, Any]], spec: Dict[str, Any]) -> List[Dict[str, Any]]:
        groups: Dict[Any, List[Dict[str, Any]]] = {}
        for doc in docs:
            groups.setdefault(_evaluate(spec["_id"], doc), []).append(doc)
        out = []
        for key, members in groups.items():
            row: Dict[str, Any] = {"_id": key}
            for field, accumulator in spec.items():
                if field == "_id":
                    continue
                operator, expr = next(iter(accumulator.items()))
                values = [_evaluate(expr, d) for d in members]
                numbers = [v for v in values if isinstance(v, (int, float)) and not isinstance(v, bool)]
                if operator == "$sum":
                    row[field] = sum(numbers)
                elif operator == "$avg":
                    row[field] = sum(numbers) / len(numbers) if numbers else None
                elif operator == "$push":
                    row[field] = values
                else:
                    raise OperationFailure(f"unknown group operator '{operator}'", code=15952)
            out.append(row)
        return out

    def create_index(self, keys, name=None, unique=False):
        self._maybe_fail("create_index")
        keys = list(keys)
        name = name or "_".join(f"{field}_{direction}" for field, direction in keys)
        for existing_name, info in self.indexes.items():
            if info["key"] == keys and existing_name != name:
                raise OperationFailure(
                    f"Index already exists with a different name: {existing_name}", code=85,
                )
        existing = self.indexes.get(name)
        if existing is not None:
            if existing["key"] != keys or existing.get("unique", False) != unique:
                raise OperationFailure(
                    f"An existing index has the same name as the requested index: {name}",
                    code=86,
                )
            return name
        info: Dict[str, Any] = {"key": keys}
        if unique:
            info["unique"] = True
        self.indexes[name] = info
        return name

    def index_information(self):
        return copy.deepcopy(self.indexes)


class StubClient:
    def __init__(self) -> None:
        self.closed = False

    def close(self) -> None:
        self.closed = True


# =============================================================================
# Fixtures
# =============================================================================

BOOKS: List[Dict[str, Any]] = [
    {"title": "1984", "author": "George Orwell", "genre": "Dystopian",
     "published_year": 1949, "price": 12.50, "in_stock": True},
    {"title": "The Hobbit", "author": "J.R.R. Tolkien", "genre": "Fantasy",
     "published_year": 1937, "price": 14.99, "in_stock": True},
    {"title": "The Hunger Games", "author": "Suzanne Collins", "genre": "Dystopian",
     "published_year": 2008, "price": 11.25, "in_stock": True},
    {"title": "Catching Fire", "author": "Suzanne Collins", "genre": "Dystopian",
     "published_year": 2009, "price": 10.75, "in_stock": False},
    {"title": "The Name of the Wind", "author": "Patrick Rothfuss", "genre": "Fantasy",
     "published_year": 2007, "price": 16.00, "in_stock": True},
    {"title": "The Martian", "author": "Andy Weir", "genre": "Science Fiction",
     "published_year": 2011, "price": 13.40, "in_stock": True},
    {"title": "Project Hail Mary", "author": "Andy Weir", "genre": "Science Fiction",
     "published_year": 2021, "price": 18.20, "in_stock": False},
]


@pytest.fixture
def books() -> List[Dict[str, Any]]:
    return copy.deepcopy(BOOKS)


@pytest.fixture
def collection(books) -> StubCollection:
    return StubCollection(books)


@pytest.fixture
def empty_collection() -> StubCollection:
    return StubCollection([])


@pytest.fixture
def client() -> StubClient:
    return StubClient()


@pytest.fixture
def store(collection, client) -> MongoStore:
    return MongoStore(collection, client=client)


@pytest.fixture
def empty_store(empty_collection) -> MongoStore:
    return MongoStore(empty_collection)


_name_counter = count(1)


@pytest.fixture
def descriptor_factory() -> Callable[..., Dict[str, Any]]:
    """Raw descriptor dicts with a unique name unless one is given."""

    def _factory(kind: str, **parameters: Any) -> Dict[str, Any]:
        name = parameters.pop("name", None) or f"{kind}-{next(_name_counter)}"
        return {"name": name, "kind": kind, "parameters": parameters}

    return _factory


class _FakeDatabase:
    def __init__(self, collection: StubCollection) -> None:
        self._collection = collection

    def __getitem__(self, collection_name: str) -> StubCollection:
        return self._collection


class FakeMongoClient:
    """Stands in for ``pymongo.MongoClient`` inside ``cluster_manager``.

    Every database/collection lookup returns the class-level ``collection``;
    ``failure`` is raised by the connection test in ``server_info``.
    """

    instances: List["FakeMongoClient"] = []
    failure: Optional[BaseException] = None
    collection: Optional[StubCollection] = None

    def __init__(self, uri, serverSelectionTimeoutMS=None):
        self.uri = uri
        self.timeout_ms = serverSelectionTimeoutMS
        self.closed = False
        FakeMongoClient.instances.append(self)

    def server_info(self):
        if FakeMongoClient.failure is not None:
            raise FakeMongoClient.failure
        return {"version": "7.0.0"}

    def __getitem__(self, database_name):
        return _FakeDatabase(FakeMongoClient.collection)

    def close(self):
        self.closed = True


@pytest.fixture
def fake_client(monkeypatch, collection):
    """Route ``cluster_manager.open_store`` to the sample-books collection."""
    from query_service import cluster_manager

    FakeMongoClient.instances = []
    FakeMongoClient.failure = None
    FakeMongoClient.collection = collection
    monkeypatch.setattr(cluster_manager, "MongoClient", FakeMongoClient)
    return FakeMongoClient
