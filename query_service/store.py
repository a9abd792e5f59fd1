"""
Store collaborator: the query surface of one MongoDB collection.

``MongoStore`` wraps a ``pymongo`` collection and exposes exactly the
primitives the runner needs (find, update_one, delete_one, aggregate,
create_index, explain) plus index inspection.  Returned documents have
``ObjectId`` values in ``_id`` converted to strings so reports stay
JSON-serialisable.
"""

from typing import Any, Dict, List, Optional, Sequence, Tuple

from bson import ObjectId
from pymongo.collection import Collection

from query_service.logger import logger

KeyList = Sequence[Tuple[str, int]]


def _stringify_ids(docs: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Convert ObjectId ``_id`` values to strings; other ids are kept as-is."""
    for doc in docs:
        if isinstance(doc.get("_id"), ObjectId):
            doc["_id"] = str(doc["_id"])
    return docs


class MongoStore:
    """Operations over a single collection.

    When *client* is given the store owns it and ``close()`` releases it;
    otherwise ``close()`` is a no-op and the caller manages the connection.
    """

    def __init__(self, collection: Collection, client: Any = None):
        self.collection = collection
        self._client = client

    @property
    def namespace(self) -> str:
        return f"{self.collection.database.name}.{self.collection.name}"

    # ---------------------- READS ----------------------

    def _cursor(
        self,
        mongo_filter: Dict[str, Any],
        projection: Optional[Dict[str, Any]] = None,
        sort: Optional[KeyList] = None,
        limit: int = 0,
        skip: int = 0,
    ):
        cursor = self.collection.find(mongo_filter, projection)
        if sort:
            cursor = cursor.sort(list(sort))
        if skip:
            cursor = cursor.skip(skip)
        if limit:
            cursor = cursor.limit(limit)
        return cursor

    def find(
        self,
        mongo_filter: Dict[str, Any],
        projection: Optional[Dict[str, Any]] = None,
        sort: Optional[KeyList] = None,
        limit: int = 0,
        skip: int = 0,
    ) -> List[Dict[str, Any]]:
        cursor = self._cursor(mongo_filter, projection, sort, limit, skip)
        return _stringify_ids(list(cursor))

    def aggregate(self, pipeline: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        return _stringify_ids(list(self.collection.aggregate(pipeline)))

    def explain(
        self,
        mongo_filter: Dict[str, Any],
        projection: Optional[Dict[str, Any]] = None,
        sort: Optional[KeyList] = None,
        limit: int = 0,
        skip: int = 0,
    ) -> Dict[str, Any]:
        """Return the raw explain document for a find.  The server's default
        verbosity (``allPlansExecution``) includes ``executionStats``."""
        return self._cursor(mongo_filter, projection, sort, limit, skip).explain()

    # ---------------------- WRITES ----------------------

    def update_one(
        self,
        mongo_filter: Dict[str, Any],
        update: Dict[str, Any],
        upsert: bool = False,
    ) -> int:
        """Apply *update* to the first match; return documents changed
        (an upserted document counts as one)."""
        result = self.collection.update_one(mongo_filter, update, upsert=upsert)
        changed = result.modified_count
        if result.upserted_id is not None:
            changed += 1
        return changed

    def delete_one(self, mongo_filter: Dict[str, Any]) -> int:
        return self.collection.delete_one(mongo_filter).deleted_count

    # ---------------------- INDEXES ----------------------

    def create_index(self, keys: KeyList, **options: Any) -> str:
        """Create an index and return its name.  MongoDB treats a repeated
        identical specification as a no-op, so this is idempotent."""
        return self.collection.create_index(list(keys), **options)

    def list_indexes(self) -> List[Dict[str, Any]]:
        """Return ``name`` / ``keys`` / ``unique`` for every index."""
        indexes: List[Dict[str, Any]] = []
        for name, info in self.collection.index_information().items():
            indexes.append({
                "name": name,
                "keys": info.get("key", []),
                "unique": info.get("unique", False),
            })
        return indexes

    # ---------------------- LIFECYCLE ----------------------

    def close(self) -> None:
        if self._client is not None:
            logger.debug("Closing connection for %s", self.namespace)
            self._client.close()
            self._client = None
