from contextlib import contextmanager
from typing import Iterator, Optional

from pymongo import MongoClient
from pymongo.errors import ConnectionFailure, ServerSelectionTimeoutError

from query_service.config import SERVER_SELECTION_TIMEOUT_MS
from query_service.errors import StoreConnectionError
from query_service.logger import logger
from query_service.store import MongoStore


def connect_to_cluster(mongo_uri: str, timeout_ms: Optional[int] = None) -> MongoClient:
    """Create and test a MongoClient connection."""
    timeout_ms = timeout_ms or SERVER_SELECTION_TIMEOUT_MS
    client = MongoClient(mongo_uri, serverSelectionTimeoutMS=timeout_ms)
    try:
        client.server_info()  # force connection test
    except ServerSelectionTimeoutError as e:
        client.close()
        raise StoreConnectionError(
            "Connection timed out. Check your MongoDB URI and network."
        ) from e
    except ConnectionFailure as e:
        client.close()
        raise StoreConnectionError("Failed to connect to MongoDB cluster") from e
    logger.info("Connected to MongoDB cluster")
    return client


@contextmanager
def open_store(
    mongo_uri: str,
    database_name: str,
    collection_name: str,
    timeout_ms: Optional[int] = None,
) -> Iterator[MongoStore]:
    """Yield a store over ``database_name.collection_name``; the connection
    is closed when the block exits, however it exits."""
    client = connect_to_cluster(mongo_uri, timeout_ms)
    store = MongoStore(client[database_name][collection_name], client=client)
    try:
        yield store
    finally:
        store.close()
