"""
FastAPI service: run operation lists against a MongoDB collection over HTTP.

Endpoints:
- ``POST /run-operations``: run a caller-supplied list of descriptors
- ``POST /run-catalog``: run the bookstore catalog
- ``POST /get-indexes``: list the collection's indexes
- ``GET /health``
"""

from typing import Any, Dict, List, Sequence

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from query_service import __version__, config
from query_service.catalog import bookstore_operations
from query_service.cluster_manager import open_store
from query_service.descriptors import OperationDescriptor, parse_operations
from query_service.errors import StoreConnectionError
from query_service.logger import logger
from query_service.response_formatter import format_report
from query_service.runner import run


app = FastAPI(title="Query Service", version=__version__)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ---------------------- REQUEST MODELS ----------------------


class CollectionRequest(BaseModel):
    mongo_uri: str = config.MONGO_URI
    database_name: str = config.DATABASE_NAME
    collection_name: str = config.COLLECTION_NAME


class RunRequest(CollectionRequest):
    operations: List[Dict[str, Any]] = Field(
        ..., description="Operation descriptors: {name, kind, parameters}",
    )


# ---------------------- HELPERS ----------------------


def _run_request(
    request: CollectionRequest,
    descriptors: Sequence[OperationDescriptor],
) -> Dict[str, Any]:
    try:
        with open_store(
            request.mongo_uri, request.database_name, request.collection_name,
        ) as store:
            report = run(store, descriptors)
    except StoreConnectionError as e:
        logger.error("run error: %s", e)
        raise HTTPException(status_code=503, detail=str(e))
    return format_report(report)


# ---------------------- ENDPOINTS ----------------------


@app.post("/run-operations")
def run_operations(request: RunRequest):
    try:
        descriptors = parse_operations(request.operations)
    except ValueError as e:
        logger.warning("run-operations rejected: %s", e)
        raise HTTPException(status_code=400, detail=str(e))
    return _run_request(request, descriptors)


@app.post("/run-catalog")
def run_catalog(request: CollectionRequest):
    return _run_request(request, bookstore_operations())


@app.post("/get-indexes")
def get_indexes(request: CollectionRequest):
    """Return index information for the collection."""
    try:
        with open_store(
            request.mongo_uri, request.database_name, request.collection_name,
        ) as store:
            indexes = store.list_indexes()
    except StoreConnectionError as e:
        logger.error("get-indexes error: %s", e)
        raise HTTPException(status_code=503, detail=str(e))
    return {"indexes": indexes}


@app.get("/health")
def health_check():
    return {"status": "ok", "version": __version__}
