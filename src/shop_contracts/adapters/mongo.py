"""MongoDB adapter.

Encapsulates driver details (sort format, ObjectId encoding, connection
settings) behind the small read-only surface the query executor needs.
Driver and encoding failures surface as ``AdapterError``.
"""

from __future__ import annotations

from typing import Any, Mapping, Protocol

from bson import ObjectId
from pymongo import MongoClient
from pymongo.database import Database
from bson.errors import BSONError
from pymongo.errors import PyMongoError

from . import AdapterError


class DocumentStore(Protocol):
    def find(
        self,
        collection: str,
        query: Mapping[str, Any],
        projection: Mapping[str, Any] | None = None,
        *,
        sort: Mapping[str, Any] | None = None,
        skip: int | None = None,
        limit: int | None = None,
    ) -> list[dict[str, Any]]: ...

    def count(self, collection: str, query: Mapping[str, Any]) -> int: ...


class MongoStore:
    """Read-only view over a pymongo (or API-compatible) database."""

    def __init__(self, database: Database) -> None:
        self._db = database

    def find(
        self,
        collection: str,
        query: Mapping[str, Any],
        projection: Mapping[str, Any] | None = None,
        *,
        sort: Mapping[str, Any] | None = None,
        skip: int | None = None,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        try:
            cursor = self._db[collection].find(dict(query), dict(projection) if projection else None)
            if sort:
                cursor = cursor.sort(list(sort.items()))
            if skip:
                cursor = cursor.skip(skip)
            if limit:
                cursor = cursor.limit(limit)
            return [_plain(doc) for doc in cursor]
        except (PyMongoError, BSONError, TypeError, ValueError) as exc:
            raise AdapterError("STORE_ERROR", type(exc).__name__, {"collection": collection}) from exc

    def count(self, collection: str, query: Mapping[str, Any]) -> int:
        try:
            return int(self._db[collection].count_documents(dict(query)))
        except (PyMongoError, BSONError, TypeError, ValueError) as exc:
            raise AdapterError("STORE_ERROR", type(exc).__name__, {"collection": collection}) from exc


def open_store(*, uri: str, database: str, timeout_ms: int) -> MongoStore:
    # MongoClient connects lazily; no round-trip happens here.
    client: MongoClient = MongoClient(uri, serverSelectionTimeoutMS=timeout_ms, connect=False)
    return MongoStore(client[database])


def _plain(value: Any) -> Any:
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, dict):
        return {key: _plain(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_plain(item) for item in value]
    return value
