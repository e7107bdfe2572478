"""
Remote Data Gateway

MongoDB implementation of the row-store contract the domain store consumes:
select / insert / update / delete per table, plus subscribe() which pushes a
bare "something changed" notification for a table through a change stream.
"""

import logging
import threading
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from bson import ObjectId
from pymongo import MongoClient
from pymongo.errors import PyMongoError

logger = logging.getLogger(__name__)

Order = Iterable[Tuple[str, int]]

WATCHED_OPERATIONS = ("insert", "update", "replace", "delete")


class GatewayError(Exception):
    """Raised for every failed remote call."""


def _to_filter(filter_dict: Optional[dict]) -> dict:
    query = dict(filter_dict or {})
    if "id" in query:
        _id = query.pop("id")
        # an id that can never exist matches nothing
        query["_id"] = ObjectId(_id) if ObjectId.is_valid(_id) else None
    return query


def serialize_doc(doc: Optional[dict]) -> Optional[dict]:
    if not doc:
        return None
    d = dict(doc)
    if "_id" in d:
        d["id"] = str(d.pop("_id"))  # convert ObjectId to string
    return d


class ChangeStreamChannel:
    """Watches one collection on a daemon thread until close() is called."""

    def __init__(self, collection, on_change: Callable[[], None], poll_seconds: float = 0.5):
        self.table = collection.name
        self._collection = collection
        self._on_change = on_change
        self._poll_ms = int(poll_seconds * 1000)
        self._stop = threading.Event()
        self._thread = threading.Thread(target=self._run, name=f"watch-{self.table}", daemon=True)

    def start(self) -> "ChangeStreamChannel":
        self._thread.start()
        return self

    def close(self, timeout: Optional[float] = None) -> None:
        """Stop watching and wait for the thread; try_next returns within one poll."""
        self._stop.set()
        if self._thread.is_alive() and self._thread is not threading.current_thread():
            self._thread.join(self._poll_ms / 1000 * 2 if timeout is None else timeout)

    def _run(self) -> None:
        try:
            with self._collection.watch(max_await_time_ms=self._poll_ms) as stream:
                while not self._stop.is_set() and stream.alive:
                    change = stream.try_next()
                    if change is None:
                        continue
                    if change.get("operationType") in WATCHED_OPERATIONS:
                        self._on_change()
        except PyMongoError:
            logger.exception("Change stream for %s stopped", self.table)


class MongoGateway:
    def __init__(self, database_url: Optional[str], database_name: Optional[str]):
        self._client = None
        self.db = None
        if database_url and database_name:
            self._client = MongoClient(database_url)
            self.db = self._client[database_name]

    def _ensure_db(self):
        if self.db is None:
            raise GatewayError("Database not available. Check DATABASE_URL and DATABASE_NAME environment variables.")

    def list_tables(self) -> List[str]:
        self._ensure_db()
        try:
            return self.db.list_collection_names()
        except PyMongoError as e:
            raise GatewayError(str(e)) from e

    def count(self, table: str) -> int:
        self._ensure_db()
        try:
            return self.db[table].count_documents({})
        except PyMongoError as e:
            raise GatewayError(str(e)) from e

    # CRUD

    def select(self, table: str, filter_dict: Optional[dict] = None, order: Optional[Order] = None,
               limit: Optional[int] = None) -> List[dict]:
        self._ensure_db()
        try:
            cursor = self.db[table].find(_to_filter(filter_dict))
            if order:
                cursor = cursor.sort(list(order))
            if limit:
                cursor = cursor.limit(int(limit))
            return [serialize_doc(doc) for doc in cursor]
        except PyMongoError as e:
            raise GatewayError(str(e)) from e

    def insert(self, table: str, row: Dict[str, Any]) -> str:
        self._ensure_db()
        payload = dict(row)
        now = datetime.now(timezone.utc)
        payload.setdefault("created_at", now)
        payload.setdefault("updated_at", now)
        try:
            result = self.db[table].insert_one(payload)
        except PyMongoError as e:
            raise GatewayError(str(e)) from e
        return str(result.inserted_id)

    def update(self, table: str, patch: Dict[str, Any], filter_dict: dict) -> int:
        self._ensure_db()
        try:
            result = self.db[table].update_many(_to_filter(filter_dict), {"$set": dict(patch)})
        except PyMongoError as e:
            raise GatewayError(str(e)) from e
        return result.matched_count

    def delete(self, table: str, filter_dict: dict) -> int:
        self._ensure_db()
        try:
            result = self.db[table].delete_many(_to_filter(filter_dict))
        except PyMongoError as e:
            raise GatewayError(str(e)) from e
        return result.deleted_count

    # Realtime

    def subscribe(self, table: str, on_change: Callable[[], None]) -> ChangeStreamChannel:
        self._ensure_db()
        return ChangeStreamChannel(self.db[table], on_change).start()
