"""
Document store access.

Each collection holds flat documents keyed by an opaque string id stored as
``_id``. Reads hand back plain dicts with that id under ``id``. Reads are
unordered; callers sort and page in memory (see helpers.paginate).
"""
import logging
from typing import Any, Dict, List, Optional

from pymongo import MongoClient
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from config import settings
from helpers import chunked

logger = logging.getLogger(__name__)


class Collections:
    USERS = "users"
    ASSIGNMENTS = "assignments"
    SUBMISSIONS = "submissions"
    GRADES = "grades"
    FEEDBACK = "feedback"
    GRADE_REVIEW_REQUESTS = "gradeReviewRequests"
    ANNOUNCEMENTS = "announcements"
    DISMISSED_ANNOUNCEMENTS = "dismissedAnnouncements"
    IDENTITIES = "identities"


def _from_mongo(doc: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if doc is None:
        return None
    d = {**doc}
    d["id"] = str(d.pop("_id"))
    return d


def _to_mongo(doc_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
    d = {k: v for k, v in data.items() if k not in ("id", "_id")}
    d["_id"] = doc_id
    return d


class DocumentStore:
    def __init__(self, db: Database, max_results: int = 1000):
        self.db = db
        self.max_results = max_results

    def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        return _from_mongo(self.db[collection].find_one({"_id": doc_id}))

    def set(self, collection: str, doc_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        self.db[collection].replace_one({"_id": doc_id}, _to_mongo(doc_id, data), upsert=True)
        return {**data, "id": doc_id}

    def create(self, collection: str, doc_id: str, data: Dict[str, Any]) -> bool:
        """Insert only if no document with this id exists. Returns False on a clash."""
        try:
            self.db[collection].insert_one(_to_mongo(doc_id, data))
        except DuplicateKeyError:
            return False
        return True

    def update(self, collection: str, doc_id: str, fields: Dict[str, Any]) -> bool:
        res = self.db[collection].update_one({"_id": doc_id}, {"$set": fields})
        return res.matched_count == 1

    def compare_and_set(self, collection: str, doc_id: str, expected: Dict[str, Any],
                        fields: Dict[str, Any]) -> bool:
        """Atomically apply ``fields`` only while every ``expected`` value still holds.

        ``None`` in ``expected`` matches a missing field as well as an explicit null.
        """
        query = {"_id": doc_id, **expected}
        res = self.db[collection].update_one(query, {"$set": fields})
        return res.matched_count == 1

    def delete(self, collection: str, doc_id: str) -> bool:
        res = self.db[collection].delete_one({"_id": doc_id})
        return res.deleted_count == 1

    def delete_where(self, collection: str, predicates: Dict[str, Any]) -> int:
        res = self.db[collection].delete_many(predicates)
        return res.deleted_count

    def query(self, collection: str, predicates: Optional[Dict[str, Any]] = None,
              limit: Optional[int] = None) -> List[Dict[str, Any]]:
        """Unordered filtered read, capped at ``max_results`` documents."""
        cap = min(limit, self.max_results) if limit else self.max_results
        docs = [_from_mongo(d) for d in self.db[collection].find(predicates or {}).limit(cap)]
        if len(docs) == cap and not limit:
            logger.warning("Query on %s hit the fetch cap of %s documents; results truncated", collection, cap)
        return docs

    def query_in(self, collection: str, field: str, values: List[Any],
                 predicates: Optional[Dict[str, Any]] = None, chunk_size: Optional[int] = None) -> List[Dict[str, Any]]:
        """Run an "in" filter in chunks and concatenate the partial results."""
        docs: List[Dict[str, Any]] = []
        for chunk in chunked(values, chunk_size or settings.IN_QUERY_CHUNK_SIZE):
            docs.extend(self.query(collection, {**(predicates or {}), field: {"$in": chunk}}))
        return docs


_client: Optional[MongoClient] = None
_store: Optional[DocumentStore] = None


def init_store(database_url: Optional[str] = None, database_name: Optional[str] = None) -> DocumentStore:
    """Build the process-wide store once; later calls return the same instance."""
    global _client, _store
    if _store is not None:
        return _store
    _client = MongoClient(database_url or settings.DATABASE_URL)
    _store = DocumentStore(_client[database_name or settings.DATABASE_NAME], max_results=settings.MAX_FETCH_DOCUMENTS)
    logger.info("Document store ready: %s", database_name or settings.DATABASE_NAME)
    return _store


def close_store() -> None:
    global _client, _store
    if _client is not None:
        _client.close()
    _client = None
    _store = None
