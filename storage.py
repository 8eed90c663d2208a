"""
Object storage for uploaded files.

Two backends share one interface: a local directory (default, also used by the
tests) and MongoDB GridFS. Neither serves public URLs; readers go through
``/api/files/download/{key}`` with a short-lived signed token.
"""
import json
import logging
import os
from abc import ABC, abstractmethod
from datetime import timedelta
from pathlib import Path
from typing import Any, Dict, Optional
from urllib.parse import quote

import gridfs
import jwt
from pymongo.database import Database

from config import settings
from helpers import utcnow

logger = logging.getLogger(__name__)

SIGNED_URL_AUDIENCE = "file-download"


class ObjectStorage(ABC):
    def __init__(self, signing_key: str, public_base_url: str, algorithm: str = "HS256"):
        self.signing_key = signing_key
        self.public_base_url = public_base_url.rstrip("/")
        self.algorithm = algorithm

    @abstractmethod
    def put_object(self, key: str, data: bytes, content_type: str, metadata: Dict[str, Any]) -> None:
        ...

    @abstractmethod
    def exists(self, key: str) -> bool:
        ...

    @abstractmethod
    def get_metadata(self, key: str) -> Dict[str, Any]:
        ...

    @abstractmethod
    def read_object(self, key: str) -> bytes:
        ...

    @abstractmethod
    def delete_object(self, key: str) -> None:
        ...

    # Shared
    def get_signed_url(self, key: str, expires_minutes: Optional[int] = None) -> str:
        minutes = expires_minutes or settings.SIGNED_URL_EXPIRE_MINUTES
        token = jwt.encode(
            {"key": key, "aud": SIGNED_URL_AUDIENCE, "exp": utcnow() + timedelta(minutes=minutes)},
            self.signing_key,
            algorithm=self.algorithm,
        )
        return f"{self.public_base_url}{settings.API_PREFIX}/files/download/{quote(key)}?token={token}"

    def verify_signed_token(self, key: str, token: str) -> bool:
        try:
            payload = jwt.decode(token, self.signing_key, algorithms=[self.algorithm], audience=SIGNED_URL_AUDIENCE)
        except jwt.InvalidTokenError:
            return False
        return payload.get("key") == key


class LocalObjectStorage(ObjectStorage):
    """Files under a root directory with a JSON metadata sidecar per object."""

    META_SUFFIX = ".meta.json"

    def __init__(self, root: str, **kwargs):
        super().__init__(**kwargs)
        self.root = Path(root).resolve()
        os.makedirs(self.root, exist_ok=True)

    def _path(self, key: str) -> Path:
        path = (self.root / key).resolve()
        if self.root not in path.parents:
            raise ValueError(f"Invalid object key: {key}")
        return path

    def _meta_path(self, key: str) -> Path:
        path = self._path(key)
        return path.with_name(path.name + self.META_SUFFIX)

    def put_object(self, key: str, data: bytes, content_type: str, metadata: Dict[str, Any]) -> None:
        path = self._path(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        meta = {"content_type": content_type, "size": len(data), "metadata": metadata}
        self._meta_path(key).write_text(json.dumps(meta), encoding="utf-8")

    def exists(self, key: str) -> bool:
        try:
            return self._path(key).is_file()
        except ValueError:
            return False

    def get_metadata(self, key: str) -> Dict[str, Any]:
        meta_path = self._meta_path(key)
        if not meta_path.is_file():
            return {}
        return json.loads(meta_path.read_text(encoding="utf-8"))

    def read_object(self, key: str) -> bytes:
        return self._path(key).read_bytes()

    def delete_object(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)
        self._meta_path(key).unlink(missing_ok=True)


class GridFSObjectStorage(ObjectStorage):
    def __init__(self, db: Database, bucket: str = "uploads", **kwargs):
        super().__init__(**kwargs)
        self.fs = gridfs.GridFS(db, collection=bucket)

    def put_object(self, key: str, data: bytes, content_type: str, metadata: Dict[str, Any]) -> None:
        self.fs.put(data, filename=key, metadata={**metadata, "content_type": content_type})

    def exists(self, key: str) -> bool:
        return self.fs.exists(filename=key)

    def get_metadata(self, key: str) -> Dict[str, Any]:
        f = self.fs.find_one({"filename": key})
        if f is None:
            return {}
        meta = dict(f.metadata or {})
        content_type = meta.pop("content_type", None)
        return {"content_type": content_type, "size": f.length, "metadata": meta}

    def read_object(self, key: str) -> bytes:
        return self.fs.get_last_version(filename=key).read()

    def delete_object(self, key: str) -> None:
        for f in self.fs.find({"filename": key}):
            self.fs.delete(f._id)


_storage: Optional[ObjectStorage] = None


def init_object_storage(db: Optional[Database] = None) -> ObjectStorage:
    global _storage
    if _storage is not None:
        return _storage
    common = {"signing_key": settings.JWT_SECRET_KEY, "public_base_url": settings.PUBLIC_BASE_URL}
    backend = settings.STORAGE_BACKEND.strip().lower()
    if backend == "gridfs":
        if db is None:
            raise RuntimeError("GridFS storage needs a database handle")
        _storage = GridFSObjectStorage(db, **common)
    else:
        _storage = LocalObjectStorage(settings.UPLOAD_DIR, **common)
    logger.info("Object storage ready: %s", backend)
    return _storage
