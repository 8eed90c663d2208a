"""FastAPI dependencies: collaborator handles, the current caller, paging.

Handles are built once per process (database.init_store and friends) and
handed to routes through Depends, so tests swap them with
``app.dependency_overrides``.
"""
import logging
from typing import Dict, Optional

from fastapi import Depends, Header, Query
from pydantic import BaseModel
from pymongo.errors import PyMongoError

from database import Collections, DocumentStore, init_store
from errors import Forbidden, Internal, InvalidCredential, Unauthenticated, UserRecordMissing
from helpers import get_pagination_params
from identity import AuthError, IdentityProvider
from schemas import Role
from storage import ObjectStorage, init_object_storage

logger = logging.getLogger(__name__)

_identity: Optional[IdentityProvider] = None


class CurrentUser(BaseModel):
    uid: str
    email: str
    role: Role
    name: str


def get_store() -> DocumentStore:
    try:
        return init_store()
    except PyMongoError as e:
        logger.exception("Document store unavailable")
        raise Internal("Database unavailable") from e


def get_identity_provider(store: DocumentStore = Depends(get_store)) -> IdentityProvider:
    global _identity
    if _identity is None:
        _identity = IdentityProvider.from_settings(store)
    return _identity


def get_object_storage(store: DocumentStore = Depends(get_store)) -> ObjectStorage:
    return init_object_storage(store.db)


def _bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer":
        return None
    return token.strip() or None


def resolve_user(token: str, store: DocumentStore, identity: IdentityProvider) -> CurrentUser:
    try:
        decoded = identity.verify_token(token)
    except AuthError as e:
        raise InvalidCredential(str(e))
    user = store.get(Collections.USERS, decoded["subject"])
    if not user:
        raise UserRecordMissing()
    return CurrentUser(
        uid=decoded["subject"],
        email=decoded.get("email") or user.get("email") or "",
        role=user.get("role") or "student",
        name=user.get("name") or "",
    )


def get_current_user(
    authorization: Optional[str] = Header(None),
    store: DocumentStore = Depends(get_store),
    identity: IdentityProvider = Depends(get_identity_provider),
) -> CurrentUser:
    if not authorization or not authorization.startswith("Bearer "):
        raise Unauthenticated("No token provided. Authorization header must be Bearer token.")
    token = _bearer_token(authorization)
    if not token:
        raise Unauthenticated("Invalid token format")
    return resolve_user(token, store, identity)


def get_current_user_optional(
    authorization: Optional[str] = Header(None),
    store: DocumentStore = Depends(get_store),
    identity: IdentityProvider = Depends(get_identity_provider),
) -> Optional[CurrentUser]:
    token = _bearer_token(authorization)
    if not token:
        return None
    try:
        return resolve_user(token, store, identity)
    except Unauthenticated:
        return None


def require_role(*roles: str):
    def checker(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        if user.role not in roles:
            raise Forbidden(f"Access denied. Required role: {' or '.join(roles)}")
        return user
    return checker


require_teacher = require_role("teacher")
require_student = require_role("student")


def pagination(page: Optional[str] = Query(None), limit: Optional[str] = Query(None)) -> Dict[str, int]:
    return get_pagination_params(page, limit)
