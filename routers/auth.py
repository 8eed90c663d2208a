import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import EmailStr

from database import Collections, DocumentStore
from deps import (CurrentUser, get_current_user, get_identity_provider, get_store, require_student,
                  require_teacher)
from errors import Conflict, InvalidCredential, NotFound, ValidationError
from helpers import format_date, sanitize_string, serialize_doc
from identity import AuthError, IdentityProvider
from schemas import CamelModel, Role, User, to_document

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])

PROFILE_FIELDS = ("name", "avatar")


class RegisterRequest(CamelModel):
    subject_id: str
    name: str
    email: EmailStr
    role: Role


class ProfileUpdate(CamelModel):
    name: Optional[str] = None
    avatar: Optional[str] = None


class VerifyTokenRequest(CamelModel):
    token: Optional[str] = None


class EnrollRequest(CamelModel):
    teacher_id: Optional[str] = None


@router.post("/register", status_code=201)
def register(
    payload: RegisterRequest,
    store: DocumentStore = Depends(get_store),
    identity: IdentityProvider = Depends(get_identity_provider),
):
    subject_id = payload.subject_id.strip()
    name = sanitize_string(payload.name)
    if not subject_id or not name:
        raise ValidationError("Missing required fields: subjectId, name, email, role")

    if store.get(Collections.USERS, subject_id):
        raise Conflict("User already exists")

    user = User(
        name=name,
        email=payload.email.lower().strip(),
        role=payload.role,
        enrolled_teachers=[] if payload.role == "student" else None,
        created_at=format_date(),
    )
    doc = to_document(user)
    if not store.create(Collections.USERS, subject_id, doc):
        raise Conflict("User already exists")

    # role claim mirrors the profile document, which stays authoritative
    identity.set_custom_claims(subject_id, {"role": user.role})
    logger.info("Registered %s %s", user.role, subject_id)
    return {"success": True, "data": serialize_doc({**doc, "id": subject_id}), "message": "User registered successfully"}


@router.get("/me")
def get_me(current: CurrentUser = Depends(get_current_user), store: DocumentStore = Depends(get_store)):
    user = store.get(Collections.USERS, current.uid)
    if not user:
        raise NotFound("User not found")
    return {"success": True, "data": serialize_doc(user)}


@router.put("/me")
def update_me(
    update: ProfileUpdate,
    current: CurrentUser = Depends(get_current_user),
    store: DocumentStore = Depends(get_store),
):
    data = {k: v for k, v in update.model_dump().items() if k in PROFILE_FIELDS and v}
    if "name" in data:
        data["name"] = sanitize_string(data["name"])
    if not data:
        raise ValidationError("No valid updates provided")
    data["updated_at"] = format_date()
    store.update(Collections.USERS, current.uid, data)
    return {"success": True, "data": serialize_doc(store.get(Collections.USERS, current.uid)),
            "message": "Profile updated successfully"}


@router.get("/users")
def list_users(
    role: Optional[str] = Query(None),
    current: CurrentUser = Depends(require_teacher),
    store: DocumentStore = Depends(get_store),
):
    predicates = {"role": role} if role in ("student", "teacher") else {}
    users = store.query(Collections.USERS, predicates)
    return {"success": True, "data": [serialize_doc(u) for u in users]}


@router.get("/users/{user_id}")
def get_user(user_id: str, current: CurrentUser = Depends(get_current_user), store: DocumentStore = Depends(get_store)):
    user = store.get(Collections.USERS, user_id)
    if not user:
        raise NotFound("User not found")
    return {"success": True, "data": serialize_doc(user)}


@router.post("/verify-token")
def verify_token(
    body: VerifyTokenRequest,
    store: DocumentStore = Depends(get_store),
    identity: IdentityProvider = Depends(get_identity_provider),
):
    if not body.token:
        raise ValidationError("Token is required")
    try:
        decoded = identity.verify_token(body.token)
    except AuthError:
        raise InvalidCredential("Invalid token")
    user = store.get(Collections.USERS, decoded["subject"])
    if not user:
        raise NotFound("User not found")
    return {"success": True, "data": {"uid": decoded["subject"], "email": decoded.get("email"), "user": serialize_doc(user)}}


@router.get("/teachers")
def list_teachers(current: CurrentUser = Depends(get_current_user), store: DocumentStore = Depends(get_store)):
    teachers = store.query(Collections.USERS, {"role": "teacher"})
    return {"success": True, "data": [serialize_doc(t) for t in teachers]}


@router.post("/enroll")
def enroll(
    body: EnrollRequest,
    current: CurrentUser = Depends(require_student),
    store: DocumentStore = Depends(get_store),
):
    if not body.teacher_id:
        raise ValidationError("Teacher ID is required")
    teacher = store.get(Collections.USERS, body.teacher_id)
    if not teacher or teacher.get("role") != "teacher":
        raise NotFound("Teacher not found")

    student = store.get(Collections.USERS, current.uid) or {}
    enrolled = list(student.get("enrolled_teachers") or [])
    if body.teacher_id in enrolled:
        raise Conflict("Already enrolled with this teacher")
    store.update(Collections.USERS, current.uid, {"enrolled_teachers": enrolled + [body.teacher_id],
                                                  "updated_at": format_date()})
    return {"success": True, "message": "Successfully enrolled"}


@router.delete("/enroll/{teacher_id}")
def unenroll(teacher_id: str, current: CurrentUser = Depends(require_student), store: DocumentStore = Depends(get_store)):
    student = store.get(Collections.USERS, current.uid) or {}
    enrolled = [t for t in (student.get("enrolled_teachers") or []) if t != teacher_id]
    store.update(Collections.USERS, current.uid, {"enrolled_teachers": enrolled, "updated_at": format_date()})
    return {"success": True, "message": "Successfully unenrolled"}
