import logging
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, Query

from database import Collections, DocumentStore
from deps import CurrentUser, get_current_user, get_store, pagination, require_teacher
from errors import Forbidden, NotFound, ValidationError
from helpers import format_date, generate_id, paginate, sanitize_string, serialize_doc, sort_docs, unique_by_id
from routers.assignments import visible_assignments_for_student
from schemas import VISIBLE_ASSIGNMENT_STATUSES, Announcement, AnnouncementType, CamelModel, DismissedAnnouncement, to_document

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/announcements", tags=["announcements"])


class AnnouncementCreate(CamelModel):
    title: Optional[str] = None
    content: Optional[str] = None
    type: Optional[AnnouncementType] = None
    assignment_id: Optional[str] = None


class AnnouncementUpdate(CamelModel):
    title: Optional[str] = None
    content: Optional[str] = None


def dismissal_id(user_id: str, announcement_id: str) -> str:
    return f"{user_id}_{announcement_id}"


def mark_read(store: DocumentStore, user_id: str, announcements: List[dict]) -> List[dict]:
    dismissed = {d["announcement_id"] for d in store.query(Collections.DISMISSED_ANNOUNCEMENTS, {"user_id": user_id})}
    return [{**a, "is_read": a["id"] in dismissed} for a in announcements]


def newest_first(announcements: List[dict]) -> List[dict]:
    return sort_docs(announcements, "created_at", descending=True)


def get_owned_announcement(store: DocumentStore, announcement_id: str, user: CurrentUser, action: str) -> dict:
    announcement = store.get(Collections.ANNOUNCEMENTS, announcement_id)
    if not announcement:
        raise NotFound("Announcement not found")
    if announcement.get("created_by") != user.uid:
        raise Forbidden(f"You can only {action} your own announcements")
    return announcement


@router.get("")
def list_announcements(
    type: Optional[str] = Query(None),
    assignment_id: Optional[str] = Query(None, alias="assignmentId"),
    page_params: Dict[str, int] = Depends(pagination),
    current: CurrentUser = Depends(get_current_user),
    store: DocumentStore = Depends(get_store),
):
    announcements: List[dict] = []

    if not type or type == "global":
        announcements += store.query(Collections.ANNOUNCEMENTS, {"type": "global"})

    if not type or type == "assignment":
        if assignment_id:
            announcements += store.query(Collections.ANNOUNCEMENTS,
                                         {"type": "assignment", "assignment_id": assignment_id})
        elif current.role == "student":
            assignment_ids = [a["id"] for a in visible_assignments_for_student(store, current.uid)]
            announcements += store.query_in(Collections.ANNOUNCEMENTS, "assignment_id", assignment_ids,
                                            {"type": "assignment"})
        else:
            announcements += store.query(Collections.ANNOUNCEMENTS, {"type": "assignment", "created_by": current.uid})

    announcements = mark_read(store, current.uid, newest_first(unique_by_id(announcements)))
    result = paginate([serialize_doc(a) for a in announcements], page_params["page"], page_params["limit"])
    return {"success": True, "data": result}


@router.get("/assignment/{assignment_id}")
def announcements_for_assignment(assignment_id: str, current: CurrentUser = Depends(get_current_user),
                                 store: DocumentStore = Depends(get_store)):
    assignment = store.get(Collections.ASSIGNMENTS, assignment_id)
    if not assignment:
        raise NotFound("Assignment not found")
    if current.role == "student" and assignment.get("status") not in VISIBLE_ASSIGNMENT_STATUSES:
        raise Forbidden()

    announcements = newest_first(store.query(Collections.ANNOUNCEMENTS, {"assignment_id": assignment_id}))
    return {"success": True, "data": [serialize_doc(a) for a in mark_read(store, current.uid, announcements)]}


@router.get("/{announcement_id}")
def get_announcement(announcement_id: str, current: CurrentUser = Depends(get_current_user),
                     store: DocumentStore = Depends(get_store)):
    announcement = store.get(Collections.ANNOUNCEMENTS, announcement_id)
    if not announcement:
        raise NotFound("Announcement not found")
    return {"success": True, "data": serialize_doc(mark_read(store, current.uid, [announcement])[0])}


@router.post("", status_code=201)
def create_announcement(body: AnnouncementCreate, current: CurrentUser = Depends(require_teacher),
                        store: DocumentStore = Depends(get_store)):
    title = sanitize_string(body.title) if body.title else ""
    content = sanitize_string(body.content) if body.content else ""
    if not title or not content or not body.type:
        raise ValidationError("Missing required fields: title, content, type")

    if body.type == "assignment":
        if not body.assignment_id:
            raise ValidationError("Assignment ID is required for assignment-type announcements")
        assignment = store.get(Collections.ASSIGNMENTS, body.assignment_id)
        if not assignment:
            raise NotFound("Assignment not found")
        if assignment.get("teacher_id") != current.uid:
            raise Forbidden("You can only create announcements for your own assignments")

    announcement = Announcement(
        title=title,
        content=content,
        type=body.type,
        assignment_id=body.assignment_id if body.type == "assignment" else None,
        created_by=current.uid,
        creator_name=current.name,
        created_at=format_date(),
    )
    announcement_id = generate_id()
    doc = store.set(Collections.ANNOUNCEMENTS, announcement_id, to_document(announcement))
    logger.info("Announcement %s (%s) created by %s", announcement_id, body.type, current.uid)
    return {"success": True, "data": serialize_doc(doc), "message": "Announcement created successfully"}


@router.put("/{announcement_id}")
def update_announcement(announcement_id: str, body: AnnouncementUpdate, current: CurrentUser = Depends(require_teacher),
                        store: DocumentStore = Depends(get_store)):
    get_owned_announcement(store, announcement_id, current, "edit")
    data = {"updated_at": format_date()}
    if body.title:
        data["title"] = sanitize_string(body.title)
    if body.content:
        data["content"] = sanitize_string(body.content)
    store.update(Collections.ANNOUNCEMENTS, announcement_id, data)
    return {"success": True, "data": serialize_doc(store.get(Collections.ANNOUNCEMENTS, announcement_id)),
            "message": "Announcement updated successfully"}


@router.delete("/{announcement_id}")
def delete_announcement(announcement_id: str, current: CurrentUser = Depends(require_teacher),
                        store: DocumentStore = Depends(get_store)):
    get_owned_announcement(store, announcement_id, current, "delete")
    store.delete(Collections.ANNOUNCEMENTS, announcement_id)
    return {"success": True, "message": "Announcement deleted successfully"}


@router.post("/{announcement_id}/dismiss")
def dismiss_announcement(announcement_id: str, current: CurrentUser = Depends(get_current_user),
                         store: DocumentStore = Depends(get_store)):
    if not store.get(Collections.ANNOUNCEMENTS, announcement_id):
        raise NotFound("Announcement not found")
    marker = DismissedAnnouncement(announcement_id=announcement_id, user_id=current.uid, dismissed_at=format_date())
    store.set(Collections.DISMISSED_ANNOUNCEMENTS, dismissal_id(current.uid, announcement_id), to_document(marker))
    return {"success": True, "message": "Announcement dismissed"}
