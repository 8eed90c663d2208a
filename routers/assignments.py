import logging
from datetime import datetime
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import Field

from config import settings
from database import Collections, DocumentStore
from deps import CurrentUser, get_current_user, get_store, pagination, require_teacher
from errors import Forbidden, NotFound, ValidationError
from helpers import (calculate_priority, format_date, generate_id, is_overdue, paginate, sanitize_string,
                     serialize_doc, sort_docs)
from schemas import (VISIBLE_ASSIGNMENT_STATUSES, Assignment, AssignmentStatus, CamelModel, Difficulty,
                     RubricCriterion, to_document)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/assignments", tags=["assignments"])


class AssignmentCreate(CamelModel):
    title: str
    description: str
    due_date: datetime
    difficulty: Difficulty
    status: Optional[AssignmentStatus] = None
    allow_late_submission: Optional[bool] = None
    max_attempts: Optional[int] = Field(None, ge=1)
    rubric: Optional[List[RubricCriterion]] = None
    attachment_url: Optional[str] = None


class AssignmentUpdate(CamelModel):
    title: Optional[str] = None
    description: Optional[str] = None
    due_date: Optional[datetime] = None
    status: Optional[AssignmentStatus] = None
    difficulty: Optional[Difficulty] = None
    allow_late_submission: Optional[bool] = None
    max_attempts: Optional[int] = Field(None, ge=1)
    rubric: Optional[List[RubricCriterion]] = None
    attachment_url: Optional[str] = None


def rubric_documents(assignment_id: str, rubric: List[RubricCriterion]) -> List[dict]:
    docs = []
    for index, criterion in enumerate(rubric):
        doc = criterion.model_dump(exclude_none=True)
        doc.setdefault("id", f"rubric-{assignment_id}-{index}")
        docs.append(doc)
    return docs


def get_owned_assignment(store: DocumentStore, assignment_id: str, user: CurrentUser, action: str) -> dict:
    assignment = store.get(Collections.ASSIGNMENTS, assignment_id)
    if not assignment:
        raise NotFound("Assignment not found")
    if assignment.get("teacher_id") != user.uid:
        raise Forbidden(f"You can only {action} your own assignments")
    return assignment


def visible_assignments_for_student(store: DocumentStore, student_id: str) -> List[dict]:
    """Published or closed assignments from the student's teachers (all teachers when not enrolled)."""
    student = store.get(Collections.USERS, student_id) or {}
    enrolled = student.get("enrolled_teachers") or []
    visible = {"status": {"$in": VISIBLE_ASSIGNMENT_STATUSES}}
    if not enrolled:
        return store.query(Collections.ASSIGNMENTS, visible)
    return store.query_in(Collections.ASSIGNMENTS, "teacher_id", enrolled, visible)


@router.get("")
def list_assignments(
    status: Optional[str] = Query(None),
    teacher_id: Optional[str] = Query(None, alias="teacherId"),
    page_params: Dict[str, int] = Depends(pagination),
    current: CurrentUser = Depends(get_current_user),
    store: DocumentStore = Depends(get_store),
):
    if current.role == "student":
        assignments = visible_assignments_for_student(store, current.uid)
    else:
        predicates = {"teacher_id": teacher_id or current.uid}
        if status:
            predicates["status"] = status
        assignments = store.query(Collections.ASSIGNMENTS, predicates)

    logger.debug("Assignments for %s %s: %d", current.role, current.uid, len(assignments))
    assignments = sort_docs(assignments, "due_date")
    result = paginate([serialize_doc(a) for a in assignments], page_params["page"], page_params["limit"])
    return {"success": True, "data": result}


@router.get("/stats")
def assignment_stats(current: CurrentUser = Depends(get_current_user), store: DocumentStore = Depends(get_store)):
    if current.role == "teacher":
        assignments = store.query(Collections.ASSIGNMENTS, {"teacher_id": current.uid})
        assignment_ids = [a["id"] for a in assignments]
        submissions = store.query_in(Collections.SUBMISSIONS, "assignment_id", assignment_ids)
        grades = store.query_in(Collections.GRADES, "submission_id", [s["id"] for s in submissions])
        graded_ids = {g["submission_id"] for g in grades if g.get("status") != "not-graded"}
        finalized_ids = {g["submission_id"] for g in grades if g.get("status") == "finalized"}
        stats = {
            "totalAssignments": len(assignments),
            "publishedAssignments": sum(1 for a in assignments if a.get("status") == "published"),
            "draftAssignments": sum(1 for a in assignments if a.get("status") == "draft"),
            "totalSubmissions": len(submissions),
            "pendingGrades": sum(1 for s in submissions if s["id"] not in graded_ids),
            "gradedSubmissions": sum(1 for s in submissions if s["id"] in finalized_ids),
        }
        return {"success": True, "data": stats}

    assignments = visible_assignments_for_student(store, current.uid)
    submissions = store.query(Collections.SUBMISSIONS, {"student_id": current.uid})
    submitted_ids = {s["assignment_id"] for s in submissions}
    grades = store.query_in(Collections.GRADES, "submission_id", [s["id"] for s in submissions],
                            {"status": "finalized"})
    scores = [g["numeric_score"] for g in grades if g.get("numeric_score") is not None]
    open_assignments = [a for a in assignments if a["id"] not in submitted_ids]
    stats = {
        "totalAssignments": len(assignments),
        "submittedCount": len(submissions),
        "pendingCount": sum(1 for a in open_assignments if not is_overdue(a["due_date"])),
        "overdueCount": sum(1 for a in open_assignments if is_overdue(a["due_date"])),
        "averageGrade": round(sum(scores) / len(scores)) if scores else None,
    }
    return {"success": True, "data": stats}


@router.get("/{assignment_id}")
def get_assignment(assignment_id: str, current: CurrentUser = Depends(get_current_user),
                   store: DocumentStore = Depends(get_store)):
    assignment = store.get(Collections.ASSIGNMENTS, assignment_id)
    if not assignment:
        raise NotFound("Assignment not found")
    if current.role == "student" and assignment.get("status") not in VISIBLE_ASSIGNMENT_STATUSES:
        raise Forbidden()
    return {"success": True, "data": serialize_doc(assignment)}


@router.post("", status_code=201)
def create_assignment(
    body: AssignmentCreate,
    current: CurrentUser = Depends(require_teacher),
    store: DocumentStore = Depends(get_store),
):
    title = sanitize_string(body.title)
    description = sanitize_string(body.description)
    if not title or not description:
        raise ValidationError("Missing required fields: title, description, dueDate, difficulty")

    assignment_id = generate_id()
    due_date = format_date(body.due_date)
    assignment = Assignment(
        title=title,
        description=description,
        due_date=due_date,
        teacher_id=current.uid,
        teacher_name=current.name,
        status=body.status or "published",
        priority=calculate_priority(due_date),
        difficulty=body.difficulty,
        allow_late_submission=True if body.allow_late_submission is None else body.allow_late_submission,
        max_attempts=body.max_attempts or settings.DEFAULT_MAX_ATTEMPTS,
        rubric=rubric_documents(assignment_id, body.rubric) if body.rubric else None,
        attachment_url=body.attachment_url or None,
        created_at=format_date(),
    )
    doc = store.set(Collections.ASSIGNMENTS, assignment_id, to_document(assignment))
    logger.info("Assignment %s created by %s", assignment_id, current.uid)
    return {"success": True, "data": serialize_doc(doc), "message": "Assignment created successfully"}


@router.put("/{assignment_id}")
def update_assignment(
    assignment_id: str,
    body: AssignmentUpdate,
    current: CurrentUser = Depends(require_teacher),
    store: DocumentStore = Depends(get_store),
):
    get_owned_assignment(store, assignment_id, current, "edit")

    data = {"updated_at": format_date()}
    for field in ("title", "description"):
        value = getattr(body, field)
        if value is None:
            continue
        value = sanitize_string(value)
        if not value:
            raise ValidationError(f"{field.capitalize()} cannot be empty")
        data[field] = value
    if body.due_date:
        data["due_date"] = format_date(body.due_date)
        data["priority"] = calculate_priority(data["due_date"])
    if body.status:
        data["status"] = body.status
    if body.difficulty:
        data["difficulty"] = body.difficulty
    if body.allow_late_submission is not None:
        data["allow_late_submission"] = body.allow_late_submission
    if body.max_attempts is not None:
        data["max_attempts"] = body.max_attempts
    if body.rubric is not None:
        data["rubric"] = rubric_documents(assignment_id, body.rubric)
    if body.attachment_url is not None:
        data["attachment_url"] = body.attachment_url

    store.update(Collections.ASSIGNMENTS, assignment_id, data)
    updated = store.get(Collections.ASSIGNMENTS, assignment_id)
    return {"success": True, "data": serialize_doc(updated), "message": "Assignment updated successfully"}


@router.delete("/{assignment_id}")
def delete_assignment(assignment_id: str, current: CurrentUser = Depends(require_teacher),
                      store: DocumentStore = Depends(get_store)):
    get_owned_assignment(store, assignment_id, current, "delete")
    # submissions first, assignment last
    removed = store.delete_where(Collections.SUBMISSIONS, {"assignment_id": assignment_id})
    store.delete(Collections.ASSIGNMENTS, assignment_id)
    logger.info("Assignment %s deleted with %d submissions", assignment_id, removed)
    return {"success": True, "message": "Assignment deleted successfully"}


def _set_status(store: DocumentStore, assignment_id: str, status: str) -> dict:
    store.update(Collections.ASSIGNMENTS, assignment_id, {"status": status, "updated_at": format_date()})
    return serialize_doc(store.get(Collections.ASSIGNMENTS, assignment_id))


@router.post("/{assignment_id}/close")
def close_assignment(assignment_id: str, current: CurrentUser = Depends(require_teacher),
                     store: DocumentStore = Depends(get_store)):
    get_owned_assignment(store, assignment_id, current, "close")
    return {"success": True, "data": _set_status(store, assignment_id, "closed"),
            "message": "Assignment closed successfully"}


@router.post("/{assignment_id}/publish")
def publish_assignment(assignment_id: str, current: CurrentUser = Depends(require_teacher),
                       store: DocumentStore = Depends(get_store)):
    get_owned_assignment(store, assignment_id, current, "publish")
    return {"success": True, "data": _set_status(store, assignment_id, "published"),
            "message": "Assignment published successfully"}
