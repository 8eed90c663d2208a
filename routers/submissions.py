import logging
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from database import Collections, DocumentStore
from deps import CurrentUser, get_current_user, get_store, pagination, require_student, require_teacher
from errors import AttemptsExhausted, Conflict, Forbidden, NotFound, ValidationError
from helpers import format_date, is_overdue, paginate, serialize_doc, sort_docs
from schemas import CamelModel, Submission, SubmissionAttempt, to_document

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/submissions", tags=["submissions"])


class SubmissionCreate(CamelModel):
    assignment_id: Optional[str] = None
    text_content: Optional[str] = None
    file_url: Optional[str] = None
    integrity_confirmed: bool = False


def submission_id_for(assignment_id: str, student_id: str) -> str:
    """One submission per (assignment, student): the pair is the document id."""
    return f"{assignment_id}_{student_id}"


def attach_grade_and_feedback(store: DocumentStore, submission: dict, user: CurrentUser) -> dict:
    grade = store.get(Collections.GRADES, submission["grade_id"]) if submission.get("grade_id") else None
    if grade and user.role == "student" and grade.get("status") != "finalized":
        grade = None
    feedback = store.get(Collections.FEEDBACK, submission["feedback_id"]) if submission.get("feedback_id") else None
    return {**submission, "grade": grade, "feedback": feedback}


def newest_first(submissions: List[dict]) -> List[dict]:
    return sort_docs(submissions, "submitted_at", descending=True)


def teacher_assignment_ids(store: DocumentStore, teacher_id: str) -> List[str]:
    return [a["id"] for a in store.query(Collections.ASSIGNMENTS, {"teacher_id": teacher_id})]


@router.get("")
def list_submissions(
    assignment_id: Optional[str] = Query(None, alias="assignmentId"),
    student_id: Optional[str] = Query(None, alias="studentId"),
    status: Optional[str] = Query(None),
    page_params: Dict[str, int] = Depends(pagination),
    current: CurrentUser = Depends(get_current_user),
    store: DocumentStore = Depends(get_store),
):
    page, limit = page_params["page"], page_params["limit"]

    if current.role == "student":
        predicates = {"student_id": current.uid}
        if assignment_id:
            predicates["assignment_id"] = assignment_id
        submissions = store.query(Collections.SUBMISSIONS, predicates)
    else:
        owned = teacher_assignment_ids(store, current.uid)
        if assignment_id:
            owned = [a for a in owned if a == assignment_id]
        if not owned:
            return {"success": True, "data": paginate([], page, limit)}
        predicates = {"student_id": student_id} if student_id else None
        submissions = store.query_in(Collections.SUBMISSIONS, "assignment_id", owned, predicates)

    if status:
        submissions = [s for s in submissions if s.get("status") == status]
    submissions = newest_first(submissions)
    data = [serialize_doc(attach_grade_and_feedback(store, s, current)) for s in submissions]
    return {"success": True, "data": paginate(data, page, limit)}


@router.get("/assignment/{assignment_id}")
def submissions_for_assignment(
    assignment_id: str,
    page_params: Dict[str, int] = Depends(pagination),
    current: CurrentUser = Depends(require_teacher),
    store: DocumentStore = Depends(get_store),
):
    assignment = store.get(Collections.ASSIGNMENTS, assignment_id)
    if not assignment:
        raise NotFound("Assignment not found")
    if assignment.get("teacher_id") != current.uid:
        raise Forbidden()

    submissions = newest_first(store.query(Collections.SUBMISSIONS, {"assignment_id": assignment_id}))
    result = paginate(submissions, page_params["page"], page_params["limit"])
    result["data"] = [serialize_doc(attach_grade_and_feedback(store, s, current)) for s in result["data"]]
    return {"success": True, "data": result}


@router.get("/student/{student_id}")
def submissions_for_student(
    student_id: str,
    page_params: Dict[str, int] = Depends(pagination),
    current: CurrentUser = Depends(require_teacher),
    store: DocumentStore = Depends(get_store),
):
    owned = set(teacher_assignment_ids(store, current.uid))
    submissions = [
        s for s in store.query(Collections.SUBMISSIONS, {"student_id": student_id})
        if s.get("assignment_id") in owned
    ]
    data = [serialize_doc(s) for s in newest_first(submissions)]
    return {"success": True, "data": paginate(data, page_params["page"], page_params["limit"])}


@router.get("/{submission_id}")
def get_submission(submission_id: str, current: CurrentUser = Depends(get_current_user),
                   store: DocumentStore = Depends(get_store)):
    submission = store.get(Collections.SUBMISSIONS, submission_id)
    if not submission:
        raise NotFound("Submission not found")

    if current.role == "student" and submission.get("student_id") != current.uid:
        raise Forbidden()
    if current.role == "teacher":
        assignment = store.get(Collections.ASSIGNMENTS, submission["assignment_id"])
        if not assignment or assignment.get("teacher_id") != current.uid:
            raise Forbidden()

    return {"success": True, "data": serialize_doc(attach_grade_and_feedback(store, submission, current))}


@router.post("", status_code=201)
def submit(
    body: SubmissionCreate,
    current: CurrentUser = Depends(require_student),
    store: DocumentStore = Depends(get_store),
):
    """Create attempt 1, or append the next attempt to the existing submission.

    Returns 201 for a first attempt and 200 for a re-submission.
    """
    if not body.assignment_id:
        raise ValidationError("Assignment ID is required")
    if not body.text_content and not body.file_url:
        raise ValidationError("Either text content or file is required")
    if not body.integrity_confirmed:
        raise ValidationError("Academic integrity must be confirmed")

    assignment = store.get(Collections.ASSIGNMENTS, body.assignment_id)
    if not assignment:
        raise NotFound("Assignment not found")
    if assignment.get("status") != "published":
        raise ValidationError("Cannot submit to this assignment")

    late = is_overdue(assignment["due_date"])
    if late and not assignment.get("allow_late_submission"):
        raise ValidationError("Late submissions are not allowed for this assignment")

    now = format_date()
    status = "late" if late else "submitted"
    content = {k: v for k, v in (("text_content", body.text_content), ("file_url", body.file_url)) if v}
    submission_id = submission_id_for(body.assignment_id, current.uid)
    max_attempts = assignment.get("max_attempts") or 1

    existing = store.get(Collections.SUBMISSIONS, submission_id)
    if existing is None:
        submission = Submission(
            assignment_id=body.assignment_id,
            student_id=current.uid,
            student_name=current.name,
            submitted_at=now,
            status=status,
            attempt_history=[SubmissionAttempt(attempt_number=1, submitted_at=now, **content)],
            current_attempt=1,
            integrity_confirmed=True,
            **content,
        )
        doc = to_document(submission)
        if store.create(Collections.SUBMISSIONS, submission_id, doc):
            logger.info("Submission %s created (attempt 1, %s)", submission_id, status)
            return {"success": True, "data": serialize_doc({**doc, "id": submission_id}),
                    "message": "Submission created successfully"}
        # lost the race for attempt 1; continue as a re-submission
        existing = store.get(Collections.SUBMISSIONS, submission_id)
        if existing is None:
            raise Conflict("Submission changed concurrently, please retry")

    current_attempt = existing.get("current_attempt") or 0
    if current_attempt >= max_attempts:
        raise AttemptsExhausted(f"Maximum attempts ({max_attempts}) reached")

    attempt = SubmissionAttempt(attempt_number=current_attempt + 1, submitted_at=now, **content)
    fields = {
        "submitted_at": now,
        "status": status,
        "attempt_history": list(existing.get("attempt_history") or []) + [attempt.model_dump(exclude_none=True)],
        "current_attempt": current_attempt + 1,
        "integrity_confirmed": True,
        **content,
    }
    if not store.compare_and_set(Collections.SUBMISSIONS, submission_id, {"current_attempt": current_attempt}, fields):
        raise Conflict("Submission changed concurrently, please retry")

    logger.info("Submission %s updated (attempt %d, %s)", submission_id, current_attempt + 1, status)
    updated = store.get(Collections.SUBMISSIONS, submission_id)
    return JSONResponse(content={"success": True, "data": serialize_doc(updated),
                                 "message": "Submission updated successfully"})
