"""Grades, feedback and grade review requests.

A submission points at its grade and feedback through ``grade_id`` and
``feedback_id``; a grade points at its open review request through
``pending_review_request_id``. Each of these back-references is claimed with a
compare-and-set on the owning document, so two racing creators cannot both win.
"""
import logging
from typing import Any, Dict, List, Optional, Union

from fastapi import APIRouter, Depends, Query

from database import Collections, DocumentStore
from deps import CurrentUser, get_current_user, get_store, pagination, require_student, require_teacher
from errors import Conflict, Forbidden, NotFound, ValidationError
from helpers import (calculate_letter_grade, calculate_rubric_total, format_date, generate_id, paginate,
                     sanitize_string, serialize_doc, sort_docs)
from schemas import (CamelModel, Feedback, FeedbackStatus, Grade, GradeReviewRequest, GradeStatus, LetterGrade,
                     RubricScore, to_document)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/grading", tags=["grading"])


class GradeCreate(CamelModel):
    submission_id: Optional[str] = None
    numeric_score: Optional[float] = None
    letter_grade: Optional[LetterGrade] = None
    rubric_scores: Optional[List[RubricScore]] = None
    total_score: Optional[Union[int, float]] = None
    comments: Optional[str] = None
    status: Optional[GradeStatus] = None


class GradeUpdate(CamelModel):
    numeric_score: Optional[float] = None
    letter_grade: Optional[LetterGrade] = None
    rubric_scores: Optional[List[RubricScore]] = None
    total_score: Optional[Union[int, float]] = None
    comments: Optional[str] = None
    status: Optional[GradeStatus] = None


class FeedbackCreate(CamelModel):
    submission_id: Optional[str] = None
    content: Optional[str] = None
    status: Optional[FeedbackStatus] = None


class FeedbackUpdate(CamelModel):
    content: Optional[str] = None
    status: Optional[FeedbackStatus] = None


class ReviewRequestCreate(CamelModel):
    grade_id: Optional[str] = None
    message: Optional[str] = None


class ReviewResponse(CamelModel):
    status: Optional[str] = None
    message: Optional[str] = None


def derive_scores(rubric_scores: Optional[List[RubricScore]], numeric_score: Optional[float],
                  letter_grade: Optional[str], total_score: Optional[Union[int, float]]) -> Dict[str, Any]:
    """Fill in total and letter grade from whatever the grader supplied.

    A rubric always decides the total; the letter grade is derived only when
    none was given, from the rubric total or else the numeric score.
    """
    derived: Dict[str, Any] = {"total_score": total_score, "letter_grade": letter_grade}
    if rubric_scores:
        criteria = [c.model_dump(exclude_none=True) for c in rubric_scores]
        derived["rubric_scores"] = criteria
        derived["total_score"] = calculate_rubric_total(criteria)
        if not letter_grade:
            derived["letter_grade"] = calculate_letter_grade(derived["total_score"])
    elif numeric_score is not None and not letter_grade:
        derived["letter_grade"] = calculate_letter_grade(numeric_score)
    return derived


def owned_submission(store: DocumentStore, submission_id: str, teacher: CurrentUser, message: str) -> dict:
    submission = store.get(Collections.SUBMISSIONS, submission_id)
    if not submission:
        raise NotFound("Submission not found")
    assignment = store.get(Collections.ASSIGNMENTS, submission["assignment_id"])
    if not assignment or assignment.get("teacher_id") != teacher.uid:
        raise Forbidden(message)
    return submission


# ----------------------
# Grades
# ----------------------
@router.get("/grades")
def list_grades(
    status: Optional[str] = Query(None),
    page_params: Dict[str, int] = Depends(pagination),
    current: CurrentUser = Depends(get_current_user),
    store: DocumentStore = Depends(get_store),
):
    if current.role == "student":
        submissions = store.query(Collections.SUBMISSIONS, {"student_id": current.uid})
        # students only ever see published grades
        predicates = {"status": "finalized"}
    else:
        assignment_ids = [a["id"] for a in store.query(Collections.ASSIGNMENTS, {"teacher_id": current.uid})]
        submissions = store.query_in(Collections.SUBMISSIONS, "assignment_id", assignment_ids)
        predicates = {"status": status} if status else None

    grades = store.query_in(Collections.GRADES, "submission_id", [s["id"] for s in submissions], predicates)
    grades = sort_docs(grades, "graded_at", descending=True)
    result = paginate([serialize_doc(g) for g in grades], page_params["page"], page_params["limit"])
    return {"success": True, "data": result}


@router.get("/grades/{grade_id}")
def get_grade(grade_id: str, current: CurrentUser = Depends(get_current_user),
              store: DocumentStore = Depends(get_store)):
    grade = store.get(Collections.GRADES, grade_id)
    if not grade:
        raise NotFound("Grade not found")
    submission = store.get(Collections.SUBMISSIONS, grade["submission_id"])
    if not submission:
        raise NotFound("Associated submission not found")

    if current.role == "student":
        if submission.get("student_id") != current.uid or grade.get("status") != "finalized":
            raise Forbidden()
    elif grade.get("teacher_id") != current.uid:
        raise Forbidden()
    return {"success": True, "data": serialize_doc(grade)}


@router.post("/grades", status_code=201)
def create_grade(body: GradeCreate, current: CurrentUser = Depends(require_teacher),
                 store: DocumentStore = Depends(get_store)):
    if not body.submission_id:
        raise ValidationError("Submission ID is required")
    submission = owned_submission(store, body.submission_id, current,
                                  "You can only grade submissions for your own assignments")
    if submission.get("grade_id"):
        raise Conflict("Grade already exists. Use PUT to update.")

    now = format_date()
    status = body.status or "draft"
    derived = derive_scores(body.rubric_scores, body.numeric_score, body.letter_grade, body.total_score)
    grade = Grade(
        submission_id=body.submission_id,
        teacher_id=current.uid,
        teacher_name=current.name,
        numeric_score=body.numeric_score,
        comments=sanitize_string(body.comments) if body.comments else None,
        status=status,
        graded_at=now,
        published_at=now if status == "finalized" else None,
        **derived,
    )
    grade_id = generate_id()
    doc = store.set(Collections.GRADES, grade_id, to_document(grade))

    if not store.compare_and_set(Collections.SUBMISSIONS, body.submission_id, {"grade_id": None},
                                 {"grade_id": grade_id}):
        store.delete(Collections.GRADES, grade_id)
        raise Conflict("Grade already exists. Use PUT to update.")

    logger.info("Grade %s created for submission %s", grade_id, body.submission_id)
    return {"success": True, "data": serialize_doc(doc), "message": "Grade created successfully"}


@router.put("/grades/{grade_id}")
def update_grade(grade_id: str, body: GradeUpdate, current: CurrentUser = Depends(require_teacher),
                 store: DocumentStore = Depends(get_store)):
    grade = store.get(Collections.GRADES, grade_id)
    if not grade:
        raise NotFound("Grade not found")
    if grade.get("teacher_id") != current.uid:
        raise Forbidden("You can only update your own grades")

    data: Dict[str, Any] = {}
    if body.numeric_score is not None:
        data["numeric_score"] = body.numeric_score
    if body.total_score is not None:
        data["total_score"] = body.total_score
    if body.letter_grade:
        data["letter_grade"] = body.letter_grade
    if body.rubric_scores is not None:
        data["rubric_scores"] = [c.model_dump(exclude_none=True) for c in body.rubric_scores]
    if body.rubric_scores is not None or (body.numeric_score is not None and not body.letter_grade):
        derived = derive_scores(body.rubric_scores, body.numeric_score, body.letter_grade,
                                data.get("total_score"))
        data.update({k: v for k, v in derived.items() if v is not None})
    if body.comments is not None:
        data["comments"] = sanitize_string(body.comments)
    if body.status:
        data["status"] = body.status
        if body.status == "finalized" and not grade.get("published_at"):
            data["published_at"] = format_date()

    if not data:
        raise ValidationError("No valid fields provided to update")

    store.update(Collections.GRADES, grade_id, data)
    updated = store.get(Collections.GRADES, grade_id)
    return {"success": True, "data": serialize_doc(updated), "message": "Grade updated successfully"}


@router.post("/grades/{grade_id}/publish")
def publish_grade(grade_id: str, current: CurrentUser = Depends(require_teacher),
                  store: DocumentStore = Depends(get_store)):
    grade = store.get(Collections.GRADES, grade_id)
    if not grade:
        raise NotFound("Grade not found")
    if grade.get("teacher_id") != current.uid:
        raise Forbidden("You can only publish your own grades")

    published = store.compare_and_set(Collections.GRADES, grade_id, {"status": {"$ne": "finalized"}},
                                      {"status": "finalized", "published_at": format_date()})
    if not published:
        raise Conflict("Grade is already published")
    logger.info("Grade %s published", grade_id)
    return {"success": True, "data": serialize_doc(store.get(Collections.GRADES, grade_id)),
            "message": "Grade published successfully"}


# ----------------------
# Feedback
# ----------------------
@router.get("/feedback/{submission_id}")
def get_feedback(submission_id: str, current: CurrentUser = Depends(get_current_user),
                 store: DocumentStore = Depends(get_store)):
    submission = store.get(Collections.SUBMISSIONS, submission_id)
    if not submission:
        raise NotFound("Submission not found")
    if current.role == "student":
        if submission.get("student_id") != current.uid:
            raise Forbidden()
    else:
        assignment = store.get(Collections.ASSIGNMENTS, submission["assignment_id"])
        if not assignment or assignment.get("teacher_id") != current.uid:
            raise Forbidden()

    feedback = store.get(Collections.FEEDBACK, submission["feedback_id"]) if submission.get("feedback_id") else None
    return {"success": True, "data": serialize_doc(feedback)}


@router.post("/feedback", status_code=201)
def create_feedback(body: FeedbackCreate, current: CurrentUser = Depends(require_teacher),
                    store: DocumentStore = Depends(get_store)):
    content = sanitize_string(body.content) if body.content else ""
    if not body.submission_id or not content:
        raise ValidationError("Submission ID and content are required")
    submission = owned_submission(store, body.submission_id, current,
                                  "You can only add feedback to your own assignments")
    if submission.get("feedback_id"):
        raise Conflict("Feedback already exists. Use PUT to update.")

    feedback = Feedback(
        submission_id=body.submission_id,
        teacher_id=current.uid,
        teacher_name=current.name,
        content=content,
        status=body.status or "reviewed",
        created_at=format_date(),
    )
    feedback_id = generate_id()
    doc = store.set(Collections.FEEDBACK, feedback_id, to_document(feedback))

    if not store.compare_and_set(Collections.SUBMISSIONS, body.submission_id, {"feedback_id": None},
                                 {"feedback_id": feedback_id}):
        store.delete(Collections.FEEDBACK, feedback_id)
        raise Conflict("Feedback already exists. Use PUT to update.")

    return {"success": True, "data": serialize_doc(doc), "message": "Feedback added successfully"}


@router.put("/feedback/{feedback_id}")
def update_feedback(feedback_id: str, body: FeedbackUpdate, current: CurrentUser = Depends(require_teacher),
                    store: DocumentStore = Depends(get_store)):
    feedback = store.get(Collections.FEEDBACK, feedback_id)
    if not feedback:
        raise NotFound("Feedback not found")
    if feedback.get("teacher_id") != current.uid:
        raise Forbidden("You can only update your own feedback")

    data = {"updated_at": format_date()}
    if body.content:
        data["content"] = sanitize_string(body.content)
    if body.status:
        data["status"] = body.status
    store.update(Collections.FEEDBACK, feedback_id, data)
    return {"success": True, "data": serialize_doc(store.get(Collections.FEEDBACK, feedback_id)),
            "message": "Feedback updated successfully"}


# ----------------------
# Review requests
# ----------------------
@router.get("/review-requests")
def list_review_requests(
    status: Optional[str] = Query(None),
    page_params: Dict[str, int] = Depends(pagination),
    current: CurrentUser = Depends(get_current_user),
    store: DocumentStore = Depends(get_store),
):
    owner_field = "student_id" if current.role == "student" else "teacher_id"
    predicates = {owner_field: current.uid}
    if status:
        predicates["status"] = status
    requests = sort_docs(store.query(Collections.GRADE_REVIEW_REQUESTS, predicates), "created_at", descending=True)
    result = paginate([serialize_doc(r) for r in requests], page_params["page"], page_params["limit"])
    return {"success": True, "data": result}


@router.post("/review-requests", status_code=201)
def create_review_request(body: ReviewRequestCreate, current: CurrentUser = Depends(require_student),
                          store: DocumentStore = Depends(get_store)):
    message = sanitize_string(body.message) if body.message else ""
    if not body.grade_id or not message:
        raise ValidationError("Grade ID and message are required")

    grade = store.get(Collections.GRADES, body.grade_id)
    if not grade:
        raise NotFound("Grade not found")
    submission = store.get(Collections.SUBMISSIONS, grade["submission_id"])
    if not submission:
        raise NotFound("Submission not found")
    if submission.get("student_id") != current.uid:
        raise Forbidden("You can only request review for your own grades")
    if grade.get("status") != "finalized":
        raise ValidationError("Only published grades can be reviewed")
    if grade.get("pending_review_request_id"):
        raise Conflict("A pending review request already exists for this grade")

    assignment = store.get(Collections.ASSIGNMENTS, submission["assignment_id"]) or {}
    request = GradeReviewRequest(
        grade_id=body.grade_id,
        student_id=current.uid,
        student_name=current.name,
        assignment_id=submission["assignment_id"],
        assignment_title=assignment.get("title", ""),
        teacher_id=grade["teacher_id"],
        message=message,
        created_at=format_date(),
    )
    request_id = generate_id()
    doc = store.set(Collections.GRADE_REVIEW_REQUESTS, request_id, to_document(request))

    if not store.compare_and_set(Collections.GRADES, body.grade_id, {"pending_review_request_id": None},
                                 {"pending_review_request_id": request_id}):
        store.delete(Collections.GRADE_REVIEW_REQUESTS, request_id)
        raise Conflict("A pending review request already exists for this grade")

    logger.info("Review request %s opened on grade %s", request_id, body.grade_id)
    return {"success": True, "data": serialize_doc(doc), "message": "Review request submitted successfully"}


@router.put("/review-requests/{request_id}/respond")
def respond_to_review_request(request_id: str, body: ReviewResponse, current: CurrentUser = Depends(require_teacher),
                              store: DocumentStore = Depends(get_store)):
    if body.status not in ("accepted", "declined"):
        raise ValidationError("Valid status (accepted/declined) is required")

    request = store.get(Collections.GRADE_REVIEW_REQUESTS, request_id)
    if not request:
        raise NotFound("Review request not found")
    if request.get("teacher_id") != current.uid:
        raise Forbidden("You can only respond to your own review requests")

    responded = store.compare_and_set(
        Collections.GRADE_REVIEW_REQUESTS, request_id, {"status": "pending"},
        {"status": body.status, "responded_at": format_date(),
         "response_message": sanitize_string(body.message) if body.message else None},
    )
    if not responded:
        raise Conflict("Review request has already been responded to")

    # frees the grade for a new request
    store.compare_and_set(Collections.GRADES, request["grade_id"], {"pending_review_request_id": request_id},
                          {"pending_review_request_id": None})
    logger.info("Review request %s %s", request_id, body.status)
    return {"success": True, "data": serialize_doc(store.get(Collections.GRADE_REVIEW_REQUESTS, request_id)),
            "message": f"Review request {body.status}"}
