"""
Database Schemas for the assignment manager

Each Pydantic model corresponds to one document-store collection (see
database.Collections). Documents are stored with snake_case keys; request
bodies arrive in camelCase and are parsed with CamelModel.
"""
from typing import List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, EmailStr, Field
from pydantic.alias_generators import to_camel

Role = Literal["student", "teacher"]
AssignmentStatus = Literal["draft", "published", "closed"]
Priority = Literal["low", "medium", "high"]
Difficulty = Literal["easy", "medium", "hard"]
SubmissionStatus = Literal["pending", "submitted", "overdue", "late"]
GradeStatus = Literal["not-graded", "draft", "finalized"]
LetterGrade = Literal["A", "B", "C", "D", "F"]
FeedbackStatus = Literal["reviewed", "needs-improvement", "pending"]
ReviewRequestStatus = Literal["pending", "accepted", "declined"]
AnnouncementType = Literal["global", "assignment"]

# Assignment states a student may see
VISIBLE_ASSIGNMENT_STATUSES = ["published", "closed"]


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class RubricCriterion(CamelModel):
    id: Optional[str] = None
    name: str
    weight: float = Field(..., ge=0, le=100)
    description: Optional[str] = None
    score: Optional[float] = Field(None, ge=0, le=100)


class RubricScore(CamelModel):
    """One scored criterion on a grade. Keys beyond weight and score are kept as sent."""

    model_config = ConfigDict(extra="allow")

    weight: Union[int, float]
    score: Optional[Union[int, float]] = None


class User(BaseModel):
    name: str
    email: EmailStr
    role: Role
    avatar: Optional[str] = None
    enrolled_teachers: Optional[List[str]] = Field(None, description="Teacher ids (students only)")
    created_at: str
    updated_at: Optional[str] = None


class Assignment(BaseModel):
    title: str
    description: str
    due_date: str
    teacher_id: str
    teacher_name: str
    status: AssignmentStatus = "published"
    priority: Priority
    difficulty: Difficulty
    allow_late_submission: bool = True
    max_attempts: int = Field(3, ge=1)
    rubric: Optional[List[dict]] = None
    attachment_url: Optional[str] = None
    created_at: str
    updated_at: Optional[str] = None


class SubmissionAttempt(BaseModel):
    attempt_number: int
    submitted_at: str
    file_url: Optional[str] = None
    text_content: Optional[str] = None


class Submission(BaseModel):
    assignment_id: str
    student_id: str
    student_name: str
    submitted_at: str
    file_url: Optional[str] = None
    text_content: Optional[str] = None
    status: SubmissionStatus
    attempt_history: List[SubmissionAttempt]
    current_attempt: int
    integrity_confirmed: bool
    feedback_id: Optional[str] = None
    grade_id: Optional[str] = None


class Grade(BaseModel):
    submission_id: str
    teacher_id: str
    teacher_name: str
    numeric_score: Optional[float] = None
    letter_grade: Optional[LetterGrade] = None
    rubric_scores: Optional[List[dict]] = None
    total_score: Optional[Union[int, float]] = None
    comments: Optional[str] = None
    status: GradeStatus = "draft"
    graded_at: Optional[str] = None
    published_at: Optional[str] = None
    pending_review_request_id: Optional[str] = None


class Feedback(BaseModel):
    submission_id: str
    teacher_id: str
    teacher_name: str
    content: str
    status: FeedbackStatus = "reviewed"
    created_at: str
    updated_at: Optional[str] = None


class GradeReviewRequest(BaseModel):
    grade_id: str
    student_id: str
    student_name: str
    assignment_id: str
    assignment_title: str
    teacher_id: str
    message: str
    status: ReviewRequestStatus = "pending"
    created_at: str
    responded_at: Optional[str] = None
    response_message: Optional[str] = None


class Announcement(BaseModel):
    title: str
    content: str
    type: AnnouncementType
    assignment_id: Optional[str] = None
    created_by: str
    creator_name: str
    created_at: str
    updated_at: Optional[str] = None


class DismissedAnnouncement(BaseModel):
    announcement_id: str
    user_id: str
    dismissed_at: str


def to_document(model: BaseModel) -> dict:
    """Storage form of an entity: snake_case keys, unset optionals left out."""
    return model.model_dump(exclude_none=True)
