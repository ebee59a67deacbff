"""Pydantic request/response schemas used by the API.

Schemas keep API input/output shapes stable and provide validation for
controller handlers and tests. Quiz questions and answers reuse the
models from `coursehub.quizzes` so the API and the grading core agree on
one shape.
"""

import enum
from datetime import datetime
from typing import List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .models import Role
from .quizzes import Answer, AttemptState, Question, QuizType


class ByReference(BaseModel):
    """Course referenced by primary key."""
    kind: Literal["id"] = "id"
    id: int


class ByCode(BaseModel):
    """Course referenced by its course code."""
    kind: Literal["code"] = "code"
    code: str


CourseRef = Union[ByReference, ByCode]


def parse_course_ref(value: str) -> CourseRef:
    """Interpret a path segment as a course id (all digits) or a course code."""
    value = value.strip()
    if value.isdigit():
        return ByReference(id=int(value))
    return ByCode(code=value)


def _check_course_code(value: Optional[str]) -> Optional[str]:
    # an all-digit code would be read back as a course id
    if value is not None and value.strip().isdigit():
        raise ValueError("course code must contain a non-digit character")
    return value


class AssignmentType(str, enum.Enum):
    ASSIGNMENTS = "Assignments"
    PROJECTS = "Projects"
    QUIZZES = "Quizzes"
    EXAMS = "Exams"


class GradeDisplay(str, enum.Enum):
    PERCENTAGE = "Percentage"
    LETTER = "Letter"


class AssignmentGroup(str, enum.Enum):
    QUIZZES = "QUIZZES"
    EXAMS = "EXAMS"
    ASSIGNMENTS = "ASSIGNMENTS"
    PROJECT = "PROJECT"


class RegisterIn(BaseModel):
    """Payload for user registration."""
    username: str = Field(min_length=1)
    password: str = Field(min_length=1)
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    section: Optional[str] = None
    role: Role = Role.STUDENT


class LoginIn(BaseModel):
    username: str
    password: str


class TokenOut(BaseModel):
    """Authentication response containing an access token."""
    access_token: str


class UserOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    username: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    section: Optional[str] = None
    role: Role
    created_at: datetime


class UserUpdate(BaseModel):
    """Partial user update; only fields that are sent are applied."""
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    section: Optional[str] = None
    password: Optional[str] = Field(default=None, min_length=1)
    role: Optional[Role] = None


class CourseIn(BaseModel):
    code: str = Field(min_length=1)
    name: str = Field(min_length=1)
    description: Optional[str] = None
    department: Optional[str] = None
    credits: Optional[int] = Field(default=None, ge=0)
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None

    @field_validator("code")
    @classmethod
    def check_code(cls, value):
        return _check_course_code(value)


class CourseUpdate(BaseModel):
    code: Optional[str] = Field(default=None, min_length=1)
    name: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    department: Optional[str] = None
    credits: Optional[int] = Field(default=None, ge=0)
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None

    @field_validator("code")
    @classmethod
    def check_code(cls, value):
        return _check_course_code(value)


class CourseOut(CourseIn):
    model_config = ConfigDict(from_attributes=True)

    id: int
    author_id: Optional[int] = None
    created_at: datetime


class ModuleIn(BaseModel):
    name: str = Field(min_length=1)
    description: Optional[str] = None


class ModuleOut(ModuleIn):
    model_config = ConfigDict(from_attributes=True)

    id: int
    course_id: int
    created_at: datetime


class EnrollmentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    course_id: int
    created_at: datetime


class AssignmentIn(BaseModel):
    title: str = Field(min_length=1)
    description: str = ""
    points: float = Field(default=100, ge=0)
    due: Optional[datetime] = None
    available_from: Optional[datetime] = None
    available_until: Optional[datetime] = None
    assignment_type: AssignmentType = AssignmentType.ASSIGNMENTS
    grade_display: GradeDisplay = GradeDisplay.PERCENTAGE


class AssignmentUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    points: Optional[float] = Field(default=None, ge=0)
    due: Optional[datetime] = None
    available_from: Optional[datetime] = None
    available_until: Optional[datetime] = None
    assignment_type: Optional[AssignmentType] = None
    grade_display: Optional[GradeDisplay] = None


class AssignmentOut(AssignmentIn):
    model_config = ConfigDict(from_attributes=True)

    id: int
    course_id: int
    created_at: datetime


class QuizSettings(BaseModel):
    """Quiz configuration shared by create, update and read shapes."""
    description: str = ""
    quiz_type: QuizType = QuizType.GRADED_QUIZ
    assignment_group: AssignmentGroup = AssignmentGroup.QUIZZES
    shuffle_answers: bool = True
    time_limit: Optional[int] = Field(default=20, ge=0)
    multiple_attempts: bool = False
    attempts_allowed: int = Field(default=1, ge=0)
    show_correct_answers: bool = False
    access_code: str = ""
    one_question_at_time: bool = True
    webcam_required: bool = False
    lock_questions_after_answering: bool = False
    due_date: Optional[datetime] = None
    available_date: Optional[datetime] = None
    until_date: Optional[datetime] = None
    published: bool = False


class QuizIn(QuizSettings):
    """Quiz creation payload. `total_points` is derived, never accepted."""
    title: str = Field(min_length=1)
    questions: List[Question] = Field(default_factory=list)


class QuizUpdate(BaseModel):
    """Partial quiz update; sending `questions` replaces the whole list."""
    title: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    quiz_type: Optional[QuizType] = None
    assignment_group: Optional[AssignmentGroup] = None
    shuffle_answers: Optional[bool] = None
    time_limit: Optional[int] = Field(default=None, ge=0)
    multiple_attempts: Optional[bool] = None
    attempts_allowed: Optional[int] = Field(default=None, ge=0)
    show_correct_answers: Optional[bool] = None
    access_code: Optional[str] = None
    one_question_at_time: Optional[bool] = None
    webcam_required: Optional[bool] = None
    lock_questions_after_answering: Optional[bool] = None
    due_date: Optional[datetime] = None
    available_date: Optional[datetime] = None
    until_date: Optional[datetime] = None
    published: Optional[bool] = None
    questions: Optional[List[Question]] = None


class QuizOut(QuizSettings):
    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    course_id: int
    creator_id: int
    total_points: float
    questions: List[dict]
    created_at: datetime
    updated_at: datetime


class AttemptSubmission(BaseModel):
    """Request body for submitting an attempt's answers."""
    answers: List[Answer] = Field(default_factory=list)


class AttemptOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    quiz_id: int
    answers: List[Answer]
    score: float
    completed: bool
    state: AttemptState
    start_time: datetime
    end_time: Optional[datetime] = None
