"""SQLModel data models.

This module defines the application's database tables using SQLModel.
Quiz questions and attempt answers are stored as JSON documents on their
parent row; their shape is owned by `coursehub.quizzes`.
"""

import enum
from typing import Optional
from sqlmodel import SQLModel, Field
from sqlalchemy import Column, JSON, UniqueConstraint
from datetime import datetime, timezone
from typing import List


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Role(str, enum.Enum):
    STUDENT = "STUDENT"
    FACULTY = "FACULTY"
    TA = "TA"
    ADMIN = "ADMIN"


class User(SQLModel, table=True):
    """A registered user.

    Fields:
    - `username`: unique login name
    - `password_hash`: hashed password string (never store plaintext)
    - `role`: one of `Role`
    """
    id: Optional[int] = Field(default=None, primary_key=True)
    username: str = Field(index=True, nullable=False, unique=True)
    password_hash: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    section: Optional[str] = None
    role: str = Field(default=Role.STUDENT.value, index=True)
    created_at: datetime = Field(default_factory=_utcnow)


class Course(SQLModel, table=True):
    """A course. `code` is the human-facing identifier, e.g. `CS4550`."""
    id: Optional[int] = Field(default=None, primary_key=True)
    code: str = Field(index=True, unique=True)
    name: str
    description: Optional[str] = None
    department: Optional[str] = None
    credits: Optional[int] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    author_id: Optional[int] = Field(default=None, foreign_key='user.id')
    created_at: datetime = Field(default_factory=_utcnow)


class CourseModule(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    course_id: int = Field(foreign_key='course.id', index=True)
    name: str
    description: Optional[str] = None
    created_at: datetime = Field(default_factory=_utcnow)


class Enrollment(SQLModel, table=True):
    """Membership of a user in a course; one row per (user, course)."""
    __table_args__ = (UniqueConstraint('user_id', 'course_id'),)

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key='user.id', index=True)
    course_id: int = Field(foreign_key='course.id', index=True)
    created_at: datetime = Field(default_factory=_utcnow)


class Assignment(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    course_id: int = Field(foreign_key='course.id', index=True)
    title: str
    description: str = ""
    points: float = 100
    due: Optional[datetime] = None
    available_from: Optional[datetime] = None
    available_until: Optional[datetime] = None
    assignment_type: str = "Assignments"
    grade_display: str = "Percentage"
    created_at: datetime = Field(default_factory=_utcnow)


class Quiz(SQLModel, table=True):
    """A quiz with its questions stored as a JSON list.

    `total_points` is derived from the questions and recomputed by the
    service whenever they change.
    """
    id: Optional[int] = Field(default=None, primary_key=True)
    course_id: int = Field(foreign_key='course.id', index=True)
    creator_id: int = Field(foreign_key='user.id')
    title: str
    description: str = ""
    quiz_type: str = "GRADED_QUIZ"
    total_points: float = 0
    assignment_group: str = "QUIZZES"
    shuffle_answers: bool = True
    time_limit: Optional[int] = 20
    multiple_attempts: bool = False
    attempts_allowed: int = 1
    show_correct_answers: bool = False
    access_code: str = ""
    one_question_at_time: bool = True
    webcam_required: bool = False
    lock_questions_after_answering: bool = False
    due_date: Optional[datetime] = None
    available_date: Optional[datetime] = None
    until_date: Optional[datetime] = None
    published: bool = Field(default=False, index=True)
    questions: List[dict] = Field(default_factory=list, sa_column=Column(JSON))
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)


class Attempt(SQLModel, table=True):
    """A stored quiz attempt; `answers` holds graded answer documents."""
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key='user.id', index=True)
    quiz_id: int = Field(foreign_key='quiz.id', index=True)
    answers: List[dict] = Field(default_factory=list, sa_column=Column(JSON))
    score: float = 0
    completed: bool = False
    start_time: datetime = Field(default_factory=_utcnow)
    end_time: Optional[datetime] = None
