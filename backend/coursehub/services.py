"""Business logic services used by HTTP controllers.

This module holds small service classes that coordinate repositories and
the quiz grading core. Services are intentionally thin: they check
permissions, execute domain logic and persist aggregates via
repositories. The authenticated user is always passed in explicitly by
the caller.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import List, Optional

import jwt
from passlib.context import CryptContext
from sqlmodel import Session

from . import models, repositories
from .config import settings
from .errors import ConflictError, ForbiddenError, NotFoundError
from .models import Role
from .quizzes import Answer, AttemptRecord, QuizDefinition, grade, may_start_attempt
from .schemas import (
    AssignmentIn,
    AssignmentUpdate,
    CourseIn,
    CourseRef,
    CourseUpdate,
    ModuleIn,
    QuizIn,
    QuizUpdate,
    RegisterIn,
    UserUpdate,
)

PWD_CTX = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

# roles that manage course content
EDITOR_ROLES = {Role.FACULTY.value, Role.ADMIN.value}
# roles that may see drafts and answer keys
STAFF_ROLES = EDITOR_ROLES | {Role.TA.value}

logger = logging.getLogger("coursehub.services")


def require_role(user: models.User, roles, action: str) -> None:
    """Raise `ForbiddenError` unless `user` holds one of `roles`."""
    if user.role not in roles:
        raise ForbiddenError(f"not allowed to {action}")


def is_staff(user: models.User) -> bool:
    return user.role in STAFF_ROLES


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _apply_changes(row, changes: dict) -> None:
    """Copy a partial update onto `row`; null is refused for NOT NULL columns."""
    columns = row.__table__.columns
    for field, value in changes.items():
        column = columns.get(field)
        if value is None and column is not None and not column.nullable:
            raise ValueError(f"{field} cannot be null")
    for field, value in changes.items():
        if hasattr(value, "value"):
            value = value.value
        setattr(row, field, value)


class AuthService:
    """Authentication related operations (register + authenticate)."""
    def __init__(self, session: Session):
        self.session = session
        self.user_repo = repositories.UserRepository(session)

    def register(self, payload: RegisterIn) -> models.User:
        """Create a new user with a hashed password.

        Raises `ConflictError` when the username is taken and
        `ForbiddenError` for self-registration as an administrator.
        """
        if payload.role == Role.ADMIN:
            raise ForbiddenError("administrators cannot self-register")
        if self.user_repo.get_by_username(payload.username):
            raise ConflictError("username already taken")
        u = models.User(
            username=payload.username,
            password_hash=PWD_CTX.hash(payload.password),
            first_name=payload.first_name,
            last_name=payload.last_name,
            email=payload.email,
            section=payload.section,
            role=payload.role.value,
        )
        user = self.user_repo.create(u)
        logger.info("user registered id=%s role=%s", user.id, user.role)
        return user

    def authenticate(self, username: str, password: str) -> Optional[str]:
        """Verify credentials and return a signed JWT token on success.

        Returns `None` if authentication fails.
        """
        user = self.user_repo.get_by_username(username)
        if not user:
            return None
        if not PWD_CTX.verify(password, user.password_hash):
            return None
        return issue_token(user)


def issue_token(user: models.User) -> str:
    expire = _utcnow() + timedelta(hours=settings.JWT_EXPIRE_HOURS)
    payload = {"user_id": user.id, "username": user.username, "role": user.role, "exp": int(expire.timestamp())}
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


class UserService:
    """User administration and self-service profile updates."""
    def __init__(self, session: Session):
        self.session = session
        self.user_repo = repositories.UserRepository(session)
        self.enrollment_repo = repositories.EnrollmentRepository(session)
        self.attempt_repo = repositories.AttemptRepository(session)
        self.course_repo = repositories.CourseRepository(session)
        self.quiz_repo = repositories.QuizRepository(session)

    def list_users(self, actor: models.User, role: Optional[str] = None, name: Optional[str] = None) -> List[models.User]:
        require_role(actor, STAFF_ROLES, "list users")
        if role and role.upper() == "ALL":
            role = None
        return self.user_repo.list(role=role.upper() if role else None, name=name)

    def get_user(self, user_id: int) -> models.User:
        user = self.user_repo.get(user_id)
        if not user:
            raise NotFoundError(f"user not found: {user_id}")
        return user

    def update_user(self, actor: models.User, user_id: int, payload: UserUpdate) -> models.User:
        """Apply a partial update. Users edit themselves; admins edit anyone."""
        user = self.get_user(user_id)
        is_admin = actor.role == Role.ADMIN.value
        if actor.id != user.id and not is_admin:
            raise ForbiddenError("not allowed to update this user")
        changes = payload.model_dump(exclude_unset=True)
        if "role" in changes and not is_admin:
            raise ForbiddenError("only administrators can change roles")
        password = changes.pop("password", None)
        _apply_changes(user, changes)
        if password:
            user.password_hash = PWD_CTX.hash(password)
        return self.user_repo.update(user)

    def delete_user(self, actor: models.User, user_id: int) -> None:
        require_role(actor, {Role.ADMIN.value}, "delete users")
        user = self.get_user(user_id)
        if self.course_repo.count_authored_by(user.id) or self.quiz_repo.count_created_by(user.id):
            raise ConflictError("user still authors courses or quizzes")
        self.enrollment_repo.delete_for_user(user.id)
        self.attempt_repo.delete_for_user(user.id)
        self.user_repo.delete(user)
        logger.info("user deleted id=%s by=%s", user_id, actor.id)


class CourseService:
    """Courses and their modules."""
    def __init__(self, session: Session):
        self.session = session
        self.course_repo = repositories.CourseRepository(session)
        self.module_repo = repositories.ModuleRepository(session)
        self.enrollment_repo = repositories.EnrollmentRepository(session)

    def resolve(self, ref: CourseRef) -> models.Course:
        course = self.course_repo.resolve(ref)
        if not course:
            raise NotFoundError("course not found")
        return course

    def list_courses(self, actor: models.User) -> List[models.Course]:
        """Admins see every course; everyone else sees their enrollments."""
        if actor.role == Role.ADMIN.value:
            return self.course_repo.list_all()
        return self.course_repo.list_for_user(actor.id)

    def create_course(self, actor: models.User, payload: CourseIn) -> models.Course:
        """Create a course and enroll its author."""
        require_role(actor, EDITOR_ROLES, "create courses")
        if self.course_repo.get_by_code(payload.code):
            raise ConflictError(f"course code already exists: {payload.code}")
        course = self.course_repo.create(models.Course(author_id=actor.id, **payload.model_dump()))
        self.enrollment_repo.enroll(actor.id, course.id)
        self.session.refresh(course)
        return course

    def update_course(self, actor: models.User, ref: CourseRef, payload: CourseUpdate) -> models.Course:
        require_role(actor, EDITOR_ROLES, "update courses")
        course = self.resolve(ref)
        changes = payload.model_dump(exclude_unset=True)
        new_code = changes.get("code")
        if new_code and new_code != course.code and self.course_repo.get_by_code(new_code):
            raise ConflictError(f"course code already exists: {new_code}")
        _apply_changes(course, changes)
        return self.course_repo.update(course)

    def delete_course(self, actor: models.User, ref: CourseRef) -> None:
        require_role(actor, EDITOR_ROLES, "delete courses")
        course = self.resolve(ref)
        course_id = course.id
        self.course_repo.delete(course)
        logger.info("course deleted id=%s by=%s", course_id, actor.id)

    def list_modules(self, ref: CourseRef) -> List[models.CourseModule]:
        return self.module_repo.list_for_course(self.resolve(ref).id)

    def create_module(self, actor: models.User, ref: CourseRef, payload: ModuleIn) -> models.CourseModule:
        require_role(actor, EDITOR_ROLES, "create modules")
        course = self.resolve(ref)
        return self.module_repo.save(models.CourseModule(course_id=course.id, **payload.model_dump()))

    def update_module(self, actor: models.User, module_id: int, payload: ModuleIn) -> models.CourseModule:
        require_role(actor, EDITOR_ROLES, "update modules")
        module = self._get_module(module_id)
        module.name = payload.name
        module.description = payload.description
        return self.module_repo.save(module)

    def delete_module(self, actor: models.User, module_id: int) -> None:
        require_role(actor, EDITOR_ROLES, "delete modules")
        self.module_repo.delete(self._get_module(module_id))

    def _get_module(self, module_id: int) -> models.CourseModule:
        module = self.module_repo.get(module_id)
        if not module:
            raise NotFoundError(f"module not found: {module_id}")
        return module


class EnrollmentService:
    """Enroll and unenroll users; list memberships."""
    def __init__(self, session: Session):
        self.session = session
        self.user_repo = repositories.UserRepository(session)
        self.course_repo = repositories.CourseRepository(session)
        self.enrollment_repo = repositories.EnrollmentRepository(session)

    def _check_target(self, actor: models.User, user_id: int) -> models.User:
        # students manage only their own enrollments
        if actor.id != user_id and actor.role not in EDITOR_ROLES:
            raise ForbiddenError("not allowed to manage enrollments of other users")
        user = self.user_repo.get(user_id)
        if not user:
            raise NotFoundError(f"user not found: {user_id}")
        return user

    def _course(self, ref: CourseRef) -> models.Course:
        course = self.course_repo.resolve(ref)
        if not course:
            raise NotFoundError("course not found")
        return course

    def enroll(self, actor: models.User, user_id: int, ref: CourseRef) -> models.Enrollment:
        user = self._check_target(actor, user_id)
        course = self._course(ref)
        return self.enrollment_repo.enroll(user.id, course.id)

    def unenroll(self, actor: models.User, user_id: int, ref: CourseRef) -> bool:
        user = self._check_target(actor, user_id)
        course = self._course(ref)
        return self.enrollment_repo.unenroll(user.id, course.id)

    def courses_for_user(self, actor: models.User, user_id: int) -> List[models.Course]:
        if actor.id != user_id and not is_staff(actor):
            raise ForbiddenError("not allowed to list courses of other users")
        return self.course_repo.list_for_user(user_id)

    def users_for_course(self, ref: CourseRef) -> List[models.User]:
        return self.enrollment_repo.list_users_for_course(self._course(ref).id)


class AssignmentService:
    """CRUD for course assignments."""
    def __init__(self, session: Session):
        self.session = session
        self.course_repo = repositories.CourseRepository(session)
        self.assignment_repo = repositories.AssignmentRepository(session)

    def list_for_course(self, ref: CourseRef) -> List[models.Assignment]:
        course = self.course_repo.resolve(ref)
        if not course:
            raise NotFoundError("course not found")
        return self.assignment_repo.list_for_course(course.id)

    def get(self, assignment_id: int) -> models.Assignment:
        assignment = self.assignment_repo.get(assignment_id)
        if not assignment:
            raise NotFoundError(f"assignment not found: {assignment_id}")
        return assignment

    def create(self, actor: models.User, ref: CourseRef, payload: AssignmentIn) -> models.Assignment:
        require_role(actor, EDITOR_ROLES, "create assignments")
        course = self.course_repo.resolve(ref)
        if not course:
            raise NotFoundError("course not found")
        assignment = models.Assignment(course_id=course.id, **payload.model_dump(mode="python"))
        assignment.assignment_type = payload.assignment_type.value
        assignment.grade_display = payload.grade_display.value
        self._validate_window(assignment)
        return self.assignment_repo.save(assignment)

    def update(self, actor: models.User, assignment_id: int, payload: AssignmentUpdate) -> models.Assignment:
        require_role(actor, EDITOR_ROLES, "update assignments")
        assignment = self.get(assignment_id)
        _apply_changes(assignment, payload.model_dump(exclude_unset=True))
        self._validate_window(assignment)
        return self.assignment_repo.save(assignment)

    def delete(self, actor: models.User, assignment_id: int) -> None:
        require_role(actor, EDITOR_ROLES, "delete assignments")
        self.assignment_repo.delete(self.get(assignment_id))

    @staticmethod
    def _validate_window(assignment: models.Assignment) -> None:
        """Raise ValueError unless available_from <= due <= available_until."""
        points = [assignment.available_from, assignment.due, assignment.available_until]
        present = [_naive(p) for p in points if p is not None]
        if present != sorted(present):
            raise ValueError("availability window must satisfy available_from <= due <= available_until")


def _naive(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; compare everything as naive UTC
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


class QuizService:
    """Quiz authoring, visibility and publication."""
    def __init__(self, session: Session):
        self.session = session
        self.course_repo = repositories.CourseRepository(session)
        self.quiz_repo = repositories.QuizRepository(session)

    def list_for_course(self, actor: models.User, ref: CourseRef) -> List[models.Quiz]:
        """Staff see every quiz of the course; students only published ones."""
        course = self.course_repo.resolve(ref)
        if not course:
            raise NotFoundError("course not found")
        return self.quiz_repo.list_for_course(course.id, published_only=not is_staff(actor))

    def get_visible(self, actor: models.User, quiz_id: int) -> models.Quiz:
        """Return a quiz the actor may see; drafts are hidden from students."""
        quiz = self.quiz_repo.get(quiz_id)
        if not quiz or (not quiz.published and not is_staff(actor)):
            raise NotFoundError(f"quiz not found: {quiz_id}")
        return quiz

    def create(self, actor: models.User, ref: CourseRef, payload: QuizIn) -> models.Quiz:
        require_role(actor, EDITOR_ROLES, "create quizzes")
        course = self.course_repo.resolve(ref)
        if not course:
            raise NotFoundError("course not found")
        data = payload.model_dump(mode="json", exclude={"questions", "due_date", "available_date", "until_date"})
        quiz = models.Quiz(
            course_id=course.id,
            creator_id=actor.id,
            due_date=payload.due_date,
            available_date=payload.available_date,
            until_date=payload.until_date,
            **data,
        )
        self._set_questions(quiz, payload.questions)
        quiz = self.quiz_repo.save(quiz)
        logger.info("quiz created id=%s course=%s questions=%d", quiz.id, course.id, len(quiz.questions))
        return quiz

    def update(self, actor: models.User, quiz_id: int, payload: QuizUpdate) -> models.Quiz:
        require_role(actor, EDITOR_ROLES, "update quizzes")
        quiz = self._get(quiz_id)
        changes = payload.model_dump(exclude_unset=True, exclude={"questions"})
        _apply_changes(quiz, changes)
        if payload.questions is not None:
            self._set_questions(quiz, payload.questions)
        quiz.updated_at = _utcnow()
        return self.quiz_repo.save(quiz)

    def delete(self, actor: models.User, quiz_id: int) -> None:
        require_role(actor, EDITOR_ROLES, "delete quizzes")
        self.quiz_repo.delete(self._get(quiz_id))
        logger.info("quiz deleted id=%s by=%s", quiz_id, actor.id)

    def set_published(self, actor: models.User, quiz_id: int, published: bool) -> models.Quiz:
        require_role(actor, EDITOR_ROLES, "publish quizzes")
        quiz = self._get(quiz_id)
        quiz.published = published
        quiz.updated_at = _utcnow()
        return self.quiz_repo.save(quiz)

    def _get(self, quiz_id: int) -> models.Quiz:
        quiz = self.quiz_repo.get(quiz_id)
        if not quiz:
            raise NotFoundError(f"quiz not found: {quiz_id}")
        return quiz

    @staticmethod
    def _set_questions(quiz: models.Quiz, questions) -> None:
        """Replace the question list and recompute `total_points`."""
        definition = QuizDefinition(questions=questions)
        ids = [q.id for q in definition.questions]
        if len(ids) != len(set(ids)):
            raise ValueError("question ids must be unique within a quiz")
        quiz.questions = [q.model_dump(mode="json") for q in definition.questions]
        quiz.total_points = definition.total_points()


@dataclass
class AttemptStart:
    """Outcome of `AttemptService.start_attempt`.

    `allowed` is False when the attempt limit refused a new attempt; that
    is an expected outcome, not an error.
    """
    allowed: bool
    attempt: Optional[AttemptRecord] = None


class AttemptService:
    """Start, submit and read quiz attempts."""
    def __init__(self, session: Session):
        self.session = session
        self.quiz_repo = repositories.QuizRepository(session)
        self.attempt_repo = repositories.AttemptRepository(session)
        self.quiz_service = QuizService(session)

    def start_attempt(self, user: models.User, quiz_id: int) -> AttemptStart:
        """Create an in-progress attempt unless the attempt limit is reached."""
        quiz = self.quiz_service.get_visible(user, quiz_id)
        definition = QuizDefinition.model_validate(quiz)
        prior = [AttemptRecord.model_validate(a) for a in self.attempt_repo.list_for_user_and_quiz(user.id, quiz.id)]
        if not may_start_attempt(user.id, definition, prior):
            logger.info("attempt refused user=%s quiz=%s prior=%d", user.id, quiz.id, len(prior))
            return AttemptStart(allowed=False)
        record = AttemptRecord.begin(user.id, quiz.id)
        row = self.attempt_repo.save(models.Attempt(**record.model_dump(exclude={"id", "state"})))
        logger.info("attempt started id=%s user=%s quiz=%s", row.id, user.id, quiz.id)
        return AttemptStart(allowed=True, attempt=AttemptRecord.model_validate(row))

    def submit_attempt(self, user: models.User, attempt_id: int, answers: List[Answer]) -> AttemptRecord:
        """Grade `answers` and complete the attempt.

        Raises `NotFoundError` for a missing attempt or quiz,
        `ForbiddenError` when `user` does not own the attempt and
        `AttemptAlreadyCompleted` when it was already submitted. Nothing
        is written in any of those cases.
        """
        row = self.attempt_repo.get(attempt_id)
        if not row:
            raise NotFoundError(f"attempt not found: {attempt_id}")
        if row.user_id != user.id:
            raise ForbiddenError("only the owner may submit this attempt")
        quiz = self.quiz_repo.get(row.quiz_id)
        if not quiz:
            raise NotFoundError(f"quiz not found: {row.quiz_id}")
        record = AttemptRecord.model_validate(row)
        completed = record.complete(grade(QuizDefinition.model_validate(quiz), answers))
        row = self.attempt_repo.complete(
            row,
            answers=[a.model_dump() for a in completed.answers],
            score=completed.score,
            end_time=completed.end_time,
        )
        logger.info("attempt submitted id=%s user=%s score=%s", row.id, user.id, row.score)
        return AttemptRecord.model_validate(row)

    def list_attempts(self, user: models.User, quiz_id: int) -> List[AttemptRecord]:
        """The caller's attempts at `quiz_id`, newest first."""
        quiz = self.quiz_service.get_visible(user, quiz_id)
        return [AttemptRecord.model_validate(a) for a in self.attempt_repo.list_for_user_and_quiz(user.id, quiz.id)]

    def get_attempt(self, user: models.User, attempt_id: int) -> AttemptRecord:
        row = self.attempt_repo.get(attempt_id)
        if not row:
            raise NotFoundError(f"attempt not found: {attempt_id}")
        if row.user_id != user.id:
            raise ForbiddenError("only the owner may view this attempt")
        return AttemptRecord.model_validate(row)
