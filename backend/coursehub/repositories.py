"""Repository classes encapsulating database operations.

Each repository is small and focused on a single aggregate (users,
courses, modules, enrollments, assignments, quizzes, attempts).
Repositories return SQLModel objects and perform commits/refreshes where
appropriate.
"""

from datetime import datetime
from typing import List, Optional, Union
from sqlmodel import Session, select
from sqlalchemy import func, or_, update
from . import models
from .quizzes import AttemptAlreadyCompleted
from .schemas import ByCode, ByReference


class UserRepository:
    """CRUD operations for `User` objects."""
    def __init__(self, session: Session):
        self.session = session

    def create(self, user: models.User) -> models.User:
        """Persist a new user and return the managed instance."""
        self.session.add(user)
        self.session.commit()
        self.session.refresh(user)
        return user

    def get_by_username(self, username: str) -> Optional[models.User]:
        """Return a `User` by username or `None` if not found."""
        stmt = select(models.User).where(models.User.username == username)
        return self.session.exec(stmt).first()

    def get(self, user_id: int) -> Optional[models.User]:
        """Get a `User` by primary key."""
        return self.session.get(models.User, user_id)

    def list(self, role: Optional[str] = None, name: Optional[str] = None) -> List[models.User]:
        """List users, optionally filtered by role and partial first/last name."""
        stmt = select(models.User)
        if role:
            stmt = stmt.where(models.User.role == role)
        if name:
            pattern = f"%{name.lower()}%"
            stmt = stmt.where(or_(
                func.lower(models.User.first_name).like(pattern),
                func.lower(models.User.last_name).like(pattern),
            ))
        return self.session.exec(stmt.order_by(models.User.id)).all()

    def update(self, user: models.User) -> models.User:
        self.session.add(user)
        self.session.commit()
        self.session.refresh(user)
        return user

    def delete(self, user: models.User) -> None:
        self.session.delete(user)
        self.session.commit()


class CourseRepository:
    """CRUD operations for `Course` objects."""
    def __init__(self, session: Session):
        self.session = session

    def create(self, course: models.Course) -> models.Course:
        self.session.add(course)
        self.session.commit()
        self.session.refresh(course)
        return course

    def get(self, course_id: int) -> Optional[models.Course]:
        return self.session.get(models.Course, course_id)

    def get_by_code(self, code: str) -> Optional[models.Course]:
        stmt = select(models.Course).where(models.Course.code == code)
        return self.session.exec(stmt).first()

    def resolve(self, ref: Union[ByReference, ByCode]) -> Optional[models.Course]:
        """Look a course up by primary key or by course code."""
        if isinstance(ref, ByReference):
            return self.get(ref.id)
        return self.get_by_code(ref.code)

    def list_all(self) -> List[models.Course]:
        return self.session.exec(select(models.Course).order_by(models.Course.id)).all()

    def list_for_user(self, user_id: int) -> List[models.Course]:
        """Return the courses `user_id` is enrolled in."""
        stmt = (
            select(models.Course)
            .join(models.Enrollment, models.Enrollment.course_id == models.Course.id)
            .where(models.Enrollment.user_id == user_id)
            .order_by(models.Course.id)
        )
        return self.session.exec(stmt).all()

    def update(self, course: models.Course) -> models.Course:
        self.session.add(course)
        self.session.commit()
        self.session.refresh(course)
        return course

    def count_authored_by(self, user_id: int) -> int:
        stmt = select(func.count()).select_from(models.Course).where(models.Course.author_id == user_id)
        return self.session.exec(stmt).one()

    def delete(self, course: models.Course) -> None:
        """Delete a course together with everything scoped to it."""
        quiz_ids = self.session.exec(select(models.Quiz.id).where(models.Quiz.course_id == course.id)).all()
        dependents = [
            select(models.Attempt).where(models.Attempt.quiz_id.in_(quiz_ids)),
            select(models.Quiz).where(models.Quiz.course_id == course.id),
            select(models.Assignment).where(models.Assignment.course_id == course.id),
            select(models.CourseModule).where(models.CourseModule.course_id == course.id),
            select(models.Enrollment).where(models.Enrollment.course_id == course.id),
        ]
        for stmt in dependents:
            for row in self.session.exec(stmt).all():
                self.session.delete(row)
        self.session.delete(course)
        self.session.commit()


class ModuleRepository:
    """CRUD operations for `CourseModule` objects."""
    def __init__(self, session: Session):
        self.session = session

    def save(self, module: models.CourseModule) -> models.CourseModule:
        self.session.add(module)
        self.session.commit()
        self.session.refresh(module)
        return module

    def get(self, module_id: int) -> Optional[models.CourseModule]:
        return self.session.get(models.CourseModule, module_id)

    def list_for_course(self, course_id: int) -> List[models.CourseModule]:
        stmt = select(models.CourseModule).where(models.CourseModule.course_id == course_id).order_by(models.CourseModule.id)
        return self.session.exec(stmt).all()

    def delete(self, module: models.CourseModule) -> None:
        self.session.delete(module)
        self.session.commit()


class EnrollmentRepository:
    """Query helpers and writes for `Enrollment` rows."""
    def __init__(self, session: Session):
        self.session = session

    def get(self, user_id: int, course_id: int) -> Optional[models.Enrollment]:
        stmt = select(models.Enrollment).where(
            models.Enrollment.user_id == user_id,
            models.Enrollment.course_id == course_id
        )
        return self.session.exec(stmt).first()

    def enroll(self, user_id: int, course_id: int) -> models.Enrollment:
        """Enroll a user; returns the existing row when already enrolled."""
        existing = self.get(user_id, course_id)
        if existing:
            return existing
        enrollment = models.Enrollment(user_id=user_id, course_id=course_id)
        self.session.add(enrollment)
        self.session.commit()
        self.session.refresh(enrollment)
        return enrollment

    def unenroll(self, user_id: int, course_id: int) -> bool:
        """Remove an enrollment; returns False when there was none."""
        existing = self.get(user_id, course_id)
        if not existing:
            return False
        self.session.delete(existing)
        self.session.commit()
        return True

    def list_users_for_course(self, course_id: int) -> List[models.User]:
        stmt = (
            select(models.User)
            .join(models.Enrollment, models.Enrollment.user_id == models.User.id)
            .where(models.Enrollment.course_id == course_id)
            .order_by(models.User.id)
        )
        return self.session.exec(stmt).all()

    def delete_for_user(self, user_id: int) -> None:
        for row in self.session.exec(select(models.Enrollment).where(models.Enrollment.user_id == user_id)).all():
            self.session.delete(row)
        self.session.commit()


class AssignmentRepository:
    """CRUD operations for `Assignment` objects."""
    def __init__(self, session: Session):
        self.session = session

    def save(self, assignment: models.Assignment) -> models.Assignment:
        self.session.add(assignment)
        self.session.commit()
        self.session.refresh(assignment)
        return assignment

    def get(self, assignment_id: int) -> Optional[models.Assignment]:
        return self.session.get(models.Assignment, assignment_id)

    def list_for_course(self, course_id: int) -> List[models.Assignment]:
        stmt = select(models.Assignment).where(models.Assignment.course_id == course_id).order_by(models.Assignment.id)
        return self.session.exec(stmt).all()

    def delete(self, assignment: models.Assignment) -> None:
        self.session.delete(assignment)
        self.session.commit()


class QuizRepository:
    """CRUD operations for `Quiz` objects."""
    def __init__(self, session: Session):
        self.session = session

    def save(self, quiz: models.Quiz) -> models.Quiz:
        self.session.add(quiz)
        self.session.commit()
        self.session.refresh(quiz)
        return quiz

    def get(self, quiz_id: int) -> Optional[models.Quiz]:
        return self.session.get(models.Quiz, quiz_id)

    def list_for_course(self, course_id: int, published_only: bool = False) -> List[models.Quiz]:
        """Return quizzes of a course; `published_only` hides drafts."""
        stmt = select(models.Quiz).where(models.Quiz.course_id == course_id)
        if published_only:
            stmt = stmt.where(models.Quiz.published == True)  # noqa: E712
        return self.session.exec(stmt.order_by(models.Quiz.id)).all()

    def count_created_by(self, user_id: int) -> int:
        stmt = select(func.count()).select_from(models.Quiz).where(models.Quiz.creator_id == user_id)
        return self.session.exec(stmt).one()

    def delete(self, quiz: models.Quiz) -> None:
        """Delete a quiz and its attempts."""
        for attempt in self.session.exec(select(models.Attempt).where(models.Attempt.quiz_id == quiz.id)).all():
            self.session.delete(attempt)
        self.session.delete(quiz)
        self.session.commit()


class AttemptRepository:
    """Persist and query quiz `Attempt` rows."""
    def __init__(self, session: Session):
        self.session = session

    def save(self, attempt: models.Attempt) -> models.Attempt:
        self.session.add(attempt)
        self.session.commit()
        self.session.refresh(attempt)
        return attempt

    def get(self, attempt_id: int) -> Optional[models.Attempt]:
        return self.session.get(models.Attempt, attempt_id)

    def list_for_user_and_quiz(self, user_id: int, quiz_id: int) -> List[models.Attempt]:
        """All attempts of `user_id` at `quiz_id`, newest first."""
        stmt = select(models.Attempt).where(
            models.Attempt.user_id == user_id,
            models.Attempt.quiz_id == quiz_id
        ).order_by(models.Attempt.start_time.desc(), models.Attempt.id.desc())
        return self.session.exec(stmt).all()

    def complete(self, attempt: models.Attempt, answers: List[dict], score: float, end_time: datetime) -> models.Attempt:
        """Mark an in-progress attempt completed in a single conditional update.

        The update only matches while `completed` is still false, so two
        racing submissions cannot both win. Raises
        `AttemptAlreadyCompleted` when nothing matched.
        """
        stmt = (
            update(models.Attempt)
            .where(models.Attempt.id == attempt.id, models.Attempt.completed == False)  # noqa: E712
            .values(answers=answers, score=score, completed=True, end_time=end_time)
        )
        result = self.session.connection().execute(stmt)
        if result.rowcount != 1:
            self.session.rollback()
            raise AttemptAlreadyCompleted(f"attempt {attempt.id} is already completed")
        self.session.commit()
        self.session.refresh(attempt)
        return attempt

    def delete_for_user(self, user_id: int) -> None:
        for row in self.session.exec(select(models.Attempt).where(models.Attempt.user_id == user_id)).all():
            self.session.delete(row)
        self.session.commit()
