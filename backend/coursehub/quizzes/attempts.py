"""Attempt records, their lifecycle and the attempt-limit policy."""

from __future__ import annotations

import enum
from datetime import datetime, timezone
from typing import Iterable, List, Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field

from ..errors import ConflictError
from .grading import Answer, GradeResult
from .questions import QuizDefinition


class AttemptAlreadyCompleted(ConflictError):
    """Raised when answers are submitted for a completed attempt."""


class AttemptState(str, enum.Enum):
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AttemptRecord(BaseModel):
    """One user's attempt at a quiz.

    Created in-progress by `begin` and moved to completed exactly once by
    `complete`. Records are immutable in use: `complete` returns a new
    record and leaves the original untouched.
    """
    model_config = ConfigDict(from_attributes=True)

    id: Optional[int] = None
    user_id: int
    quiz_id: int
    answers: List[Answer] = Field(default_factory=list)
    score: float = 0
    completed: bool = False
    start_time: datetime = Field(default_factory=_utcnow)
    end_time: Optional[datetime] = None

    @computed_field
    @property
    def state(self) -> AttemptState:
        return AttemptState.COMPLETED if self.completed else AttemptState.IN_PROGRESS

    @classmethod
    def begin(cls, user_id: int, quiz_id: int, now: Optional[datetime] = None) -> "AttemptRecord":
        return cls(user_id=user_id, quiz_id=quiz_id, start_time=now or _utcnow())

    def complete(self, result: GradeResult, now: Optional[datetime] = None) -> "AttemptRecord":
        """Return the completed version of this attempt.

        Raises `AttemptAlreadyCompleted` when the attempt was already
        submitted.
        """
        if self.completed:
            raise AttemptAlreadyCompleted(f"attempt {self.id} is already completed")
        return self.model_copy(update={
            "answers": list(result.processed_answers),
            "score": result.score,
            "completed": True,
            "end_time": now or _utcnow(),
        })


def may_start_attempt(user_id: int, quiz: QuizDefinition, prior_attempts: Iterable[AttemptRecord]) -> bool:
    """Decide whether `user_id` may start another attempt at `quiz`.

    `prior_attempts` is every attempt already recorded for this user and
    quiz; the caller scopes the list. Every entry counts, completed or
    not. With multiple attempts disabled only the first attempt is
    allowed; otherwise the count must stay strictly below
    `attempts_allowed` (so 0 allows none).
    """
    count = len(list(prior_attempts))
    if not quiz.multiple_attempts:
        return count == 0
    return count < quiz.attempts_allowed
