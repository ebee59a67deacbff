"""Quiz and question definitions used by grading.

`QuizDefinition` is a read-only view over a fully loaded quiz: its
attempt configuration plus the ordered list of questions and their
answer keys. It can be validated straight from a `models.Quiz` row
(`from_attributes`), or from plain dicts in tests.
"""

from __future__ import annotations

import enum
import uuid
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


def _new_id() -> str:
    return uuid.uuid4().hex


class QuizType(str, enum.Enum):
    GRADED_QUIZ = "GRADED_QUIZ"
    PRACTICE_QUIZ = "PRACTICE_QUIZ"
    GRADED_SURVEY = "GRADED_SURVEY"
    UNGRADED_SURVEY = "UNGRADED_SURVEY"


class QuestionType(str, enum.Enum):
    MULTIPLE_CHOICE = "MULTIPLE_CHOICE"
    TRUE_FALSE = "TRUE_FALSE"
    FILL_BLANK = "FILL_BLANK"


class Choice(BaseModel):
    """One option of a multiple-choice question."""
    id: str = Field(default_factory=_new_id)
    text: str
    is_correct: bool = False


class Question(BaseModel):
    """A single question and its type-specific answer key.

    Only the key matching `question_type` is consulted when grading:
    `choices` for MULTIPLE_CHOICE, `correct_answer` for TRUE_FALSE and
    `correct_answers` for FILL_BLANK.
    """
    id: str = Field(default_factory=_new_id)
    title: str = ""
    points: float = Field(default=1, ge=0)
    question_type: QuestionType
    question_text: str
    choices: List[Choice] = Field(default_factory=list)
    correct_answer: Optional[bool] = None
    correct_answers: List[str] = Field(default_factory=list)

    def find_choice(self, choice_id: Optional[str]) -> Optional[Choice]:
        if choice_id is None:
            return None
        for choice in self.choices:
            if choice.id == choice_id:
                return choice
        return None


class QuizDefinition(BaseModel):
    """Attempt configuration and questions of a quiz."""
    model_config = ConfigDict(from_attributes=True)

    id: Optional[int] = None
    quiz_type: QuizType = QuizType.GRADED_QUIZ
    multiple_attempts: bool = False
    attempts_allowed: int = Field(default=1, ge=0)
    published: bool = False
    questions: List[Question] = Field(default_factory=list)

    def total_points(self) -> float:
        """Sum of question points; 0 for a quiz without questions."""
        return sum(q.points for q in self.questions)

    def find_question(self, question_id: Optional[str]) -> Optional[Question]:
        """Return the question with `question_id`, or None.

        A missing id is an expected input (stale client state) and never
        raises.
        """
        if question_id is None:
            return None
        for question in self.questions:
            if question.id == question_id:
                return question
        return None
