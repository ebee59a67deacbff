"""Quiz grading core: question model, grading engine and attempt rules.

Nothing in this package touches the database or HTTP layer; services
load rows, validate them into these models and write results back.
"""

from .attempts import AttemptAlreadyCompleted, AttemptRecord, AttemptState, may_start_attempt
from .grading import Answer, BooleanResponse, ChoiceResponse, GradeResult, TextResponse, grade
from .questions import Choice, Question, QuestionType, QuizDefinition, QuizType

__all__ = [
    "Answer",
    "AttemptAlreadyCompleted",
    "AttemptRecord",
    "AttemptState",
    "BooleanResponse",
    "Choice",
    "ChoiceResponse",
    "GradeResult",
    "Question",
    "QuestionType",
    "QuizDefinition",
    "QuizType",
    "TextResponse",
    "grade",
    "may_start_attempt",
]
