"""Answer grading.

Submitted answers arrive in their flat persisted shape (`answer_choice`,
`answer_boolean`, `answer_text`). The engine never inspects those fields
directly: it asks the answer for the response variant that matches the
parent question's type and dispatches on that variant.
"""

from __future__ import annotations

from typing import Annotated, List, Literal, Optional, Set, Union

from pydantic import BaseModel, Field

from .questions import Question, QuestionType, QuizDefinition


class ChoiceResponse(BaseModel):
    kind: Literal["multiple_choice"] = "multiple_choice"
    choice_id: Optional[str] = None


class BooleanResponse(BaseModel):
    kind: Literal["true_false"] = "true_false"
    value: Optional[bool] = None


class TextResponse(BaseModel):
    kind: Literal["fill_blank"] = "fill_blank"
    text: str = ""


Response = Annotated[
    Union[ChoiceResponse, BooleanResponse, TextResponse],
    Field(discriminator="kind"),
]


class Answer(BaseModel):
    """A submitted answer to one question.

    `is_correct` is always recomputed by `grade`; whatever the caller
    sends is discarded.
    """
    question_id: Optional[str] = None
    answer_choice: Optional[str] = None
    answer_boolean: Optional[bool] = None
    answer_text: Optional[str] = None
    is_correct: bool = False

    def response_for(self, question_type: QuestionType) -> Response:
        """Build the response variant for a question of `question_type`."""
        if question_type == QuestionType.MULTIPLE_CHOICE:
            return ChoiceResponse(choice_id=self.answer_choice)
        if question_type == QuestionType.TRUE_FALSE:
            return BooleanResponse(value=self.answer_boolean)
        return TextResponse(text=self.answer_text or "")


class GradeResult(BaseModel):
    processed_answers: List[Answer]
    score: float = 0


def normalize_text(value: str) -> str:
    return value.strip().lower()


def is_correct_response(question: Question, response: Response) -> bool:
    """Evaluate one response against the question's answer key."""
    if isinstance(response, ChoiceResponse):
        if question.question_type != QuestionType.MULTIPLE_CHOICE:
            return False
        choice = question.find_choice(response.choice_id)
        return choice is not None and choice.is_correct
    if isinstance(response, BooleanResponse):
        if question.question_type != QuestionType.TRUE_FALSE:
            return False
        # absent value or absent key are both incorrect
        if response.value is None or question.correct_answer is None:
            return False
        return response.value == question.correct_answer
    if isinstance(response, TextResponse):
        if question.question_type != QuestionType.FILL_BLANK:
            return False
        given = normalize_text(response.text)
        return any(normalize_text(c) == given for c in question.correct_answers)
    return False


def grade(quiz: QuizDefinition, answers: List[Answer]) -> GradeResult:
    """Grade `answers` against `quiz` and return processed answers and score.

    Pure function: inputs are not mutated and the same inputs always give
    the same result. Answers keep their order and fields, with
    `is_correct` overwritten. An answer whose question cannot be resolved
    is marked incorrect instead of rejected.

    Each question contributes its points at most once per submission, so
    duplicate answers to the same question never double count.
    """
    score: float = 0
    scored_questions: Set[str] = set()
    processed: List[Answer] = []
    for answer in answers:
        question = quiz.find_question(answer.question_id)
        if question is None:
            processed.append(answer.model_copy(update={"is_correct": False}))
            continue
        correct = is_correct_response(question, answer.response_for(question.question_type))
        if correct and question.id not in scored_questions:
            score += question.points
            scored_questions.add(question.id)
        processed.append(answer.model_copy(update={"is_correct": correct}))
    return GradeResult(processed_answers=processed, score=score)
