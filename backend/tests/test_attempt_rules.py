from datetime import datetime, timezone

import pytest

from coursehub.quizzes import (
    Answer,
    AttemptAlreadyCompleted,
    AttemptRecord,
    AttemptState,
    GradeResult,
    QuizDefinition,
    may_start_attempt,
)


def _attempts(user_id, n, completed=True):
    return [AttemptRecord(id=i, user_id=user_id, quiz_id=1, completed=completed) for i in range(n)]


@pytest.mark.parametrize("prior", [0, 1, 2, 5])
def test_single_attempt_quiz_allows_only_the_first(prior):
    quiz = QuizDefinition(id=1, multiple_attempts=False, attempts_allowed=10)
    assert may_start_attempt(7, quiz, _attempts(7, prior)) is (prior == 0)


@pytest.mark.parametrize("allowed,prior,expected", [
    (3, 0, True),
    (3, 2, True),
    (3, 3, False),
    (3, 4, False),
    (1, 0, True),
    (0, 0, False),
])
def test_multiple_attempts_respect_the_limit(allowed, prior, expected):
    quiz = QuizDefinition(id=1, multiple_attempts=True, attempts_allowed=allowed)
    assert may_start_attempt(7, quiz, _attempts(7, prior)) is expected


def test_in_progress_attempts_count_against_the_limit():
    quiz = QuizDefinition(id=1, multiple_attempts=True, attempts_allowed=2)
    assert may_start_attempt(7, quiz, _attempts(7, 2, completed=False)) is False


def test_limit_counts_every_attempt_in_the_given_history():
    quiz = QuizDefinition(id=1, multiple_attempts=True, attempts_allowed=3)
    history = _attempts(7, 1) + _attempts(7, 2, completed=False)
    assert may_start_attempt(7, quiz, history) is False
    assert may_start_attempt(7, quiz, iter(history[:2])) is True


def test_completed_attempt_blocks_single_attempt_quiz():
    quiz = QuizDefinition(id=1, multiple_attempts=False)
    first = AttemptRecord.begin(7, 1).complete(GradeResult(processed_answers=[], score=0))
    assert may_start_attempt(7, quiz, [first]) is False


def test_attempt_lifecycle():
    started = datetime(2024, 1, 1, 9, 0, tzinfo=timezone.utc)
    finished = datetime(2024, 1, 1, 9, 20, tzinfo=timezone.utc)
    record = AttemptRecord.begin(7, 1, now=started)
    assert record.state == AttemptState.IN_PROGRESS
    assert record.completed is False
    assert record.end_time is None

    result = GradeResult(processed_answers=[Answer(question_id="q1", is_correct=True)], score=4)
    done = record.complete(result, now=finished)
    assert done.state == AttemptState.COMPLETED
    assert done.score == 4
    assert done.end_time == finished
    assert done.start_time == started
    assert done.answers[0].question_id == "q1"
    # the in-progress record is left as it was
    assert record.completed is False


def test_completing_twice_is_rejected():
    done = AttemptRecord.begin(7, 1).complete(GradeResult(processed_answers=[], score=1))
    with pytest.raises(AttemptAlreadyCompleted):
        done.complete(GradeResult(processed_answers=[], score=2))
