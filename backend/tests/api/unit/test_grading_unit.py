import pytest

from interview_prep.core.exceptions import UnprocessableError
from interview_prep.core.grading import GRADERS, grade, grade_exact, grade_normalized
from interview_prep.models import QuestionType


def test_every_question_type_has_a_grader() -> None:
    assert set(GRADERS) == {kind.value for kind in QuestionType}


@pytest.mark.parametrize(
    "answer, expected",
    [("C", True), ("A", False), ("c", False), (" C", False)],
)
def test_multiple_choice_is_exact(answer: str, expected: bool) -> None:
    assert grade("multiple_choice", answer, "C") is expected


@pytest.mark.parametrize(
    "question_type, answer, correct",
    [
        ("short_answer", "  Virtual DOM ", "virtual dom"),
        ("short_answer", "STRASSE", "straße"),
        ("true_false", "TRUE", "true"),
        ("true_false", " false", "False"),
    ],
)
def test_free_text_is_trimmed_and_case_folded(
    question_type: str, answer: str, correct: str
) -> None:
    assert grade(question_type, answer, correct) is True


def test_short_answer_wrong_answer() -> None:
    assert grade("short_answer", "shadow dom", "virtual dom") is False


def test_unknown_question_type() -> None:
    with pytest.raises(UnprocessableError) as exc_info:
        grade("essay", "anything", "anything")
    assert exc_info.value.status_code == 422


def test_graders_directly() -> None:
    assert grade_exact("B", "B")
    assert not grade_exact("b", "B")
    assert grade_normalized("b ", "B")
