"""
Answer graders, one per question type.
"""
from collections.abc import Callable

from interview_prep.core.exceptions import UnprocessableError
from interview_prep.models import QuestionType


def grade_exact(user_answer: str, correct_answer: str) -> bool:
    """Multiple choice: the submitted option must be exactly the stored one."""
    return user_answer == correct_answer


def grade_normalized(user_answer: str, correct_answer: str) -> bool:
    """Free text and true/false: compare after trimming and case folding."""
    return user_answer.strip().casefold() == correct_answer.strip().casefold()


GRADERS: dict[str, Callable[[str, str], bool]] = {
    QuestionType.MULTIPLE_CHOICE.value: grade_exact,
    QuestionType.TRUE_FALSE.value: grade_normalized,
    QuestionType.SHORT_ANSWER.value: grade_normalized,
}


def grade(question_type: str, user_answer: str, correct_answer: str) -> bool:
    """Grade an answer with the grader of the question type.

    :param question_type: Stored type of the question.
    :param user_answer: Submitted answer.
    :param correct_answer: Stored correct answer.
    :raises UnprocessableError: If no grader exists for the type.
    :returns: True when the answer is correct.
    """
    grader = GRADERS.get(question_type)
    if grader is None:
        raise UnprocessableError(f"Unsupported question type '{question_type}'")
    return grader(user_answer, correct_answer)
