import math
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict

from score_engine.core.config import NUMERIC_TOLERANCE
from score_engine.core.errors import ConfigurationError
from score_engine.services.answer_key import (
    QUESTION_TYPES, AnswerKeyEntry, ExamPolicy, Multiple, Numeric, Single, SubmittedAnswer,
)

Outcome = Literal["correct", "partially_correct", "incorrect", "unattempted", "bonus"]


class QuestionOutcome(BaseModel):
    model_config = ConfigDict(frozen=True)
    question_id: str
    outcome: Outcome
    marks_delta: int


def parse_number(text) -> Optional[float]:
    try:
        v = float(str(text).strip())
    except (TypeError, ValueError):
        return None
    return v if math.isfinite(v) else None


def _as_labels(submitted: SubmittedAnswer) -> frozenset:
    if isinstance(submitted, Multiple): return submitted.labels
    if isinstance(submitted, Single): return frozenset([submitted.label])
    return frozenset([submitted.text])


def _as_text(submitted: SubmittedAnswer) -> str:
    if isinstance(submitted, Single): return submitted.label
    if isinstance(submitted, Numeric): return submitted.text
    return ",".join(sorted(submitted.labels))


def key_problem(entry: AnswerKeyEntry) -> Optional[str]:
    """Why the entry's correct answer cannot be marked against, or None when it can."""
    want = entry.correct_answer
    if not want or want == frozenset([""]):
        return "missing correct answer"
    if entry.question_type == "multiple_choice":
        return None
    if isinstance(want, frozenset):
        return f"{entry.question_type} key lists {len(want)} correct answers"
    if entry.question_type == "integer" and parse_number(want) is None:
        return f"correct answer {want!r} is not a number"
    return None


def evaluate(question_id: str, submitted: Optional[SubmittedAnswer], entry: AnswerKeyEntry, policy: ExamPolicy) -> QuestionOutcome:
    qtype = entry.question_type
    if qtype not in QUESTION_TYPES:
        raise ConfigurationError(question_id, f"unrecognized question type {qtype!r}")
    if entry.is_bonus:
        return QuestionOutcome(question_id=question_id, outcome="bonus", marks_delta=entry.marks)
    problem = key_problem(entry)
    if problem:
        raise ConfigurationError(question_id, problem)
    if submitted is None or (isinstance(submitted, Multiple) and not submitted.labels) \
            or (not isinstance(submitted, Multiple) and _as_text(submitted) == ""):
        return QuestionOutcome(question_id=question_id, outcome="unattempted", marks_delta=0)

    correct = QuestionOutcome(question_id=question_id, outcome="correct", marks_delta=entry.marks)
    wrong = QuestionOutcome(question_id=question_id, outcome="incorrect", marks_delta=-entry.negative_marks)

    if qtype == "single_choice":
        return correct if _as_text(submitted) == entry.correct_answer else wrong

    if qtype == "integer":
        got, want = parse_number(_as_text(submitted)), parse_number(entry.correct_answer)
        if got is not None and abs(got - want) < NUMERIC_TOLERANCE:
            return correct
        if not policy.numeric_negative_marking:
            return QuestionOutcome(question_id=question_id, outcome="incorrect", marks_delta=0)
        return wrong

    # multiple_choice
    want_set = entry.correct_answer if isinstance(entry.correct_answer, frozenset) else frozenset([entry.correct_answer])
    got_set = _as_labels(submitted)
    if not policy.multiple_choice_partial_credit:
        return correct if got_set == want_set else wrong
    if not got_set <= want_set:
        return QuestionOutcome(question_id=question_id, outcome="incorrect", marks_delta=-policy.multiple_choice_wrong_penalty)
    if got_set == want_set:
        return correct
    return QuestionOutcome(question_id=question_id, outcome="partially_correct",
                           marks_delta=(entry.marks * len(got_set)) // len(want_set))
