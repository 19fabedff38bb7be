from typing import Dict, List, Mapping, Optional

from pydantic import BaseModel, Field

from score_engine.core.errors import ConfigurationError
from score_engine.services.answer_key import AnswerKeySnapshot, ExamPolicy, SubmittedAnswer, coerce_answers
from score_engine.services.evaluator import QuestionOutcome, evaluate


class SubjectScore(BaseModel):
    score: int = 0
    total_marks: int = 0
    correct: int = 0
    incorrect: int = 0
    partial: int = 0
    skipped: int = 0


class AttemptScore(BaseModel):
    score: int = 0
    total_marks: int = 0
    correct_count: int = 0
    incorrect_count: int = 0
    partial_count: int = 0
    unattempted_count: int = 0
    bonus_count: int = 0
    outcomes: List[QuestionOutcome] = Field(default_factory=list)
    subjects: Dict[str, SubjectScore] = Field(default_factory=dict)
    configuration_errors: Dict[str, str] = Field(default_factory=dict)

    def breakdown(self) -> dict:
        return {
            "question_results": {o.question_id: {"outcome": o.outcome, "marks_obtained": o.marks_delta} for o in self.outcomes},
            "subject_scores": {k: v.model_dump() for k, v in sorted(self.subjects.items())},
            "bonus": self.bonus_count,
        }


_COUNTERS = {
    "correct": ("correct_count", "correct"),
    "incorrect": ("incorrect_count", "incorrect"),
    "partially_correct": ("partial_count", "partial"),
    "unattempted": ("unattempted_count", "skipped"),
    "bonus": ("bonus_count", None),
}


def aggregate(answers: Mapping[str, Optional[SubmittedAnswer]], snapshot: AnswerKeySnapshot, policy: Optional[ExamPolicy] = None) -> AttemptScore:
    """Score one attempt against every entry of the snapshot.

    ``answers`` holds already-coerced variants keyed by question id; questions
    missing from it are unattempted. Answers for ids that are not in the key are
    ignored. The result depends only on the arguments.
    """
    policy = policy or snapshot.policy
    result = AttemptScore()
    for entry in snapshot.entries:
        try:
            outcome = evaluate(entry.question_id, answers.get(entry.question_id), entry, policy)
        except ConfigurationError as e:
            result.configuration_errors[entry.question_id] = e.reason
            outcome = QuestionOutcome(question_id=entry.question_id, outcome="unattempted", marks_delta=0)
        subject = result.subjects.setdefault(entry.subject, SubjectScore())
        result.outcomes.append(outcome)
        result.total_marks += entry.marks
        result.score += outcome.marks_delta
        subject.total_marks += entry.marks
        subject.score += outcome.marks_delta
        attempt_field, subject_field = _COUNTERS[outcome.outcome]
        setattr(result, attempt_field, getattr(result, attempt_field) + 1)
        if subject_field:
            setattr(subject, subject_field, getattr(subject, subject_field) + 1)
    return result


def aggregate_raw(raw_answers, snapshot: AnswerKeySnapshot, attempt_id: Optional[str] = None) -> AttemptScore:
    """Coerce stored answers at the boundary, then aggregate."""
    return aggregate(coerce_answers(raw_answers, snapshot, attempt_id), snapshot)
