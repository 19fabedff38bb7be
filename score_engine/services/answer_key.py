"""
Answer key snapshots, exam policies and the tagged submitted-answer variant.

A snapshot is taken once per scoring run and never re-read mid-run; its
fingerprint lets the writer detect that the key was edited underneath it.
"""
import hashlib
import json
from typing import Dict, FrozenSet, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict
from sqlalchemy import select
from sqlalchemy.orm import Session

from score_engine.core.config import ADVANCED_MCQ_WRONG_PENALTY
from score_engine.core.errors import MalformedAttemptError, NotAvailable
from score_engine.models.orm import Test, TestQuestion

QUESTION_TYPES = ("single_choice", "multiple_choice", "integer")


class AnswerKeyEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    question_id: str
    # kept as a plain string so an unknown type reaches the evaluator and fails there
    question_type: str
    correct_answer: Union[str, FrozenSet[str]]
    marks: int
    negative_marks: int = 0
    is_bonus: bool = False
    subject: str = "General"


class ExamPolicy(BaseModel):
    model_config = ConfigDict(frozen=True)

    exam_family: Literal["jee_mains", "jee_advanced", "custom"] = "jee_mains"
    multiple_choice_partial_credit: bool = False
    multiple_choice_wrong_penalty: int = 0
    numeric_negative_marking: bool = True


class AnswerKeySnapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    test_id: str
    policy: ExamPolicy
    entries: Tuple[AnswerKeyEntry, ...]
    fingerprint: str


class Single(BaseModel):
    model_config = ConfigDict(frozen=True)
    kind: Literal["single"] = "single"
    label: str


class Multiple(BaseModel):
    model_config = ConfigDict(frozen=True)
    kind: Literal["multiple"] = "multiple"
    labels: FrozenSet[str]


class Numeric(BaseModel):
    model_config = ConfigDict(frozen=True)
    kind: Literal["numeric"] = "numeric"
    text: str


SubmittedAnswer = Union[Single, Multiple, Numeric]


def policy_for_exam(exam_family: str, partial_credit: Optional[bool] = None, wrong_penalty: Optional[int] = None) -> ExamPolicy:
    family = (exam_family or "jee_mains").strip().lower()
    if family == "jee_advanced":
        return ExamPolicy(exam_family="jee_advanced", multiple_choice_partial_credit=True,
                          multiple_choice_wrong_penalty=ADVANCED_MCQ_WRONG_PENALTY)
    if family == "custom":
        return ExamPolicy(exam_family="custom", multiple_choice_partial_credit=bool(partial_credit),
                          multiple_choice_wrong_penalty=int(wrong_penalty or 0))
    # anything else is marked like Mains: exact-match MCQ, negative marks everywhere
    return ExamPolicy(exam_family="jee_mains")


def _correct_answer_for(question_type: str, raw) -> Union[str, FrozenSet[str]]:
    if question_type == "multiple_choice":
        if isinstance(raw, (list, tuple, set, frozenset)):
            return frozenset(str(x) for x in raw)
        if raw is None:
            return frozenset()
        return frozenset(p.strip() for p in str(raw).split(",") if p.strip())
    if isinstance(raw, (list, tuple, set, frozenset)):
        # several answers on a single-valued question stay a set; the evaluator rejects such a key
        if len(raw) != 1: return frozenset(str(x) for x in raw)
        raw = next(iter(raw))
    return "" if raw is None else str(raw)


def entry_from_row(q: TestQuestion) -> AnswerKeyEntry:
    return AnswerKeyEntry(
        question_id=q.id,
        question_type=str(q.question_type or "single_choice"),
        correct_answer=_correct_answer_for(q.question_type, q.correct_answer),
        marks=int(q.marks if q.marks is not None else 4),
        negative_marks=int(q.negative_marks if q.negative_marks is not None else 1),
        is_bonus=bool(q.is_bonus),
        subject=q.subject or "General",
    )


def compute_fingerprint(policy: ExamPolicy, entries: Tuple[AnswerKeyEntry, ...]) -> str:
    def _canon(e: AnswerKeyEntry) -> dict:
        d = e.model_dump()
        if isinstance(e.correct_answer, frozenset):
            d["correct_answer"] = sorted(e.correct_answer)
        return d
    payload = {"policy": policy.model_dump(), "entries": [_canon(e) for e in entries]}
    return hashlib.sha256(json.dumps(payload, sort_keys=True, separators=(",", ":")).encode()).hexdigest()


def load_snapshot(db: Session, test_id: str) -> AnswerKeySnapshot:
    # populate_existing: a re-read inside the same session must see committed key edits
    test = db.get(Test, test_id, populate_existing=True)
    if not test: raise NotAvailable(test_id)
    policy = policy_for_exam(test.exam_family, test.mcq_partial_credit, test.mcq_wrong_penalty)
    rows = db.execute(select(TestQuestion).where(TestQuestion.test_id == test_id)
                      .order_by(TestQuestion.order_index, TestQuestion.id)
                      .execution_options(populate_existing=True)).scalars().all()
    entries = tuple(entry_from_row(q) for q in rows)
    return AnswerKeySnapshot(test_id=test_id, policy=policy, entries=entries, fingerprint=compute_fingerprint(policy, entries))


def _is_empty(raw) -> bool:
    return raw is None or raw == "" or (isinstance(raw, (list, tuple, set, frozenset)) and len(raw) == 0)


def coerce_answer(raw, question_type: str) -> Optional[SubmittedAnswer]:
    """Resolve a stored answer value into its tagged variant, or None when unattempted.

    The variant is chosen by the question's declared type, not by the shape of
    the value. Values of an unsupported shape (mappings, nested objects) raise
    MalformedAttemptError.
    """
    if _is_empty(raw):
        return None
    if isinstance(raw, dict):
        raise MalformedAttemptError(None, f"unsupported answer value {type(raw).__name__}")
    if isinstance(raw, (list, tuple, set, frozenset)):
        if any(isinstance(x, (dict, list, tuple, set, frozenset)) for x in raw):
            raise MalformedAttemptError(None, "nested answer value")
        labels = frozenset(str(x) for x in raw)
        if question_type == "multiple_choice":
            return Multiple(labels=labels)
        # a list sent for a single-valued question only matches when it has one member
        text = next(iter(labels)) if len(labels) == 1 else ",".join(sorted(labels))
        return Numeric(text=text) if question_type == "integer" else Single(label=text)
    if isinstance(raw, bool):
        raise MalformedAttemptError(None, "boolean answer value")
    text = str(raw)
    if question_type == "multiple_choice":
        return Multiple(labels=frozenset([text]))
    if question_type == "integer":
        return Numeric(text=text)
    return Single(label=text)


def coerce_answers(answers, snapshot: AnswerKeySnapshot, attempt_id: Optional[str] = None) -> Dict[str, Optional[SubmittedAnswer]]:
    if answers is None:
        answers = {}
    if not isinstance(answers, dict):
        raise MalformedAttemptError(attempt_id, f"answers must be a mapping, got {type(answers).__name__}")
    out: Dict[str, Optional[SubmittedAnswer]] = {}
    for e in snapshot.entries:
        try:
            out[e.question_id] = coerce_answer(answers.get(e.question_id), e.question_type)
        except MalformedAttemptError as exc:
            raise MalformedAttemptError(attempt_id, f"question {e.question_id}: {exc.reason}") from exc
    return out
