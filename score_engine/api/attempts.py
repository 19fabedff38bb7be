from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from typing import Dict, List, Optional, Union
from sqlalchemy.orm import Session
from score_engine.core.auth import STUDENT, require_roles, TokenData
from score_engine.core.config import RERANK_ON_SUBMIT
from score_engine.core.database import get_db
from score_engine.services import lifecycle
from score_engine.services.lifecycle import AttemptStart
from score_engine.services.recalculation import score_attempt, rerank_test

router = APIRouter()

AnswerValue = Union[str, int, float, List[str], None]

class AnswersIn(BaseModel):
    answers: Dict[str, AnswerValue] = Field(default_factory=dict)
    time_per_question: Optional[Dict[str, int]] = None

class SubmitIn(BaseModel):
    answers: Optional[Dict[str, AnswerValue]] = None
    time_taken_seconds: Optional[int] = Field(default=None, ge=0)

class SubmitResult(BaseModel):
    attempt_id: str
    score: Optional[int] = None
    total_marks: Optional[int] = None
    correct: Optional[int] = None
    incorrect: Optional[int] = None
    partial: Optional[int] = None
    skipped: Optional[int] = None
    time_taken_seconds: Optional[int] = None
    rank: Optional[int] = None
    percentile: Optional[int] = None
    question_results: dict = Field(default_factory=dict)
    subject_scores: dict = Field(default_factory=dict)

def _result(a) -> SubmitResult:
    b = a.breakdown or {}
    return SubmitResult(attempt_id=a.id, score=a.score, total_marks=a.total_marks, correct=a.correct_count,
                        incorrect=a.incorrect_count, partial=a.partial_count, skipped=a.unattempted_count,
                        time_taken_seconds=a.time_taken_seconds, rank=a.rank, percentile=a.percentile,
                        question_results=b.get("question_results", {}), subject_scores=b.get("subject_scores", {}))

@router.post("/tests/{test_id}/start", response_model=AttemptStart)
def start_or_resume_attempt(test_id: str, user: TokenData = Depends(require_roles(STUDENT)), db: Session = Depends(get_db)):
    return lifecycle.start_or_resume(db, test_id, user.sub)

@router.put("/attempts/{attempt_id}/answers")
def autosave_answers(attempt_id: str, payload: AnswersIn, user: TokenData = Depends(require_roles(STUDENT)), db: Session = Depends(get_db)):
    a = lifecycle.save_answers(db, attempt_id, user.sub, payload.answers, payload.time_per_question)
    return {"attempt_id": a.id, "saved": len(a.answers or {})}

@router.post("/attempts/{attempt_id}/submit", response_model=SubmitResult)
def submit_attempt(attempt_id: str, payload: SubmitIn, user: TokenData = Depends(require_roles(STUDENT)), db: Session = Depends(get_db)):
    attempt, newly = lifecycle.complete(db, attempt_id, user.sub, payload.answers, payload.time_taken_seconds)
    if newly or attempt.score is None:
        score_attempt(db, attempt)
        if RERANK_ON_SUBMIT: rerank_test(db, attempt.test_id)
        db.refresh(attempt)
    return _result(attempt)
