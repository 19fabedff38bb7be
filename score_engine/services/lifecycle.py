"""
Attempt lifecycle: none -> active -> completed.

One row per (test, user), enforced by a unique constraint. Completion is
terminal and idempotent.
"""
import logging
from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4

from pydantic import BaseModel
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from score_engine.core.errors import AlreadyCompleted, AttemptNotFound, NotAvailable
from score_engine.models.orm import Test, TestAttempt

logger = logging.getLogger(__name__)


class AttemptStart(BaseModel):
    attempt_id: str
    remaining_seconds: int
    existing_answers: dict
    existing_time_per_question: dict
    is_resume: bool


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def remaining_seconds(attempt: TestAttempt, test: Test, now: Optional[datetime] = None) -> int:
    now = now or utcnow()
    elapsed = int((now - attempt.started_at).total_seconds())
    return max(0, int(test.duration_minutes) * 60 - elapsed)


def _published_test(db: Session, test_id: str) -> Test:
    test = db.get(Test, test_id)
    if not test or not test.is_published:
        raise NotAvailable(test_id)
    return test


def find_attempt(db: Session, test_id: str, user_id: str) -> Optional[TestAttempt]:
    return db.scalar(select(TestAttempt).where(TestAttempt.test_id == test_id, TestAttempt.user_id == user_id))


def _resume(attempt: TestAttempt, test: Test, now: Optional[datetime]) -> AttemptStart:
    if attempt.completed_at is not None:
        logger.info("User %s already completed test %s", attempt.user_id, attempt.test_id)
        raise AlreadyCompleted(attempt.id)
    left = remaining_seconds(attempt, test, now)
    logger.info("Resuming attempt %s (%ss left)", attempt.id, left)
    return AttemptStart(attempt_id=attempt.id, remaining_seconds=left, existing_answers=dict(attempt.answers or {}),
                        existing_time_per_question=dict(attempt.time_per_question or {}), is_resume=True)


def start_or_resume(db: Session, test_id: str, user_id: str, now: Optional[datetime] = None) -> AttemptStart:
    test = _published_test(db, test_id)
    existing = find_attempt(db, test_id, user_id)
    if existing:
        return _resume(existing, test, now)
    attempt = TestAttempt(id=str(uuid4()), test_id=test_id, user_id=user_id, started_at=now or utcnow(),
                          answers={}, time_per_question={})
    db.add(attempt)
    try:
        db.commit()
    except IntegrityError:
        # a concurrent start for the same (test, user) won the insert
        db.rollback()
        winner = find_attempt(db, test_id, user_id)
        if winner is None: raise
        return _resume(winner, test, now)
    logger.info("Created attempt %s for user %s on test %s", attempt.id, user_id, test_id)
    return AttemptStart(attempt_id=attempt.id, remaining_seconds=int(test.duration_minutes) * 60,
                        existing_answers={}, existing_time_per_question={}, is_resume=False)


def get_attempt(db: Session, attempt_id: str, user_id: Optional[str] = None) -> TestAttempt:
    attempt = db.get(TestAttempt, attempt_id)
    if not attempt or (user_id is not None and attempt.user_id != user_id):
        raise AttemptNotFound(attempt_id)
    return attempt


def save_answers(db: Session, attempt_id: str, user_id: str, answers: dict, time_per_question: Optional[dict] = None) -> TestAttempt:
    attempt = get_attempt(db, attempt_id, user_id)
    if attempt.completed_at is not None:
        raise AlreadyCompleted(attempt_id, "This attempt has already been submitted.")
    attempt.answers = dict(answers or {})
    if time_per_question is not None:
        attempt.time_per_question = dict(time_per_question)
    db.commit()
    return attempt


def complete(db: Session, attempt_id: str, user_id: Optional[str] = None, answers: Optional[dict] = None,
             time_taken_seconds: Optional[int] = None, now: Optional[datetime] = None) -> tuple[TestAttempt, bool]:
    """Mark the attempt completed. Returns (attempt, newly_completed).

    The write is conditional on completed_at still being NULL, so of two racing
    submits exactly one wins. A repeated call is a no-op: the stored state is
    returned untouched and any answers sent with the retry are ignored.
    """
    attempt = get_attempt(db, attempt_id, user_id)
    if attempt.completed_at is not None:
        logger.info("Attempt %s already completed; ignoring repeated submit", attempt_id)
        return attempt, False
    now = now or utcnow()
    test = db.get(Test, attempt.test_id)
    if time_taken_seconds is None:
        time_taken_seconds = int((now - attempt.started_at).total_seconds())
    time_taken_seconds = max(0, int(time_taken_seconds))
    if test is not None:
        time_taken_seconds = min(time_taken_seconds, int(test.duration_minutes) * 60)
    values = {"completed_at": now, "time_taken_seconds": time_taken_seconds}
    if answers is not None:
        values["answers"] = dict(answers)
    res = db.execute(update(TestAttempt).where(TestAttempt.id == attempt_id, TestAttempt.completed_at.is_(None)).values(**values))
    db.commit()
    db.refresh(attempt)
    if res.rowcount == 0:
        logger.info("Attempt %s was completed concurrently", attempt_id)
        return attempt, False
    logger.info("Attempt %s completed in %ss", attempt_id, time_taken_seconds)
    return attempt, True
