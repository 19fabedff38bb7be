"""
Batch re-scoring and ranking of every completed attempt of a test.

Scoring runs against one AnswerKeySnapshot taken at the start. Nothing is
written until every attempt has been scored; the write phase (scores, ranks and
percentiles for the whole test) is a single transaction that first re-checks
the key fingerprint. An interrupted run leaves no partial state and can simply
be started again.
"""
import logging
from typing import Callable, Dict, Iterable, List, Optional

from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from score_engine.core.cache import invalidate_leaderboard
from score_engine.core.errors import ConsistencyError, MalformedAttemptError, RecalculationAborted
from score_engine.models.orm import TestAttempt
from score_engine.services.aggregator import AttemptScore, aggregate, aggregate_raw
from score_engine.services.answer_key import AnswerKeySnapshot, load_snapshot
from score_engine.services.ranking import RankedResult, ScoredAttempt, assign_ranks

logger = logging.getLogger(__name__)


class RecalculationSummary(BaseModel):
    test_id: str
    attempts_updated: int = 0
    attempts_skipped: int = 0
    skipped_attempt_ids: List[str] = Field(default_factory=list)
    configuration_errors: Dict[str, str] = Field(default_factory=dict)
    answer_key_fingerprint: str = ""


def _completed_attempts(db: Session, test_id: str) -> List[TestAttempt]:
    return db.execute(select(TestAttempt).where(TestAttempt.test_id == test_id, TestAttempt.completed_at.is_not(None))
                      .order_by(TestAttempt.id)).scalars().all()


def _apply_score(attempt: TestAttempt, s: AttemptScore, fingerprint: str) -> None:
    attempt.score = s.score
    attempt.total_marks = s.total_marks
    attempt.correct_count = s.correct_count
    attempt.incorrect_count = s.incorrect_count
    attempt.partial_count = s.partial_count
    attempt.unattempted_count = s.unattempted_count
    attempt.breakdown = s.breakdown()
    attempt.answer_key_fingerprint = fingerprint


def _apply_ranks(attempts: Dict[str, TestAttempt], ranked: List[RankedResult]) -> None:
    for r in ranked:
        a = attempts[r.attempt_id]
        a.rank = r.rank
        a.percentile = r.percentile


def _clear_ranks(attempts: Iterable[TestAttempt]) -> None:
    for a in attempts:
        a.rank = None
        a.percentile = None


def _scored(a: TestAttempt) -> ScoredAttempt:
    return ScoredAttempt(attempt_id=a.id, score=a.score, time_taken_seconds=a.time_taken_seconds, completed_at=a.completed_at)


def score_attempt(db: Session, attempt: TestAttempt, snapshot: Optional[AnswerKeySnapshot] = None) -> AttemptScore:
    """Per-attempt path used at submit time. Persists score fields, not ranks."""
    snapshot = snapshot or load_snapshot(db, attempt.test_id)
    s = aggregate_raw(attempt.answers, snapshot, attempt.id)
    _apply_score(attempt, s, snapshot.fingerprint)
    db.commit()
    return s


def rerank_test(db: Session, test_id: str) -> List[RankedResult]:
    """Full-test rank pass over the persisted scores. Idempotent.

    Only attempts scored against the current answer key are ranked; anything
    scored under an older key is left unranked until a full recalculation.
    """
    fingerprint = load_snapshot(db, test_id).fingerprint
    try:
        completed = _completed_attempts(db, test_id)
        current = [a for a in completed if a.score is not None and a.answer_key_fingerprint == fingerprint]
        unranked = [a for a in completed if a not in current]
        stale = [a for a in unranked if a.score is not None]
        if stale:
            logger.warning("%d attempts of test %s were scored under another answer key; run a recalculation",
                           len(stale), test_id)
        ranked = assign_ranks(_scored(a) for a in current)
        _clear_ranks(unranked)
        _apply_ranks({a.id: a for a in current}, ranked)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise
    invalidate_leaderboard(test_id)
    return ranked


def recalculate_test(db: Session, test_id: str, on_progress: Optional[Callable[[int, int], None]] = None,
                     dry_run: bool = False) -> RecalculationSummary:
    snapshot = load_snapshot(db, test_id)
    summary = RecalculationSummary(test_id=test_id, answer_key_fingerprint=snapshot.fingerprint,
                                   configuration_errors=aggregate({}, snapshot).configuration_errors)
    try:
        attempts = _completed_attempts(db, test_id)
    except SQLAlchemyError as e:
        db.rollback()
        raise RecalculationAborted(test_id, 0, e) from e
    logger.info("Recalculating %d completed attempts of test %s (key %s)", len(attempts), test_id, snapshot.fingerprint[:12])

    scores: Dict[str, AttemptScore] = {}
    for i, attempt in enumerate(attempts, start=1):
        try:
            s = aggregate_raw(attempt.answers, snapshot, attempt.id)
        except MalformedAttemptError as e:
            logger.warning("Skipping attempt %s: %s", attempt.id, e.reason)
            summary.skipped_attempt_ids.append(attempt.id)
        else:
            scores[attempt.id] = s
        if on_progress: on_progress(i, len(attempts))
    for qid, reason in summary.configuration_errors.items():
        logger.error("Question %s of test %s scored as unattempted: %s", qid, test_id, reason)

    try:
        current = load_snapshot(db, test_id).fingerprint
        if current != snapshot.fingerprint:
            raise ConsistencyError(test_id, snapshot.fingerprint, current)
        by_id = {a.id: a for a in attempts}
        for attempt_id, s in scores.items():
            _apply_score(by_id[attempt_id], s, snapshot.fingerprint)
        # a skipped attempt is unranked: its stored score may come from another key
        _clear_ranks(by_id[a] for a in summary.skipped_attempt_ids)
        rankable = {a: by_id[a] for a in scores}
        ranked = assign_ranks(_scored(a) for a in rankable.values())
        _apply_ranks(rankable, ranked)
        if dry_run:
            db.rollback()
        else:
            db.commit()
    except ConsistencyError:
        db.rollback()
        logger.error("Answer key of test %s changed during recalculation; nothing was written", test_id)
        raise
    except SQLAlchemyError as e:
        db.rollback()
        raise RecalculationAborted(test_id, len(scores), e) from e

    summary.attempts_updated = len(scores)
    summary.attempts_skipped = len(summary.skipped_attempt_ids)
    if not dry_run:
        invalidate_leaderboard(test_id)
    logger.info("Recalculated test %s: %d updated, %d skipped", test_id, summary.attempts_updated, summary.attempts_skipped)
    return summary
