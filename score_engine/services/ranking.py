from datetime import datetime
from typing import Iterable, List, Optional

from pydantic import BaseModel, ConfigDict


class ScoredAttempt(BaseModel):
    model_config = ConfigDict(frozen=True)
    attempt_id: str
    score: int
    time_taken_seconds: Optional[int] = None
    completed_at: Optional[datetime] = None


class RankedResult(BaseModel):
    model_config = ConfigDict(frozen=True)
    attempt_id: str
    score: int
    rank: int
    percentile: int


def rank_key(a: ScoredAttempt):
    # score desc, time taken asc, completion time asc, attempt id asc; missing values sort last
    return (
        -a.score,
        a.time_taken_seconds is None, a.time_taken_seconds or 0,
        a.completed_at is None, a.completed_at or datetime.min,
        a.attempt_id,
    )


def percentile_for(rank: int, n: int) -> int:
    """round(((n - rank) / n) * 100), rounding halves up, in integer arithmetic."""
    if n <= 0: return 0
    return (200 * (n - rank) + n) // (2 * n)


def assign_ranks(scored: Iterable[ScoredAttempt]) -> List[RankedResult]:
    ordered = sorted(scored, key=rank_key)
    n = len(ordered)
    return [RankedResult(attempt_id=a.attempt_id, score=a.score, rank=i, percentile=percentile_for(i, n))
            for i, a in enumerate(ordered, start=1)]
