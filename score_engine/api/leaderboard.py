from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from typing import List, Optional
from sqlalchemy.orm import Session
from sqlalchemy import select
from score_engine.core.auth import ADMIN, STUDENT, require_roles
from score_engine.core.cache import get_cached_leaderboard, cache_leaderboard
from score_engine.core.database import get_db
from score_engine.core.errors import NotAvailable
from score_engine.models.orm import Test, TestAttempt

router = APIRouter()

class LeaderboardRow(BaseModel):
    rank: int
    attempt_id: str
    user_id: str
    score: int
    total_marks: Optional[int] = None
    percentile: Optional[int] = None
    time_taken_seconds: Optional[int] = None

def load_leaderboard(db: Session, test_id: str) -> List[dict]:
    rows = db.execute(select(TestAttempt).where(TestAttempt.test_id == test_id, TestAttempt.rank.is_not(None))
                      .order_by(TestAttempt.rank)).scalars().all()
    return [LeaderboardRow(rank=a.rank, attempt_id=a.id, user_id=a.user_id, score=a.score, total_marks=a.total_marks,
                           percentile=a.percentile, time_taken_seconds=a.time_taken_seconds).model_dump() for a in rows]

@router.get("/tests/{test_id}/leaderboard", response_model=List[LeaderboardRow], dependencies=[Depends(require_roles(STUDENT, ADMIN))])
def leaderboard(test_id: str, limit: int = Query(100, ge=1, le=1000), db: Session = Depends(get_db)):
    rows = get_cached_leaderboard(test_id)
    if rows is None:
        if not db.get(Test, test_id): raise NotAvailable(test_id)
        rows = load_leaderboard(db, test_id)
        cache_leaderboard(test_id, rows)
    return rows[:limit]
