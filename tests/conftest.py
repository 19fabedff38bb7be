import os
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ["LEADERBOARD_CACHE_ENABLED"] = "0"
os.environ.setdefault("APP_SECRET", "test-secret")

from datetime import datetime, timedelta
from uuid import uuid4
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from score_engine.models import orm

T0 = datetime(2026, 1, 10, 9, 0, 0)

@pytest.fixture
def session_factory():
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool, future=True)
    orm.Base.metadata.create_all(engine)
    yield sessionmaker(bind=engine, autocommit=False, autoflush=False, future=True)
    engine.dispose()

@pytest.fixture
def db(session_factory):
    s = session_factory()
    yield s
    s.close()

@pytest.fixture
def make_test(db):
    def _make(questions, exam_family="jee_mains", published=True, duration_minutes=180, **extra):
        t = orm.Test(id=str(uuid4()), name="Mock Test", exam_family=exam_family, duration_minutes=duration_minutes,
                     is_published=published, **extra)
        db.add(t)
        for i, q in enumerate(questions):
            q = dict(q)
            db.add(orm.TestQuestion(id=q.pop("id"), test_id=t.id, order_index=i, **q))
        db.commit()
        return t
    return _make

@pytest.fixture
def add_attempt(db):
    def _add(test_id, user_id, answers, completed=True, time_taken_seconds=None, completed_at=None):
        a = orm.TestAttempt(id=str(uuid4()), test_id=test_id, user_id=user_id, started_at=T0, answers=answers,
                            time_per_question={}, time_taken_seconds=time_taken_seconds,
                            completed_at=(completed_at or T0 + timedelta(minutes=60)) if completed else None)
        db.add(a); db.commit()
        return a
    return _add

@pytest.fixture
def two_questions():
    return [
        {"id": "Q1", "question_type": "single_choice", "correct_answer": "B", "marks": 4, "negative_marks": 1},
        {"id": "Q2", "question_type": "integer", "correct_answer": "10", "marks": 4, "negative_marks": 0},
    ]
