from datetime import datetime, timedelta
import pytest
from sqlalchemy import func, select
from score_engine.core.errors import AlreadyCompleted, AttemptNotFound, LifecycleConflict, NotAvailable
from score_engine.models import orm
from score_engine.services import lifecycle

T0 = datetime(2026, 1, 10, 9, 0, 0)

def count_attempts(db, test_id):
    return db.scalar(select(func.count()).select_from(orm.TestAttempt).where(orm.TestAttempt.test_id == test_id))

def test_start_then_resume(db, make_test, two_questions):
    t = make_test(two_questions, duration_minutes=60)
    first = lifecycle.start_or_resume(db, t.id, "u1", now=T0)
    assert not first.is_resume and first.remaining_seconds == 3600
    lifecycle.save_answers(db, first.attempt_id, "u1", {"Q1": "B"}, {"Q1": 42})
    again = lifecycle.start_or_resume(db, t.id, "u1", now=T0 + timedelta(minutes=10))
    assert again.is_resume and again.attempt_id == first.attempt_id
    assert again.remaining_seconds == 3000
    assert again.existing_answers == {"Q1": "B"}
    assert again.existing_time_per_question == {"Q1": 42}
    assert count_attempts(db, t.id) == 1

def test_resume_after_deadline_reports_zero_remaining(db, make_test, two_questions):
    t = make_test(two_questions, duration_minutes=30)
    lifecycle.start_or_resume(db, t.id, "u1", now=T0)
    assert lifecycle.start_or_resume(db, t.id, "u1", now=T0 + timedelta(hours=2)).remaining_seconds == 0

def test_concurrent_start_creates_one_row(db, make_test, two_questions, add_attempt, monkeypatch):
    t = make_test(two_questions)
    winner = add_attempt(t.id, "u1", {"Q1": "A"}, completed=False)
    calls = []
    real_find = lifecycle.find_attempt

    def racing_find(session, test_id, user_id):
        # the first lookup misses, as if the other request had not inserted yet
        calls.append(1)
        return None if len(calls) == 1 else real_find(session, test_id, user_id)

    monkeypatch.setattr(lifecycle, "find_attempt", racing_find)
    res = lifecycle.start_or_resume(db, t.id, "u1", now=T0)
    assert res.is_resume and res.attempt_id == winner.id
    assert res.existing_answers == {"Q1": "A"}
    assert count_attempts(db, t.id) == 1

def test_start_after_completion_is_conflict(db, make_test, two_questions, add_attempt):
    t = make_test(two_questions)
    a = add_attempt(t.id, "u1", {"Q1": "B"})
    with pytest.raises(AlreadyCompleted) as exc:
        lifecycle.start_or_resume(db, t.id, "u1")
    assert isinstance(exc.value, LifecycleConflict)
    assert exc.value.attempt_id == a.id
    assert "only be attempted once" in exc.value.message

@pytest.mark.parametrize("published", [False, None])
def test_unpublished_or_missing_test_is_not_available(db, make_test, two_questions, published):
    test_id = make_test(two_questions, published=False).id if published is False else "no-such-test"
    with pytest.raises(NotAvailable):
        lifecycle.start_or_resume(db, test_id, "u1")

def test_unpublished_check_precedes_completed_check(db, make_test, two_questions, add_attempt):
    t = make_test(two_questions)
    add_attempt(t.id, "u1", {})
    t.is_published = False; db.commit()
    with pytest.raises(NotAvailable):
        lifecycle.start_or_resume(db, t.id, "u1")

def test_complete_twice_is_a_no_op(db, make_test, two_questions):
    t = make_test(two_questions)
    start = lifecycle.start_or_resume(db, t.id, "u1", now=T0)
    a, newly = lifecycle.complete(db, start.attempt_id, "u1", {"Q1": "B"}, now=T0 + timedelta(minutes=20))
    assert newly and a.time_taken_seconds == 1200
    a2, newly2 = lifecycle.complete(db, start.attempt_id, "u1", {"Q1": "C"}, time_taken_seconds=5, now=T0 + timedelta(minutes=40))
    assert not newly2
    assert a2.answers == {"Q1": "B"}
    assert a2.completed_at == T0 + timedelta(minutes=20)
    assert a2.time_taken_seconds == 1200

def test_time_taken_capped_at_duration(db, make_test, two_questions):
    t = make_test(two_questions, duration_minutes=10)
    start = lifecycle.start_or_resume(db, t.id, "u1", now=T0)
    a, _ = lifecycle.complete(db, start.attempt_id, "u1", time_taken_seconds=99999)
    assert a.time_taken_seconds == 600

def test_save_answers_after_completion_is_conflict(db, make_test, two_questions):
    t = make_test(two_questions)
    start = lifecycle.start_or_resume(db, t.id, "u1", now=T0)
    lifecycle.complete(db, start.attempt_id, "u1", now=T0 + timedelta(minutes=1))
    with pytest.raises(AlreadyCompleted):
        lifecycle.save_answers(db, start.attempt_id, "u1", {"Q1": "A"})

def test_attempt_of_another_user_is_not_found(db, make_test, two_questions):
    t = make_test(two_questions)
    start = lifecycle.start_or_resume(db, t.id, "u1", now=T0)
    with pytest.raises(AttemptNotFound):
        lifecycle.save_answers(db, start.attempt_id, "intruder", {"Q1": "A"})
    with pytest.raises(AttemptNotFound):
        lifecycle.complete(db, start.attempt_id, "intruder")
