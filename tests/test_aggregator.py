import pytest
from score_engine.core.errors import MalformedAttemptError
from score_engine.services.aggregator import aggregate, aggregate_raw
from score_engine.services.answer_key import (
    AnswerKeyEntry, AnswerKeySnapshot, Multiple, Single, compute_fingerprint, load_snapshot, policy_for_exam,
)

def snapshot(entries, family="jee_mains"):
    policy = policy_for_exam(family)
    entries = tuple(entries)
    return AnswerKeySnapshot(test_id="t1", policy=policy, entries=entries, fingerprint=compute_fingerprint(policy, entries))

def test_two_question_scenario(db, make_test, two_questions):
    t = make_test(two_questions)
    s = aggregate_raw({"Q1": "B", "Q2": "9.995"}, load_snapshot(db, t.id))
    assert (s.score, s.total_marks, s.correct_count, s.incorrect_count) == (8, 8, 2, 0)

def test_total_marks_counts_every_question():
    snap = snapshot([
        AnswerKeyEntry(question_id="a", question_type="single_choice", correct_answer="A", marks=4, negative_marks=1),
        AnswerKeyEntry(question_id="b", question_type="single_choice", correct_answer="B", marks=3, negative_marks=1),
        AnswerKeyEntry(question_id="c", question_type="single_choice", correct_answer="C", marks=2, is_bonus=True),
    ])
    s = aggregate({"a": Single(label="A")}, snap)
    assert s.total_marks == 9
    assert s.score == 6
    assert (s.correct_count, s.unattempted_count, s.bonus_count) == (1, 1, 1)

def test_score_may_go_negative():
    snap = snapshot([
        AnswerKeyEntry(question_id="a", question_type="single_choice", correct_answer="A", marks=4, negative_marks=1),
        AnswerKeyEntry(question_id="b", question_type="single_choice", correct_answer="B", marks=4, negative_marks=1),
    ])
    s = aggregate({"a": Single(label="C"), "b": Single(label="C")}, snap)
    assert s.score == -2 and s.incorrect_count == 2

def test_answers_for_unknown_questions_are_ignored():
    snap = snapshot([AnswerKeyEntry(question_id="a", question_type="single_choice", correct_answer="A", marks=4)])
    s = aggregate({"a": Single(label="A"), "zz": Single(label="A")}, snap)
    assert s.score == 4 and len(s.outcomes) == 1

def test_partial_counted_separately_from_correct():
    snap = snapshot([AnswerKeyEntry(question_id="m", question_type="multiple_choice", correct_answer=frozenset({"A", "C"}), marks=4)],
                    family="jee_advanced")
    s = aggregate({"m": Multiple(labels=frozenset({"C"}))}, snap)
    assert (s.score, s.correct_count, s.partial_count) == (2, 0, 1)

def test_configuration_error_scores_question_as_unattempted():
    snap = snapshot([
        AnswerKeyEntry(question_id="a", question_type="single_choice", correct_answer="A", marks=4),
        AnswerKeyEntry(question_id="x", question_type="assertion_reason", correct_answer="A", marks=4, is_bonus=True),
    ])
    s = aggregate({"a": Single(label="A"), "x": Single(label="A")}, snap)
    assert s.score == 4 and s.total_marks == 8
    assert s.unattempted_count == 1
    assert "x" in s.configuration_errors

def test_subject_breakdown(db, make_test):
    t = make_test([
        {"id": "P1", "question_type": "single_choice", "correct_answer": "A", "marks": 4, "negative_marks": 1, "subject": "Physics"},
        {"id": "C1", "question_type": "multiple_choice", "correct_answer": ["A", "B"], "marks": 4, "negative_marks": 2, "subject": "Chemistry"},
        {"id": "C2", "question_type": "integer", "correct_answer": 3, "marks": 4, "negative_marks": 1, "subject": "Chemistry"},
    ])
    s = aggregate_raw({"P1": "A", "C1": ["B", "A"], "C2": "2"}, load_snapshot(db, t.id))
    b = s.breakdown()
    assert b["subject_scores"]["Physics"]["score"] == 4
    assert b["subject_scores"]["Chemistry"] == {"score": 3, "total_marks": 8, "correct": 1, "incorrect": 1, "partial": 0, "skipped": 0}
    assert b["question_results"]["C2"] == {"outcome": "incorrect", "marks_obtained": -1}

def test_comma_separated_correct_answer_for_multiple_choice(db, make_test):
    t = make_test([{"id": "M1", "question_type": "multiple_choice", "correct_answer": "A, D", "marks": 4, "negative_marks": 1}])
    assert aggregate_raw({"M1": ["D", "A"]}, load_snapshot(db, t.id)).score == 4

@pytest.mark.parametrize("answers", [["B"], "Q1=B", {"Q1": {"value": "B"}}, {"Q1": [["B"]]}, {"Q1": True}])
def test_unreadable_answers_raise_malformed(db, make_test, two_questions, answers):
    t = make_test(two_questions)
    with pytest.raises(MalformedAttemptError) as exc:
        aggregate_raw(answers, load_snapshot(db, t.id), "att-1")
    assert exc.value.attempt_id == "att-1"

def test_whitespace_answer_is_an_attempt(db, make_test, two_questions):
    t = make_test(two_questions)
    s = aggregate_raw({"Q1": " "}, load_snapshot(db, t.id))
    assert s.incorrect_count == 1 and s.score == -1

def test_no_answers_scores_zero(db, make_test, two_questions):
    t = make_test(two_questions)
    s = aggregate_raw(None, load_snapshot(db, t.id))
    assert s.score == 0 and s.unattempted_count == 2

def test_multi_answer_key_on_single_choice_is_a_configuration_error(db, make_test):
    t = make_test([{"id": "S1", "question_type": "single_choice", "correct_answer": ["A", "B"], "marks": 4, "negative_marks": 1}])
    s = aggregate_raw({"S1": "A"}, load_snapshot(db, t.id))
    assert s.score == 0 and "S1" in s.configuration_errors
