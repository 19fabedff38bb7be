from datetime import datetime
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy import Integer, String, Text, Boolean, ForeignKey, JSON, DateTime, UniqueConstraint, Index, func

class Base(DeclarativeBase): pass

class Test(Base):
    __tablename__ = "tests"
    id: Mapped[str] = mapped_column(String, primary_key=True)
    name: Mapped[str] = mapped_column(String)
    exam_family: Mapped[str] = mapped_column(String, default="jee_mains")
    duration_minutes: Mapped[int] = mapped_column(Integer, default=180)
    is_published: Mapped[bool] = mapped_column(Boolean, default=False)
    # only read for exam_family == "custom"
    mcq_partial_credit: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    mcq_wrong_penalty: Mapped[int | None] = mapped_column(Integer, nullable=True)

class TestQuestion(Base):
    __tablename__ = "test_questions"
    __table_args__ = (Index("idx_tq_test", "test_id"),)
    id: Mapped[str] = mapped_column(String, primary_key=True)
    test_id: Mapped[str] = mapped_column(String, ForeignKey("tests.id"))
    order_index: Mapped[int] = mapped_column(Integer, default=0)
    question_type: Mapped[str] = mapped_column(String, default="single_choice")
    correct_answer: Mapped[object] = mapped_column(JSON)
    marks: Mapped[int] = mapped_column(Integer, default=4)
    negative_marks: Mapped[int] = mapped_column(Integer, default=1)
    is_bonus: Mapped[bool] = mapped_column(Boolean, default=False)
    subject: Mapped[str | None] = mapped_column(String, nullable=True)

class TestAttempt(Base):
    __tablename__ = "test_attempts"
    __table_args__ = (
        UniqueConstraint("test_id", "user_id", name="uq_test_attempt_user"),
        Index("idx_ta_test", "test_id"),
    )
    id: Mapped[str] = mapped_column(String, primary_key=True)
    test_id: Mapped[str] = mapped_column(String, ForeignKey("tests.id"))
    user_id: Mapped[str] = mapped_column(String)
    started_at: Mapped[datetime] = mapped_column(DateTime)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    answers: Mapped[dict] = mapped_column(JSON, default=dict)
    time_per_question: Mapped[dict] = mapped_column(JSON, default=dict)
    time_taken_seconds: Mapped[int | None] = mapped_column(Integer, nullable=True)
    score: Mapped[int | None] = mapped_column(Integer, nullable=True)
    total_marks: Mapped[int | None] = mapped_column(Integer, nullable=True)
    correct_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    incorrect_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    partial_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    unattempted_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    rank: Mapped[int | None] = mapped_column(Integer, nullable=True)
    percentile: Mapped[int | None] = mapped_column(Integer, nullable=True)
    breakdown: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    answer_key_fingerprint: Mapped[str | None] = mapped_column(String(64), nullable=True)

class RecalculationRun(Base):
    __tablename__ = "recalculation_runs"
    __table_args__ = (Index("idx_rr_test", "test_id"),)
    id: Mapped[str] = mapped_column(String, primary_key=True)
    test_id: Mapped[str] = mapped_column(String)
    status: Mapped[str] = mapped_column(String)
    result: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=func.now())
    started_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    finished_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
