"""
Error taxonomy for scoring, ranking and the attempt lifecycle.
"""
from typing import Optional


class ScoringEngineError(Exception):
    """Base exception for the scoring engine."""


class ConfigurationError(ScoringEngineError):
    """Answer key entry that cannot be evaluated. Fatal for that question only."""

    def __init__(self, question_id: str, reason: str):
        self.question_id = question_id
        self.reason = reason
        super().__init__(f"question {question_id}: {reason}")


class MalformedAttemptError(ScoringEngineError):
    """Stored answers of an attempt cannot be read. The attempt is skipped in batch runs."""

    def __init__(self, attempt_id: Optional[str], reason: str):
        self.attempt_id = attempt_id
        self.reason = reason
        super().__init__(f"attempt {attempt_id}: {reason}")


class NotAvailable(ScoringEngineError):
    """Test does not exist or is not published."""

    def __init__(self, test_id: str):
        self.test_id = test_id
        super().__init__(f"Test {test_id} not found or not published")


class AttemptNotFound(ScoringEngineError):
    def __init__(self, attempt_id: str):
        self.attempt_id = attempt_id
        super().__init__(f"Test attempt {attempt_id} not found")


class LifecycleConflict(ScoringEngineError):
    """Expected control-flow outcome of the attempt lifecycle, shown to the student."""

    message = "Attempt state conflict"

    def __init__(self, attempt_id: Optional[str] = None, message: Optional[str] = None):
        self.attempt_id = attempt_id
        if message:
            self.message = message
        super().__init__(self.message)


class AlreadyCompleted(LifecycleConflict):
    message = "You have already attempted this test. Each test can only be attempted once."


class ConsistencyError(ScoringEngineError):
    """Answer key changed while a recalculation run was in progress."""

    def __init__(self, test_id: str, expected: str, actual: str):
        self.test_id = test_id
        self.expected = expected
        self.actual = actual
        super().__init__(f"answer key for test {test_id} changed mid-run ({expected[:12]} -> {actual[:12]})")


class RecalculationAborted(ScoringEngineError):
    """Job-level failure; carries how far the run got before it stopped."""

    def __init__(self, test_id: str, scored_before_abort: int, cause: Exception):
        self.test_id = test_id
        self.scored_before_abort = scored_before_abort
        self.cause = cause
        super().__init__(f"recalculation of test {test_id} aborted after {scored_before_abort} attempts: {cause}")
