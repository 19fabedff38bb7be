import logging
import uuid
from rq import get_current_job
from score_engine.core.database import SessionLocal
from score_engine.core.errors import RecalculationAborted
from score_engine.models.orm import RecalculationRun
from score_engine.services.lifecycle import utcnow
from score_engine.services.recalculation import recalculate_test

logger = logging.getLogger(__name__)

def _meta(job, **kw):
    if job is None: return
    job.meta.update(kw); job.save_meta()

def create_run(db, test_id, status="queued", run_id=None):
    run = RecalculationRun(id=run_id or str(uuid.uuid4()), test_id=test_id, status=status, created_at=utcnow())
    db.add(run); db.commit()
    return run

def recalculate_job(test_id, run_id=None, session_factory=SessionLocal):
    job = get_current_job()
    _meta(job, state="running", processed=0, total=0)
    db = session_factory()
    try:
        run = db.get(RecalculationRun, run_id) if run_id else None
        if run is None: run = create_run(db, test_id, "running", run_id)
        run.status = "running"; run.started_at = utcnow(); db.commit()
        run_id = run.id

        def progress(done, total):
            if done == total or done % 50 == 0:
                _meta(job, processed=done, total=total)

        try:
            summary = recalculate_test(db, test_id, on_progress=progress)
        except Exception as e:
            _meta(job, state="failed")
            if isinstance(e, RecalculationAborted):
                _meta(job, processed=e.scored_before_abort)
            logger.error("Recalculation run %s for test %s failed: %s", run_id, test_id, e)
            db.rollback()
            run = db.get(RecalculationRun, run_id)
            run.status = "failed"; run.error = str(e); run.finished_at = utcnow(); db.commit()
            raise
        result = summary.model_dump()
        run = db.get(RecalculationRun, run_id)
        run.status = "done"; run.result = result; run.finished_at = utcnow(); db.commit()
        _meta(job, state="done", processed=summary.attempts_updated + summary.attempts_skipped)
        return result
    finally:
        db.close()
