from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from score_engine.core.auth import ADMIN, require_roles
from score_engine.core.config import RECALC_JOB_TIMEOUT
from score_engine.core.database import get_db
from score_engine.core.errors import NotAvailable
from score_engine.jobs.queue import queue
from score_engine.jobs.recalculation_job import recalculate_job, create_run
from score_engine.models.orm import Test
from score_engine.services.recalculation import RecalculationSummary, recalculate_test

router = APIRouter()

@router.post("/tests/{test_id}/recalculate", response_model=RecalculationSummary, dependencies=[Depends(require_roles(ADMIN))])
def recalculate_now(test_id: str, db: Session = Depends(get_db)):
    return recalculate_test(db, test_id)

@router.post("/tests/{test_id}/recalculate/enqueue", dependencies=[Depends(require_roles(ADMIN))])
def enqueue_recalculation(test_id: str, db: Session = Depends(get_db)):
    if not db.get(Test, test_id): raise NotAvailable(test_id)
    run = create_run(db, test_id)
    job = queue.enqueue(recalculate_job, test_id, run.id, job_timeout=RECALC_JOB_TIMEOUT)
    return {"job_id": job.get_id(), "run_id": run.id}
