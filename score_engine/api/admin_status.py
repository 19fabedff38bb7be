from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from rq.exceptions import NoSuchJobError
from rq.job import Job
from score_engine.core.auth import ADMIN, require_roles
from score_engine.jobs.queue import redis

router = APIRouter()

class RecalcStatus(BaseModel):
    state: str
    processed: int
    total: int
    result: dict | None = None

@router.get("/recalculate/status", response_model=RecalcStatus, dependencies=[Depends(require_roles(ADMIN))])
def recalc_status(job_id: str):
    try:
        job = Job.fetch(job_id, connection=redis)
    except NoSuchJobError:
        raise HTTPException(404, "Job not found")
    meta = job.meta or {}
    state = meta.get("state") or str(job.get_status())
    return RecalcStatus(
        state=state,
        processed=int(meta.get("processed") or 0),
        total=int(meta.get("total") or 0),
        result=job.result if state == "done" else None
    )
