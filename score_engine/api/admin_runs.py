from datetime import datetime
from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from typing import List, Optional
from sqlalchemy.orm import Session
from sqlalchemy import select
from score_engine.core.auth import ADMIN, require_roles
from score_engine.core.database import get_db
from score_engine.models.orm import RecalculationRun

router = APIRouter()

class RunRow(BaseModel):
    id: str; test_id: str; status: str; created_at: datetime; started_at: Optional[datetime]=None; finished_at: Optional[datetime]=None

class RunDetail(RunRow):
    result: Optional[dict]=None; error: Optional[str]=None

@router.get("/recalculate/runs", response_model=List[RunRow], dependencies=[Depends(require_roles(ADMIN))])
def list_runs(test_id: Optional[str] = None, page: int = Query(1, ge=1), page_size: int = Query(25, ge=1, le=200),
              db: Session = Depends(get_db)):
    stmt = select(RecalculationRun)
    if test_id: stmt = stmt.where(RecalculationRun.test_id == test_id)
    stmt = stmt.order_by(RecalculationRun.created_at.desc(), RecalculationRun.id).limit(page_size).offset((page-1)*page_size)
    return [RunRow.model_validate(r, from_attributes=True) for r in db.execute(stmt).scalars().all()]

@router.get("/recalculate/runs/{run_id}", response_model=RunDetail, dependencies=[Depends(require_roles(ADMIN))])
def run_detail(run_id: str, db: Session = Depends(get_db)):
    run = db.get(RecalculationRun, run_id)
    if not run: raise HTTPException(404, "Run not found")
    return RunDetail.model_validate(run, from_attributes=True)
