import logging
from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from score_engine.core.config import LOG_LEVEL
from score_engine.core.errors import (
    AttemptNotFound, ConsistencyError, LifecycleConflict, MalformedAttemptError, NotAvailable, RecalculationAborted,
)
from score_engine.api.attempts import router as attempts_router
from score_engine.api.leaderboard import router as leaderboard_router
from score_engine.api.admin import router as admin_router
from score_engine.api.admin_runs import router as runs_router
from score_engine.api.admin_status import router as status_router

logging.basicConfig(level=getattr(logging, LOG_LEVEL, logging.INFO), format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
logger = logging.getLogger(__name__)

app = FastAPI(title="Scoring & Ranking Engine", version="1.0.0")
app.add_middleware(CORSMiddleware, allow_origins=["*"], allow_credentials=True, allow_methods=["*"], allow_headers=["*"])
app.include_router(attempts_router, prefix="/v1", tags=["attempts"])
app.include_router(leaderboard_router, prefix="/v1", tags=["leaderboard"])
app.include_router(admin_router, prefix="/v1/admin", tags=["recalculation"])
app.include_router(runs_router, prefix="/v1/admin", tags=["recalculation-runs"])
app.include_router(status_router, prefix="/v1/admin", tags=["recalculation-status"])

def _error(code: int, message: str, kind: str, **extra) -> JSONResponse:
    return JSONResponse(status_code=code, content={"error": {"message": message, "type": kind, **extra}})

@app.exception_handler(LifecycleConflict)
async def lifecycle_conflict_handler(request: Request, exc: LifecycleConflict):
    return _error(status.HTTP_409_CONFLICT, exc.message, "lifecycle_conflict", attempt_id=exc.attempt_id)

@app.exception_handler(NotAvailable)
async def not_available_handler(request: Request, exc: NotAvailable):
    return _error(status.HTTP_404_NOT_FOUND, str(exc), "not_available")

@app.exception_handler(AttemptNotFound)
async def attempt_not_found_handler(request: Request, exc: AttemptNotFound):
    return _error(status.HTTP_404_NOT_FOUND, str(exc), "attempt_not_found")

@app.exception_handler(MalformedAttemptError)
async def malformed_attempt_handler(request: Request, exc: MalformedAttemptError):
    logger.warning("Malformed attempt: %s", exc)
    return _error(status.HTTP_422_UNPROCESSABLE_ENTITY, str(exc), "malformed_attempt")

@app.exception_handler(ConsistencyError)
async def consistency_error_handler(request: Request, exc: ConsistencyError):
    return _error(status.HTTP_409_CONFLICT, "Answer key changed during recalculation; retry the run", "consistency_error")

@app.exception_handler(RecalculationAborted)
async def recalculation_aborted_handler(request: Request, exc: RecalculationAborted):
    logger.error("Recalculation aborted: %s", exc, exc_info=exc.cause)
    return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, str(exc), "recalculation_aborted",
                  scored_before_abort=exc.scored_before_abort)

@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return _error(exc.status_code, exc.detail, "http_error")

@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return _error(status.HTTP_422_UNPROCESSABLE_ENTITY, "Validation error", "validation_error", details=jsonable_encoder(exc.errors()))

@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    logger.error("Unhandled exception on %s %s: %s", request.method, request.url.path, exc, exc_info=True)
    return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error", "internal_error")

@app.get("/health")
def health(): return {"status": "ok"}
