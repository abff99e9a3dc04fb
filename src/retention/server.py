import logging
import time
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, HTTPException
from pydantic import BaseModel

from retention.application.service import RetentionService
from retention.consts import VERSION
from retention.interface.schemas import (
    DueResponse,
    RecallResultResponse,
    RecallTestRequest,
    ReviewRequest,
    ScheduleRequest,
    ScheduleResponse,
    StateModel,
    SummaryResponse,
)

# Setup logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("retention.server")

_service: RetentionService | None = None


def get_service() -> RetentionService:
    """Build the service from resolved config on first use."""
    global _service
    if _service is None:
        from retention.application.config import resolve_config
        from retention.application.factory import get_retention_service

        _service = get_retention_service(resolve_config())
    return _service


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info(f"Retention Server v{VERSION} starting up...")
    yield
    # Shutdown
    logger.info("Retention Server shutting down...")


app = FastAPI(
    title="Retention Server",
    description="SM-2 review scheduling for learner topic cards.",
    version=VERSION,
    lifespan=lifespan,
)


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------


class HealthResponse(BaseModel):
    status: str
    version: str
    uptime_seconds: float


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------

start_time = time.time()


@app.get("/health", response_model=HealthResponse)
async def health_check():
    """
    Simple health check to verify server is reachable.
    """
    return HealthResponse(status="ok", version=VERSION, uptime_seconds=time.time() - start_time)


@app.get("/version")
async def get_version():
    return {"version": VERSION}


@app.post("/schedule", response_model=ScheduleResponse)
async def schedule(req: ScheduleRequest):
    """
    Stateless scheduling: compute the next card without touching storage.
    """
    from retention.application.scheduler import update

    previous = req.card.to_card() if req.card else None
    return ScheduleResponse.from_outcome(update(previous, req.quality, now=req.now))


@app.post(
    "/learners/{learner_id}/topics/{topic_id}/reviews",
    response_model=RecallResultResponse,
)
async def submit_review(
    learner_id: str,
    topic_id: str,
    req: ReviewRequest,
    service: RetentionService = Depends(get_service),
):
    """Record a graded review and return the rescheduled state."""
    logger.info(f"Review requested via API: {learner_id}/{topic_id} quality={req.quality}")
    try:
        result = await service.review(learner_id, topic_id, req.quality)
    except Exception as e:
        logger.error(f"Review failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=str(e)) from e
    return RecallResultResponse.from_result(result)


@app.post(
    "/learners/{learner_id}/topics/{topic_id}/recall-test",
    response_model=RecallResultResponse,
)
async def submit_recall_test(
    learner_id: str,
    topic_id: str,
    req: RecallTestRequest,
    service: RetentionService = Depends(get_service),
):
    """Grade a free-text answer, subject to the retest cooldown."""
    try:
        result = await service.recall_test(learner_id, topic_id, req.answer)
    except Exception as e:
        logger.error(f"Recall test failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=str(e)) from e
    if result is None:
        raise HTTPException(
            status_code=429, detail=f"Topic {topic_id} was tested too recently."
        )
    return RecallResultResponse.from_result(result)


@app.get("/learners/{learner_id}/topics/{topic_id}", response_model=StateModel)
async def get_topic(
    learner_id: str,
    topic_id: str,
    service: RetentionService = Depends(get_service),
):
    state = await service.get_topic(learner_id, topic_id)
    if state is None:
        raise HTTPException(status_code=404, detail=f"No card for topic {topic_id}")
    return StateModel.from_state(state)


@app.get("/learners/{learner_id}/due", response_model=DueResponse)
async def list_due(learner_id: str, service: RetentionService = Depends(get_service)):
    """Cards whose next review is at or before now, soonest first."""
    due = await service.list_due(learner_id)
    return DueResponse(
        learner_id=learner_id,
        count=len(due),
        topics=[StateModel.from_state(s) for s in due],
    )


@app.get("/learners/{learner_id}/summary", response_model=SummaryResponse)
async def get_summary(learner_id: str, service: RetentionService = Depends(get_service)):
    return SummaryResponse.from_summary(await service.summary(learner_id))
