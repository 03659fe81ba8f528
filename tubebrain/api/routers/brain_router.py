from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel, Field

from tubebrain.services.harvester import (
    HarvestAbortedError,
    HarvestInProgressError,
    HarvestOrchestrator,
)
from tubebrain.utils.logger import setup_logger

logger = setup_logger(__name__)

router = APIRouter(prefix="/brain", tags=["brain"])


class GenerateRequest(BaseModel):
    count: int = Field(default=1, ge=1, le=20)


def _orchestrator(request: Request) -> HarvestOrchestrator:
    brain = getattr(request.app.state, "brain", None)
    if brain is None:
        raise HTTPException(status_code=503, detail="brain not initialised")
    return brain


@router.post("/generate")
async def generate(req: GenerateRequest, request: Request):
    brain = _orchestrator(request)
    messages = [brain.generate_message() for _ in range(req.count)]
    return {"ok": True, "data": {"messages": messages}}


@router.get("/stats")
async def stats(request: Request):
    brain = _orchestrator(request)
    return {"ok": True, "data": brain.metrics().to_dict()}


@router.post("/harvest")
async def harvest(request: Request):
    brain = _orchestrator(request)
    try:
        report = await brain.run_cycle()
    except HarvestInProgressError:
        raise HTTPException(status_code=409, detail="harvest cycle already running")
    except HarvestAbortedError as e:
        logger.warning(f"[Brain] Harvest aborted: {e}")
        raise HTTPException(status_code=502, detail=str(e))
    return {"ok": True, "data": report.to_dict()}
