from typing import Optional

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from cdevents_adapter.schemas.cdevents import (
    PIPELINE_RUN_FINISHED,
    PIPELINE_RUN_QUEUED,
    PIPELINE_RUN_STARTED,
    TASK_RUN_FINISHED,
    TASK_RUN_STARTED,
    check_event,
)

router = APIRouter(prefix="/validate", tags=["validation"])


async def _validate(request: Request, event_type: Optional[str] = None) -> JSONResponse:
    try:
        candidate = await request.json()
    except ValueError:
        return JSONResponse(
            status_code=400,
            content={"valid": False, "errors": ["Request body is not valid JSON"]},
        )

    result = check_event(candidate, event_type)
    return JSONResponse(
        status_code=200 if result.valid else 400,
        content=result.model_dump(by_alias=True, exclude_none=True),
    )


@router.post("/event")
async def validate_core_event(request: Request):
    """Accepts any of the five core event types"""
    return await _validate(request)


@router.post("/pipelinerun/queued")
async def validate_pipeline_run_queued(request: Request):
    return await _validate(request, PIPELINE_RUN_QUEUED)


@router.post("/pipelinerun/started")
async def validate_pipeline_run_started(request: Request):
    return await _validate(request, PIPELINE_RUN_STARTED)


@router.post("/pipelinerun/finished")
async def validate_pipeline_run_finished(request: Request):
    return await _validate(request, PIPELINE_RUN_FINISHED)


@router.post("/taskrun/started")
async def validate_task_run_started(request: Request):
    return await _validate(request, TASK_RUN_STARTED)


@router.post("/taskrun/finished")
async def validate_task_run_finished(request: Request):
    return await _validate(request, TASK_RUN_FINISHED)
