# backend/pagecast/api/jobs.py
from fastapi import APIRouter, Depends

from ..dependencies import get_coordinator
from ..errors import PagecastError
from ..schemas.job import JobStatusView
from ..services.coordinator import PipelineCoordinator
from ..utils.logging import api_logger
from .errors import to_http_exception

router = APIRouter(prefix="/api/jobs", tags=["jobs"])


@router.get("/{run_id}", response_model=JobStatusView)
async def get_job_status(run_id: str, coordinator: PipelineCoordinator = Depends(get_coordinator)):
    api_logger.debug(f"Fetching status of run {run_id}", extra={"run_id": run_id})

    try:
        return coordinator.get_job_status(run_id)
    except PagecastError as e:
        api_logger.warning(f"Run {run_id} lookup failed", extra={
            "run_id": run_id,
            "error": str(e)
        })
        raise to_http_exception(e) from e
