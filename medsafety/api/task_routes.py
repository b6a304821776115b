"""
Medication Safety Review Engine - Task Endpoints
HTTP wrappers around the task envelope entry points
"""
import logging
from typing import Any, Dict

from fastapi import APIRouter, Body
from fastapi.responses import JSONResponse

from medsafety.api.tasks import execute_batch_review, execute_dosage_validation

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/tasks", tags=["Tasks"])

# Failure envelope error_code -> HTTP status
ERROR_STATUS_CODES = {
    "VALIDATION_ERROR": 400,
    "TIMEOUT": 504,
}


def _to_response(envelope: Dict[str, Any]) -> JSONResponse:
    if envelope["status"] == "complete":
        return JSONResponse(content=envelope)
    status_code = ERROR_STATUS_CODES.get(envelope.get("error_code"), 500)
    logger.info(
        f"Task {envelope.get('task_id')} returned {envelope.get('error_code')} -> HTTP {status_code}"
    )
    return JSONResponse(status_code=status_code, content=envelope)


@router.post("/batch-review")
async def batch_review(task: Dict[str, Any] = Body(...)):
    """
    Review a complete medication list.

    Checks:
    - Drug-drug and drug-class interactions
    - Duplicate therapies
    - Contraindications against patient context
    and returns a prioritized risk report.
    """
    return _to_response(execute_batch_review(task))


@router.post("/dosage-validation")
async def dosage_validation(task: Dict[str, Any] = Body(...)):
    """Validate a proposed dose for one drug against patient-adjusted ranges"""
    return _to_response(await execute_dosage_validation(task))
