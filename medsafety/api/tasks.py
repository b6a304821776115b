"""
Medication Safety Review Engine - Task Envelope Handling
Request/response envelopes for the batch review and dosage validation entry points
"""
import asyncio
import logging
import time
from typing import Any, Dict, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from config.settings import (
    API_VERSION, DEFAULT_TIMEOUT_MS, DOSAGE_TASK_TYPE, DOSAGE_SOURCE, BATCH_REVIEW_SOURCE
)
from medsafety.core.exceptions import MedSafetyError, RequestValidationError, TaskTimeoutError
from medsafety.core.models import PatientContext
from medsafety.core.review_service import BatchReviewService, get_review_service
from medsafety.dosing.calculator import DosageAdjustmentCalculator, get_dosage_calculator

logger = logging.getLogger(__name__)


class TaskConstraints(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    timeout_ms: int = Field(DEFAULT_TIMEOUT_MS, alias="timeoutMs", gt=0)


class TaskRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    task_id: Optional[Union[str, int]] = Field(None, alias="taskId")
    task_type: Optional[str] = Field(None, alias="taskType")
    input: Dict[str, Any] = Field(default_factory=dict)
    constraints: Optional[TaskConstraints] = None

    @property
    def timeout_ms(self) -> int:
        return self.constraints.timeout_ms if self.constraints else DEFAULT_TIMEOUT_MS

    def get_input(self, *keys: str) -> Any:
        """First present input field among snake_case/camelCase spellings"""
        for key in keys:
            if self.input.get(key) is not None:
                return self.input[key]
        return None


def parse_task(task: Union[TaskRequest, Mapping[str, Any]]) -> TaskRequest:
    if isinstance(task, TaskRequest):
        return task
    try:
        return TaskRequest.model_validate(task)
    except ValidationError as e:
        raise RequestValidationError(f"Invalid task envelope: {e.errors()[0]['msg']}") from e


def _elapsed_ms(start_time: float) -> float:
    return round((time.time() - start_time) * 1000, 2)


def _raw_task_id(task: Any) -> Any:
    if isinstance(task, TaskRequest):
        return task.task_id
    if isinstance(task, Mapping):
        return task.get("task_id", task.get("taskId"))
    return None


# ==================== Batch prescription review ====================

def execute_batch_review(
    task: Union[TaskRequest, Mapping[str, Any]],
    service: Optional[BatchReviewService] = None,
) -> Dict[str, Any]:
    """Run a batch review task; request errors come back as an error envelope"""
    start_time = time.time()
    service = service or get_review_service()
    task_id = _raw_task_id(task)

    try:
        request = parse_task(task)
        result = service.review(
            request.get_input("medications"),
            request.get_input("patient_context", "patientContext"),
        )
    except MedSafetyError as e:
        logger.error(f"Batch review task {task_id} failed: {e}")
        return {
            "status": "error",
            "task_id": task_id,
            "error": str(e),
            "error_code": e.error_code,
            "processing_time_ms": _elapsed_ms(start_time),
        }

    return {
        "status": "complete",
        "task_id": task_id,
        "result": result.to_dict(),
        "metadata": {
            "processing_time_ms": _elapsed_ms(start_time),
            "confidence": result.confidence,
            "source": BATCH_REVIEW_SOURCE,
            "api_version": API_VERSION,
        },
    }


# ==================== Dosage validation ====================

async def execute_dosage_validation(
    task: Union[TaskRequest, Mapping[str, Any]],
    calculator: Optional[DosageAdjustmentCalculator] = None,
) -> Dict[str, Any]:
    """
    Run a dosage validation task under its timeout budget.

    The task type and required inputs are checked before any computation.
    A timeout yields a failure envelope, never a partial result.
    """
    start_time = time.time()
    calculator = calculator or get_dosage_calculator()
    task_id = _raw_task_id(task)

    try:
        request = parse_task(task)
        if request.task_type != DOSAGE_TASK_TYPE:
            raise RequestValidationError(f"Invalid task type: {request.task_type}")

        drug = request.get_input("drug")
        patient_context = request.get_input("patient_context", "patientContext")
        if not drug or not patient_context:
            raise RequestValidationError("Missing required input: drug and patient_context")

        patient = PatientContext.from_dict(patient_context)

        timeout_ms = request.timeout_ms
        try:
            result = await asyncio.wait_for(
                asyncio.to_thread(calculator.validate, drug, patient),
                timeout=timeout_ms / 1000,
            )
        except asyncio.TimeoutError:
            raise TaskTimeoutError(timeout_ms)
    except MedSafetyError as e:
        return create_dosage_error_response(task_id, e, start_time)

    return {
        "task_id": task_id,
        "status": "complete",
        "result": result.to_dict(),
        "metadata": {
            "processing_time_ms": _elapsed_ms(start_time),
            "confidence": result.confidence,
            "source": DOSAGE_SOURCE,
            "api_version": API_VERSION,
            "decisions_made": list(result.decisions),
        },
        "recommendations": {
            "follow_up": list(result.follow_up),
            "warnings": list(result.warnings),
            "limitations": list(result.limitations),
        },
    }


def create_dosage_error_response(
    task_id: Any,
    error: MedSafetyError,
    start_time: float,
) -> Dict[str, Any]:
    """Failure envelope that still points the caller at a manual fallback"""
    logger.error(f"Dosage validation task {task_id} failed: {error}")
    processing_time = _elapsed_ms(start_time)
    return {
        "task_id": task_id,
        "status": "failed",
        "result": None,
        "error": str(error),
        "error_code": error.error_code,
        "processing_time_ms": processing_time,
        "metadata": {
            "processing_time_ms": processing_time,
            "confidence": 0,
            "source": DOSAGE_SOURCE,
            "api_version": API_VERSION,
        },
        "recommendations": {
            "follow_up": ["Manual dosage verification required"],
            "warnings": ["Automated dosage validation failed"],
            "limitations": ["Unable to validate dosage"],
        },
    }
