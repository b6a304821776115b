"""
Medication Safety Review Engine - Request-level errors

Only structurally invalid requests and dosage timeouts are errors; missing
optional data is reported through result states instead.
"""


class MedSafetyError(Exception):
    error_code = "ENGINE_ERROR"


class RequestValidationError(MedSafetyError):
    """Malformed or missing required task input"""
    error_code = "VALIDATION_ERROR"


class TaskTimeoutError(MedSafetyError):
    """Dosage validation exceeded its configured time budget"""
    error_code = "TIMEOUT"

    def __init__(self, timeout_ms: int):
        super().__init__(f"Operation timed out after {timeout_ms}ms")
        self.timeout_ms = timeout_ms
