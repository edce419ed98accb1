"""
tourney/errors.py
Centralized error taxonomy for the tournament engine.

Every engine failure is recoverable by the caller and carries:
- an HTTP status code
- an error type
- a human-readable message
- a machine-readable code

ERROR RESPONSE STRUCTURE:
{
    "success": false,
    "error": "ErrorType",
    "message": "Human-readable description",
    "code": "UNIQUE_ERROR_CODE",
    "details": {} (optional)
}
"""

import logging
import uuid
from typing import Optional, Dict, Any

from fastapi import status
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class ErrorCode:
    """Unique error codes for machine-readable error handling"""

    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_INPUT = "INVALID_INPUT"
    INSUFFICIENT_TEAMS = "INSUFFICIENT_TEAMS"
    INDIVISIBLE_PLAYOFF = "INDIVISIBLE_PLAYOFF"
    LEAGUE_INCOMPLETE = "LEAGUE_INCOMPLETE"
    BETTING_CLOSED = "BETTING_CLOSED"
    INSUFFICIENT_POINTS = "INSUFFICIENT_POINTS"
    DUPLICATE_PREDICTION = "DUPLICATE_PREDICTION"
    SPORT_MISMATCH = "SPORT_MISMATCH"

    AUTH_REQUIRED = "AUTH_REQUIRED"
    AUTH_INVALID = "AUTH_INVALID"

    FORBIDDEN = "FORBIDDEN"
    NOT_MANAGER = "NOT_MANAGER"
    FEATURE_DISABLED = "FEATURE_DISABLED"

    NOT_FOUND = "NOT_FOUND"

    CONFLICT = "CONFLICT"
    ALREADY_STARTED = "ALREADY_STARTED"
    ALREADY_REPORTED = "ALREADY_REPORTED"
    ALREADY_PROCESSED = "ALREADY_PROCESSED"
    ROUND_EXISTS = "ROUND_EXISTS"
    STATE_TRANSITION_INVALID = "STATE_TRANSITION_INVALID"

    INTERNAL_ERROR = "INTERNAL_ERROR"
    PERSISTENCE_ERROR = "PERSISTENCE_ERROR"


class EngineError(Exception):
    """Base engine exception with consistent structure"""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    error: str = "Internal Error"
    default_code: str = ErrorCode.INTERNAL_ERROR

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code or self.default_code
        self.details = details
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary"""
        result = {
            "success": False,
            "error": self.error,
            "message": self.message,
            "code": self.code
        }
        if self.details:
            result["details"] = self.details
        return result

    def to_response(self) -> JSONResponse:
        """Convert to FastAPI JSONResponse"""
        return JSONResponse(status_code=self.status_code, content=self.to_dict())


class ValidationError(EngineError):
    """400 - Request is well-formed but breaks an engine rule"""
    status_code = status.HTTP_400_BAD_REQUEST
    error = "Validation Error"
    default_code = ErrorCode.VALIDATION_ERROR


class PermissionDeniedError(EngineError):
    """403 - Caller may not perform this action"""
    status_code = status.HTTP_403_FORBIDDEN
    error = "Forbidden"
    default_code = ErrorCode.FORBIDDEN


class NotFoundError(EngineError):
    """404 - Resource does not exist"""
    status_code = status.HTTP_404_NOT_FOUND
    error = "Not Found"
    default_code = ErrorCode.NOT_FOUND

    def __init__(self, resource: str, identifier: Any = None, code: Optional[str] = None):
        message = f"{resource} not found"
        if identifier is not None:
            message = f"{resource} with id '{identifier}' not found"
        super().__init__(message, code=code, details={"resource": resource, "id": identifier})


class ConflictError(EngineError):
    """409 - Idempotency guard: the action was already applied"""
    status_code = status.HTTP_409_CONFLICT
    error = "Conflict"
    default_code = ErrorCode.CONFLICT


class PersistenceError(EngineError):
    """500 - Storage failed mid-transaction; state was rolled back, retry"""
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    error = "Internal Error"
    default_code = ErrorCode.PERSISTENCE_ERROR

    def __init__(self, message: str = "Storage failure, please retry", log_id: Optional[str] = None):
        self.log_id = log_id or str(uuid.uuid4())[:8]
        super().__init__(message, details={"log_id": self.log_id})


def require_manager(tournament, user_id: int) -> None:
    """Raise PermissionDeniedError unless user_id manages the tournament."""
    if tournament.manager_id != user_id:
        logger.warning(
            f"Access denied: user {user_id} is not manager of tournament {tournament.id}"
        )
        raise PermissionDeniedError(
            "Only the tournament manager can perform this action",
            code=ErrorCode.NOT_MANAGER,
            details={"tournament_id": tournament.id}
        )
