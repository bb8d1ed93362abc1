from datetime import datetime, timezone
from typing import Optional, Dict, Any
import uuid


class KiokuError(Exception):
    """
    Base for every error the services raise on purpose.

    Carries the HTTP status and machine-readable code the command surface
    renders, plus a correlation id that ties the response to its log lines.
    """

    def __init__(self,
                 message: str,
                 status_code: int = 500,
                 error_code: str = "INTERNAL_ERROR",
                 details: Optional[Dict[str, Any]] = None,
                 user_message: Optional[str] = None,
                 ):
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        self.details = details or {}
        self.user_message = user_message or message
        self.timestamp = datetime.now(timezone.utc)
        self.correlation_id = str(uuid.uuid4())
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        error = {
            "code": self.error_code,
            "message": self.user_message,
            "status": self.status_code,
            "timestamp": self.timestamp.isoformat(),
            "correlation_id": self.correlation_id,
        }
        if self.details:
            error["details"] = self.details
        return {"error": error}


class ValidationError(KiokuError):
    """Malformed or out-of-range input"""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, status_code=422, error_code="VALIDATION_ERROR", details=details)


class AuthenticationError(KiokuError):
    """Invalid credentials for a local profile"""

    def __init__(self, message: str = "Authentication failed"):
        super().__init__(message, status_code=401, error_code="AUTHENTICATION_ERROR")


class NotFoundError(KiokuError):
    def __init__(self, message: str = "Resource not found"):
        super().__init__(message, status_code=404, error_code="NOT_FOUND")


class ConflictError(KiokuError):
    """A uniquely named resource already exists"""

    def __init__(self, message: str, resource_type: str = "resource"):
        super().__init__(
            message,
            status_code=409,
            error_code="CONFLICT",
            user_message=f"The {resource_type} already exists",
            details={"resource_type": resource_type}
        )


class ExternalServiceError(KiokuError):
    """The sync server is unavailable or not configured"""

    def __init__(self, message: str, service_name: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message,
            status_code=503,
            error_code="EXTERNAL_SERVICE_ERROR",
            details={**(details or {}), "service": service_name}
        )


class NetworkError(ExternalServiceError):
    """Remote request failed to complete or answered with a non-success status"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        details = {"remote_status": status_code} if status_code is not None else None
        super().__init__(message, service_name="remote", details=details)
        self.error_code = "NETWORK_ERROR"
        self.remote_status = status_code


class DatabaseError(KiokuError):
    """Local store operation failed; the driver's message is kept in details"""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, status_code=500, error_code="DATABASE_ERROR", details=details)


class ProcessingError(KiokuError):
    """Stored data that cannot be interpreted, such as a corrupt sync payload"""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, status_code=422, error_code="PROCESSING_ERROR", details=details)
