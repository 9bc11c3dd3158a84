"""
Service-level error taxonomy.

Services raise these; the FastAPI app renders them as
``{"success": false, "error": <kind>, "message": <text>}``.
"""

from typing import Dict, List, Optional


class ServiceError(Exception):
    status_code = 500
    kind = "server_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict:
        return {"success": False, "error": self.kind, "message": self.message}


class ValidationError(ServiceError):
    """Malformed or out-of-range input. Every violated field is listed."""

    status_code = 400
    kind = "validation_error"

    def __init__(self, message: str, errors: Optional[List[Dict[str, str]]] = None):
        super().__init__(message)
        self.errors = errors or []

    @property
    def fields(self) -> List[str]:
        return [error["field"] for error in self.errors]

    def to_dict(self) -> Dict:
        data = super().to_dict()
        data["errors"] = self.errors
        return data


class NotFoundError(ServiceError):
    status_code = 404
    kind = "not_found"

    def __init__(self, entity: str, identifier: Optional[str] = None):
        message = f"{entity} not found"
        if identifier:
            message = f"{entity} '{identifier}' not found"
        super().__init__(message)
        self.entity = entity
        self.identifier = identifier


class UnauthorizedError(ServiceError):
    status_code = 401
    kind = "unauthorized"


class ForbiddenError(ServiceError):
    status_code = 403
    kind = "forbidden"


class ConflictError(ServiceError):
    """Valid request that the current state of the entity does not allow."""

    status_code = 409
    kind = "conflict"


class ServiceUnavailableError(ServiceError):
    status_code = 503
    kind = "service_unavailable"
