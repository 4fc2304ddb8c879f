"""
Error taxonomy for the form service.

Every error carries the HTTP status it maps to and a human-readable summary.
`main.py` renders them into the shared envelope:

    {"success": false, "error": <summary>, "details": [...]}
"""
from typing import Any, Dict, List, Optional


class FormServiceError(Exception):
    status_code = 500

    def __init__(self, message: str, details: Optional[List[Dict[str, Any]]] = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"success": False, "error": self.message}
        if self.details is not None:
            body["details"] = self.details
        return body


class NotFound(FormServiceError):
    status_code = 404


class NotPublished(FormServiceError):
    status_code = 400

    def __init__(self, message: str = "Form is not published"):
        super().__init__(message)


class LimitReached(FormServiceError):
    status_code = 400

    def __init__(self, message: str = "Form has reached its submission limit"):
        super().__init__(message)


class ValidationFailed(FormServiceError):
    """One or more field values broke a rule. `details` lists every failure."""

    status_code = 400

    def __init__(self, details: List[Dict[str, Any]], message: str = "Validation failed"):
        super().__init__(message, details)


class InvalidRequest(FormServiceError):
    """Request shape or configuration problem, not a field-value failure."""

    status_code = 400


class PersistenceError(FormServiceError):
    # Callers may retry with backoff
    status_code = 503

    def __init__(self, message: str = "Storage is unavailable, please retry later"):
        super().__init__(message)
