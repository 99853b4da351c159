"""
API error types.

Route handlers raise APIError; the application-level handler in main.py
renders it as {"success": false, "error": ..., "message": ..., **extra}.
"""

from typing import Any, Dict, Optional


class APIError(Exception):
    """An error that maps directly onto an HTTP JSON response."""

    def __init__(
        self,
        status_code: int,
        error: str,
        message: Optional[str] = None,
        **extra: Any,
    ):
        super().__init__(message or error)
        self.status_code = status_code
        self.error = error
        self.message = message
        self.extra = extra

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"success": False, "error": self.error}
        if self.message is not None:
            payload["message"] = self.message
        payload.update(self.extra)
        return payload


def bad_request(error: str, message: Optional[str] = None, **extra: Any) -> APIError:
    return APIError(400, error, message, **extra)


def not_found(error: str, message: Optional[str] = None, **extra: Any) -> APIError:
    return APIError(404, error, message, **extra)


def forbidden(error: str = "Access denied", message: Optional[str] = None, **extra: Any) -> APIError:
    return APIError(403, error, message, **extra)


class UpstreamError(Exception):
    """A third-party API answered with an error."""

    def __init__(self, service: str, status: int, detail: str = ""):
        super().__init__(f"{service} API error: {status} - {detail}")
        self.service = service
        self.status = status
        self.detail = detail
