from typing import Any, Dict, Optional
import json

from ugc_reviews.errors import ErrorKind, status_for
from ugc_reviews.results import Result

_DEFAULT_HEADERS = {
    "Content-Type": "application/json; charset=utf-8",
    "Cache-Control": "no-store",
}


def api_response(
    status_code: int,
    body: Optional[Dict[str, Any]] = None,
    error: Optional[str] = None,
    headers: Optional[Dict[str, str]] = None,
) -> Dict[str, Any]:
    """
    Centralized API Gateway response formatter.

    Args:
        status_code: HTTP status code
        body: Response body dict
        error: Error kind (if error, it is merged over body)
        headers: Custom headers to include

    Returns:
        Formatted Lambda response for API Gateway
    """
    final_headers = (
        dict(_DEFAULT_HEADERS) if headers is None else {**_DEFAULT_HEADERS, **headers}
    )
    payload = {**(body or {}), "error": error} if error else body

    return {
        "statusCode": status_code,
        "headers": final_headers,
        "body": json.dumps(payload, default=str) if payload is not None else "",
    }


def success(
    data: Dict[str, Any],
    status_code: int = 200,
    headers: Optional[Dict[str, str]] = None,
) -> Dict[str, Any]:
    """Success response (2xx)."""
    return api_response(status_code, body=data, headers=headers)


def created(
    data: Dict[str, Any],
    headers: Optional[Dict[str, str]] = None,
) -> Dict[str, Any]:
    """Created response (201)."""
    return api_response(201, body=data, headers=headers)


def failure(
    kind: ErrorKind, message: str = "", headers: Optional[Dict[str, str]] = None
) -> Dict[str, Any]:
    """Error response with the status code that belongs to ``kind``."""
    body = {"message": message} if message else None
    return api_response(status_for(kind), body=body, error=kind.value, headers=headers)


def from_result(result: Result) -> Dict[str, Any]:
    return failure(result.error, result.message)


def unauthorized(error: str = "Unauthorized") -> Dict[str, Any]:
    """Unauthorized response (401)."""
    return failure(ErrorKind.UNAUTHORIZED, error)


def unprocessable_entity(error: str) -> Dict[str, Any]:
    """Unprocessable entity response (422)."""
    return failure(ErrorKind.INVALID_REQUEST, error)


def internal_error() -> Dict[str, Any]:
    """Internal server error response (500). Never carries exception detail."""
    return failure(ErrorKind.SERVER_ERROR, "Internal server error")
