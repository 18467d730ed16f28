from typing import Any, Callable, Dict, Optional, Type, TypeVar, Union, TypedDict
from pydantic import BaseModel, ValidationError, Field
from ugc_reviews.container import get_container
from ugc_reviews.errors import AppError
from ugc_reviews.responses import (
    api_response,
    internal_error,
    unauthorized,
    unprocessable_entity,
)
from loguru import logger
import functools
import base64
import hmac
import json

T = TypeVar("T", bound=BaseModel)
JsonDict = Dict[str, Any]


class APIGatewayResponse(TypedDict):
    statusCode: int
    body: str
    headers: Dict[str, str]


Response = Union[APIGatewayResponse, Dict[str, Any]]


class ApiRequest(BaseModel):
    """Base class for all requests."""

    is_admin: bool = Field(
        default=False, description="Injected automatically by the admin check"
    )


def _header(event: JsonDict, name: str) -> str:
    headers = event.get("headers") or {}
    for key, value in headers.items():
        if key.lower() == name:
            return value or ""
    return ""


def _is_admin(event: JsonDict, admin_key: str) -> bool:
    """
    Accepts the admin key from ``x-admin-key`` or ``Authorization: Bearer``.
    An unset admin key admits nobody.
    """
    presented = _header(event, "x-admin-key")
    if not presented:
        auth = _header(event, "authorization")
        presented = auth[7:] if auth.startswith("Bearer ") else auth

    if not admin_key or not presented:
        return False
    return hmac.compare_digest(presented.encode("utf-8"), admin_key.encode("utf-8"))


def _parse_body(event: JsonDict) -> tuple[Dict[str, Any], Optional[Response]]:
    """Parses JSON body safely."""
    raw_body = event.get("body")
    if not raw_body:
        return {}, None

    try:
        if event.get("isBase64Encoded"):
            raw_body = base64.b64decode(raw_body).decode("utf-8")
        body = json.loads(raw_body)
    except (json.JSONDecodeError, UnicodeDecodeError, ValueError):
        return {}, unprocessable_entity("Invalid JSON body")

    if not isinstance(body, dict):
        return {}, unprocessable_entity("JSON body must be an object")
    return body, None


def _merge_request_data(event: JsonDict, body: Dict, auth_data: Dict) -> Dict[str, Any]:
    qs = event.get("queryStringParameters") or {}
    path = event.get("pathParameters") or {}
    return {**qs, **path, **body, **auth_data}


def _with_cors(response: Response, origin: str) -> Response:
    headers = {**(response.get("headers") or {}), "Access-Control-Allow-Origin": origin}
    return {**response, "headers": headers}


def lambda_wrapper(
    model: Type[T],
    require_admin: bool = False,
) -> Callable[[Callable[[T, Any], Any]], Callable[..., Any]]:
    """
    Decorator that hydrates a Pydantic model from the API Gateway event.

    Args:
        model: The Pydantic class to validate against.
        require_admin: If True, blocks requests without the admin key.
    """

    def decorator(func: Callable[[T, Any], Any]) -> Callable[..., Any]:
        @functools.wraps(func)
        def wrapper(event: Optional[JsonDict], context: Any) -> Any:
            event = event or {}
            origin = "*"

            try:
                settings = get_container().settings
                origin = settings.cors_allow_origin

                is_admin = _is_admin(event, settings.admin_key)
                if require_admin and not is_admin:
                    logger.warning("Rejected admin request to {}", func.__module__)
                    return _with_cors(unauthorized("Missing or invalid admin key"), origin)

                body_data, err = _parse_body(event)
                if err:
                    return _with_cors(err, origin)

                request_data = _merge_request_data(event, body_data, {"is_admin": is_admin})

                try:
                    request_model = model(**request_data)
                except ValidationError as e:
                    details = e.errors(include_url=False, include_input=False)
                    logger.warning(f"Validation failed: {details}")
                    return _with_cors(
                        api_response(
                            422,
                            body={"details": details},
                            error="invalid_request",
                        ),
                        origin,
                    )

                return _with_cors(func(request_model, context), origin)

            except AppError as e:
                logger.warning(f"{e.error_code.value}: {e.message}")
                return _with_cors(
                    api_response(
                        e.status_code,
                        body={"message": e.message},
                        error=e.error_code.value,
                    ),
                    origin,
                )

            except Exception:
                logger.exception("Unhandled exception in lambda_wrapper")
                return _with_cors(internal_error(), origin)

        return wrapper

    return decorator
