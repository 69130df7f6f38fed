"""
Framework-neutral request handling for every ModemHub endpoint.

Transports (the Vercel handler classes in api/ and the FastAPI app in
web_api.py) turn their native request into an ApiRequest, call
ApiService.dispatch() and write the returned ApiResponse back out.
"""

import json
import logging
import time
import traceback
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from urllib.parse import parse_qs, urlparse

from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from modemhub import __version__
from modemhub.config import Settings, configure_logging, load_settings
from modemhub.errors import ActionError, MalformedRequestError
from modemhub.inbox import RequestInbox
from modemhub.models import ActionEnvelope, ProductStatusUpdate, UserStatus
from modemhub.monitoring import (
    PROMETHEUS_CONTENT_TYPE,
    get_metrics_summary,
    get_prometheus_metrics,
    log_device_request,
    track_action,
    track_request,
)
from modemhub.registry import DEFAULT_USERS, UserRegistry
from modemhub.views import render_inbox, render_request_view

logger = logging.getLogger(__name__)

JSON_CONTENT_TYPE = "application/json"
HTML_CONTENT_TYPE = "text/html; charset=utf-8"

USERS_METHODS = ["GET", "POST", "OPTIONS"]

# Route name (last path segment under /api/) -> ApiService method
ROUTES = {
    "index": "index",
    "users": "users",
    "user": "users",
    "product": "product",
    "handler": "request_viewer",
    "post-viewer": "post_viewer",
    "clear": "clear",
    "test": "ping",
    "metrics": "metrics",
}


def route_from_path(path: str) -> str:
    """'/api/users' -> 'users'; '/' -> 'index'."""
    segments = [segment for segment in path.split("/") if segment]
    if segments and segments[0] == "api":
        segments = segments[1:]
    if not segments:
        return "index"
    return segments[0]


def utc_timestamp() -> str:
    """ISO-8601 UTC timestamp with millisecond precision, e.g. 2024-01-01T00:00:00.000Z."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class ApiRequest(BaseModel):
    """Transport-independent view of an HTTP request."""

    method: str
    url: str = "/"
    path: str = "/"
    query: Dict[str, str] = Field(default_factory=dict)
    headers: Dict[str, str] = Field(default_factory=dict)
    body: bytes = b""
    client_ip: Optional[str] = None

    @classmethod
    def from_parts(
        cls,
        method: str,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        body: bytes = b"",
        client_ip: Optional[str] = None,
    ) -> "ApiRequest":
        parsed = urlparse(url)
        query = {key: values[0] for key, values in parse_qs(parsed.query).items() if values}
        headers = dict(headers or {})

        forwarded = _get_header(headers, "x-forwarded-for")
        if forwarded:
            client_ip = forwarded.split(",")[0].strip()

        return cls(
            method=method.upper(),
            url=url,
            path=parsed.path or "/",
            query=query,
            headers=headers,
            body=body or b"",
            client_ip=client_ip,
        )

    def header(self, name: str) -> Optional[str]:
        return _get_header(self.headers, name)


def _get_header(headers: Dict[str, str], name: str) -> Optional[str]:
    name = name.lower()
    for key, value in headers.items():
        if key.lower() == name:
            return value
    return None


class ApiResponse(BaseModel):
    """Status, headers and body to send back. ``body`` None means empty."""

    status: int
    body: Any = None
    headers: Dict[str, str] = Field(default_factory=dict)
    content_type: Optional[str] = JSON_CONTENT_TYPE

    def encoded(self) -> bytes:
        if self.body is None:
            return b""
        if isinstance(self.body, bytes):
            return self.body
        if isinstance(self.body, str):
            return self.body.encode("utf-8")
        return json.dumps(self.body, default=str).encode("utf-8")

    def all_headers(self) -> Dict[str, str]:
        headers = dict(self.headers)
        if self.body is not None and self.content_type:
            headers["Content-Type"] = self.content_type
        return headers


def parse_json_body(body: bytes) -> Dict[str, Any]:
    """
    Decode a JSON object request body.

    Raises:
        MalformedRequestError: body is empty, not JSON, or not an object
    """
    if not body or not body.strip():
        raise MalformedRequestError("Request body is required")
    try:
        data = json.loads(body.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise MalformedRequestError(f"Invalid JSON in request body: {e}") from e
    if not isinstance(data, dict):
        raise MalformedRequestError(f"Request body must be a JSON object, got {type(data).__name__}")
    return data


def decode_display_body(request: ApiRequest) -> Any:
    """Best-effort body for display: JSON, form fields, or raw text."""
    if not request.body:
        return ""
    text = request.body.decode("utf-8", errors="replace")
    content_type = request.header("content-type") or ""
    if "application/x-www-form-urlencoded" in content_type:
        return {
            key: values[0] if len(values) == 1 else values
            for key, values in parse_qs(text, keep_blank_values=True).items()
        }
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        return text


class ApiService:
    """Handles requests for all routes against one registry and one inbox."""

    def __init__(
        self,
        registry: Optional[UserRegistry] = None,
        inbox: Optional[RequestInbox] = None,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or Settings()
        if registry is None:
            registry = UserRegistry(seed=DEFAULT_USERS if self.settings.seed_defaults else ())
        self.registry = registry
        self.inbox = inbox if inbox is not None else RequestInbox()

    @track_request(ROUTES)
    def dispatch(self, route: str, request: ApiRequest) -> ApiResponse:
        """Route a request by name."""
        handler_name = ROUTES.get(route)
        if handler_name is None:
            return ApiResponse(status=404, body={"error": "Not Found", "path": request.path})

        try:
            return getattr(self, handler_name)(request)
        except Exception as e:
            logger.error(f"Unhandled error on {route}: {type(e).__name__}: {e}", exc_info=True)
            return self._internal_error(e)

    # Headers

    def _api_cors_headers(self) -> Dict[str, str]:
        return {
            "Access-Control-Allow-Origin": self.settings.cors_origin,
            "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
            "Access-Control-Allow-Headers": "Content-Type, Authorization, User-Agent",
        }

    def _viewer_cors_headers(self) -> Dict[str, str]:
        return {
            "Access-Control-Allow-Origin": self.settings.cors_origin,
            "Access-Control-Allow-Methods": "GET,POST,OPTIONS",
            "Access-Control-Allow-Headers": "Content-Type",
        }

    # Error envelopes

    def _internal_error(self, error: Exception, headers: Optional[Dict[str, str]] = None) -> ApiResponse:
        body = {
            "success": False,
            "error": "Internal server error",
            "message": str(error),
            "timestamp": utc_timestamp(),
        }
        if self.settings.debug:
            body["details"] = traceback.format_exc()
        return ApiResponse(status=500, body=body, headers=headers or {})

    def _action_error(self, error: ActionError, headers: Dict[str, str]) -> ApiResponse:
        if self.settings.strict_status:
            status, label = error.status_code, error.title
        else:
            status, label = 500, "Internal server error"
        return ApiResponse(
            status=status,
            body={
                "success": False,
                "error": label,
                "message": error.message,
                "timestamp": utc_timestamp(),
            },
            headers=headers,
        )

    # / (route listing)

    def index(self, request: ApiRequest) -> ApiResponse:
        return ApiResponse(
            status=200,
            body={
                "name": "ModemHub API",
                "version": __version__,
                "status": "online",
                "endpoints": {
                    "users": "GET/POST /api/users",
                    "user": "GET /api/user?username=<name>",
                    "product": "POST /api/product",
                    "handler": "GET/POST /api/handler",
                    "post-viewer": "GET/POST /api/post-viewer",
                    "clear": "POST /api/clear",
                    "test": "GET /api/test",
                    "metrics": "GET /api/metrics",
                },
            },
        )

    # /api/users and /api/user

    def users(self, request: ApiRequest) -> ApiResponse:
        headers = self._api_cors_headers()
        if request.method == "OPTIONS":
            return ApiResponse(status=200, headers=headers)
        if request.method == "GET":
            return self._list_users(request, headers)
        if request.method == "POST":
            return self._apply_action(request, headers)
        return ApiResponse(
            status=405,
            body={
                "error": "Method not allowed",
                "method": request.method,
                "allowedMethods": USERS_METHODS,
            },
            headers=headers,
        )

    def _list_users(self, request: ApiRequest, headers: Dict[str, str]) -> ApiResponse:
        username = request.query.get("username")
        if request.query.get("all") == "true" or not username:
            return ApiResponse(status=200, body=self._listing_body(), headers=headers)

        # Legacy lookup by username, e.g. ?username=john_doe
        record = self.registry.find_by_username(username)
        if record is None:
            return ApiResponse(
                status=404,
                body={
                    "success": False,
                    "error": "User not found",
                    "message": f"No user found with username: {username}",
                },
                headers=headers,
            )
        return ApiResponse(
            status=200,
            body={"success": True, "data": record.to_json(), "message": "User found successfully"},
            headers=headers,
        )

    def _listing_body(self) -> Dict[str, Any]:
        listing = self.registry.list()
        return {
            "success": listing.success,
            "data": [record.to_json() for record in listing.data],
            "message": listing.message,
            "count": listing.count,
        }

    def _apply_action(self, request: ApiRequest, headers: Dict[str, str]) -> ApiResponse:
        try:
            envelope = ActionEnvelope.model_validate(parse_json_body(request.body))
        except MalformedRequestError as e:
            logger.warning(f"Rejected users POST: {e.message}")
            track_action(None, success=False)
            return self._action_error(e, headers)

        logger.info(f"POST request received from BG95: action={envelope.action!r}")
        result = self.registry.apply(envelope.action, envelope.user)
        track_action(envelope.action, success=result.ok)
        log_device_request(
            action=envelope.action,
            user=envelope.user,
            old_user=envelope.old_user,
            client_ip=request.client_ip,
            result={"success": result.ok, "message": result.message},
        )

        if not result.ok:
            return self._action_error(result.error, headers)

        all_users = [record.to_json() for record in result.all_users]
        body = {
            "success": True,
            "message": result.message,
            "timestamp": utc_timestamp(),
            "data": result.user.to_json() if result.user else None,
            "allUsers": all_users,
            "count": len(all_users),
        }
        if result.old_user is not None:
            body["oldUser"] = result.old_user.to_json()
        return ApiResponse(status=200, body=body, headers=headers)

    # /api/product

    def product(self, request: ApiRequest) -> ApiResponse:
        headers = self._api_cors_headers()
        if request.method == "OPTIONS":
            return ApiResponse(status=200, headers=headers)
        if request.method != "POST":
            return ApiResponse(status=405, body={"error": "Method not allowed"}, headers=headers)

        start_time = time.time()
        try:
            data = parse_json_body(request.body)
        except MalformedRequestError as e:
            return self._product_error("Invalid request body", e.message, headers)

        if not data.get("username") or not data.get("productId") or not data.get("status"):
            return self._product_error(
                "Missing required fields", "Username, productId, and status are required", headers
            )
        if data["status"] not in UserStatus.values():
            return self._product_error(
                "Invalid status", f"Status must be one of: {', '.join(UserStatus.values())}", headers
            )

        try:
            update = ProductStatusUpdate.model_validate(data)
        except PydanticValidationError as e:
            return self._product_error("Invalid request body", str(e), headers)

        processing_ms = int((time.time() - start_time) * 1000)
        logger.info(f"Product {update.product_id} set to {update.status.value} by {update.username}")
        return ApiResponse(
            status=200,
            body={
                "success": True,
                "message": "Product status updated successfully",
                "data": {
                    "productId": update.product_id,
                    "status": update.status.value,
                    "updatedBy": update.username,
                    "updatedAt": utc_timestamp(),
                    "processingTime": f"{processing_ms}ms",
                },
            },
            headers=headers,
        )

    @staticmethod
    def _product_error(error: str, message: str, headers: Dict[str, str]) -> ApiResponse:
        return ApiResponse(
            status=400,
            body={"success": False, "error": error, "message": message},
            headers=headers,
        )

    # /api/handler

    def request_viewer(self, request: ApiRequest) -> ApiResponse:
        headers = self._viewer_cors_headers()
        if request.method == "OPTIONS":
            # required for browser preflight
            return ApiResponse(status=204, headers=headers)

        body: Any = ""
        if request.method in ("POST", "PUT", "PATCH"):
            body = decode_display_body(request)

        page = render_request_view(request.method, request.query, request.headers, body)
        return ApiResponse(status=200, body=page, headers=headers, content_type=HTML_CONTENT_TYPE)

    # /api/post-viewer and /api/clear

    def post_viewer(self, request: ApiRequest) -> ApiResponse:
        headers = self._viewer_cors_headers()
        if request.method == "OPTIONS":
            return ApiResponse(status=204, headers=headers)

        if request.method == "POST":
            body = decode_display_body(request)
            entry = self.inbox.capture(
                method=request.method,
                headers=request.headers,
                body=None if body == "" else body,
                query=request.query,
            )
            return ApiResponse(
                status=200,
                body={
                    "success": True,
                    "message": "POST request received!",
                    "requestId": entry.id,
                    "totalRequests": len(self.inbox),
                },
                headers=headers,
            )

        if request.method == "GET":
            page = render_inbox(self.inbox.entries())
            return ApiResponse(status=200, body=page, headers=headers, content_type=HTML_CONTENT_TYPE)

        return ApiResponse(status=405, body={"error": "Method not allowed"}, headers=headers)

    def clear(self, request: ApiRequest) -> ApiResponse:
        if request.method != "POST":
            return ApiResponse(status=405, body={"error": "Method not allowed"})
        cleared = self.inbox.clear()
        return ApiResponse(
            status=200,
            body={"success": True, "message": "All requests cleared", "cleared": cleared},
        )

    # /api/test

    def ping(self, request: ApiRequest) -> ApiResponse:
        return ApiResponse(
            status=200,
            body={
                "message": "Hello from Vercel!",
                "method": request.method,
                "url": request.url,
                "timestamp": utc_timestamp(),
            },
        )

    # /api/metrics

    def metrics(self, request: ApiRequest) -> ApiResponse:
        headers = self._api_cors_headers()
        if request.method == "OPTIONS":
            return ApiResponse(status=200, headers=headers)
        if request.method != "GET":
            return ApiResponse(status=405, body={"error": "Method not allowed"}, headers=headers)

        if request.query.get("format") == "prometheus":
            return ApiResponse(
                status=200,
                body=get_prometheus_metrics(),
                headers=headers,
                content_type=PROMETHEUS_CONTENT_TYPE,
            )

        summary = get_metrics_summary()
        summary["registry"] = {"users": len(self.registry), "next_id": self.registry.next_id}
        summary["inbox"] = {"requests": len(self.inbox)}
        return ApiResponse(status=200, body=summary, headers=headers)


def build_service(settings: Optional[Settings] = None) -> ApiService:
    """Create a service from environment settings and configure logging."""
    settings = settings or load_settings()
    configure_logging(settings)
    logger.debug(f"Building ApiService (vercel={settings.is_vercel}, strict={settings.strict_status})")
    return ApiService(settings=settings)
