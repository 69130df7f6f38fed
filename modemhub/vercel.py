"""
Base class for the Vercel Python function handlers in api/.

Each api/<route>.py file defines ``class handler(RouteHandler)`` with the
route name and a service instance; this class turns the raw
BaseHTTPRequestHandler request into an ApiRequest and writes the
ApiResponse back.
"""

import logging
from http.server import BaseHTTPRequestHandler
from typing import Optional

from modemhub.service import ApiRequest, ApiResponse, ApiService, route_from_path

logger = logging.getLogger(__name__)


class RouteHandler(BaseHTTPRequestHandler):
    # Empty route means "resolve from the request path" (api/index.py)
    route: str = ""
    service: Optional[ApiService] = None

    def do_GET(self):
        """Handle GET requests"""
        self.handle_route()

    def do_POST(self):
        """Handle POST requests"""
        self.handle_route()

    def do_OPTIONS(self):
        """Handle CORS preflight OPTIONS requests"""
        self.handle_route()

    def do_PUT(self):
        self.handle_route()

    def do_PATCH(self):
        self.handle_route()

    def do_DELETE(self):
        self.handle_route()

    def do_HEAD(self):
        self.handle_route()

    def read_body(self) -> bytes:
        content_length = int(self.headers.get("Content-Length", 0) or 0)
        if content_length <= 0:
            return b""
        return self.rfile.read(content_length)

    def handle_route(self):
        try:
            request = ApiRequest.from_parts(
                method=self.command,
                url=self.path,
                headers=dict(self.headers.items()),
                body=self.read_body(),
                client_ip=self.client_address[0] if self.client_address else None,
            )
            if self.service is None:
                raise RuntimeError(f"No service configured for route {self.route!r}")
            response = self.service.dispatch(self.route or route_from_path(request.path), request)
        except Exception as e:
            logger.error(f"Handler failed for {self.route}: {type(e).__name__}: {e}", exc_info=True)
            response = ApiResponse(
                status=500,
                body={"error": "Internal Server Error", "message": str(e)},
            )
        self.send_api_response(response)

    def send_api_response(self, response: ApiResponse):
        """Send status, headers and body"""
        payload = response.encoded()
        self.send_response(response.status)
        for name, value in response.all_headers().items():
            self.send_header(name, value)
        self.send_header("Content-Length", str(len(payload)))
        self.end_headers()
        if self.command != "HEAD" and payload:
            self.wfile.write(payload)

    def log_message(self, format, *args):
        logger.info(f"{self.address_string()} - {format % args}")
