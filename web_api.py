"""
FastAPI app serving every ModemHub endpoint from one local process.

Mirrors the Vercel functions in api/ so the modem and the dashboard can
be pointed at a laptop during development:

    python web_api.py            # or: uvicorn web_api:app --reload
"""

import logging
import os
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, Response

from modemhub import __version__
from modemhub.service import ApiRequest, ApiService, build_service

logger = logging.getLogger(__name__)
logging.basicConfig(level=logging.INFO)

ALL_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS", "HEAD"]


def create_app(service: Optional[ApiService] = None) -> FastAPI:
    """Factory to create the FastAPI app around one ApiService."""
    service = service or build_service()

    app = FastAPI(
        title="ModemHub API",
        description="User registry and request viewer endpoints for the BG95 demo",
        version=__version__,
    )
    app.state.service = service

    # CORS headers are set by ApiService, not middleware

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Global exception handler to log all errors."""
        logger.error(f"Unhandled exception: {type(exc).__name__}: {str(exc)}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={
                "error": "Internal Server Error",
                "message": str(exc),
                "type": type(exc).__name__,
            },
        )

    async def forward(request: Request, route: str) -> Response:
        url = request.url.path
        if request.url.query:
            url = f"{url}?{request.url.query}"

        api_request = ApiRequest.from_parts(
            method=request.method,
            url=url,
            headers=dict(request.headers),
            body=await request.body(),
            client_ip=request.client.host if request.client else None,
        )
        api_response = service.dispatch(route, api_request)
        return Response(
            content=api_response.encoded(),
            status_code=api_response.status,
            headers=api_response.all_headers(),
        )

    @app.get("/health")
    async def health():
        """Health check endpoint."""
        return {
            "status": "healthy",
            "message": "API is running",
            "users": len(service.registry),
        }

    @app.api_route("/", methods=ALL_METHODS)
    async def root(request: Request):
        """Root endpoint."""
        return await forward(request, "index")

    @app.api_route("/api/{route}", methods=ALL_METHODS)
    async def api_endpoint(route: str, request: Request):
        return await forward(request, route)

    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=int(os.environ.get("PORT", "8000")))
