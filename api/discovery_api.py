"""
Discovery API Module
FastAPI service that redirects every request to a broker in round-robin order
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, RedirectResponse
from pydantic import BaseModel
import uvicorn

from router.discovery_router import DiscoveryError, InboundRequest, RoundRobinRouter

logger = logging.getLogger(__name__)

REDIRECT_METHODS = ["GET", "HEAD", "POST", "PUT", "DELETE", "OPTIONS", "TRACE"]


class ErrorResponse(BaseModel):
    error: str
    detail: Optional[str] = None


def create_app(router: RoundRobinRouter) -> FastAPI:
    """Build the redirect application around ``router``"""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await router.registry.start()
        logger.info("Discovery service started")
        try:
            yield
        finally:
            await router.registry.stop()
            logger.info("Discovery service stopped")

    app = FastAPI(
        title="Broker Discovery Service",
        description="Redirects clients to an available broker",
        version="1.0.0",
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
        lifespan=lifespan,
    )
    app.state.router = router

    @app.exception_handler(DiscoveryError)
    async def discovery_error_handler(request: Request, exc: DiscoveryError):
        return JSONResponse(
            status_code=exc.status_code,
            content=ErrorResponse(error=exc.message).model_dump(exclude_none=True),
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled exception: {exc}")
        return JSONResponse(
            status_code=500,
            content=ErrorResponse(error="Internal server error", detail=str(exc)).model_dump(),
        )

    @app.api_route("/{path:path}", methods=REDIRECT_METHODS, include_in_schema=False)
    async def redirect(request: Request, path: str):
        location = router.redirect(
            InboundRequest.from_scope(request.url.scheme, request.scope)
        )
        return RedirectResponse(location, status_code=302)

    return app


def run_api(app: FastAPI, host: str = "0.0.0.0", port: int = 8080, **kwargs):
    """Run the discovery server"""
    uvicorn.run(app, host=host, port=port, **kwargs)
