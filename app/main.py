"""
NFT Gallery Gateway - FastAPI Application
Main entry point for the gallery backend.
Resolves social profiles, lists NFT holdings, finds collection friends and proxies NFT media.
"""

import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.core.config import is_production, settings
from app.core.exceptions import GatewayException, get_exception_status_code
from app.core.logging import get_logger, log_error, log_request, setup_logging
from app.core.middleware import ActionDispatchMiddleware
from app.domain.repositories.folder_repository import folder_repository
from app.infrastructure.upstream.client import upstream_client

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.
    Handles startup and shutdown events.
    """
    # Startup
    setup_logging()
    logger.info(f"{settings.APP_NAME} {settings.APP_VERSION} starting ({settings.ENVIRONMENT})")
    yield
    # Shutdown
    await upstream_client.close()
    await folder_repository.disconnect()


def _cors_headers() -> dict:
    return {
        "Access-Control-Allow-Origin": "*",
        "Access-Control-Allow-Methods": ", ".join(settings.CORS_ALLOW_METHODS),
        "Access-Control-Allow-Headers": ", ".join(settings.CORS_ALLOW_HEADERS),
    }


def register_exception_handlers(app: FastAPI) -> None:
    """Render every error in the `{error, message, details?}` envelope."""

    @app.exception_handler(GatewayException)
    async def gateway_exception_handler(request: Request, exc: GatewayException):
        status_code = get_exception_status_code(exc)
        if status_code >= 500:
            log_error(exc, {"path": request.url.path, "error_code": exc.error_code})
        else:
            logger.info(f"{request.method} {request.url.path} -> {status_code} {exc.error_code}: {exc.message}")
        return JSONResponse(status_code=status_code, content=exc.to_envelope())

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        if exc.status_code == 404:
            content = {"error": "Not Found", "message": "API endpoint not found"}
        elif exc.status_code == 405:
            content = {"error": "Method Not Allowed", "message": f"Method {request.method} not allowed"}
        else:
            content = {"error": "HTTP Error", "message": str(exc.detail)}
        return JSONResponse(status_code=exc.status_code, content=content, headers=exc.headers)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        details = [
            {"loc": list(error.get("loc", [])), "msg": error.get("msg"), "type": error.get("type")}
            for error in exc.errors()
        ]
        return JSONResponse(
            status_code=400,
            content={"error": "Bad Request", "message": "Invalid request parameters", "details": details},
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        log_error(exc, {"path": request.url.path, "method": request.method})
        return JSONResponse(
            status_code=500,
            content={"error": "Internal Server Error", "message": "An unexpected error occurred"},
            headers=_cors_headers(),
        )


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns:
        FastAPI: Configured FastAPI application instance
    """
    app = FastAPI(
        title=settings.APP_NAME,
        description="NFT gallery gateway API - Farcaster profiles, NFT holdings, collection friends and media proxy",
        version=settings.APP_VERSION,
        docs_url="/docs" if not is_production() else None,
        redoc_url="/redoc" if not is_production() else None,
        openapi_url="/openapi.json" if not is_production() else None,
        lifespan=lifespan,
    )

    # Action-based dispatch takes precedence over path routing
    app.add_middleware(
        ActionDispatchMiddleware,
        actions={"collectionFriends": "/api/collection-friends"},
    )

    logger.info(f"CORS configured with origins: {settings.CORS_ALLOW_ORIGINS}")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ALLOW_ORIGINS,
        allow_credentials=False,
        allow_methods=settings.CORS_ALLOW_METHODS,
        allow_headers=settings.CORS_ALLOW_HEADERS,
    )

    @app.middleware("http")
    async def cors_and_options(request: Request, call_next):
        """Answer OPTIONS directly and put CORS headers on every response."""
        if request.method == "OPTIONS":
            return Response(status_code=200, headers=_cors_headers())
        response = await call_next(request)
        for name, value in _cors_headers().items():
            response.headers.setdefault(name, value)
        return response

    @app.middleware("http")
    async def request_logging(request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        log_request(
            request.method,
            request.url.path,
            response.status_code,
            round(time.perf_counter() - start, 4),
        )
        return response

    register_exception_handlers(app)

    from app.api.routers import (
        alchemy_router,
        collection_friends_router,
        diagnostic_router,
        folders_router,
        health_router,
        image_proxy_router,
        profile_router,
        zapper_router,
    )

    app.include_router(health_router.router, prefix="/api", tags=["Health"])
    app.include_router(profile_router.router, prefix="/api", tags=["Farcaster Profiles"])
    app.include_router(alchemy_router.router, prefix="/api", tags=["NFT Indexer"])
    app.include_router(zapper_router.router, prefix="/api", tags=["Portfolio GraphQL"])
    app.include_router(
        collection_friends_router.router, prefix="/api", tags=["Collection Friends"]
    )
    app.include_router(image_proxy_router.router, prefix="/api", tags=["Image Proxy"])
    app.include_router(folders_router.router, prefix="/api/folders", tags=["Folders"])
    app.include_router(diagnostic_router.router, prefix="/api", tags=["Diagnostics"])

    return app


# Create the FastAPI app instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.ENVIRONMENT == "development",
        log_level="info",
    )
