"""
Stories.fun - Main FastAPI Application

Backend for a story-sharing platform on Solana with:
- Wallet-based user accounts
- Story authoring with admin moderation
- Threaded comments and likes
- STORIES token payments for paid stories
- Swap, email verification, narration and image upload proxies
"""

import asyncio
from contextlib import asynccontextmanager
from typing import Any, Dict, List

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware

import structlog

from .core.cache import close_cache, init_cache
from .core.config import settings
from .core.errors import APIError
from .core.logging import configure_logging
from .database import close_db, init_db
from .routers import admin, comments, email, health, media, purchases, stories, swap, users

# Configure structured logging
configure_logging()
logger = structlog.get_logger(__name__)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Middleware for request/response logging."""

    async def dispatch(self, request: Request, call_next):
        start_time = asyncio.get_event_loop().time()

        logger.info(
            "request_started",
            method=request.method,
            path=request.url.path,
            client_ip=request.client.host if request.client else None,
            user_agent=request.headers.get("user-agent"),
        )

        try:
            response = await call_next(request)

            process_time = asyncio.get_event_loop().time() - start_time
            logger.info(
                "request_completed",
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
                process_time=process_time,
            )
            response.headers["X-Process-Time"] = str(process_time)
            return response

        except Exception as e:
            process_time = asyncio.get_event_loop().time() - start_time
            logger.error(
                "request_failed",
                method=request.method,
                path=request.url.path,
                error=str(e),
                process_time=process_time,
            )
            raise


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Simple per-IP rate limiting middleware."""

    def __init__(self, app, calls_per_minute: int = 60):
        super().__init__(app)
        self.calls_per_minute = calls_per_minute
        self.client_requests: Dict[str, list] = {}

    async def dispatch(self, request: Request, call_next):
        client_ip = request.client.host if request.client else "unknown"
        current_time = asyncio.get_event_loop().time()

        # Clean old requests (older than 1 minute)
        self.client_requests[client_ip] = [
            req_time for req_time in self.client_requests.get(client_ip, [])
            if current_time - req_time < 60
        ]

        if len(self.client_requests[client_ip]) >= self.calls_per_minute:
            return JSONResponse(
                status_code=429,
                content={
                    "success": False,
                    "error": "Rate limit exceeded",
                    "message": f"Maximum {self.calls_per_minute} requests per minute allowed",
                },
            )

        self.client_requests[client_ip].append(current_time)
        return await call_next(request)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup and shutdown."""
    logger.info("startup_begin", app=settings.app_name, environment=settings.environment)

    await init_db()
    await init_cache()
    logger.info("startup_complete")

    try:
        yield
    finally:
        await close_cache()
        await close_db()
        logger.info("shutdown_complete")


app = FastAPI(
    title=settings.app_name,
    description="Story sharing with STORIES token payments on Solana",
    version=settings.app_version,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
    openapi_url="/openapi.json" if settings.debug else None,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(GZipMiddleware, minimum_size=1000)

app.add_middleware(RequestLoggingMiddleware)

if settings.enable_rate_limiting:
    app.add_middleware(RateLimitMiddleware, calls_per_minute=settings.rate_limit_per_minute)


def _validation_details(errors) -> List[Dict[str, Any]]:
    return [
        {
            "field": ".".join(str(part) for part in error.get("loc", ()) if part != "body"),
            "message": error.get("msg", "").replace("Value error, ", ""),
            "type": error.get("type"),
        }
        for error in errors
    ]


# Exception handlers
@app.exception_handler(APIError)
async def api_error_handler(request: Request, exc: APIError):
    """Render handler-raised API errors."""
    if exc.status_code >= 500:
        logger.error("api_error", status_code=exc.status_code, error=exc.error, path=request.url.path)
    else:
        logger.info("api_error", status_code=exc.status_code, error=exc.error, path=request.url.path)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Handle HTTP exceptions with structured logging."""
    logger.warning(
        "http_exception",
        status_code=exc.status_code,
        detail=exc.detail,
        path=request.url.path,
        method=request.method,
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "success": False,
            "error": exc.detail,
            "message": exc.detail,
        },
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Report malformed bodies and invalid fields as 400s."""
    errors = exc.errors()
    logger.warning("validation_error", path=request.url.path, method=request.method, count=len(errors))

    if any(error.get("type") == "json_invalid" for error in errors):
        return JSONResponse(
            status_code=400,
            content={
                "success": False,
                "error": "Invalid JSON",
                "message": "Request body must be valid JSON",
            },
        )

    details = _validation_details(errors)
    first = details[0] if details else {"field": "", "message": "Request validation failed"}
    message = f"{first['field']}: {first['message']}" if first["field"] else first["message"]
    return JSONResponse(
        status_code=400,
        content={
            "success": False,
            "error": "Validation error",
            "message": message,
            "details": details,
        },
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions."""
    logger.error(
        "unexpected_error",
        error=str(exc),
        error_type=type(exc).__name__,
        path=request.url.path,
        method=request.method,
        exc_info=True,
    )
    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": "Internal server error",
            "message": "An unexpected error occurred",
        },
    )


@app.get("/")
async def root():
    """Root endpoint with service information."""
    return {
        "name": settings.app_name,
        "version": settings.app_version,
        "status": "operational",
        "docs": "/docs" if settings.debug else None,
    }


app.include_router(health.router, tags=["Health"])
app.include_router(users.router, prefix="/api/users", tags=["Users"])
app.include_router(stories.router, prefix="/api/stories", tags=["Stories"])
app.include_router(admin.router, prefix="/api/admin/stories", tags=["Administration"])
app.include_router(comments.router, prefix="/api/comments", tags=["Comments"])
app.include_router(purchases.router, prefix="/api/story-purchase", tags=["Story Purchases"])
app.include_router(swap.router, prefix="/api/swap", tags=["Swap"])
app.include_router(email.router, prefix="/api/send-email", tags=["Email"])
app.include_router(media.tts_router, prefix="/api/tts", tags=["Media"])
app.include_router(media.ipfs_router, prefix="/api/ipfs", tags=["Media"])


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "storiesfun.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        workers=1 if settings.debug else settings.workers,
        log_config=None,  # Use our custom logging
        access_log=False,  # Handled by our middleware
    )
