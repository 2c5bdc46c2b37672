# pdf_chat/main.py
import time
import uuid
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from pdf_chat.api.dependencies import (
    RateLimitExceeded,
    Services,
    build_services,
    close_services,
    prepare_services,
)
from pdf_chat.api.routes import router
from pdf_chat.config import LOG_LEVEL, PORT
from pdf_chat.errors import ChatValidationError
from pdf_chat.observability.logger import get_logger, setup_logging

VERSION = "1.0.0"

# Initialize logging FIRST
setup_logging(log_level=LOG_LEVEL)
logger = get_logger(__name__)


def create_app(services: Optional[Services] = None) -> FastAPI:
    """
    Build the API application.

    With `services` given (tests), startup uses them as-is and shutdown
    leaves them open; otherwise they are built from configuration.
    """

    app = FastAPI(
        title="PDF Chat API",
        description="Retrieval-augmented chat over uploaded PDF documents",
        version=VERSION,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.services = services

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """Assign a request id and log start, completion and latency."""

        request_id = str(uuid.uuid4())
        request.state.request_id = request_id

        analytics = getattr(app.state.services, "analytics", None)

        if analytics:
            analytics.identify_user(
                distinct_id=request_id,
                properties={
                    "entry_point": request.url.path,
                    "method": request.method,
                },
            )

        logger.info(
            "request_started",
            extra={
                "request_id": request_id,
                "method": request.method,
                "path": request.url.path,
                "client_ip": request.client.host if request.client else None,
            },
        )

        start_time = time.time()

        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(
                "request_failed",
                extra={
                    "request_id": request_id,
                    "method": request.method,
                    "path": request.url.path,
                    "latency_seconds": round(time.time() - start_time, 3),
                    "error": str(e),
                    "error_type": type(e).__name__,
                },
            )
            raise

        # For SSE responses this is time to first byte, not stream length
        logger.info(
            "request_completed",
            extra={
                "request_id": request_id,
                "method": request.method,
                "path": request.url.path,
                "status_code": response.status_code,
                "latency_seconds": round(time.time() - start_time, 3),
            },
        )

        response.headers["X-Request-ID"] = request_id

        return response

    app.include_router(router)

    @app.on_event("startup")
    async def startup_event():

        if app.state.services is None:
            app.state.services = build_services()
            app.state.owns_services = True
            await prepare_services(app.state.services)
        else:
            app.state.owns_services = False

        logger.info(
            "application_startup",
            extra={"version": VERSION, "port": PORT},
        )

    @app.on_event("shutdown")
    async def shutdown_event():

        if getattr(app.state, "owns_services", False):
            await close_services(app.state.services)

        logger.info("application_shutdown")

    # ============================================================
    # ERROR RESPONSES
    # ============================================================

    @app.exception_handler(ChatValidationError)
    async def chat_validation_handler(request: Request, exc: ChatValidationError):

        logger.info(
            "chat_rejected",
            extra={
                "request_id": getattr(request.state, "request_id", "unknown"),
                "reason": exc.message,
            },
        )

        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=exc.to_body())

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):

        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": "Invalid request body"},
        )

    @app.exception_handler(RateLimitExceeded)
    async def rate_limit_handler(request: Request, exc: RateLimitExceeded):

        return JSONResponse(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            content={"error": str(exc)},
            headers=exc.decision.headers(),
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):

        if exc.status_code == status.HTTP_404_NOT_FOUND:
            return JSONResponse(
                status_code=status.HTTP_404_NOT_FOUND,
                content={"error": "Endpoint not found"},
            )

        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.detail},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):

        request_id = getattr(request.state, "request_id", "unknown")

        logger.error(
            "unhandled_exception",
            extra={
                "request_id": request_id,
                "path": request.url.path,
                "error": str(exc),
                "error_type": type(exc).__name__,
            },
            exc_info=exc,
        )

        analytics = getattr(app.state.services, "analytics", None)

        if analytics:
            analytics.track_error(
                distinct_id=request_id,
                error_type=type(exc).__name__,
                error_message=str(exc),
                endpoint=request.url.path,
            )

        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "Internal server error", "request_id": request_id},
        )

    @app.get("/", include_in_schema=False)
    async def root():

        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content={"message": "Not Found"},
        )

    return app


def main():

    uvicorn.run(app, host="0.0.0.0", port=PORT)


app = create_app()


if __name__ == "__main__":
    main()
