#!/usr/bin/env python3

"""
Main application entry point for the Daylight capture service.

Architecture: FastAPI application with database, OpenAI client, in-process job
dispatcher and WebSocket job status.
Key Features: Lifecycle management, database health checks, typed error responses, CORS configuration.
"""

import asyncio
import sys

# Add this block to switch asyncio event loop policy on Windows
if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

import errno
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.api.auth import router as auth_router
from app.api.capture import router as capture_router
from app.api.evidence import router as evidence_router
from app.api.users import router as users_router
from app.api.ws import router as ws_router
from app.config import settings
from app.db import check_db_connection, init_db
from app.exceptions import DaylightError
from app.services.capture_orchestrator import (
    CaptureOrchestratorService,
    register_journal_worker,
)
from app.services.job_dispatcher import job_dispatcher
from app.services.llm_service import close_all_llm_clients, initialize_all_llm_clients
from app.utils.logger import setup_logger

logger = setup_logger("main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Startup: LLM client, database, job worker. Shutdown: drain jobs, close clients.
    """
    logger.info("Application startup...")
    try:
        initialize_all_llm_clients()
        logger.info("LLM client initialized.")

        logger.info("Initializing database...")
        await init_db()
        logger.info("Database initialization complete.")

        logger.info("Checking database connectivity...")
        if await check_db_connection():
            logger.info("Database connectivity confirmed.")
        else:
            logger.critical("Database connectivity check failed.")
            raise SystemExit("Database connection failed.")

        register_journal_worker(job_dispatcher, CaptureOrchestratorService())
        job_dispatcher.start()
        logger.info("Job dispatcher started.")

    except Exception as e:
        logger.critical(f"Startup error: {e}")
        raise SystemExit(f"Startup failed: {e}") from e

    logger.info("Daylight API startup successful.")

    yield

    logger.info("Daylight API shutdown...")
    await job_dispatcher.drain()
    await close_all_llm_clients()
    logger.info("Shutdown complete.")


def create_app():
    app = FastAPI(title="Daylight Capture API", lifespan=lifespan)

    @app.exception_handler(DaylightError)
    async def daylight_error_handler(request: Request, exc: DaylightError):
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc.reason}: {exc.message}")
        else:
            logger.info(f"{request.method} {request.url.path} rejected: {exc.reason}: {exc.message}")
        return JSONResponse(status_code=exc.status_code, content=exc.to_response())

    @app.exception_handler(OSError)
    async def oserror_exception_handler(request: Request, exc: OSError):
        logger.error(
            f"OSError caught: {exc}, errno: {exc.errno}, winerror: {getattr(exc, 'winerror', None)}"
        )
        is_timeout_or_refused = False
        if hasattr(exc, "winerror") and exc.winerror == 121:
            is_timeout_or_refused = True
        elif exc.errno in [errno.ETIMEDOUT, errno.ECONNREFUSED]:
            is_timeout_or_refused = True

        if is_timeout_or_refused:
            logger.error(
                f"Returning 503 due to DB connection issue: {settings.db_unavailable_hint}"
            )
            return JSONResponse(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                content={"detail": settings.db_unavailable_hint},
            )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": f"An unexpected OS error occurred: {exc}"},
        )

    @app.get("/api/")
    async def read_root():
        """API health check endpoint."""
        return {"message": "Daylight API is running!"}

    app.include_router(ws_router)
    app.include_router(capture_router)
    app.include_router(evidence_router)
    app.include_router(auth_router)
    app.include_router(users_router)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=settings.cors_allow_methods,
        allow_headers=settings.cors_allow_headers,
    )

    return app


app = create_app()


def main():
    """Start the FastAPI application with uvicorn."""
    port = int(settings.server_port)
    host = settings.server_host

    logger.info(f"Starting Daylight API server on {host}:{port}")

    try:
        uvicorn.run(app, host=host, port=port, workers=settings.server_workers)
    except Exception as e:
        logger.error(f"Error starting server: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
