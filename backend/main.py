#!/usr/bin/env python3
"""
Agreement Signing Backend
FastAPI server for the agreement signing flow

Features:
- Prefilled PDF drafts from fixed templates
- Client and multi-director signing chains over emailed links
- Self-healing previews when artifacts are lost
- SharePoint archive of every signed artifact
"""

import random
import time
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse

from api.signing import router as signing_router
from core.config import get_settings
from core.errors import SigningError
from core.logger import logger
from services.signing.context import SigningContext, build_context


def create_app(context: Optional[SigningContext] = None) -> FastAPI:
    """
    Build the API.

    Args:
        context: Pre-built signing context (tests); built from the
            environment at startup when omitted
    """
    settings = context.settings if context else get_settings()

    app = FastAPI(
        title="Signing API",
        description="Multi-party agreement signing backend",
        version="1.0.0",
    )
    app.state.context = context

    app.include_router(signing_router)

    # CORS middleware for frontend connection
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def request_id(request: Request, call_next):
        req_id = str(random.randint(100000, 999999))
        started = time.perf_counter()
        with logger.contextualize(req_id=req_id):
            logger.info(f"REQ_START {request.method} {request.url.path}")
            try:
                response = await call_next(request)
            except Exception as exc:
                logger.opt(exception=exc).error(f"UNHANDLED {request.url.path}: {exc!r}")
                response = JSONResponse(status_code=500, content={"message": "Internal server error"})
            elapsed_ms = int((time.perf_counter() - started) * 1000)
            logger.info(f"REQ_END {request.method} {request.url.path} status={response.status_code} ms={elapsed_ms}")
        response.headers["X-Request-Id"] = req_id
        return response

    @app.exception_handler(SigningError)
    async def signing_error_handler(request: Request, exc: SigningError):
        log = logger.error if exc.status_code >= 500 else logger.warning
        log(f"{type(exc).__name__} {request.url.path}: {exc.message}")
        return JSONResponse(status_code=exc.status_code, content={"message": exc.message})

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        logger.warning(f"REQUEST_INVALID {request.url.path}: {exc.errors()}")
        return JSONResponse(status_code=400, content={"message": "Invalid request body"})

    @app.on_event("startup")
    async def startup_event():
        """Build the signing context and check templates."""
        if app.state.context is None:
            app.state.context = build_context(settings)
        ctx = app.state.context
        ctx.settings.ensure_dirs()
        ctx.database.init_db()
        ctx.registry.check_templates_at_boot()
        logger.info(f"Signing backend ready (env={ctx.settings.app_env})")

    @app.get("/", response_class=PlainTextResponse)
    def root():
        return "Backend is live"

    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000)
