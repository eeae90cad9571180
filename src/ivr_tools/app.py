"""
ivr_tools/app.py

FastAPI application entrypoint for the IVR tools service.

This module wires together:
- Logging configuration (rotating file + console)
- CORS and request logging middleware
- Routers under /api (tool calls, lifecycle webhook, outbound calls)
"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.requests import Request

from ivr_tools import __version__, config
from ivr_tools.api.call import router as call_router
from ivr_tools.api.tools import router as tools_router
from ivr_tools.api.webhook import router as webhook_router
from ivr_tools.db.session import engine, init_models
from ivr_tools.logging_config import get_logger, setup_logging

# Configure logging before creating the app
setup_logging()
logger = get_logger("ivr_tools")

app = FastAPI(title="IVR Tools - Voice Banking Tool Router", version=__version__)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
    allow_credentials=True,
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """
    Lightweight request logger. Bodies are not logged: tool calls carry PINs.
    """
    logger.info(
        "HTTP %s %s from %s",
        request.method,
        request.url.path,
        request.client.host if request.client else "?",
    )
    response = await call_next(request)
    logger.info("HTTP %s %s -> %s", request.method, request.url.path, response.status_code)
    return response


@app.get("/api/health")
async def health():
    """
    Simple health check endpoint.
    """
    return {"status": "healthy"}


app.include_router(tools_router, prefix="/api")
app.include_router(webhook_router, prefix="/api")
app.include_router(call_router, prefix="/api")


@app.on_event("startup")
async def on_startup():
    logger.info("IVR tools starting up")
    if config.CREATE_TABLES_ON_STARTUP:
        await init_models()


@app.on_event("shutdown")
async def on_shutdown():
    try:
        await engine.dispose()
    except Exception:
        logger.exception("Error disposing engine on shutdown")
    logger.info("IVR tools shutting down")
