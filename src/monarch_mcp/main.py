import logging
from contextlib import asynccontextmanager
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .server import mcp
from .services.credential_service import close_credential_store
from .settings import get_settings
from .tools import get_dispatcher_async, reset_dispatcher


def setup_server_logging(level: str = "INFO") -> logging.Logger:
    """Configure and return the package logger; module loggers propagate to it."""
    logs_dir = Path("logs")
    logs_dir.mkdir(parents=True, exist_ok=True)

    logger = logging.getLogger("monarch_mcp")
    if logger.handlers:
        return logger

    logger.setLevel(level)
    fmt = logging.Formatter("%(asctime)s %(levelname)s %(name)s - %(message)s")

    ch = logging.StreamHandler()
    ch.setFormatter(fmt)
    logger.addHandler(ch)

    fh = RotatingFileHandler(logs_dir / "server.log", maxBytes=5_000_000, backupCount=3)
    fh.setFormatter(fmt)
    logger.addHandler(fh)

    return logger


def _cors_origins_list(origins: str) -> list[str]:
    """Parse CORS_ORIGINS into a list."""
    if not origins or origins.strip() == "*":
        return ["*"]
    return [o.strip() for o in origins.split(",") if o.strip()]


settings = get_settings()
LOGGER = setup_server_logging(settings.log_level)

mcp_app = mcp.http_app(path=settings.mcp_path)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Connect the credential store and start the MCP session manager; close Redis on shutdown."""
    LOGGER.info("Connecting credential store...")
    dispatcher = await get_dispatcher_async()
    LOGGER.info("Serving %d tools at %s", len(dispatcher.tools), settings.mcp_path)

    async with mcp_app.lifespan(app):
        yield

    LOGGER.info("Shutting down...")
    reset_dispatcher()
    await close_credential_store()


app = FastAPI(
    title=settings.server_name,
    version="0.1.0",
    debug=settings.debug,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins_list(settings.cors_origins),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health")
async def health() -> dict[str, Any]:
    """Health check for load balancers and monitoring.

    Returns:
        dict[str, Any]: JSON response with status field.
    """
    return {"status": "ok"}


app.mount("/", mcp_app)


def run() -> None:
    """Start the HTTP server."""
    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level.lower())
