"""FastAPI application main entry point."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

load_dotenv()

from .middleware import register_error_handlers
from .routes import agent, agent_tokens, ai_edits, markdown, settings, system
from ..services.config import get_config
from ..services.database import init_database

logger = logging.getLogger(__name__)

system.install_memory_log_handler()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan handler to run startup tasks."""
    logger.info("Running startup: initializing database...")
    db_path = init_database()
    logger.info(f"Startup complete: database ready at {db_path}")
    yield


app = FastAPI(
    title="Notes AI Edits API",
    description="AI-assisted note editing and agent token note access",
    version="0.1.0",
    lifespan=lifespan,
)

config = get_config()

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["Retry-After", "X-RateLimit-Remaining"],
)

register_error_handlers(app)

app.include_router(ai_edits.router)
app.include_router(agent_tokens.router)
app.include_router(agent.router)
app.include_router(settings.router)
app.include_router(markdown.router)
app.include_router(system.router, tags=["system"])


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy"}


__all__ = ["app"]
