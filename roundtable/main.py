import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

# Load env before settings are read
if "PYTEST_CURRENT_TEST" not in os.environ:
    load_dotenv()

from roundtable.core.config import Settings, settings as default_settings, validate_config
from roundtable.core.database import Database
from roundtable.core.errors import install_error_handlers
from roundtable.core.logging import configure_logging
from roundtable.core.middleware.request_id import RequestIdMiddleware
from roundtable.core.validation import validate_env
from roundtable.api import admin, generate, health, newsletters, questions, sessions, users
from roundtable.features.generation.provider import GroqTextGenerator, TextGenerator

logger = logging.getLogger("roundtable")


def create_app(
    settings_obj: Optional[Settings] = None,
    database: Optional[Database] = None,
    generator: Optional[TextGenerator] = None,
) -> FastAPI:
    """
    Build the ASGI app.

    A Database or generator passed in is used as-is and left open; whatever
    the lifespan has to construct itself it also disposes.
    """
    cfg = settings_obj or default_settings
    configure_logging(cfg.ENV)
    validate_env(settings_obj=cfg)
    validate_config(strict=cfg.CONFIG_STRICT, settings_obj=cfg, logger=logger)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Starting Roundtable backend...")
        owned_db = None
        if getattr(app.state, "database", None) is None:
            owned_db = Database.from_settings(cfg)
            owned_db.create_all()
            app.state.database = owned_db
        if getattr(app.state, "generator", None) is None:
            app.state.generator = GroqTextGenerator.from_settings(cfg)
        try:
            yield
        finally:
            if owned_db is not None:
                owned_db.dispose()
                app.state.database = None
            logger.info("Stopping Roundtable backend...")

    app = FastAPI(title="Roundtable", lifespan=lifespan)
    app.state.settings = cfg
    app.state.database = database
    app.state.generator = generator

    # Middlewares
    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cfg.cors_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    install_error_handlers(app)

    app.include_router(health.root_router)
    app.include_router(newsletters.router)
    app.include_router(questions.router)
    app.include_router(sessions.router)
    app.include_router(sessions.responses_router)
    app.include_router(sessions.assignments_router)
    app.include_router(generate.router)
    app.include_router(users.router)
    app.include_router(admin.router)

    return app


app = create_app()
