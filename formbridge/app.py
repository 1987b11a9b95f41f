"""FastAPI application for the Typeform -> amoCRM bridge."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from . import __version__
from .amocrm.client import AmoClient
from .amocrm.storage import CredentialStore
from .config import settings
from .database import async_session_factory, init_db

logger = logging.getLogger(__name__)


def configure_logging(level: str | None = None) -> None:
    logging.basicConfig(
        level=(level or settings.log_level).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    await init_db()
    app.state.amo = AmoClient(settings.amo_config, CredentialStore(async_session_factory))
    logger.info("formbridge ready (amoCRM %s, pipeline %s)", settings.amocrm_base_url, settings.amocrm_pipeline_id)
    try:
        yield
    finally:
        await app.state.amo.close()


app = FastAPI(title="formbridge", version=__version__, lifespan=lifespan)

from .routers import health, webhooks  # noqa: E402

app.include_router(health.router)
app.include_router(webhooks.router)
