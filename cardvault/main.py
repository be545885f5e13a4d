"""
FastAPI application and entry point.

This module creates and configures the FastAPI application:
  1. Logging — configured once from LOG_LEVEL
  2. Lifespan manager — builds the vault (fails fast on bad encryption
     config), creates tables, disposes the engine on shutdown
  3. CORS middleware — allows frontend origins to make cross-origin requests
  4. Exception handlers — maps domain errors to HTTP responses
  5. Router registration — mounts the cards endpoints

Running locally:
    CARD_ENCRYPTION_KEY=... uvicorn cardvault.main:app --reload
"""

import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware

from cardvault.config import settings
from cardvault.database import engine, Base
from cardvault.dependencies import build_vault_service, get_vault_service
from cardvault.exceptions import register_exception_handlers
from cardvault.routers import cards
from cardvault.services.card_service import VaultService
from cardvault import models  # noqa: F401  (registers tables on Base.metadata)

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Startup:
      Builds the VaultService. A missing or invalid encryption key raises
      ConfigurationError here, so the server never starts serving requests.
      Creates tables when the SQLAlchemy repository is in use.

    Shutdown:
      Disposes of the database engine, closing all connections cleanly.
    """
    # --- Startup ---
    app.state.vault_service = build_vault_service(settings)
    if settings.CARD_REPOSITORY == "sqlalchemy":
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
    logger.info(
        "Card vault ready (repository=%s, encryption=%s)",
        settings.CARD_REPOSITORY,
        app.state.vault_service.encryptor.backend.value,
    )
    yield
    # --- Shutdown ---
    await engine.dispose()


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Card vault: PANs encrypted at rest, searchable by last four digits",
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# Middleware
# ---------------------------------------------------------------------------

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ---------------------------------------------------------------------------
# Exception handlers
# ---------------------------------------------------------------------------

register_exception_handlers(app)

# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------

app.include_router(cards.router, prefix="/api/cards", tags=["Cards"])


# ---------------------------------------------------------------------------
# Health check
# ---------------------------------------------------------------------------

@app.get("/health", tags=["Health"])
async def health_check(vault: VaultService = Depends(get_vault_service)):
    """Health check for deployment probes; reports the active encryption backend."""
    return {
        "status": "ok",
        "version": settings.APP_VERSION,
        "encryption_backend": vault.encryptor.backend.value,
    }
