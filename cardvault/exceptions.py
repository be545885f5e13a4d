"""
Custom exception classes and FastAPI exception handlers.

The vault core raises domain errors without importing HTTP concepts. The
handlers registered here translate them into HTTP responses, so:
    - Service code is testable without HTTP
    - Error responses are consistent across all endpoints
    - Crypto failures never leak ciphertext or key material to clients

Exception hierarchy:
    CardVaultError (base)
    ├── ValidationError      — malformed search filter (400)
    ├── CryptoError          — key service, tag or ciphertext failure (500)
    ├── PersistenceError     — repository unavailable or failed (500)
    └── ConfigurationError   — no usable encryption backend (fatal at startup)
"""

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Base exception
# ---------------------------------------------------------------------------

class CardVaultError(Exception):
    """Base exception for all Card Vault domain errors."""

    def __init__(self, detail: str = "An error occurred"):
        self.detail = detail
        super().__init__(self.detail)


# ---------------------------------------------------------------------------
# Domain exceptions
# ---------------------------------------------------------------------------

class ValidationError(CardVaultError):
    """Raised when a caller-supplied value is malformed (e.g. a last-four filter)."""


class CryptoError(CardVaultError):
    """
    Raised when encryption or decryption fails.

    Covers an unreachable key service, a malformed key identifier, an empty
    or garbled backend response, malformed ciphertext, and authentication
    tag mismatches.
    """


class PersistenceError(CardVaultError):
    """Raised when the card repository cannot read or write records."""


class ConfigurationError(CardVaultError):
    """
    Raised when no encryption backend can be resolved from configuration.

    Fatal: raised during startup so the service never accepts requests.
    """


# ---------------------------------------------------------------------------
# FastAPI exception handlers
# ---------------------------------------------------------------------------

def register_exception_handlers(app: FastAPI) -> None:
    """
    Register custom exception handlers with the FastAPI application.

    Each handler maps a domain exception to an HTTP status code and a
    consistent JSON response: {"detail": "...", "error_type": "..."}

    This is called once in the app factory in main.py.
    """

    @app.exception_handler(ValidationError)
    async def validation_error_handler(
        request: Request, exc: ValidationError
    ) -> JSONResponse:
        return JSONResponse(
            status_code=400,
            content={"detail": exc.detail, "error_type": "validation_error"},
        )

    @app.exception_handler(CryptoError)
    async def crypto_error_handler(
        request: Request, exc: CryptoError
    ) -> JSONResponse:
        logger.error("Crypto failure on %s %s: %s", request.method, request.url.path, exc.detail)
        return JSONResponse(
            status_code=500,
            content={"detail": "Card encryption failed", "error_type": "crypto_error"},
        )

    @app.exception_handler(PersistenceError)
    async def persistence_error_handler(
        request: Request, exc: PersistenceError
    ) -> JSONResponse:
        return JSONResponse(
            status_code=500,
            content={"detail": exc.detail, "error_type": "persistence_error"},
        )
