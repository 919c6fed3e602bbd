"""FastAPI dependencies and sign-in router for idtoken-verifier."""

import logging
from collections.abc import Awaitable, Callable
from typing import Any

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel, Field

from idtoken_verifier.errors import VerificationError
from idtoken_verifier.verifier import IdentityTokenVerifier, VerificationClaims

logger = logging.getLogger("idtoken_verifier.integrations.fastapi")

# Returned for every verification failure; the typed reason is only logged.
AUTH_FAILED_DETAIL = {"error": "invalid_identity_token", "message": "Authentication failed"}

SignInHandler = Callable[[VerificationClaims, dict[str, Any]], Awaitable[Any]]


class SignInRequest(BaseModel):
    """Provider sign-in input, as sent by the mobile and web clients."""
    id_token: str | None = Field(default=None, alias="idToken")
    user_data: dict[str, Any] | None = Field(default=None, alias="userData")


def _auth_failed(error: VerificationError) -> HTTPException:
    logger.warning("Identity token verification failed: %s (%s)", error.code, error.message)
    return HTTPException(status_code=401, detail=AUTH_FAILED_DETAIL)


def create_current_identity_dep(verifier: IdentityTokenVerifier):
    """Create a FastAPI dependency that verifies the ``Authorization: Bearer`` token."""

    async def current_identity(request: Request) -> VerificationClaims:
        token: str | None = None
        auth_header = request.headers.get("Authorization")
        if auth_header and auth_header.startswith("Bearer "):
            token = auth_header[7:]

        if not token:
            raise HTTPException(
                status_code=401,
                detail={"error": "token_missing", "message": "No identity token provided"},
            )

        try:
            return await verifier.verify_or_raise(token)
        except VerificationError as e:
            raise _auth_failed(e)

    return current_identity


def create_sign_in_router(
    verifier: IdentityTokenVerifier,
    provider: str,
    on_sign_in: SignInHandler,
) -> APIRouter:
    """Create a router with ``POST /{provider}`` that verifies the posted identity token.

    ``userData.nonce``, when sent, is the raw nonce the client generated; its
    SHA-256 hex digest must match the token's ``nonce`` claim.
    """
    router = APIRouter(tags=["identity"])

    @router.post(f"/{provider}")
    async def sign_in(body: SignInRequest):
        if not body.id_token:
            raise HTTPException(
                status_code=400,
                detail={"error": "token_missing", "message": "ID token is required"},
            )

        user_data = body.user_data or {}
        raw_nonce = user_data.get("nonce")
        result = await verifier.verify(
            body.id_token, raw_nonce=raw_nonce if isinstance(raw_nonce, str) else None,
        )
        if result.error is not None:
            raise _auth_failed(result.error)

        return await on_sign_in(result.claims, user_data)

    return router
