"""IdentityAuth — main entry point for idtoken-verifier.

Wires a provider config to a JWKS fetcher and verifier, and exposes FastAPI
dependencies for routes that accept third-party identity tokens.
"""

from idtoken_verifier.config import VerifierConfig
from idtoken_verifier.jwks import KeySetSource
from idtoken_verifier.verifier import (
    IdentityTokenVerifier,
    VerificationClaims,
    VerificationResult,
)


class IdentityAuth:
    """Identity token verification for one provider.

    Args:
        config: Provider endpoint and validation settings.
        key_source: Alternative key-set source (defaults to HTTPS GET of ``config.jwks_url``).
        provider: Provider name used in sign-in routes (default "apple").
    """

    def __init__(
        self,
        config: VerifierConfig,
        *,
        key_source: KeySetSource | None = None,
        provider: str = "apple",
    ) -> None:
        self._config = config
        self._provider = provider
        self._verifier = IdentityTokenVerifier(config, key_source=key_source)
        self._current_identity_dep = None

    @property
    def provider(self) -> str:
        return self._provider

    @property
    def verifier(self) -> IdentityTokenVerifier:
        return self._verifier

    async def verify(
        self,
        token: str,
        *,
        nonce: str | None = None,
        raw_nonce: str | None = None,
    ) -> VerificationResult:
        """Verify a token, returning claims or a typed error (never raises for bad tokens)."""
        return await self._verifier.verify(token, nonce=nonce, raw_nonce=raw_nonce)

    async def verify_token(
        self,
        token: str,
        *,
        nonce: str | None = None,
        raw_nonce: str | None = None,
    ) -> VerificationClaims:
        """Verify a token and return its claims.

        Raises:
            VerificationError: If verification fails.
        """
        return await self._verifier.verify_or_raise(token, nonce=nonce, raw_nonce=raw_nonce)

    @property
    def current_identity(self):
        """FastAPI dependency: verified claims from the ``Authorization: Bearer`` token.

        Usage:
            apple = IdentityAuth(apple_config("com.example.app"))

            @app.get("/me")
            async def me(claims=Depends(apple.current_identity)):
                return {"sub": claims.subject}
        """
        if self._current_identity_dep is None:
            from idtoken_verifier.integrations.fastapi import create_current_identity_dep

            self._current_identity_dep = create_current_identity_dep(self._verifier)
        return self._current_identity_dep

    def sign_in_router(self, on_sign_in):
        """FastAPI router with ``POST /{provider}`` for provider sign-in.

        ``on_sign_in(claims, user_data)`` is awaited with the verified claims
        and returns the response body (typically the app user and session token).

        Usage:
            app.include_router(apple.sign_in_router(handle_apple), prefix="/api/auth")
        """
        from idtoken_verifier.integrations.fastapi import create_sign_in_router

        return create_sign_in_router(self._verifier, self._provider, on_sign_in)
