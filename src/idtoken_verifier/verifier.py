"""Identity token verification using provider JWKS keys — local verification, no DB needed."""

import hashlib
import logging
from dataclasses import dataclass, field
from typing import Any

import jwt
from jwt.exceptions import InvalidSubjectError

from idtoken_verifier.config import VerifierConfig
from idtoken_verifier.errors import (
    ClaimValidationFailed,
    InvalidSignature,
    MalformedToken,
    UnsupportedAlgorithm,
    VerificationError,
)
from idtoken_verifier.jwks import JWKSFetcher, KeySetSource

logger = logging.getLogger("idtoken_verifier.verifier")

REQUIRED_CLAIMS = ["iss", "aud", "exp", "iat", "sub"]

_CLAIM_NAMES = {
    "iss": "issuer",
    "aud": "audience",
    "exp": "expiry",
    "nbf": "not-before",
    "iat": "issued-at",
    "sub": "subject",
}


def _as_bool(value: Any) -> bool | None:
    # Apple sends these as the strings "true"/"false".
    if value is None or isinstance(value, bool):
        return value
    return str(value).lower() == "true"


def hash_nonce(raw_nonce: str) -> str:
    """SHA-256 hex digest of a raw nonce, as Apple embeds it in the ``nonce`` claim."""
    return hashlib.sha256(raw_nonce.encode("utf-8")).hexdigest()


@dataclass(frozen=True, slots=True)
class VerificationClaims:
    """Decoded payload of a verified identity token."""

    subject: str
    issuer: str
    audience: tuple[str, ...]
    issued_at: int
    expires_at: int
    not_before: int | None = None
    email: str | None = None
    email_verified: bool | None = None
    is_private_email: bool | None = None
    name: str | None = None
    nonce: str | None = None
    raw: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "VerificationClaims":
        aud = payload["aud"]
        return cls(
            subject=payload["sub"],
            issuer=payload["iss"],
            audience=(aud,) if isinstance(aud, str) else tuple(aud),
            issued_at=payload["iat"],
            expires_at=payload["exp"],
            not_before=payload.get("nbf"),
            email=payload.get("email"),
            email_verified=_as_bool(payload.get("email_verified")),
            is_private_email=_as_bool(payload.get("is_private_email")),
            name=payload.get("name"),
            nonce=payload.get("nonce"),
            raw=payload,
        )


@dataclass(frozen=True, slots=True)
class VerificationResult:
    """Outcome of ``IdentityTokenVerifier.verify`` — claims or a typed error."""

    claims: VerificationClaims | None = None
    error: VerificationError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> VerificationClaims:
        """Return the claims, or raise the verification error."""
        if self.error is not None:
            raise self.error
        assert self.claims is not None
        return self.claims


class IdentityTokenVerifier:
    """Verifies third-party identity tokens against the provider's published keys.

    Pipeline: token shape, header, algorithm allow-list, key resolution,
    signature, then issuer/audience/expiry (and nonce when one is expected).

    Args:
        config: Provider endpoint and validation settings.
        fetcher: Key resolver. Built from ``config`` when omitted.
        key_source: Key-set source for the built fetcher (defaults to HTTPS GET
            of ``config.jwks_url``). Ignored when ``fetcher`` is given.
    """

    def __init__(
        self,
        config: VerifierConfig,
        fetcher: JWKSFetcher | None = None,
        *,
        key_source: KeySetSource | None = None,
    ) -> None:
        self._config = config
        self._fetcher = fetcher or JWKSFetcher(
            key_source if key_source is not None else config.jwks_url,
            algorithms=config.algorithms,
            cache_ttl=config.cache_ttl,
            min_refetch_interval=config.min_refetch_interval,
            http_timeout=config.http_timeout,
        )

    @property
    def config(self) -> VerifierConfig:
        return self._config

    @property
    def fetcher(self) -> JWKSFetcher:
        return self._fetcher

    async def verify(
        self,
        token: str,
        *,
        nonce: str | None = None,
        raw_nonce: str | None = None,
    ) -> VerificationResult:
        """Verify ``token`` and return its claims or the reason it was rejected.

        ``nonce`` is compared verbatim with the token's ``nonce`` claim.
        ``raw_nonce`` is the value the client kept before hashing: Apple tokens
        carry its SHA-256 hex digest.

        Expected failures are returned, never raised. Misconfiguration and
        other internal faults still propagate.
        """
        try:
            claims = await self.verify_or_raise(token, nonce=nonce, raw_nonce=raw_nonce)
        except VerificationError as e:
            return VerificationResult(error=e)
        return VerificationResult(claims=claims)

    async def verify_or_raise(
        self,
        token: str,
        *,
        nonce: str | None = None,
        raw_nonce: str | None = None,
    ) -> VerificationClaims:
        """Verify ``token`` and return its claims.

        Raises:
            VerificationError: One of its subclasses, naming why the token was rejected.
        """
        if raw_nonce is not None:
            nonce = hash_nonce(raw_nonce)
        try:
            claims = await self._verify(token, nonce)
        except VerificationError as e:
            logger.info("Identity token rejected (%s): %s", e.code, e.message)
            raise
        return claims

    async def _verify(self, token: str, nonce: str | None) -> VerificationClaims:
        if not isinstance(token, str):
            raise MalformedToken("Token must be a string")
        parts = token.split(".")
        if len(parts) != 3 or not all(parts):
            raise MalformedToken("Token must have three non-empty segments")

        try:
            header = jwt.get_unverified_header(token)
        except jwt.PyJWTError:
            raise MalformedToken("Token header could not be decoded")

        alg = header.get("alg")
        if alg not in self._config.algorithms:
            raise UnsupportedAlgorithm(alg)

        kid = header.get("kid")
        if not kid or not isinstance(kid, str):
            raise MalformedToken("Token missing kid header")

        signing_key = await self._fetcher.get_signing_key(kid)
        # The key's own algorithm wins over the header; a mismatch can never verify.
        if signing_key.public_key.algorithm_name != alg:
            raise InvalidSignature(
                f"Token algorithm {alg} does not match signing key algorithm "
                f"{signing_key.public_key.algorithm_name}"
            )

        try:
            payload = jwt.decode(
                token,
                signing_key.public_key,
                algorithms=[alg],
                audience=list(self._config.audiences),
                leeway=self._config.leeway,
                options={"require": REQUIRED_CLAIMS, "verify_iss": False},
            )
        except jwt.InvalidSignatureError:
            raise InvalidSignature("Signature verification failed")
        except jwt.ExpiredSignatureError:
            raise ClaimValidationFailed("expiry", "Token has expired")
        except jwt.ImmatureSignatureError:
            raise ClaimValidationFailed("not-before", "Token is not yet valid")
        except jwt.InvalidAudienceError:
            raise ClaimValidationFailed("audience", "Token audience does not match")
        except jwt.InvalidIssuedAtError:
            raise ClaimValidationFailed("issued-at", "Token issued-at is invalid")
        except InvalidSubjectError:
            raise ClaimValidationFailed("subject", "Token subject is invalid")
        except jwt.MissingRequiredClaimError as e:
            name = _CLAIM_NAMES.get(e.claim, e.claim)
            raise ClaimValidationFailed(name, f"Token is missing the {e.claim} claim")
        except jwt.DecodeError as e:
            raise MalformedToken(f"Token could not be decoded: {e}")
        except jwt.PyJWTError as e:
            raise ClaimValidationFailed("token", f"Invalid token: {e}")

        if payload["iss"] not in self._config.issuers:
            raise ClaimValidationFailed("issuer", f"Unexpected issuer: {payload['iss']!r}")

        if nonce is not None and payload.get("nonce") != nonce:
            raise ClaimValidationFailed("nonce", "Token nonce does not match")

        try:
            return VerificationClaims.from_payload(payload)
        except (TypeError, KeyError) as e:
            raise MalformedToken(f"Token claims have unexpected types: {e}")
