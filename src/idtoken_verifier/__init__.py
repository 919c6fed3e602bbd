"""idtoken-verifier — Third-party identity token verification (Sign in with Apple, Google)."""

__version__ = "0.1.0"

from idtoken_verifier.config import VerifierConfig, apple_config, google_config
from idtoken_verifier.errors import (
    ClaimValidationFailed,
    InvalidSignature,
    KeyResolutionFailed,
    MalformedToken,
    UnknownSigningKey,
    UnsupportedAlgorithm,
    VerificationError,
)
from idtoken_verifier.jwks import JWKSFetcher, KeySetSource, SigningKey
from idtoken_verifier.service import IdentityAuth
from idtoken_verifier.verifier import (
    IdentityTokenVerifier,
    VerificationClaims,
    VerificationResult,
    hash_nonce,
)

__all__ = [
    "ClaimValidationFailed",
    "IdentityAuth",
    "IdentityTokenVerifier",
    "InvalidSignature",
    "JWKSFetcher",
    "KeyResolutionFailed",
    "KeySetSource",
    "MalformedToken",
    "SigningKey",
    "UnknownSigningKey",
    "UnsupportedAlgorithm",
    "VerificationClaims",
    "VerificationError",
    "VerificationResult",
    "VerifierConfig",
    "apple_config",
    "google_config",
    "hash_nonce",
]
