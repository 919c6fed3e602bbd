"""Vulture whitelist — false positives that are actually used by consumers or frameworks."""

# ---------------------------------------------------------------------------
# Public API methods (used by consumers, not internally)
# ---------------------------------------------------------------------------
from idtoken_verifier.jwks import JWKSFetcher, KeyCache
from idtoken_verifier.service import IdentityAuth
from idtoken_verifier.verifier import IdentityTokenVerifier

IdentityAuth.verify
IdentityAuth.verify_token
IdentityAuth.sign_in_router
IdentityAuth.provider
IdentityTokenVerifier.config
IdentityTokenVerifier.fetcher
JWKSFetcher.invalidate
JWKSFetcher.clear
KeyCache.clear

# ---------------------------------------------------------------------------
# Dataclass / response fields (read by callers and serialized)
# ---------------------------------------------------------------------------
_.not_before
_.is_private_email
_.email_verified
_.nonce
_.raw
_.retryable
_.algorithm
