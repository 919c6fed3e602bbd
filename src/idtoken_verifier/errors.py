"""Verification error taxonomy.

Input errors (malformed token, unsupported algorithm) and trust errors
(unknown key, bad signature, bad claims) mean the token must be rejected.
``KeyResolutionFailed`` is transient and safe for the caller to retry, as is an
``UnknownSigningKey`` raised while refetching was rate-limited.
"""


class VerificationError(Exception):
    """Base class for every expected verification failure."""

    code = "verification_failed"
    retryable = False

    def __init__(self, message: str, code: str | None = None):
        self.message = message
        if code is not None:
            self.code = code
        super().__init__(message)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(code={self.code!r}, message={self.message!r})"


class MalformedToken(VerificationError):
    code = "malformed_token"


class UnsupportedAlgorithm(VerificationError):
    code = "unsupported_algorithm"

    def __init__(self, algorithm: str | None):
        self.algorithm = algorithm
        super().__init__(f"Algorithm not allowed: {algorithm!r}")


class KeyResolutionFailed(VerificationError):
    """The provider key set could not be fetched (network, HTTP or timeout)."""

    code = "key_resolution_failed"
    retryable = True


class UnknownSigningKey(VerificationError):
    code = "unknown_signing_key"

    def __init__(self, kid: str, *, retryable: bool = False):
        self.kid = kid
        # Set when the lookup was skipped by the refetch limit; a later retry may find the key.
        self.retryable = retryable
        super().__init__(f"Unknown signing key: {kid}")


class InvalidSignature(VerificationError):
    code = "invalid_signature"


class ClaimValidationFailed(VerificationError):
    """A standard claim did not match; ``claim`` names which one."""

    code = "claim_validation_failed"

    def __init__(self, claim: str, message: str | None = None):
        self.claim = claim
        super().__init__(message or f"Claim validation failed: {claim}")
