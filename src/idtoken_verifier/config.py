"""Verifier configuration — dataclasses for provider endpoints and validation settings."""

from dataclasses import dataclass

JWT_ALGORITHM = "RS256"

APPLE_JWKS_URL = "https://appleid.apple.com/auth/keys"
APPLE_ISSUER = "https://appleid.apple.com"

GOOGLE_JWKS_URL = "https://www.googleapis.com/oauth2/v3/certs"
GOOGLE_ISSUERS = ("https://accounts.google.com", "accounts.google.com")

_FORBIDDEN_ALGORITHMS = frozenset({"none", "HS256", "HS384", "HS512"})


@dataclass(frozen=True, slots=True)
class VerifierConfig:
    """Settings for verifying identity tokens from one provider.

    Args:
        jwks_url: URL of the provider's JSON Web Key Set.
        issuer: Expected ``iss`` claim. A tuple accepts any of several issuers.
        audience: This application's client id(s); the token ``aud`` must include one.
        algorithms: Allowed signing algorithms (asymmetric only, default RS256).
        cache_ttl: How long a fetched key stays valid, in seconds.
        min_refetch_interval: Minimum seconds between fetches triggered by an unknown kid.
        http_timeout: Upper bound on a key-set fetch, in seconds.
        leeway: Clock skew tolerance for exp/nbf/iat, in seconds.

    Example:
        VerifierConfig(
            jwks_url="https://idp.example.com/jwks",
            issuer="https://idp.example.com",
            audience="com.example.app",
        )
    """

    jwks_url: str
    issuer: str | tuple[str, ...]
    audience: str | tuple[str, ...]
    algorithms: tuple[str, ...] = (JWT_ALGORITHM,)
    cache_ttl: float = 3600.0
    min_refetch_interval: float = 30.0
    http_timeout: float = 5.0
    leeway: float = 0.0

    def __post_init__(self) -> None:
        """Reject configurations that would make verification unsafe or impossible."""
        if not self.jwks_url:
            raise ValueError("jwks_url is required")
        if not self.issuers:
            raise ValueError("At least one issuer is required")
        if not self.audiences:
            raise ValueError("At least one audience (client id) is required")
        if not self.algorithms:
            raise ValueError("At least one signing algorithm is required")
        bad = [a for a in self.algorithms if a in _FORBIDDEN_ALGORITHMS]
        if bad:
            raise ValueError(f"Symmetric or unsigned algorithms are not allowed: {', '.join(bad)}")
        if self.cache_ttl < 0:
            raise ValueError("cache_ttl must be >= 0")
        if self.min_refetch_interval < 0:
            raise ValueError("min_refetch_interval must be >= 0")
        if self.http_timeout <= 0:
            raise ValueError("http_timeout must be > 0")
        if self.leeway < 0:
            raise ValueError("leeway must be >= 0")

    @property
    def issuers(self) -> tuple[str, ...]:
        """Accepted issuers as a tuple, empty strings dropped."""
        values = (self.issuer,) if isinstance(self.issuer, str) else self.issuer
        return tuple(v for v in values if v)

    @property
    def audiences(self) -> tuple[str, ...]:
        """Accepted audiences as a tuple, empty strings dropped."""
        values = (self.audience,) if isinstance(self.audience, str) else self.audience
        return tuple(v for v in values if v)


def apple_config(client_id: str | tuple[str, ...], **overrides) -> VerifierConfig:
    """Config for Sign in with Apple identity tokens.

    Apple rotates keys rarely, so keys are cached for a day.
    """
    settings = {"cache_ttl": 86400.0, **overrides}
    return VerifierConfig(
        jwks_url=APPLE_JWKS_URL,
        issuer=APPLE_ISSUER,
        audience=client_id,
        **settings,
    )


def google_config(client_id: str | tuple[str, ...], **overrides) -> VerifierConfig:
    """Config for Google ID tokens (both issuer spellings are accepted)."""
    return VerifierConfig(
        jwks_url=GOOGLE_JWKS_URL,
        issuer=GOOGLE_ISSUERS,
        audience=client_id,
        **overrides,
    )
