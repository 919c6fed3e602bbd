"""Test fixtures for idtoken-verifier tests.

All tests are network-free — they generate RSA keys, mint identity tokens
the way Apple does, and serve JWKS responses from httpx MockTransport or an
in-memory key source.
"""

import asyncio
import base64
import uuid
from datetime import UTC, datetime, timedelta

import jwt
import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

TEST_ISSUER = "https://appleid.apple.com"
TEST_CLIENT_ID = "com.example.streaming"
TEST_JWKS_URL = "https://appleid.apple.com/auth/keys"


def generate_rsa_key_pair() -> tuple[str, str]:
    private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    private_pem = private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("utf-8")
    public_pem = private_key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    ).decode("utf-8")
    return private_pem, public_pem


def _int_to_b64url(value: int) -> str:
    byte_length = (value.bit_length() + 7) // 8
    value_bytes = value.to_bytes(byte_length, byteorder="big")
    return base64.urlsafe_b64encode(value_bytes).rstrip(b"=").decode("ascii")


def public_pem_to_jwk(public_pem: str, kid: str, *, alg: str | None = "RS256") -> dict:
    """Convert a PEM public key to the JWK shape Apple publishes."""
    public_key = serialization.load_pem_public_key(public_pem.encode("utf-8"))
    numbers = public_key.public_numbers()
    jwk = {
        "kty": "RSA",
        "kid": kid,
        "use": "sig",
        "n": _int_to_b64url(numbers.n),
        "e": _int_to_b64url(numbers.e),
    }
    if alg is not None:
        jwk["alg"] = alg
    return jwk


@pytest.fixture
def rsa_key_pair():
    """Generate a test RSA key pair."""
    return generate_rsa_key_pair()


@pytest.fixture
def test_kid():
    return f"test-key-{uuid.uuid4().hex[:8]}"


@pytest.fixture
def jwk_from_public_key(rsa_key_pair, test_kid):
    _, public_pem = rsa_key_pair
    return public_pem_to_jwk(public_pem, test_kid)


@pytest.fixture
def jwks_response(jwk_from_public_key):
    """A JWKS response body with one key."""
    return {"keys": [jwk_from_public_key]}


def create_test_token(
    private_key_pem: str,
    kid: str | None,
    *,
    subject: str = "001234.abcdef0123456789.0042",
    email: str = "viewer@privaterelay.appleid.com",
    issuer: str = TEST_ISSUER,
    audience: str | list[str] = TEST_CLIENT_ID,
    expires_in: int = 600,
    not_before_in: int | None = None,
    nonce: str | None = None,
    algorithm: str = "RS256",
    extra: dict | None = None,
) -> str:
    """Create a test identity token signed with the given private key."""
    now = datetime.now(UTC)
    payload = {
        "iss": issuer,
        "aud": audience,
        "sub": subject,
        "iat": now,
        "exp": now + timedelta(seconds=expires_in),
        "email": email,
        "email_verified": "true",
        "is_private_email": "true",
        "auth_time": int(now.timestamp()),
    }
    if not_before_in is not None:
        payload["nbf"] = now + timedelta(seconds=not_before_in)
    if nonce is not None:
        payload["nonce"] = nonce
    if extra:
        payload.update(extra)
    headers = {"kid": kid} if kid is not None else None
    return jwt.encode(payload, private_key_pem, algorithm=algorithm, headers=headers)


class FakeKeySource:
    """In-memory ``KeySetSource`` that counts fetches.

    ``delay`` holds each fetch open so concurrent callers overlap; ``error``
    is raised instead of returning the key set.
    """

    def __init__(self, jwks: dict, *, delay: float = 0.0, error: Exception | None = None):
        self.jwks = jwks
        self.delay = delay
        self.error = error
        self.calls = 0

    async def fetch(self) -> dict:
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.jwks


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()
