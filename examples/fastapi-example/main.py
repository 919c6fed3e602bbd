"""Example streaming-platform API using idtoken-verifier for Sign in with Apple.

This app:
  - Verifies Apple identity tokens against Apple's published keys (JWKS)
  - Hands verified claims to its own user store and session issuer
  - Never tells the client why a token was rejected (the reason is logged)

User records and session tokens are stand-ins here; a real deployment plugs
in its own persistence layer.

Run:  APPLE_CLIENT_ID=com.example.streaming uvicorn main:app --reload --port 8000
"""

import logging
import os
import secrets

from fastapi import Depends, FastAPI

from idtoken_verifier import IdentityAuth, VerificationClaims, apple_config

logging.basicConfig(level=logging.INFO)

# ---------------------------------------------------------------------------
# Setup — Apple keys are cached for a day and refreshed on rotation
# ---------------------------------------------------------------------------

apple = IdentityAuth(
    apple_config(os.environ.get("APPLE_CLIENT_ID", "com.example.streaming")),
    provider="apple",
)

app = FastAPI(title="Streaming Platform Auth Example")

_users: dict[str, dict] = {}


async def on_apple_sign_in(claims: VerificationClaims, user_data: dict) -> dict:
    """Create or update the local user, then issue this app's own session token."""
    # Apple only sends the email (and the name, via userData) on first login.
    email = claims.email or user_data.get("email")
    if not email:
        return {"success": False, "message": "Email not provided by Apple"}

    name = user_data.get("name") or email.split("@")[0]
    user = _users.setdefault(claims.subject, {"email": email, "name": name, "authProvider": "apple"})
    user["socialProfiles"] = {"apple": {"id": claims.subject, "email": email, "name": name}}

    return {"success": True, "token": secrets.token_urlsafe(32), "user": user}


app.include_router(apple.sign_in_router(on_apple_sign_in), prefix="/api/auth")


@app.get("/api/auth/apple/me")
async def apple_identity(claims: VerificationClaims = Depends(apple.current_identity)):
    """Echo the verified Apple identity for a token sent as a Bearer header."""
    return {"sub": claims.subject, "email": claims.email, "email_verified": claims.email_verified}


@app.get("/health")
async def health():
    return {"status": "ok", "service": "streaming-auth-example"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)
