import os
from typing import Any

from jose import JWTError, jwt

JWT_SECRET = os.getenv("AUTH_JWT_SECRET", "dev-secret-change-me")
JWT_ALGORITHM = "HS256"
JWT_AUDIENCE = os.getenv("AUTH_JWT_AUDIENCE", "authenticated")


class InvalidToken(Exception):
    pass


def decode_access_token(token: str) -> dict[str, Any]:
    """Verify an access token issued by the auth provider and return its claims."""
    options = {"verify_aud": bool(JWT_AUDIENCE)}
    try:
        claims = jwt.decode(
            token,
            JWT_SECRET,
            algorithms=[JWT_ALGORITHM],
            audience=JWT_AUDIENCE or None,
            options=options,
        )
    except JWTError as exc:
        raise InvalidToken(str(exc)) from exc
    if not claims.get("sub"):
        raise InvalidToken("Token has no subject")
    return claims


def create_access_token(user_id: str, email: str, **extra: Any) -> str:
    """Mint a token the way the auth provider does; used for local tooling and tests."""
    claims = {"sub": user_id, "email": email, **extra}
    if JWT_AUDIENCE and "aud" not in claims:
        claims["aud"] = JWT_AUDIENCE
    return jwt.encode(claims, JWT_SECRET, algorithm=JWT_ALGORITHM)
