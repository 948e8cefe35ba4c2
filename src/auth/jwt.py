from datetime import datetime, timedelta, timezone
from jose import jwt, JWTError
from src.config import settings


def create_access_token(
    user_id: str,
    email: str | None = None,
    role_hint: str | None = None,
    expires_minutes: int = 60,
) -> str:
    """Create a Supabase-shaped access token. Used by scripts and tests."""
    now = datetime.now(timezone.utc)
    payload = {
        "sub": user_id,
        "email": email,
        "aud": settings.jwt_audience,
        "role": "authenticated",
        "app_metadata": {"role": role_hint} if role_hint else {},
        "exp": now + timedelta(minutes=expires_minutes),
        "iat": now,
    }
    return jwt.encode(payload, settings.supabase_jwt_secret, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> dict | None:
    """Decode and validate an identity-provider JWT. Returns claims or None if invalid."""
    try:
        payload = jwt.decode(
            token,
            settings.supabase_jwt_secret,
            algorithms=[settings.jwt_algorithm],
            audience=settings.jwt_audience,
        )
    except JWTError:
        return None
    if not payload.get("sub"):
        return None
    return payload
