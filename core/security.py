from datetime import datetime, timedelta, timezone
from typing import Optional
from jose import jwt
from core.config import settings

# Service tokens authenticate internal callers (booking flow, admin tooling),
# never the gateway itself: webhooks are authenticated by their signature.
SERVICE_TOKEN_TYPE = "service"


def create_service_token(service_name: str, expires_delta: Optional[timedelta] = None) -> str:
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(hours=1))
    to_encode = {"sub": service_name, "type": SERVICE_TOKEN_TYPE, "exp": expire}
    return jwt.encode(to_encode, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def decode_service_token(token: str) -> dict:
    """Raises jose.JWTError when the token is invalid or expired."""
    return jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
