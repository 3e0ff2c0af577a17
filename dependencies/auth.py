from fastapi import HTTPException, Request, status
from jose import JWTError
from core.security import SERVICE_TOKEN_TYPE, decode_service_token


async def require_service_token(request: Request) -> str:
    """Authenticate an internal caller via `Authorization: Bearer <service token>`"""
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
    )

    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        raise credentials_exception
    token = auth_header.split(" ", 1)[1]

    try:
        payload = decode_service_token(token)
    except JWTError:
        raise credentials_exception

    service_name = payload.get("sub")
    if not service_name or payload.get("type") != SERVICE_TOKEN_TYPE:
        raise credentials_exception
    return service_name
