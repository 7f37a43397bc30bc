import secrets
from typing import Optional
from uuid import UUID

from fastapi import Depends, Header, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt

from app.auth.schemas import CurrentUser
from app.core.config import settings


oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login")


async def get_current_user(token: str = Depends(oauth2_scheme)) -> CurrentUser:
    """Resolve the caller's user id, agency and role from the access token claims."""
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
        )
    except JWTError:
        raise credentials_exception

    user_id_str = payload.get("user_id") or payload.get("sub")
    agency_id_str = payload.get("agency_id")
    role_name = payload.get("role")
    if not user_id_str or not agency_id_str or not role_name:
        raise credentials_exception

    try:
        user_id = UUID(user_id_str)
        agency_id = UUID(agency_id_str)
    except ValueError:
        raise credentials_exception

    return CurrentUser(id=user_id, agency_id=agency_id, role=role_name)


async def require_job_api_key(x_api_key: Optional[str] = Header(None, alias="X-API-Key")) -> None:
    """Only the external scheduler (and admins holding the key) may trigger jobs."""
    if not settings.job_api_key or not x_api_key or not secrets.compare_digest(x_api_key, settings.job_api_key):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
        )
