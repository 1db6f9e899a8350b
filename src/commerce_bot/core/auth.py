"""Authentication module for tenant-admin JWT handling."""

from datetime import UTC, datetime, timedelta
from typing import Any, Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from pydantic import BaseModel

from commerce_bot.core import dependencies

security = HTTPBearer()

OAUTH_STATE_PURPOSE = "commerce_oauth"


class TokenData(BaseModel):
    """Token data model."""

    tenant_id: str
    exp: Optional[datetime] = None


def create_access_token(tenant_id: str) -> str:
    """Create a new JWT access token for a tenant admin."""
    settings = dependencies.get_admin_settings()
    expire = datetime.now(UTC) + timedelta(minutes=settings.jwt_access_token_expire_minutes)
    to_encode = {"tenant_id": tenant_id, "exp": expire}
    encoded_jwt = jwt.encode(to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)
    return encoded_jwt


def get_current_admin(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> TokenData:
    """Validate JWT token and return the tenant the admin acts for."""
    settings = dependencies.get_admin_settings()
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = jwt.decode(
            credentials.credentials,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
        )
    except JWTError as e:
        raise credentials_exception from e

    tenant_id_value: Any | None = payload.get("tenant_id")
    if not isinstance(tenant_id_value, str):
        raise credentials_exception

    exp_value = payload.get("exp")
    if exp_value is None:
        raise credentials_exception

    token_data = TokenData(tenant_id=tenant_id_value, exp=datetime.fromtimestamp(exp_value, tz=UTC))
    if token_data.exp is None or token_data.exp < datetime.now(UTC):
        raise credentials_exception

    return token_data


def create_oauth_state(tenant_id: str) -> str:
    """
    Signed ``state`` for the Commerce Layer authorization flow.

    The token names the tenant under ``sub`` rather than ``tenant_id`` so it
    is never accepted as an admin token.
    """
    settings = dependencies.get_admin_settings()
    expire = datetime.now(UTC) + timedelta(minutes=settings.oauth_state_expire_minutes)
    to_encode = {"sub": tenant_id, "purpose": OAUTH_STATE_PURPOSE, "exp": expire}
    return jwt.encode(to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def tenant_id_from_oauth_state(state: str) -> str:
    """
    Validate a ``state`` issued by ``create_oauth_state`` and return its tenant.

    Raises:
        HTTPException: 401 if the state is forged, expired or of another purpose.
    """
    settings = dependencies.get_admin_settings()
    state_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Invalid or expired authorization state",
    )
    try:
        payload = jwt.decode(state, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError as e:
        raise state_exception from e

    tenant_id = payload.get("sub")
    if payload.get("purpose") != OAUTH_STATE_PURPOSE or not isinstance(tenant_id, str):
        raise state_exception
    return tenant_id
