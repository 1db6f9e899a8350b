"""
Development-only admin token endpoints.

In production these routes answer 404; tenant-admin tokens are issued by the
Slack OAuth callback to the user who installed the bot.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, status

from commerce_bot.core.auth import TokenData, create_access_token, get_current_admin
from commerce_bot.core.dependencies import get_commerce_settings
from commerce_bot.core.settings import CommerceLayerSettings

logger = logging.getLogger("auth")


def development_only(
    settings: CommerceLayerSettings = Depends(get_commerce_settings),
) -> None:
    if settings.is_production:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not Found")


router = APIRouter(prefix="/auth", tags=["auth"], dependencies=[Depends(development_only)])


@router.post("/token/{tenant_id}")
async def issue_admin_token(tenant_id: str) -> dict[str, str]:
    """Issue an admin token for a tenant without any sign-in."""
    logger.warning("Issuing unauthenticated admin token for tenant %s", tenant_id)
    return {"access_token": create_access_token(tenant_id), "token_type": "bearer"}


@router.get("/me")
async def describe_admin(admin: TokenData = Depends(get_current_admin)) -> dict[str, str]:
    return {"tenant_id": admin.tenant_id, "token_expires": str(admin.exp)}
