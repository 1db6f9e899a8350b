"""Commerce Layer plugin module.

This module provides the API endpoints tenant admins use to connect their
Commerce Layer organization: storing client credentials, running the
authorization-code flow, and checking that a session can be resolved.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import RedirectResponse
from pydantic import BaseModel

from commerce_bot.core.auth import (
    TokenData,
    create_oauth_state,
    get_current_admin,
    tenant_id_from_oauth_state,
)
from commerce_bot.core.configuration import CredentialConfigurator
from commerce_bot.core.dependencies import get_configurator, get_resolver
from commerce_bot.core.exceptions import CommerceBotError, status_code_for
from commerce_bot.core.models import CommerceCredentials
from commerce_bot.core.resolver import CredentialResolver

# Setup module-level logger
logger = logging.getLogger("commerce_layer")


class SessionInfo(BaseModel):
    """Non-secret description of a resolved session."""

    organization_slug: str
    organization_mode: str
    base_endpoint: str
    expires_at: str
    checkout_available: bool


def _http_error(error: CommerceBotError) -> HTTPException:
    return HTTPException(status_code=status_code_for(error), detail=str(error))


def create_commerce_router() -> APIRouter:
    """Create a router for the Commerce Layer connection endpoints."""

    router = APIRouter()

    @router.put("/credentials")
    async def configure_credentials(
        credentials: CommerceCredentials,
        admin: TokenData = Depends(get_current_admin),
        configurator: CredentialConfigurator = Depends(get_configurator),
    ) -> dict:
        """Store the tenant's Commerce Layer credentials."""
        logger.info("Configuring credentials for tenant: %s", admin.tenant_id)
        try:
            await configurator.configure(admin.tenant_id, credentials)
        except CommerceBotError as e:
            logger.error("Error configuring credentials: %s", str(e))
            raise _http_error(e) from e
        return {"message": "Credentials saved", "grant": credentials.grant_kind.value}

    @router.get("/oauth")
    async def initiate_oauth(
        admin: TokenData = Depends(get_current_admin),
        configurator: CredentialConfigurator = Depends(get_configurator),
    ) -> RedirectResponse:
        """Initiate the authorization-code flow."""
        try:
            oauth_url = await configurator.authorization_url(
                admin.tenant_id, create_oauth_state(admin.tenant_id)
            )
        except CommerceBotError as e:
            raise _http_error(e) from e
        logger.info("Redirecting tenant %s to Commerce Layer authorization", admin.tenant_id)
        return RedirectResponse(oauth_url)

    @router.get("/oauth/callback")
    async def oauth_callback(
        code: str,
        state: str,
        configurator: CredentialConfigurator = Depends(get_configurator),
    ) -> dict:
        """
        Handle the OAuth callback from Commerce Layer.

        Args:
            code (str): The authorization code.
            state (str): Signed state naming the tenant the flow was started for.
            configurator (CredentialConfigurator): Credential configuration service.
        """
        tenant_id = tenant_id_from_oauth_state(state)
        logger.info("OAuth callback received for tenant %s", tenant_id)
        try:
            credentials = await configurator.complete_authorization(tenant_id, code)
        except CommerceBotError as e:
            logger.error("Error completing authorization for tenant %s: %s", tenant_id, str(e))
            raise _http_error(e) from e
        return {
            "message": "Authorization successful",
            "organization_slug": credentials.slug,
            "grant": credentials.grant_kind.value,
        }

    @router.get("/session", response_model=SessionInfo)
    async def session_info(
        market_id: Optional[str] = None,
        admin: TokenData = Depends(get_current_admin),
        resolver: CredentialResolver = Depends(get_resolver),
    ) -> SessionInfo:
        """Resolve a session for the tenant and describe it without exposing tokens."""
        try:
            session = await resolver.resolve(admin.tenant_id, market_id=market_id)
        except CommerceBotError as e:
            logger.error("Error resolving session for tenant %s: %s", admin.tenant_id, str(e))
            raise _http_error(e) from e
        return SessionInfo(
            organization_slug=session.organization_slug,
            organization_mode=session.organization_mode.value,
            base_endpoint=session.base_endpoint,
            expires_at=session.expires_at.isoformat(),
            checkout_available=session.checkout_access_token is not None,
        )

    return router
