"""Slack plugin module.

This module provides the Slack-facing endpoints that drive the installation
lifecycle: the OAuth callback that records a new installation, and the events
endpoint that removes it when the app is uninstalled or its tokens revoked.
Request signature verification happens upstream of these routes.
"""

import logging
from typing import Any

import requests
from anyio import to_thread
from fastapi import APIRouter, Depends, HTTPException, Request

from commerce_bot.core.auth import create_access_token
from commerce_bot.core.dependencies import get_lifecycle_manager, get_slack_settings
from commerce_bot.core.exceptions import CommerceBotError, status_code_for
from commerce_bot.core.installations import InstallationLifecycleManager, tenant_id_for
from commerce_bot.core.models import Installation
from commerce_bot.core.settings import SLACK_OAUTH_ACCESS_URL, SlackSettings

# Setup module-level logger
logger = logging.getLogger("slack")

LIFECYCLE_EVENTS = frozenset({"app_uninstalled", "tokens_revoked"})


def installation_from_oauth_response(body: dict[str, Any]) -> Installation:
    """
    Build an Installation from a successful ``oauth.v2.access`` response.

    Raises:
        ValueError: If the response carries no bot token or tenant id.
    """
    team = body.get("team") or {}
    enterprise = body.get("enterprise") or {}
    is_enterprise_install = bool(body.get("is_enterprise_install"))
    return Installation(
        tenant_id=tenant_id_for(team.get("id"), enterprise.get("id"), is_enterprise_install),
        team_id=team.get("id"),
        team_name=team.get("name"),
        enterprise_id=enterprise.get("id"),
        is_enterprise_install=is_enterprise_install,
        bot_token=body.get("access_token") or "",
        bot_user_id=body.get("bot_user_id"),
        bot_scopes=body.get("scope"),
        installer_user_id=(body.get("authed_user") or {}).get("id") or "",
    )


def exchange_slack_code(code: str, settings: SlackSettings) -> dict[str, Any]:
    """
    Exchange a Slack OAuth code for installation data.

    Raises:
        HTTPException: If Slack rejects the code or cannot be reached.
    """
    try:
        response = requests.post(
            SLACK_OAUTH_ACCESS_URL,
            data={
                "client_id": settings.client_id,
                "client_secret": settings.client_secret,
                "code": code,
                "redirect_uri": settings.redirect_uri,
            },
            timeout=10,
        )
        response.raise_for_status()
        body = response.json()
    except (requests.RequestException, ValueError) as e:
        logger.error("Error reaching Slack oauth.v2.access: %s", str(e))
        raise HTTPException(status_code=503, detail="Slack is unavailable") from e

    if not body.get("ok"):
        logger.error("Slack rejected OAuth code: %s", body.get("error"))
        raise HTTPException(status_code=400, detail=body.get("error", "oauth_failed"))
    return dict(body)


def _lifecycle_tenant_id(payload: dict[str, Any]) -> str:
    authorizations = payload.get("authorizations") or [{}]
    is_enterprise_install = bool(authorizations[0].get("is_enterprise_install"))
    return tenant_id_for(
        payload.get("team_id"), payload.get("enterprise_id"), is_enterprise_install
    )


def create_slack_router() -> APIRouter:
    """Create a router for the Slack lifecycle endpoints."""

    router = APIRouter()

    @router.get("/oauth/callback")
    async def oauth_callback(
        code: str,
        settings: SlackSettings = Depends(get_slack_settings),
        lifecycle: InstallationLifecycleManager = Depends(get_lifecycle_manager),
    ) -> dict:
        """Handle the OAuth callback from Slack and record the installation."""
        logger.info("Slack OAuth callback received: code=%s...", code[:5])
        body = await to_thread.run_sync(exchange_slack_code, code, settings)
        try:
            installation = installation_from_oauth_response(body)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e)) from e

        try:
            await lifecycle.on_install(installation)
        except CommerceBotError as e:
            logger.warning("Install for tenant %s failed: %s", installation.tenant_id, str(e))
            raise HTTPException(status_code=status_code_for(e), detail=str(e)) from e
        return {
            "message": "Installation successful",
            "tenant_id": installation.tenant_id,
            # Slack authenticated the installer in the code exchange above
            "access_token": create_access_token(installation.tenant_id),
            "token_type": "bearer",
        }

    @router.post("/events")
    async def events(
        request: Request,
        lifecycle: InstallationLifecycleManager = Depends(get_lifecycle_manager),
    ) -> dict:
        """Handle Events API callbacks relevant to the installation lifecycle."""
        payload = await request.json()

        if payload.get("type") == "url_verification":
            return {"challenge": payload.get("challenge")}

        event = payload.get("event") or {}
        event_type = event.get("type")
        if payload.get("type") != "event_callback" or event_type not in LIFECYCLE_EVENTS:
            return {"ok": True}

        if event_type == "tokens_revoked" and not (event.get("tokens") or {}).get("bot"):
            # Only user tokens were revoked; the bot installation stays valid
            return {"ok": True}

        try:
            tenant_id = _lifecycle_tenant_id(payload)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e)) from e

        logger.info("Received %s for tenant %s", event_type, tenant_id)
        try:
            await lifecycle.on_uninstall_or_revoke(tenant_id)
        except CommerceBotError as e:
            logger.error("Error removing tenant %s: %s", tenant_id, str(e))
            raise HTTPException(status_code=status_code_for(e), detail=str(e)) from e
        return {"ok": True}

    return router
