"""
FastAPI dependencies for the commerce bot.

The resolver is a process-wide singleton: its per-tenant refresh locks only
serialize refreshes when every request goes through the same instance.
"""

import datetime
import logging
from functools import lru_cache
from typing import Optional

from commerce_bot.core.commerce_layer import CommerceLayerAuthClient
from commerce_bot.core.configuration import CredentialConfigurator
from commerce_bot.core.installations import InstallationLifecycleManager
from commerce_bot.core.models import CommerceCredentials
from commerce_bot.core.resolver import CredentialResolver
from commerce_bot.core.settings import AdminAuthSettings, CommerceLayerSettings, SlackSettings
from commerce_bot.core.store import SqlCredentialStore, SqlInstallationStore

# Setup logger
logger = logging.getLogger("dependencies")


@lru_cache()
def get_commerce_settings() -> CommerceLayerSettings:
    """
    Get the Commerce Layer settings.
    """
    settings = CommerceLayerSettings()  # Reads CL_* vars from .env
    logger.info(
        "get_commerce_settings returning settings with application mode: %s",
        settings.application_mode.value,
    )
    return settings


@lru_cache()
def get_slack_settings() -> SlackSettings:
    return SlackSettings()


@lru_cache()
def get_admin_settings() -> AdminAuthSettings:
    return AdminAuthSettings()


def default_credentials(settings: CommerceLayerSettings) -> Optional[CommerceCredentials]:
    """
    Environment-level fallback credentials.

    Only used outside production, and only when an endpoint is configured.
    """
    if settings.is_production or not settings.base_endpoint:
        return None
    return CommerceCredentials(
        organization_mode=settings.organization_mode,
        base_endpoint=settings.base_endpoint,
        client_id=settings.client_id,
        client_secret=settings.client_secret or None,
        checkout_client_id=settings.client_id_checkout or None,
    )


@lru_cache()
def get_auth_client() -> CommerceLayerAuthClient:
    settings = get_commerce_settings()
    return CommerceLayerAuthClient(
        auth_endpoint=settings.auth_endpoint,
        timeout=settings.request_timeout_seconds,
    )


@lru_cache()
def get_credential_store() -> SqlCredentialStore:
    return SqlCredentialStore()


@lru_cache()
def get_installation_store() -> SqlInstallationStore:
    return SqlInstallationStore()


@lru_cache()
def get_resolver() -> CredentialResolver:
    """
    Injection method to get the shared credential resolver.
    """
    settings = get_commerce_settings()
    fallback = default_credentials(settings)
    if fallback is not None:
        logger.info("Using environment credentials for organization %s", fallback.slug)
    return CredentialResolver(
        store=get_credential_store(),
        auth_client=get_auth_client(),
        default_credentials=fallback,
        expiry_leeway=datetime.timedelta(seconds=settings.token_expiry_leeway_seconds),
    )


@lru_cache()
def get_lifecycle_manager() -> InstallationLifecycleManager:
    return InstallationLifecycleManager(
        installations=get_installation_store(),
        credentials=get_credential_store(),
        resolver=get_resolver(),
        purge_credentials_on_uninstall=get_slack_settings().purge_credentials_on_uninstall,
    )


@lru_cache()
def get_configurator() -> CredentialConfigurator:
    settings = get_commerce_settings()
    return CredentialConfigurator(
        installations=get_installation_store(),
        credentials=get_credential_store(),
        auth_client=get_auth_client(),
        authorize_endpoint=settings.authorize_endpoint,
        redirect_uri=settings.redirect_uri,
    )
