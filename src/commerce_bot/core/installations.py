"""Slack installation lifecycle for tenants."""

import logging
from typing import Optional

from anyio import to_thread

from commerce_bot.core.exceptions import NotFoundError
from commerce_bot.core.models import Installation
from commerce_bot.core.resolver import CredentialResolver
from commerce_bot.core.store import CredentialStore, InstallationStore

# Setup module-level logger
logger = logging.getLogger("installations")


def tenant_id_for(
    team_id: Optional[str], enterprise_id: Optional[str], is_enterprise_install: bool
) -> str:
    """
    Tenant key for an installation.

    Enterprise-wide installs are keyed by the enterprise id, everything else
    by the workspace (team) id.
    """
    tenant_id = enterprise_id if is_enterprise_install else team_id
    if not tenant_id:
        raise ValueError("Installation carries no team or enterprise id")
    return tenant_id


class InstallationLifecycleManager:
    """
    Creates, looks up and deletes per-tenant installations in response to
    platform lifecycle events.

    A tenant is "configured" when commerce credentials exist next to its
    installation; that flag is derived, never stored.
    """

    def __init__(
        self,
        installations: InstallationStore,
        credentials: CredentialStore,
        resolver: Optional[CredentialResolver] = None,
        purge_credentials_on_uninstall: bool = True,
    ) -> None:
        self.installations = installations
        self.credentials = credentials
        self.resolver = resolver
        self.purge_credentials_on_uninstall = purge_credentials_on_uninstall

    async def on_install(self, installation: Installation) -> None:
        """
        Record a new installation.

        Raises:
            DuplicateInstallationError: The tenant already has an installation;
                the existing record is left unchanged.
        """
        await to_thread.run_sync(self.installations.insert, installation)
        logger.info(
            "Installed for tenant %s by user %s (enterprise=%s)",
            installation.tenant_id,
            installation.installer_user_id,
            installation.is_enterprise_install,
        )

    async def lookup(self, tenant_id: str) -> Installation:
        installation = await to_thread.run_sync(self.installations.get, tenant_id)
        if installation is None:
            raise NotFoundError("Bot is not installed", tenant_id)
        return installation

    async def is_configured(self, tenant_id: str) -> bool:
        credentials = await to_thread.run_sync(self.credentials.get, tenant_id)
        return credentials is not None

    async def on_uninstall_or_revoke(self, tenant_id: str) -> None:
        """Delete the tenant's installation, and its credentials by policy. Idempotent."""
        await to_thread.run_sync(self.installations.delete, tenant_id)
        if self.purge_credentials_on_uninstall:
            await to_thread.run_sync(self.credentials.delete, tenant_id)
        if self.resolver is not None:
            self.resolver.forget(tenant_id)
        logger.info("Removed installation for tenant %s", tenant_id)
