"""Tenant-admin configuration of Commerce Layer credentials."""

import logging
from urllib.parse import urlencode

from anyio import to_thread

from commerce_bot.core.exceptions import NotFoundError
from commerce_bot.core.models import CommerceCredentials, GrantType
from commerce_bot.core.resolver import AuthorizationClient
from commerce_bot.core.store import CredentialStore, InstallationStore

# Setup module-level logger
logger = logging.getLogger("configuration")


class CredentialConfigurator:
    """
    Creates and updates a tenant's commerce credentials.

    This is the only writer of credentials besides token refresh in the
    resolver. Credentials can only be configured for installed tenants.
    """

    def __init__(
        self,
        installations: InstallationStore,
        credentials: CredentialStore,
        auth_client: AuthorizationClient,
        authorize_endpoint: str,
        redirect_uri: str,
    ) -> None:
        self.installations = installations
        self.credentials = credentials
        self.auth_client = auth_client
        self.authorize_endpoint = authorize_endpoint
        self.redirect_uri = redirect_uri

    async def configure(self, tenant_id: str, credentials: CommerceCredentials) -> None:
        """
        Store credentials supplied by a tenant admin, replacing any existing ones.

        Raises:
            NotFoundError: The bot is not installed for the tenant.
        """
        await self._require_installation(tenant_id)
        stored = credentials.model_copy(update={"reauthorization_required": False})
        await to_thread.run_sync(self.credentials.put, tenant_id, stored)
        logger.info(
            "Configured %s credentials for tenant %s (%s, mode=%s)",
            stored.grant_kind.value,
            tenant_id,
            stored.slug,
            stored.organization_mode.value,
        )

    async def authorization_url(self, tenant_id: str, state: str) -> str:
        """
        URL where the tenant admin grants the bot access to the organization.

        ``state`` is echoed back to the callback and must identify the tenant
        in a way the callback can verify.
        """
        credentials = await self._require_credentials(tenant_id)
        query = urlencode(
            {
                "client_id": credentials.client_id,
                "redirect_uri": self.redirect_uri,
                "response_type": "code",
                "state": state,
            }
        )
        return f"{self.authorize_endpoint}?{query}"

    async def complete_authorization(self, tenant_id: str, code: str) -> CommerceCredentials:
        """
        Exchange an authorization code and persist the resulting grant.

        Raises:
            NotFoundError: The tenant has no installation or credentials.
            AuthError: The code or the client credentials were rejected.
            TransientError: The store or the authorization server is unavailable.
        """
        await self._require_installation(tenant_id)
        credentials = await self._require_credentials(tenant_id)
        params = {
            "code": code,
            "client_id": credentials.client_id,
            "client_secret": credentials.client_secret,
            "redirect_uri": self.redirect_uri,
            "slug": credentials.slug,
        }
        grant = await to_thread.run_sync(
            self.auth_client.exchange, GrantType.AUTHORIZATION_CODE, params
        )
        if not grant.refresh_token:
            logger.warning(
                "Authorization for tenant %s returned no refresh token", tenant_id
            )
        authorized = credentials.model_copy(
            update={
                "access_token": grant.access_token,
                "refresh_token": grant.refresh_token,
                "expires_at": grant.expires_at,
                "reauthorization_required": False,
            }
        )
        await to_thread.run_sync(self.credentials.put, tenant_id, authorized)
        logger.info("Tenant %s authorized, token expires at %s", tenant_id, grant.expires_at)
        return authorized

    async def _require_installation(self, tenant_id: str) -> None:
        if await to_thread.run_sync(self.installations.get, tenant_id) is None:
            raise NotFoundError("Bot is not installed", tenant_id)

    async def _require_credentials(self, tenant_id: str) -> CommerceCredentials:
        credentials = await to_thread.run_sync(self.credentials.get, tenant_id)
        if credentials is None:
            raise NotFoundError("No commerce credentials configured", tenant_id)
        return credentials
