"""
Per-tenant Commerce Layer session resolution.

``CredentialResolver.resolve`` turns a tenant id into a fresh ``Session``.
Which grant strategy runs is decided by the stored record itself:

- stateful records carry a refresh token. Their cached access token is
  returned as-is while valid and renewed in place once it expires. Refresh
  tokens are single-use, so renewal is serialized per tenant and waiters
  reuse the renewed record instead of exchanging again. When the renewed
  record cannot be written back, it is held in memory and later resolutions
  retry the write, never the exchange.
- stateless records only carry client identifiers, and every resolution
  performs a client-credentials exchange. Nothing is written back.

Blocking store and HTTP calls run in worker threads so concurrent commands
from different tenants never wait on each other.
"""

import datetime
import logging
from typing import Any, Callable, Optional, Protocol

import anyio
from anyio import to_thread

from commerce_bot.core.exceptions import (
    AuthError,
    CommerceBotError,
    NotFoundError,
    TransientError,
)
from commerce_bot.core.models import (
    CommerceCredentials,
    GrantKind,
    GrantType,
    Session,
    TokenGrant,
)
from commerce_bot.core.store import CredentialStore

# Setup module-level logger
logger = logging.getLogger("resolver")

Clock = Callable[[], datetime.datetime]


def utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.UTC)


class AuthorizationClient(Protocol):
    """Performs OAuth grant exchanges against the authorization server."""

    def exchange(self, grant_type: GrantType, params: dict[str, Any]) -> TokenGrant: ...


class CredentialResolver:
    """
    Resolves tenant ids into Commerce Layer sessions.

    Args:
        store (CredentialStore): Per-tenant credential persistence.
        auth_client (AuthorizationClient): Grant exchanges with Commerce Layer.
        default_credentials (CommerceCredentials | None): Environment-level record
            used for tenants with nothing stored, handled exactly like a stored one.
        expiry_leeway (timedelta): Tokens expiring within this window count as expired.
        clock (Callable): Returns the current UTC time.
    """

    def __init__(
        self,
        store: CredentialStore,
        auth_client: AuthorizationClient,
        default_credentials: Optional[CommerceCredentials] = None,
        expiry_leeway: datetime.timedelta = datetime.timedelta(seconds=60),
        clock: Clock = utcnow,
    ) -> None:
        self.store = store
        self.auth_client = auth_client
        self.default_credentials = default_credentials
        self.expiry_leeway = expiry_leeway
        self.clock = clock
        self._refresh_locks: dict[str, anyio.Lock] = {}
        # tenant_id -> (consumed refresh token, refreshed record not yet stored)
        self._unsaved: dict[str, tuple[str, CommerceCredentials]] = {}

    async def resolve(self, tenant_id: str, market_id: Optional[str] = None) -> Session:
        """
        Resolve a fresh session for a tenant.

        Args:
            tenant_id (str): The tenant to resolve.
            market_id (str | None): When given, also request a market-scoped
                checkout token. Failing to get one never fails the resolution.

        Returns:
            Session: A session whose access token is not expired.

        Raises:
            NotFoundError: No credentials are configured for the tenant.
            AuthError: The credentials were rejected and need re-authorization.
            TransientError: The store or the authorization server is unavailable.
        """
        credentials = await self._load(tenant_id)

        if credentials.grant_kind is GrantKind.STATEFUL:
            session = await self._resolve_stateful(tenant_id, credentials)
        else:
            session = await self._resolve_stateless(tenant_id, credentials)

        if market_id is not None:
            checkout_token = await self._checkout_token(tenant_id, credentials, market_id)
            if checkout_token is not None:
                session = session.model_copy(update={"checkout_access_token": checkout_token})
        return session

    def forget(self, tenant_id: str) -> None:
        """Drop per-tenant state, e.g. after the tenant uninstalls the bot."""
        self._unsaved.pop(tenant_id, None)
        lock = self._refresh_locks.get(tenant_id)
        if lock is not None and not lock.locked():
            del self._refresh_locks[tenant_id]

    async def _load(self, tenant_id: str) -> CommerceCredentials:
        credentials = await to_thread.run_sync(self.store.get, tenant_id)
        if credentials is None:
            credentials = self.default_credentials
        if credentials is None:
            logger.info("No commerce credentials configured for tenant %s", tenant_id)
            raise NotFoundError("No commerce credentials configured", tenant_id)
        if credentials.reauthorization_required:
            raise AuthError("Commerce credentials need to be re-authorized", tenant_id)
        return credentials

    def _lock_for(self, tenant_id: str) -> anyio.Lock:
        lock = self._refresh_locks.get(tenant_id)
        if lock is None:
            lock = self._refresh_locks[tenant_id] = anyio.Lock()
        return lock

    async def _resolve_stateful(
        self, tenant_id: str, credentials: CommerceCredentials
    ) -> Session:
        if not credentials.is_expired(self.clock(), self.expiry_leeway):
            return Session.from_stored(credentials)

        async with self._lock_for(tenant_id):
            # Another resolver may have renewed the token while we waited
            credentials = await self._load(tenant_id)
            credentials = await self._store_unsaved(tenant_id, credentials)
            if credentials.grant_kind is not GrantKind.STATEFUL:
                return await self._resolve_stateless(tenant_id, credentials)
            if not credentials.is_expired(self.clock(), self.expiry_leeway):
                logger.debug("Reusing token refreshed concurrently for tenant %s", tenant_id)
                return Session.from_stored(credentials)
            return await self._refresh(tenant_id, credentials)

    async def _store_unsaved(
        self, tenant_id: str, credentials: CommerceCredentials
    ) -> CommerceCredentials:
        """
        Retry the write of a refresh whose write-back failed.

        Returns the record to continue with: the refreshed one once stored, or
        ``credentials`` unchanged when the store no longer holds the consumed
        refresh token (e.g. an admin reconfigured the tenant meanwhile).
        """
        pending = self._unsaved.get(tenant_id)
        if pending is None:
            return credentials
        consumed_token, refreshed = pending
        if credentials.refresh_token != consumed_token:
            del self._unsaved[tenant_id]
            return credentials

        logger.info("Retrying write-back of refreshed token for tenant %s", tenant_id)
        try:
            await to_thread.run_sync(self.store.put, tenant_id, refreshed)
        except TransientError as e:
            logger.error(
                "Refreshed token for tenant %s still could not be persisted: %s", tenant_id, e
            )
            raise TransientError("Refreshed credentials could not be stored", tenant_id) from e
        del self._unsaved[tenant_id]
        return refreshed

    async def _refresh(self, tenant_id: str, credentials: CommerceCredentials) -> Session:
        logger.info("Refreshing Commerce Layer token for tenant %s", tenant_id)
        params = {
            "refresh_token": credentials.refresh_token,
            "client_id": credentials.client_id,
            "client_secret": credentials.client_secret,
            "slug": credentials.slug,
        }
        try:
            grant = await to_thread.run_sync(
                self.auth_client.exchange, GrantType.REFRESH_TOKEN, params
            )
        except AuthError as e:
            logger.warning("Refresh token rejected for tenant %s: %s", tenant_id, e)
            await self._require_reauthorization(tenant_id, credentials)
            raise AuthError(
                "Refresh token was rejected", tenant_id, error_code=e.error_code
            ) from e
        except TransientError as e:
            logger.error("Token refresh failed for tenant %s: %s", tenant_id, e)
            raise TransientError("Authorization server unavailable", tenant_id) from e

        refreshed = credentials.model_copy(
            update={
                "access_token": grant.access_token,
                # Refresh tokens may be rotated; keep the old one if none was issued
                "refresh_token": grant.refresh_token or credentials.refresh_token,
                "expires_at": grant.expires_at,
            }
        )
        # The old refresh token is consumed; it must never be exchanged again
        self._unsaved[tenant_id] = (credentials.refresh_token or "", refreshed)
        try:
            await to_thread.run_sync(self.store.put, tenant_id, refreshed)
        except TransientError as e:
            logger.error(
                "Refreshed token for tenant %s could not be persisted: %s", tenant_id, e
            )
            raise TransientError("Refreshed credentials could not be stored", tenant_id) from e
        del self._unsaved[tenant_id]

        self._require_unexpired(tenant_id, grant)
        logger.info("Token refreshed for tenant %s, expires at %s", tenant_id, grant.expires_at)
        return Session.from_grant(refreshed, grant)

    def _require_unexpired(self, tenant_id: str, grant: TokenGrant) -> None:
        if grant.expires_at <= self.clock():
            logger.warning(
                "Authorization server issued an expired token for tenant %s (expires at %s)",
                tenant_id,
                grant.expires_at,
            )
            raise TransientError("Issued access token is already expired", tenant_id)

    async def _require_reauthorization(
        self, tenant_id: str, credentials: CommerceCredentials
    ) -> None:
        flagged = credentials.model_copy(update={"reauthorization_required": True})
        try:
            await to_thread.run_sync(self.store.put, tenant_id, flagged)
        except TransientError as e:
            logger.error(
                "Could not flag tenant %s for re-authorization: %s", tenant_id, e
            )

    async def _resolve_stateless(
        self, tenant_id: str, credentials: CommerceCredentials
    ) -> Session:
        params = {
            "client_id": credentials.issuing_client_id,
            "client_secret": credentials.client_secret,
            "slug": credentials.slug,
        }
        try:
            grant = await to_thread.run_sync(
                self.auth_client.exchange, GrantType.CLIENT_CREDENTIALS, params
            )
        except AuthError as e:
            logger.warning("Client credentials rejected for tenant %s: %s", tenant_id, e)
            raise AuthError(
                "Client credentials were rejected", tenant_id, error_code=e.error_code
            ) from e
        except TransientError as e:
            logger.error("Token request failed for tenant %s: %s", tenant_id, e)
            raise TransientError("Authorization server unavailable", tenant_id) from e
        self._require_unexpired(tenant_id, grant)
        return Session.from_grant(credentials, grant)

    async def _checkout_token(
        self, tenant_id: str, credentials: CommerceCredentials, market_id: str
    ) -> Optional[str]:
        if not credentials.checkout_client_id:
            logger.debug("Tenant %s has no checkout client configured", tenant_id)
            return None
        params = {
            "client_id": credentials.checkout_client_id,
            "scope": f"market:{market_id}",
            "slug": credentials.slug,
        }
        try:
            grant = await to_thread.run_sync(
                self.auth_client.exchange, GrantType.CLIENT_CREDENTIALS, params
            )
        except CommerceBotError as e:
            logger.warning(
                "Checkout token for tenant %s market %s unavailable: %s",
                tenant_id,
                market_id,
                e,
            )
            return None
        if grant.expires_at <= self.clock():
            logger.warning("Checkout token for tenant %s arrived expired", tenant_id)
            return None
        return grant.access_token
