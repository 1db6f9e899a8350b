"""Tests for tenant-admin credential configuration."""

from urllib.parse import parse_qs, urlparse

import pytest

from commerce_bot.core.configuration import CredentialConfigurator
from commerce_bot.core.exceptions import AuthError, NotFoundError
from commerce_bot.core.models import GrantKind, GrantType
from commerce_bot.core.store import SqlCredentialStore, SqlInstallationStore
from support import FakeAuthClient, make_installation, stateless_credentials

pytestmark = pytest.mark.anyio

AUTHORIZE_ENDPOINT = "https://dashboard.commercelayer.io/oauth/authorize"
REDIRECT_URI = "http://localhost:8000/commerce/oauth/callback"


@pytest.fixture
def configurator(
    installation_store: SqlInstallationStore,
    credential_store: SqlCredentialStore,
    auth_client: FakeAuthClient,
) -> CredentialConfigurator:
    return CredentialConfigurator(
        installation_store, credential_store, auth_client, AUTHORIZE_ENDPOINT, REDIRECT_URI
    )


async def test_configure_requires_installation(configurator: CredentialConfigurator) -> None:
    with pytest.raises(NotFoundError):
        await configurator.configure("T1", stateless_credentials())


async def test_configure_stores_credentials(
    configurator: CredentialConfigurator,
    installation_store: SqlInstallationStore,
    credential_store: SqlCredentialStore,
) -> None:
    installation_store.insert(make_installation("T1"))

    await configurator.configure("T1", stateless_credentials(reauthorization_required=True))

    stored = credential_store.get("T1")
    assert stored is not None
    assert stored.client_id == "integration-client"
    assert stored.reauthorization_required is False
    assert stored.grant_kind is GrantKind.STATELESS


async def test_authorization_url_carries_client_and_state(
    configurator: CredentialConfigurator,
    installation_store: SqlInstallationStore,
    credential_store: SqlCredentialStore,
) -> None:
    installation_store.insert(make_installation("T1"))
    credential_store.put("T1", stateless_credentials())

    url = await configurator.authorization_url("T1", "signed-state")

    parsed = urlparse(url)
    query = parse_qs(parsed.query)
    assert f"{parsed.scheme}://{parsed.netloc}{parsed.path}" == AUTHORIZE_ENDPOINT
    assert query["client_id"] == ["integration-client"]
    assert query["redirect_uri"] == [REDIRECT_URI]
    assert query["response_type"] == ["code"]
    assert query["state"] == ["signed-state"]


async def test_complete_authorization_stores_stateful_grant(
    configurator: CredentialConfigurator,
    installation_store: SqlInstallationStore,
    credential_store: SqlCredentialStore,
    auth_client: FakeAuthClient,
) -> None:
    installation_store.insert(make_installation("T1"))
    credential_store.put("T1", stateless_credentials())

    authorized = await configurator.complete_authorization("T1", "auth-code")

    params = auth_client.calls_of(GrantType.AUTHORIZATION_CODE)[0]
    assert params["code"] == "auth-code"
    assert params["redirect_uri"] == REDIRECT_URI
    assert params["client_secret"] == "integration-secret"
    assert authorized.grant_kind is GrantKind.STATEFUL
    stored = credential_store.get("T1")
    assert stored is not None
    assert stored.access_token == "access-1"
    assert stored.refresh_token == "refresh-1"


async def test_rejected_code_leaves_credentials_unchanged(
    configurator: CredentialConfigurator,
    installation_store: SqlInstallationStore,
    credential_store: SqlCredentialStore,
    auth_client: FakeAuthClient,
) -> None:
    installation_store.insert(make_installation("T1"))
    original = stateless_credentials()
    credential_store.put("T1", original)
    auth_client.error = AuthError("invalid_grant", error_code="invalid_grant")

    with pytest.raises(AuthError):
        await configurator.complete_authorization("T1", "bad-code")

    assert credential_store.get("T1") == original


async def test_complete_authorization_without_credentials(
    configurator: CredentialConfigurator,
    installation_store: SqlInstallationStore,
    auth_client: FakeAuthClient,
) -> None:
    installation_store.insert(make_installation("T1"))

    with pytest.raises(NotFoundError):
        await configurator.complete_authorization("T1", "auth-code")
    assert auth_client.calls == []
