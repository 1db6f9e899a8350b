"""Test doubles and record builders shared by the test modules."""

import datetime
import itertools
import threading
from typing import Any, Optional

from commerce_bot.core.models import CommerceCredentials, GrantType, Installation, TokenGrant
from commerce_bot.core.settings import OrganizationMode

BASE_ENDPOINT = "https://acme.commercelayer.io"


def utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.UTC)


class FakeAuthClient:
    """
    Authorization client double that issues numbered tokens and records calls.

    Set ``error`` to make every exchange fail, ``checkout_error`` to make only
    market-scoped exchanges fail, and ``block_refresh_token`` to hold refresh
    exchanges for that token until ``gate`` is set.
    """

    def __init__(self) -> None:
        self.calls: list[tuple[GrantType, dict[str, Any]]] = []
        self.error: Optional[Exception] = None
        self.checkout_error: Optional[Exception] = None
        self.delay = 0.0
        self.block_refresh_token: Optional[str] = None
        self.gate = threading.Event()
        self.lifetime = datetime.timedelta(hours=2)
        self._counter = itertools.count(1)
        self._lock = threading.Lock()

    def exchange(self, grant_type: GrantType, params: dict[str, Any]) -> TokenGrant:
        with self._lock:
            self.calls.append((grant_type, dict(params)))
            number = next(self._counter)
        if self.block_refresh_token and params.get("refresh_token") == self.block_refresh_token:
            self.gate.wait(timeout=5)
        if self.delay:
            threading.Event().wait(self.delay)
        if params.get("scope") and self.checkout_error is not None:
            raise self.checkout_error
        if self.error is not None:
            raise self.error
        return TokenGrant(
            access_token=f"access-{number}",
            refresh_token=(
                None if grant_type == GrantType.CLIENT_CREDENTIALS else f"refresh-{number}"
            ),
            expires_at=utcnow() + self.lifetime,
            scope=params.get("scope"),
        )

    def calls_of(self, grant_type: GrantType) -> list[dict[str, Any]]:
        return [params for kind, params in self.calls if kind == grant_type]


def stateful_credentials(
    expires_in: datetime.timedelta,
    access_token: str = "stored-access",
    refresh_token: str = "stored-refresh",
    **overrides: Any,
) -> CommerceCredentials:
    values: dict[str, Any] = {
        "organization_mode": OrganizationMode.TEST,
        "base_endpoint": BASE_ENDPOINT,
        "client_id": "integration-client",
        "client_secret": "integration-secret",
        "access_token": access_token,
        "refresh_token": refresh_token,
        "expires_at": utcnow() + expires_in,
    }
    values.update(overrides)
    return CommerceCredentials(**values)


def stateless_credentials(**overrides: Any) -> CommerceCredentials:
    values: dict[str, Any] = {
        "organization_mode": OrganizationMode.LIVE,
        "base_endpoint": BASE_ENDPOINT,
        "client_id": "integration-client",
        "client_secret": "integration-secret",
        "checkout_client_id": "sales-channel-client",
    }
    values.update(overrides)
    return CommerceCredentials(**values)


def make_installation(tenant_id: str = "T1", **overrides: Any) -> Installation:
    values: dict[str, Any] = {
        "tenant_id": tenant_id,
        "team_id": tenant_id,
        "team_name": "Acme",
        "bot_token": "xoxb-original",
        "bot_user_id": "U0BOT",
        "installer_user_id": "U0ADMIN",
    }
    values.update(overrides)
    return Installation(**values)

