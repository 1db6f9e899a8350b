"""
Database models for tenant installations and Commerce Layer credentials,
and the domain models built from them.
"""

import datetime
from enum import Enum
from typing import Optional
from urllib.parse import quote, urlparse

from pydantic import BaseModel, ConfigDict, Field, field_validator
from sqlalchemy import Boolean, DateTime, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column

from commerce_bot.core.database import Base
from commerce_bot.core.settings import OrganizationMode

CHECKOUT_HOST_TEMPLATE = "https://{slug}.commercelayer.app/checkout/{order_id}"


def _as_utc(value: Optional[datetime.datetime]) -> Optional[datetime.datetime]:
    # SQLite hands back naive datetimes
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=datetime.UTC)
    return value


class InstallationRecord(Base):
    """
    Slack installation of the bot for one tenant.

    Attributes:
        tenant_id (str): Team id, or enterprise id for enterprise-wide installs.
        bot_token (str): Bot token issued by Slack.
        installer_user_id (str): Slack user who installed the bot.
        is_enterprise_install (bool): Whether the install covers a whole enterprise.
    """

    __tablename__ = "installations"

    tenant_id: Mapped[str] = mapped_column(String, primary_key=True, index=True)
    team_id: Mapped[str | None] = mapped_column(String, nullable=True)
    team_name: Mapped[str | None] = mapped_column(String, nullable=True)
    enterprise_id: Mapped[str | None] = mapped_column(String, nullable=True)
    is_enterprise_install: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    bot_token: Mapped[str] = mapped_column(Text, nullable=False)
    bot_user_id: Mapped[str | None] = mapped_column(String, nullable=True)
    bot_scopes: Mapped[str | None] = mapped_column(Text, nullable=True)
    installer_user_id: Mapped[str] = mapped_column(String, nullable=False)
    installed_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), server_default=text("CURRENT_TIMESTAMP")
    )


class CommerceCredentialsRecord(Base):
    """
    Commerce Layer connection configuration supplied by a tenant admin.

    Rows with a refresh token hold a persisted grant that is rewritten on
    every successful refresh; rows without one only hold client identifiers.
    """

    __tablename__ = "commerce_credentials"

    tenant_id: Mapped[str] = mapped_column(String, primary_key=True, index=True)
    organization_mode: Mapped[str] = mapped_column(String, default="test", nullable=False)
    base_endpoint: Mapped[str] = mapped_column(String, nullable=False)
    organization_slug: Mapped[str | None] = mapped_column(String, nullable=True)
    client_id: Mapped[str] = mapped_column(String, default="", nullable=False)
    client_secret: Mapped[str | None] = mapped_column(Text, nullable=True)
    checkout_client_id: Mapped[str | None] = mapped_column(String, nullable=True)
    access_token: Mapped[str | None] = mapped_column(Text, nullable=True)
    refresh_token: Mapped[str | None] = mapped_column(Text, nullable=True)
    expires_at: Mapped[datetime.datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    reauthorization_required: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False
    )
    updated_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=text("CURRENT_TIMESTAMP"),
        onupdate=lambda: datetime.datetime.now(datetime.UTC),
    )


class GrantKind(str, Enum):
    """How a tenant's access token is obtained."""

    STATEFUL = "stateful"
    STATELESS = "stateless"


class GrantType(str, Enum):
    """OAuth grant types understood by the authorization server."""

    AUTHORIZATION_CODE = "authorization_code"
    REFRESH_TOKEN = "refresh_token"
    CLIENT_CREDENTIALS = "client_credentials"


class Installation(BaseModel):
    """Platform-issued installation data for a tenant."""

    model_config = ConfigDict(from_attributes=True)

    tenant_id: str = Field(..., min_length=1)
    team_id: Optional[str] = None
    team_name: Optional[str] = None
    enterprise_id: Optional[str] = None
    is_enterprise_install: bool = False
    bot_token: str = Field(..., min_length=1)
    bot_user_id: Optional[str] = None
    bot_scopes: Optional[str] = None
    installer_user_id: str
    installed_at: Optional[datetime.datetime] = None

    @field_validator("installed_at")
    @classmethod
    def _normalize_installed_at(
        cls, value: Optional[datetime.datetime]
    ) -> Optional[datetime.datetime]:
        return _as_utc(value)


class CommerceCredentials(BaseModel):
    """
    Commerce Layer credentials for one tenant.

    A record carrying a refresh token is a stateful grant: its access token is
    cached and renewed in place. Anything else is a stateless grant, and a
    fresh client-credentials token is requested on every resolution.
    """

    model_config = ConfigDict(from_attributes=True)

    organization_mode: OrganizationMode = OrganizationMode.TEST
    base_endpoint: str
    organization_slug: Optional[str] = None
    client_id: str = ""
    client_secret: Optional[str] = None
    checkout_client_id: Optional[str] = None
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    expires_at: Optional[datetime.datetime] = None
    reauthorization_required: bool = False

    @field_validator("expires_at")
    @classmethod
    def _normalize_expires_at(
        cls, value: Optional[datetime.datetime]
    ) -> Optional[datetime.datetime]:
        return _as_utc(value)

    @field_validator("base_endpoint")
    @classmethod
    def _check_endpoint(cls, value: str) -> str:
        parsed = urlparse(value)
        if parsed.scheme != "https" or not parsed.hostname:
            raise ValueError(f"base_endpoint must be an https URL, got {value!r}")
        return value.rstrip("/")

    @property
    def slug(self) -> str:
        """Organization slug, derived from the endpoint host when not stored."""
        if self.organization_slug:
            return self.organization_slug
        hostname = urlparse(self.base_endpoint).hostname or ""
        return hostname.split(".")[0]

    @property
    def grant_kind(self) -> GrantKind:
        if self.refresh_token:
            return GrantKind.STATEFUL
        return GrantKind.STATELESS

    @property
    def issuing_client_id(self) -> str:
        """Client used for client-credentials grants; falls back to the sales channel."""
        return self.client_id or self.checkout_client_id or ""

    def is_expired(self, now: datetime.datetime, leeway: datetime.timedelta) -> bool:
        if not self.access_token or self.expires_at is None:
            return True
        return self.expires_at <= now + leeway


class TokenGrant(BaseModel):
    """Tokens issued by the authorization server for one exchange."""

    access_token: str
    refresh_token: Optional[str] = None
    expires_at: datetime.datetime
    scope: Optional[str] = None


class Session(BaseModel):
    """
    A resolved, time-bounded Commerce Layer session.

    Sessions are built for a single resolution and discarded after use.
    ``checkout_access_token`` is only present when a market-scoped token
    was requested and issued.
    """

    model_config = ConfigDict(frozen=True)

    access_token: str
    base_endpoint: str
    organization_slug: str
    organization_mode: OrganizationMode
    expires_at: datetime.datetime
    checkout_access_token: Optional[str] = None

    @classmethod
    def from_grant(cls, credentials: CommerceCredentials, grant: TokenGrant) -> "Session":
        return cls(
            access_token=grant.access_token,
            base_endpoint=credentials.base_endpoint,
            organization_slug=credentials.slug,
            organization_mode=credentials.organization_mode,
            expires_at=grant.expires_at,
        )

    @classmethod
    def from_stored(cls, credentials: CommerceCredentials) -> "Session":
        """Build a session from the token cached on a stateful record."""
        if not credentials.access_token or credentials.expires_at is None:
            raise ValueError("credentials carry no cached access token")
        return cls(
            access_token=credentials.access_token,
            base_endpoint=credentials.base_endpoint,
            organization_slug=credentials.slug,
            organization_mode=credentials.organization_mode,
            expires_at=credentials.expires_at,
        )

    @property
    def api_url(self) -> str:
        return f"{self.base_endpoint}/api"

    def admin_url(self, resource: str, resource_id: str) -> str:
        """Link to a resource in the organization's admin dashboard."""
        return f"{self.base_endpoint}/admin/{resource}/{resource_id}/edit"

    def checkout_url(self, order_id: str) -> str:
        """
        Hosted-checkout link for an order.

        Falls back to the admin view of the order when no market-scoped token
        could be obtained.
        """
        if not self.checkout_access_token:
            return self.admin_url("orders", order_id)
        base = CHECKOUT_HOST_TEMPLATE.format(slug=self.organization_slug, order_id=order_id)
        return f"{base}?accessToken={quote(self.checkout_access_token)}"
