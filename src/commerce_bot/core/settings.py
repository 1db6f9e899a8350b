"""
Settings for the commerce bot.
"""

from enum import Enum

from dotenv import load_dotenv
from pydantic_settings import BaseSettings, SettingsConfigDict

COMMERCE_LAYER_AUTH_ENDPOINT = "https://auth.commercelayer.io/oauth/token"
COMMERCE_LAYER_AUTHORIZE_ENDPOINT = "https://dashboard.commercelayer.io/oauth/authorize"
SLACK_OAUTH_ACCESS_URL = "https://slack.com/api/oauth.v2.access"

load_dotenv()


class ApplicationMode(str, Enum):
    """
    Deployment mode. Outside production the environment-level Commerce Layer
    credentials are injected as the default record for every tenant.
    """

    DEVELOPMENT = "development"
    PRODUCTION = "production"


class OrganizationMode(str, Enum):
    """Commerce Layer organization environment."""

    TEST = "test"
    LIVE = "live"


class CommerceLayerSettings(BaseSettings):
    """
    Settings for the Commerce Layer API.
    """

    application_mode: ApplicationMode = ApplicationMode.DEVELOPMENT
    auth_endpoint: str = COMMERCE_LAYER_AUTH_ENDPOINT
    authorize_endpoint: str = COMMERCE_LAYER_AUTHORIZE_ENDPOINT
    redirect_uri: str = "http://localhost:8000/commerce/oauth/callback"
    request_timeout_seconds: float = 10.0
    token_expiry_leeway_seconds: int = 60

    # Non-production fallback credentials
    organization_mode: OrganizationMode = OrganizationMode.TEST
    base_endpoint: str = ""
    client_id: str = ""
    client_secret: str = ""
    client_id_checkout: str = ""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="CL_",
        extra="ignore",
    )

    @property
    def is_production(self) -> bool:
        """Whether tenants must supply their own credentials."""
        return self.application_mode == ApplicationMode.PRODUCTION


class SlackSettings(BaseSettings):
    """
    Settings for the Slack app.
    """

    client_id: str = ""
    client_secret: str = ""
    redirect_uri: str = "http://localhost:8000/slack/oauth/callback"
    purge_credentials_on_uninstall: bool = True

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="SLACK_",
        extra="ignore",
    )


class AdminAuthSettings(BaseSettings):
    """
    Settings for the tenant-admin JWT used by configuration endpoints.
    """

    jwt_secret_key: str = ""
    jwt_algorithm: str = "HS256"
    jwt_access_token_expire_minutes: int = 30
    oauth_state_expire_minutes: int = 10

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="ADMIN_",
        extra="ignore",
    )
