"""
Tenant-keyed persistence for installations and Commerce Layer credentials.

Both stores are single-key, last-write-wins: there are no cross-tenant
transactions. Database failures surface as ``TransientError`` so callers can
retry the whole command.
"""

import logging
from typing import Optional, Protocol

from sqlalchemy import delete
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from commerce_bot.core.database import SessionLocal
from commerce_bot.core.exceptions import DuplicateInstallationError, TransientError
from commerce_bot.core.models import (
    CommerceCredentials,
    CommerceCredentialsRecord,
    Installation,
    InstallationRecord,
)

# Setup module-level logger
logger = logging.getLogger("store")


class CredentialStore(Protocol):
    """Persistence for per-tenant Commerce Layer credentials."""

    def get(self, tenant_id: str) -> Optional[CommerceCredentials]: ...

    def put(self, tenant_id: str, credentials: CommerceCredentials) -> None: ...

    def delete(self, tenant_id: str) -> None: ...


class InstallationStore(Protocol):
    """Persistence for per-tenant Slack installations."""

    def insert(self, installation: Installation) -> None: ...

    def get(self, tenant_id: str) -> Optional[Installation]: ...

    def delete(self, tenant_id: str) -> None: ...


class SqlCredentialStore:
    """Credential store backed by the ``commerce_credentials`` table."""

    def __init__(self, session_factory: sessionmaker = SessionLocal) -> None:
        self._session_factory = session_factory

    def get(self, tenant_id: str) -> Optional[CommerceCredentials]:
        try:
            with self._session_factory() as db:
                row = db.get(CommerceCredentialsRecord, tenant_id)
                if row is None:
                    return None
                return CommerceCredentials.model_validate(row)
        except SQLAlchemyError as e:
            logger.error("Error reading credentials for tenant %s: %s", tenant_id, e)
            raise TransientError("Credential store unavailable", tenant_id) from e

    def put(self, tenant_id: str, credentials: CommerceCredentials) -> None:
        values = credentials.model_dump()
        values["organization_mode"] = credentials.organization_mode.value
        try:
            with self._session_factory() as db:
                row = db.get(CommerceCredentialsRecord, tenant_id)
                if row is None:
                    db.add(CommerceCredentialsRecord(tenant_id=tenant_id, **values))
                else:
                    for field, value in values.items():
                        setattr(row, field, value)
                db.commit()
        except SQLAlchemyError as e:
            logger.error("Error writing credentials for tenant %s: %s", tenant_id, e)
            raise TransientError("Credential store unavailable", tenant_id) from e
        logger.debug("Stored credentials for tenant %s", tenant_id)

    def delete(self, tenant_id: str) -> None:
        try:
            with self._session_factory() as db:
                db.execute(
                    delete(CommerceCredentialsRecord).where(
                        CommerceCredentialsRecord.tenant_id == tenant_id
                    )
                )
                db.commit()
        except SQLAlchemyError as e:
            logger.error("Error deleting credentials for tenant %s: %s", tenant_id, e)
            raise TransientError("Credential store unavailable", tenant_id) from e


class SqlInstallationStore:
    """Installation store backed by the ``installations`` table."""

    def __init__(self, session_factory: sessionmaker = SessionLocal) -> None:
        self._session_factory = session_factory

    def insert(self, installation: Installation) -> None:
        """
        Insert a new installation.

        Raises:
            DuplicateInstallationError: If the tenant already has an installation.
            TransientError: If the database is unavailable.
        """
        tenant_id = installation.tenant_id
        values = installation.model_dump(exclude_none=True)
        try:
            with self._session_factory() as db:
                if db.get(InstallationRecord, tenant_id) is not None:
                    raise DuplicateInstallationError("Bot is already installed", tenant_id)
                db.add(InstallationRecord(**values))
                db.commit()
        except IntegrityError as e:
            # Lost an insert race against a concurrent install
            raise DuplicateInstallationError("Bot is already installed", tenant_id) from e
        except SQLAlchemyError as e:
            logger.error("Error inserting installation for tenant %s: %s", tenant_id, e)
            raise TransientError("Installation store unavailable", tenant_id) from e

    def get(self, tenant_id: str) -> Optional[Installation]:
        try:
            with self._session_factory() as db:
                row = db.get(InstallationRecord, tenant_id)
                if row is None:
                    return None
                return Installation.model_validate(row)
        except SQLAlchemyError as e:
            logger.error("Error reading installation for tenant %s: %s", tenant_id, e)
            raise TransientError("Installation store unavailable", tenant_id) from e

    def delete(self, tenant_id: str) -> None:
        try:
            with self._session_factory() as db:
                db.execute(
                    delete(InstallationRecord).where(InstallationRecord.tenant_id == tenant_id)
                )
                db.commit()
        except SQLAlchemyError as e:
            logger.error("Error deleting installation for tenant %s: %s", tenant_id, e)
            raise TransientError("Installation store unavailable", tenant_id) from e
