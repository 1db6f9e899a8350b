"""create_installations_and_commerce_credentials

Revision ID: 3f1c2b7d9e04
Revises:
Create Date: 2026-10-19 10:00:00.000000

"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "3f1c2b7d9e04"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "installations",
        sa.Column("tenant_id", sa.String(), primary_key=True),
        sa.Column("team_id", sa.String(), nullable=True),
        sa.Column("team_name", sa.String(), nullable=True),
        sa.Column("enterprise_id", sa.String(), nullable=True),
        sa.Column("is_enterprise_install", sa.Boolean(), nullable=False),
        sa.Column("bot_token", sa.Text(), nullable=False),
        sa.Column("bot_user_id", sa.String(), nullable=True),
        sa.Column("bot_scopes", sa.Text(), nullable=True),
        sa.Column("installer_user_id", sa.String(), nullable=False),
        sa.Column(
            "installed_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
    )
    op.create_index("ix_installations_tenant_id", "installations", ["tenant_id"])

    op.create_table(
        "commerce_credentials",
        sa.Column("tenant_id", sa.String(), primary_key=True),
        sa.Column("organization_mode", sa.String(), nullable=False),
        sa.Column("base_endpoint", sa.String(), nullable=False),
        sa.Column("organization_slug", sa.String(), nullable=True),
        sa.Column("client_id", sa.String(), nullable=False),
        sa.Column("client_secret", sa.Text(), nullable=True),
        sa.Column("checkout_client_id", sa.String(), nullable=True),
        sa.Column("access_token", sa.Text(), nullable=True),
        sa.Column("refresh_token", sa.Text(), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("reauthorization_required", sa.Boolean(), nullable=False),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
    )
    op.create_index("ix_commerce_credentials_tenant_id", "commerce_credentials", ["tenant_id"])


def downgrade() -> None:
    op.drop_index("ix_commerce_credentials_tenant_id", table_name="commerce_credentials")
    op.drop_table("commerce_credentials")
    op.drop_index("ix_installations_tenant_id", table_name="installations")
    op.drop_table("installations")
