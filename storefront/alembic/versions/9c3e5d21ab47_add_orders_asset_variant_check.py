"""add orders asset variant check

Revision ID: 9c3e5d21ab47
Revises: 4a1f0c2b7d10
Create Date: 2026-10-05
"""

from __future__ import annotations

from typing import Sequence, Union

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "9c3e5d21ab47"
down_revision: Union[str, Sequence[str], None] = "4a1f0c2b7d10"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

TABLE_NAME = "orders"
CK_ASSET_VARIANT = "ck_order_asset_variant"


def upgrade() -> None:
    # Lignes historiques qui mélangent code et credential : le code fait foi.
    op.execute(
        f"""
        UPDATE {TABLE_NAME}
        SET digital_email = NULL, digital_password = NULL
        WHERE digital_code IS NOT NULL
          AND (digital_email IS NOT NULL OR digital_password IS NOT NULL);
        """
    )

    # Idempotent Postgres
    op.execute(
        f"""
        DO $$
        BEGIN
            IF NOT EXISTS (
                SELECT 1
                FROM pg_constraint c
                JOIN pg_class t ON t.oid = c.conrelid
                WHERE t.relname = '{TABLE_NAME}'
                  AND c.conname = '{CK_ASSET_VARIANT}'
            ) THEN
                ALTER TABLE {TABLE_NAME}
                ADD CONSTRAINT {CK_ASSET_VARIANT}
                CHECK (digital_code IS NULL OR (digital_email IS NULL AND digital_password IS NULL));
            END IF;
        END $$;
        """
    )


def downgrade() -> None:
    op.execute(f"ALTER TABLE {TABLE_NAME} DROP CONSTRAINT IF EXISTS {CK_ASSET_VARIANT};")
