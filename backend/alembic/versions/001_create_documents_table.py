"""Create documents table

Revision ID: 001
Revises: None
Create Date: 2024-01-15 00:00:00.000000+00:00

What:  Creates the `documents` table backing every key-value operation.
How:   One row per key with a JSONB body, the CAS version token and a
       per-key revision counter.

Rollback: downgrade() drops the table entirely (all documents are lost).
"""

from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "documents",

        sa.Column(
            "key",
            sa.String(250),
            nullable=False,
            comment="Document key as supplied or generated by the gateway",
        ),

        sa.Column(
            "content",
            postgresql.JSONB(),
            nullable=False,
            comment="Document body",
        ),

        # Random, below 2**53 so JSON clients read it back exactly
        sa.Column(
            "cas",
            sa.BigInteger(),
            nullable=False,
            comment="Version token, replaced on every mutation",
        ),

        sa.Column(
            "revision",
            sa.Integer(),
            nullable=False,
            server_default=sa.text("1"),
            comment="Mutation sequence number for this key",
        ),

        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),

        sa.Column(
            "updated_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),

        sa.PrimaryKeyConstraint("key"),
    )

    # Prefix scans (key LIKE 'user-%') need pattern ops under non-C collations
    op.create_index(
        "idx_documents_key_prefix",
        "documents",
        ["key"],
        postgresql_ops={"key": "varchar_pattern_ops"},
    )


def downgrade() -> None:
    op.drop_index("idx_documents_key_prefix", table_name="documents")
    op.drop_table("documents")
