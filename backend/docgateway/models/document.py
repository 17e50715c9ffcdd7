"""
Document Gateway: Stored Document Model
========================================

What:  ORM model for the `documents` table, one row per document key.
Who:   Used by SqlDocumentStore for every key-value operation and by Alembic.

Table Design:
    - key:       Caller-visible identifier, primary key (max 250 chars)
    - content:   The JSON document itself (JSONB on PostgreSQL)
    - cas:       Opaque version token; a new random value on every mutation.
                 Conditional writes compare against it (optimistic concurrency).
    - revision:  Per-key mutation counter; becomes the mutation token's
                 sequence number
    - created_at / updated_at: Row bookkeeping in UTC. These are distinct
                 from the `createdAt` / `updatedAt` fields the gateway stamps
                 into the document body.

    The key index uses varchar_pattern_ops so `key LIKE 'user-%'` prefix
    scans can use it regardless of the database collation.
"""

from datetime import datetime, timezone
from typing import Any, Dict

from sqlalchemy import JSON, BigInteger, Index, Integer, String, text
from sqlalchemy.dialects.postgresql import JSONB, TIMESTAMP
from sqlalchemy.orm import Mapped, mapped_column

from docgateway.database import Base

# Longest key accepted, in UTF-8 bytes.
MAX_KEY_LENGTH = 250


class StoredDocument(Base):
    """A JSON document addressed by key, with its version bookkeeping."""

    __tablename__ = "documents"

    key: Mapped[str] = mapped_column(
        String(MAX_KEY_LENGTH),
        primary_key=True,
        comment="Document key as supplied or generated by the gateway",
    )

    content: Mapped[Dict[str, Any]] = mapped_column(
        JSON().with_variant(JSONB(), "postgresql"),
        nullable=False,
        comment="Document body",
    )

    cas: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        comment="Version token, replaced on every mutation",
    )

    revision: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=1,
        server_default=text("1"),
        comment="Mutation sequence number for this key",
    )

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        server_default=text("CURRENT_TIMESTAMP"),
    )

    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        server_default=text("CURRENT_TIMESTAMP"),
    )

    __table_args__ = (
        Index(
            "idx_documents_key_prefix",
            "key",
            postgresql_ops={"key": "varchar_pattern_ops"},
        ),
    )

    def __repr__(self) -> str:
        return f"<StoredDocument(key='{self.key}', cas={self.cas}, revision={self.revision})>"
