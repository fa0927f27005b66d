"""Unique canonical_phone on participants.

Closes the get-or-create race: concurrent first contacts for the same
phone now collide on the index and the loser fetches the winner
(INSERT ... ON CONFLICT DO NOTHING).

Must run after consolidation has removed exact-string duplicates, otherwise
the index build fails. Rows holding a non-canonical variant are unaffected.

Revision ID: 002_participants_canonical_phone_unique
Revises: 001_participants_schema
Create Date: 2026-10-19
"""
from __future__ import annotations

from alembic import op

revision = "002_participants_canonical_phone_unique"
down_revision = "001_participants_schema"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.execute("DROP INDEX IF EXISTS idx_participants_canonical_phone")
    op.execute(
        "CREATE UNIQUE INDEX uq_participants_canonical_phone "
        "ON participants (canonical_phone)"
    )


def downgrade() -> None:
    raise NotImplementedError("Downgrade not supported")
