"""Participants and their dependent records.

participants holds one row per real-world phone. messages, conversations
and interview_sessions reference it through participant_id; the
consolidation job re-points them before deleting a duplicate, so the FKs
are plain RESTRICT (a participant with dependents can never be deleted
directly).

Revision ID: 001_participants_schema
Revises:
Create Date: 2026-10-19
"""
from __future__ import annotations

from alembic import op

revision = "001_participants_schema"
down_revision = None
branch_labels = None
depends_on = None


_SQL = """
CREATE EXTENSION IF NOT EXISTS pgcrypto;

CREATE TABLE participants (
    id              UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    canonical_phone TEXT NOT NULL,
    name            TEXT,
    cargo           TEXT,
    empresa         TEXT,
    setor           TEXT,
    tags            TEXT[] NOT NULL DEFAULT '{}',
    consent         BOOLEAN NOT NULL DEFAULT false,
    cluster_id      TEXT,
    thread_id       TEXT,
    created_at      TIMESTAMPTZ NOT NULL DEFAULT now(),
    updated_at      TIMESTAMPTZ NOT NULL DEFAULT now()
);

CREATE INDEX idx_participants_canonical_phone ON participants (canonical_phone);
CREATE INDEX idx_participants_created_at ON participants (created_at, id);

CREATE TABLE messages (
    id             UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    participant_id UUID NOT NULL REFERENCES participants (id),
    direction      TEXT NOT NULL CHECK (direction IN ('inbound', 'outbound')),
    body           TEXT,
    created_at     TIMESTAMPTZ NOT NULL DEFAULT now()
);

CREATE INDEX idx_messages_participant ON messages (participant_id);

CREATE TABLE conversations (
    id              UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    participant_id  UUID NOT NULL REFERENCES participants (id),
    channel         TEXT NOT NULL DEFAULT 'whatsapp',
    opened_at       TIMESTAMPTZ NOT NULL DEFAULT now(),
    last_message_at TIMESTAMPTZ NOT NULL DEFAULT now(),
    is_open         BOOLEAN NOT NULL DEFAULT true
);

CREATE INDEX idx_conversations_participant ON conversations (participant_id);

CREATE TABLE interview_sessions (
    id             UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    participant_id UUID NOT NULL REFERENCES participants (id),
    step           TEXT NOT NULL,
    answers        JSONB NOT NULL DEFAULT '{}'::jsonb,
    last_step_at   TIMESTAMPTZ NOT NULL DEFAULT now()
);

CREATE INDEX idx_interview_sessions_participant ON interview_sessions (participant_id);
"""


def upgrade() -> None:
    op.execute(_SQL)


def downgrade() -> None:
    raise NotImplementedError("Downgrade not supported")
