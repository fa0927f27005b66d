"""Shared test helpers (not fixtures).

InMemoryStore mimics the participants/dependents repositories closely
enough for behavioral tests:
- canonical_phone is unique (like uq_participants_canonical_phone)
- deleting a participant still referenced by a dependent row fails
  (like the RESTRICT foreign keys)
- txn() snapshots state and restores it on exception (rollback)
"""

from __future__ import annotations

import copy
import itertools
from contextlib import contextmanager
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Any, Iterator, Sequence

from zapcrm.domain.models import Participant
from zapcrm.infra.repositories import dependents_repository, participants_repository

BASE_TIME = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


class UniqueViolationError(Exception):
    """Raised by the store where Postgres would raise UniqueViolation."""


class ForeignKeyViolationError(Exception):
    """Raised by the store where Postgres would raise ForeignKeyViolation."""


def make_participant(
    participant_id: str,
    phone: str,
    *,
    minutes: int = 0,
    **attributes: Any,
) -> Participant:
    """Build a Participant created `minutes` after BASE_TIME."""
    if "tags" in attributes:
        attributes["tags"] = tuple(attributes["tags"])
    return Participant(
        id=participant_id,
        canonical_phone=phone,
        created_at=BASE_TIME + timedelta(minutes=minutes),
        **attributes,
    )


class InMemoryStore:
    """Dict-backed stand-in for the Postgres identity store."""

    def __init__(self) -> None:
        self.participants: dict[str, Participant] = {}
        self.dependents: dict[str, dict[str, str]] = {
            table: {} for table in dependents_repository.DEPENDENT_TABLES
        }
        self.operations: list[tuple[str, ...]] = []
        self.failing_deletes: set[str] = set()
        self._ids = itertools.count(1)
        self._minutes = itertools.count(0)

    # ── Test setup ────────────────────────────────────────────────────────

    def add(self, phone: str, *, minutes: int | None = None, **attributes: Any) -> Participant:
        """Seed a participant, bypassing the unique index (legacy data)."""
        participant_id = f"p-{next(self._ids)}"
        offset = next(self._minutes) if minutes is None else minutes
        participant = make_participant(participant_id, phone, minutes=offset, **attributes)
        self.participants[participant_id] = participant
        return participant

    def add_dependent(self, table: str, participant_id: str) -> str:
        record_id = f"{table}-{next(self._ids)}"
        self.dependents[table][record_id] = participant_id
        return record_id

    def dependents_of(self, participant_id: str) -> dict[str, list[str]]:
        return {
            table: sorted(rid for rid, pid in rows.items() if pid == participant_id)
            for table, rows in self.dependents.items()
        }

    def holding(self, phone: str) -> list[Participant]:
        return [p for p in self.participants.values() if p.canonical_phone == phone]

    @contextmanager
    def txn(self, conn: Any = None) -> Iterator[str]:
        """Transaction stand-in: restore the previous state on exception."""
        snapshot = (copy.deepcopy(self.participants), copy.deepcopy(self.dependents))
        try:
            yield "cursor"
        except Exception:
            self.participants, self.dependents = snapshot
            raise

    def install(self, monkeypatch) -> None:
        for name in (
            "find_by_phones",
            "insert_if_absent",
            "claim_phone",
            "update_attributes",
            "lock_by_ids",
            "delete",
            "list_all",
        ):
            monkeypatch.setattr(participants_repository, name, getattr(self, name))
        for name in ("find_ids_by_participant", "reassign"):
            monkeypatch.setattr(dependents_repository, name, getattr(self, name))

    # ── participants_repository ───────────────────────────────────────────

    def _ordered(self, records) -> list[Participant]:
        return sorted(records, key=lambda p: (p.created_at, p.id))

    def find_by_phones(self, cur, phones: Sequence[str]) -> list[Participant]:
        self.operations.append(("find_by_phones", *phones))
        wanted = set(phones)
        return self._ordered(p for p in self.participants.values() if p.canonical_phone in wanted)

    def insert_if_absent(self, cur, canonical_phone: str) -> Participant | None:
        self.operations.append(("insert", canonical_phone))
        if self.holding(canonical_phone):
            return None
        return self.add(canonical_phone, minutes=1000 + len(self.participants))

    def claim_phone(self, cur, participant_id: str, canonical_phone: str) -> bool:
        self.operations.append(("claim_phone", participant_id))
        if participant_id not in self.participants:
            return False
        if any(p.id != participant_id for p in self.holding(canonical_phone)):
            return False
        self.participants[participant_id] = replace(
            self.participants[participant_id], canonical_phone=canonical_phone
        )
        return True

    def update_attributes(self, cur, participant_id: str, fields: dict[str, Any]) -> Participant | None:
        self.operations.append(("update", participant_id, *sorted(fields)))
        unknown = set(fields) - participants_repository.UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update participant fields: {sorted(unknown)}")
        if participant_id not in self.participants:
            return None
        phone = fields.get("canonical_phone")
        if phone is not None and any(p.id != participant_id for p in self.holding(phone)):
            raise UniqueViolationError(phone)
        if "tags" in fields:
            fields = {**fields, "tags": tuple(fields["tags"])}
        updated = replace(self.participants[participant_id], **fields)
        self.participants[participant_id] = updated
        return updated

    def lock_by_ids(self, cur, participant_ids: Sequence[str]) -> list[Participant]:
        return self._ordered(
            self.participants[pid] for pid in participant_ids if pid in self.participants
        )

    def delete(self, cur, participant_id: str) -> bool:
        self.operations.append(("delete", participant_id))
        if participant_id in self.failing_deletes:
            raise RuntimeError(f"delete failed for {participant_id}")
        if any(participant_id in rows.values() for rows in self.dependents.values()):
            raise ForeignKeyViolationError(participant_id)
        return self.participants.pop(participant_id, None) is not None

    def list_all(self, cur) -> list[Participant]:
        return self._ordered(self.participants.values())

    # ── dependents_repository ─────────────────────────────────────────────

    def find_ids_by_participant(self, cur, table: str, participant_id: str) -> list[str]:
        return sorted(rid for rid, pid in self.dependents[table].items() if pid == participant_id)

    def reassign(self, cur, table: str, record_ids: Sequence[str], participant_id: str) -> int:
        self.operations.append(("reassign", table, participant_id, *record_ids))
        for record_id in record_ids:
            self.dependents[table][record_id] = participant_id
        return len(record_ids)
