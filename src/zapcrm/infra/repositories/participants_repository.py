"""Participants repository - the identity store.

Uses raw SQL with psycopg2 (no ORM). Every function takes a cursor and
expects the caller to own the transaction (with txn() as cur:).

canonical_phone carries a unique index (migration 002), so two rows can
never hold the same canonical string. Legacy rows may still hold a
non-canonical variant of it; the consolidation job repairs those.
"""

from __future__ import annotations

from typing import Any, Sequence

from psycopg2 import errors as pg_errors
from psycopg2.extensions import cursor as PgCursor

from zapcrm.domain.models import SCALAR_FIELDS, Participant

_COLUMNS = (
    "id, canonical_phone, name, cargo, empresa, setor, "
    "tags, consent, cluster_id, thread_id, created_at"
)

# Fields update_attributes() is allowed to write
UPDATABLE_FIELDS = frozenset(SCALAR_FIELDS) | {"tags", "consent", "canonical_phone"}


def _row_to_participant(row: tuple) -> Participant:
    return Participant(
        id=str(row[0]),
        canonical_phone=row[1],
        name=row[2],
        cargo=row[3],
        empresa=row[4],
        setor=row[5],
        tags=tuple(row[6] or ()),
        consent=bool(row[7]),
        cluster_id=row[8],
        thread_id=row[9],
        created_at=row[10],
    )


def find_by_phones(cur: PgCursor, phones: Sequence[str]) -> list[Participant]:
    """Fetch every participant whose stored phone is one of `phones`.

    Single round-trip regardless of how many candidates are passed.

    Args:
        cur: Database cursor.
        phones: Exact phone strings to match.

    Returns:
        Matching participants, oldest first.
    """
    if not phones:
        return []

    cur.execute(
        f"""
        SELECT {_COLUMNS}
        FROM participants
        WHERE canonical_phone = ANY(%s)
        ORDER BY created_at, id
        """,  # noqa: S608
        (list(phones),),
    )
    return [_row_to_participant(r) for r in cur.fetchall()]


def insert_if_absent(cur: PgCursor, canonical_phone: str) -> Participant | None:
    """Insert a participant with default attributes.

    Defaults (schema): consent=false, tags='{}', created_at=now().

    Args:
        cur: Database cursor (must be inside a transaction).
        canonical_phone: Canonical phone for the new row.

    Returns:
        The new participant, or None if a row already holds the phone
        (ON CONFLICT DO NOTHING - a concurrent insert won).
    """
    cur.execute(
        f"""
        INSERT INTO participants (canonical_phone)
        VALUES (%s)
        ON CONFLICT (canonical_phone) DO NOTHING
        RETURNING {_COLUMNS}
        """,  # noqa: S608
        (canonical_phone,),
    )
    row = cur.fetchone()
    if row is None:
        return None
    return _row_to_participant(row)


def claim_phone(cur: PgCursor, participant_id: str, canonical_phone: str) -> bool:
    """Rewrite a legacy row's phone to its canonical form.

    Runs under a savepoint: if another row already holds `canonical_phone`
    the unique violation is rolled back locally and the outer transaction
    stays usable.

    Returns:
        True if the row was updated, False on conflict or missing row.
    """
    cur.execute("SAVEPOINT claim_phone")
    try:
        cur.execute(
            """
            UPDATE participants
            SET canonical_phone = %s, updated_at = now()
            WHERE id = %s
            """,
            (canonical_phone, participant_id),
        )
    except pg_errors.UniqueViolation:
        cur.execute("ROLLBACK TO SAVEPOINT claim_phone")
        return False

    updated = cur.rowcount > 0
    cur.execute("RELEASE SAVEPOINT claim_phone")
    return updated


def update_attributes(
    cur: PgCursor,
    participant_id: str,
    fields: dict[str, Any],
) -> Participant | None:
    """Partially update a participant.

    Args:
        cur: Database cursor (must be inside a transaction).
        participant_id: Participant UUID.
        fields: Column -> value. Only UPDATABLE_FIELDS are accepted.

    Returns:
        The updated participant, or None if it does not exist.

    Raises:
        ValueError: If fields contains an unknown column.
    """
    unknown = set(fields) - UPDATABLE_FIELDS
    if unknown:
        raise ValueError(f"Cannot update participant fields: {sorted(unknown)}")

    set_parts = ["updated_at = now()"]
    params: list[Any] = []
    for column, value in fields.items():
        set_parts.append(f"{column} = %s")
        params.append(list(value) if column == "tags" else value)
    params.append(participant_id)

    cur.execute(
        f"""
        UPDATE participants
        SET {", ".join(set_parts)}
        WHERE id = %s
        RETURNING {_COLUMNS}
        """,  # noqa: S608
        params,
    )
    row = cur.fetchone()
    if row is None:
        return None
    return _row_to_participant(row)


def lock_by_ids(cur: PgCursor, participant_ids: Sequence[str]) -> list[Participant]:
    """Re-read participants by id, locking the rows FOR UPDATE.

    Ids that no longer exist are simply absent from the result.

    Returns:
        Participants still present, oldest first.
    """
    if not participant_ids:
        return []

    cur.execute(
        f"""
        SELECT {_COLUMNS}
        FROM participants
        WHERE id = ANY(%s::uuid[])
        ORDER BY created_at, id
        FOR UPDATE
        """,  # noqa: S608
        (list(participant_ids),),
    )
    return [_row_to_participant(r) for r in cur.fetchall()]


def delete(cur: PgCursor, participant_id: str) -> bool:
    """Delete a participant. Returns True if a row was removed."""
    cur.execute("DELETE FROM participants WHERE id = %s", (participant_id,))
    return cur.rowcount > 0


def list_all(cur: PgCursor) -> list[Participant]:
    """Full-table scan, oldest first."""
    cur.execute(
        f"""
        SELECT {_COLUMNS}
        FROM participants
        ORDER BY created_at, id
        """  # noqa: S608
    )
    return [_row_to_participant(r) for r in cur.fetchall()]
