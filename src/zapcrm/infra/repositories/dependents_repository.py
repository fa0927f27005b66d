"""Dependent records repository - rows that point at a participant.

messages, conversations and interview_sessions each carry a participant_id
FK. During a merge they are re-pointed to the surviving participant before
the duplicate is deleted.
"""

from __future__ import annotations

from typing import Sequence

from psycopg2.extensions import cursor as PgCursor

# Tables holding a participant_id FK, in reassignment order
DEPENDENT_TABLES: tuple[str, ...] = ("messages", "conversations", "interview_sessions")


def _check_table(table: str) -> None:
    if table not in DEPENDENT_TABLES:
        raise ValueError(f"Unknown dependent table: {table}")


def find_ids_by_participant(cur: PgCursor, table: str, participant_id: str) -> list[str]:
    """List ids of `table` rows pointing at a participant.

    Args:
        cur: Database cursor.
        table: One of DEPENDENT_TABLES.
        participant_id: Participant UUID.

    Returns:
        Record ids (strings), ordered by id.

    Raises:
        ValueError: If table is not a dependent table.
    """
    _check_table(table)
    cur.execute(
        f"SELECT id FROM {table} WHERE participant_id = %s ORDER BY id",  # noqa: S608
        (participant_id,),
    )
    return [str(row[0]) for row in cur.fetchall()]


def reassign(
    cur: PgCursor,
    table: str,
    record_ids: Sequence[str],
    participant_id: str,
) -> int:
    """Point the given `table` rows at another participant.

    Args:
        cur: Database cursor (must be inside a transaction).
        table: One of DEPENDENT_TABLES.
        record_ids: Ids returned by find_ids_by_participant().
        participant_id: New participant UUID.

    Returns:
        Number of rows updated.

    Raises:
        ValueError: If table is not a dependent table.
    """
    _check_table(table)
    if not record_ids:
        return 0

    cur.execute(
        f"""
        UPDATE {table}
        SET participant_id = %s
        WHERE id = ANY(%s::uuid[])
        """,  # noqa: S608
        (participant_id, list(record_ids)),
    )
    return cur.rowcount
