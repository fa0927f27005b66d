"""Merge one duplicate group into a single participant.

Order of writes inside merge_group():

  1. Re-read and lock the members (FOR UPDATE). Members already gone are
     ignored; a group left with one member is a no-op.
  2. Write the merged attributes onto the primary (oldest member).
  3. For each duplicate: re-point messages, conversations and
     interview_sessions to the primary, THEN delete the duplicate.
  4. Write the canonical phone onto the primary. This comes last because
     the unique index on canonical_phone may still be held by a duplicate
     until step 3 deletes it.

Reassignment always completes before the matching delete, so no dependent
row ever references a deleted participant.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Sequence

from psycopg2.extensions import cursor as PgCursor

from zapcrm.domain.models import SCALAR_FIELDS, DuplicateGroup, MergeOutcome, Participant
from zapcrm.infra.repositories import dependents_repository as dependents
from zapcrm.infra.repositories import participants_repository as participants
from zapcrm.observability.logging import get_logger
from zapcrm.observability.redaction import mask_phone, safe_log_context

logger = get_logger(__name__)


@dataclass(frozen=True)
class MergePlan:
    """Deterministic outcome of merging a set of members.

    Attributes:
        primary: Surviving participant (oldest).
        duplicates: Members to remove, oldest first.
        attributes: Merged scalar fields, tags and consent for the primary.
    """

    primary: Participant
    duplicates: tuple[Participant, ...]
    attributes: dict[str, Any]


def plan_merge(members: Sequence[Participant]) -> MergePlan:
    """Decide the primary and the merged attribute set.

    - Primary: smallest created_at (ties broken by id).
    - Scalars: primary's non-empty value wins, else the first non-empty value
      among the others in ascending created_at, per field.
    - Tags: union, primary's first, order preserved.
    - Consent: true if any member consented.

    Raises:
        ValueError: If members is empty.
    """
    if not members:
        raise ValueError("cannot merge an empty group")

    ordered = sorted(members, key=lambda p: (p.created_at, p.id))
    primary, duplicates = ordered[0], tuple(ordered[1:])

    attributes: dict[str, Any] = {}
    for name in SCALAR_FIELDS:
        attributes[name] = next(
            (getattr(p, name) for p in ordered if getattr(p, name)),
            None,
        )

    attributes["tags"] = tuple(dict.fromkeys(tag for p in ordered for tag in p.tags))
    attributes["consent"] = any(p.consent for p in ordered)

    return MergePlan(primary=primary, duplicates=duplicates, attributes=attributes)


def merge_group(cur: PgCursor, group: DuplicateGroup) -> MergeOutcome:
    """Collapse a duplicate group onto its oldest member.

    Args:
        cur: Database cursor (must be inside a transaction).
        group: Group produced by the duplicate scanner.

    Returns:
        MergeOutcome with the primary id, removed ids and reassigned counts
        per dependent table. removed_ids is empty for a no-op.

    Raises:
        psycopg2.Error: Storage failures, unchanged (caller isolates them).
    """
    members = participants.lock_by_ids(cur, [m.id for m in group.members])
    if len(members) <= 1:
        primary_id = members[0].id if members else group.members[0].id
        return MergeOutcome(primary_id=primary_id)

    plan = plan_merge(members)
    primary = plan.primary

    participants.update_attributes(cur, primary.id, plan.attributes)

    reassigned = {table: 0 for table in dependents.DEPENDENT_TABLES}
    removed_ids: list[str] = []
    for duplicate in plan.duplicates:
        for table in dependents.DEPENDENT_TABLES:
            record_ids = dependents.find_ids_by_participant(cur, table, duplicate.id)
            reassigned[table] += dependents.reassign(cur, table, record_ids, primary.id)
        participants.delete(cur, duplicate.id)
        removed_ids.append(duplicate.id)

    if primary.canonical_phone != group.canonical_phone:
        participants.update_attributes(
            cur, primary.id, {"canonical_phone": group.canonical_phone}
        )

    logger.info(
        "participant group merged",
        extra={
            "extra_fields": {
                "primary_id": primary.id,
                "removed_count": len(removed_ids),
                "reassigned": reassigned,
                **safe_log_context(phone_suffix=mask_phone(group.canonical_phone)),
            }
        },
    )

    return MergeOutcome(primary_id=primary.id, removed_ids=removed_ids, reassigned=reassigned)
