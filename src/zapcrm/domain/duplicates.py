"""Duplicate detection - read-only scans of the participant store.

Two independent strategies:

- group_by_canonical(): recompute the canonical phone of every record and
  group on it. O(n). Drives automatic consolidation.
- find_equivalent_pairs(): compare stored phones pairwise through their
  9th-digit variations. O(n²). Diagnostic / audit only, never on a hot path.

They can disagree on legacy data that was never re-canonicalized. Both are
plain functions over an explicit record list; the scan_* wrappers only add
the full-table load.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from itertools import combinations
from typing import Any, Iterable

from psycopg2.extensions import cursor as PgCursor

from zapcrm.domain.models import DuplicateGroup, EquivalentPair, Participant
from zapcrm.domain.phones import are_equivalent, canonicalize
from zapcrm.infra.repositories import participants_repository as participants


def _age_key(participant: Participant) -> tuple:
    return (participant.created_at, participant.id)


def group_by_canonical(records: Iterable[Participant]) -> list[DuplicateGroup]:
    """Group participants by recomputed canonical phone.

    The stored phone is re-canonicalized rather than trusted, so stale
    legacy values land in the right group.

    Args:
        records: Participants to group.

    Returns:
        Groups with at least two members, in order of first appearance.
        Members are ordered oldest first.
    """
    buckets: dict[str, list[Participant]] = {}
    for record in records:
        buckets.setdefault(canonicalize(record.canonical_phone), []).append(record)

    return [
        DuplicateGroup(canonical_phone=phone, members=tuple(sorted(members, key=_age_key)))
        for phone, members in buckets.items()
        if len(members) > 1
    ]


def find_equivalent_pairs(records: Iterable[Participant]) -> list[EquivalentPair]:
    """Every unordered pair whose stored phones are equivalent."""
    return [
        EquivalentPair(first=a, second=b)
        for a, b in combinations(list(records), 2)
        if are_equivalent(a.canonical_phone, b.canonical_phone)
    ]


def scan_groups(cur: PgCursor) -> list[DuplicateGroup]:
    """Load all participants and group them by canonical phone."""
    return group_by_canonical(participants.list_all(cur))


def scan_pairwise_equivalence(cur: PgCursor) -> list[EquivalentPair]:
    """Load all participants and list equivalent pairs (audit only)."""
    return find_equivalent_pairs(participants.list_all(cur))


@dataclass
class PhoneFormatAudit:
    """Read-only health check of stored phone formats."""

    existing_participants: int
    equivalent_pairs: list[EquivalentPair] = field(default_factory=list)
    non_canonical_count: int = 0
    recommendations: list[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.equivalent_pairs

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "existing_participants": self.existing_participants,
            "potential_duplicates": len(self.equivalent_pairs),
            "non_canonical_count": self.non_canonical_count,
            "recommendations": list(self.recommendations),
        }


def audit_phone_formats(cur: PgCursor) -> PhoneFormatAudit:
    """Count equivalent pairs and records stored in a non-canonical form.

    Returns:
        PhoneFormatAudit with counts and operator recommendations.
    """
    records = participants.list_all(cur)
    pairs = find_equivalent_pairs(records)
    non_canonical = sum(1 for r in records if canonicalize(r.canonical_phone) != r.canonical_phone)

    recommendations: list[str] = []
    if pairs:
        recommendations.append(
            f"Found {len(pairs)} potential duplicate participant pair(s) that should be merged"
        )
        recommendations.append("Run participant consolidation to merge equivalent phone numbers")
    if non_canonical:
        recommendations.append(
            f"Found {non_canonical} participant(s) stored with a non-canonical phone"
        )
        recommendations.append(
            "They are canonicalized automatically on their next inbound contact"
        )

    return PhoneFormatAudit(
        existing_participants=len(records),
        equivalent_pairs=pairs,
        non_canonical_count=non_canonical,
        recommendations=recommendations,
    )
