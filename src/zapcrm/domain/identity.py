"""Identity resolution - raw phone to participant (get-or-create).

Resolution strategy
───────────────────
Every inbound contact and every admin "create participant" request goes
through resolve_participant():

  1. Canonicalize the raw phone.
  2. Build the candidate list: canonical first, then the 9th-digit
     variations of the raw phone and of the canonical phone.
  3. Look all candidates up in ONE query.
  4. Hit on canonical → return it (created=False).
  5. Hit on a legacy variant → rewrite its phone to canonical (self-heal),
     return it (created=False).
  6. No hit → INSERT ... ON CONFLICT DO NOTHING. If a concurrent request
     inserted the same canonical phone first, fetch and return the winner
     (created=False); otherwise return the new row (created=True).

The unique index on participants.canonical_phone turns the concurrent
first-contact race into a benign fetch instead of a duplicate row. The
caller owns the transaction (with txn() as cur:); storage errors propagate.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Any

from psycopg2.extensions import cursor as PgCursor

from zapcrm.domain.models import SCALAR_FIELDS, Participant, ResolvedParticipant
from zapcrm.domain.phones import canonicalize, phone_variations
from zapcrm.infra.repositories import participants_repository as participants
from zapcrm.observability.logging import get_logger
from zapcrm.observability.redaction import mask_phone, safe_log_context

logger = get_logger(__name__)


def lookup_candidates(raw: str) -> list[str]:
    """Phones that may identify the same participant as `raw`.

    Canonical form first, then legacy variants in generation order.
    """
    canonical = canonicalize(raw)
    candidates = [canonical, *phone_variations(raw), *phone_variations(canonical)]
    return list(dict.fromkeys(c for c in candidates if c))


def _resolve(cur: PgCursor, raw: str) -> tuple[Participant, bool]:
    if not raw or not raw.strip():
        raise ValueError("phone is required")

    canonical = canonicalize(raw)
    candidates = lookup_candidates(raw)

    by_phone = {p.canonical_phone: p for p in participants.find_by_phones(cur, candidates)}

    existing = by_phone.get(canonical)
    if existing is not None:
        return existing, False

    for candidate in candidates[1:]:
        legacy = by_phone.get(candidate)
        if legacy is None:
            continue

        if participants.claim_phone(cur, legacy.id, canonical):
            logger.info(
                "legacy participant canonicalized",
                extra={
                    "extra_fields": {
                        "participant_id": legacy.id,
                        **safe_log_context(phone_suffix=mask_phone(canonical)),
                    }
                },
            )
            return replace(legacy, canonical_phone=canonical), False

        # Another request claimed canonical meanwhile; the legacy row is
        # left for consolidation.
        winner = participants.find_by_phones(cur, [canonical])
        if winner:
            return winner[0], False
        return legacy, False

    created = participants.insert_if_absent(cur, canonical)
    if created is not None:
        logger.info(
            "participant created",
            extra={
                "extra_fields": {
                    "participant_id": created.id,
                    **safe_log_context(phone_suffix=mask_phone(canonical)),
                }
            },
        )
        return created, True

    winner = participants.find_by_phones(cur, [canonical])
    if not winner:
        raise RuntimeError("participant insert conflicted but no row holds the phone")
    return winner[0], False


def resolve_participant(cur: PgCursor, raw: str) -> ResolvedParticipant:
    """Resolve a raw phone to a participant id, creating one if needed.

    Args:
        cur: Database cursor (must be inside a transaction).
        raw: Phone exactly as received from the transport provider.

    Returns:
        ResolvedParticipant(id, canonical_phone, created).

    Raises:
        ValueError: If raw is blank.
        psycopg2.Error: Storage failures, unchanged.
    """
    participant, created = _resolve(cur, raw)
    return ResolvedParticipant(
        id=participant.id,
        canonical_phone=participant.canonical_phone,
        created=created,
    )


def create_participant(
    cur: PgCursor,
    raw: str,
    attributes: dict[str, Any] | None = None,
) -> tuple[Participant, bool]:
    """Admin "create participant": resolve the phone, then apply attributes.

    Creating a participant for a phone that already has one updates that
    participant instead of adding a duplicate. Supplied scalar fields
    overwrite, tags are unioned, consent can only be raised.

    Args:
        cur: Database cursor (must be inside a transaction).
        raw: Phone as typed by the operator.
        attributes: Optional name/cargo/empresa/setor/cluster_id/thread_id,
                    tags and consent.

    Returns:
        Tuple of (participant, created).

    Raises:
        ValueError: If attributes contains an unknown field.
    """
    attributes = attributes or {}
    unknown = set(attributes) - set(SCALAR_FIELDS) - {"tags", "consent"}
    if unknown:
        raise ValueError(f"Unknown participant attributes: {sorted(unknown)}")

    participant, created = _resolve(cur, raw)

    updates: dict[str, Any] = {
        f: attributes[f] for f in SCALAR_FIELDS if attributes.get(f) is not None
    }
    if attributes.get("tags"):
        merged_tags = tuple(dict.fromkeys([*participant.tags, *attributes["tags"]]))
        if merged_tags != participant.tags:
            updates["tags"] = merged_tags
    if attributes.get("consent") and not participant.consent:
        updates["consent"] = True

    if not updates:
        return participant, created

    updated = participants.update_attributes(cur, participant.id, updates)
    if updated is None:
        raise RuntimeError(f"participant {participant.id} vanished during update")
    return updated, created


def find_similar_participants(cur: PgCursor, phone: str) -> list[Participant]:
    """All participants stored under any variation of `phone`.

    Used by admin views to surface likely duplicates of one contact.
    """
    return participants.find_by_phones(cur, lookup_candidates(phone))
