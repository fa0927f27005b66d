"""Internal participant identity endpoints (worker role).

POST /internal/participants/resolve          → get-or-create by phone
POST /internal/participants                  → admin create (resolve + attributes)
GET  /internal/participants/similar?phone=   → participants stored under any variation

Called by the inbound webhook handler and the admin backend, never by end
users. Every route requires task auth. Once a caller holds a participant id
it must address the participant by id only.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from pydantic import BaseModel, ConfigDict, field_validator

from zapcrm.api.task_auth import require_task_auth
from zapcrm.domain.identity import (
    create_participant,
    find_similar_participants,
    resolve_participant,
)
from zapcrm.infra.db import txn
from zapcrm.observability.correlation import get_correlation_id
from zapcrm.observability.logging import get_logger
from zapcrm.observability.redaction import safe_log_context

router = APIRouter(
    prefix="/internal/participants",
    tags=["participants"],
    dependencies=[Depends(require_task_auth)],
)

logger = get_logger(__name__)


# ── Schemas ───────────────────────────────────────────────────────────────────


class _PhoneRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    phone: str

    @field_validator("phone")
    @classmethod
    def _phone_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("phone must not be blank")
        return value


class ResolveParticipantRequest(_PhoneRequest):
    pass


class CreateParticipantRequest(_PhoneRequest):
    name: str | None = None
    cargo: str | None = None
    empresa: str | None = None
    setor: str | None = None
    cluster_id: str | None = None
    thread_id: str | None = None
    tags: list[str] = []
    consent: bool = False


# ── POST /internal/participants/resolve ───────────────────────────────────────


@router.post("/resolve")
def resolve(body: ResolveParticipantRequest) -> dict:
    """Resolve the phone to a participant id, creating the participant on
    first contact.

    Returns:
        {"id", "canonical_phone", "created"}
    """
    try:
        with txn() as cur:
            resolved = resolve_participant(cur, body.phone)
    except Exception:
        logger.exception(
            "participant resolve failed",
            extra={"extra_fields": safe_log_context(correlationId=get_correlation_id())},
        )
        raise HTTPException(status_code=500, detail="processing failed")

    return {
        "id": resolved.id,
        "canonical_phone": resolved.canonical_phone,
        "created": resolved.created,
    }


# ── POST /internal/participants ───────────────────────────────────────────────


@router.post("")
def create(body: CreateParticipantRequest, response: Response) -> dict:
    """Create a participant, or update the one already owning the phone.

    201 when a new participant was inserted, 200 when the phone resolved to
    an existing participant (which then receives the supplied attributes).
    """
    attributes = body.model_dump(exclude={"phone"})
    try:
        with txn() as cur:
            participant, created = create_participant(cur, body.phone, attributes)
    except Exception:
        logger.exception(
            "participant create failed",
            extra={"extra_fields": safe_log_context(correlationId=get_correlation_id())},
        )
        raise HTTPException(status_code=500, detail="processing failed")

    response.status_code = 201 if created else 200
    return participant.to_dict()


# ── GET /internal/participants/similar ────────────────────────────────────────


@router.get("/similar")
def similar(phone: str = Query(..., min_length=1)) -> list[dict]:
    """Participants stored under the phone or any of its 9th-digit variants."""
    with txn() as cur:
        found = find_similar_participants(cur, phone)
    return [p.to_dict() for p in found]
