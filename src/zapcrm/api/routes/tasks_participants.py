"""Worker routes for participant maintenance.

POST /tasks/participants/consolidate   → merge every duplicate group
GET  /tasks/participants/duplicates    → pairwise equivalence audit (read-only)
GET  /tasks/participants/phone-audit   → stored phone format health check

Operator-triggered (admin action or Cloud Scheduler), never on the inbound
message path. Every route requires task auth.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict

from zapcrm.api.task_auth import require_task_auth
from zapcrm.domain.consolidation import consolidate_all
from zapcrm.domain.duplicates import audit_phone_formats, scan_pairwise_equivalence
from zapcrm.domain.phones import format_phone_for_display
from zapcrm.infra.db import txn
from zapcrm.observability.correlation import get_correlation_id
from zapcrm.observability.logging import get_logger
from zapcrm.observability.redaction import safe_log_context

router = APIRouter(
    prefix="/tasks/participants",
    tags=["tasks"],
    dependencies=[Depends(require_task_auth)],
)

logger = get_logger(__name__)


class ConsolidateRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    dry_run: bool = False


@router.post("/consolidate")
def consolidate(body: ConsolidateRequest | None = None) -> dict:
    """Run participant consolidation.

    Per-group failures do not fail the request: they come back in
    "errors" with success=false while the counts still reflect the groups
    that merged. Only a failure before any group is processed (e.g. the
    scan itself) returns 500.
    """
    dry_run = body.dry_run if body is not None else False
    try:
        report = consolidate_all(dry_run=dry_run)
    except Exception:
        logger.exception(
            "participant consolidation aborted",
            extra={"extra_fields": safe_log_context(correlationId=get_correlation_id())},
        )
        raise HTTPException(status_code=500, detail="consolidation failed")

    return report.to_dict()


@router.get("/duplicates")
def duplicates() -> dict:
    """List every pair of participants whose stored phones are equivalent."""
    with txn() as cur:
        pairs = scan_pairwise_equivalence(cur)

    return {
        "total": len(pairs),
        "pairs": [
            {
                "first_id": pair.first.id,
                "first_phone": format_phone_for_display(pair.first.canonical_phone),
                "second_id": pair.second.id,
                "second_phone": format_phone_for_display(pair.second.canonical_phone),
            }
            for pair in pairs
        ],
    }


@router.get("/phone-audit")
def phone_audit() -> dict:
    """Counts of duplicate pairs and non-canonical stored phones."""
    with txn() as cur:
        audit = audit_phone_formats(cur)
    return audit.to_dict()
