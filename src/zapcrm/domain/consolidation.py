"""Participant consolidation - batch repair of duplicate identities.

Operator-triggered, offline. Scans the store, then merges each duplicate
group sequentially, each in its own transaction. A failing group rolls back
alone and is reported; the run continues with the next group.

Safe to re-run: groups already collapsed are no-ops, so an interrupted run
is resumed by running it again.
"""

from __future__ import annotations

from psycopg2.extensions import connection as PgConnection

from zapcrm.domain.duplicates import scan_groups
from zapcrm.domain.merge import merge_group
from zapcrm.domain.models import ConsolidationReport
from zapcrm.infra.db import get_conn, txn
from zapcrm.observability.logging import get_logger
from zapcrm.observability.redaction import mask_phone, safe_log_context

logger = get_logger(__name__)


def consolidate_all(
    conn: PgConnection | None = None,
    *,
    dry_run: bool = False,
) -> ConsolidationReport:
    """Merge every duplicate group in the participant store.

    Args:
        conn: Optional existing connection. If None, one is opened and
              closed by this call.
        dry_run: If True, only count groups and the records that would be
                 removed; nothing is written.

    Returns:
        ConsolidationReport. errors holds one message per failed group,
        tagged with the group's canonical phone.
    """
    owns_conn = conn is None
    if owns_conn:
        conn = get_conn()

    try:
        with txn(conn) as cur:
            groups = scan_groups(cur)

        report = ConsolidationReport(total_groups=len(groups), dry_run=dry_run)
        logger.info(
            "participant consolidation started",
            extra={"extra_fields": safe_log_context(total_groups=len(groups), dry_run=dry_run)},
        )

        if dry_run:
            report.total_merged = sum(len(g.members) - 1 for g in groups)
            return report

        for group in groups:
            try:
                with txn(conn) as cur:
                    outcome = merge_group(cur, group)
            except Exception as exc:
                logger.exception(
                    "participant group merge failed",
                    extra={
                        "extra_fields": {
                            "member_count": len(group.members),
                            **safe_log_context(phone_suffix=mask_phone(group.canonical_phone)),
                        }
                    },
                )
                report.errors.append(f"Error processing {group.canonical_phone}: {exc}")
                continue

            report.total_merged += len(outcome.removed_ids)

        logger.info(
            "participant consolidation finished",
            extra={
                "extra_fields": safe_log_context(
                    total_groups=report.total_groups,
                    total_merged=report.total_merged,
                    error_count=len(report.errors),
                )
            },
        )
        return report
    finally:
        if owns_conn:
            conn.close()
