"""Participant identity models."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

# Optional scalar attributes merged field-by-field (first non-empty wins)
SCALAR_FIELDS: tuple[str, ...] = (
    "name",
    "cargo",
    "empresa",
    "setor",
    "cluster_id",
    "thread_id",
)


@dataclass(frozen=True)
class Participant:
    """Canonical identity record for one real-world phone.

    `canonical_phone` holds the PII phone string (never log it raw).
    """

    id: str
    canonical_phone: str
    created_at: datetime
    name: str | None = None
    cargo: str | None = None
    empresa: str | None = None
    setor: str | None = None
    tags: tuple[str, ...] = ()
    consent: bool = False
    cluster_id: str | None = None
    thread_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-friendly dict."""
        return {
            "id": self.id,
            "canonical_phone": self.canonical_phone,
            "name": self.name,
            "cargo": self.cargo,
            "empresa": self.empresa,
            "setor": self.setor,
            "tags": list(self.tags),
            "consent": self.consent,
            "cluster_id": self.cluster_id,
            "thread_id": self.thread_id,
            "created_at": self.created_at.isoformat(),
        }


@dataclass(frozen=True)
class ResolvedParticipant:
    """Result of get-or-create identity resolution."""

    id: str
    canonical_phone: str
    created: bool


@dataclass(frozen=True)
class DuplicateGroup:
    """Two or more participants sharing a canonical phone.

    Members are ordered oldest first (created_at, then id).
    """

    canonical_phone: str
    members: tuple[Participant, ...]


@dataclass(frozen=True)
class EquivalentPair:
    """Two participants whose stored phones are 9th-digit variants."""

    first: Participant
    second: Participant


@dataclass(frozen=True)
class MergeOutcome:
    """Result of merging one duplicate group.

    Attributes:
        primary_id: Surviving participant.
        removed_ids: Deleted duplicates (empty when the group was a no-op).
        reassigned: Dependent records re-pointed, per table.
    """

    primary_id: str
    removed_ids: list[str] = field(default_factory=list)
    reassigned: dict[str, int] = field(default_factory=dict)


@dataclass
class ConsolidationReport:
    """Summary of a consolidation run.

    Partial success is explicit: `errors` lists failed groups while
    `total_merged` still counts records removed by the groups that succeeded.
    """

    total_groups: int = 0
    total_merged: int = 0
    errors: list[str] = field(default_factory=list)
    dry_run: bool = False

    @property
    def success(self) -> bool:
        return not self.errors

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "total_groups": self.total_groups,
            "total_merged": self.total_merged,
            "errors": list(self.errors),
            "dry_run": self.dry_run,
        }
