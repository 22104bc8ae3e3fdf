"""Credential rotation models.

Values passed between the rotation steps. Secrets travel only inside
``Credential.secret`` and are never part of any serialized view.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional

from ..exceptions import RotationError


class CredentialStatus(str, Enum):
    """Provider-side status of an access key."""

    ACTIVE = "active"
    INACTIVE = "inactive"
    UNKNOWN = "unknown"

    @classmethod
    def from_provider(cls, value: Optional[str]) -> "CredentialStatus":
        try:
            return cls((value or "").lower())
        except ValueError:
            return cls.UNKNOWN


class RotationOutcome(str, Enum):
    """Terminal result of a run."""

    NOT_DUE = "not_due"
    DUE = "due"  # evaluate-only runs
    ROTATED = "rotated"
    ROTATED_WITH_SPARE_CLEANUP = "rotated_with_spare_cleanup"
    ROTATED_WITH_WARNING = "rotated_with_warning"
    FAILED = "failed"


@dataclass
class Credential:
    """An access-key-id/secret pair, or its metadata when listed."""

    key_id: str
    secret: Optional[str] = field(default=None, repr=False)
    created_at: Optional[datetime] = None
    status: CredentialStatus = CredentialStatus.ACTIVE
    user_name: Optional[str] = None

    def has_secret(self) -> bool:
        return bool(self.key_id) and bool(self.secret)

    def to_dict(self) -> dict:
        """Convert to dictionary (no secrets)."""
        return {
            "key_id": self.key_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "status": self.status.value,
            "user_name": self.user_name,
        }


@dataclass
class RotationPolicy:
    """What the caller asked for.

    ``period`` of None means rotate now, always due.
    """

    period: Optional[str] = None
    force: bool = False

    def to_dict(self) -> dict:
        return {"period": self.period, "force": self.force}


@dataclass
class PolicyDecision:
    """Outcome of comparing a credential's age with the configured period."""

    due: bool
    age_seconds: Optional[int]
    period_seconds: Optional[int]
    reason: str


@dataclass
class RotationResult:
    """What a run did, and why it stopped."""

    outcome: RotationOutcome
    old_key_id: Optional[str] = None
    new_key_id: Optional[str] = None
    spare_key_id: Optional[str] = None
    age_seconds: Optional[int] = None
    period_seconds: Optional[int] = None
    warnings: list[RotationError] = field(default_factory=list)
    error: Optional[RotationError] = None

    @property
    def rotated(self) -> bool:
        return self.outcome in (
            RotationOutcome.ROTATED,
            RotationOutcome.ROTATED_WITH_SPARE_CLEANUP,
            RotationOutcome.ROTATED_WITH_WARNING,
        )

    @property
    def exit_code(self) -> int:
        if self.error is not None:
            return self.error.exit_code
        return 0

    def to_dict(self) -> dict:
        return {
            "outcome": self.outcome.value,
            "old_key_id": self.old_key_id,
            "new_key_id": self.new_key_id,
            "spare_key_id": self.spare_key_id,
            "age_seconds": self.age_seconds,
            "period_seconds": self.period_seconds,
            "warnings": [w.to_dict() for w in self.warnings],
            "error": self.error.to_dict() if self.error else None,
            "exit_code": self.exit_code,
        }
