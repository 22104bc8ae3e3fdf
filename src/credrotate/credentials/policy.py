"""Rotation policy evaluation.

Decides whether the local credential is old enough to rotate. Ages and
periods are both resolved through ``parse_duration`` so they share one clock
and one rounding rule.
"""

import logging
from datetime import datetime
from typing import Optional

from ..exceptions import InvalidDuration, NegativeDuration
from .duration import TimeExpression, parse_duration, utcnow
from .models import PolicyDecision

logger = logging.getLogger(__name__)


def credential_age_seconds(created_at: TimeExpression, now: Optional[datetime] = None) -> int:
    """Age of a credential in seconds, as ``now - created_at``."""
    now = now or utcnow()
    if created_at is None:
        raise InvalidDuration("Credential has no creation timestamp")
    return parse_duration("now", now) - parse_duration(created_at, now)


def resolve_period(period: Optional[str], now: Optional[datetime] = None) -> Optional[int]:
    """Resolve a configured rotation period.

    Returns:
        Period in seconds, or None when no period was configured

    Raises:
        InvalidDuration: If the period cannot be parsed
        NegativeDuration: If the period resolves to a negative offset
    """
    if period is None:
        return None

    seconds = parse_duration(period, now)
    if seconds < 0:
        raise NegativeDuration(f"Rotation period '{period}' resolves to {seconds}s")
    return seconds


def evaluate(
    created_at: TimeExpression,
    period: Optional[str],
    now: Optional[datetime] = None,
) -> PolicyDecision:
    """Check whether rotation is due.

    Rotation is due when the age reaches the period, and always due when no
    period is configured. Configuration faults are raised before any
    comparison is made.

    Args:
        created_at: Creation timestamp of the local credential
        period: Rotation period expression, or None for "rotate now"
        now: Reference instant

    Returns:
        PolicyDecision with the computed age and period
    """
    now = now or utcnow()
    period_seconds = resolve_period(period, now)

    if period_seconds is None:
        return PolicyDecision(
            due=True,
            age_seconds=None,
            period_seconds=None,
            reason="No rotation period configured; rotating now",
        )

    age = credential_age_seconds(created_at, now)
    if age >= period_seconds:
        reason = f"Credential age ({age}s) reached rotation period ({period_seconds}s)"
    else:
        reason = f"Credential age ({age}s) is below rotation period ({period_seconds}s)"

    decision = PolicyDecision(
        due=age >= period_seconds,
        age_seconds=age,
        period_seconds=period_seconds,
        reason=reason,
    )
    logger.debug(decision.reason)
    return decision
