"""Tests for rotation policy evaluation."""

from datetime import datetime, timedelta, timezone

import pytest

from credrotate.credentials.policy import (credential_age_seconds, evaluate,
                                           resolve_period)
from credrotate.exceptions import InvalidDuration, NegativeDuration

NOW = datetime(2026, 1, 31, 12, 0, 0, tzinfo=timezone.utc)


class TestCredentialAge:
    def test_age_in_seconds(self):
        created = NOW - timedelta(days=30)
        assert credential_age_seconds(created, NOW) == 30 * 86400

    def test_age_from_timestamp_string(self):
        assert credential_age_seconds("2026-01-31T11:00:00+00:00", NOW) == 3600

    def test_missing_timestamp(self):
        with pytest.raises(InvalidDuration):
            credential_age_seconds(None, NOW)


class TestResolvePeriod:
    def test_no_period(self):
        assert resolve_period(None, NOW) is None

    def test_zero_period(self):
        assert resolve_period("now", NOW) == 0

    def test_negative_period(self):
        with pytest.raises(NegativeDuration):
            resolve_period("3 days ago", NOW)

    def test_invalid_period(self):
        with pytest.raises(InvalidDuration):
            resolve_period("soonish", NOW)


class TestEvaluate:
    def test_due_when_older_than_period(self):
        decision = evaluate(NOW - timedelta(days=30), "20days", NOW)
        assert decision.due is True
        assert decision.age_seconds == 30 * 86400
        assert decision.period_seconds == 20 * 86400

    def test_due_at_boundary(self):
        decision = evaluate(NOW - timedelta(days=20), "20days", NOW)
        assert decision.due is True

    def test_not_due_when_younger(self):
        decision = evaluate(NOW - timedelta(days=19, hours=23), "20days", NOW)
        assert decision.due is False
        assert "below" in decision.reason

    def test_always_due_without_period(self):
        decision = evaluate(None, None, NOW)
        assert decision.due is True
        assert decision.age_seconds is None

    def test_negative_period_rejected_before_evaluating(self):
        # The creation timestamp is unusable, but the period fault wins
        with pytest.raises(NegativeDuration):
            evaluate(None, "1 day ago", NOW)
