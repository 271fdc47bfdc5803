"""Unit tests for the reputation service."""

import logging
from datetime import datetime, timedelta, timezone

import pytest

from safety_engine.core.logging_config import get_operation_id
from safety_engine.schemas.trust import Verification, VerificationOutcome
from safety_engine.services.reputation_service import ReputationService

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def reputations(trust_engine, settings):
    return ReputationService(trust_engine, settings)


def _verify(verifier, contributor, days_ago=1, outcome=VerificationOutcome.ACCURATE):
    return Verification(
        verifier_id=verifier,
        contributor_id=contributor,
        outcome=outcome,
        verified_at=NOW - timedelta(days=days_ago),
    )


def test_unknown_contributor_has_zero_reputation(reputations):
    """Test that contributors outside the last cycle read as zero."""
    assert reputations.reputation("nobody") == 0.0
    assert reputations.last_run_at is None


def test_recalculate_publishes_reputations(reputations):
    """Test that a cycle stores and returns per-contributor reputations."""
    result = reputations.recalculate(
        ["alice", "bob", "carol"],
        [_verify("alice", "bob"), _verify("carol", "bob"), _verify("bob", "alice")],
        now=NOW,
    )

    assert set(result) == {"alice", "bob", "carol"}
    assert max(result.values()) == pytest.approx(1.0)
    assert result["bob"] == pytest.approx(1.0)
    assert result["bob"] > result["alice"] > result["carol"]
    assert reputations.reputation("bob") == result["bob"]
    assert reputations.last_run_at == NOW


def test_old_verifications_are_dropped(reputations):
    """Test that verifications outside the window do not count."""
    result = reputations.recalculate(
        ["alice", "bob"],
        [_verify("alice", "bob", days_ago=120)],
        now=NOW,
    )

    # No usable verifications: everyone is equally trusted
    assert result == {"alice": pytest.approx(1.0), "bob": pytest.approx(1.0)}


def test_naive_and_missing_timestamps(reputations):
    """Test that naive timestamps are read as UTC and undated records are kept."""
    naive = Verification(
        verifier_id="alice",
        contributor_id="bob",
        outcome=VerificationOutcome.ACCURATE,
        verified_at=(NOW - timedelta(days=2)).replace(tzinfo=None),
    )
    undated = Verification(
        verifier_id="bob", contributor_id="carol", outcome=VerificationOutcome.ACCURATE
    )

    result = reputations.recalculate(["alice", "bob", "carol"], [naive, undated], now=NOW)

    assert result["alice"] < result["bob"]
    assert result["alice"] < result["carol"]


def test_pre_trust_seeds_propagation(reputations):
    """Test that contributors without pre-trust and without endorsements score zero."""
    result = reputations.recalculate(
        ["alice", "bob", "mallory"],
        [_verify("alice", "bob"), _verify("bob", "alice")],
        pre_trust={"alice": 1.0, "bob": 1.0},
        now=NOW,
    )

    assert result["mallory"] == pytest.approx(0.0, abs=1e-9)
    assert reputations.reputation("mallory") < 0.3


def test_recalculate_clears_operation_id(reputations):
    """Test that the cycle's operation id does not leak into the caller's context."""
    reputations.recalculate(["alice"], [], now=NOW)

    assert get_operation_id() == ""


def test_recalculate_logs_cycle_counts(reputations, caplog):
    """Test that a cycle logs its counts as structured fields under one operation."""
    with caplog.at_level(logging.INFO, logger="safety_engine.services.reputation_service"):
        reputations.recalculate(
            ["alice", "bob", "carol"],
            [_verify("alice", "bob"), _verify("bob", "alice"), _verify("carol", "bob", 400)],
            now=NOW,
        )

    (record,) = [r for r in caplog.records if r.getMessage().startswith("Reputation cycle")]
    assert record.extra_fields == {
        "contributors": 3,
        "verifications_in_window": 2,
        "flagged": 1,
        "seeded": False,
    }
