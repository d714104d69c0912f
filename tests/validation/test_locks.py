"""Tests for run idempotency keys and per-match locks.

Verifies:
1. Run keys are deterministic and 32 chars
2. Strategy order does not change the key
3. A held match lock rejects a second run instead of waiting
"""

import asyncio

import pytest

from scoutelo.errors import RunInProgress
from scoutelo.validation.locks import MatchLockRegistry, compute_run_key, strategy_set_key


class TestRunKey:
    """Test run idempotency key computation."""

    def test_deterministic(self):
        key1 = compute_run_key("2025casj_qm1", "consensus,official_result", 1)
        key2 = compute_run_key("2025casj_qm1", "consensus,official_result", 1)
        assert key1 == key2
        assert len(key1) == 32

    def test_version_changes_key(self):
        assert compute_run_key("2025casj_qm1", "consensus", 1) != compute_run_key("2025casj_qm1", "consensus", 2)

    def test_match_changes_key(self):
        assert compute_run_key("2025casj_qm1", "consensus", 1) != compute_run_key("2025casj_qm2", "consensus", 1)

    def test_strategy_set_is_order_independent(self):
        """Same strategies in any order produce the same set key."""
        assert strategy_set_key(["official_result", "consensus"]) == "consensus,official_result"
        assert strategy_set_key(["consensus", "consensus"]) == "consensus"


class TestMatchLockRegistry:
    @pytest.mark.asyncio
    async def test_second_holder_rejected(self):
        registry = MatchLockRegistry()
        async with registry.hold("2025casj_qm1"):
            assert registry.is_locked("2025casj_qm1")
            with pytest.raises(RunInProgress):
                async with registry.hold("2025casj_qm1"):
                    pass
        assert not registry.is_locked("2025casj_qm1")

    @pytest.mark.asyncio
    async def test_other_matches_unaffected(self):
        registry = MatchLockRegistry()
        async with registry.hold("2025casj_qm1"):
            async with registry.hold("2025casj_qm2"):
                assert registry.is_locked("2025casj_qm2")

    @pytest.mark.asyncio
    async def test_released_on_error(self):
        registry = MatchLockRegistry()
        with pytest.raises(ValueError):
            async with registry.hold("2025casj_qm1"):
                raise ValueError("boom")
        assert not registry.is_locked("2025casj_qm1")

    @pytest.mark.asyncio
    async def test_concurrent_tasks(self):
        """Only one of two concurrent runs for a match gets through."""
        registry = MatchLockRegistry()
        entered = []

        async def run(name):
            try:
                async with registry.hold("2025casj_qm1"):
                    entered.append(name)
                    await asyncio.sleep(0.01)
            except RunInProgress:
                return "rejected"
            return "ran"

        outcomes = await asyncio.gather(run("a"), run("b"))
        assert sorted(outcomes) == ["ran", "rejected"]
        assert len(entered) == 1
