"""Tests for the scouter validation service (orchestration over in-memory stores)."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from scoutelo.errors import ExternalSourceError, InvalidInput, NotFound
from scoutelo.validation.comparison import FieldSpec, FieldType
from scoutelo.validation.fields import build_official_result
from scoutelo.validation.service import ScouterValidationService, ValidationExecutionSummary

L2 = FieldSpec("teleop.coral_scored_L2", FieldType.NUMBER, close_tolerance=1.0)
CLIMB = FieldSpec("endgame.cage_climb_successful", FieldType.BOOLEAN, critical=True)

MATCH_KEY = "2025casj_qm1"


@pytest.fixture
def agreeing_observations(make_observation):
    return [make_observation(s, teleop={"coral_scored_L2": 4}) for s in ("alice", "bob", "carol")]


@pytest.fixture
def build_service(observation_store_factory, rating_store, lock_registry):
    def _build(matches, observations, official_source=None, **kwargs):
        kwargs.setdefault("field_specs", [L2])
        return ScouterValidationService(
            observation_store=observation_store_factory(matches, observations),
            rating_store=rating_store,
            official_source=official_source,
            lock_registry=lock_registry,
            **kwargs,
        )
    return _build


class TestValidateMatch:
    @pytest.mark.asyncio
    async def test_agreeing_scouts_gain(self, build_service, make_match, agreeing_observations, rating_store):
        service = build_service([make_match()], agreeing_observations)

        summary = await service.validate_match(MATCH_KEY, ["consensus"])

        assert summary.state == "done"
        assert summary.event_key == "2025casj"
        assert summary.scouters_with_status("validated") == ["alice", "bob", "carol"]
        assert summary.total_validations == 3
        assert summary.strategy_breakdown == {"consensus": {"exact_match": 3}}
        for update in summary.elo_updates:
            assert update["new_elo"] == pytest.approx(1516.0)
            assert update["outcome"] == "gain"
            assert update["calculation"]["expected_score"] == pytest.approx(0.5)
            assert update["calculation"]["actual_score"] == pytest.approx(1.0)

        rating = await rating_store.get_rating("alice", 2025)
        assert rating.current_elo == pytest.approx(1516.0)
        assert rating.peak_elo == pytest.approx(1516.0)
        assert rating.lowest_elo == pytest.approx(1500.0)
        assert rating.total_validations == 1
        assert rating.successful_validations == 1
        assert rating.failed_validations == 0
        assert rating.confidence_level == pytest.approx(service.calculator.calculate_confidence(1))
        assert len(rating_store.results) == 3
        assert len(rating_store.history) == 3

    @pytest.mark.asyncio
    async def test_two_runs_accumulate(self, build_service, make_match, agreeing_observations, rating_store):
        service = build_service([make_match()], agreeing_observations)

        await service.validate_match(MATCH_KEY, ["consensus"])
        await service.validate_match(MATCH_KEY, ["consensus"])

        history = await rating_store.get_history("alice")
        assert len(history) == 2
        assert history[1].elo_after == pytest.approx(history[0].elo_before)
        rating = await rating_store.get_rating("alice", 2025)
        assert rating.current_elo == pytest.approx(history[0].elo_after)
        assert rating.current_elo > 1516.0
        assert rating.total_validations == 2

    @pytest.mark.asyncio
    async def test_history_links_evidence(self, build_service, make_match, agreeing_observations, rating_store):
        service = build_service([make_match()], agreeing_observations)
        summary = await service.validate_match(MATCH_KEY, ["consensus"])

        entry = (await rating_store.get_history("bob"))[0]
        result_ids = {r.id for r in rating_store.results if r.scouter_id == "bob"}
        assert set(entry.validation_ids) == result_ids
        assert entry.execution_id == summary.execution_id
        assert entry.team_number == 254
        assert entry.match_key == MATCH_KEY

    @pytest.mark.asyncio
    async def test_lone_scout_is_skipped(self, build_service, make_match, make_observation, rating_store):
        observations = [make_observation("alice", teleop={"coral_scored_L2": 4})]
        service = build_service([make_match()], observations)

        summary = await service.validate_match(MATCH_KEY, ["consensus"])

        assert summary.state == "done"
        assert summary.scouters["alice"]["status"] == "skipped"
        assert summary.skips[0]["strategy"] == "consensus"
        assert summary.elo_updates == []
        assert await rating_store.find_rating("alice") is None
        assert rating_store.history == []

    @pytest.mark.asyncio
    async def test_missing_scouter_id_skipped(self, build_service, make_match, agreeing_observations, make_observation):
        observations = agreeing_observations + [make_observation(None, teleop={"coral_scored_L2": 4})]
        service = build_service([make_match()], observations)

        summary = await service.validate_match(MATCH_KEY, ["consensus"])

        assert any(s["reason"] == "missing_scouter_id" for s in summary.skips)
        assert len(summary.elo_updates) == 3

    @pytest.mark.asyncio
    async def test_invalid_match_key(self, build_service):
        service = build_service([], [])
        with pytest.raises(InvalidInput):
            await service.validate_match("not a key")
        with pytest.raises(InvalidInput):
            await service.validate_match("2025casj_xx1")

    @pytest.mark.asyncio
    async def test_unknown_strategy(self, build_service, make_match):
        service = build_service([make_match()], [])
        with pytest.raises(InvalidInput):
            await service.validate_match(MATCH_KEY, ["gut_feeling"])

    @pytest.mark.asyncio
    async def test_unknown_match(self, build_service):
        service = build_service([], [])
        with pytest.raises(NotFound):
            await service.validate_match(MATCH_KEY)

    @pytest.mark.asyncio
    async def test_persistence_error_isolated(self, build_service, make_match, agreeing_observations, rating_store):
        rating_store.fail_for.add("bob")
        service = build_service([make_match()], agreeing_observations)

        summary = await service.validate_match(MATCH_KEY, ["consensus"])

        assert summary.state == "done"
        assert summary.scouters["bob"]["status"] == "errored"
        assert summary.scouters_with_status("validated") == ["alice", "carol"]
        assert summary.errors[0]["code"] == "persistence_error"
        assert await rating_store.find_rating("bob") is None
        assert all(r.scouter_id != "bob" for r in rating_store.results)

    @pytest.mark.asyncio
    async def test_duplicate_run_version_skipped(self, build_service, make_match, agreeing_observations, rating_store):
        service = build_service([make_match()], agreeing_observations)

        first = await service.validate_match(MATCH_KEY, ["consensus"], run_version=1)
        second = await service.validate_match(MATCH_KEY, ["consensus"], run_version=1)

        assert len(first.elo_updates) == 3
        assert second.elo_updates == []
        assert second.skips[0]["reason"] == "duplicate_run"
        assert len(rating_store.history) == 3

    @pytest.mark.asyncio
    async def test_concurrent_run_reported(self, build_service, make_match, agreeing_observations, lock_registry):
        service = build_service([make_match()], agreeing_observations)

        async with lock_registry.hold(MATCH_KEY):
            summary = await service.validate_match(MATCH_KEY, ["consensus"])

        assert summary.state == "failed"
        assert summary.errors[0]["code"] == "run_in_progress"
        assert summary.elo_updates == []

    @pytest.mark.asyncio
    async def test_run_ledger_records_state(self, build_service, make_match, agreeing_observations, rating_store):
        service = build_service([make_match()], agreeing_observations)
        summary = await service.validate_match(MATCH_KEY, ["consensus"])

        runs = list(rating_store.runs.values())
        assert len(runs) == 1
        assert runs[0].state == "done"
        assert runs[0].strategy_set == "consensus"
        assert runs[0].summary["execution_id"] == summary.execution_id


class TestAggregation:
    @pytest.mark.asyncio
    async def test_critical_errors_weigh_double(self, build_service, make_match, make_observation):
        observations = [
            make_observation("alice", teleop={"coral_scored_L2": 4}, endgame={"cage_climb_successful": True}),
            make_observation("bob", teleop={"coral_scored_L2": 4}, endgame={"cage_climb_successful": False}),
            make_observation("carol", teleop={"coral_scored_L2": 4}, endgame={"cage_climb_successful": False}),
        ]
        service = build_service([make_match()], observations, field_specs=[L2, CLIMB], critical_error_weight=2.0)

        summary = await service.validate_match(MATCH_KEY, ["consensus"])

        alice = next(u for u in summary.elo_updates if u["scouter_id"] == "alice")
        # exact (1.0, w=1) + critical (0.0, w=2) -> 1/3
        assert alice["accuracy"] == pytest.approx(1 / 3, abs=1e-4)
        assert alice["outcome"] == "loss"

    @pytest.mark.asyncio
    async def test_strategy_weights(self, build_service, make_match, make_observation, official_source_factory):
        observations = [
            make_observation("alice", team_number=254, teleop={"coral_scored_L2": 4}, auto={"left_starting_zone": False}),
            make_observation("bob", team_number=254, teleop={"coral_scored_L2": 4}, auto={"left_starting_zone": True}),
            make_observation("carol", team_number=254, teleop={"coral_scored_L2": 4}, auto={"left_starting_zone": True}),
        ]
        official = build_official_result(
            MATCH_KEY, {"red": [254, 1678, 971], "blue": [1114, 2056, 118]},
            {"red": {"autoLineRobot1": "Yes"}, "blue": {}}, 2025,
        )
        service = build_service(
            [make_match()], observations,
            official_source=official_source_factory({MATCH_KEY: official}),
            strategy_weights={"consensus": 3.0, "official_result": 1.0},
        )

        summary = await service.validate_match(MATCH_KEY)

        alice = next(u for u in summary.elo_updates if u["scouter_id"] == "alice")
        # consensus exact (1.0, w=3) + official mismatch (0.0, w=1)
        assert alice["accuracy"] == pytest.approx(0.75)
        assert summary.strategy_breakdown["official_result"] == {"mismatch": 1, "exact_match": 2}

    @pytest.mark.asyncio
    async def test_k_factor_tiers(self, build_service, make_match, agreeing_observations):
        service = build_service([make_match()], agreeing_observations, use_k_factor_tiers=True)
        summary = await service.validate_match(MATCH_KEY, ["consensus"])
        assert summary.elo_updates[0]["k_factor"] == 40.0
        assert summary.elo_updates[0]["new_elo"] == pytest.approx(1520.0)


class TestOfficialSourceFailures:
    @pytest.mark.asyncio
    async def test_unreachable_source_drops_strategy(
        self, build_service, make_match, agreeing_observations, official_source_factory
    ):
        source = official_source_factory(error=ExternalSourceError("TBA down"))
        service = build_service([make_match()], agreeing_observations, official_source=source)

        summary = await service.validate_match(MATCH_KEY)

        assert summary.dropped_strategies == ["official_result"]
        assert summary.errors[0]["code"] == "external_source_error"
        assert summary.errors[0]["details"]["source"] == source.name
        assert summary.official_source_failed is True
        assert len(summary.elo_updates) == 3
        assert "official_result" not in summary.strategy_breakdown

    @pytest.mark.asyncio
    async def test_missing_official_result_skips_per_scouter(
        self, build_service, make_match, agreeing_observations, official_source_factory
    ):
        service = build_service([make_match()], agreeing_observations, official_source=official_source_factory())

        summary = await service.validate_match(MATCH_KEY)

        official_skips = [s for s in summary.skips if s["strategy"] == "official_result"]
        assert len(official_skips) == 3
        assert summary.dropped_strategies == []
        assert summary.scouters_with_status("validated") == ["alice", "bob", "carol"]

    @pytest.mark.asyncio
    async def test_no_source_configured(self, build_service, make_match, agreeing_observations):
        service = build_service([make_match()], agreeing_observations)
        summary = await service.validate_match(MATCH_KEY)
        assert summary.dropped_strategies == ["official_result"]


class TestValidateEvent:
    @pytest.mark.asyncio
    async def test_runs_every_match_in_order(
        self, build_service, make_match, make_observation, official_source_factory
    ):
        matches = [make_match("2025casj_qm2"), make_match("2025casj_qm1"), make_match("2025casj_sf1m1")]
        observations = [
            make_observation(s, match_key=m.match_key, teleop={"coral_scored_L2": 4})
            for m in matches
            for s in ("alice", "bob", "carol")
        ]
        source = official_source_factory()
        service = build_service(matches, observations, official_source=source)

        summary = await service.validate_event("2025casj")

        assert summary.match_keys == ["2025casj_qm1", "2025casj_qm2", "2025casj_sf1m1"]
        assert source.prefetched == ["2025casj"]
        assert len(summary.elo_updates) == 9
        assert summary.total_validations == 9
        assert summary.scouters_with_status("validated") == ["alice", "bob", "carol"]
        assert summary.cancelled is False

    @pytest.mark.asyncio
    async def test_failed_source_dropped_for_rest_of_event(
        self, build_service, make_match, make_observation, official_source_factory
    ):
        matches = [make_match("2025casj_qm1"), make_match("2025casj_qm2"), make_match("2025casj_qm3")]
        observations = [
            make_observation(s, match_key=m.match_key, teleop={"coral_scored_L2": 4})
            for m in matches
            for s in ("alice", "bob", "carol")
        ]
        source = official_source_factory(error=ExternalSourceError("TBA down"))
        service = build_service(matches, observations, official_source=source)

        summary = await service.validate_event("2025casj")

        assert source.calls == ["2025casj_qm1"]
        assert summary.dropped_strategies == ["official_result"]
        assert summary.official_source_failed is True
        assert [e["match_key"] for e in summary.errors] == ["2025casj_qm1", "2025casj_qm2", "2025casj_qm3"]
        assert all(e["code"] == "external_source_error" for e in summary.errors)
        assert len(summary.elo_updates) == 9

    @pytest.mark.asyncio
    async def test_cancellation_between_matches(self, build_service, make_match, make_observation):
        matches = [make_match("2025casj_qm1"), make_match("2025casj_qm2")]
        service = build_service(matches, [])
        cancel = asyncio.Event()
        cancel.set()

        summary = await service.validate_event("2025casj", ["consensus"], cancel_event=cancel)

        assert summary.cancelled is True
        assert summary.match_keys == []

    @pytest.mark.asyncio
    async def test_invalid_event_key(self, build_service):
        with pytest.raises(InvalidInput):
            await build_service([], []).validate_event("casj-2025")

    @pytest.mark.asyncio
    async def test_event_without_matches(self, build_service):
        with pytest.raises(NotFound):
            await build_service([], []).validate_event("2025casj")

    @pytest.mark.asyncio
    async def test_prefetch_failure_falls_back_per_match(
        self, build_service, make_match, agreeing_observations, official_source_factory
    ):
        """A failed event prefetch does not stop the run; results are fetched per match."""
        source = official_source_factory()
        source.prefetch_event = AsyncMock(side_effect=ExternalSourceError("TBA down"))
        service = build_service([make_match()], agreeing_observations, official_source=source)

        summary = await service.validate_event("2025casj")

        source.prefetch_event.assert_awaited_once_with("2025casj")
        assert source.calls == [MATCH_KEY]
        assert len(summary.elo_updates) == 3


class TestReadPaths:
    @pytest.mark.asyncio
    async def test_leaderboard_and_history(self, build_service, make_match, make_observation, rating_store):
        observations = [
            make_observation("alice", teleop={"coral_scored_L2": 4}),
            make_observation("bob", teleop={"coral_scored_L2": 4}),
            make_observation("dave", teleop={"coral_scored_L2": 4}),
            make_observation("carol", teleop={"coral_scored_L2": 9}),
        ]
        service = build_service([make_match()], observations)
        await service.validate_match(MATCH_KEY, ["consensus"])

        board = await service.get_leaderboard(2025)
        assert board[-1].scouter_id == "carol"
        history = await service.get_scouter_history("carol", limit=10)
        assert history[0].outcome == "loss"
        assert (await service.get_scouter_rating("carol")).current_elo < 1500

    @pytest.mark.asyncio
    async def test_history_limit_validated(self, build_service):
        with pytest.raises(InvalidInput):
            await build_service([], []).get_scouter_history("alice", limit=0)

    @pytest.mark.asyncio
    async def test_evidence_reads(self, build_service, make_match, make_observation):
        observations = [
            make_observation("alice", teleop={"coral_scored_L2": 4}),
            make_observation("bob", teleop={"coral_scored_L2": 4}),
            make_observation("dave", teleop={"coral_scored_L2": 4}),
            make_observation("carol", teleop={"coral_scored_L2": 9}),
        ]
        service = build_service([make_match()], observations)
        summary = await service.validate_match(MATCH_KEY, ["consensus"])

        match_rows = await service.get_match_validations(MATCH_KEY)
        assert len(match_rows) == 4
        assert {r.id for r in await service.get_execution_results(summary.execution_id)} == {r.id for r in match_rows}

        carol_rows = await service.get_scouter_validations("carol", outcome="mismatch")
        assert [r.field_path for r in carol_rows] == ["teleop.coral_scored_L2"]
        assert await service.get_scouter_validations("alice", outcome="mismatch") == []

        event_stats = await service.get_validation_statistics(event_key="2025casj")
        assert event_stats.total_validations == 4
        assert event_stats.average_accuracy == pytest.approx(0.75)
        assert event_stats.to_dict()["mismatches"] == 1
        carol_stats = await service.get_validation_statistics(scouter_id="carol")
        assert carol_stats.average_accuracy == 0.0

    @pytest.mark.asyncio
    async def test_event_leaderboard(self, build_service, make_match, make_observation):
        matches = [make_match("2025casj_qm1"), make_match("2025txho_qm1")]
        observations = [
            make_observation(s, match_key="2025casj_qm1", teleop={"coral_scored_L2": 4})
            for s in ("alice", "bob", "carol")
        ] + [
            make_observation(s, match_key="2025txho_qm1", teleop={"coral_scored_L2": 4})
            for s in ("xena", "yuri", "zoe")
        ]
        service = build_service(matches, observations)
        await service.validate_event("2025casj", ["consensus"])
        await service.validate_event("2025txho", ["consensus"])

        board = await service.get_leaderboard(event_key="2025txho")
        assert sorted(r.scouter_id for r in board) == ["xena", "yuri", "zoe"]
        assert len(await service.get_leaderboard(2025)) == 6
        assert await service.get_leaderboard(event_key="2025mnmi") == []

    @pytest.mark.asyncio
    async def test_read_arguments_validated(self, build_service):
        service = build_service([], [])
        with pytest.raises(InvalidInput):
            await service.get_validation_statistics()
        with pytest.raises(InvalidInput):
            await service.get_validation_statistics(scouter_id="alice", event_key="2025casj")
        with pytest.raises(InvalidInput):
            await service.get_match_validations("qm1")
        with pytest.raises(InvalidInput):
            await service.get_scouter_validations("alice", outcome="perfect")
        with pytest.raises(InvalidInput):
            await service.get_leaderboard(event_key="casj")


class TestSummary:
    def test_merge(self):
        first = ValidationExecutionSummary(execution_id="a", match_keys=["2025casj_qm1"])
        first.set_scouter_status("alice", "validated")
        first.count_results("consensus", ["exact_match", "mismatch"])
        second = ValidationExecutionSummary(execution_id="b", match_keys=["2025casj_qm2"])
        second.add_skip("2025casj_qm2", "too few scouts", "alice", "consensus")
        second.count_results("consensus", ["exact_match"])
        second.dropped_strategies.append("official_result")

        event = ValidationExecutionSummary(execution_id="e", event_key="2025casj")
        event.merge(first)
        event.merge(second)

        assert event.match_keys == ["2025casj_qm1", "2025casj_qm2"]
        assert event.scouters["alice"]["status"] == "validated"
        assert event.strategy_breakdown == {"consensus": {"exact_match": 2, "mismatch": 1}}
        assert event.total_validations == 3
        assert event.dropped_strategies == ["official_result"]
        data = event.to_dict()
        assert data["scouters_validated"] == 1
        assert data["skips"][0]["reason"] == "too few scouts"
