"""Tests for rank tiers."""

import pytest

from scoutelo.elo.ranks import EloRank, get_progress_to_next_rank, get_rank


class TestGetRank:
    @pytest.mark.parametrize(
        "elo,rank",
        [
            (2100, EloRank.DIAMOND),
            (2000, EloRank.DIAMOND),
            (1999.9, EloRank.PLATINUM),
            (1450, EloRank.GOLD),
            (1100, EloRank.SILVER),
            (800, EloRank.BRONZE),
            (799, EloRank.UNRANKED),
            (0, EloRank.UNRANKED),
        ],
    )
    def test_thresholds(self, elo, rank):
        assert get_rank(elo) == rank


class TestProgress:
    def test_gold_to_platinum(self):
        progress = get_progress_to_next_rank(1450)
        assert progress.rank == EloRank.GOLD
        assert progress.next_rank == EloRank.PLATINUM
        assert progress.points_needed == pytest.approx(250)
        assert progress.progress == pytest.approx(50 / 300 * 100)

    def test_top_tier(self):
        progress = get_progress_to_next_rank(2400)
        assert progress.next_rank is None
        assert progress.progress == 100.0
        assert progress.points_needed == 0.0

    def test_unranked_progress(self):
        progress = get_progress_to_next_rank(400)
        assert progress.next_rank == EloRank.BRONZE
        assert progress.progress == pytest.approx(50.0)

    def test_to_dict(self):
        data = get_progress_to_next_rank(1450).to_dict()
        assert data["rank"] == "gold"
        assert data["next_rank"] == "platinum"
