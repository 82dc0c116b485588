"""Tests for the scoring engine."""

from loadscope.analysis.scoring import (
    MIB,
    UX_ALL_GOOD,
    UX_NOT_MEASURED,
    load_time_category,
    resource_count_category,
    score,
    total_size_category,
    user_experience_category,
    weighted_overall,
)
from loadscope.capture.web_vitals import build_web_vitals
from loadscope.models.score import ScoreCategory
from loadscope.models.session import SessionAggregate
from loadscope.models.types import Rating


def _aggregate(duration_ms: float, count: int, size: int) -> SessionAggregate:
    return SessionAggregate(
        url="https://a.com/",
        total_duration_ms=duration_ms,
        resource_count=count,
        total_bytes=size,
    )


def _cat(value: int) -> ScoreCategory:
    return ScoreCategory(score=value, value="", rating=Rating.GOOD, recommendation="")


class TestScoringExample:
    def test_fast_small_page_without_vitals(self) -> None:
        result = score(_aggregate(800, 20, 500 * 1024))
        assert result.load_time.score == 100
        assert result.resource_count.score == 100
        assert result.total_size.score == 100
        assert result.user_experience.score == 50
        assert result.user_experience.rating == Rating.NEEDS_IMPROVEMENT
        assert result.user_experience.recommendation == UX_NOT_MEASURED
        assert result.overall == 85
        assert result.rating == Rating.GOOD

    def test_deterministic(self) -> None:
        aggregate = _aggregate(2300, 64, 4 * MIB)
        assert score(aggregate) == score(aggregate)


class TestLoadTime:
    def test_bands(self) -> None:
        assert load_time_category(0.5).score == 100
        assert load_time_category(1.5).score == 90
        assert load_time_category(1.5).rating == Rating.GOOD
        assert load_time_category(3.0).score == 60
        assert load_time_category(3.0).rating == Rating.NEEDS_IMPROVEMENT
        assert load_time_category(5.0).score == 30
        assert load_time_category(5.0).rating == Rating.POOR
        assert load_time_category(60.0).score == 0

    def test_value_and_recommendation(self) -> None:
        category = load_time_category(0.8)
        assert category.value == "800 ms"
        assert category.recommendation.startswith("Excellent load time")
        assert "blocking" in load_time_category(9.0).recommendation

    def test_monotonic_in_duration(self) -> None:
        scores = [load_time_category(tenths / 10).score for tenths in range(100, -1, -1)]
        assert scores == sorted(scores)


class TestResourceCount:
    def test_bands(self) -> None:
        assert resource_count_category(29).score == 100
        assert resource_count_category(40).score == 90
        assert resource_count_category(60).score == 65
        assert resource_count_category(60).rating == Rating.NEEDS_IMPROVEMENT
        assert resource_count_category(150).score == 30
        assert resource_count_category(1000).score == 0
        assert resource_count_category(12).value == "12 requests"

    def test_monotonic_in_count(self) -> None:
        scores = [resource_count_category(n).score for n in range(0, 400)]
        assert scores == sorted(scores, reverse=True)


class TestTotalSize:
    def test_bands(self) -> None:
        assert total_size_category(MIB - 1).score == 100
        assert total_size_category(2 * MIB).score == 85
        assert total_size_category(4 * MIB).score == 55
        assert total_size_category(4 * MIB).rating == Rating.NEEDS_IMPROVEMENT
        assert total_size_category(10 * MIB).score == 0
        assert total_size_category(2 * MIB).value == "2.00 MB"

    def test_monotonic_in_size(self) -> None:
        sizes = range(0, 12 * MIB, MIB // 8)
        scores = [total_size_category(s).score for s in sizes]
        assert scores == sorted(scores, reverse=True)


class TestUserExperience:
    def test_all_good(self) -> None:
        category = user_experience_category(build_web_vitals(1200, 0.05, 50))
        assert category.score == 88
        assert category.rating == Rating.GOOD
        assert category.recommendation == UX_ALL_GOOD

    def test_average_and_advice(self) -> None:
        category = user_experience_category(build_web_vitals(5000, 0.05, 50))
        assert category.score == (45 + 88 + 88) // 3
        assert category.rating == Rating.NEEDS_IMPROVEMENT
        assert "Improve LCP" in category.recommendation
        assert "CLS" not in category.recommendation

    def test_score_falls_back_to_aggregate_vitals(self) -> None:
        aggregate = _aggregate(800, 20, 1024)
        aggregate.web_vitals = build_web_vitals(1200, 0.05, 50)
        result = score(aggregate)
        assert result.user_experience.score == 88
        assert result.overall == (30 * 100 + 20 * 100 + 20 * 100 + 30 * 88 + 50) // 100

    def test_explicit_vitals_win(self) -> None:
        aggregate = _aggregate(800, 20, 1024)
        aggregate.web_vitals = build_web_vitals(1200, 0.05, 50)
        result = score(aggregate, build_web_vitals(5000, 0.5, 500))
        assert result.user_experience.rating == Rating.POOR


class TestWeightedOverall:
    def test_rounds_once_half_up(self) -> None:
        categories = {
            "load_time": _cat(100),
            "resource_count": _cat(100),
            "total_size": _cat(95),
            "user_experience": _cat(55),
        }
        # 30 + 20 + 19 + 16.5 = 85.5
        assert weighted_overall(categories) == 86

    def test_bounds(self) -> None:
        zeros = {name: _cat(0) for name in ("load_time", "resource_count", "total_size", "user_experience")}
        hundreds = {name: _cat(100) for name in zeros}
        assert weighted_overall(zeros) == 0
        assert weighted_overall(hundreds) == 100
