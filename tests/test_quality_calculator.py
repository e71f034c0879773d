"""
Unit tests for the QM score engine.

Covers the eight pillars, missing-data handling and the growth signals.
"""
import pytest

from shared.configs.models import QualityThresholds
from services.data_collector.financial_dataset import FinancialDataset, Quote
from services.gem_scorer.quality_calculator import (
    DEBT_COVERAGE,
    FCF_GROWTH,
    NET_INCOME_GROWTH,
    PE_5Y,
    PILLAR_NAMES,
    PRICE_TO_FCF_5Y,
    QMScoreEngine,
    REVENUE_GROWTH,
    ROIC_5Y,
    SHARES_OUTSTANDING,
)
from tests.factories import MILLION, make_dataset


class TestQMScoreEngine:
    """Test suite for QMScoreEngine."""

    @pytest.fixture
    def engine(self):
        return QMScoreEngine()

    def test_quality_company_passes_all_pillars(self, engine, quality_dataset):
        """A growing, cash-rich company scores 8/8."""
        score = engine.evaluate(quality_dataset)

        assert score.total_score == 8
        assert [p.name for p in score.pillars] == list(PILLAR_NAMES)
        assert all(p.passed for p in score.pillars)
        assert score.growth_signals.count == 3
        assert score.shares_decreasing is True

    def test_measured_values(self, engine, quality_dataset):
        """Measured values follow the pillar formulas."""
        score = engine.evaluate(quality_dataset)

        assert score.measured(PE_5Y) == pytest.approx(2_000 / 900)
        assert score.measured(ROIC_5Y) == pytest.approx(50.0)
        assert score.measured(SHARES_OUTSTANDING) == pytest.approx(-5.0)
        assert score.measured(FCF_GROWTH) == pytest.approx((220 - 170) / 170 * 100)
        assert score.measured(NET_INCOME_GROWTH) == pytest.approx((200 - 150) / 150 * 100)
        assert score.measured(REVENUE_GROWTH) == pytest.approx(50.0)
        assert score.measured(DEBT_COVERAGE) == pytest.approx(2.0)
        assert score.measured(PRICE_TO_FCF_5Y) == pytest.approx(2.0)

    def test_auxiliary_metrics(self, engine, quality_dataset):
        """ROE, margins and current ratio come from the latest statements."""
        aux = engine.evaluate(quality_dataset).auxiliary_metrics

        assert aux.roe == pytest.approx(200 / 1_500 * 100)
        assert aux.gross_margin == pytest.approx(50.0)
        assert aux.operating_margin == pytest.approx(25.0)
        assert aux.current_ratio == pytest.approx(2.0)

    def test_empty_dataset_scores_zero(self, engine):
        """No statements: every pillar is None and not passed."""
        score = engine.evaluate(FinancialDataset.build(symbol="EMPTY"))

        assert score.total_score == 0
        assert all(p.measured_value is None and not p.passed for p in score.pillars)
        assert score.growth_signals.count == 0

    def test_missing_value_in_window_nulls_pillar(self, engine):
        """A missing year inside the summation window makes the 5-year P/E unknown."""
        dataset = make_dataset(net_income=(200, None, 180, 170, 160, 150))
        score = engine.evaluate(dataset)

        assert score.measured(PE_5Y) is None
        assert score.pillar(PE_5Y).passed is False

    def test_negative_earnings_fail_pe(self, engine):
        """A negative 5-year earnings sum is a degenerate denominator."""
        dataset = make_dataset(net_income=(-50, -40, -30, -20, -10, 5))
        score = engine.evaluate(dataset)

        assert score.measured(PE_5Y) is None
        assert not score.pillar(PE_5Y).passed
        assert not score.pillar(NET_INCOME_GROWTH).passed

    def test_missing_market_cap(self, engine):
        """Without a market cap neither price multiple can be computed."""
        score = engine.evaluate(make_dataset(market_cap=None))

        assert score.measured(PE_5Y) is None
        assert score.measured(PRICE_TO_FCF_5Y) is None
        assert score.total_score == 6

    def test_roic_requires_equity_and_debt(self, engine):
        """ROIC is unknown when total debt is not reported."""
        score = engine.evaluate(make_dataset(total_debt=None))

        assert score.measured(ROIC_5Y) is None
        assert not score.pillar(ROIC_5Y).passed

    def test_low_roic_fails(self, engine):
        """ROIC at or below 9 % does not pass."""
        score = engine.evaluate(make_dataset(equity=12_000, total_debt=0))

        assert score.measured(ROIC_5Y) == pytest.approx(1_000 / 12_000 * 100)
        assert not score.pillar(ROIC_5Y).passed

    def test_growth_from_zero_base_is_unknown(self, engine):
        """Zero oldest revenue gives no growth value and no pass."""
        dataset = make_dataset(revenue=(150, 140, 130, 120, 110, 0))
        score = engine.evaluate(dataset)

        assert score.measured(REVENUE_GROWTH) is None
        assert not score.growth_signals.revenue_growing

    def test_fcf_growth_requires_positive_latest(self, engine):
        """FCF that improves but stays negative is not a growth signal."""
        dataset = make_dataset(free_cash_flow=(-10, -20, -30, -40, -50, -60))
        score = engine.evaluate(dataset)

        assert score.measured(FCF_GROWTH) == pytest.approx((-10 + 60) / 60 * 100)
        assert not score.pillar(FCF_GROWTH).passed
        assert score.measured(DEBT_COVERAGE) is None

    def test_revenue_growth_does_not_require_positive(self, engine):
        """Revenue growth passes on any increase."""
        score = engine.evaluate(make_dataset(revenue=(101, 100, 100, 100, 100, 100)))
        assert score.pillar(REVENUE_GROWTH).passed

    def test_flat_share_count_is_not_decreasing(self, engine):
        """Shares must strictly decrease."""
        score = engine.evaluate(make_dataset(shares=(100, 100, 100, 100, 100, 100)))

        assert score.measured(SHARES_OUTSTANDING) == pytest.approx(0.0)
        assert score.shares_decreasing is False

    def test_shares_fall_back_to_quote(self, engine):
        """Without a latest weighted share count the quote's share count is used."""
        dataset = make_dataset(shares=(None, 96, 97, 98, 99, 100))
        score = engine.evaluate(dataset)

        assert score.measured(SHARES_OUTSTANDING) == pytest.approx(-5.0)
        assert score.shares_decreasing is True

    def test_short_history_uses_oldest_available(self, engine):
        """With two years of statements the second one is the comparison base."""
        dataset = make_dataset(
            revenue=(120, 100),
            net_income=(20, 10),
            free_cash_flow=(30, 20),
            shares=(90, 100),
        )
        score = engine.evaluate(dataset)

        assert score.measured(REVENUE_GROWTH) == pytest.approx(20.0)
        assert score.measured(NET_INCOME_GROWTH) == pytest.approx(100.0)
        assert score.measured(PE_5Y) == pytest.approx(2_000 / 30)

    def test_custom_thresholds(self, quality_dataset):
        """Thresholds come from configuration."""
        engine = QMScoreEngine(QualityThresholds(max_pe=2.0))
        score = engine.evaluate(quality_dataset)

        assert not score.pillar(PE_5Y).passed
        assert score.total_score == 7

    def test_non_positive_market_cap(self, engine):
        """A zero market cap is treated as missing."""
        dataset = FinancialDataset.build(symbol="ZERO", quote=Quote(market_cap=0.0))
        assert engine.evaluate(dataset).measured(PE_5Y) is None

    def test_to_dict_matches_storage_columns(self, engine, quality_dataset):
        """Flattened score carries value and pass flag per pillar."""
        data = engine.evaluate(quality_dataset).to_dict()

        assert data['symbol'] == "GEM"
        assert data['total_score'] == 8
        assert data['growth_signal_count'] == 3
        for name in PILLAR_NAMES:
            assert f"{name}_value" in data
            assert data[f"{name}_passed"] is True
        assert data['current_ratio'] == pytest.approx(2.0)


def test_statements_are_sorted_newest_first():
    """Dataset building orders statements by date regardless of input order."""
    dataset = make_dataset()
    reordered = FinancialDataset.build(
        symbol="gem",
        quote=dataset.quote,
        income_statements=list(reversed(dataset.income_statements)),
    )

    assert reordered.symbol == "GEM"
    assert reordered.latest_income.date == "2024-12-31"
    assert reordered.oldest_income.date == "2019-12-31"
    assert reordered.market_cap == 2_000 * MILLION


THRESHOLDS = QualityThresholds()

PASSING_VALUE_CHECKS = {
    PE_5Y: lambda v: 0 < v < THRESHOLDS.max_pe,
    ROIC_5Y: lambda v: v > THRESHOLDS.min_roic_pct,
    SHARES_OUTSTANDING: lambda v: v < 0,
    FCF_GROWTH: lambda v: v > 0,
    NET_INCOME_GROWTH: lambda v: v > 0,
    REVENUE_GROWTH: lambda v: v > 0,
    DEBT_COVERAGE: lambda v: v < THRESHOLDS.max_debt_to_fcf,
    PRICE_TO_FCF_5Y: lambda v: 0 < v < THRESHOLDS.max_price_to_fcf,
}


class TestPassedPillarsHaveValues:
    """A passed pillar always reports a measured value inside its threshold."""

    @pytest.mark.parametrize("dataset", [
        FinancialDataset.build(symbol="EMPTY"),
        FinancialDataset.build(symbol="THIN", quote=Quote(price=10.0, market_cap=2_000 * MILLION)),
        make_dataset(),
        make_dataset(revenue=(150, None, 130, 120, 110, None), total_debt=None),
        make_dataset(net_income=(-50, -40, -30, -20, -10, 5), free_cash_flow=(-5, 10, 10, 10, 10, 10)),
        make_dataset(shares=(100, 100, 100, 100, 100, 100), long_term_debt=5_000, market_cap=90_000 * MILLION),
        make_dataset(revenue=(90, 100, 100, 100, 100, 100), free_cash_flow=(220, 210, None, 190, 180, 170)),
    ], ids=["empty", "quote-only", "quality", "partial", "loss-maker", "expensive", "shrinking"])
    def test_passed_implies_value_within_threshold(self, dataset):
        """Every passed pillar has a non-null value that satisfies its inequality."""
        score = QMScoreEngine(THRESHOLDS).evaluate(dataset)

        assert {p.name for p in score.pillars} == set(PILLAR_NAMES)
        for pillar in score.pillars:
            if pillar.passed:
                assert pillar.measured_value is not None, pillar.name
                assert PASSING_VALUE_CHECKS[pillar.name](pillar.measured_value), pillar.name
        assert score.total_score == sum(p.passed for p in score.pillars)
