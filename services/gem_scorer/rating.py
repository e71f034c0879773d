"""
Comprehensive 0-100 stock rating.

Breakdown (maximum points):
- Quality (30): QM score, ROE, ROIC, operating margin, gross margin
- Value (25): value gap, P/E, P/B, FCF yield, earnings yield
- Growth (20): 5-year revenue, net income and FCF growth
- Safety (20): debt coverage, current ratio, interest coverage, FCF, dividends
- Momentum (5): position in the 52-week range (lower is better)

Sector-relative quality compares ROIC and operating margin with sector
averages. It is informational and does not feed the tier confidence.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Dict, Any, Sequence, Tuple
import logging

from shared.configs.models import SectorBenchmarks
from shared.utilities.numeric import percent_change, round_half_up
from services.data_collector.financial_dataset import FinancialDataset, KeyMetrics
from services.gem_scorer.quality_calculator import DEBT_COVERAGE, MAX_QM_SCORE, QMScore
from services.gem_scorer.timeframe_scorer import score_to_rating
from services.gem_scorer.valuation import ValuationResult

logger = logging.getLogger(__name__)


class SectorQuality(str, Enum):
    SUPERIOR = "superior"
    AVERAGE = "average"
    BELOW = "below"


@dataclass(frozen=True)
class RatingBreakdown:
    quality: int
    value: int
    growth: int
    safety: int
    momentum: int

    @property
    def total(self) -> int:
        return self.quality + self.value + self.growth + self.safety + self.momentum


@dataclass(frozen=True)
class SectorRelativeQuality:
    """ROIC and margin relative to sector averages (1.0 = sector average)."""
    roic_ratio: Optional[float]
    margin_ratio: Optional[float]
    quality: Optional[SectorQuality]


@dataclass(frozen=True)
class RatingAnalysis:
    score: int
    rating: str
    breakdown: RatingBreakdown
    sector_quality: Optional[SectorQuality]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'rating_score': self.score,
            'rating': self.rating,
            'quality_points': self.breakdown.quality,
            'value_points': self.breakdown.value,
            'growth_points': self.breakdown.growth,
            'safety_points': self.breakdown.safety,
            'momentum_points': self.breakdown.momentum,
            'sector_quality': self.sector_quality.value if self.sector_quality else None,
        }


def _tiered(value: Optional[float], bands: Sequence[Tuple[float, int]], above: bool = True) -> int:
    """
    Points for the first band the value clears.

    With above=True a band (limit, points) matches value > limit, otherwise
    value < limit. Missing values score zero.
    """
    if value is None:
        return 0
    for limit, points in bands:
        if (value > limit) if above else (value < limit):
            return points
    return 0


def _pct(fraction: Optional[float]) -> Optional[float]:
    return fraction * 100 if fraction is not None else None


class RatingEngine:
    """Builds the comprehensive rating and sector-relative quality."""

    def __init__(self, benchmarks: Optional[SectorBenchmarks] = None):
        self.benchmarks = benchmarks or SectorBenchmarks()

    def rate(
        self,
        qm_score: QMScore,
        valuation: ValuationResult,
        dataset: FinancialDataset,
        sector: Optional[str] = None
    ) -> RatingAnalysis:
        """
        Rate a stock.

        Args:
            qm_score: Quality score
            valuation: Valuation result
            dataset: Source statements (for growth, safety and momentum inputs)
            sector: Sector label for sector-relative quality

        Returns:
            RatingAnalysis
        """
        metrics = dataset.latest_key_metrics or KeyMetrics()
        breakdown = RatingBreakdown(
            quality=self._quality_points(qm_score, metrics),
            value=self._value_points(valuation, metrics),
            growth=self._growth_points(dataset),
            safety=self._safety_points(qm_score, dataset, metrics),
            momentum=self._momentum_points(dataset),
        )
        relative = self.sector_relative_quality(
            _pct(metrics.roic),
            qm_score.auxiliary_metrics.operating_margin,
            sector if sector is not None else dataset.sector,
        )
        return RatingAnalysis(
            score=breakdown.total,
            rating=score_to_rating(breakdown.total),
            breakdown=breakdown,
            sector_quality=relative.quality,
        )

    def sector_relative_quality(
        self,
        roic: Optional[float],
        operating_margin: Optional[float],
        sector: Optional[str]
    ) -> SectorRelativeQuality:
        """
        Compare ROIC and operating margin (both percent) with sector averages.

        quality is None unless both inputs are known.
        """
        benchmark = self.benchmarks.for_sector(sector)
        roic_ratio = roic / benchmark.roic if roic is not None else None
        margin_ratio = operating_margin / benchmark.operating_margin if operating_margin is not None else None

        quality = None
        if roic_ratio is not None and margin_ratio is not None:
            average = (roic_ratio + margin_ratio) / 2
            if average >= self.benchmarks.superior_ratio:
                quality = SectorQuality.SUPERIOR
            elif average >= self.benchmarks.average_ratio:
                quality = SectorQuality.AVERAGE
            else:
                quality = SectorQuality.BELOW

        return SectorRelativeQuality(roic_ratio=roic_ratio, margin_ratio=margin_ratio, quality=quality)

    # ------------------------------------------------------------------
    # Categories
    # ------------------------------------------------------------------

    @staticmethod
    def _quality_points(qm_score: QMScore, metrics: KeyMetrics) -> int:
        aux = qm_score.auxiliary_metrics
        points = qm_score.total_score / MAX_QM_SCORE * 12
        points += _tiered(aux.roe, [(20, 6), (15, 4), (10, 2)])
        points += _tiered(_pct(metrics.roic), [(15, 4), (10, 3), (7, 2), (5, 1)])
        points += _tiered(aux.operating_margin, [(20, 4), (12, 3), (8, 2), (5, 1)])
        points += _tiered(aux.gross_margin, [(50, 4), (35, 3), (25, 2), (15, 1)])
        return min(30, round_half_up(points))

    @staticmethod
    def _value_points(valuation: ValuationResult, metrics: KeyMetrics) -> int:
        points = _tiered(valuation.value_gap_percent, [(30, 8), (20, 6), (10, 4), (0, 2)])

        pe = valuation.observed_pe
        if pe is not None and pe > 0:
            points += _tiered(pe, [(10, 6), (15, 4), (20, 3), (25, 2)], above=False)

        pb = metrics.pb_ratio
        if pb is not None and pb > 0:
            points += _tiered(pb, [(1, 4), (2, 3), (3, 2), (5, 1)], above=False)

        points += _tiered(_pct(metrics.free_cash_flow_yield), [(10, 4), (7, 3), (5, 2), (3, 1)])
        points += _tiered(_pct(metrics.earnings_yield), [(10, 3), (7, 2), (5, 1)])
        return min(25, round_half_up(points))

    @staticmethod
    def _growth_points(dataset: FinancialDataset) -> int:
        def growth(latest: Optional[float], oldest: Optional[float]) -> Optional[float]:
            if oldest is None or oldest <= 0:
                return None
            return percent_change(latest, oldest)

        latest_income, oldest_income = dataset.latest_income, dataset.oldest_income
        latest_cf, oldest_cf = dataset.latest_cash_flow, dataset.oldest_cash_flow

        points = 0
        if latest_income and oldest_income:
            points += _tiered(growth(latest_income.revenue, oldest_income.revenue),
                              [(50, 7), (30, 5), (15, 3), (0, 1)])
            points += _tiered(growth(latest_income.net_income, oldest_income.net_income),
                              [(50, 7), (30, 5), (15, 3), (0, 1)])
        if latest_cf and oldest_cf:
            points += _tiered(growth(latest_cf.free_cash_flow, oldest_cf.free_cash_flow),
                              [(50, 6), (30, 4), (15, 2), (0, 1)])
        return min(20, points)

    @staticmethod
    def _safety_points(qm_score: QMScore, dataset: FinancialDataset, metrics: KeyMetrics) -> int:
        points = _tiered(qm_score.measured(DEBT_COVERAGE), [(1, 5), (2, 4), (3, 3), (5, 2)], above=False)
        points += _tiered(qm_score.auxiliary_metrics.current_ratio, [(2, 3), (1.5, 2), (1, 1)])
        points += _tiered(metrics.interest_coverage, [(10, 3), (5, 2), (2, 1)])

        latest_fcf = dataset.latest_free_cash_flow
        if latest_fcf is not None and latest_fcf > 0:
            points += 2

        points += _tiered(_pct(metrics.dividend_yield), [(4, 4), (3, 3), (2, 2), (1, 1)])

        payout = _pct(metrics.payout_ratio)
        if payout is not None and payout > 0:
            if 30 <= payout <= 60:
                points += 3
            elif 20 <= payout <= 70:
                points += 2
            elif payout < 80:
                points += 1
        return min(20, points)

    @staticmethod
    def _momentum_points(dataset: FinancialDataset) -> int:
        quote = dataset.quote
        if quote is None or quote.price is None:
            return 0
        high, low = quote.year_high, quote.year_low
        if not high or not low or high <= 0 or low <= 0 or high <= low:
            return 0
        position = (quote.price - low) / (high - low)
        return _tiered(position, [(0.2, 5), (0.35, 4), (0.5, 3), (0.65, 2), (0.8, 1)], above=False)
