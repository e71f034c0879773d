"""
Investment-horizon scoring.

Re-weights four normalized signals (quality, value, growth, momentum) for a
short, medium or long-term horizon. Each horizon also has an admission
filter and its own gem criteria and tier names.
"""
from dataclasses import dataclass
from typing import Optional, Dict, Any, Mapping
import logging

from shared.configs.models import InvestmentHorizon, TimeframeProfile, ScoringConfig
from shared.utilities.numeric import clamp, percent_change, round_half_up
from services.data_collector.financial_dataset import FinancialDataset
from services.gem_scorer.quality_calculator import QMScore
from services.gem_scorer.valuation import ValuationResult

logger = logging.getLogger(__name__)

STRONG_BUY = "Strong Buy"
BUY = "Buy"
HOLD = "Hold"
SELL = "Sell"


def score_to_rating(score: float) -> str:
    """Map a 0-100 score to a rating label."""
    if score >= 75:
        return STRONG_BUY
    if score >= 55:
        return BUY
    if score >= 35:
        return HOLD
    return SELL


@dataclass(frozen=True)
class StockSignals:
    """Inputs of the timeframe scorer for one stock."""
    qm_score: int
    value_gap_percent: Optional[float] = None
    pe_ratio: Optional[float] = None
    market_cap: Optional[float] = None
    price: Optional[float] = None
    year_high: Optional[float] = None
    year_low: Optional[float] = None
    revenue_growth: Optional[float] = None  # YoY %
    eps_growth: Optional[float] = None  # YoY %
    price_change_3m: Optional[float] = None  # %

    @classmethod
    def from_analysis(
        cls,
        dataset: FinancialDataset,
        qm_score: QMScore,
        valuation: ValuationResult
    ) -> "StockSignals":
        """Derive signals from a dataset and its quality and valuation results."""
        revenue_growth = None
        eps_growth = None
        if len(dataset.income_statements) >= 2:
            latest, previous = dataset.income_statements[0], dataset.income_statements[1]
            revenue_growth = percent_change(latest.revenue, previous.revenue)
            eps_growth = percent_change(latest.eps, previous.eps)

        quote = dataset.quote
        return cls(
            qm_score=qm_score.total_score,
            value_gap_percent=valuation.value_gap_percent,
            pe_ratio=valuation.observed_pe,
            market_cap=quote.market_cap if quote else None,
            price=quote.price if quote else None,
            year_high=quote.year_high if quote else None,
            year_low=quote.year_low if quote else None,
            revenue_growth=revenue_growth,
            eps_growth=eps_growth,
            price_change_3m=quote.price_change_3m if quote else None,
        )


@dataclass(frozen=True)
class TimeframeRating:
    """Horizon-specific score, rating and gem tier."""
    horizon: InvestmentHorizon
    score: int
    rating: str
    gem_tier: Optional[str]
    quality: float
    value: float
    growth: float
    momentum: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            'horizon': self.horizon.value,
            'timeframe_score': self.score,
            'timeframe_rating': self.rating,
            'timeframe_gem_tier': self.gem_tier,
        }


class TimeframeScorer:
    """Scores stocks for a chosen investment horizon."""

    def __init__(
        self,
        profiles: Optional[Mapping[InvestmentHorizon, TimeframeProfile]] = None,
        default_horizon: InvestmentHorizon = InvestmentHorizon.LONG_TERM
    ):
        """
        Initialize the scorer.

        Args:
            profiles: Horizon profiles (library defaults when omitted)
            default_horizon: Horizon used when none is given
        """
        self.profiles = dict(profiles) if profiles else dict(ScoringConfig().timeframes)
        self.default_horizon = InvestmentHorizon(default_horizon)
        if self.default_horizon not in self.profiles:
            raise ValueError(f"No profile for default horizon {self.default_horizon.value}")

    def profile(self, horizon: Optional[InvestmentHorizon] = None) -> TimeframeProfile:
        key = InvestmentHorizon(horizon) if horizon else self.default_horizon
        if key not in self.profiles:
            raise ValueError(f"No profile for horizon {key.value}")
        return self.profiles[key]

    # ------------------------------------------------------------------
    # Normalization (each signal mapped to 0-100)
    # ------------------------------------------------------------------

    @staticmethod
    def normalize_quality(signals: StockSignals) -> float:
        return clamp(signals.qm_score * 10, 0, 100)

    @staticmethod
    def normalize_value(signals: StockSignals) -> float:
        gap = signals.value_gap_percent if signals.value_gap_percent is not None else 0.0
        return clamp(50 + gap * 0.5, 0, 100)

    @staticmethod
    def normalize_growth(signals: StockSignals) -> float:
        """Maps an average growth of -20 %..+50 % onto 0..100."""
        revenue = signals.revenue_growth if signals.revenue_growth is not None else 0.0
        eps = signals.eps_growth if signals.eps_growth is not None else 0.0
        average = (revenue + eps) / 2
        return clamp((average + 20) * (100 / 70), 0, 100)

    @staticmethod
    def normalize_momentum(signals: StockSignals) -> float:
        """52-week position (0-50, neutral 50 without bounds) plus 3-month change (0-50)."""
        position_score = 50.0
        high, low, price = signals.year_high, signals.year_low, signals.price
        if high and low and price:
            span = high - low
            if span > 0:
                position_score = (price - low) / span * 50

        change = signals.price_change_3m if signals.price_change_3m is not None else 0.0
        change_score = clamp((change + 30) * (50 / 60), 0, 50)

        return min(100.0, position_score + change_score)

    # ------------------------------------------------------------------
    # Scoring
    # ------------------------------------------------------------------

    def weighted_score(self, signals: StockSignals, horizon: Optional[InvestmentHorizon] = None) -> int:
        weights = self.profile(horizon).weights
        total = (
            weights.quality * self.normalize_quality(signals)
            + weights.value * self.normalize_value(signals)
            + weights.growth * self.normalize_growth(signals)
            + weights.momentum * self.normalize_momentum(signals)
        )
        return round_half_up(total)

    def passes_thresholds(self, signals: StockSignals, horizon: Optional[InvestmentHorizon] = None) -> bool:
        """Admission filter: minimum QM, minimum gap (unknown counts as -100), maximum P/E."""
        thresholds = self.profile(horizon).thresholds
        gap = signals.value_gap_percent if signals.value_gap_percent is not None else -100.0

        if signals.qm_score < thresholds.min_qm_score:
            return False
        if gap < thresholds.min_value_gap:
            return False
        if signals.pe_ratio is not None and signals.pe_ratio > 0 and signals.pe_ratio > thresholds.max_pe:
            return False
        return True

    def gem_tier(self, signals: StockSignals, horizon: Optional[InvestmentHorizon] = None) -> Optional[str]:
        """Tier name from the horizon's score bands, or None if the gem criteria fail."""
        gem = self.profile(horizon).gem
        gap = signals.value_gap_percent if signals.value_gap_percent is not None else -100.0

        if signals.qm_score < gem.min_qm_score:
            return None
        if gap < gem.min_value_gap:
            return None
        if signals.market_cap is None or signals.market_cap > gem.max_market_cap:
            return None
        if gem.require_momentum and self.normalize_momentum(signals) < gem.signal_floor:
            return None
        if gem.require_growth and self.normalize_growth(signals) < gem.signal_floor:
            return None

        score = self.weighted_score(signals, horizon)
        for band in gem.tier_bands:
            if score >= band.min_score:
                return band.name
        return None

    def score(self, signals: StockSignals, horizon: Optional[InvestmentHorizon] = None) -> TimeframeRating:
        """
        Score a stock for a horizon (default horizon when omitted).

        Returns:
            TimeframeRating with the weighted score, rating and gem tier
        """
        key = InvestmentHorizon(horizon) if horizon else self.default_horizon
        value = self.weighted_score(signals, key)
        tier = self.gem_tier(signals, key) if self.passes_thresholds(signals, key) else None

        return TimeframeRating(
            horizon=key,
            score=value,
            rating=score_to_rating(value),
            gem_tier=tier,
            quality=self.normalize_quality(signals),
            value=self.normalize_value(signals),
            growth=self.normalize_growth(signals),
            momentum=self.normalize_momentum(signals),
        )
