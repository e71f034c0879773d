"""
Gem tier classifier.

Eligibility gate (all must hold):
- QM score >= 6
- market cap < $50B (and >= $500M when scanning)
- value gap > 15 %
- latest free cash flow > 0
- at least one growth signal (zero growth signals is treated as a value trap)

Confidence (0-100) = QM/8 x 40 + min(30, gap/60 x 30) + growth x 6.67 + 10 for buybacks.

Tiers are evaluated top-down on the unrounded confidence and need both the
confidence floor and the raw input minimums of the tier, so one dominant
factor cannot buy a tier. Only the reported score is rounded.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, List, Tuple, Dict, Any
import logging

from shared.configs.models import TierPolicy, TierThreshold
from shared.utilities.numeric import clamp, round_half_up
from services.gem_scorer.quality_calculator import MAX_QM_SCORE, GrowthSignals, QMScore

logger = logging.getLogger(__name__)


class GemTier(str, Enum):
    CROWN_JEWEL = "crown-jewel"
    DIAMOND = "diamond"
    GOLD = "gold"
    SILVER = "silver"


TIER_RANK = {
    None: 0,
    GemTier.SILVER: 1,
    GemTier.GOLD: 2,
    GemTier.DIAMOND: 3,
    GemTier.CROWN_JEWEL: 4,
}

VALUE_TRAP_WARNING = "Both income and FCF declining - potential value trap"
NO_GROWTH_WARNING = "Filtered out: no growth signals despite undervaluation"


@dataclass(frozen=True)
class TierAssignment:
    """Classification outcome for one stock."""
    tier: Optional[GemTier]
    confidence_score: int
    growth_signal_count: int
    eligible: bool
    warnings: Tuple[str, ...] = field(default_factory=tuple)
    recommendation: str = ""

    @property
    def rank(self) -> int:
        return TIER_RANK[self.tier]

    @property
    def is_gem(self) -> bool:
        return self.tier is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'tier': self.tier.value if self.tier else None,
            'confidence_score': self.confidence_score,
            'growth_signal_count': self.growth_signal_count,
            'eligible': self.eligible,
            'warnings': list(self.warnings),
            'recommendation': self.recommendation,
        }


class TierClassifier:
    """Assigns gem tiers from quality, value, growth and buyback signals."""

    def __init__(self, policy: Optional[TierPolicy] = None):
        """
        Initialize the classifier.

        Args:
            policy: Eligibility gate, confidence weights and tier table
        """
        self.policy = policy or TierPolicy()

    def classify(
        self,
        qm_score: float,
        value_gap_percent: Optional[float],
        growth_signal_count: int,
        shares_decreasing: bool,
        market_cap: Optional[float],
        latest_fcf: Optional[float],
        scanning: bool = False,
        growth_signals: Optional[GrowthSignals] = None
    ) -> TierAssignment:
        """
        Classify one stock.

        Args:
            qm_score: QM score (clamped to 0..8)
            value_gap_percent: Value gap in percent (None when unknown)
            growth_signal_count: Number of growth signals (clamped to 0..3)
            shares_decreasing: Whether the share count shrank
            market_cap: Market capitalization
            latest_fcf: Latest annual free cash flow
            scanning: Apply the scanning market-cap floor as well
            growth_signals: Individual signals, used for warnings only

        Returns:
            TierAssignment; ineligible stocks get tier None and confidence 0
        """
        policy = self.policy
        qm = clamp(qm_score, 0, MAX_QM_SCORE)
        growth = int(clamp(growth_signal_count, 0, 3))

        failed_gates = self._failed_gates(qm, value_gap_percent, market_cap, latest_fcf, scanning)
        if failed_gates:
            return TierAssignment(
                tier=None,
                confidence_score=0,
                growth_signal_count=growth,
                eligible=False,
                warnings=tuple(failed_gates),
            )

        if growth < policy.min_growth_signals:
            logger.debug("Eligible on value but no growth signals; filtered as value trap")
            return TierAssignment(
                tier=None,
                confidence_score=0,
                growth_signal_count=growth,
                eligible=False,
                warnings=(NO_GROWTH_WARNING,),
                recommendation="Value trap risk - fundamentals declining",
            )

        raw_confidence = self.confidence(qm, value_gap_percent, growth, shares_decreasing)
        tier = self._select_tier(raw_confidence, qm, growth, value_gap_percent)

        warnings: List[str] = []
        if growth_signals is not None and not growth_signals.net_income_growing and not growth_signals.fcf_growing:
            warnings.append(VALUE_TRAP_WARNING)

        return TierAssignment(
            tier=tier,
            confidence_score=round_half_up(raw_confidence),
            growth_signal_count=growth,
            eligible=True,
            warnings=tuple(warnings),
            recommendation=self._recommendation(tier, growth, shares_decreasing, bool(warnings)),
        )

    def classify_score(
        self,
        qm_score: QMScore,
        value_gap_percent: Optional[float],
        market_cap: Optional[float],
        latest_fcf: Optional[float],
        scanning: bool = False
    ) -> TierAssignment:
        """Classify from a QMScore, reusing its growth signals and buyback flag."""
        return self.classify(
            qm_score=qm_score.total_score,
            value_gap_percent=value_gap_percent,
            growth_signal_count=qm_score.growth_signals.count,
            shares_decreasing=qm_score.shares_decreasing,
            market_cap=market_cap,
            latest_fcf=latest_fcf,
            scanning=scanning,
            growth_signals=qm_score.growth_signals,
        )

    def confidence(
        self,
        qm_score: float,
        value_gap_percent: Optional[float],
        growth_signal_count: int,
        shares_decreasing: bool
    ) -> float:
        """
        Unrounded confidence capped at 100.

        Tier floors compare against this value; only the reported
        confidence_score is rounded half-up.
        """
        policy = self.policy
        qm = clamp(qm_score, 0, MAX_QM_SCORE)
        growth = clamp(growth_signal_count, 0, 3)

        total = (qm / MAX_QM_SCORE) * policy.quality_points
        if value_gap_percent is not None and value_gap_percent > 0:
            total += min(
                policy.value_gap_points,
                value_gap_percent / policy.value_gap_full_credit_pct * policy.value_gap_points,
            )
        total += growth * policy.points_per_growth_signal
        if shares_decreasing:
            total += policy.buyback_points

        return min(100.0, total)

    def _failed_gates(
        self,
        qm: float,
        value_gap_percent: Optional[float],
        market_cap: Optional[float],
        latest_fcf: Optional[float],
        scanning: bool
    ) -> List[str]:
        policy = self.policy
        failed = []

        if qm < policy.min_qm_score:
            failed.append(f"QM score below {policy.min_qm_score}")
        if market_cap is None:
            failed.append("Market cap unknown")
        else:
            if market_cap >= policy.max_market_cap:
                failed.append("Market cap above ceiling")
            if scanning and market_cap < policy.scan_min_market_cap:
                failed.append("Market cap below scanning floor")
        if value_gap_percent is None or value_gap_percent <= policy.min_value_gap:
            failed.append(f"Value gap not above {policy.min_value_gap:g}%")
        if latest_fcf is None or latest_fcf <= 0:
            failed.append("Latest free cash flow not positive")

        return failed

    def _select_tier(
        self,
        confidence: float,
        qm: float,
        growth: int,
        value_gap_percent: Optional[float]
    ) -> Optional[GemTier]:
        for threshold in self.policy.tiers:
            if self._meets(threshold, confidence, qm, growth, value_gap_percent):
                return GemTier(threshold.tier)
        return None

    @staticmethod
    def _meets(
        threshold: TierThreshold,
        confidence: float,
        qm: float,
        growth: int,
        value_gap_percent: Optional[float]
    ) -> bool:
        if confidence < threshold.min_confidence:
            return False
        if qm < threshold.min_qm_score or growth < threshold.min_growth_signals:
            return False
        if threshold.min_value_gap is not None:
            if value_gap_percent is None or value_gap_percent < threshold.min_value_gap:
                return False
        return True

    @staticmethod
    def _recommendation(
        tier: Optional[GemTier],
        growth: int,
        shares_decreasing: bool,
        has_warnings: bool
    ) -> str:
        if tier == GemTier.CROWN_JEWEL:
            text = "Crown Jewel - elite opportunity: top quality, deep value, strong growth"
        elif tier == GemTier.DIAMOND:
            if growth == 3 and shares_decreasing:
                text = "Strong Buy - all quality signals positive, deeply undervalued with buybacks"
            else:
                text = "Buy - high quality at an attractive valuation"
        elif tier == GemTier.GOLD:
            text = "Buy - good quality with solid undervaluation"
        elif tier == GemTier.SILVER:
            if growth >= 2:
                text = "Accumulate - decent quality, monitor for improvement"
            else:
                text = "Watch - undervalued but growth signals weak"
        else:
            return ""

        if has_warnings:
            text += " (check fundamentals trend)"
        return text
