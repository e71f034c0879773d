"""
Quality-to-valuation mapping.

A company's fair P/E rises linearly with its QM score; the value gap is the
distance between that fair multiple and the observed multiple.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Dict, Any
import logging

from shared.configs.models import ValuationPolicy
from shared.utilities.numeric import clamp
from services.data_collector.financial_dataset import FinancialDataset
from services.gem_scorer.quality_calculator import MAX_QM_SCORE, QMScore

logger = logging.getLogger(__name__)


class ValuationStatus(str, Enum):
    UNDERVALUED = "undervalued"
    FAIR = "fair"
    OVERVALUED = "overvalued"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class ValuationResult:
    """Fair multiple, observed multiple and the gap between them."""
    fair_pe: float
    observed_pe: Optional[float]
    value_gap_percent: Optional[float]
    status: ValuationStatus

    def to_dict(self) -> Dict[str, Any]:
        return {
            'fair_pe': self.fair_pe,
            'observed_pe': self.observed_pe,
            'value_gap_percent': self.value_gap_percent,
            'valuation_status': self.status.value,
        }


def observed_pe_for(dataset: FinancialDataset) -> Optional[float]:
    """
    Current P/E from market cap and the latest annual net income.

    Returns:
        P/E, or None when either figure is missing or net income is not positive
    """
    market_cap = dataset.market_cap
    income = dataset.latest_income
    net_income = income.net_income if income else None
    if market_cap is None or net_income is None or net_income <= 0:
        return None
    return market_cap / net_income


class ValuationEngine:
    """Maps QM scores to fair multiples and classifies the value gap."""

    def __init__(self, policy: Optional[ValuationPolicy] = None):
        self.policy = policy or ValuationPolicy()

    def fair_pe(self, total_score: float) -> float:
        """
        Fair P/E for a QM score: score clamped to 0..8, fair P/E linear from floor_pe to ceiling_pe.
        """
        score = clamp(total_score, 0, MAX_QM_SCORE)
        span = self.policy.ceiling_pe - self.policy.floor_pe
        return self.policy.floor_pe + (score / MAX_QM_SCORE) * span

    def evaluate(self, qm_score: QMScore, observed_pe: Optional[float]) -> ValuationResult:
        """
        Compare the fair multiple with the observed one.

        Args:
            qm_score: Quality score of the company
            observed_pe: Observed P/E (None when unknown)

        Returns:
            ValuationResult; status is unknown for a missing or non-positive P/E
        """
        return self.evaluate_score(qm_score.total_score, observed_pe)

    def evaluate_score(self, total_score: float, observed_pe: Optional[float]) -> ValuationResult:
        fair_pe = self.fair_pe(total_score)

        if observed_pe is None or observed_pe <= 0:
            return ValuationResult(
                fair_pe=fair_pe,
                observed_pe=observed_pe,
                value_gap_percent=None,
                status=ValuationStatus.UNKNOWN,
            )

        gap = (fair_pe - observed_pe) / fair_pe * 100

        if gap > self.policy.undervalued_gap_pct:
            status = ValuationStatus.UNDERVALUED
        elif gap < self.policy.overvalued_gap_pct:
            status = ValuationStatus.OVERVALUED
        else:
            status = ValuationStatus.FAIR

        return ValuationResult(
            fair_pe=fair_pe,
            observed_pe=observed_pe,
            value_gap_percent=gap,
            status=status,
        )
