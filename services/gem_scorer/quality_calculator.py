"""
Quality Metrics (QM) Calculator.

Scores a company on eight pass/fail fundamental pillars:
- 5-year P/E (market cap / summed net income)
- 5-year ROIC (summed free cash flow / invested capital)
- Shares outstanding trend (net buybacks)
- Free cash flow growth
- Net income growth
- Revenue growth
- Debt coverage (long-term debt / average free cash flow)
- 5-year Price/FCF

The QM score is the number of passing pillars (0-8). Missing data or a
non-positive denominator leaves a pillar's measured value as None and the
pillar not passed; the calculator never raises for data problems.
"""
from dataclasses import dataclass, asdict
from typing import Optional, Dict, Any, List, Tuple
import logging
import numpy as np

from shared.configs.models import QualityThresholds
from shared.utilities.numeric import percent_change, safe_ratio, sum_or_none
from services.data_collector.financial_dataset import FinancialDataset

logger = logging.getLogger(__name__)

PE_5Y = "pe_5y"
ROIC_5Y = "roic_5y"
SHARES_OUTSTANDING = "shares_outstanding"
FCF_GROWTH = "fcf_growth"
NET_INCOME_GROWTH = "net_income_growth"
REVENUE_GROWTH = "revenue_growth"
DEBT_COVERAGE = "debt_coverage"
PRICE_TO_FCF_5Y = "price_to_fcf_5y"

PILLAR_NAMES = (
    PE_5Y,
    ROIC_5Y,
    SHARES_OUTSTANDING,
    FCF_GROWTH,
    NET_INCOME_GROWTH,
    REVENUE_GROWTH,
    DEBT_COVERAGE,
    PRICE_TO_FCF_5Y,
)

MAX_QM_SCORE = len(PILLAR_NAMES)


@dataclass(frozen=True)
class QMPillarResult:
    """Outcome of one pillar check."""
    name: str
    measured_value: Optional[float]
    threshold: str
    passed: bool


@dataclass(frozen=True)
class GrowthSignals:
    """Revenue, net income and free cash flow growth flags."""
    revenue_growing: bool = False
    net_income_growing: bool = False
    fcf_growing: bool = False

    @property
    def count(self) -> int:
        return int(self.revenue_growing) + int(self.net_income_growing) + int(self.fcf_growing)


@dataclass(frozen=True)
class AuxiliaryMetrics:
    """Latest-year ratios reported alongside the QM score (percent except current ratio)."""
    roe: Optional[float] = None
    gross_margin: Optional[float] = None
    operating_margin: Optional[float] = None
    current_ratio: Optional[float] = None


@dataclass(frozen=True)
class QMScore:
    """Aggregated quality score for one symbol."""
    symbol: str
    total_score: int
    pillars: Tuple[QMPillarResult, ...]
    auxiliary_metrics: AuxiliaryMetrics
    growth_signals: GrowthSignals
    shares_decreasing: bool

    def pillar(self, name: str) -> Optional[QMPillarResult]:
        for result in self.pillars:
            if result.name == name:
                return result
        return None

    def measured(self, name: str) -> Optional[float]:
        result = self.pillar(name)
        return result.measured_value if result else None

    def to_dict(self) -> Dict[str, Any]:
        """Flatten to a dictionary for database storage."""
        data: Dict[str, Any] = {
            'symbol': self.symbol,
            'total_score': self.total_score,
            'shares_decreasing': self.shares_decreasing,
            'growth_signal_count': self.growth_signals.count,
        }
        for result in self.pillars:
            data[f'{result.name}_value'] = result.measured_value
            data[f'{result.name}_passed'] = result.passed
        data.update(asdict(self.auxiliary_metrics))
        return data


class QMScoreEngine:
    """
    Evaluates the eight quality pillars for a FinancialDataset.

    "Oldest" always means the last available record (at most six years back),
    so datasets with a short history are compared over whatever they have.
    """

    def __init__(self, thresholds: Optional[QualityThresholds] = None):
        """
        Initialize the engine.

        Args:
            thresholds: Pillar thresholds (library defaults when omitted)
        """
        self.thresholds = thresholds or QualityThresholds()
        self.logger = logging.getLogger(__name__)

    def evaluate(self, dataset: FinancialDataset) -> QMScore:
        """
        Evaluate all pillars for a dataset.

        Args:
            dataset: Normalized financial statements for one symbol

        Returns:
            QMScore with pillar details, auxiliary metrics and growth signals
        """
        pillars = (
            self._pe_5y(dataset),
            self._roic_5y(dataset),
            self._shares_outstanding(dataset),
            self._fcf_growth(dataset),
            self._net_income_growth(dataset),
            self._revenue_growth(dataset),
            self._debt_coverage(dataset),
            self._price_to_fcf_5y(dataset),
        )
        by_name = {p.name: p for p in pillars}

        growth_signals = GrowthSignals(
            revenue_growing=by_name[REVENUE_GROWTH].passed,
            net_income_growing=by_name[NET_INCOME_GROWTH].passed,
            fcf_growing=by_name[FCF_GROWTH].passed,
        )

        score = QMScore(
            symbol=dataset.symbol,
            total_score=sum(1 for p in pillars if p.passed),
            pillars=pillars,
            auxiliary_metrics=self._auxiliary_metrics(dataset),
            growth_signals=growth_signals,
            shares_decreasing=by_name[SHARES_OUTSTANDING].passed,
        )

        self.logger.debug(
            f"{dataset.symbol}: QM {score.total_score}/{MAX_QM_SCORE}, "
            f"growth signals {growth_signals.count}/3"
        )
        return score

    # ------------------------------------------------------------------
    # Window helpers
    # ------------------------------------------------------------------

    def _net_income_window(self, dataset: FinancialDataset) -> List[Optional[float]]:
        years = self.thresholds.lookback_years
        return [s.net_income for s in dataset.income_statements[:years]]

    def _fcf_window(self, dataset: FinancialDataset) -> List[Optional[float]]:
        years = self.thresholds.lookback_years
        return [s.free_cash_flow for s in dataset.cash_flow_statements[:years]]

    @staticmethod
    def _market_cap(dataset: FinancialDataset) -> Optional[float]:
        market_cap = dataset.market_cap
        if market_cap is None or market_cap <= 0:
            return None
        return market_cap

    # ------------------------------------------------------------------
    # Pillars
    # ------------------------------------------------------------------

    def _pe_5y(self, dataset: FinancialDataset) -> QMPillarResult:
        limit = self.thresholds.max_pe
        value = safe_ratio(self._market_cap(dataset), sum_or_none(self._net_income_window(dataset)))
        if value is None:
            self.logger.debug(f"{dataset.symbol}: 5-year P/E unavailable")
        return QMPillarResult(
            name=PE_5Y,
            measured_value=value,
            threshold=f"0 < x < {limit}",
            passed=value is not None and 0 < value < limit,
        )

    def _roic_5y(self, dataset: FinancialDataset) -> QMPillarResult:
        limit = self.thresholds.min_roic_pct
        value = None
        balance = dataset.latest_balance
        fcf_sum = sum_or_none(self._fcf_window(dataset))
        if balance is not None and balance.stockholders_equity is not None and balance.total_debt is not None:
            ratio = safe_ratio(fcf_sum, balance.stockholders_equity + balance.total_debt)
            value = ratio * 100 if ratio is not None else None
        if value is None:
            self.logger.debug(f"{dataset.symbol}: 5-year ROIC unavailable")
        return QMPillarResult(
            name=ROIC_5Y,
            measured_value=value,
            threshold=f"x > {limit}%",
            passed=value is not None and value > limit,
        )

    def _shares_outstanding(self, dataset: FinancialDataset) -> QMPillarResult:
        latest = dataset.latest_income
        oldest = dataset.oldest_income

        current = latest.weighted_average_shares if latest else None
        if current is None and dataset.quote is not None:
            current = dataset.quote.shares_outstanding
        previous = oldest.weighted_average_shares if oldest else None

        value = None
        if current is not None and previous is not None and previous > 0:
            value = percent_change(current, previous)

        return QMPillarResult(
            name=SHARES_OUTSTANDING,
            measured_value=value,
            threshold="decreasing",
            passed=value is not None and current < previous,
        )

    def _growth_pillar(
        self,
        name: str,
        latest: Optional[float],
        oldest: Optional[float],
        require_positive: bool
    ) -> QMPillarResult:
        value = percent_change(latest, oldest)
        passed = value is not None and latest > oldest
        if require_positive:
            passed = passed and latest > 0
        return QMPillarResult(
            name=name,
            measured_value=value,
            threshold="growing and positive" if require_positive else "growing",
            passed=passed,
        )

    def _fcf_growth(self, dataset: FinancialDataset) -> QMPillarResult:
        latest = dataset.latest_cash_flow
        oldest = dataset.oldest_cash_flow
        return self._growth_pillar(
            FCF_GROWTH,
            latest.free_cash_flow if latest else None,
            oldest.free_cash_flow if oldest else None,
            require_positive=True,
        )

    def _net_income_growth(self, dataset: FinancialDataset) -> QMPillarResult:
        latest = dataset.latest_income
        oldest = dataset.oldest_income
        return self._growth_pillar(
            NET_INCOME_GROWTH,
            latest.net_income if latest else None,
            oldest.net_income if oldest else None,
            require_positive=True,
        )

    def _revenue_growth(self, dataset: FinancialDataset) -> QMPillarResult:
        latest = dataset.latest_income
        oldest = dataset.oldest_income
        return self._growth_pillar(
            REVENUE_GROWTH,
            latest.revenue if latest else None,
            oldest.revenue if oldest else None,
            require_positive=False,
        )

    def _debt_coverage(self, dataset: FinancialDataset) -> QMPillarResult:
        limit = self.thresholds.max_debt_to_fcf
        balance = dataset.latest_balance
        long_term_debt = balance.long_term_debt if balance else None

        window = self._fcf_window(dataset)
        average_fcf = None
        if window and all(v is not None for v in window):
            average_fcf = float(np.mean(window))

        value = safe_ratio(long_term_debt, average_fcf)
        if value is None:
            self.logger.debug(f"{dataset.symbol}: debt coverage unavailable")
        return QMPillarResult(
            name=DEBT_COVERAGE,
            measured_value=value,
            threshold=f"x < {limit}",
            passed=value is not None and value < limit,
        )

    def _price_to_fcf_5y(self, dataset: FinancialDataset) -> QMPillarResult:
        limit = self.thresholds.max_price_to_fcf
        value = safe_ratio(self._market_cap(dataset), sum_or_none(self._fcf_window(dataset)))
        return QMPillarResult(
            name=PRICE_TO_FCF_5Y,
            measured_value=value,
            threshold=f"0 < x < {limit}",
            passed=value is not None and 0 < value < limit,
        )

    # ------------------------------------------------------------------
    # Auxiliary metrics
    # ------------------------------------------------------------------

    def _auxiliary_metrics(self, dataset: FinancialDataset) -> AuxiliaryMetrics:
        income = dataset.latest_income
        balance = dataset.latest_balance

        def pct(numerator, denominator):
            ratio = safe_ratio(numerator, denominator)
            return ratio * 100 if ratio is not None else None

        return AuxiliaryMetrics(
            roe=pct(income.net_income if income else None,
                    balance.stockholders_equity if balance else None),
            gross_margin=pct(income.gross_profit if income else None,
                             income.revenue if income else None),
            operating_margin=pct(income.operating_income if income else None,
                                 income.revenue if income else None),
            current_ratio=safe_ratio(balance.current_assets if balance else None,
                                     balance.current_liabilities if balance else None),
        )
