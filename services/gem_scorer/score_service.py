"""
Gem Scoring Service.

Runs the full pipeline for one stock: QM score, valuation, comprehensive
rating, tier classification, macro adjustment of the tier confidence and
horizon scoring. Results are optionally persisted through a repository.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Dict, Any
import logging
import time

from shared.configs.config import get_settings
from shared.configs.loader import load_macro_config, load_scoring_config
from shared.configs.models import (
    InvestmentHorizon,
    MacroEnvironment,
    ScoringConfig,
    SectorCycleProfile,
)
from shared.monitoring.structured_logger import log_business_event, log_performance
from services.data_collector.financial_dataset import FinancialDataProvider, FinancialDataset
from services.gem_scorer.macro_analyzer import (
    MacroAdjustment,
    MacroAdjustmentEngine,
    MacroCandidate,
    MacroComparison,
)
from services.gem_scorer.macro_state import MacroStateStore
from services.gem_scorer.quality_calculator import QMScore, QMScoreEngine
from services.gem_scorer.rating import RatingAnalysis, RatingEngine
from services.gem_scorer.score_repository import GemScoreRepository
from services.gem_scorer.tier_classifier import TierAssignment, TierClassifier
from services.gem_scorer.timeframe_scorer import StockSignals, TimeframeRating, TimeframeScorer
from services.gem_scorer.valuation import ValuationEngine, ValuationResult, observed_pe_for

logger = logging.getLogger(__name__)


@dataclass
class StockAnalysis:
    """Everything the pipeline produced for one stock."""
    dataset: FinancialDataset
    qm_score: QMScore
    valuation: ValuationResult
    rating: RatingAnalysis
    tier: TierAssignment
    macro: MacroAdjustment
    timeframe: TimeframeRating
    calculated_at: datetime = field(default_factory=datetime.utcnow)

    @property
    def symbol(self) -> str:
        return self.dataset.symbol

    @property
    def sector(self) -> Optional[str]:
        return self.dataset.sector

    @property
    def comparison_score(self) -> float:
        """Tier confidence for eligible stocks, the comprehensive rating otherwise."""
        return self.tier.confidence_score if self.tier.eligible else self.rating.score

    def to_dict(self) -> Dict[str, Any]:
        """Flat summary used by the CLI and scan exports."""
        data: Dict[str, Any] = {
            'symbol': self.symbol,
            'company_name': self.dataset.company_name,
            'sector': self.sector,
            'market_cap': self.dataset.market_cap,
            'qm_score': self.qm_score.total_score,
            'growth_signal_count': self.qm_score.growth_signals.count,
            'shares_decreasing': self.qm_score.shares_decreasing,
        }
        data.update(self.valuation.to_dict())
        data.update(self.tier.to_dict())
        data['warnings'] = list(self.tier.warnings)
        data.update(self.macro.to_dict())
        data.update(self.rating.to_dict())
        data.update(self.timeframe.to_dict())
        data['calculated_at'] = self.calculated_at.isoformat()
        return data


class GemScoringService:
    """Service for analyzing stocks and managing the macro context."""

    def __init__(
        self,
        scoring_config: Optional[ScoringConfig] = None,
        macro_store: Optional[MacroStateStore] = None,
        provider: Optional[FinancialDataProvider] = None,
        repository: Optional[GemScoreRepository] = None,
        horizon: Optional[InvestmentHorizon] = None
    ):
        """
        Initialize the scoring service.

        Args:
            scoring_config: Reference tables (library defaults when omitted)
            macro_store: Shared macro state (seeded from scoring_config's sector profiles when omitted)
            provider: Financial data provider used by analyze_symbol
            repository: Optional repository; analyses are persisted when set
            horizon: Default investment horizon
        """
        self.config = scoring_config or ScoringConfig()
        self.macro_store = macro_store or MacroStateStore(sector_profiles=self.config.sector_profiles)
        self.provider = provider
        self.repository = repository
        self.horizon = InvestmentHorizon(horizon) if horizon else self.config.default_horizon

        self.quality_engine = QMScoreEngine(self.config.quality)
        self.valuation_engine = ValuationEngine(self.config.valuation)
        self.rating_engine = RatingEngine(self.config.sector_benchmarks)
        self.tier_classifier = TierClassifier(self.config.tier_policy)
        self.timeframe_scorer = TimeframeScorer(self.config.timeframes, self.horizon)
        self.logger = logging.getLogger(__name__)

    @classmethod
    def from_config(
        cls,
        config_dir: Optional[str] = None,
        provider: Optional[FinancialDataProvider] = None,
        repository: Optional[GemScoreRepository] = None,
        horizon: Optional[InvestmentHorizon] = None
    ) -> "GemScoringService":
        """
        Build a service from the YAML reference tables.

        A macro snapshot or sector profiles stored by the repository take
        precedence over the YAML defaults.
        """
        settings = get_settings()
        directory = config_dir or settings.config_dir
        scoring_config = load_scoring_config(directory)
        environment = load_macro_config(directory).environment

        sector_profiles: Dict[str, SectorCycleProfile] = dict(scoring_config.sector_profiles)
        if repository is not None:
            stored_environment = repository.get_latest_macro_environment()
            if stored_environment is not None:
                environment = stored_environment
            sector_profiles.update(repository.get_sector_profiles())

        return cls(
            scoring_config=scoring_config,
            macro_store=MacroStateStore(environment=environment, sector_profiles=sector_profiles),
            provider=provider,
            repository=repository,
            horizon=horizon or settings.default_horizon,
        )

    # ------------------------------------------------------------------
    # Analysis
    # ------------------------------------------------------------------

    def analyze(
        self,
        dataset: FinancialDataset,
        horizon: Optional[InvestmentHorizon] = None,
        scanning: bool = False
    ) -> Optional[StockAnalysis]:
        """
        Run every engine on one dataset.

        The macro snapshot is read once, so the analysis is consistent even
        if the environment is replaced concurrently.

        Args:
            dataset: Financial statements and quote
            horizon: Investment horizon (service default when omitted)
            scanning: Apply the scanning market-cap floor to tier eligibility

        Returns:
            StockAnalysis, or None when the dataset has no quote
        """
        if dataset.quote is None:
            self.logger.warning(f"Insufficient data for {dataset.symbol}: no quote")
            return None

        start = time.perf_counter()
        state = self.macro_store.snapshot()

        qm_score = self.quality_engine.evaluate(dataset)
        valuation = self.valuation_engine.evaluate(qm_score, observed_pe_for(dataset))
        rating = self.rating_engine.rate(qm_score, valuation, dataset)
        tier = self.tier_classifier.classify_score(
            qm_score,
            valuation.value_gap_percent,
            dataset.market_cap,
            dataset.latest_free_cash_flow,
            scanning=scanning,
        )
        macro = MacroAdjustmentEngine(state.sector_profiles).adjusted_score(
            tier.confidence_score, dataset.sector, state.environment
        )
        timeframe = self.timeframe_scorer.score(
            StockSignals.from_analysis(dataset, qm_score, valuation),
            horizon or self.horizon,
        )

        analysis = StockAnalysis(
            dataset=dataset,
            qm_score=qm_score,
            valuation=valuation,
            rating=rating,
            tier=tier,
            macro=macro,
            timeframe=timeframe,
        )

        log_performance(
            self.logger, "analyze", (time.perf_counter() - start) * 1000, symbol=dataset.symbol
        )
        if tier.is_gem:
            log_business_event(
                self.logger,
                "gem_identified",
                symbol=dataset.symbol,
                tier=tier.tier.value,
                confidence=tier.confidence_score,
            )
        return analysis

    def analyze_symbol(
        self,
        symbol: str,
        horizon: Optional[InvestmentHorizon] = None,
        persist: bool = True
    ) -> Optional[StockAnalysis]:
        """
        Fetch a symbol through the provider, analyze it and persist the result.

        Args:
            symbol: Ticker symbol
            horizon: Investment horizon
            persist: Save through the repository when one is configured

        Returns:
            StockAnalysis or None if data is insufficient
        """
        if self.provider is None:
            raise RuntimeError("GemScoringService has no data provider")

        dataset = self.provider.fetch_financial_dataset(symbol)
        analysis = self.analyze(dataset, horizon=horizon)
        if analysis is not None and persist:
            self.persist(analysis)
        return analysis

    def persist(
        self,
        analysis: StockAnalysis,
        scan_id: Optional[str] = None,
        market: Optional[str] = None
    ) -> bool:
        """Save an analysis; returns False when no repository is set or saving failed."""
        if self.repository is None:
            return False
        return self.repository.save_analysis(analysis, scan_id=scan_id, market=market) is not None

    def compare(
        self,
        first: StockAnalysis,
        second: StockAnalysis
    ) -> MacroComparison:
        """Compare two analyses under the current macro environment."""
        state = self.macro_store.snapshot()
        engine = MacroAdjustmentEngine(state.sector_profiles)
        return engine.compare_in_macro_context(
            MacroCandidate(first.symbol, first.sector or "", first.comparison_score),
            MacroCandidate(second.symbol, second.sector or "", second.comparison_score),
            state.environment,
        )

    # ------------------------------------------------------------------
    # Macro administration
    # ------------------------------------------------------------------

    def get_current_macro_environment(self) -> MacroEnvironment:
        return self.macro_store.get_current_macro_environment()

    def update_macro_environment(
        self,
        environment: Optional[MacroEnvironment] = None,
        **fields: Any
    ) -> MacroEnvironment:
        """Publish a new macro snapshot and record it when a repository is set."""
        updated = self.macro_store.update_macro_environment(environment, **fields)
        if self.repository is not None and not self.repository.save_macro_snapshot(updated):
            self.logger.warning("Macro environment updated in memory but not stored")
        return updated

    def set_sector_cycle_profile(self, sector: str, profile: SectorCycleProfile) -> None:
        self.macro_store.set_sector_cycle_profile(sector, profile)
        if self.repository is not None and not self.repository.save_sector_profile(sector, profile):
            self.logger.warning(f"Sector profile for {sector} updated in memory but not stored")
