"""
Configuration models using Pydantic for validation.

Reference tables (sector cycle profiles, sector benchmarks, tier policy,
timeframe profiles, macro snapshot) are frozen models: they are loaded once
at start-up and injected into the scoring engines.
"""
from datetime import date
from enum import Enum
from typing import Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field, model_validator


class EconomicPhase(str, Enum):
    """Business cycle phases."""
    EARLY_RECOVERY = "early-recovery"
    MID_EXPANSION = "mid-expansion"
    LATE_EXPANSION = "late-expansion"
    RECESSION = "recession"


class LiquidityRegime(str, Enum):
    """Monetary liquidity regimes."""
    EXPANDING = "expanding"
    STABLE = "stable"
    TIGHTENING = "tightening"


class MarketSentiment(str, Enum):
    """Broad market risk appetite."""
    RISK_ON = "risk-on"
    NEUTRAL = "neutral"
    RISK_OFF = "risk-off"


class InvestmentHorizon(str, Enum):
    """Investment horizons supported by the timeframe scorer."""
    SHORT_TERM = "short-term"
    MEDIUM_TERM = "medium-term"
    LONG_TERM = "long-term"


class _ReferenceModel(BaseModel):
    """Base class for immutable reference data."""
    model_config = ConfigDict(frozen=True, extra="forbid")


# =============================================================================
# Macro Configuration
# =============================================================================

class SectorCycleProfile(_ReferenceModel):
    """How a sector historically behaves across the business cycle."""
    early_recovery: int = Field(ge=1, le=10, description="Suitability in early recovery")
    mid_expansion: int = Field(ge=1, le=10, description="Suitability in mid expansion")
    late_expansion: int = Field(ge=1, le=10, description="Suitability in late expansion")
    recession: int = Field(ge=1, le=10, description="Suitability in recession")
    liquidity_sensitivity: float = Field(ge=-10.0, le=10.0, description="Reaction to liquidity changes")
    rate_sensitivity: float = Field(ge=-10.0, le=10.0, description="Reaction to the policy rate level")
    defensiveness: float = Field(ge=0.0, le=10.0, description="Downturn resilience")
    growth_potential: float = Field(ge=0.0, le=10.0, description="Structural growth potential")

    def phase_rating(self, phase: EconomicPhase) -> int:
        """Return the suitability rating for a cycle phase."""
        return {
            EconomicPhase.EARLY_RECOVERY: self.early_recovery,
            EconomicPhase.MID_EXPANSION: self.mid_expansion,
            EconomicPhase.LATE_EXPANSION: self.late_expansion,
            EconomicPhase.RECESSION: self.recession,
        }[EconomicPhase(phase)]


NEUTRAL_SECTOR_PROFILE = SectorCycleProfile(
    early_recovery=5,
    mid_expansion=5,
    late_expansion=5,
    recession=5,
    liquidity_sensitivity=0.0,
    rate_sensitivity=0.0,
    defensiveness=5.0,
    growth_potential=5.0,
)


class MacroEnvironment(_ReferenceModel):
    """Snapshot of the macroeconomic environment."""
    phase: EconomicPhase = Field(default=EconomicPhase.LATE_EXPANSION)
    liquidity: LiquidityRegime = Field(default=LiquidityRegime.TIGHTENING)
    sentiment: MarketSentiment = Field(default=MarketSentiment.RISK_ON)

    fed_funds_rate: float = Field(default=4.5, description="Policy rate (%)")
    inflation: float = Field(default=2.7, description="CPI YoY (%)")
    unemployment: float = Field(default=4.2, description="Unemployment rate (%)")
    yield_curve_spread: float = Field(default=20.0, description="10Y-2Y spread (bps)")
    vix: float = Field(default=14.0, description="Volatility index")
    m2_growth: float = Field(default=-2.5, description="Money supply growth YoY (%)")
    credit_spread: float = Field(default=300.0, description="High-yield credit spread (bps)")

    last_updated: date = Field(default=date(2024, 12, 27))
    source: str = Field(default="Manual input")


class MacroConfig(BaseModel):
    """Contents of macro_environment.yaml."""
    environment: MacroEnvironment = Field(default_factory=MacroEnvironment)


# =============================================================================
# Scoring Configuration
# =============================================================================

class QualityThresholds(_ReferenceModel):
    """Pass thresholds for the eight quality pillars."""
    lookback_years: int = Field(default=5, ge=1, le=6, description="Years summed for multi-year pillars")
    max_pe: float = Field(default=22.5, gt=0, description="5-year P/E upper bound")
    min_roic_pct: float = Field(default=9.0, description="5-year ROIC lower bound (%)")
    max_debt_to_fcf: float = Field(default=5.0, gt=0, description="Long-term debt / average FCF upper bound")
    max_price_to_fcf: float = Field(default=22.5, gt=0, description="5-year Price/FCF upper bound")


class ValuationPolicy(_ReferenceModel):
    """Quality-to-multiple mapping and status bands."""
    floor_pe: float = Field(default=8.0, gt=0, description="Fair P/E at QM score 0")
    ceiling_pe: float = Field(default=25.0, gt=0, description="Fair P/E at QM score 8")
    undervalued_gap_pct: float = Field(default=15.0, ge=0, description="Gap above which a stock is undervalued")
    overvalued_gap_pct: float = Field(default=-15.0, le=0, description="Gap below which a stock is overvalued")

    @model_validator(mode="after")
    def check_pe_range(self) -> "ValuationPolicy":
        if self.ceiling_pe < self.floor_pe:
            raise ValueError("ceiling_pe must not be below floor_pe")
        return self


class TierThreshold(_ReferenceModel):
    """Minimum confidence and raw inputs for one tier."""
    tier: str
    min_confidence: float = Field(ge=0.0, le=100.0)
    min_qm_score: int = Field(default=0, ge=0, le=8)
    min_growth_signals: int = Field(default=0, ge=0, le=3)
    min_value_gap: Optional[float] = Field(default=None, description="None disables the gap gate")


def _default_tiers() -> List[TierThreshold]:
    return [
        TierThreshold(tier="crown-jewel", min_confidence=95),
        TierThreshold(tier="diamond", min_confidence=85, min_qm_score=8, min_growth_signals=3, min_value_gap=30),
        TierThreshold(tier="gold", min_confidence=70, min_qm_score=7, min_growth_signals=2, min_value_gap=20),
        TierThreshold(tier="silver", min_confidence=55, min_qm_score=6, min_growth_signals=1, min_value_gap=15),
    ]


class TierPolicy(_ReferenceModel):
    """Eligibility gate, confidence weights and tier table."""
    min_qm_score: int = Field(default=6, ge=0, le=8)
    max_market_cap: float = Field(default=50e9, gt=0, description="Exclusive market cap ceiling")
    scan_min_market_cap: float = Field(default=500e6, ge=0, description="Inclusive floor in scanning contexts")
    min_value_gap: float = Field(default=15.0, description="Exclusive value gap floor (%)")
    min_growth_signals: int = Field(default=1, ge=0, le=3)

    quality_points: float = Field(default=40.0, ge=0)
    value_gap_points: float = Field(default=30.0, ge=0)
    value_gap_full_credit_pct: float = Field(default=60.0, gt=0)
    points_per_growth_signal: float = Field(default=6.67, ge=0)
    buyback_points: float = Field(default=10.0, ge=0)

    tiers: List[TierThreshold] = Field(default_factory=_default_tiers, description="Evaluated top-down")

    @model_validator(mode="after")
    def check_tier_order(self) -> "TierPolicy":
        confidences = [t.min_confidence for t in self.tiers]
        if confidences != sorted(confidences, reverse=True):
            raise ValueError("tiers must be ordered by descending min_confidence")
        return self


class SectorBenchmark(_ReferenceModel):
    """Sector average ROIC and operating margin (%)."""
    roic: float = Field(gt=0)
    operating_margin: float = Field(gt=0)


class SectorBenchmarks(_ReferenceModel):
    """Benchmarks for sector-relative quality."""
    default: SectorBenchmark = Field(default_factory=lambda: SectorBenchmark(roic=30.0, operating_margin=15.0))
    sectors: Dict[str, SectorBenchmark] = Field(default_factory=dict)
    superior_ratio: float = Field(default=1.3, gt=0)
    average_ratio: float = Field(default=0.8, gt=0)

    def for_sector(self, sector: Optional[str]) -> SectorBenchmark:
        if sector is None:
            return self.default
        return self.sectors.get(sector, self.default)


class TimeframeWeights(_ReferenceModel):
    """Signal weights for one horizon."""
    quality: float = Field(ge=0.0, le=1.0)
    value: float = Field(ge=0.0, le=1.0)
    growth: float = Field(ge=0.0, le=1.0)
    momentum: float = Field(ge=0.0, le=1.0)

    def validate_weights_sum(self) -> None:
        """Validate that all weights sum to approximately 1.0."""
        total = self.quality + self.value + self.growth + self.momentum
        if not (0.99 <= total <= 1.01):
            raise ValueError(f"Timeframe weights must sum to 1.0, got {total}")


class AdmissionThresholds(_ReferenceModel):
    """Admission filter applied before a gem tier is considered."""
    min_qm_score: int = Field(ge=0, le=8)
    min_value_gap: float
    max_pe: float = Field(gt=0)


class TierBand(_ReferenceModel):
    """Score band that maps to a gem tier name."""
    name: str
    min_score: float = Field(ge=0.0, le=100.0)


class GemCriteria(_ReferenceModel):
    """Horizon-specific gem criteria."""
    min_qm_score: int = Field(ge=0, le=8)
    min_value_gap: float
    max_market_cap: float = Field(gt=0)
    require_momentum: bool = False
    require_growth: bool = False
    signal_floor: float = Field(default=50.0, ge=0.0, le=100.0, description="Normalized floor for required signals")
    tier_bands: List[TierBand] = Field(default_factory=list, description="Evaluated top-down")


class TimeframeProfile(_ReferenceModel):
    """Complete scoring profile for one investment horizon."""
    weights: TimeframeWeights
    thresholds: AdmissionThresholds
    gem: GemCriteria


def _default_timeframes() -> Dict[InvestmentHorizon, TimeframeProfile]:
    long_term_bands = [
        TierBand(name="Crown Jewel", min_score=80),
        TierBand(name="Diamond", min_score=65),
        TierBand(name="Gold", min_score=50),
        TierBand(name="Silver", min_score=35),
    ]
    return {
        InvestmentHorizon.SHORT_TERM: TimeframeProfile(
            weights=TimeframeWeights(quality=0.30, value=0.15, growth=0.10, momentum=0.45),
            thresholds=AdmissionThresholds(min_qm_score=4, min_value_gap=-20, max_pe=60),
            gem=GemCriteria(
                min_qm_score=4, min_value_gap=-30, max_market_cap=100e9, require_momentum=True,
                tier_bands=[TierBand(name="Momentum Pick", min_score=80),
                            TierBand(name="Swing Candidate", min_score=65)],
            ),
        ),
        InvestmentHorizon.MEDIUM_TERM: TimeframeProfile(
            weights=TimeframeWeights(quality=0.40, value=0.20, growth=0.30, momentum=0.10),
            thresholds=AdmissionThresholds(min_qm_score=5, min_value_gap=0, max_pe=40),
            gem=GemCriteria(
                min_qm_score=5, min_value_gap=-10, max_market_cap=75e9, require_growth=True,
                tier_bands=[TierBand(name="Growth Star", min_score=80),
                            TierBand(name="Rising Pick", min_score=65)],
            ),
        ),
        InvestmentHorizon.LONG_TERM: TimeframeProfile(
            weights=TimeframeWeights(quality=0.55, value=0.25, growth=0.15, momentum=0.05),
            thresholds=AdmissionThresholds(min_qm_score=6, min_value_gap=15, max_pe=25),
            gem=GemCriteria(min_qm_score=6, min_value_gap=15, max_market_cap=50e9, tier_bands=long_term_bands),
        ),
    }


class ScoringConfig(BaseModel):
    """Contents of scoring.yaml."""
    quality: QualityThresholds = Field(default_factory=QualityThresholds)
    valuation: ValuationPolicy = Field(default_factory=ValuationPolicy)
    tier_policy: TierPolicy = Field(default_factory=TierPolicy)
    sector_profiles: Dict[str, SectorCycleProfile] = Field(default_factory=dict)
    sector_benchmarks: SectorBenchmarks = Field(default_factory=SectorBenchmarks)
    timeframes: Dict[InvestmentHorizon, TimeframeProfile] = Field(default_factory=_default_timeframes)
    default_horizon: InvestmentHorizon = Field(default=InvestmentHorizon.LONG_TERM)

    def validate_weights_sum(self) -> None:
        """Validate every horizon's weights and that the default horizon exists."""
        for profile in self.timeframes.values():
            profile.weights.validate_weights_sum()
        if self.default_horizon not in self.timeframes:
            raise ValueError(f"Default horizon {self.default_horizon.value} has no profile")


# =============================================================================
# Scanner Configuration
# =============================================================================

class ScannerConfig(BaseModel):
    """Batch scanner configuration."""
    concurrency: int = Field(default=5, ge=1, le=32, description="Symbols fetched per batch")
    delay_ms: int = Field(default=200, ge=0, le=10000, description="Per-symbol pause budget (ms)")
    min_market_cap: float = Field(default=500e6, ge=0, description="Universe market cap floor")
    max_market_cap: float = Field(default=50e9, gt=0, description="Universe market cap ceiling")
    universe_limit: int = Field(default=500, ge=1, le=10000, description="Max symbols requested per market")
    markets: Dict[str, List[str]] = Field(default_factory=dict, description="Market label to exchange list")

    @property
    def batch_pause_seconds(self) -> float:
        """Pause between batches: one delay per concurrent request."""
        return self.delay_ms * self.concurrency / 1000.0
