"""
Macro-cycle sector adjustment.

Scores how well a sector fits the current macro environment and turns that
fit into a bounded bonus or penalty on a base score:
- Phase alignment (0-40): the sector's suitability rating for the phase x 4
- Liquidity impact (centered at 15): liquidity sensitivity x regime direction
- Rate impact (centered at 15): rate sensitivity x normalized policy rate

Unknown sectors fall back to a neutral profile that scores exactly 50.
"""
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Dict, Mapping, Optional, Any
import logging

from shared.configs.models import (
    EconomicPhase,
    LiquidityRegime,
    MacroEnvironment,
    NEUTRAL_SECTOR_PROFILE,
    SectorCycleProfile,
)
from shared.utilities.numeric import clamp, round_half_up

logger = logging.getLogger(__name__)

MAX_ADJUSTED_SCORE = 110

LIQUIDITY_DIRECTION = {
    LiquidityRegime.EXPANDING: 1,
    LiquidityRegime.STABLE: 0,
    LiquidityRegime.TIGHTENING: -1,
}

PHASE_NAMES = {
    EconomicPhase.EARLY_RECOVERY: "early recovery",
    EconomicPhase.MID_EXPANSION: "mid expansion",
    EconomicPhase.LATE_EXPANSION: "late expansion",
    EconomicPhase.RECESSION: "recession",
}


class Outlook(str, Enum):
    BULLISH = "bullish"
    NEUTRAL = "neutral"
    BEARISH = "bearish"


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class CycleFit(str, Enum):
    EXCELLENT = "excellent"
    GOOD = "good"
    AVERAGE = "average"
    WEAK = "weak"


@dataclass(frozen=True)
class SectorFit:
    """Sector fit against one macro snapshot."""
    sector: str
    score: float
    phase_alignment: float
    liquidity_impact: float
    rate_impact: float
    outlook: Outlook
    reasoning: str
    known_sector: bool


@dataclass(frozen=True)
class MacroAdjustment:
    """Base score adjusted for the macro environment."""
    base_score: float
    adjusted_score: float
    bonus: int
    sector_fit_score: float
    outlook: Outlook
    risk_level: RiskLevel
    cycle_fit: CycleFit

    def to_dict(self) -> Dict[str, Any]:
        return {
            'macro_base_score': self.base_score,
            'macro_adjusted_score': self.adjusted_score,
            'macro_bonus': self.bonus,
            'sector_fit_score': self.sector_fit_score,
            'sector_outlook': self.outlook.value,
            'macro_risk_level': self.risk_level.value,
            'cycle_fit': self.cycle_fit.value,
        }


@dataclass(frozen=True)
class MacroCandidate:
    """Stock taking part in a macro comparison."""
    symbol: str
    sector: str
    base_score: float


@dataclass(frozen=True)
class MacroComparison:
    """Outcome of comparing two stocks in the same macro environment."""
    winner: str
    explanation: str
    first: MacroAdjustment
    second: MacroAdjustment


def cycle_fit_label(score: float) -> CycleFit:
    if score >= 75:
        return CycleFit.EXCELLENT
    if score >= 60:
        return CycleFit.GOOD
    if score >= 45:
        return CycleFit.AVERAGE
    return CycleFit.WEAK


class MacroAdjustmentEngine:
    """
    Computes sector fit and macro-adjusted scores.

    The engine is pure: the sector table is fixed at construction and the
    environment is passed to every call.
    """

    def __init__(self, sector_profiles: Optional[Mapping[str, SectorCycleProfile]] = None):
        """
        Initialize the engine.

        Args:
            sector_profiles: Sector name to cycle profile table
        """
        self.sector_profiles = MappingProxyType(dict(sector_profiles or {}))

    def profile_for(self, sector: Optional[str]) -> Optional[SectorCycleProfile]:
        """Return the sector's profile, or None if the sector is unknown."""
        if not sector:
            return None
        return self.sector_profiles.get(sector)

    def sector_fit(self, sector: Optional[str], environment: MacroEnvironment) -> SectorFit:
        """
        Score a sector against a macro environment.

        Args:
            sector: Sector label (unknown or missing sectors score neutral)
            environment: Macro snapshot

        Returns:
            SectorFit with a 0-100 score and its components
        """
        profile = self.profile_for(sector)
        known = profile is not None
        if not known:
            logger.debug(f"Unknown sector '{sector}', using neutral profile")
            profile = NEUTRAL_SECTOR_PROFILE

        phase_rating = profile.phase_rating(environment.phase)
        phase_alignment = phase_rating * 4

        direction = LIQUIDITY_DIRECTION[LiquidityRegime(environment.liquidity)]
        liquidity_impact = 15 + profile.liquidity_sensitivity * direction * 1.5

        normalized_rate = clamp(environment.fed_funds_rate, 0, 10) / 10
        rate_impact = 15 + profile.rate_sensitivity * (normalized_rate - 0.5) * 3

        score = clamp(phase_alignment + liquidity_impact + rate_impact, 0, 100)

        if score >= 70:
            outlook = Outlook.BULLISH
        elif score <= 40:
            outlook = Outlook.BEARISH
        else:
            outlook = Outlook.NEUTRAL

        if known:
            reasoning = self._reasoning(sector, profile, phase_rating, environment)
        else:
            reasoning = "Unknown sector"

        return SectorFit(
            sector=sector or "",
            score=score,
            phase_alignment=phase_alignment,
            liquidity_impact=liquidity_impact,
            rate_impact=rate_impact,
            outlook=outlook,
            reasoning=reasoning,
            known_sector=known,
        )

    @staticmethod
    def _reasoning(
        sector: str,
        profile: SectorCycleProfile,
        phase_rating: int,
        environment: MacroEnvironment
    ) -> str:
        phase_name = PHASE_NAMES[EconomicPhase(environment.phase)]
        parts = []

        if phase_rating >= 8:
            parts.append(f"{sector} has historically outperformed during {phase_name}.")
        elif phase_rating <= 4:
            parts.append(f"{sector} typically underperforms during {phase_name}.")
        else:
            parts.append(f"{sector} performs about average during {phase_name}.")

        if environment.liquidity == LiquidityRegime.EXPANDING and profile.liquidity_sensitivity > 5:
            parts.append("Benefits strongly from loose monetary policy.")
        elif environment.liquidity == LiquidityRegime.TIGHTENING and profile.liquidity_sensitivity > 5:
            parts.append("Suffers from tightening liquidity.")

        if environment.fed_funds_rate > 4 and profile.rate_sensitivity < -5:
            parts.append("High policy rates weigh on valuations.")
        elif environment.fed_funds_rate > 4 and profile.rate_sensitivity > 5:
            parts.append("Benefits from high policy rates.")

        return " ".join(parts)

    def adjusted_score(
        self,
        base_score: float,
        sector: Optional[str],
        environment: MacroEnvironment
    ) -> MacroAdjustment:
        """
        Apply the macro bonus or penalty to a base score.

        The bonus is round((fit - 50) / 5) with halves rounded up, and the
        adjusted score is clamped to 0..110.

        Args:
            base_score: Score to adjust (nominally 0-100)
            sector: Sector label
            environment: Macro snapshot

        Returns:
            MacroAdjustment
        """
        fit = self.sector_fit(sector, environment)
        bonus = round_half_up((fit.score - 50) / 5)
        adjusted = clamp(base_score + bonus, 0, MAX_ADJUSTED_SCORE)

        return MacroAdjustment(
            base_score=base_score,
            adjusted_score=adjusted,
            bonus=bonus,
            sector_fit_score=fit.score,
            outlook=fit.outlook,
            risk_level=self._risk_level(fit, environment),
            cycle_fit=cycle_fit_label(fit.score),
        )

    def _risk_level(self, fit: SectorFit, environment: MacroEnvironment) -> RiskLevel:
        if not fit.known_sector:
            return RiskLevel.MEDIUM

        profile = self.sector_profiles[fit.sector]
        recession = environment.phase == EconomicPhase.RECESSION

        if recession and profile.defensiveness >= 8:
            return RiskLevel.LOW
        if recession and profile.defensiveness <= 4:
            return RiskLevel.HIGH
        if environment.liquidity == LiquidityRegime.TIGHTENING and profile.liquidity_sensitivity >= 7:
            return RiskLevel.HIGH
        if fit.score >= 70:
            return RiskLevel.LOW
        return RiskLevel.MEDIUM

    def compare_in_macro_context(
        self,
        first: MacroCandidate,
        second: MacroCandidate,
        environment: MacroEnvironment
    ) -> MacroComparison:
        """
        Pick the better of two stocks once macro adjustments are applied.

        Ties go to the first candidate.
        """
        first_adj = self.adjusted_score(first.base_score, first.sector, environment)
        second_adj = self.adjusted_score(second.base_score, second.sector, environment)

        if first_adj.adjusted_score >= second_adj.adjusted_score:
            winner, loser, winner_adj, loser_adj = first, second, first_adj, second_adj
        else:
            winner, loser, winner_adj, loser_adj = second, first, second_adj, first_adj

        phase = EconomicPhase(environment.phase).value
        explanation = f"In the current environment ({phase}) {winner.symbol} is the better pick than {loser.symbol}."
        if winner_adj.bonus > loser_adj.bonus:
            explanation += (
                f" {winner.symbol} gains a {winner_adj.bonus - loser_adj.bonus} point macro edge"
                f" from a better fit with the current cycle."
            )
        if winner_adj.risk_level == RiskLevel.LOW and loser_adj.risk_level == RiskLevel.HIGH:
            explanation += f" {winner.symbol} is also the lower-risk choice in this environment."

        return MacroComparison(
            winner=winner.symbol,
            explanation=explanation,
            first=first_adj,
            second=second_adj,
        )
