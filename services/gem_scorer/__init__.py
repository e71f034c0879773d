"""
Quality gem scoring service.

Scores stocks on eight quality pillars, derives a fair multiple and value
gap, classifies gem tiers, adjusts for the macro cycle and re-weights the
result for an investment horizon.
"""
from services.gem_scorer.quality_calculator import QMScore, QMScoreEngine
from services.gem_scorer.valuation import ValuationEngine, ValuationResult, ValuationStatus
from services.gem_scorer.tier_classifier import GemTier, TierAssignment, TierClassifier
from services.gem_scorer.macro_analyzer import MacroAdjustment, MacroAdjustmentEngine
from services.gem_scorer.macro_state import MacroState, MacroStateStore
from services.gem_scorer.timeframe_scorer import StockSignals, TimeframeRating, TimeframeScorer
from services.gem_scorer.rating import RatingAnalysis, RatingEngine
from services.gem_scorer.score_repository import GemScoreRepository
from services.gem_scorer.score_service import GemScoringService, StockAnalysis
from services.gem_scorer.scanner import GemScanner, ScanSession

__all__ = [
    "QMScore",
    "QMScoreEngine",
    "ValuationEngine",
    "ValuationResult",
    "ValuationStatus",
    "GemTier",
    "TierAssignment",
    "TierClassifier",
    "MacroAdjustment",
    "MacroAdjustmentEngine",
    "MacroState",
    "MacroStateStore",
    "StockSignals",
    "TimeframeRating",
    "TimeframeScorer",
    "RatingAnalysis",
    "RatingEngine",
    "GemScoreRepository",
    "GemScoringService",
    "StockAnalysis",
    "GemScanner",
    "ScanSession",
]
