"""
Unit tests for the gem tier classifier.
"""
import pytest

from shared.configs.models import TierPolicy
from services.gem_scorer.quality_calculator import GrowthSignals, QMScoreEngine
from services.gem_scorer.tier_classifier import (
    GemTier,
    NO_GROWTH_WARNING,
    TIER_RANK,
    TierClassifier,
    VALUE_TRAP_WARNING,
)

BILLION = 1_000_000_000


class TestTierClassifier:
    """Test suite for TierClassifier."""

    @pytest.fixture
    def classifier(self):
        return TierClassifier()

    def classify(self, classifier, qm=8, gap=45.0, growth=3, buybacks=True,
                 market_cap=2 * BILLION, fcf=100.0, **kwargs):
        return classifier.classify(
            qm_score=qm,
            value_gap_percent=gap,
            growth_signal_count=growth,
            shares_decreasing=buybacks,
            market_cap=market_cap,
            latest_fcf=fcf,
            **kwargs
        )

    def test_diamond_example(self, classifier):
        """QM 8, 45 % gap, three growth signals and buybacks: confidence 93, diamond."""
        result = self.classify(classifier)

        assert result.confidence_score == 93
        assert result.tier == GemTier.DIAMOND
        assert result.eligible is True
        assert result.recommendation.startswith("Strong Buy")

    def test_low_quality_is_ineligible(self, classifier):
        """QM 4 fails the gate even with a 50 % gap."""
        result = self.classify(classifier, qm=4, gap=50.0)

        assert result.tier is None
        assert result.confidence_score == 0
        assert result.eligible is False
        assert "QM score below 6" in result.warnings

    def test_crown_jewel(self, classifier):
        """Full marks on every factor is a crown jewel."""
        result = self.classify(classifier, gap=60.0)

        assert result.confidence_score == 100
        assert result.tier == GemTier.CROWN_JEWEL

    def test_gold(self, classifier):
        """Confidence 78 with QM 8 and two growth signals is gold."""
        result = self.classify(classifier, gap=30.0, growth=2)

        assert result.confidence_score == 78
        assert result.tier == GemTier.GOLD

    def test_silver(self, classifier):
        """Confidence 63 lands in silver."""
        result = self.classify(classifier, qm=7, gap=30.0, growth=2, buybacks=False)

        assert result.confidence_score == 63
        assert result.tier == GemTier.SILVER
        assert result.recommendation.startswith("Accumulate")

    def test_eligible_without_tier(self, classifier):
        """Eligible stocks below every confidence floor get no tier but keep their confidence."""
        result = self.classify(classifier, qm=6, gap=20.0, growth=1, buybacks=False)

        assert result.eligible is True
        assert result.confidence_score == 47
        assert result.tier is None
        assert result.recommendation == ""

    def test_raw_minimums_cap_the_tier(self, classifier):
        """A 90 confidence with QM 6 cannot reach diamond or gold."""
        result = self.classify(classifier, qm=6, gap=60.0)

        assert result.confidence_score == 90
        assert result.tier == GemTier.SILVER

    def test_tier_floor_uses_unrounded_confidence(self, classifier):
        """84.61 reports as 85 but stays below the diamond floor."""
        result = self.classify(classifier, gap=49.2, buybacks=False)

        assert result.confidence_score == 85
        assert result.tier == GemTier.GOLD

    def test_crown_jewel_floor_uses_unrounded_confidence(self, classifier):
        """94.50 reports as 95 but is a diamond, not a crown jewel."""
        result = self.classify(classifier, gap=48.98)

        assert result.confidence_score == 95
        assert result.tier == GemTier.DIAMOND

    def test_no_growth_is_value_trap(self, classifier):
        """Zero growth signals filters the stock out."""
        result = self.classify(classifier, growth=0)

        assert result.tier is None
        assert result.confidence_score == 0
        assert result.warnings == (NO_GROWTH_WARNING,)
        assert "Value trap" in result.recommendation

    def test_value_trap_warning(self, classifier):
        """Revenue growth alone with declining income and FCF is flagged."""
        signals = GrowthSignals(revenue_growing=True, net_income_growing=False, fcf_growing=False)
        result = self.classify(classifier, qm=7, gap=40.0, growth=1, growth_signals=signals)

        assert VALUE_TRAP_WARNING in result.warnings
        assert result.recommendation.endswith("(check fundamentals trend)")

    @pytest.mark.parametrize("gap", [None, 15.0, 10.0])
    def test_gap_must_exceed_floor(self, classifier, gap):
        """The value gap gate is exclusive at 15 %."""
        assert self.classify(classifier, gap=gap).eligible is False

    def test_market_cap_ceiling(self, classifier):
        """$50B and above is excluded."""
        result = self.classify(classifier, market_cap=50 * BILLION)
        assert "Market cap above ceiling" in result.warnings

    def test_unknown_market_cap(self, classifier):
        """Unknown market cap is ineligible."""
        assert self.classify(classifier, market_cap=None).eligible is False

    def test_scanning_floor(self, classifier):
        """Small caps pass a single lookup but not a scan."""
        assert self.classify(classifier, market_cap=400_000_000).eligible is True

        scanned = self.classify(classifier, market_cap=400_000_000, scanning=True)
        assert scanned.eligible is False
        assert "Market cap below scanning floor" in scanned.warnings

    @pytest.mark.parametrize("fcf", [None, 0.0, -5.0])
    def test_requires_positive_fcf(self, classifier, fcf):
        """Latest free cash flow must be positive."""
        assert self.classify(classifier, fcf=fcf).eligible is False

    def test_inputs_are_clamped(self, classifier):
        """Out-of-range QM and growth counts are clamped."""
        result = self.classify(classifier, qm=11, growth=5)
        assert result.confidence_score == self.classify(classifier, qm=8, growth=3).confidence_score

    def test_to_dict(self, classifier):
        """Serialized tier uses the tier value."""
        data = self.classify(classifier).to_dict()

        assert data['tier'] == "diamond"
        assert data['confidence_score'] == 93
        assert data['warnings'] == []

    def test_classify_score_uses_qm_signals(self, classifier, quality_dataset):
        """classify_score reads growth and buybacks from the QM score."""
        qm_score = QMScoreEngine().evaluate(quality_dataset)
        result = classifier.classify_score(qm_score, 60.0, quality_dataset.market_cap,
                                           quality_dataset.latest_free_cash_flow)

        assert result.growth_signal_count == 3
        assert result.tier == GemTier.CROWN_JEWEL

    def test_custom_policy(self):
        """Gate values come from configuration."""
        classifier = TierClassifier(TierPolicy(min_qm_score=4))
        result = self.classify(classifier, qm=4, gap=50.0)

        assert result.eligible is True
        assert result.confidence_score == 20 + 25 + 20 + 10

    def test_policy_rejects_unordered_tiers(self):
        """Tiers must be listed from the highest confidence floor down."""
        with pytest.raises(ValueError):
            TierPolicy(tiers=[
                {"tier": "silver", "min_confidence": 55},
                {"tier": "gold", "min_confidence": 70},
            ])


class TestConfidence:
    """Monotonicity and rounding of the confidence score."""

    @pytest.fixture
    def classifier(self):
        return TierClassifier()

    def test_raw_confidence(self, classifier):
        """The unrounded sum is returned; classify reports it rounded half-up."""
        assert classifier.confidence(8, 45.0, 3, True) == pytest.approx(92.51)
        assert classifier.classify(8, 45.0, 3, True, 2e9, 1.0).confidence_score == 93

    def test_gap_credit_is_capped(self, classifier):
        """Gaps beyond 60 % earn no extra credit."""
        assert classifier.confidence(8, 60.0, 0, False) == classifier.confidence(8, 90.0, 0, False)

    def test_negative_gap_earns_nothing(self, classifier):
        """Overvaluation is not penalized beyond zero credit."""
        assert classifier.confidence(8, -20.0, 0, False) == pytest.approx(40.0)

    @pytest.mark.parametrize("qm", range(8))
    def test_monotonic_in_quality(self, classifier, qm):
        """More quality never lowers confidence."""
        assert classifier.confidence(qm + 1, 30.0, 2, False) >= classifier.confidence(qm, 30.0, 2, False)

    @pytest.mark.parametrize("growth", range(3))
    def test_monotonic_in_growth(self, classifier, growth):
        """More growth signals never lower confidence."""
        assert classifier.confidence(7, 30.0, growth + 1, False) >= classifier.confidence(7, 30.0, growth, False)

    def test_monotonic_in_gap(self, classifier):
        """A larger gap never lowers confidence."""
        values = [classifier.confidence(7, gap, 2, False) for gap in range(0, 100, 5)]
        assert values == sorted(values)

    @pytest.mark.parametrize("qm,growth,buybacks", [(8, 3, True), (8, 3, False), (7, 2, False), (6, 1, True)])
    def test_tier_rank_monotonic_in_gap(self, classifier, qm, growth, buybacks):
        """A larger gap never lowers the assigned tier."""
        ranks = [
            classifier.classify(qm, gap / 2, growth, buybacks, 2e9, 1.0).rank
            for gap in range(-20, 200)
        ]
        assert ranks == sorted(ranks)

    def test_buybacks_add_points(self, classifier):
        """Buybacks add ten points."""
        assert classifier.confidence(7, 30.0, 2, True) == pytest.approx(classifier.confidence(7, 30.0, 2, False) + 10)

    def test_tier_rank_order(self):
        """Crown jewel outranks diamond, gold, silver and no tier."""
        ranks = [TIER_RANK[t] for t in (GemTier.CROWN_JEWEL, GemTier.DIAMOND, GemTier.GOLD, GemTier.SILVER, None)]
        assert ranks == sorted(ranks, reverse=True)
