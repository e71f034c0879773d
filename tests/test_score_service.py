"""
Tests for the gem scoring service and its repository.
"""
import json

import pytest

from shared.configs.models import EconomicPhase, InvestmentHorizon, LiquidityRegime, MacroEnvironment
from services.gem_scorer.score_repository import GemScoreRepository
from services.gem_scorer.score_service import GemScoringService
from services.gem_scorer.tier_classifier import GemTier
from tests.factories import FakeProvider, make_dataset


@pytest.fixture
def service(scoring_config):
    return GemScoringService(scoring_config=scoring_config)


@pytest.fixture
def repository(test_db_session):
    return GemScoreRepository(test_db_session)


class TestGemScoringService:
    """Test suite for GemScoringService."""

    def test_analyze_quality_company(self, service, quality_dataset):
        """Every engine runs and the tier confidence is macro-adjusted."""
        analysis = service.analyze(quality_dataset)

        assert analysis.qm_score.total_score == 8
        assert analysis.valuation.value_gap_percent == pytest.approx(60.0)
        assert analysis.tier.tier == GemTier.CROWN_JEWEL
        assert analysis.tier.confidence_score == 100
        assert analysis.macro.base_score == 100
        assert analysis.macro.bonus == -1
        assert analysis.macro.adjusted_score == 99
        assert analysis.rating.score == 74
        assert analysis.timeframe.horizon == InvestmentHorizon.LONG_TERM
        assert analysis.timeframe.gem_tier == "Diamond"

    def test_analyze_without_quote(self, service):
        """A dataset without a quote is insufficient."""
        assert service.analyze(make_dataset(with_quote=False)) is None

    def test_analyze_sparse_dataset(self, service, quote_only_dataset):
        """A quote without statements still produces a (poor) analysis."""
        analysis = service.analyze(quote_only_dataset)

        assert analysis.qm_score.total_score == 0
        assert analysis.tier.eligible is False
        assert analysis.tier.tier is None

    def test_scanning_applies_market_cap_floor(self, service):
        """Small caps lose eligibility only when scanning."""
        dataset = make_dataset(market_cap=400_000_000)

        assert service.analyze(dataset).tier.eligible is True
        assert service.analyze(dataset, scanning=True).tier.eligible is False

    def test_horizon_override(self, service, quality_dataset):
        """The horizon argument overrides the service default."""
        analysis = service.analyze(quality_dataset, horizon=InvestmentHorizon.SHORT_TERM)
        assert analysis.timeframe.horizon == InvestmentHorizon.SHORT_TERM

    def test_macro_update_changes_adjustment(self, service, quality_dataset):
        """A new macro snapshot is used by the next analysis."""
        before = service.analyze(quality_dataset)
        service.update_macro_environment(
            phase=EconomicPhase.MID_EXPANSION, liquidity=LiquidityRegime.EXPANDING, fed_funds_rate=0.5
        )
        after = service.analyze(quality_dataset)

        assert after.macro.bonus > before.macro.bonus
        assert after.tier.confidence_score == before.tier.confidence_score

    def test_to_dict(self, service, quality_dataset):
        """The flat summary carries every stage."""
        data = service.analyze(quality_dataset).to_dict()

        assert data['symbol'] == "GEM"
        assert data['tier'] == "crown-jewel"
        assert data['macro_adjusted_score'] == 99
        assert data['rating'] == "Buy"
        assert data['timeframe_gem_tier'] == "Diamond"
        assert isinstance(data['calculated_at'], str)

    def test_analyze_symbol_requires_provider(self, service):
        """analyze_symbol needs a data provider."""
        with pytest.raises(RuntimeError):
            service.analyze_symbol("GEM")

    def test_analyze_symbol_persists(self, scoring_config, repository, quality_dataset):
        """analyze_symbol fetches, analyzes and stores."""
        service = GemScoringService(
            scoring_config=scoring_config,
            provider=FakeProvider({"GEM": quality_dataset}),
            repository=repository,
        )

        analysis = service.analyze_symbol("GEM")

        assert analysis is not None
        stock, gem = repository.get_latest_gem_score("gem")
        assert stock.symbol == "GEM"
        assert gem.tier == "crown-jewel"

    def test_analyze_symbol_without_persist(self, scoring_config, repository, quality_dataset):
        """persist=False leaves the database untouched."""
        service = GemScoringService(
            scoring_config=scoring_config,
            provider=FakeProvider({"GEM": quality_dataset}),
            repository=repository,
        )
        service.analyze_symbol("GEM", persist=False)

        assert repository.get_latest_gem_score("GEM") is None

    def test_persist_without_repository(self, service, quality_dataset):
        """Persisting without a repository reports False."""
        assert service.persist(service.analyze(quality_dataset)) is False

    def test_compare_uses_macro_edge(self, service):
        """Two equally strong companies: the better sector fit wins."""
        tech = service.analyze(make_dataset(symbol="TECH", sector="Technology"))
        util = service.analyze(make_dataset(symbol="UTIL", sector="Utilities"))

        result = service.compare(tech, util)

        assert result.winner == "UTIL"

    def test_compare_falls_back_to_rating(self, service):
        """Ineligible stocks compare on their comprehensive rating."""
        weak = service.analyze(make_dataset(symbol="WEAK", market_cap=None))

        assert weak.tier.eligible is False
        assert weak.comparison_score == weak.rating.score

    def test_sector_profile_update(self, service, utilities_profile, quality_dataset):
        """Replacing a sector profile changes its macro fit."""
        before = service.analyze(quality_dataset).macro.sector_fit_score
        service.set_sector_cycle_profile("Technology", utilities_profile)
        after = service.analyze(quality_dataset).macro.sector_fit_score

        assert after != before


class TestFromConfig:
    """Building the service from YAML and stored state."""

    def test_from_project_config(self, quality_dataset):
        """The shipped tables produce the same verdict as the library defaults."""
        service = GemScoringService.from_config()
        analysis = service.analyze(quality_dataset)

        assert analysis.tier.tier == GemTier.CROWN_JEWEL
        assert analysis.macro.sector_fit_score is not None

    def test_stored_state_overrides_yaml(self, repository, technology_profile, utilities_profile):
        """Stored macro snapshots and sector profiles take precedence."""
        repository.save_macro_snapshot(MacroEnvironment(phase=EconomicPhase.RECESSION, source="stored"))
        repository.save_sector_profile("Technology", utilities_profile)

        service = GemScoringService.from_config(repository=repository)
        state = service.macro_store.snapshot()

        assert state.environment.phase == EconomicPhase.RECESSION
        assert state.environment.source == "stored"
        assert state.sector_profiles["Technology"] == utilities_profile


class TestGemScoreRepository:
    """Persistence of analyses and macro state."""

    def test_save_and_load_analysis(self, service, repository, quality_dataset):
        """A saved analysis reads back with its tier and warnings."""
        analysis = service.analyze(quality_dataset)
        gem = repository.save_analysis(analysis, scan_id="scan-1", market="us")

        assert gem is not None
        stock, latest = repository.get_latest_gem_score("GEM")
        assert stock.company_name == "GEM Corp"
        assert stock.sector == "Technology"
        assert latest.scan_id == "scan-1"
        assert latest.market == "us"
        assert latest.confidence_score == 100
        assert latest.macro_adjusted_score == 99
        assert json.loads(latest.warnings) == []

        quality = repository.get_latest_quality_score("GEM")
        assert quality.total_score == 8
        assert quality.pe_5y_passed is True

    def test_missing_values_stay_null(self, service, repository):
        """Unknown values are stored as NULL, not zero."""
        analysis = service.analyze(make_dataset(symbol="LOSS", net_income=(-10, 5, 5, 5, 5, 5)))
        repository.save_analysis(analysis)

        _, gem = repository.get_latest_gem_score("LOSS")
        assert gem.observed_pe is None
        assert gem.value_gap_percent is None
        assert gem.tier is None

    def test_stock_is_upserted(self, service, repository, quality_dataset):
        """Repeated saves reuse the stock row and the latest score wins."""
        repository.save_analysis(service.analyze(quality_dataset))
        repository.save_analysis(service.analyze(make_dataset(market_cap=3_000_000_000)))

        stock, gem = repository.get_latest_gem_score("GEM")
        assert stock.market_cap == 3_000_000_000
        assert repository.get_stock_by_symbol("GEM").id == stock.id

    def test_top_gems(self, service, repository):
        """Only tiered stocks are listed, highest confidence first, latest row per stock."""
        repository.save_analysis(service.analyze(make_dataset(symbol="BEST")))
        repository.save_analysis(service.analyze(make_dataset(symbol="GOOD", net_income=(80, 75, 70, 65, 60, 55))))
        repository.save_analysis(service.analyze(make_dataset(symbol="NONE", market_cap=None)))

        results = repository.get_top_gems()
        symbols = [stock.symbol for stock, _ in results]

        assert "NONE" not in symbols
        assert symbols[0] == "BEST"
        assert [gem.confidence_score for _, gem in results] == sorted(
            (gem.confidence_score for _, gem in results), reverse=True
        )

    def test_top_gems_filters(self, service, repository):
        """Tier and confidence filters narrow the list."""
        repository.save_analysis(service.analyze(make_dataset(symbol="BEST")))

        assert len(repository.get_top_gems(tier="crown-jewel")) == 1
        assert repository.get_top_gems(tier="silver") == []
        assert repository.get_top_gems(min_confidence=101) == []

    def test_macro_snapshot_round_trip(self, repository, late_cycle_environment):
        """The latest stored snapshot is returned."""
        assert repository.get_latest_macro_environment() is None

        repository.save_macro_snapshot(late_cycle_environment)
        repository.save_macro_snapshot(MacroEnvironment(phase=EconomicPhase.EARLY_RECOVERY, vix=30.0))

        env = repository.get_latest_macro_environment()
        assert env.phase == EconomicPhase.EARLY_RECOVERY
        assert env.vix == 30.0

    def test_sector_profile_round_trip(self, repository, technology_profile, utilities_profile):
        """Saving a sector twice replaces its profile."""
        repository.save_sector_profile("Technology", technology_profile)
        repository.save_sector_profile("Technology", utilities_profile)

        profiles = repository.get_sector_profiles()
        assert list(profiles) == ["Technology"]
        assert profiles["Technology"] == utilities_profile

    def test_update_macro_environment_is_stored(self, scoring_config, repository):
        """Service macro updates are recorded."""
        service = GemScoringService(scoring_config=scoring_config, repository=repository)
        service.update_macro_environment(vix=25.0)

        assert repository.get_latest_macro_environment().vix == 25.0
