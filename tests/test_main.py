"""
Tests for the command line entry point.
"""
import pytest

from shared.configs.models import EconomicPhase
from services.gem_scorer import main as cli
from services.gem_scorer.score_repository import GemScoreRepository
from services.gem_scorer.score_service import GemScoringService
from tests.factories import FakeProvider, make_dataset


@pytest.fixture
def cli_db(monkeypatch, test_db_session):
    """Route CLI sessions to the in-memory test database."""
    monkeypatch.setattr(cli, "get_session", lambda: test_db_session)
    monkeypatch.setattr(cli, "init_db", lambda: None)
    return test_db_session


class TestParser:
    """Argument parsing."""

    def test_scan_arguments(self):
        args = cli.build_parser().parse_args(['scan', '--market', 'nordic', '--limit', '25', '--horizon', 'short-term'])

        assert args.command == 'scan'
        assert args.symbols == []
        assert args.market == 'nordic'
        assert args.limit == 25
        assert args.horizon == 'short-term'

    def test_macro_changes(self):
        """Only given macro flags become changes."""
        args = cli.build_parser().parse_args(['macro-update', '--phase', 'recession', '--vix', '32.5'])
        assert cli._macro_changes(args) == {'phase': 'recession', 'vix': 32.5}

    def test_invalid_horizon(self):
        with pytest.raises(SystemExit):
            cli.build_parser().parse_args(['analyze', 'AAPL', '--horizon', 'forever'])


class TestMain:
    """Command dispatch."""

    def test_analyze_requires_symbols(self, cli_db):
        assert cli.main(['analyze']) == 1

    def test_compare_requires_two_symbols(self, cli_db):
        assert cli.main(['compare', 'AAPL']) == 1

    def test_macro_update_is_stored(self, cli_db):
        """macro-update stores a new snapshot."""
        assert cli.main(['macro-update', '--phase', 'recession', '--fed-funds-rate', '2.0']) == 0

        env = GemScoreRepository(cli_db).get_latest_macro_environment()
        assert env.phase == EconomicPhase.RECESSION
        assert env.fed_funds_rate == 2.0

    def test_macro_update_without_fields(self, cli_db):
        assert cli.main(['macro-update']) == 1

    def test_top_with_empty_database(self, cli_db):
        assert cli.main(['top']) == 0

    def test_analyze_skips_rejected_symbols(self, cli_db, monkeypatch):
        """A symbol the provider rejects is logged and the remaining symbols are still analyzed."""
        provider = FakeProvider({"GEM": make_dataset()}, failing={"  ": ValueError("Symbol must not be empty")})
        monkeypatch.setattr(
            cli, "build_service",
            lambda db, horizon=None: GemScoringService(provider=provider, repository=GemScoreRepository(db)),
        )

        results = cli.analyze_symbols(["  ", "GEM"])

        assert [analysis.symbol for analysis in results] == ["GEM"]
