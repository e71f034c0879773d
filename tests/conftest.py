"""
Pytest configuration and fixtures.
"""
import pytest
from sqlalchemy.orm import sessionmaker

from shared.configs.models import (
    EconomicPhase,
    LiquidityRegime,
    MacroEnvironment,
    ScoringConfig,
    SectorCycleProfile,
)
from shared.database.connection import get_engine
from shared.database.models import Base
from services.data_collector.financial_dataset import FinancialDataset, Quote
from tests.factories import MILLION, make_dataset


@pytest.fixture
def technology_profile():
    return SectorCycleProfile(
        early_recovery=9,
        mid_expansion=10,
        late_expansion=6,
        recession=4,
        liquidity_sensitivity=8,
        rate_sensitivity=-7,
        defensiveness=3,
        growth_potential=10,
    )


@pytest.fixture
def utilities_profile():
    return SectorCycleProfile(
        early_recovery=3,
        mid_expansion=4,
        late_expansion=7,
        recession=9,
        liquidity_sensitivity=-3,
        rate_sensitivity=-8,
        defensiveness=9,
        growth_potential=3,
    )


@pytest.fixture
def sector_profiles(technology_profile, utilities_profile):
    return {"Technology": technology_profile, "Utilities": utilities_profile}


@pytest.fixture
def late_cycle_environment():
    """Late expansion, tightening liquidity, 4.5 % policy rate."""
    return MacroEnvironment(
        phase=EconomicPhase.LATE_EXPANSION,
        liquidity=LiquidityRegime.TIGHTENING,
        fed_funds_rate=4.5,
    )


@pytest.fixture
def scoring_config(sector_profiles):
    return ScoringConfig(sector_profiles=sector_profiles)


@pytest.fixture
def quality_dataset():
    """Company passing all eight pillars with a 60 % value gap."""
    return make_dataset()


@pytest.fixture
def quote_only_dataset():
    return FinancialDataset.build(
        symbol="THIN",
        quote=Quote(price=10.0, market_cap=1_000 * MILLION),
    )


@pytest.fixture
def test_db_engine():
    """Create in-memory database engine with all tables."""
    engine = get_engine("sqlite://")
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def test_db_session(test_db_engine):
    """Create test database session."""
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_db_engine)
    session = SessionLocal()
    yield session
    session.rollback()
    session.close()
