"""
Database models for the quality gem scorer.

Every percentage and ratio is a nullable Float column: SQL NULL means the
value was unknown, never zero.
"""
from datetime import datetime
from sqlalchemy import Column, Integer, String, Float, DateTime, Date, Boolean, ForeignKey, Text, Index
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


class Stock(Base):
    """Stock master data."""
    __tablename__ = "stocks"

    id = Column(Integer, primary_key=True, index=True)
    symbol = Column(String(20), unique=True, index=True, nullable=False, comment="Ticker symbol (e.g., AAPL)")
    company_name = Column(String(200), comment="Company name")
    sector = Column(String(100), index=True, comment="Sector label used for macro profiles")
    industry = Column(String(200), comment="Industry classification")
    exchange = Column(String(20), index=True, comment="Exchange short name")
    currency = Column(String(10), comment="Reporting currency")
    market_cap = Column(Float, comment="Latest market capitalization")
    is_active = Column(Boolean, default=True, index=True, comment="Whether stock is actively tracked")
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    quality_scores = relationship("QualityScore", back_populates="stock", cascade="all, delete-orphan")
    gem_scores = relationship("GemScore", back_populates="stock", cascade="all, delete-orphan")


class QualityScore(Base):
    """Eight-pillar QM score with measured values."""
    __tablename__ = "quality_scores"

    id = Column(Integer, primary_key=True, index=True)
    stock_id = Column(Integer, ForeignKey("stocks.id", ondelete="CASCADE"), nullable=False, index=True)
    calculated_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)

    total_score = Column(Integer, nullable=False, comment="Passing pillars (0-8)")
    growth_signal_count = Column(Integer, nullable=False, comment="Revenue/income/FCF growth signals (0-3)")
    shares_decreasing = Column(Boolean, nullable=False, default=False)

    # Pillars
    pe_5y_value = Column(Float, comment="Market cap / 5-year net income")
    pe_5y_passed = Column(Boolean, nullable=False, default=False)
    roic_5y_value = Column(Float, comment="5-year FCF / invested capital (%)")
    roic_5y_passed = Column(Boolean, nullable=False, default=False)
    shares_outstanding_value = Column(Float, comment="Share count change (%)")
    shares_outstanding_passed = Column(Boolean, nullable=False, default=False)
    fcf_growth_value = Column(Float, comment="FCF growth (%)")
    fcf_growth_passed = Column(Boolean, nullable=False, default=False)
    net_income_growth_value = Column(Float, comment="Net income growth (%)")
    net_income_growth_passed = Column(Boolean, nullable=False, default=False)
    revenue_growth_value = Column(Float, comment="Revenue growth (%)")
    revenue_growth_passed = Column(Boolean, nullable=False, default=False)
    debt_coverage_value = Column(Float, comment="Long-term debt / average FCF")
    debt_coverage_passed = Column(Boolean, nullable=False, default=False)
    price_to_fcf_5y_value = Column(Float, comment="Market cap / 5-year FCF")
    price_to_fcf_5y_passed = Column(Boolean, nullable=False, default=False)

    # Auxiliary metrics
    roe = Column(Float, comment="Return on equity (%)")
    gross_margin = Column(Float, comment="Gross margin (%)")
    operating_margin = Column(Float, comment="Operating margin (%)")
    current_ratio = Column(Float, comment="Current assets / current liabilities")

    stock = relationship("Stock", back_populates="quality_scores")

    __table_args__ = (
        Index('ix_quality_scores_stock_date', 'stock_id', 'calculated_at'),
    )


class GemScore(Base):
    """Valuation, rating, tier and timeframe outcome of one analysis."""
    __tablename__ = "gem_scores"

    id = Column(Integer, primary_key=True, index=True)
    stock_id = Column(Integer, ForeignKey("stocks.id", ondelete="CASCADE"), nullable=False, index=True)
    quality_score_id = Column(Integer, ForeignKey("quality_scores.id", ondelete="SET NULL"), index=True)
    calculated_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)
    scan_id = Column(String(36), index=True, comment="Scan session that produced the row")
    market = Column(String(20), comment="Scanned market label")

    # Valuation
    fair_pe = Column(Float, nullable=False)
    observed_pe = Column(Float)
    value_gap_percent = Column(Float, comment="(fair - observed) / fair (%)")
    valuation_status = Column(String(20), nullable=False)

    # Tier
    tier = Column(String(20), index=True, comment="crown-jewel, diamond, gold, silver or NULL")
    confidence_score = Column(Float, nullable=False, index=True)
    eligible = Column(Boolean, nullable=False, default=False)
    growth_signal_count = Column(Integer, nullable=False)
    warnings = Column(Text, comment="JSON list of warnings")
    recommendation = Column(Text)

    # Macro adjustment of the confidence score
    macro_adjusted_score = Column(Float)
    macro_bonus = Column(Integer)
    sector_fit_score = Column(Float)
    sector_outlook = Column(String(10))
    macro_risk_level = Column(String(10))
    cycle_fit = Column(String(20))

    # Comprehensive rating
    rating_score = Column(Float)
    rating = Column(String(20))
    quality_points = Column(Integer)
    value_points = Column(Integer)
    growth_points = Column(Integer)
    safety_points = Column(Integer)
    momentum_points = Column(Integer)
    sector_quality = Column(String(20))

    # Timeframe
    horizon = Column(String(20))
    timeframe_score = Column(Float)
    timeframe_rating = Column(String(20))
    timeframe_gem_tier = Column(String(30))

    stock = relationship("Stock", back_populates="gem_scores")

    __table_args__ = (
        Index('ix_gem_scores_stock_date', 'stock_id', 'calculated_at'),
        Index('ix_gem_scores_tier_confidence', 'tier', 'confidence_score'),
    )


class MacroSnapshot(Base):
    """History of published macro environments."""
    __tablename__ = "macro_snapshots"

    id = Column(Integer, primary_key=True, index=True)
    phase = Column(String(20), nullable=False)
    liquidity = Column(String(20), nullable=False)
    sentiment = Column(String(20), nullable=False)
    fed_funds_rate = Column(Float)
    inflation = Column(Float)
    unemployment = Column(Float)
    yield_curve_spread = Column(Float)
    vix = Column(Float)
    m2_growth = Column(Float)
    credit_spread = Column(Float)
    last_updated = Column(Date, nullable=False)
    source = Column(String(100))
    created_at = Column(DateTime, default=datetime.utcnow, index=True)


class SectorCycleProfileRecord(Base):
    """Administratively maintained sector cycle profiles."""
    __tablename__ = "sector_cycle_profiles"

    id = Column(Integer, primary_key=True, index=True)
    sector = Column(String(100), unique=True, nullable=False, index=True)
    early_recovery = Column(Integer, nullable=False)
    mid_expansion = Column(Integer, nullable=False)
    late_expansion = Column(Integer, nullable=False)
    recession = Column(Integer, nullable=False)
    liquidity_sensitivity = Column(Float, nullable=False)
    rate_sensitivity = Column(Float, nullable=False)
    defensiveness = Column(Float, nullable=False)
    growth_potential = Column(Float, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
