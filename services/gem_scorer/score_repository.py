"""
Gem Score Repository.

Persists stocks, quality scores, gem scores, macro snapshots and sector cycle
profiles. Write methods commit on success; on database errors they log,
roll back and return None/False.
"""
from datetime import datetime
from typing import Optional, Dict, Any, List, Tuple, TYPE_CHECKING
import json
import logging

from sqlalchemy import and_, desc, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from shared.configs.models import MacroEnvironment, SectorCycleProfile
from shared.database.models import (
    GemScore,
    MacroSnapshot,
    QualityScore,
    SectorCycleProfileRecord,
    Stock,
)
from services.data_collector.financial_dataset import FinancialDataset

if TYPE_CHECKING:
    from services.gem_scorer.score_service import StockAnalysis

logger = logging.getLogger(__name__)

PROFILE_FIELDS = (
    "early_recovery",
    "mid_expansion",
    "late_expansion",
    "recession",
    "liquidity_sensitivity",
    "rate_sensitivity",
    "defensiveness",
    "growth_potential",
)


class GemScoreRepository:
    """Repository for gem scoring data access."""

    def __init__(self, db_session: Session):
        """
        Initialize the repository.

        Args:
            db_session: SQLAlchemy database session
        """
        self.db = db_session
        self.logger = logging.getLogger(__name__)

    # ------------------------------------------------------------------
    # Stocks
    # ------------------------------------------------------------------

    def get_stock_by_symbol(self, symbol: str) -> Optional[Stock]:
        try:
            return self.db.query(Stock).filter(Stock.symbol == symbol.upper()).first()
        except SQLAlchemyError as e:
            self.logger.error(f"Error retrieving stock {symbol}: {e}")
            return None

    def _upsert_stock(self, dataset: FinancialDataset) -> Stock:
        stock = self.db.query(Stock).filter(Stock.symbol == dataset.symbol).first()
        if stock is None:
            stock = Stock(symbol=dataset.symbol)
            self.db.add(stock)

        profile = dataset.profile
        if profile is not None:
            stock.company_name = profile.company_name or stock.company_name
            stock.sector = profile.sector or stock.sector
            stock.industry = profile.industry or stock.industry
            stock.exchange = profile.exchange or stock.exchange
            stock.currency = profile.currency or stock.currency
        if dataset.market_cap is not None:
            stock.market_cap = dataset.market_cap
        stock.updated_at = datetime.utcnow()
        self.db.flush()
        return stock

    # ------------------------------------------------------------------
    # Analyses
    # ------------------------------------------------------------------

    def save_analysis(
        self,
        analysis: "StockAnalysis",
        scan_id: Optional[str] = None,
        market: Optional[str] = None
    ) -> Optional[GemScore]:
        """
        Save one analysis (stock, quality score and gem score) atomically.

        Args:
            analysis: Result of GemScoringService.analyze
            scan_id: Optional scan session id
            market: Optional scanned market label

        Returns:
            The stored GemScore, or None on failure
        """
        try:
            stock = self._upsert_stock(analysis.dataset)

            quality_data = analysis.qm_score.to_dict()
            quality_data.pop('symbol')
            quality = QualityScore(
                stock_id=stock.id,
                calculated_at=analysis.calculated_at,
                **quality_data
            )
            self.db.add(quality)
            self.db.flush()

            gem_data: Dict[str, Any] = {}
            gem_data.update(analysis.valuation.to_dict())
            gem_data.update(analysis.tier.to_dict())
            gem_data['warnings'] = json.dumps(gem_data['warnings'])
            gem_data.update(analysis.macro.to_dict())
            gem_data.pop('macro_base_score')
            gem_data.update(analysis.rating.to_dict())
            gem_data.update(analysis.timeframe.to_dict())

            gem = GemScore(
                stock_id=stock.id,
                quality_score_id=quality.id,
                calculated_at=analysis.calculated_at,
                scan_id=scan_id,
                market=market,
                **gem_data
            )
            self.db.add(gem)
            self.db.commit()

            self.logger.debug(f"Saved analysis for {stock.symbol}")
            return gem

        except SQLAlchemyError as e:
            self.logger.error(f"Error saving analysis for {analysis.symbol}: {e}")
            self.db.rollback()
            return None

    def get_latest_gem_score(self, symbol: str) -> Optional[Tuple[Stock, GemScore]]:
        try:
            return (
                self.db.query(Stock, GemScore)
                .join(GemScore, Stock.id == GemScore.stock_id)
                .filter(Stock.symbol == symbol.upper())
                .order_by(desc(GemScore.calculated_at), desc(GemScore.id))
                .first()
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error retrieving gem score for {symbol}: {e}")
            return None

    def get_latest_quality_score(self, symbol: str) -> Optional[QualityScore]:
        try:
            return (
                self.db.query(QualityScore)
                .join(Stock, Stock.id == QualityScore.stock_id)
                .filter(Stock.symbol == symbol.upper())
                .order_by(desc(QualityScore.calculated_at), desc(QualityScore.id))
                .first()
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error retrieving quality score for {symbol}: {e}")
            return None

    def get_top_gems(
        self,
        limit: int = 20,
        tier: Optional[str] = None,
        min_confidence: Optional[float] = None
    ) -> List[Tuple[Stock, GemScore]]:
        """
        Latest gem score per stock, restricted to stocks that earned a tier.

        Args:
            limit: Maximum number of rows
            tier: Restrict to one tier
            min_confidence: Minimum confidence score

        Returns:
            (Stock, GemScore) tuples ordered by confidence descending
        """
        try:
            latest = (
                self.db.query(
                    GemScore.stock_id,
                    func.max(GemScore.id).label('max_id')
                )
                .group_by(GemScore.stock_id)
                .subquery()
            )

            query = (
                self.db.query(Stock, GemScore)
                .join(GemScore, Stock.id == GemScore.stock_id)
                .join(
                    latest,
                    and_(
                        GemScore.stock_id == latest.c.stock_id,
                        GemScore.id == latest.c.max_id
                    )
                )
                .filter(GemScore.tier.isnot(None))
            )

            if tier is not None:
                query = query.filter(GemScore.tier == tier)
            if min_confidence is not None:
                query = query.filter(GemScore.confidence_score >= min_confidence)

            results = query.order_by(desc(GemScore.confidence_score)).limit(limit).all()
            self.logger.info(f"Retrieved {len(results)} gems")
            return results

        except SQLAlchemyError as e:
            self.logger.error(f"Error retrieving top gems: {e}")
            return []

    # ------------------------------------------------------------------
    # Macro state
    # ------------------------------------------------------------------

    def save_macro_snapshot(self, environment: MacroEnvironment) -> bool:
        try:
            data = environment.model_dump(mode="json")
            data['last_updated'] = environment.last_updated
            self.db.add(MacroSnapshot(**data))
            self.db.commit()
            return True
        except SQLAlchemyError as e:
            self.logger.error(f"Error saving macro snapshot: {e}")
            self.db.rollback()
            return False

    def get_latest_macro_environment(self) -> Optional[MacroEnvironment]:
        try:
            row = self.db.query(MacroSnapshot).order_by(desc(MacroSnapshot.id)).first()
        except SQLAlchemyError as e:
            self.logger.error(f"Error retrieving macro snapshot: {e}")
            return None

        if row is None:
            return None
        return MacroEnvironment(
            phase=row.phase,
            liquidity=row.liquidity,
            sentiment=row.sentiment,
            fed_funds_rate=row.fed_funds_rate,
            inflation=row.inflation,
            unemployment=row.unemployment,
            yield_curve_spread=row.yield_curve_spread,
            vix=row.vix,
            m2_growth=row.m2_growth,
            credit_spread=row.credit_spread,
            last_updated=row.last_updated,
            source=row.source,
        )

    def save_sector_profile(self, sector: str, profile: SectorCycleProfile) -> bool:
        try:
            record = (
                self.db.query(SectorCycleProfileRecord)
                .filter(SectorCycleProfileRecord.sector == sector)
                .first()
            )
            if record is None:
                record = SectorCycleProfileRecord(sector=sector)
                self.db.add(record)
            for name in PROFILE_FIELDS:
                setattr(record, name, getattr(profile, name))
            self.db.commit()
            return True
        except SQLAlchemyError as e:
            self.logger.error(f"Error saving sector profile {sector}: {e}")
            self.db.rollback()
            return False

    def get_sector_profiles(self) -> Dict[str, SectorCycleProfile]:
        try:
            records = self.db.query(SectorCycleProfileRecord).all()
        except SQLAlchemyError as e:
            self.logger.error(f"Error retrieving sector profiles: {e}")
            return {}

        return {
            record.sector: SectorCycleProfile(**{name: getattr(record, name) for name in PROFILE_FIELDS})
            for record in records
        }
