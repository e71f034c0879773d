"""
Batch scanner.

Fetches and analyzes a list of symbols in small concurrent batches with a
pause between batches. Every scan gets its own ScanSession, so concurrent
scans never share progress state. Database writes happen on the calling
thread; worker threads only fetch and score.
"""
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Tuple
import logging
import time
import uuid

import pandas as pd

from shared.configs.models import ScannerConfig
from shared.monitoring.structured_logger import log_context, log_error, log_performance
from shared.utilities.validators import validate_ticker
from services.gem_scorer.score_service import GemScoringService, StockAnalysis
from services.gem_scorer.tier_classifier import TIER_RANK

logger = logging.getLogger(__name__)

SUMMARY_COLUMNS = [
    'symbol', 'company_name', 'sector', 'market_cap', 'qm_score', 'fair_pe', 'observed_pe',
    'value_gap_percent', 'valuation_status', 'tier', 'confidence_score', 'macro_adjusted_score',
    'macro_bonus', 'rating_score', 'rating', 'horizon', 'timeframe_score', 'timeframe_gem_tier',
]


@dataclass
class ScanSession:
    """Progress and results of one scan."""
    market: Optional[str] = None
    scan_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    total: int = 0
    current: int = 0
    last_symbol: Optional[str] = None
    succeeded: int = 0
    failed: int = 0
    errors: Dict[str, str] = field(default_factory=dict)
    analyses: List[StockAnalysis] = field(default_factory=list)
    started_at: datetime = field(default_factory=datetime.utcnow)
    finished_at: Optional[datetime] = None

    @property
    def is_finished(self) -> bool:
        return self.finished_at is not None

    @property
    def progress(self) -> Dict[str, object]:
        return {
            'scan_id': self.scan_id,
            'market': self.market,
            'current': self.current,
            'total': self.total,
            'last_symbol': self.last_symbol,
            'succeeded': self.succeeded,
            'failed': self.failed,
            'finished': self.is_finished,
        }

    def record_success(self, symbol: str, analysis: StockAnalysis) -> None:
        self.current += 1
        self.last_symbol = symbol
        self.succeeded += 1
        self.analyses.append(analysis)

    def record_failure(self, symbol: str, reason: str) -> None:
        self.current += 1
        self.last_symbol = symbol
        self.failed += 1
        self.errors[symbol] = reason

    def gems(self) -> List[StockAnalysis]:
        """Analyses that earned a tier, best tier then highest confidence first."""
        found = [a for a in self.analyses if a.tier.is_gem]
        return sorted(found, key=lambda a: (TIER_RANK[a.tier.tier], a.tier.confidence_score), reverse=True)

    def to_dataframe(self) -> pd.DataFrame:
        """One row per analyzed stock, ordered by confidence score."""
        if not self.analyses:
            return pd.DataFrame(columns=SUMMARY_COLUMNS)
        df = pd.DataFrame([a.to_dict() for a in self.analyses])
        return df.sort_values('confidence_score', ascending=False, kind='stable').reset_index(drop=True)


class GemScanner:
    """Scans symbol lists or whole markets for quality gems."""

    def __init__(
        self,
        service: GemScoringService,
        config: Optional[ScannerConfig] = None,
        persist: bool = True
    ):
        """
        Initialize the scanner.

        Args:
            service: Scoring service; its provider fetches the data
            config: Batch size, pause and market table
            persist: Save analyses through the service's repository
        """
        if service.provider is None:
            raise ValueError("GemScanner requires a service with a data provider")
        self.service = service
        self.config = config or ScannerConfig()
        self.persist = persist
        self.logger = logging.getLogger(__name__)

    def scan(self, symbols: Sequence[str], market: Optional[str] = None) -> ScanSession:
        """
        Analyze symbols in batches of config.concurrency.

        A failing symbol is logged and counted; it never aborts the scan.

        Args:
            symbols: Ticker symbols (duplicates and blanks are dropped)
            market: Optional market label stored with the results

        Returns:
            Finished ScanSession
        """
        unique: List[str] = []
        invalid: List[str] = []
        for symbol in symbols:
            cleaned = symbol.strip().upper() if symbol else ""
            if not cleaned or cleaned in unique or cleaned in invalid:
                continue
            if validate_ticker(cleaned):
                unique.append(cleaned)
            else:
                invalid.append(cleaned)

        session = ScanSession(market=market, total=len(unique) + len(invalid))
        batch_size = self.config.concurrency
        pause = self.config.batch_pause_seconds
        start = time.perf_counter()

        self.logger.info(f"Scan {session.scan_id} started: {session.total} symbols, market={market}")

        for symbol in invalid:
            self.logger.warning(f"Skipping invalid symbol: {symbol}")
            session.record_failure(symbol, "invalid symbol")

        with log_context(scan_id=session.scan_id), ThreadPoolExecutor(max_workers=batch_size) as executor:
            for offset in range(0, len(unique), batch_size):
                batch = unique[offset:offset + batch_size]
                futures = {
                    executor.submit(self._analyze_symbol, symbol, session.scan_id): symbol
                    for symbol in batch
                }

                for future in as_completed(futures):
                    symbol = futures[future]
                    analysis, reason = future.result()
                    if analysis is None:
                        session.record_failure(symbol, reason or "unknown error")
                        continue

                    session.record_success(symbol, analysis)
                    if self.persist and self.service.repository is not None:
                        if not self.service.persist(analysis, scan_id=session.scan_id, market=market):
                            self.logger.warning(f"Analysis for {symbol} was not stored")

                self.logger.info(
                    f"Scan {session.scan_id}: {session.current}/{session.total} "
                    f"(ok={session.succeeded}, failed={session.failed})"
                )

                if pause > 0 and offset + batch_size < len(unique):
                    time.sleep(pause)

        session.finished_at = datetime.utcnow()
        log_performance(
            self.logger,
            "scan",
            (time.perf_counter() - start) * 1000,
            scan_id=session.scan_id,
            total=session.total,
            succeeded=session.succeeded,
            failed=session.failed,
        )
        return session

    def scan_market(self, market: str, limit: Optional[int] = None) -> ScanSession:
        """
        Scan every stock of a configured market inside the scanner's market-cap range.

        Raises:
            ValueError: If the market is not configured
        """
        exchanges = self.config.markets.get(market)
        if not exchanges:
            raise ValueError(f"Unknown market '{market}'. Configured: {sorted(self.config.markets)}")

        fetch_universe = getattr(self.service.provider, "fetch_universe", None)
        if fetch_universe is None:
            raise ValueError("The data provider cannot list a market universe")

        symbols = fetch_universe(
            exchanges,
            self.config.min_market_cap,
            self.config.max_market_cap,
            limit or self.config.universe_limit,
        )
        self.logger.info(f"Universe for {market}: {len(symbols)} symbols")
        return self.scan(symbols, market=market)

    def _analyze_symbol(self, symbol: str, scan_id: str) -> Tuple[Optional[StockAnalysis], Optional[str]]:
        """Worker: fetch and analyze one symbol, never raising."""
        with log_context(scan_id=scan_id, symbol=symbol):
            try:
                dataset = self.service.provider.fetch_financial_dataset(symbol)
                analysis = self.service.analyze(dataset, scanning=True)
            except Exception as e:
                log_error(self.logger, e, {"operation": "scan_symbol"})
                return None, f"{type(e).__name__}: {e}"

        if analysis is None:
            return None, "insufficient data"
        return analysis, None
