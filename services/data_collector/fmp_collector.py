"""
Financial data collector for the Financial Modeling Prep API.

Fetches quotes, company profiles and annual statements and normalizes them
into FinancialDataset objects. Individual endpoints degrade to empty data
instead of failing the whole dataset.
"""
import logging
from typing import Any, Callable, Dict, List, Optional, TypeVar

import requests

from shared.configs.config import get_settings
from services.data_collector.financial_dataset import (
    BalanceSheet,
    CashFlowStatement,
    CompanyProfile,
    FinancialDataset,
    IncomeStatement,
    KeyMetrics,
    Quote,
)
from services.data_collector.utils import (
    RateLimiter,
    log_execution_time,
    retry_on_error,
    safe_float_conversion,
)
from shared.utilities.validators import validate_market_cap_range, validate_ticker

logger = logging.getLogger(__name__)

T = TypeVar("T")


class FinancialDataError(Exception):
    """Provider returned an error or an unusable payload."""
    pass


class RateLimitError(FinancialDataError):
    """Provider rejected the request because of its rate limit."""
    pass


RETRYABLE_ERRORS = (
    RateLimitError,
    requests.ConnectionError,
    requests.Timeout,
    requests.HTTPError,
)


class FMPFinancialCollector:
    """
    Collects annual financial statements from Financial Modeling Prep.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        session: Optional[requests.Session] = None,
        rate_limiter: Optional[RateLimiter] = None,
        timeout: Optional[int] = None,
        statement_limit: Optional[int] = None,
    ):
        """
        Initialize the collector.

        Args:
            api_key: FMP API key (settings value when omitted)
            base_url: API root (settings value when omitted)
            session: Optional requests session, shared connection pool
            rate_limiter: Optional limiter shared across collectors
            timeout: Request timeout in seconds
            statement_limit: Annual records requested per statement type
        """
        settings = get_settings()
        self.api_key = api_key or settings.fmp_api_key
        self.base_url = (base_url or settings.fmp_base_url).rstrip("/")
        self.session = session or requests.Session()
        self.rate_limiter = rate_limiter or RateLimiter.per_minute(settings.fmp_requests_per_minute)
        self.timeout = timeout or settings.fmp_timeout_seconds
        self.statement_limit = statement_limit or settings.fmp_statement_limit

        if not self.api_key:
            logger.warning("FMP API key is not configured; requests will likely be rejected")
        logger.info("FMPFinancialCollector initialized")

    @retry_on_error(max_attempts=3, min_wait=1, max_wait=8, exceptions=RETRYABLE_ERRORS)
    def _get_json(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """
        Perform a rate-limited GET request and decode the JSON body.

        Raises:
            RateLimitError: On HTTP 429 (retried)
            requests.HTTPError: On 5xx responses (retried)
            FinancialDataError: On other client errors or provider error payloads
        """
        self.rate_limiter.wait()

        query = dict(params or {})
        query["apikey"] = self.api_key or ""
        url = f"{self.base_url}{path}"

        logger.debug(f"GET {path} {params or {}}")
        response = self.session.get(url, params=query, timeout=self.timeout)

        if response.status_code == 429:
            raise RateLimitError(f"Rate limit exceeded for {path}")
        if 400 <= response.status_code < 500:
            raise FinancialDataError(f"FMP request {path} failed with HTTP {response.status_code}")
        response.raise_for_status()

        try:
            payload = response.json()
        except ValueError as e:
            raise FinancialDataError(f"Invalid JSON from {path}: {e}")

        if isinstance(payload, dict) and "Error Message" in payload:
            raise FinancialDataError(f"FMP error for {path}: {payload['Error Message']}")

        return payload

    def _get_list(self, path: str, params: Dict[str, Any]) -> List[Dict[str, Any]]:
        payload = self._get_json(path, params)
        if payload is None:
            return []
        if isinstance(payload, dict):
            return [payload]
        if not isinstance(payload, list):
            raise FinancialDataError(f"Unexpected payload type from {path}: {type(payload).__name__}")
        return [item for item in payload if isinstance(item, dict)]

    def fetch_quote(self, symbol: str) -> Optional[Quote]:
        """Fetch the current quote, including the 3-month price change when available."""
        rows = self._get_list("/quote", {"symbol": symbol})
        if not rows:
            return None
        price_change_3m = self._safe_fetch(
            f"{symbol} price change", lambda: self.fetch_price_change_3m(symbol), None
        )
        return Quote.from_fmp(rows[0], price_change_3m=price_change_3m)

    def fetch_price_change_3m(self, symbol: str) -> Optional[float]:
        rows = self._get_list("/stock-price-change", {"symbol": symbol})
        if not rows:
            return None
        return safe_float_conversion(rows[0].get("3M"))

    def fetch_profile(self, symbol: str) -> Optional[CompanyProfile]:
        rows = self._get_list("/profile", {"symbol": symbol})
        return CompanyProfile.from_fmp(rows[0]) if rows else None

    def fetch_income_statements(self, symbol: str) -> List[IncomeStatement]:
        rows = self._get_list("/income-statement", {"symbol": symbol, "limit": self.statement_limit})
        return [IncomeStatement.from_fmp(row) for row in rows]

    def fetch_balance_sheets(self, symbol: str) -> List[BalanceSheet]:
        rows = self._get_list("/balance-sheet-statement", {"symbol": symbol, "limit": self.statement_limit})
        return [BalanceSheet.from_fmp(row) for row in rows]

    def fetch_cash_flow_statements(self, symbol: str) -> List[CashFlowStatement]:
        rows = self._get_list("/cash-flow-statement", {"symbol": symbol, "limit": self.statement_limit})
        return [CashFlowStatement.from_fmp(row) for row in rows]

    def fetch_key_metrics(self, symbol: str) -> List[KeyMetrics]:
        rows = self._get_list("/key-metrics", {"symbol": symbol, "limit": self.statement_limit})
        return [KeyMetrics.from_fmp(row) for row in rows]

    def _safe_fetch(self, label: str, fetch: Callable[[], T], default: T) -> T:
        """Run one endpoint fetch, logging and degrading to default on failure."""
        try:
            return fetch()
        except (FinancialDataError, requests.RequestException) as e:
            logger.warning(f"Could not fetch {label}: {e}")
            return default

    def fetch_financial_dataset(self, symbol: str) -> FinancialDataset:
        """
        Fetch everything the scoring pipeline needs for one symbol.

        Missing endpoints yield None or empty statement lists; this method
        only raises for an invalid symbol argument.

        Args:
            symbol: Ticker symbol (e.g., 'AAPL')

        Returns:
            FinancialDataset, possibly partial
        """
        if not symbol or not symbol.strip():
            raise ValueError("symbol must be a non-empty string")
        symbol = symbol.strip().upper()

        dataset = FinancialDataset.build(
            symbol=symbol,
            quote=self._safe_fetch(f"{symbol} quote", lambda: self.fetch_quote(symbol), None),
            profile=self._safe_fetch(f"{symbol} profile", lambda: self.fetch_profile(symbol), None),
            income_statements=self._safe_fetch(
                f"{symbol} income statements", lambda: self.fetch_income_statements(symbol), []
            ),
            balance_sheets=self._safe_fetch(
                f"{symbol} balance sheets", lambda: self.fetch_balance_sheets(symbol), []
            ),
            cash_flow_statements=self._safe_fetch(
                f"{symbol} cash flow statements", lambda: self.fetch_cash_flow_statements(symbol), []
            ),
            key_metrics=self._safe_fetch(
                f"{symbol} key metrics", lambda: self.fetch_key_metrics(symbol), []
            ),
        )

        logger.debug(
            f"Fetched {symbol}: quote={'yes' if dataset.quote else 'no'}, "
            f"income={len(dataset.income_statements)}, balance={len(dataset.balance_sheets)}, "
            f"cash_flow={len(dataset.cash_flow_statements)}"
        )
        return dataset

    @log_execution_time
    def fetch_universe(
        self,
        exchanges: List[str],
        min_market_cap: float,
        max_market_cap: float,
        limit: int = 500,
    ) -> List[str]:
        """
        List actively traded common stocks inside a market-cap range.

        Args:
            exchanges: Exchange short names (e.g., ['NYSE', 'NASDAQ'])
            min_market_cap: Inclusive lower bound
            max_market_cap: Upper bound
            limit: Maximum symbols requested per exchange

        Returns:
            Unique symbols ordered as returned by the provider
        """
        symbols: List[str] = []
        seen = set()

        for exchange in exchanges:
            rows = self._safe_fetch(
                f"{exchange} universe",
                lambda: self._get_list("/company-screener", {
                    "exchange": exchange,
                    "marketCapMoreThan": int(min_market_cap),
                    "marketCapLowerThan": int(max_market_cap),
                    "isEtf": "false",
                    "isFund": "false",
                    "isActivelyTrading": "true",
                    "limit": limit,
                }),
                [],
            )
            for row in rows:
                symbol = (row.get("symbol") or "").strip().upper()
                market_cap = safe_float_conversion(row.get("marketCap"))
                if market_cap is not None and not validate_market_cap_range(
                    market_cap, min_market_cap, max_market_cap
                ):
                    continue
                if validate_ticker(symbol) and symbol not in seen:
                    seen.add(symbol)
                    symbols.append(symbol)

            logger.info(f"Universe for {exchange}: {len(rows)} symbols")

        return symbols
