"""
Normalized financial statement bundle.

Provider payloads are parsed into immutable records here so the scoring
engines never see provider-specific field names. Every numeric field is
Optional: a value the provider did not report stays None.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol, Tuple

from services.data_collector.utils import safe_float_conversion

MAX_STATEMENT_YEARS = 6


def _num(payload: Dict[str, Any], *keys: str) -> Optional[float]:
    """Return the first key present in payload as float."""
    for key in keys:
        if key in payload:
            value = safe_float_conversion(payload.get(key))
            if value is not None:
                return value
    return None


def _text(payload: Dict[str, Any], *keys: str) -> Optional[str]:
    for key in keys:
        value = payload.get(key)
        if value:
            return str(value)
    return None


@dataclass(frozen=True)
class Quote:
    """Current market data for a symbol."""
    price: Optional[float] = None
    market_cap: Optional[float] = None
    shares_outstanding: Optional[float] = None
    year_high: Optional[float] = None
    year_low: Optional[float] = None
    price_change_3m: Optional[float] = None  # percent

    @classmethod
    def from_fmp(cls, payload: Dict[str, Any], price_change_3m: Optional[float] = None) -> "Quote":
        return cls(
            price=_num(payload, "price"),
            market_cap=_num(payload, "marketCap"),
            shares_outstanding=_num(payload, "sharesOutstanding"),
            year_high=_num(payload, "yearHigh"),
            year_low=_num(payload, "yearLow"),
            price_change_3m=price_change_3m,
        )


@dataclass(frozen=True)
class CompanyProfile:
    """Descriptive company information."""
    company_name: Optional[str] = None
    sector: Optional[str] = None
    industry: Optional[str] = None
    currency: Optional[str] = None
    exchange: Optional[str] = None

    @classmethod
    def from_fmp(cls, payload: Dict[str, Any]) -> "CompanyProfile":
        return cls(
            company_name=_text(payload, "companyName", "name"),
            sector=_text(payload, "sector"),
            industry=_text(payload, "industry"),
            currency=_text(payload, "currency", "reportedCurrency"),
            exchange=_text(payload, "exchangeShortName", "exchange"),
        )


@dataclass(frozen=True)
class IncomeStatement:
    """One fiscal year of income statement data."""
    date: Optional[str] = None
    revenue: Optional[float] = None
    gross_profit: Optional[float] = None
    operating_income: Optional[float] = None
    net_income: Optional[float] = None
    eps: Optional[float] = None
    weighted_average_shares: Optional[float] = None

    @classmethod
    def from_fmp(cls, payload: Dict[str, Any]) -> "IncomeStatement":
        return cls(
            date=_text(payload, "date"),
            revenue=_num(payload, "revenue"),
            gross_profit=_num(payload, "grossProfit"),
            operating_income=_num(payload, "operatingIncome"),
            net_income=_num(payload, "netIncome"),
            eps=_num(payload, "eps", "epsDiluted", "epsdiluted"),
            weighted_average_shares=_num(payload, "weightedAverageShsOut"),
        )


@dataclass(frozen=True)
class BalanceSheet:
    """One fiscal year of balance sheet data."""
    date: Optional[str] = None
    total_assets: Optional[float] = None
    total_liabilities: Optional[float] = None
    stockholders_equity: Optional[float] = None
    total_debt: Optional[float] = None
    long_term_debt: Optional[float] = None
    short_term_debt: Optional[float] = None
    current_assets: Optional[float] = None
    current_liabilities: Optional[float] = None

    @classmethod
    def from_fmp(cls, payload: Dict[str, Any]) -> "BalanceSheet":
        return cls(
            date=_text(payload, "date"),
            total_assets=_num(payload, "totalAssets"),
            total_liabilities=_num(payload, "totalLiabilities"),
            stockholders_equity=_num(payload, "totalStockholdersEquity"),
            total_debt=_num(payload, "totalDebt"),
            long_term_debt=_num(payload, "longTermDebt"),
            short_term_debt=_num(payload, "shortTermDebt"),
            current_assets=_num(payload, "totalCurrentAssets"),
            current_liabilities=_num(payload, "totalCurrentLiabilities"),
        )


@dataclass(frozen=True)
class CashFlowStatement:
    """One fiscal year of cash flow data."""
    date: Optional[str] = None
    operating_cash_flow: Optional[float] = None
    capital_expenditure: Optional[float] = None
    free_cash_flow: Optional[float] = None
    dividends_paid: Optional[float] = None

    @classmethod
    def from_fmp(cls, payload: Dict[str, Any]) -> "CashFlowStatement":
        return cls(
            date=_text(payload, "date"),
            operating_cash_flow=_num(payload, "operatingCashFlow"),
            capital_expenditure=_num(payload, "capitalExpenditure"),
            free_cash_flow=_num(payload, "freeCashFlow"),
            dividends_paid=_num(payload, "dividendsPaid", "commonDividendsPaid"),
        )


@dataclass(frozen=True)
class KeyMetrics:
    """Provider-computed ratios. Yields and ratios are fractions (0.05 == 5 %)."""
    date: Optional[str] = None
    roic: Optional[float] = None
    pb_ratio: Optional[float] = None
    free_cash_flow_yield: Optional[float] = None
    earnings_yield: Optional[float] = None
    interest_coverage: Optional[float] = None
    dividend_yield: Optional[float] = None
    payout_ratio: Optional[float] = None

    @classmethod
    def from_fmp(cls, payload: Dict[str, Any]) -> "KeyMetrics":
        return cls(
            date=_text(payload, "date"),
            roic=_num(payload, "roic", "returnOnInvestedCapital"),
            pb_ratio=_num(payload, "pbRatio", "priceToBookRatio"),
            free_cash_flow_yield=_num(payload, "freeCashFlowYield"),
            earnings_yield=_num(payload, "earningsYield"),
            interest_coverage=_num(payload, "interestCoverage", "interestCoverageRatio"),
            dividend_yield=_num(payload, "dividendYield"),
            payout_ratio=_num(payload, "payoutRatio"),
        )


def _newest_first(records: List[Any]) -> Tuple[Any, ...]:
    """Order records newest first by ISO date and keep at most six."""
    dated = sorted(
        records,
        key=lambda r: r.date or "",
        reverse=True,
    )
    return tuple(dated[:MAX_STATEMENT_YEARS])


@dataclass(frozen=True)
class FinancialDataset:
    """
    Everything the scoring pipeline needs for one symbol.

    Statement tuples are ordered newest first and hold at most six annual
    records. quote and profile may be None when the provider had nothing.
    """
    symbol: str
    quote: Optional[Quote] = None
    profile: Optional[CompanyProfile] = None
    income_statements: Tuple[IncomeStatement, ...] = field(default_factory=tuple)
    balance_sheets: Tuple[BalanceSheet, ...] = field(default_factory=tuple)
    cash_flow_statements: Tuple[CashFlowStatement, ...] = field(default_factory=tuple)
    key_metrics: Tuple[KeyMetrics, ...] = field(default_factory=tuple)

    @classmethod
    def build(
        cls,
        symbol: str,
        quote: Optional[Quote] = None,
        profile: Optional[CompanyProfile] = None,
        income_statements: Optional[List[IncomeStatement]] = None,
        balance_sheets: Optional[List[BalanceSheet]] = None,
        cash_flow_statements: Optional[List[CashFlowStatement]] = None,
        key_metrics: Optional[List[KeyMetrics]] = None,
    ) -> "FinancialDataset":
        """Create a dataset, normalizing statement order and length."""
        return cls(
            symbol=symbol.upper(),
            quote=quote,
            profile=profile,
            income_statements=_newest_first(income_statements or []),
            balance_sheets=_newest_first(balance_sheets or []),
            cash_flow_statements=_newest_first(cash_flow_statements or []),
            key_metrics=_newest_first(key_metrics or []),
        )

    @property
    def sector(self) -> Optional[str]:
        return self.profile.sector if self.profile else None

    @property
    def company_name(self) -> Optional[str]:
        return self.profile.company_name if self.profile else None

    @property
    def market_cap(self) -> Optional[float]:
        return self.quote.market_cap if self.quote else None

    @property
    def latest_income(self) -> Optional[IncomeStatement]:
        return self.income_statements[0] if self.income_statements else None

    @property
    def oldest_income(self) -> Optional[IncomeStatement]:
        return self.income_statements[-1] if self.income_statements else None

    @property
    def latest_balance(self) -> Optional[BalanceSheet]:
        return self.balance_sheets[0] if self.balance_sheets else None

    @property
    def latest_cash_flow(self) -> Optional[CashFlowStatement]:
        return self.cash_flow_statements[0] if self.cash_flow_statements else None

    @property
    def oldest_cash_flow(self) -> Optional[CashFlowStatement]:
        return self.cash_flow_statements[-1] if self.cash_flow_statements else None

    @property
    def latest_key_metrics(self) -> Optional[KeyMetrics]:
        return self.key_metrics[0] if self.key_metrics else None

    @property
    def latest_free_cash_flow(self) -> Optional[float]:
        latest = self.latest_cash_flow
        return latest.free_cash_flow if latest else None


class FinancialDataProvider(Protocol):
    """Anything that can assemble a FinancialDataset for a symbol."""

    def fetch_financial_dataset(self, symbol: str) -> FinancialDataset:
        ...
