"""
Gem Scorer - Main Entry Point.

Commands:
- analyze: score one or more symbols and store the results
- scan: scan a symbol list or a configured market
- top: show the best stored gems
- macro: show the current macro environment
- macro-update: change macro environment fields
- compare: compare two symbols in the current macro context
"""
import argparse
import logging
import sys
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from shared.configs.config import get_settings
from shared.configs.loader import ConfigurationError, load_scanner_config
from shared.configs.models import EconomicPhase, InvestmentHorizon, LiquidityRegime, MarketSentiment
from shared.database.connection import get_session, init_db
from shared.monitoring.structured_logger import setup_service_logger
from services.data_collector.fmp_collector import FMPFinancialCollector
from services.gem_scorer.scanner import GemScanner
from services.gem_scorer.score_repository import GemScoreRepository
from services.gem_scorer.score_service import GemScoringService, StockAnalysis

logger = logging.getLogger("gem_scorer")


def _fmt(value: Optional[float], fmt: str = ".1f") -> str:
    return format(value, fmt) if value is not None else "n/a"


def build_service(db, horizon: Optional[str] = None) -> GemScoringService:
    """Service wired to the FMP collector and the database repository."""
    return GemScoringService.from_config(
        provider=FMPFinancialCollector(),
        repository=GemScoreRepository(db),
        horizon=InvestmentHorizon(horizon) if horizon else None,
    )


def show_analysis(analysis: StockAnalysis) -> None:
    """Log a readable report for one analysis."""
    qm = analysis.qm_score
    tier = analysis.tier
    macro = analysis.macro

    logger.info(f"\n=== {analysis.symbol} ({analysis.dataset.company_name or 'unknown'}) ===")
    logger.info(f"Sector: {analysis.sector or 'unknown'}  Market cap: {_fmt(analysis.dataset.market_cap, ',.0f')}")
    logger.info(f"\nQM score: {qm.total_score}/8")
    for pillar in qm.pillars:
        mark = "PASS" if pillar.passed else "fail"
        logger.info(f"  {pillar.name:<20} {_fmt(pillar.measured_value, '.2f'):>10}  (threshold {pillar.threshold})  {mark}")

    valuation = analysis.valuation
    logger.info(
        f"\nFair P/E: {valuation.fair_pe:.1f}  Observed P/E: {_fmt(valuation.observed_pe)}  "
        f"Gap: {_fmt(valuation.value_gap_percent)}%  ({valuation.status.value})"
    )
    logger.info(
        f"Tier: {tier.tier.value if tier.tier else 'none'}  Confidence: {tier.confidence_score}  "
        f"Growth signals: {tier.growth_signal_count}/3"
    )
    if tier.recommendation:
        logger.info(f"Recommendation: {tier.recommendation}")
    for warning in tier.warnings:
        logger.warning(f"  ! {warning}")

    logger.info(
        f"Macro: {macro.adjusted_score:.0f} ({macro.bonus:+d})  Sector fit: {macro.sector_fit_score:.1f} "
        f"({macro.outlook.value}, risk {macro.risk_level.value}, cycle fit {macro.cycle_fit.value})"
    )

    rating = analysis.rating
    b = rating.breakdown
    logger.info(
        f"Rating: {rating.score}/100 {rating.rating}  "
        f"[Q {b.quality} V {b.value} G {b.growth} S {b.safety} M {b.momentum}]"
    )
    timeframe = analysis.timeframe
    logger.info(
        f"{timeframe.horizon.value}: {timeframe.score} {timeframe.rating}  "
        f"Gem tier: {timeframe.gem_tier or 'none'}"
    )


def analyze_symbols(symbols: List[str], horizon: Optional[str] = None) -> List[StockAnalysis]:
    """Analyze and store the given symbols."""
    db = get_session()
    try:
        service = build_service(db, horizon)
        results = []
        for symbol in symbols:
            try:
                analysis = service.analyze_symbol(symbol)
            except ValueError as e:
                logger.error(f"{symbol!r}: {e}")
                continue
            if analysis is None:
                logger.warning(f"{symbol}: insufficient data")
                continue
            show_analysis(analysis)
            results.append(analysis)
        return results
    finally:
        db.close()


def run_scan(
    symbols: List[str],
    market: Optional[str],
    horizon: Optional[str] = None,
    limit: Optional[int] = None,
    output: Optional[str] = None
) -> Optional[Dict[str, Any]]:
    """Scan a symbol list or a configured market and report the gems found."""
    settings = get_settings()
    config = load_scanner_config(settings.config_dir)
    overrides: Dict[str, Any] = {}
    if settings.scanner_concurrency is not None:
        overrides['concurrency'] = settings.scanner_concurrency
    if settings.scanner_delay_ms is not None:
        overrides['delay_ms'] = settings.scanner_delay_ms
    if overrides:
        config = config.model_copy(update=overrides)

    db = get_session()
    try:
        scanner = GemScanner(build_service(db, horizon), config)
        if symbols:
            session = scanner.scan(symbols[:limit] if limit else symbols, market=market)
        elif market:
            session = scanner.scan_market(market, limit=limit)
        else:
            logger.error("Give symbols or --market for scan")
            return None

        logger.info("\n=== Scan Results ===")
        logger.info(f"Scan id: {session.scan_id}")
        logger.info(f"Total: {session.total}  Succeeded: {session.succeeded}  Failed: {session.failed}")

        gems = session.gems()
        if gems:
            logger.info(f"\n{'Symbol':<10} {'Tier':<12} {'Conf':>5} {'Macro':>6} {'Gap %':>7} {'Rating':<11}")
            logger.info("=" * 56)
            for analysis in gems:
                logger.info(
                    f"{analysis.symbol:<10} {analysis.tier.tier.value:<12} "
                    f"{analysis.tier.confidence_score:>5} {analysis.macro.adjusted_score:>6.0f} "
                    f"{_fmt(analysis.valuation.value_gap_percent):>7} {analysis.rating.rating:<11}"
                )
        else:
            logger.info("No gems found")

        if session.errors:
            logger.warning("\nFailed symbols:")
            for symbol, reason in list(session.errors.items())[:10]:
                logger.warning(f"  {symbol}: {reason}")

        if output:
            session.to_dataframe().to_csv(output, index=False)
            logger.info(f"Results written to {output}")

        return session.progress
    finally:
        db.close()


def show_top_gems(limit: int = 20, tier: Optional[str] = None, min_confidence: Optional[float] = None):
    """Display the best stored gems."""
    db = get_session()
    try:
        rows = GemScoreRepository(db).get_top_gems(limit=limit, tier=tier, min_confidence=min_confidence)
        if not rows:
            logger.warning("No gems stored")
            return []

        logger.info(f"\n=== Top {len(rows)} Gems ===\n")
        logger.info(f"{'Rank':<5} {'Symbol':<10} {'Name':<28} {'Tier':<12} {'Conf':>5} {'Macro':>6} {'Date':<10}")
        logger.info("=" * 82)
        for idx, (stock, gem) in enumerate(rows, 1):
            logger.info(
                f"{idx:<5} {stock.symbol:<10} {(stock.company_name or '')[:26]:<28} {gem.tier:<12} "
                f"{gem.confidence_score:>5.0f} {_fmt(gem.macro_adjusted_score, '.0f'):>6} "
                f"{gem.calculated_at:%Y-%m-%d}"
            )
        return rows
    finally:
        db.close()


def show_macro() -> None:
    db = get_session()
    try:
        service = GemScoringService.from_config(repository=GemScoreRepository(db))
        env = service.get_current_macro_environment()
        logger.info("\n=== Macro Environment ===")
        logger.info(f"Phase: {env.phase.value}  Liquidity: {env.liquidity.value}  Sentiment: {env.sentiment.value}")
        logger.info(
            f"Fed funds: {env.fed_funds_rate}%  Inflation: {env.inflation}%  Unemployment: {env.unemployment}%"
        )
        logger.info(
            f"Yield curve: {env.yield_curve_spread}bp  VIX: {env.vix}  M2 growth: {env.m2_growth}%  "
            f"Credit spread: {env.credit_spread}bp"
        )
        logger.info(f"Updated: {env.last_updated} ({env.source})")
    finally:
        db.close()


def update_macro(changes: Dict[str, Any]) -> bool:
    """Apply field changes to the macro environment and store the new snapshot."""
    if not changes:
        logger.error("No macro fields given")
        return False

    db = get_session()
    try:
        service = GemScoringService.from_config(repository=GemScoreRepository(db))
        env = service.update_macro_environment(**changes)
        logger.info(f"Macro environment updated: phase={env.phase.value}, liquidity={env.liquidity.value}")
        return True
    except ValidationError as e:
        logger.error(f"Invalid macro values: {e}")
        return False
    finally:
        db.close()


def compare_symbols(first: str, second: str, horizon: Optional[str] = None):
    """Analyze two symbols and compare them in the current macro context."""
    db = get_session()
    try:
        service = build_service(db, horizon)
        analyses = [service.analyze_symbol(first), service.analyze_symbol(second)]
        if any(a is None for a in analyses):
            logger.error("Insufficient data for comparison")
            return None

        comparison = service.compare(*analyses)
        logger.info("\n=== Macro Comparison ===")
        for analysis, adjustment in zip(analyses, (comparison.first, comparison.second)):
            logger.info(
                f"{analysis.symbol:<10} base {adjustment.base_score:>5.0f}  adjusted {adjustment.adjusted_score:>5.0f}  "
                f"({adjustment.bonus:+d}, {adjustment.outlook.value}, risk {adjustment.risk_level.value})"
            )
        logger.info(f"\nWinner: {comparison.winner}")
        logger.info(comparison.explanation)
        return comparison
    finally:
        db.close()


def _macro_changes(args: argparse.Namespace) -> Dict[str, Any]:
    fields = (
        'phase', 'liquidity', 'sentiment', 'fed_funds_rate', 'inflation', 'unemployment',
        'yield_curve_spread', 'vix', 'm2_growth', 'credit_spread', 'source',
    )
    return {name: getattr(args, name) for name in fields if getattr(args, name) is not None}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog='gem-scorer', description='Quality Gem Scorer')
    parser.add_argument('command',
                        choices=['analyze', 'scan', 'top', 'macro', 'macro-update', 'compare'],
                        help='Command to execute')
    parser.add_argument('symbols', nargs='*', help='Ticker symbols')
    parser.add_argument('--market', help='Configured market to scan (e.g., us, nordic, europe)')
    parser.add_argument('--horizon', choices=[h.value for h in InvestmentHorizon],
                        help='Investment horizon')
    parser.add_argument('--limit', type=int, help='Maximum symbols to scan or rows to show')
    parser.add_argument('--output', help='CSV file for scan results')
    parser.add_argument('--tier', help='Restrict top gems to one tier')
    parser.add_argument('--min-confidence', type=float, help='Minimum confidence for top gems')

    macro = parser.add_argument_group('macro-update')
    macro.add_argument('--phase', choices=[p.value for p in EconomicPhase])
    macro.add_argument('--liquidity', choices=[r.value for r in LiquidityRegime])
    macro.add_argument('--sentiment', choices=[s.value for s in MarketSentiment])
    macro.add_argument('--fed-funds-rate', type=float)
    macro.add_argument('--inflation', type=float)
    macro.add_argument('--unemployment', type=float)
    macro.add_argument('--yield-curve-spread', type=float)
    macro.add_argument('--vix', type=float)
    macro.add_argument('--m2-growth', type=float)
    macro.add_argument('--credit-spread', type=float)
    macro.add_argument('--source')
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)
    settings = get_settings()
    setup_service_logger(
        'gem_scorer',
        level=settings.log_level,
        log_file=settings.log_file,
        json_format=settings.log_format == 'json',
    )

    try:
        init_db()

        if args.command == 'analyze':
            if not args.symbols:
                logger.error("analyze needs at least one symbol")
                return 1
            return 0 if analyze_symbols(args.symbols, args.horizon) else 1

        if args.command == 'scan':
            return 0 if run_scan(args.symbols, args.market, args.horizon, args.limit, args.output) else 1

        if args.command == 'top':
            show_top_gems(limit=args.limit or 20, tier=args.tier, min_confidence=args.min_confidence)
            return 0

        if args.command == 'macro':
            show_macro()
            return 0

        if args.command == 'macro-update':
            return 0 if update_macro(_macro_changes(args)) else 1

        if args.command == 'compare':
            if len(args.symbols) != 2:
                logger.error("compare needs exactly two symbols")
                return 1
            return 0 if compare_symbols(args.symbols[0], args.symbols[1], args.horizon) else 1

    except KeyboardInterrupt:
        logger.info("\nOperation cancelled by user")
        return 0
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        return 1
    except Exception as e:
        logger.error(f"Error: {e}", exc_info=True)
        return 1

    return 0


if __name__ == '__main__':
    sys.exit(main())
