from __future__ import annotations

import argparse
import logging
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from trendseeker.config import PERIOD_BARS, AppConfig
from trendseeker.errors import TrendSeekerError
from trendseeker.models import Analysis, DataStatus, RiskProfile
from trendseeker.pipelines.analysis import MarketDataService
from trendseeker.providers.factory import build_market_provider

_STATUS_STYLE = {
    DataStatus.FRESH: "green",
    DataStatus.STALE: "yellow",
    DataStatus.DEGRADED: "red",
}


def _fmt(value: float | None, digits: int = 2) -> str:
    return "-" if value is None else f"{value:.{digits}f}"


def _read_watchlist(path: str) -> list[str]:
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"watchlist not found: {path}")
    return [line.strip() for line in p.read_text(encoding="utf-8").splitlines() if line.strip()]


def _build_service(args: argparse.Namespace) -> MarketDataService:
    return MarketDataService(build_market_provider(args.provider), config=AppConfig.from_env())


def _print_analysis(console: Console, analysis: Analysis) -> None:
    style = _STATUS_STYLE[analysis.status]
    console.print(f"[bold]{analysis.symbol}[/bold] [{style}]{analysis.status.value}[/{style}]")
    for err in analysis.errors:
        console.print(f"[yellow]{err}[/yellow]")

    ind = analysis.indicators
    if ind is not None:
        table = Table(title=f"{analysis.symbol} indicators ({ind.bars_used} bars)")
        table.add_column("Indicator")
        table.add_column("Value")
        table.add_row("SMA20 / SMA50", f"{_fmt(ind.sma20)} / {_fmt(ind.sma50)}")
        table.add_row("EMA12 / EMA26", f"{_fmt(ind.ema12)} / {_fmt(ind.ema26)}")
        table.add_row("RSI14", _fmt(ind.rsi14))
        if ind.macd is not None:
            table.add_row(
                "MACD line / signal / hist",
                f"{_fmt(ind.macd.line, 4)} / {_fmt(ind.macd.signal, 4)} / {_fmt(ind.macd.histogram, 4)}",
            )
        if ind.bollinger is not None:
            b = ind.bollinger
            table.add_row("Bollinger", f"{_fmt(b.lower)} / {_fmt(b.middle)} / {_fmt(b.upper)}")
        if ind.stochastic is not None:
            table.add_row("Stochastic %K / %D", f"{_fmt(ind.stochastic.k)} / {_fmt(ind.stochastic.d)}")
        table.add_row("Volatility (ann.)", _fmt(ind.volatility_annualized, 4))
        table.add_row("Momentum10 %", _fmt(ind.momentum10))
        table.add_row("Support / Resistance", f"{_fmt(ind.support20)} / {_fmt(ind.resistance20)}")
        console.print(table)

    if analysis.signals:
        table = Table(title="Signals")
        table.add_column("Type")
        table.add_column("Indicator")
        table.add_column("Strength")
        table.add_column("Reason")
        for s in analysis.signals:
            table.add_row(s.type.value, s.indicator, s.strength.value, s.reason)
        console.print(table)

    if analysis.allocation is not None:
        a = analysis.allocation
        console.print(f"Suggested allocation: {a.percentage}% ({a.risk_profile.value})")


def cmd_quote(args: argparse.Namespace) -> None:
    console = Console()
    fetched = _build_service(args).get_quote(args.symbol, use_cache=args.use_cache)
    quote = fetched.unwrap()
    style = _STATUS_STYLE[fetched.status]
    table = Table(title=f"{quote.symbol} [{style}]{fetched.status.value}[/{style}]")
    for col in ("Price", "Change", "Change %", "Open", "High", "Low", "Prev close", "Volume"):
        table.add_column(col)
    table.add_row(
        _fmt(quote.price),
        _fmt(quote.change),
        _fmt(quote.change_percent),
        _fmt(quote.open),
        _fmt(quote.high),
        _fmt(quote.low),
        _fmt(quote.previous_close),
        str(quote.volume),
    )
    console.print(table)


def cmd_analyze(args: argparse.Namespace) -> None:
    analysis = _build_service(args).analyze(
        args.symbol, RiskProfile(args.risk.upper()), use_cache=args.use_cache, period=args.period
    )
    _print_analysis(Console(), analysis)


def cmd_watch(args: argparse.Namespace) -> None:
    symbols = _read_watchlist(args.watchlist)
    report = _build_service(args).analyze_many(
        symbols, RiskProfile(args.risk.upper()), use_cache=not args.force
    )

    table = Table(title="Watchlist")
    table.add_column("Symbol")
    table.add_column("Status")
    table.add_column("Price")
    table.add_column("Signals")
    table.add_column("Allocation")
    for item in report.items:
        if not item.ok:
            table.add_row(item.symbol, f"[red]{item.error_type}[/red]", "-", item.error, "-")
            continue
        a: Analysis = item.result
        style = _STATUS_STYLE[a.status]
        votes = ", ".join(f"{s.type.value}/{s.indicator}" for s in a.signals) or "-"
        table.add_row(
            a.symbol,
            f"[{style}]{a.status.value}[/{style}]",
            _fmt(a.quote.price if a.quote else None),
            votes,
            f"{a.allocation.percentage}%" if a.allocation else "-",
        )
    Console().print(table)
    if report.failed:
        raise SystemExit(1)


def cmd_search(args: argparse.Namespace) -> None:
    results = _build_service(args).search(args.query)
    table = Table(title=f"Search: {args.query}")
    for col in ("Symbol", "Name", "Type", "Exchange", "Sector"):
        table.add_column(col)
    for r in results:
        table.add_row(r.symbol, r.name, r.type, r.exchange, r.sector or "-")
    Console().print(table)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="trendseeker")
    parser.add_argument(
        "--provider",
        type=str,
        default="mock",
        choices=["mock", "yfinance"],
        help="market data provider",
    )
    parser.add_argument("--log-level", type=str, default="WARNING", help="logging level")
    sub = parser.add_subparsers(required=True)

    quote = sub.add_parser("quote", help="latest quote for one symbol")
    quote.add_argument("symbol", type=str)
    quote.add_argument("--use-cache", action="store_true", help="serve a fresh cached quote if present")
    quote.set_defaults(func=cmd_quote)

    risk_choices = [p.value.lower() for p in RiskProfile]

    analyze = sub.add_parser("analyze", help="indicators, signals and allocation for one symbol")
    analyze.add_argument("symbol", type=str)
    analyze.add_argument("--risk", type=str, default="moderate", choices=risk_choices)
    analyze.add_argument("--use-cache", action="store_true")
    analyze.add_argument("--period", type=str, default=None, choices=sorted(PERIOD_BARS), help="history window")
    analyze.set_defaults(func=cmd_analyze)

    watch = sub.add_parser("watch", help="analyze every symbol in a watchlist file")
    watch.add_argument("--watchlist", type=str, required=True, help="one symbol per line")
    watch.add_argument("--risk", type=str, default="moderate", choices=risk_choices)
    watch.add_argument("--force", action="store_true", help="bypass the cache")
    watch.set_defaults(func=cmd_watch)

    search = sub.add_parser("search", help="look up symbols by ticker or company name")
    search.add_argument("query", type=str)
    search.set_defaults(func=cmd_search)
    return parser


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=args.log_level.upper(),
        format="%(message)s",
        handlers=[RichHandler(rich_tracebacks=True)],
    )
    try:
        args.func(args)
    except (TrendSeekerError, ValueError) as e:
        Console().print(f"[red]{type(e).__name__}: {e}[/red]")
        raise SystemExit(2) from e


if __name__ == "__main__":
    main()
