"""Reversal signal CLI commands.

Provides:
- scan: scan one market (or a CSV file) for reversal signals and render them
  as a table, JSON, or CSV, with optional YAML export and LLM confirmation.
- watch: poll a market on a fixed interval and keep the reconciled signal
  list between polls.
- indicators: show RSI, Stochastic-RSI, and Bollinger values for the latest
  bars.

Responsibilities:
- Keep detection in the analysis layer (scan_signals / SignalScanner).
- Present results with Rich tables and clean JSON/CSV output.
- Wrap network calls with the shared retry helper.

Updates:
    v0.3.3 - 2026-10-18 - Retried confirmation calls; reported the confirming model.
    v0.3.2 - 2026-10-10 - Added --confirm for LLM confirmation of top signals.
    v0.3.1 - 2026-10-08 - Added CSV output and YAML export.
    v0.3.0 - 2026-10-06 - Added watch command with signal reconciliation.
    v0.2.0 - 2026-09-21 - Initial scan and indicators commands.
"""

from __future__ import annotations

import json
import logging
import time
from pathlib import Path
from typing import Any, Callable, List, Optional, Sequence, Tuple

import click
from rich.console import Console
from rich.table import Table

from analysis.models import Bar, InvalidBarSequenceError, PatternKind, Signal
from analysis.signal_book import (
    filter_signals,
    is_high_conviction,
    signal_direction,
    signal_label,
)
from analysis.signal_confirmation import (
    FALLBACK_RESULT,
    SignalConfirmationClient,
    SignalConfirmationError,
    apply_confirmation,
    confirmation_context,
)
from analysis.signal_scanner import ScanResult, SignalScanner
from api.binance_client import MAX_KLINE_LIMIT, SUPPORTED_INTERVALS, BinanceFuturesClient
from indicators.technical_indicators import TechnicalIndicators
from utils.helpers import format_price, format_timestamp, get_score_color
from utils.market_data import load_bars_csv, normalize_symbol, signals_to_frame

logger = logging.getLogger(__name__)

_PATTERN_CHOICES = [kind.value for kind in PatternKind.detectable()]


def register(
    cli_group: click.Group,
    *,
    console: Console,
    config: Any,
    call_with_retries: Callable[[Callable[[], Any], str, Optional[str]], Any],
) -> None:
    """Register signal commands on the provided Click group.

    This function attaches three commands:
    - scan
    - watch
    - indicators

    Shared dependency helpers store the following objects in ``ctx.obj``:
    - market_client: BinanceFuturesClient
    - signal_scanner: SignalScanner

    Args:
        cli_group: Root Click group to attach commands to.
        console: Rich console for formatted output.
        config: Application configuration object (Config).
        call_with_retries: Wrapper applying retry with progress to callables.
    """

    def _ensure_market_client(ctx: click.Context) -> BinanceFuturesClient:
        """Return the cached market data client, creating it on first use."""
        client = ctx.obj.get("market_client")
        if client is None:
            client = BinanceFuturesClient(config=config)
            ctx.obj["market_client"] = client
        return client

    def _ensure_signal_scanner(ctx: click.Context) -> SignalScanner:
        """Return the cached SignalScanner bound to the market data client."""
        scanner: Optional[SignalScanner] = ctx.obj.get("signal_scanner")
        if scanner is None:
            scanner = SignalScanner(
                client=_ensure_market_client(ctx),
                export_dir=config.export_dir,
            )
            ctx.obj["signal_scanner"] = scanner
        return scanner

    def _resolve_market(
        symbol: Optional[str],
        interval: Optional[str],
        limit: Optional[int],
    ) -> Tuple[str, str, int]:
        try:
            normalized = normalize_symbol(symbol or config.default_symbol)
        except ValueError as exc:
            raise click.BadParameter(str(exc), param_hint="--symbol")
        resolved_interval = interval or config.default_interval
        if resolved_interval not in SUPPORTED_INTERVALS:
            raise click.BadParameter(
                f"Unsupported interval '{resolved_interval}'.",
                param_hint="--interval",
            )
        resolved_limit = limit or config.kline_limit
        return normalized, resolved_interval, min(resolved_limit, MAX_KLINE_LIMIT)

    def _load_bars(
        ctx: click.Context,
        symbol: str,
        interval: str,
        limit: int,
        input_path: Optional[Path],
    ) -> Tuple[List[Bar], Optional[float]]:
        """Load bars from ``input_path`` or fetch them from the exchange.

        Returns the bars and, for live data, the latest ticker price.
        """
        if input_path is not None:
            try:
                return load_bars_csv(input_path), None
            except (InvalidBarSequenceError, KeyError, ValueError) as exc:
                console.print(f"[red]❌ Invalid bar file {input_path}: {exc}[/red]")
                raise click.Abort()

        scanner = _ensure_signal_scanner(ctx)
        client = _ensure_market_client(ctx)
        try:
            bars = call_with_retries(
                lambda: scanner.fetch_bars(symbol, interval, limit),
                f"Fetch klines {symbol} {interval}",
                display_label=f"⏳ Fetching {symbol} {interval} klines",
            )
            last_price = call_with_retries(
                lambda: client.get_ticker_price(symbol),
                f"Fetch ticker {symbol}",
                display_label=f"⏳ Fetching {symbol} price",
            )
        except Exception as exc:
            console.print(f"[red]❌ Failed to load market data: {exc}[/red]")
            raise click.Abort()
        return bars, last_price

    def _render_signals(result: ScanResult, signals: Sequence[Signal], title: str) -> None:
        table = Table(title=title, show_lines=False, expand=False)
        table.add_column("Time (UTC)", style="cyan")
        table.add_column("Pattern", style="white")
        table.add_column("Direction", style="yellow")
        table.add_column("Score", justify="right")
        table.add_column("StochRSI", justify="right", style="blue")
        table.add_column("Close", justify="right", style="magenta")
        table.add_column("AI Verdict", style="white")

        for signal in signals:
            direction = signal_direction(signal)
            direction_style = "green" if direction == "bullish" else "red"
            label = signal_label(signal.kind)
            if is_high_conviction(signal.kind):
                label = f"[bold]{label}[/bold] 🔥"
            if signal.confirmation_text:
                verdict = ("✅ " if signal.confirmed else "❌ ") + signal.confirmation_text
            else:
                verdict = "-"
            color = get_score_color(signal.score)
            table.add_row(
                format_timestamp(signal.timestamp, timezone="UTC"),
                label,
                f"[{direction_style}]{direction}[/{direction_style}]",
                f"[{color}]{signal.score}[/{color}]",
                f"{signal.stoch_rsi:.2f}",
                format_price(signal.bar.close, max_decimals=6),
                verdict,
            )

        console.print(table)

        summary = Table(title="Scan Summary", show_lines=False, expand=False)
        summary.add_column("Metric", style="cyan")
        summary.add_column("Value", style="green")
        summary.add_row("Symbol", result.symbol)
        summary.add_row("Interval", result.interval)
        summary.add_row("Bars Scanned", str(len(result.bars)))
        if result.last_price is not None:
            summary.add_row("Last Price", format_price(result.last_price, max_decimals=6))
        summary.add_row("Signals (shown/total)", f"{len(signals)}/{len(result.signals)}")
        console.print(summary)

    def _confirm_top(
        result: ScanResult,
        signals: List[Signal],
        limit: int,
    ) -> Tuple[List[Signal], Optional[str]]:
        """Confirm up to ``limit`` of the newest signals and update ``result``.

        Returns the updated signals and the model that produced the verdicts,
        or ``None`` for the model when confirmation is disabled.
        """
        client = SignalConfirmationClient()
        if not client.is_enabled:
            console.print(
                "[yellow]⚠️  LLM confirmation disabled. Set SIGNAL_LLM_ENABLED=true "
                "and SIGNAL_LLM_MODEL=<provider>/<model>.[/yellow]"
            )
            return signals, None

        updated = {}
        for signal in signals[:limit]:
            context = confirmation_context(signal, result.bars)
            if context is None:
                continue
            try:
                verdict = call_with_retries(
                    lambda signal=signal, context=context: client.confirm(
                        result.symbol, signal.kind, context, signal.bar, signal.stoch_rsi
                    ),
                    f"Confirm {signal.kind.value} at {signal.timestamp}",
                    display_label=f"🤖 Confirming {signal_label(signal.kind)} with {client.model}",
                )
            except SignalConfirmationError as exc:
                logger.warning(
                    "Signal confirmation failed for %s at %s after retries: %s",
                    result.symbol,
                    signal.timestamp,
                    exc,
                )
                verdict = FALLBACK_RESULT
            updated[signal.timestamp] = apply_confirmation(signal, verdict)

        result.signals = [updated.get(signal.timestamp, signal) for signal in result.signals]
        return [updated.get(signal.timestamp, signal) for signal in signals], client.model

    # ----------------------------------------------------------------------
    # scan
    # ----------------------------------------------------------------------
    @cli_group.command(name="scan")
    @click.option("--symbol", "-s", default=None, help="Futures symbol (e.g., BTC or BTCUSDT)")
    @click.option(
        "--interval",
        "-i",
        type=click.Choice(list(SUPPORTED_INTERVALS)),
        default=None,
        help="Kline interval (defaults to SCANNER_DEFAULT_INTERVAL).",
    )
    @click.option(
        "--limit",
        "-l",
        type=click.IntRange(1, MAX_KLINE_LIMIT),
        default=None,
        help="Number of klines to fetch (defaults to SCANNER_KLINE_LIMIT).",
    )
    @click.option(
        "--input",
        "input_path",
        type=click.Path(exists=True, dir_okay=False, path_type=Path),
        default=None,
        help="Scan bars from a CSV file (time,open,high,low,close,volume) instead of the API.",
    )
    @click.option(
        "--pattern",
        "-p",
        "patterns",
        type=click.Choice(_PATTERN_CHOICES, case_sensitive=False),
        multiple=True,
        help="Only show the given pattern kinds (repeatable).",
    )
    @click.option(
        "--min-score",
        type=click.IntRange(0, 100),
        default=0,
        show_default=True,
        help="Hide signals scoring below this value.",
    )
    @click.option(
        "--output",
        "-o",
        type=click.Choice(["table", "json", "csv"], case_sensitive=False),
        default="table",
        show_default=True,
        help="Render output as a Rich table, JSON payload, or CSV.",
    )
    @click.option("--export-yaml", is_flag=True, help="Write the shown signals to a YAML file.")
    @click.option("--confirm", is_flag=True, help="Ask the configured LLM to confirm the newest signals.")
    @click.option(
        "--confirm-limit",
        type=click.IntRange(1, 20),
        default=3,
        show_default=True,
        help="Maximum number of signals sent for confirmation.",
    )
    @click.pass_context
    def scan(
        ctx: click.Context,
        symbol: Optional[str],
        interval: Optional[str],
        limit: Optional[int],
        input_path: Optional[Path],
        patterns: Tuple[str, ...],
        min_score: int,
        output: str,
        export_yaml: bool,
        confirm: bool,
        confirm_limit: int,
    ) -> None:
        """Scan bars for reversal signals and render the results.

        Signals are listed newest first. Pattern and score filters only affect
        what is shown and exported.
        """
        symbol, interval, limit = _resolve_market(symbol, interval, limit)
        output = output.lower()

        if output == "table":
            source = str(input_path) if input_path else f"{symbol} {interval}"
            console.print(f"[bold blue]🔍 Scanning {source} for reversal signals…[/bold blue]")

        bars, last_price = _load_bars(ctx, symbol, interval, limit, input_path)
        scanner = _ensure_signal_scanner(ctx)
        result = scanner.scan_bars(symbol, interval, bars, last_price=last_price)

        kinds = [PatternKind(value.upper()) for value in patterns] or None
        shown = filter_signals(result.signals, kinds=kinds, min_score=min_score)

        confirmation_model: Optional[str] = None
        if confirm and shown:
            shown, confirmation_model = _confirm_top(result, shown, confirm_limit)

        export_path: Optional[Path] = None
        export_error: Optional[str] = None
        if export_yaml:
            try:
                export_path = scanner.export_signals_to_yaml(
                    ScanResult(
                        symbol=result.symbol,
                        interval=result.interval,
                        bars=result.bars,
                        signals=list(shown),
                        last_price=result.last_price,
                        scanned_at=result.scanned_at,
                    )
                )
            except (ValueError, OSError) as exc:
                export_error = str(exc)

        if output == "json":
            payload = SignalScanner.signals_to_payload(result)
            payload["signals"] = [signal.to_dict() for signal in shown]
            payload["filters"] = {
                "patterns": [kind.value for kind in kinds] if kinds else [],
                "min_score": min_score,
            }
            if confirmation_model is not None:
                payload["confirmation_model"] = confirmation_model
            if export_path is not None:
                payload["yaml_export"] = {"count": len(shown), "path": str(export_path)}
            if export_error is not None:
                payload["yaml_export_error"] = export_error
            click.echo(json.dumps(payload, indent=2))
            return

        if output == "csv":
            click.echo(signals_to_frame(shown).to_csv(index=False), nl=False)
            return

        if not shown:
            console.print("[yellow]ℹ️  No signals found for the selected configuration.[/yellow]")
        else:
            _render_signals(result, shown, f"Reversal Signals — {symbol} ({interval})")
            if confirmation_model is not None:
                console.print(f"[dim]🤖 Verdicts from {confirmation_model}[/dim]")

        if export_path is not None:
            console.print(f"[green]✅ Signals exported to [bold]{export_path}[/bold][/green]")
        elif export_error is not None:
            console.print(f"[red]❌ Failed to export signals YAML: {export_error}[/red]")

    # ----------------------------------------------------------------------
    # watch
    # ----------------------------------------------------------------------
    @cli_group.command(name="watch")
    @click.option("--symbol", "-s", default=None, help="Futures symbol (e.g., BTC or BTCUSDT)")
    @click.option(
        "--interval",
        "-i",
        type=click.Choice(list(SUPPORTED_INTERVALS)),
        default=None,
        help="Kline interval (defaults to SCANNER_DEFAULT_INTERVAL).",
    )
    @click.option(
        "--limit",
        "-l",
        type=click.IntRange(1, MAX_KLINE_LIMIT),
        default=None,
        help="Number of klines to fetch per poll.",
    )
    @click.option(
        "--refresh",
        type=click.IntRange(1, 3600),
        default=None,
        help="Seconds between polls (defaults to SCANNER_REFRESH_SECONDS).",
    )
    @click.option(
        "--iterations",
        type=click.IntRange(0, None),
        default=0,
        show_default=True,
        help="Number of polls before exiting (0 runs until interrupted).",
    )
    @click.option(
        "--min-score",
        type=click.IntRange(0, 100),
        default=0,
        show_default=True,
        help="Hide signals scoring below this value.",
    )
    @click.pass_context
    def watch(
        ctx: click.Context,
        symbol: Optional[str],
        interval: Optional[str],
        limit: Optional[int],
        refresh: Optional[int],
        iterations: int,
        min_score: int,
    ) -> None:
        """Poll a market and report reversal signals as they appear."""
        symbol, interval, limit = _resolve_market(symbol, interval, limit)
        refresh_seconds = refresh or config.get_refresh_seconds()
        scanner = _ensure_signal_scanner(ctx)

        console.print(
            f"[bold blue]👀 Watching {symbol} ({interval}) every {refresh_seconds}s. "
            f"Press Ctrl+C to stop.[/bold blue]"
        )

        held: List[Signal] = []
        poll = 0
        try:
            while iterations == 0 or poll < iterations:
                poll += 1
                try:
                    result = call_with_retries(
                        lambda: scanner.scan_symbol(symbol, interval, limit, previous=held),
                        f"Scan {symbol} {interval}",
                        display_label=f"⏳ Scanning {symbol} {interval}",
                    )
                except Exception as exc:
                    logger.error("Watch poll %d failed for %s: %s", poll, symbol, exc)
                    console.print(f"[red]❌ Poll {poll} failed: {exc}[/red]")
                else:
                    known = {signal.timestamp for signal in held}
                    fresh = [signal for signal in result.signals if signal.timestamp not in known]
                    held = result.signals

                    shown = filter_signals(held, min_score=min_score)
                    if shown:
                        _render_signals(result, shown, f"Reversal Signals — {symbol} ({interval})")
                    else:
                        console.print("[yellow]ℹ️  No signals yet.[/yellow]")

                    for signal in filter_signals(fresh, min_score=min_score):
                        if poll > 1:
                            console.print(
                                f"[bold green]🆕 {signal_label(signal.kind)} at "
                                f"{format_timestamp(signal.timestamp)} (score {signal.score})[/bold green]"
                            )

                if iterations and poll >= iterations:
                    break
                time.sleep(refresh_seconds)
        except KeyboardInterrupt:
            console.print("\n[yellow]⏹️  Watch stopped.[/yellow]")

    # ----------------------------------------------------------------------
    # indicators
    # ----------------------------------------------------------------------
    @cli_group.command(name="indicators")
    @click.option("--symbol", "-s", default=None, help="Futures symbol (e.g., BTC or BTCUSDT)")
    @click.option(
        "--interval",
        "-i",
        type=click.Choice(list(SUPPORTED_INTERVALS)),
        default=None,
        help="Kline interval (defaults to SCANNER_DEFAULT_INTERVAL).",
    )
    @click.option(
        "--limit",
        "-l",
        type=click.IntRange(1, MAX_KLINE_LIMIT),
        default=None,
        help="Number of klines to fetch.",
    )
    @click.option(
        "--input",
        "input_path",
        type=click.Path(exists=True, dir_okay=False, path_type=Path),
        default=None,
        help="Read bars from a CSV file instead of the API.",
    )
    @click.option(
        "--rows",
        "-r",
        type=click.IntRange(1, 200),
        default=10,
        show_default=True,
        help="Number of most recent bars to show.",
    )
    @click.option(
        "--output",
        "-o",
        type=click.Choice(["table", "json"], case_sensitive=False),
        default="table",
        show_default=True,
        help="Render output as a Rich table or JSON payload.",
    )
    @click.pass_context
    def indicators(
        ctx: click.Context,
        symbol: Optional[str],
        interval: Optional[str],
        limit: Optional[int],
        input_path: Optional[Path],
        rows: int,
        output: str,
    ) -> None:
        """Show RSI, Stochastic-RSI, and Bollinger Bands for the latest bars."""
        symbol, interval, limit = _resolve_market(symbol, interval, limit)
        bars, _ = _load_bars(ctx, symbol, interval, limit, input_path)
        if not bars:
            console.print("[yellow]ℹ️  No bars available.[/yellow]")
            return

        start = max(0, len(bars) - rows)
        snapshots = [TechnicalIndicators.snapshot(bars, index) for index in range(start, len(bars))]

        if output.lower() == "json":
            payload = {
                "symbol": symbol,
                "interval": interval,
                "rows": [
                    {
                        "time": bars[snap.index].time,
                        "close": bars[snap.index].close,
                        "rsi": round(snap.rsi, 4),
                        "stoch_rsi": round(snap.stoch_rsi, 4),
                        "bollinger": (
                            {
                                "middle": snap.bands.middle,
                                "upper": snap.bands.upper,
                                "lower": snap.bands.lower,
                            }
                            if snap.bands is not None
                            else None
                        ),
                    }
                    for snap in snapshots
                ],
            }
            click.echo(json.dumps(payload, indent=2))
            return

        table = Table(title=f"Indicators — {symbol} ({interval})", show_lines=False, expand=False)
        table.add_column("Time (UTC)", style="cyan")
        table.add_column("Close", justify="right", style="magenta")
        table.add_column("RSI", justify="right", style="green")
        table.add_column("StochRSI", justify="right", style="blue")
        table.add_column("BB Lower", justify="right")
        table.add_column("BB Middle", justify="right")
        table.add_column("BB Upper", justify="right")

        for snap in snapshots:
            bar = bars[snap.index]
            bands = snap.bands
            table.add_row(
                format_timestamp(bar.time, timezone="UTC"),
                format_price(bar.close, max_decimals=6),
                f"{snap.rsi:.2f}",
                f"{snap.stoch_rsi:.2f}",
                format_price(bands.lower, max_decimals=6) if bands else "-",
                format_price(bands.middle, max_decimals=6) if bands else "-",
                format_price(bands.upper, max_decimals=6) if bands else "-",
            )

        console.print(table)
