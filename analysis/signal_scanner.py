"""Signal scanning over full bar sequences.

``scan_signals`` is the pure entry point: it drives the pattern matcher over
every usable bar position and returns signals in ascending time order.
``SignalScanner`` wraps it with market data retrieval, reconciliation against
caller-held signals, and YAML export for the command-line interface.

Updates:
    v0.3.1 - 2026-10-08 - Added YAML export of scan results.
    v0.3.0 - 2026-10-06 - Reconcile fresh scans against held signals.
    v0.2.0 - 2026-09-21 - Replaced historical detector registry with the
        reversal pattern scan.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import yaml

from analysis.models import Bar, Signal
from analysis.pattern_matcher import detect
from analysis.signal_book import reconcile_signals
from api.binance_client import BinanceFuturesClient
from utils.market_data import frame_to_bars, klines_to_frame

logger = logging.getLogger(__name__)

SCAN_START_INDEX = 25


def scan_signals(bars: Sequence[Bar]) -> List[Signal]:
    """Return every detected signal in ``bars`` in ascending index order.

    Candidate positions run from ``SCAN_START_INDEX`` up to the second-to-last
    bar; the matcher itself rejects positions lacking history, so short
    sequences simply produce no signals.
    """
    signals: List[Signal] = []
    for index in range(SCAN_START_INDEX, len(bars) - 1):
        detection = detect(bars, index)
        if detection.is_empty:
            continue
        bar = bars[index]
        signals.append(
            Signal(
                bar=bar,
                kind=detection.kind,
                timestamp=bar.time,
                score=detection.score,
                stoch_rsi=detection.stoch_rsi,
            ),
        )
    return signals


@dataclass(slots=True)
class ScanResult:
    """Bars, last price, and reconciled signals for one symbol/interval."""

    symbol: str
    interval: str
    bars: List[Bar]
    signals: List[Signal] = field(default_factory=list)
    last_price: Optional[float] = None
    scanned_at: float = field(default_factory=time.time)


class SignalScanner:
    """Coordinator for live reversal signal scans.

    SignalScanner fetches klines through the market data client, runs the
    pure ``scan_signals`` pass, and merges the result with signals the caller
    already holds so confirmation verdicts survive a rescan.
    """

    DEFAULT_LIMIT: int = 500

    def __init__(
        self,
        client: BinanceFuturesClient,
        *,
        export_dir: Optional[Path] = None,
    ) -> None:
        """Create a new SignalScanner instance.

        Args:
            client: Market data client used for kline and price retrieval.
            export_dir: Optional directory for YAML exports. Defaults to
                ``exports/signals``.
        """

        self._client = client
        self._export_dir = export_dir or Path("exports") / "signals"

    def fetch_bars(self, symbol: str, interval: str, limit: int = DEFAULT_LIMIT) -> List[Bar]:
        """Fetch klines and convert them into a validated bar sequence."""
        rows = self._client.get_klines(symbol, interval=interval, limit=limit)
        return frame_to_bars(klines_to_frame(rows))

    def scan_bars(
        self,
        symbol: str,
        interval: str,
        bars: List[Bar],
        *,
        previous: Optional[Sequence[Signal]] = None,
        last_price: Optional[float] = None,
    ) -> ScanResult:
        """Scan already loaded bars and reconcile with ``previous`` signals."""
        detected = scan_signals(bars)
        signals = reconcile_signals(previous or [], detected)
        logger.debug(
            "Scanned %d bars for %s/%s: %d signals",
            len(bars),
            symbol,
            interval,
            len(signals),
        )
        return ScanResult(
            symbol=symbol,
            interval=interval,
            bars=bars,
            signals=signals,
            last_price=last_price,
        )

    def scan_symbol(
        self,
        symbol: str,
        interval: str,
        limit: int = DEFAULT_LIMIT,
        *,
        previous: Optional[Sequence[Signal]] = None,
    ) -> ScanResult:
        """Fetch the latest bars for ``symbol`` and scan them.

        Args:
            symbol: Futures symbol such as ``BTCUSDT``.
            interval: Kline interval label (``5m``, ``1h``, ...).
            limit: Number of klines to request.
            previous: Signals held from an earlier scan of the same market.

        Returns:
            ScanResult with signals ordered newest first.

        Raises:
            MarketDataError: If klines or the ticker price cannot be fetched.
            InvalidBarSequenceError: If the returned klines are malformed.
        """
        bars = self.fetch_bars(symbol, interval, limit)
        last_price = self._client.get_ticker_price(symbol)
        return self.scan_bars(
            symbol,
            interval,
            bars,
            previous=previous,
            last_price=last_price,
        )

    @staticmethod
    def signals_to_payload(result: ScanResult) -> Dict[str, Any]:
        """Convert a scan result to a serialisable payload.

        Args:
            result: ScanResult to convert.

        Returns:
            Mapping with scan metadata and a ``signals`` list.
        """
        return {
            "symbol": result.symbol,
            "interval": result.interval,
            "bars": len(result.bars),
            "last_price": result.last_price,
            "scanned_at": result.scanned_at,
            "signals": [signal.to_dict() for signal in result.signals],
        }

    def export_signals_to_yaml(
        self,
        result: ScanResult,
        *,
        output_dir: Path | None = None,
    ) -> Path:
        """Export the signals of a scan result to a YAML file on disk.

        The filename incorporates the symbol, interval, and a Unix timestamp.
        If a file with the generated name already exists, a numeric suffix is
        appended to keep the export non-destructive.

        Args:
            result: Scan result whose signals should be exported.
            output_dir: Optional target directory; defaults to the scanner's
                export directory, created on demand.

        Returns:
            Path to the final YAML file on disk.

        Raises:
            ValueError: If the result has no signals.
            OSError: If the underlying filesystem operations fail.
        """
        if not result.signals:
            raise ValueError("No signals provided for YAML export.")

        payload = self.signals_to_payload(result)
        target_dir = output_dir or self._export_dir
        target_dir.mkdir(parents=True, exist_ok=True)

        def _sanitize(component: str) -> str:
            return "".join(
                ch
                if ch.isalnum() or ch in ("-", "_", ".")
                else "_"
                for ch in component
            )

        timestamp = int(time.time())
        base_name = (
            f"signals_{_sanitize(result.symbol.upper())}_"
            f"{_sanitize(result.interval)}_{timestamp}"
        )

        candidate = target_dir / f"{base_name}.yaml"
        suffix_counter = 1
        while candidate.exists():
            candidate = target_dir / f"{base_name}_{suffix_counter}.yaml"
            suffix_counter += 1

        tmp_path = candidate.with_suffix(candidate.suffix + ".tmp")

        try:
            with tmp_path.open("w", encoding="utf-8") as handle:
                yaml.safe_dump(
                    payload,
                    handle,
                    default_flow_style=False,
                    allow_unicode=True,
                    sort_keys=False,
                )
                handle.flush()
            tmp_path.replace(candidate)
        except OSError as exc:
            logger.error(
                "Failed to write signals YAML %s: %s",
                candidate,
                exc,
            )
            raise

        return candidate
