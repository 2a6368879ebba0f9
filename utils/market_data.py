"""Market data helpers for the reversal scanner.

Converts Binance kline rows and CSV files into validated bar sequences, and
signals back into tabular frames for export.

Updates:
    v0.3.1 - 2026-10-08 - Added CSV loader and signal frame export.
    v0.2.0 - 2026-09-21 - Initial Binance kline conversion helpers.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Sequence, Tuple

import pandas as pd

from analysis.models import Bar, InvalidBarSequenceError, Signal, validate_bars

logger = logging.getLogger(__name__)

BAR_COLUMNS: Tuple[str, ...] = ("time", "open", "high", "low", "close", "volume")

KNOWN_QUOTE_SUFFIXES: Tuple[str, ...] = (
    "USDT",
    "USDC",
    "BUSD",
    "FDUSD",
)

DEFAULT_QUOTE = "USDT"


def normalize_symbol(symbol: str) -> str:
    """Return an upper-case futures symbol, appending USDT to bare assets.

    Args:
        symbol: User supplied symbol such as ``btc`` or ``ETHUSDT``.

    Returns:
        Normalised symbol (e.g., ``BTCUSDT``).
    """

    upper = (symbol or "").strip().upper()
    if not upper:
        raise ValueError("Symbol is required.")
    for suffix in KNOWN_QUOTE_SUFFIXES:
        if upper.endswith(suffix) and len(upper) > len(suffix):
            return upper
    return f"{upper}{DEFAULT_QUOTE}"


def klines_to_frame(rows: Iterable[Sequence[Any]]) -> pd.DataFrame:
    """Convert raw Binance kline rows into a sorted OHLCV frame.

    Malformed rows are skipped. Duplicate open times keep the last row, which
    carries the most recent state of a still-forming candle.
    """

    records: List[Dict[str, Any]] = []
    for raw in rows:
        if not raw or len(raw) < 6:
            continue
        try:
            records.append(
                {
                    "time": int(raw[0]),
                    "open": float(raw[1]),
                    "high": float(raw[2]),
                    "low": float(raw[3]),
                    "close": float(raw[4]),
                    "volume": float(raw[5]),
                },
            )
        except (TypeError, ValueError):
            continue

    if not records:
        return pd.DataFrame(columns=list(BAR_COLUMNS))

    frame = pd.DataFrame(records)
    return _normalise_frame(frame)


def _normalise_frame(frame: pd.DataFrame) -> pd.DataFrame:
    frame = frame.sort_values("time", kind="stable")
    frame = frame.drop_duplicates(subset="time", keep="last")
    frame = frame.reset_index(drop=True)
    return frame


def frame_to_bars(frame: pd.DataFrame) -> List[Bar]:
    """Convert an OHLCV frame into a validated list of bars.

    Raises:
        InvalidBarSequenceError: If required columns are missing or the rows
            violate the bar sequence contract.
    """

    missing = [column for column in BAR_COLUMNS if column not in frame.columns]
    if missing:
        raise InvalidBarSequenceError(
            f"invalid bar sequence: missing columns {', '.join(missing)}"
        )

    bars = [
        Bar(
            time=int(row.time),
            open=float(row.open),
            high=float(row.high),
            low=float(row.low),
            close=float(row.close),
            volume=float(row.volume),
        )
        for row in frame[list(BAR_COLUMNS)].itertuples(index=False)
    ]
    validate_bars(bars)
    return bars


def bars_to_frame(bars: Sequence[Bar]) -> pd.DataFrame:
    """Return bars as an OHLCV frame with the canonical column order."""

    return pd.DataFrame([bar.to_dict() for bar in bars], columns=list(BAR_COLUMNS))


def load_bars_csv(path: Path) -> List[Bar]:
    """Load bars from a CSV file with ``time,open,high,low,close,volume`` columns.

    Column names are matched case-insensitively; rows are sorted by time and
    duplicate timestamps collapse to the last row.
    """

    frame = pd.read_csv(path)
    frame.columns = [str(column).strip().lower() for column in frame.columns]
    if "time" in frame.columns:
        frame = _normalise_frame(frame)
    bars = frame_to_bars(frame)
    logger.debug("Loaded %d bars from %s", len(bars), path)
    return bars


def signals_to_frame(signals: Sequence[Signal]) -> pd.DataFrame:
    """Flatten signals into a frame suitable for CSV output."""

    columns = [
        "timestamp",
        "kind",
        "score",
        "stoch_rsi",
        "confirmed",
        "confirmation_text",
        "open",
        "high",
        "low",
        "close",
        "volume",
    ]
    rows = []
    for signal in signals:
        rows.append(
            {
                "timestamp": signal.timestamp,
                "kind": signal.kind.value,
                "score": signal.score,
                "stoch_rsi": round(float(signal.stoch_rsi), 4),
                "confirmed": signal.confirmed,
                "confirmation_text": signal.confirmation_text,
                "open": signal.bar.open,
                "high": signal.bar.high,
                "low": signal.bar.low,
                "close": signal.bar.close,
                "volume": signal.bar.volume,
            },
        )
    return pd.DataFrame(rows, columns=columns)
