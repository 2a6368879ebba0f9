"""
Helper utilities for the reversal scanner CLI
"""

from typing import Union
from datetime import datetime
import pytz


def format_price(value: Union[str, float, int], max_decimals: int = 4) -> str:
    """Format a price with thousands separators and trimmed decimals"""
    try:
        if isinstance(value, str):
            value = float(value)
        formatted = f"{float(value):,.{max_decimals}f}"
        if max_decimals > 0:
            formatted = formatted.rstrip('0').rstrip('.')
        return formatted or "0"
    except (ValueError, TypeError):
        return str(value)


def format_timestamp(timestamp: Union[str, float, int],
                    timezone: str = "UTC") -> str:
    """Format timestamp to readable date/time"""
    try:
        # Handle different timestamp formats
        if isinstance(timestamp, str):
            if timestamp.isdigit():
                timestamp = int(timestamp)
            else:
                # Assume it's already a formatted string
                return timestamp

        # Convert to datetime
        if timestamp > 1e10:  # Milliseconds
            dt = datetime.fromtimestamp(timestamp / 1000, tz=pytz.UTC)
        else:  # Seconds
            dt = datetime.fromtimestamp(timestamp, tz=pytz.UTC)

        # Convert to specified timezone
        if timezone != "UTC":
            tz = pytz.timezone(timezone)
            dt = dt.astimezone(tz)

        return dt.strftime("%Y-%m-%d %H:%M:%S %Z")
    except (ValueError, OSError, pytz.UnknownTimeZoneError):
        return str(timestamp)


def get_score_color(score: float) -> str:
    """Get display color for a signal score"""
    if score >= 80:
        return "yellow"
    elif score >= 60:
        return "blue"
    else:
        return "red"
