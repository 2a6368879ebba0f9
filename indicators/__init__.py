"""
Indicator package initialisation helpers.

Updates: v0.2.0 - 2026-09-21 - Exported per-index indicator surface.
"""

from indicators.technical_indicators import (
    BollingerBands,
    IndicatorSnapshot,
    TechnicalIndicators,
)

__all__ = ["BollingerBands", "IndicatorSnapshot", "TechnicalIndicators"]
