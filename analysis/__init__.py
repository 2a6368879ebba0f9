"""Analysis package.

Contains reversal signal components:
- models: bar, signal, and pattern kind types
- pattern_matcher: per-bar pattern rules and scoring
- signal_scanner: full-sequence scan, market fetch, and YAML export
- signal_book: reconciliation, filtering, and display helpers
- signal_confirmation: LiteLLM confirmation of detected signals

Updates:
    v0.2.0 - 2026-09-21 - Replaced historical detectors with reversal patterns
"""
