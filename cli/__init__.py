"""
CLI command registration helpers for the reversal scanner.

Each submodule exposes a ``register`` function that attaches a group of
related commands to the root Click group defined in ``reversal_cli.py``.
"""

__all__ = ["signals"]
