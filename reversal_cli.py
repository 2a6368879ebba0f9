#!/usr/bin/env python3
"""
Reversal Signal Scanner CLI
Price-action reversal detection for Binance USDT-margined futures

Updates: v0.2.0 - 2026-09-21 - Initial scanner entry point with scan and indicators commands.
Updates: v0.3.0 - 2026-10-06 - Added watch command.
Updates: v0.3.2 - 2026-10-10 - Added LLM confirmation checks to diagnostics.
"""

import click
import importlib
import os
import sys
import time
from pathlib import Path
from typing import Any, Optional, Tuple, List

from dotenv import load_dotenv
from rich.console import Console
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table
import logging

# Add current directory to path for imports
sys.path.append(str(Path(__file__).parent))

from config import Config
from utils.logger import setup_logging

from cli import signals as signals_commands
# Load environment variables
load_dotenv()

console = Console()
config = Config()
logger = logging.getLogger(__name__)

# Setup logging
setup_logging(log_level=config.log_level)

_MAX_RETRY_ATTEMPTS = config.get_retry_attempts()
_RETRY_INITIAL_DELAY = config.get_retry_initial_delay()
_RETRY_BACKOFF_FACTOR = config.get_retry_backoff()

_OPTIONAL_DEPENDENCIES: Tuple[Tuple[str, str, str], ...] = (
    ("pandas", "Kline conversion and CSV input/output.", "pip install pandas"),
    ("yaml", "YAML export of scan results.", "pip install PyYAML"),
    ("requests", "Binance futures market data.", "pip install requests"),
    ("litellm", "LLM confirmation of signals (optional).", "pip install litellm"),
)


def _get_active_log_level() -> str:
    """Return the currently configured logging level name."""
    level = logging.getLogger().getEffectiveLevel()
    return logging.getLevelName(level)


def _dependency_status(module_name: str) -> Tuple[bool, Optional[str]]:
    """Return availability status and optional error message for a module."""
    try:
        importlib.import_module(module_name)
        return True, None
    except Exception as exc:  # pragma: no cover - import errors vary by platform
        return False, str(exc)


def _render_diagnostics(console: Console, config_obj: Config) -> None:
    """Display environment and dependency diagnostics."""
    summary = Table(title="Diagnostics Summary", show_lines=False, expand=False)
    summary.add_column("Check", style="cyan", no_wrap=True)
    summary.add_column("Status", style="green")
    summary.add_column("Details", style="white")

    summary.add_row("Market Data API", "ℹ️", config_obj.get_api_url())
    summary.add_row("Request Timeout", "ℹ️", f"{config_obj.get_timeout()} s")
    summary.add_row(
        "Retry Policy",
        "ℹ️",
        f"{config_obj.get_retry_attempts()} attempts, "
        f"{config_obj.get_retry_initial_delay():.1f}s initial delay, "
        f"x{config_obj.get_retry_backoff():.2f} backoff",
    )
    summary.add_row(
        "Scan Defaults",
        "ℹ️",
        f"{config_obj.default_symbol} {config_obj.default_interval}, "
        f"{config_obj.kline_limit} klines, refresh {config_obj.get_refresh_seconds()}s",
    )

    llm_enabled = os.getenv("SIGNAL_LLM_ENABLED", "false").lower() == "true"
    llm_model = os.getenv("SIGNAL_LLM_MODEL") or ""
    summary.add_row(
        "LLM Confirmation",
        "✅" if llm_enabled and llm_model else "ℹ️",
        f"Enabled ({llm_model})" if llm_enabled and llm_model else "Disabled",
    )
    env_path = Path(".env")
    summary.add_row(
        ".env File",
        "✅" if env_path.exists() else "⚠️",
        str(env_path.resolve()),
    )

    console.print(summary)

    deps_table = Table(title="Dependencies", show_lines=False, expand=False)
    deps_table.add_column("Module", style="magenta")
    deps_table.add_column("Status", style="green")
    deps_table.add_column("Notes", style="white")
    deps_table.add_column("Install Hint", style="yellow")

    for module_name, description, hint in _OPTIONAL_DEPENDENCIES:
        available, error = _dependency_status(module_name)
        status = "✅ Available" if available else "⚠️ Missing"
        note = description if available else (error or description)
        install_hint = "-" if available else hint
        deps_table.add_row(module_name, status, note, install_hint)

    console.print(deps_table)

    env_detail_lines: List[str] = []
    optional_vars = [
        "BINANCE_API_BASE_URL",
        "SCANNER_DEFAULT_SYMBOL",
        "SCANNER_DEFAULT_INTERVAL",
        "SCANNER_REFRESH_SECONDS",
    ]
    for key in optional_vars:
        if not os.getenv(key):
            env_detail_lines.append(f"• Optional tuning variable unset: {key}")
    if not env_detail_lines:
        env_detail_lines.append("• All tuning variables set.")

    export_dir = config_obj.export_dir
    export_dir_exists = export_dir.exists()
    export_dir_writable = False
    if export_dir_exists:
        try:
            test_file = export_dir / ".write_test"
            with test_file.open("w") as handle:
                handle.write("ok")
            test_file.unlink()
            export_dir_writable = True
        except OSError:
            export_dir_writable = False

    env_detail_lines.append(
        f"• Export directory: {export_dir} "
        f"({'writable' if export_dir_writable else 'create pending' if not export_dir_exists else 'not writable'})"
    )

    if llm_enabled and not llm_model:
        env_detail_lines.append(
            "• SIGNAL_LLM_ENABLED is set but SIGNAL_LLM_MODEL is empty; confirmation stays off."
        )

    console.print(
        Panel.fit(
            "\n".join(env_detail_lines),
            title="Environment Checks",
            border_style="blue",
        )
    )


def _call_with_retries(action, description: str, display_label: Optional[str] = None) -> Any:
    """Invoke the provided callable with exponential backoff and Rich progress."""

    delay = _RETRY_INITIAL_DELAY
    last_error: Optional[Exception] = None
    display_label = display_label or description

    progress = Progress(
        SpinnerColumn(),
        TextColumn("{task.description}"),
        transient=True,
        console=console,
    )

    with progress:
        task_id = progress.add_task(f"{display_label}…", start=False)
        for attempt in range(1, _MAX_RETRY_ATTEMPTS + 1):
            progress.update(task_id, description=f"{display_label} (attempt {attempt}/{_MAX_RETRY_ATTEMPTS})")
            progress.start_task(task_id)
            try:
                result = action()
                progress.update(task_id, description=f"{display_label} (completed)")
                return result
            except KeyboardInterrupt:  # pragma: no cover - user interruption
                progress.stop_task(task_id)
                raise
            except Exception as exc:
                last_error = exc
                progress.update(task_id, description=f"{display_label} failed: {exc}")
                logger.warning(
                    "%s attempt %d/%d failed: %s",
                    description,
                    attempt,
                    _MAX_RETRY_ATTEMPTS,
                    exc,
                )
                if attempt >= _MAX_RETRY_ATTEMPTS:
                    break
                time.sleep(delay)
                delay *= _RETRY_BACKOFF_FACTOR

    if last_error:
        raise last_error

    return None


@click.group()
@click.pass_context
def cli(ctx):
    """Reversal Signal Scanner - price-action reversal detection for futures markets"""
    ctx.ensure_object(dict)
    ctx.obj.setdefault('config', config)
    # Market client is created lazily by the commands that need network access
    ctx.obj.setdefault('market_client', None)


signals_commands.register(
    cli,
    console=console,
    config=config,
    call_with_retries=_call_with_retries,
)


@cli.command()
@click.option(
    "--diagnostics",
    is_flag=True,
    help="Display environment and dependency checks.",
)
@click.pass_context
def info(ctx: click.Context, diagnostics: bool):
    """Show application information and warnings"""
    if diagnostics:
        _render_diagnostics(console, config)
        return

    log_level_line = f"[bold white]Current Log Level:[/bold white] [cyan]{_get_active_log_level()}[/cyan]"
    panel = Panel.fit(
        "[bold cyan]Reversal Signal Scanner[/bold cyan]\n\n"
        f"{log_level_line}\n\n"
        "[bold yellow]⚠️  IMPORTANT RISK WARNINGS:[/bold yellow]\n"
        "• Signals are heuristics, not trade recommendations\n"
        "• Past performance does not guarantee future results\n"
        "• LLM confirmations can be wrong\n"
        "• This tool is for educational purposes\n\n"
        "[bold green]Patterns:[/bold green]\n"
        "• Institutional spring / upthrust\n"
        "• Tweezers top / bottom\n"
        "• Sudden reversal up / down\n"
        "• Bullish / bearish engulfing\n"
        "• Hammer, shooting star, doji\n\n"
        "[bold blue]Commands:[/bold blue]\n"
        "• scan: one-off scan of a market or CSV file\n"
        "• watch: poll a market for new signals\n"
        "• indicators: RSI, Stochastic-RSI, Bollinger Bands\n\n"
        f"[yellow]Market data: {config.get_api_url()}[/yellow]",
        title="Application Information"
    )
    console.print(panel)

if __name__ == '__main__':
    cli()
