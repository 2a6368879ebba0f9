"""LLM confirmation of detected reversal signals using LiteLLM.

A detected signal is sent to a language model together with the bars around
it; the model answers with a strict JSON verdict that is merged back into a
copy of the signal. The engine never calls this module itself: confirmation
is a caller-driven step performed after a scan.

Environment variables:
    SIGNAL_LLM_ENABLED: "true"/"false" (default: "false")
    SIGNAL_LLM_MODEL: "<provider>/<model>" (e.g., "gemini/gemini-1.5-pro")
    SIGNAL_LLM_TIMEOUT: seconds as float (default: "10")
    SIGNAL_LLM_MAX_TOKENS: integer (default: "512")
    SIGNAL_LLM_TEMPERATURE: float (default: "0.0")

Provider API keys (handled by LiteLLM):
    GEMINI_API_KEY, OPENAI_API_KEY, ANTHROPIC_API_KEY, etc.

Updates:
    v0.3.3 - 2026-10-18 - Split context lookup from confirm_signal for retrying callers.
    v0.3.2 - 2026-10-10 - Fallback verdict when the provider is unreachable.
    v0.3.0 - 2026-10-06 - Initial LiteLLM confirmation client.
"""

from __future__ import annotations

import dataclasses
import json
import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, Optional, Sequence

from analysis.models import Bar, PatternKind, Signal

logger = logging.getLogger(__name__)

CONTEXT_BARS = 60

FALLBACK_EXPLANATION = "AI model disconnected. Technical setup looks high-probability."
FALLBACK_SCORE = 50

_KIND_GUIDELINES: Dict[str, str] = {
    "INSTITUTIONAL_SPRING/UPTHRUST": (
        "Check for massive volume absorption and a structural hunt outside the "
        "Bollinger Bands."
    ),
    "TWEEZERS_TOP/BOTTOM": (
        "Matching highs or lows across two candles. Does this represent a clear "
        "structural wall of rejection?"
    ),
    "SUDDEN_REVERSAL_UP/DOWN": (
        "High-momentum V-shape recovery. Did the trend break sharply? Is there a "
        "significant volume surge in the reversal candle?"
    ),
    "BULLISH/BEARISH_ENGULFING": (
        "Does the current candle completely dominate the previous one at a key "
        "pivot level?"
    ),
    "HAMMER/SHOOTING_STAR": (
        "Is the rejection wick long relative to the body, printed at a recent "
        "extreme, and followed through by the next candle?"
    ),
    "DOJI": "Is it occurring at a structural extreme with RSI divergence?",
}


class SignalConfirmationError(RuntimeError):
    """Error raised when LLM-based confirmation fails."""


@dataclass(frozen=True, slots=True)
class ConfirmationResult:
    """Verdict returned by the confirmation model."""

    confirmed: bool
    explanation: str
    score: int


FALLBACK_RESULT = ConfirmationResult(
    confirmed=False,
    explanation=FALLBACK_EXPLANATION,
    score=FALLBACK_SCORE,
)


class SignalConfirmationClient:
    """LiteLLM-backed client asking a model to confirm a reversal signal.

    Example usage:
        client = SignalConfirmationClient()
        if client.is_enabled:
            result = client.confirm(
                symbol="BTCUSDT",
                kind=PatternKind.HAMMER,
                context_bars=bars[index - 60:index + 2],
                target_bar=bars[index],
                stoch_rsi=12.5,
            )
    """

    DEFAULT_TIMEOUT_SECONDS: float = 10.0
    DEFAULT_MAX_TOKENS: int = 512
    DEFAULT_TEMPERATURE: float = 0.0

    def __init__(self) -> None:
        """Initialise client by loading environment configuration."""
        self._enabled = (os.getenv("SIGNAL_LLM_ENABLED", "false").lower() == "true")
        self._model = os.getenv("SIGNAL_LLM_MODEL") or ""
        self._timeout = float(os.getenv("SIGNAL_LLM_TIMEOUT", str(self.DEFAULT_TIMEOUT_SECONDS)))
        self._max_tokens = int(os.getenv("SIGNAL_LLM_MAX_TOKENS", str(self.DEFAULT_MAX_TOKENS)))
        self._temperature = float(
            os.getenv("SIGNAL_LLM_TEMPERATURE", str(self.DEFAULT_TEMPERATURE))
        )

        # Lazy import to avoid hard dependency when disabled
        self._litellm = None
        if self._enabled and self._model:
            try:
                from litellm import completion  # type: ignore
                self._litellm = completion
            except Exception as exc:
                logger.error("LiteLLM import failed: %s", exc)
                self._enabled = False

    @property
    def is_enabled(self) -> bool:
        """Return True if confirmation via LLM is enabled and configured."""
        return self._enabled and bool(self._model) and (self._litellm is not None)

    @property
    def model(self) -> str:
        """Return the configured LiteLLM model identifier."""
        return self._model

    def confirm(
        self,
        symbol: str,
        kind: PatternKind,
        context_bars: Sequence[Bar],
        target_bar: Bar,
        stoch_rsi: Optional[float] = None,
    ) -> ConfirmationResult:
        """Ask the configured model to confirm or reject a signal.

        Args:
            symbol: Market label such as ``BTCUSDT``.
            kind: Detected pattern kind.
            context_bars: Bars surrounding the signal bar.
            target_bar: The bar that triggered the signal.
            stoch_rsi: Stochastic-RSI value at detection, when known.

        Returns:
            Validated ConfirmationResult.

        Raises:
            SignalConfirmationError: On configuration issues, provider errors,
                or schema validation failures.
        """
        if not self.is_enabled:
            raise SignalConfirmationError(
                "LLM confirmation disabled or not configured. "
                "Set SIGNAL_LLM_ENABLED=true and SIGNAL_LLM_MODEL=<provider>/<model>."
            )

        system_prompt = self._build_system_prompt()
        user_prompt = self._build_user_prompt(symbol, kind, context_bars, target_bar, stoch_rsi)

        try:
            resp = self._litellm(
                model=self._model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                temperature=self._temperature,
                max_tokens=self._max_tokens,
                timeout=self._timeout,
            )
        except Exception as exc:
            raise SignalConfirmationError(f"LLM provider error: {exc}") from exc

        content = self._extract_text_content(resp)
        if not content:
            raise SignalConfirmationError("LLM returned empty content.")

        try:
            payload = json.loads(content)
        except json.JSONDecodeError as exc:
            raise SignalConfirmationError(f"Failed to parse JSON from LLM response: {exc}") from exc

        return self._validate_payload(payload)

    def _build_system_prompt(self) -> str:
        """Construct system prompt with market logic guidelines and schema."""
        lines = [
            "You are a professional price-action analyst reviewing reversal setups",
            "flagged by a deterministic scanner.",
            "",
            "MARKET LOGIC GUIDELINES:",
            *[f"- '{kinds}': {text}" for kinds, text in _KIND_GUIDELINES.items()],
            "",
            "REQUIREMENTS:",
            "- OUTPUT STRICT JSON ONLY (no prose, no markdown).",
            "- Keys: 'isConfirmed' (boolean), 'reason' (string), 'score' (integer 0-100).",
            "- 'reason' is a professional structural analysis and the",
            "  confirmation/rejection rationale.",
            "- Do not provide financial advice.",
        ]
        return "\n".join(lines)

    @staticmethod
    def _build_user_prompt(
        symbol: str,
        kind: PatternKind,
        context_bars: Sequence[Bar],
        target_bar: Bar,
        stoch_rsi: Optional[float],
    ) -> str:
        """Construct user prompt with the signal and its surrounding bars."""
        context = ", ".join(
            f"[O:{bar.open:.2f}, H:{bar.high:.2f}, L:{bar.low:.2f}, "
            f"C:{bar.close:.2f}, V:{bar.volume:.0f}]"
            for bar in context_bars
        )
        stoch_label = f"{stoch_rsi:.2f}" if stoch_rsi is not None else "N/A"
        return "\n".join(
            [
                f"Analyze this {symbol} reversal setup.",
                f"Signal Type: {kind.value}",
                f"StochRSI: {stoch_label}",
                f"Context (last {len(context_bars)} bars): {context}",
                (
                    f"Signal Bar Details: O:{target_bar.open}, H:{target_bar.high}, "
                    f"L:{target_bar.low}, C:{target_bar.close}, V:{target_bar.volume:.0f}"
                ),
            ]
        )

    @staticmethod
    def _extract_text_content(response: Any) -> str:
        """Extract the textual content from a LiteLLM response structure."""
        try:
            # OpenAI-compatible schema
            choices = response.get("choices") or []
            if not choices:
                return ""
            message = choices[0].get("message") or {}
            content = message.get("content") or ""
            return str(content).strip()
        except Exception:
            return ""

    @staticmethod
    def _validate_payload(payload: Any) -> ConfirmationResult:
        """Validate the model verdict; absent fields fall back to a rejection."""
        if not isinstance(payload, dict):
            raise SignalConfirmationError("LLM verdict must be a JSON object.")

        confirmed = payload.get("isConfirmed", False)
        if not isinstance(confirmed, bool):
            raise SignalConfirmationError(f"Invalid isConfirmed value: {confirmed!r}")

        reason = payload.get("reason")
        explanation = str(reason).strip() if reason is not None else ""
        explanation = explanation or "Analysis inconclusive."

        raw_score = payload.get("score", 0)
        if isinstance(raw_score, bool):
            raise SignalConfirmationError(f"Invalid score: {raw_score!r}")
        try:
            score = int(round(float(raw_score)))
        except (TypeError, ValueError) as exc:
            raise SignalConfirmationError(f"Invalid score: {raw_score!r}") from exc
        if score < 0 or score > 100:
            raise SignalConfirmationError(f"score out of bounds: {score}")

        return ConfirmationResult(confirmed=confirmed, explanation=explanation, score=score)


def apply_confirmation(signal: Signal, result: ConfirmationResult) -> Signal:
    """Return a copy of ``signal`` carrying the confirmation verdict."""
    return dataclasses.replace(
        signal,
        confirmed=result.confirmed,
        confirmation_text=result.explanation,
        score=max(0, min(100, int(result.score))),
    )


def confirmation_context(signal: Signal, bars: Sequence[Bar]) -> Optional[Sequence[Bar]]:
    """Return the bars sent to the model for ``signal``, or None to skip it.

    The window spans ``CONTEXT_BARS`` bars before the signal bar through the
    bar after it. Signals already carrying a confirmation, signals missing
    from ``bars``, and signals with too little history are skipped.
    """
    if signal.confirmation_text:
        return None

    index = next(
        (position for position, bar in enumerate(bars) if bar.time == signal.timestamp),
        None,
    )
    if index is None or index < CONTEXT_BARS:
        logger.info(
            "Skipping confirmation for %s at %s: not enough context bars",
            signal.kind.value,
            signal.timestamp,
        )
        return None

    return bars[index - CONTEXT_BARS:index + 2]


def confirm_signal(
    client: SignalConfirmationClient,
    symbol: str,
    signal: Signal,
    bars: Sequence[Bar],
) -> Signal:
    """Confirm ``signal`` against ``bars`` and return the updated copy.

    Skipped signals (see :func:`confirmation_context`) are returned unchanged.
    Provider or schema failures degrade to :data:`FALLBACK_RESULT`.
    """
    context = confirmation_context(signal, bars)
    if context is None:
        return signal

    try:
        result = client.confirm(symbol, signal.kind, context, signal.bar, signal.stoch_rsi)
    except SignalConfirmationError as exc:
        logger.warning("Signal confirmation failed for %s at %s: %s", symbol, signal.timestamp, exc)
        result = FALLBACK_RESULT
    return apply_confirmation(signal, result)
