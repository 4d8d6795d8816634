"""Session health scoring.

Turns aggregated metrics (and, when the caller has one, a context-window
snapshot) into a bounded health score, descriptive labels, ranked
optimization actions and plain-language observations.

The scorer is a pure function of its inputs and the billing configuration it
was built with: no I/O and no clock reads.
"""

from __future__ import annotations

import math
from typing import List, Optional, Tuple

from tripstats.core.config import BillingConfig
from tripstats.core.models import (
    MAX_SCORE_WITH_CONTEXT,
    ContextWindow,
    OptimizationAction,
    SessionAnalytics,
    SessionMetrics,
)
from tripstats.utils.formatting import format_percent, format_tokens

CACHE_SCORE_MAX = 40
CONTEXT_SCORE_MAX = 30
EFFICIENCY_SCORE_MAX = 30
CONTEXT_SCORE_NEUTRAL = 15

HIGH_VERBOSITY_TOKENS = 15_000
LOW_TOOL_RATE = 10

# Fraction of the window usable before autocompaction kicks in.
AUTOCOMPACT_THRESHOLD = 0.85
DEFAULT_CONTEXT_SIZE = 200_000

PREMIUM_COST_PER_MESSAGE = 2.0

_CACHE_SCORE_LADDER: Tuple[Tuple[float, int], ...] = ((90, 40), (70, 30), (50, 20))

_HEALTH_LABELS: Tuple[Tuple[int, str], ...] = (
    (90, "⭐⭐⭐⭐⭐ Excellent"),
    (75, "⭐⭐⭐⭐ Good"),
    (60, "⭐⭐⭐ Fair"),
    (40, "⭐⭐ Poor"),
)
_CRITICAL_LABEL = "⭐ Critical"

EARLY_SESSION_OBSERVATION = (
    "Early session - behavioral patterns not yet established. "
    "Continue working to generate meaningful insights."
)


def calculate_cache_score(cache_efficiency: float) -> int:
    for threshold, score in _CACHE_SCORE_LADDER:
        if cache_efficiency >= threshold:
            return score
    return 10


def calculate_context_score(context: Optional[ContextWindow]) -> int:
    if context is None:
        return CONTEXT_SCORE_NEUTRAL
    if context.usage_percent < 70:
        return 30
    if context.usage_percent < 85:
        return 20
    return 10


def calculate_efficiency_score(tokens_per_message: float, tools_per_message: float) -> int:
    score = EFFICIENCY_SCORE_MAX
    if tokens_per_message > HIGH_VERBOSITY_TOKENS and tools_per_message < LOW_TOOL_RATE:
        score -= 10
    if 5 <= tools_per_message <= 20:
        score = min(EFFICIENCY_SCORE_MAX, score + 5)
    return max(0, min(EFFICIENCY_SCORE_MAX, score))


def health_label(score: int, max_score: int = MAX_SCORE_WITH_CONTEXT) -> str:
    """Star label for ``score``; thresholds are percentages of ``max_score``."""
    percent = score / max_score * 100 if max_score > 0 else 0
    for threshold, label in _HEALTH_LABELS:
        if percent >= threshold:
            return label
    return _CRITICAL_LABEL


def tool_intensity_label(metrics: SessionMetrics) -> str:
    tools = metrics.tool_count
    rate = metrics.tools_per_message
    messages = metrics.message_count
    if tools >= 250 and rate >= 15:
        return "Very intensive - heavy implementation with high tool rate"
    if tools >= 100 and rate >= 15 and messages < 20:
        return "Intensive - focused implementation burst"
    if tools >= 100 and messages >= 20:
        return "Moderate - steady workflow over extended session"
    if tools >= 25 and rate < 10:
        return "Light - planning/exploration phase"
    return "Minimal - early session or simple tasks"


def verbosity_label(tokens_per_message: float) -> str:
    if tokens_per_message > 15_000:
        return "High - detailed responses"
    if tokens_per_message > 8_000:
        return "Moderate - balanced responses"
    return "Concise - brief responses"


def context_growth_label(tokens_per_message: float) -> str:
    if tokens_per_message > 50_000:
        return "Fast growth → consider /clear soon"
    if tokens_per_message > 20_000:
        return "Moderate growth → monitor context size"
    return "Slow growth → healthy pace"


def cache_guidance(cache_efficiency: float) -> str:
    if cache_efficiency > 90:
        return "Excellent → stay in session"
    if cache_efficiency > 70:
        return "Good → cache is helping"
    return "Low → consider /clear to rebuild cache"


class AnalyticsScorer:
    """Computes :class:`SessionAnalytics` for a billing configuration."""

    def __init__(self, config: Optional[BillingConfig] = None) -> None:
        self.config = config if config is not None else BillingConfig()

    def compute(
        self, metrics: SessionMetrics, context: Optional[ContextWindow] = None
    ) -> SessionAnalytics:
        cache_score = calculate_cache_score(metrics.cache_efficiency)
        context_score = calculate_context_score(context)
        efficiency_score = calculate_efficiency_score(
            metrics.tokens_per_message, metrics.tools_per_message
        )
        health_score = cache_score + context_score + efficiency_score

        return SessionAnalytics(
            health_score=health_score,
            health_label=health_label(health_score),
            cache_score=cache_score,
            context_score=context_score,
            efficiency_score=efficiency_score,
            tool_intensity_label=tool_intensity_label(metrics),
            verbosity_label=verbosity_label(metrics.tokens_per_message),
            context_growth_label=context_growth_label(metrics.tokens_per_message),
            cache_guidance=cache_guidance(metrics.cache_efficiency),
            optimization_actions=tuple(self.optimization_actions(metrics)),
            behavioral_analysis=tuple(self.behavioral_analysis(metrics, context)),
            context_available=context is not None,
        )

    def _impact(self, metrics: SessionMetrics, fraction: float, fallback: str) -> str:
        percent = round(fraction * 100)
        if not self.config.is_subscription:
            return f"{fallback} ({percent}% improvement)"
        per_message = metrics.total_cost / max(metrics.message_count, 1)
        savings = per_message * fraction * 10 * self.config.safety_margin
        return f"Save ~${savings:.2f}/10 msgs ({percent}% reduction)"

    def optimization_actions(self, metrics: SessionMetrics) -> List[OptimizationAction]:
        """Triggered actions, highest priority first."""
        actions: List[OptimizationAction] = []

        if (
            metrics.tokens_per_message > HIGH_VERBOSITY_TOKENS
            and metrics.tools_per_message < LOW_TOOL_RATE
        ):
            actions.append(
                OptimizationAction(
                    action="Add brevity constraints to prompts",
                    impact=self._impact(metrics, 0.25, "High efficiency gain"),
                    priority=25,
                )
            )

        if metrics.cache_efficiency < 70:
            actions.append(
                OptimizationAction(
                    action="Start fresh session to rebuild cache",
                    impact=self._impact(metrics, 0.20, "Moderate efficiency gain"),
                    priority=20,
                )
            )

        if metrics.tools_per_message > 30 and metrics.message_count > 10:
            actions.append(
                OptimizationAction(
                    action="Review if tasks could be simplified",
                    impact="Potential workflow optimization",
                    priority=15,
                )
            )

        # sorted() is stable, so equal priorities keep evaluation order.
        return sorted(actions, key=lambda item: item.priority, reverse=True)

    def behavioral_analysis(
        self, metrics: SessionMetrics, context: Optional[ContextWindow]
    ) -> List[str]:
        analysis: List[str] = []
        rate = metrics.tools_per_message
        tpm = metrics.tokens_per_message
        tpm_text = format_tokens(tpm)

        if rate > 15 and tpm > 8_000:
            analysis.append(
                f"This session exhibits intensive implementation behavior ({rate:.1f} tools/msg) "
                f"combined with detailed explanations ({tpm_text}/msg). The AI is actively "
                "building complex features while providing thorough documentation. This "
                "pattern is costly but high-value for learning."
            )
        elif rate > 10 and tpm < 5_000:
            analysis.append(
                f"The AI is in focused execution mode: high tool activity ({rate:.1f} tools/msg) "
                f"with concise communication ({tpm_text}/msg). This is an efficient pattern for "
                "implementing well-defined tasks where less explanation is needed."
            )
        elif rate < 5 and tpm > 10_000:
            analysis.append(
                f"Conversation-heavy session with low tool activity ({rate:.1f} tools/msg) but "
                f"verbose responses ({tpm_text}/msg). The AI is explaining concepts or planning "
                "rather than executing. Consider whether this level of detail is necessary, or "
                "if you could request more action and less talk."
            )
        elif rate >= 5 and 5_000 <= tpm <= 10_000:
            analysis.append(
                f"Balanced workflow detected: moderate tool usage ({rate:.1f} tools/msg) with "
                f"appropriately detailed responses ({tpm_text}/msg). This represents efficient "
                "collaboration where the AI both executes and explains at a sustainable pace."
            )

        efficiency = round(metrics.cache_efficiency)
        if metrics.cache_efficiency > 90:
            analysis.append(
                f"Exceptional cache efficiency ({efficiency}%) indicates this session is building "
                "on previous context effectively. The AI is reusing prior work rather than "
                "re-processing. Starting a new session would lose this 10x cost advantage. "
                "Stay in this session as long as possible."
            )
        elif metrics.cache_efficiency < 50 and metrics.message_count > 5:
            analysis.append(
                f"Low cache efficiency ({efficiency}%) suggests frequent context switching or a "
                "cold start. The AI is processing most content from scratch, which is expensive. "
                "If this session continues to be unfocused, consider using /clear to rebuild a "
                "clean cache for your current task."
            )

        if context is not None:
            percent_text = format_percent(context.usage_percent)
            if context.usage_percent > 85:
                remaining = max(0.0, 100 - context.usage_percent)
                estimate = ""
                if tpm > 0:
                    messages_left = math.floor(remaining * context.size / 100 / tpm)
                    estimate = (
                        f"At current verbosity ({tpm_text}/msg), you have approximately "
                        f"{messages_left} messages before autocompact triggers. "
                    )
                analysis.append(
                    f"Context window is at {percent_text}% capacity with only "
                    f"~{format_percent(remaining)}% remaining. {estimate}The AI may start "
                    "dropping earlier context to make room. Consider /clear or requesting more "
                    "concise responses."
                )
            elif context.usage_percent > 70 and tpm > HIGH_VERBOSITY_TOKENS:
                analysis.append(
                    f"Context at {percent_text}% with high verbosity ({tpm_text}/msg) creates "
                    "pressure. The AI is providing detailed responses which fill context "
                    "quickly. If you're approaching limits, explicitly request brevity: "
                    '"Be more concise" or "Just show code changes" can reduce tokens by 50-70%.'
                )
            elif context.usage_percent < 50:
                analysis.append(
                    f"Healthy context headroom ({percent_text}% used). The AI has plenty of "
                    "space to maintain full conversation history without compression. This "
                    "enables better coherence and reference to earlier work."
                )

        cost_per_message = metrics.total_cost / max(metrics.message_count, 1)
        if cost_per_message > PREMIUM_COST_PER_MESSAGE and self.config.is_subscription:
            analysis.append(
                f"This session is averaging ${cost_per_message:.2f}/message, which is premium "
                f"territory. You're getting {tpm_text} of output per message, suggesting complex "
                "multi-step operations. This investment makes sense for difficult problems, but "
                "simpler tasks could use cheaper models or more focused prompts."
            )

        projected = self.projected_messages(metrics, context)
        if metrics.message_count > 10 and projected is not None and projected < 5:
            analysis.append(
                f"At current pace, you have approximately {projected} messages before hitting "
                "context limits. The AI's current pattern is not sustainable for extended "
                "sessions. Either reduce verbosity now or plan to use /clear soon to continue "
                "working efficiently."
            )

        return analysis or [EARLY_SESSION_OBSERVATION]

    @staticmethod
    def projected_messages(
        metrics: SessionMetrics, context: Optional[ContextWindow]
    ) -> Optional[int]:
        """Messages left before autocompaction at the current output rate.

        None when the output rate is zero (no meaningful projection).
        """
        if metrics.tokens_per_message <= 0:
            return None
        size = context.size if context is not None else DEFAULT_CONTEXT_SIZE
        usage = context.usage if context is not None else 0
        budget = size * AUTOCOMPACT_THRESHOLD - usage
        return max(0, math.floor(budget / metrics.tokens_per_message))


__all__ = [
    "AnalyticsScorer",
    "EARLY_SESSION_OBSERVATION",
    "cache_guidance",
    "calculate_cache_score",
    "calculate_context_score",
    "calculate_efficiency_score",
    "context_growth_label",
    "health_label",
    "tool_intensity_label",
    "verbosity_label",
]
