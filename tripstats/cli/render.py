"""Status line and trip-report renderers."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Optional

from rich.console import Console, Group
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from tripstats.core.activity import COMPLETED, RUNNING, AgentActivity, SessionActivity
from tripstats.core.analytics import (
    CACHE_SCORE_MAX,
    CONTEXT_SCORE_MAX,
    EFFICIENCY_SCORE_MAX,
    health_label,
)
from tripstats.core.config import BillingConfig
from tripstats.core.models import ContextHealth, ContextWindow, RateLimits, SessionMetrics
from tripstats.core.pricing import TOKENS_PER_RATE_UNIT, get_model_pricing
from tripstats.core.session import SessionSnapshot
from tripstats.core.transcript import iter_model_usage
from tripstats.utils.formatting import (
    format_cost,
    format_duration,
    format_elapsed,
    format_tokens,
    truncate_content,
    truncate_path,
)

EMPTY_STATUS_LINE = "💬 0 msgs | 🔧 0 tools | 🎯 0 tok | 📈 /trip"
ERROR_STATUS_LINE = "💬 Error | 📈 /trip"

_HEALTH_STYLES = {
    ContextHealth.HEALTHY: "green",
    ContextHealth.WARNING: "yellow",
    ContextHealth.CRITICAL: "red",
}


def _bar(percent: float, width: int = 10) -> str:
    filled = max(0, min(width, round(percent / 100 * width)))
    return "█" * filled + "░" * (width - filled)


def _render_context(context: ContextWindow) -> str:
    percent = round(context.usage_percent)
    return f"[{_bar(percent)}] {percent}%"


def _render_rate_limits(limits: RateLimits) -> str:
    five_hour = round(limits.five_hour_percent or 0)
    seven_day = round(limits.seven_day_percent or 0)
    return f"📊 {limits.plan_name} {five_hour}%/{seven_day}%"


def render_tools_line(activity: SessionActivity) -> Optional[str]:
    """Running tools followed by the five most-used finished tools."""
    parts: List[str] = []
    for tool in activity.running_tools:
        target = truncate_path(tool.target) if tool.target else ""
        parts.append(f"◐ {tool.name}: {target}" if target else f"◐ {tool.name}")
    top = sorted(activity.tool_counts.items(), key=lambda item: item[1], reverse=True)[:5]
    for name, count in top:
        parts.append(f"✓ {name} ×{count}")
    return " | ".join(parts) if parts else None


def _render_agent(agent: AgentActivity, now: datetime) -> str:
    icon = "◐" if agent.status == RUNNING else "✓"
    description = f": {truncate_content(agent.description, 40)}" if agent.description else ""
    end = agent.ended_at if agent.ended_at is not None else now
    elapsed = format_elapsed((end - agent.started_at).total_seconds())
    return f"{icon} {agent.agent_type}{description} ({elapsed})"


def render_agents_lines(activity: SessionActivity, now: datetime) -> List[str]:
    """Running sub-agents and up to two recently completed ones, at most three."""
    running = [agent for agent in activity.agents if agent.status == RUNNING]
    completed = [agent for agent in activity.agents if agent.status == COMPLETED][-2:]
    return [_render_agent(agent, now) for agent in (running + completed)[-3:]]


def render_todos_line(activity: SessionActivity) -> Optional[str]:
    """The in-progress todo, or a completion note once every todo is done."""
    todos = activity.todos
    if not todos:
        return None
    completed = sum(1 for todo in todos if todo.status == COMPLETED)
    current = next((todo for todo in todos if todo.status == "in_progress"), None)
    if current is None:
        if completed == len(todos):
            return f"✓ All todos complete ({completed}/{len(todos)})"
        return None
    return f"▸ {truncate_content(current.content, 50)} ({completed}/{len(todos)})"


def render_status_line(
    snapshot: SessionSnapshot,
    config: BillingConfig,
    activity: Optional[SessionActivity] = None,
    now: Optional[datetime] = None,
) -> str:
    """Summary shown beneath the assistant prompt.

    The first line carries the session metrics. With ``activity`` it is
    followed by tool, sub-agent and todo lines when those have anything to show.
    """
    now = now if now is not None else datetime.now(timezone.utc)
    metrics = snapshot.metrics
    parts: List[str] = [
        f"💬 {metrics.message_count} msgs ({snapshot.model_name})",
        f"🔧 {metrics.tool_count} tools ({metrics.tools_per_message:.1f}/msg)",
        f"🎯 {format_tokens(metrics.total_tokens.total)} tok",
    ]
    if snapshot.context is not None:
        parts.append(_render_context(snapshot.context))
    parts.append(f"⚡ {round(metrics.cache_efficiency)}% cached")
    parts.append(f"📝 {format_tokens(metrics.tokens_per_message)}/msg")
    if activity is not None and activity.session_start is not None:
        elapsed = (now - activity.session_start).total_seconds()
        parts.append(f"⏱️ {format_duration(elapsed)}")
    if config.is_subscription:
        limits = snapshot.rate_limits
        if limits is not None and limits.plan_name:
            parts.append(_render_rate_limits(limits))
        value = metrics.total_cost * config.safety_margin
        parts.append(f"{config.billing_icon} ~{format_cost(value)} value")
    parts.append("📈 /trip")

    lines = [" | ".join(parts)]
    if activity is not None:
        tools_line = render_tools_line(activity)
        if tools_line:
            lines.append(tools_line)
        lines.extend(render_agents_lines(activity, now))
        todos_line = render_todos_line(activity)
        if todos_line:
            lines.append(todos_line)
    return "\n".join(lines)


def _category_costs(metrics: SessionMetrics) -> List[tuple[str, float]]:
    """Cost per token category summed across models."""
    totals = {"Input tokens": 0.0, "Output tokens": 0.0, "Cache writes": 0.0, "Cache reads": 0.0}
    for usage in metrics.models.values():
        pricing = get_model_pricing(usage.model_id)
        tokens = usage.tokens
        totals["Input tokens"] += tokens.input_tokens * pricing.input_rate
        totals["Output tokens"] += tokens.output_tokens * pricing.output_rate
        totals["Cache writes"] += (
            tokens.cache_creation_tokens * pricing.input_rate * pricing.cache_write_mult
        )
        totals["Cache reads"] += (
            tokens.cache_read_tokens * pricing.input_rate * pricing.cache_read_mult
        )
    return [(label, value / TOKENS_PER_RATE_UNIT) for label, value in totals.items()]


def _share(part: float, whole: float) -> float:
    return part / whole * 100 if whole > 0 else 0.0


def _indicator(score: int, maximum: int) -> str:
    percent = _share(score, maximum)
    if percent >= 80:
        return "✅"
    if percent >= 50:
        return "➡️"
    return "⚠️"


def _score_cell(score: int, maximum: int) -> str:
    return f"{_indicator(score, maximum)} {score}/{maximum}"


def render_trip_report(console: Console, snapshot: SessionSnapshot, config: BillingConfig) -> None:
    """Detailed multi-section session report."""
    metrics = snapshot.metrics
    analytics = snapshot.analytics
    context = snapshot.context

    summary = Text()
    summary.append(f"Health: {health_label(analytics.display_score, analytics.max_score)} ")
    summary.append(f"({analytics.display_score}/{analytics.max_score})\n", style="bold")
    summary.append(
        f"Messages: {metrics.message_count} | Tools: {metrics.tool_count} | "
        f"Tokens: {format_tokens(metrics.total_tokens.total)}"
    )
    if context is not None:
        summary.append("\nContext: ")
        summary.append(
            f"{round(context.usage_percent)}% ({context.health_status.value})",
            style=_HEALTH_STYLES[context.health_status],
        )
    console.print(Panel(summary, title="📊 Quick Summary", title_align="left"))

    scores = Table(show_header=False, box=None, padding=(0, 2))
    scores.add_row(
        "⚡ Cache efficiency",
        _score_cell(analytics.cache_score, CACHE_SCORE_MAX),
        f"{round(metrics.cache_efficiency)}% cache hit rate",
    )
    if context is not None:
        scores.add_row(
            "⚙️  Context management",
            _score_cell(analytics.context_score, CONTEXT_SCORE_MAX),
            f"{round(context.usage_percent)}% of context window used",
        )
    scores.add_row(
        "🎯 Efficiency",
        _score_cell(analytics.efficiency_score, EFFICIENCY_SCORE_MAX),
        f"{metrics.tools_per_message:.1f} tools/msg, "
        f"{format_tokens(metrics.tokens_per_message)} tok/msg",
    )
    console.print(
        Panel(scores, title=f"📈 Session Health (0-{analytics.max_score})", title_align="left")
    )

    models = Table(box=None, padding=(0, 2))
    models.add_column("Model")
    models.add_column("Requests", justify="right")
    models.add_column("Tokens", justify="right")
    models.add_column("Cost", justify="right")
    models.add_column("Share", justify="right")
    for usage in iter_model_usage(metrics):
        models.add_row(
            usage.display_name,
            str(usage.requests),
            format_tokens(usage.tokens.total),
            f"${usage.cost:.4f}",
            f"{_share(usage.cost, metrics.total_cost):.1f}%",
        )
    if not metrics.models:
        models.add_row("No model usage data available", "", "", "", "")
    console.print(Panel(models, title="🤖 Model Mix", title_align="left"))

    breakdown = Table(show_header=False, box=None, padding=(0, 2))
    if config.is_subscription:
        title = "💵 Cost Drivers"
        total = metrics.total_cost * config.safety_margin
        for label, cost in _category_costs(metrics):
            cost *= config.safety_margin
            share = _share(cost, total)
            breakdown.add_row(label, f"${cost:.4f}", f"{share:.1f}%", _bar(share))
    else:
        title = "📊 Token Distribution"
        tokens = metrics.total_tokens
        for label, count in (
            ("Input", tokens.input_tokens),
            ("Output", tokens.output_tokens),
            ("Cache writes", tokens.cache_creation_tokens),
            ("Cache reads", tokens.cache_read_tokens),
        ):
            share = _share(count, tokens.total)
            breakdown.add_row(label, format_tokens(count), f"{share:.1f}%", _bar(share))
    console.print(Panel(breakdown, title=title, title_align="left"))

    ratio = (
        metrics.total_tokens.output_tokens / metrics.total_tokens.input_tokens
        if metrics.total_tokens.input_tokens > 0
        else 0.0
    )
    efficiency = Text()
    efficiency.append(f"Tool intensity: {analytics.tool_intensity_label}\n")
    efficiency.append(
        f"  {metrics.tool_count} tools ({metrics.tools_per_message:.1f} tools/msg) "
        f"across {metrics.message_count} msgs\n",
        style="dim",
    )
    efficiency.append(f"Response verbosity: {analytics.verbosity_label}\n")
    efficiency.append(f"Context growth: {analytics.context_growth_label}\n")
    efficiency.append(f"Output/input ratio: {ratio:.2f}x\n")
    efficiency.append(f"Cache hit rate: {metrics.cache_efficiency:.1f}%\n")
    efficiency.append(f"  {analytics.cache_guidance}", style="dim")
    console.print(Panel(efficiency, title="⚡ Efficiency Metrics", title_align="left"))

    if analytics.optimization_actions:
        actions = [
            Text(f"{idx}. [Priority: {action.priority}] {action.action}\n   → {action.impact}")
            for idx, action in enumerate(analytics.optimization_actions[:3], start=1)
        ]
        body = Group(*actions)
    else:
        body = Group(Text("✅ Session looks well-optimized! Keep up the good work."))
    console.print(Panel(body, title="🎯 Top Optimization Actions", title_align="left"))

    observations = Group(*(Text(f"• {insight}") for insight in analytics.behavioral_analysis))
    console.print(Panel(observations, title="🧠 Session Assessment", title_align="left"))


__all__ = [
    "EMPTY_STATUS_LINE",
    "ERROR_STATUS_LINE",
    "render_agents_lines",
    "render_status_line",
    "render_todos_line",
    "render_tools_line",
    "render_trip_report",
]
