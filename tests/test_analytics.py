"""Tests for session health scoring and guidance text."""

import pytest

from tripstats.core.analytics import (
    EARLY_SESSION_OBSERVATION,
    AnalyticsScorer,
    cache_guidance,
    calculate_cache_score,
    calculate_context_score,
    calculate_efficiency_score,
    context_growth_label,
    health_label,
    tool_intensity_label,
    verbosity_label,
)
from tripstats.core.config import BillingConfig, BillingMode
from tripstats.core.models import ContextHealth, ContextWindow, SessionMetrics

SUBSCRIPTION = BillingConfig(billing_mode=BillingMode.SUBSCRIPTION)


def _metrics(**overrides) -> SessionMetrics:
    values = {
        "session_id": "s1",
        "message_count": 2,
        "tool_count": 1,
        "cache_efficiency": 81.25,
        "tokens_per_message": 750.0,
        "tools_per_message": 0.5,
        "total_cost": 0.031515,
    }
    values.update(overrides)
    return SessionMetrics(**values)


def _context(percent: float, size: int = 200_000) -> ContextWindow:
    return ContextWindow(
        size=size,
        usage=int(size * percent / 100),
        usage_percent=percent,
        health_status=ContextHealth.for_percent(percent),
    )


@pytest.mark.parametrize(
    "efficiency, expected",
    [(100, 40), (90, 40), (89.9, 30), (70, 30), (69.9, 20), (50, 20), (49.9, 10), (0, 10)],
)
def test_cache_score_ladder(efficiency, expected):
    assert calculate_cache_score(efficiency) == expected


@pytest.mark.parametrize(
    "percent, expected",
    [(None, 15), (0, 30), (69.9, 30), (70, 20), (84.9, 20), (85, 10), (100, 10)],
)
def test_context_score_ladder(percent, expected):
    context = None if percent is None else _context(percent)
    assert calculate_context_score(context) == expected


@pytest.mark.parametrize(
    "tpm, rate, expected",
    [
        (750, 0.5, 30),
        (16_000, 2, 20),
        (16_000, 5, 25),
        (16_000, 12, 30),
        (15_000, 2, 30),
        (500, 20, 30),
        (500, 25, 30),
    ],
)
def test_efficiency_score(tpm, rate, expected):
    assert calculate_efficiency_score(tpm, rate) == expected


@pytest.mark.parametrize(
    "score, max_score, expected",
    [
        (90, 100, "⭐⭐⭐⭐⭐ Excellent"),
        (89, 100, "⭐⭐⭐⭐ Good"),
        (75, 100, "⭐⭐⭐⭐ Good"),
        (60, 100, "⭐⭐⭐ Fair"),
        (40, 100, "⭐⭐ Poor"),
        (39, 100, "⭐ Critical"),
        (63, 70, "⭐⭐⭐⭐⭐ Excellent"),
        (50, 70, "⭐⭐⭐ Fair"),
    ],
)
def test_health_label_thresholds(score, max_score, expected):
    assert health_label(score, max_score) == expected


def test_health_score_is_sum_of_components():
    analytics = AnalyticsScorer().compute(_metrics(), _context(40))
    assert analytics.cache_score == 30
    assert analytics.context_score == 30
    assert analytics.efficiency_score == 30
    assert analytics.health_score == 90
    assert analytics.health_label == "⭐⭐⭐⭐⭐ Excellent"
    assert analytics.max_score == 100
    assert analytics.display_score == 90


def test_missing_context_scores_neutral_and_displays_out_of_70():
    analytics = AnalyticsScorer().compute(_metrics())
    assert analytics.context_available is False
    assert analytics.context_score == 15
    assert analytics.health_score == 75
    assert analytics.max_score == 70
    assert analytics.display_score == 60


def test_score_bounds_hold_for_extreme_metrics():
    analytics = AnalyticsScorer().compute(
        _metrics(cache_efficiency=0, tokens_per_message=1e9, tools_per_message=0), _context(100)
    )
    assert 0 <= analytics.health_score <= 100
    assert analytics.health_score == 10 + 10 + 20


@pytest.mark.parametrize(
    "tools, rate, messages, expected_prefix",
    [
        (300, 20, 15, "Very intensive"),
        (120, 16, 8, "Intensive"),
        (120, 5, 24, "Moderate"),
        (30, 3, 10, "Light"),
        (3, 1, 3, "Minimal"),
    ],
)
def test_tool_intensity_label(tools, rate, messages, expected_prefix):
    metrics = _metrics(tool_count=tools, tools_per_message=rate, message_count=messages)
    assert tool_intensity_label(metrics).startswith(expected_prefix)


def test_threshold_labels():
    assert verbosity_label(15_001).startswith("High")
    assert verbosity_label(8_001).startswith("Moderate")
    assert verbosity_label(8_000).startswith("Concise")
    assert context_growth_label(50_001).startswith("Fast growth")
    assert context_growth_label(20_001).startswith("Moderate growth")
    assert context_growth_label(100).startswith("Slow growth")
    assert cache_guidance(91).startswith("Excellent")
    assert cache_guidance(71).startswith("Good")
    assert cache_guidance(70).startswith("Low")


def test_actions_are_ordered_by_priority():
    metrics = _metrics(tokens_per_message=20_000, tools_per_message=1, cache_efficiency=30)
    actions = AnalyticsScorer().optimization_actions(metrics)
    assert [action.priority for action in actions] == [25, 20]
    assert actions[0].action == "Add brevity constraints to prompts"
    assert actions[0].impact == "High efficiency gain (25% improvement)"
    assert actions[1].impact == "Moderate efficiency gain (20% improvement)"


def test_simplify_action_requires_long_tool_heavy_session():
    scorer = AnalyticsScorer()
    heavy = _metrics(tools_per_message=31, message_count=11, cache_efficiency=95)
    short = _metrics(tools_per_message=31, message_count=10, cache_efficiency=95)
    assert [action.priority for action in scorer.optimization_actions(heavy)] == [15]
    assert scorer.optimization_actions(short) == []


def test_subscription_impact_is_phrased_as_savings():
    metrics = _metrics(
        tokens_per_message=20_000, tools_per_message=1, total_cost=10.0, message_count=10
    )
    config = BillingConfig(billing_mode=BillingMode.SUBSCRIPTION, safety_margin=1.0)
    actions = AnalyticsScorer(config).optimization_actions(metrics)
    assert actions[0].impact == "Save ~$2.50/10 msgs (25% reduction)"


def test_quiet_session_gets_default_observation():
    analytics = AnalyticsScorer().compute(_metrics())
    assert analytics.behavioral_analysis == (EARLY_SESSION_OBSERVATION,)
    assert analytics.optimization_actions == ()


def test_work_pattern_and_cache_observations():
    analysis = AnalyticsScorer().behavioral_analysis(
        _metrics(tools_per_message=12, tokens_per_message=2_000, cache_efficiency=95), None
    )
    assert analysis[0].startswith("The AI is in focused execution mode")
    assert "12.0 tools/msg" in analysis[0]
    assert analysis[1].startswith("Exceptional cache efficiency (95%)")


def test_context_pressure_without_output_rate_omits_estimate():
    analysis = AnalyticsScorer().behavioral_analysis(
        _metrics(tokens_per_message=0, tools_per_message=0), _context(90)
    )
    pressure = [line for line in analysis if line.startswith("Context window is at 90%")]
    assert len(pressure) == 1
    assert "~10% remaining" in pressure[0]
    assert "approximately" not in pressure[0]


def test_context_pressure_includes_message_estimate():
    analysis = AnalyticsScorer().behavioral_analysis(
        _metrics(tokens_per_message=1_000), _context(90)
    )
    assert any("approximately 20 messages before autocompact" in line for line in analysis)


def test_premium_cost_observation_only_for_subscription():
    metrics = _metrics(total_cost=30.0, message_count=10)
    api = AnalyticsScorer().behavioral_analysis(metrics, None)
    sub = AnalyticsScorer(SUBSCRIPTION).behavioral_analysis(metrics, None)
    assert not any("premium territory" in line for line in api)
    assert any("$3.00/message" in line for line in sub)


def test_projected_messages():
    assert AnalyticsScorer.projected_messages(_metrics(tokens_per_message=0), None) is None
    assert AnalyticsScorer.projected_messages(_metrics(tokens_per_message=1_000), None) == 170
    assert AnalyticsScorer.projected_messages(_metrics(tokens_per_message=1_000), _context(95)) == 0


def test_sustainability_warning_for_long_fast_session():
    analysis = AnalyticsScorer().behavioral_analysis(
        _metrics(message_count=12, tokens_per_message=40_000), _context(60)
    )
    expected = "At current pace, you have approximately 1 messages"
    assert any(line.startswith(expected) for line in analysis)


def test_scorer_is_deterministic():
    scorer = AnalyticsScorer(SUBSCRIPTION)
    metrics = _metrics(cache_efficiency=40, message_count=8)
    assert scorer.compute(metrics, _context(72)) == scorer.compute(metrics, _context(72))
