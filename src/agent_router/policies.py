"""
Routing policies - deadlines, expectations, complexity, confidence.

Pure business rules for delegation and synthesis (no I/O).
"""

import re
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Mapping, Optional

from agent_router.schemas import Insight, Priority, TaskComplexity, Urgency, Workload

# Exact deadline windows; unknown urgency gets the LOW window
DEADLINE_WINDOWS: Dict[Urgency, timedelta] = {
    Urgency.HIGH: timedelta(minutes=5),
    Urgency.MEDIUM: timedelta(minutes=30),
    Urgency.LOW: timedelta(hours=2),
}

PRIORITY_RANK: Dict[Priority, int] = {
    Priority.HIGH: 3,
    Priority.MEDIUM: 2,
    Priority.LOW: 1,
}

TECHNICAL_DELEGATION_THRESHOLD = 0.7
ANALYTICAL_DELEGATION_THRESHOLD = 0.8
CAPACITY_RATIO = 0.9

DEFAULT_PRIMARY_CONFIDENCE = 0.8
DEFAULT_CONTRIBUTOR_CONFIDENCE = 0.7
DEFAULT_RESULT_CONFIDENCE = 0.8

PRIMARY_WEIGHT = 0.6
CONTRIBUTOR_WEIGHT = 0.4

BASE_COMPLETION_MINUTES = 15

_TECHNICAL = re.compile(r"technical|code|api|database|system|infrastructure", re.I)
_ANALYTICAL = re.compile(r"analyze|calculate|model|forecast|evaluate|assess", re.I)
_QUANTITATIVE = re.compile(r"revenue|profit|margin|valuation|cash flow|roi|unit economics", re.I)
_CREATIVE = re.compile(r"brainstorm|ideas|creative|innovative|design", re.I)
_URGENT = re.compile(r"urgent|critical|asap", re.I)


def calculate_deadline(urgency: Any, now: datetime) -> datetime:
    """Deadline = ``now`` + the urgency window (5 min / 30 min / 2 h)."""
    return now + DEADLINE_WINDOWS[Urgency.parse(urgency)]


def build_expectations(urgency: Any) -> Dict[str, Any]:
    """What the delegating handler expects back, by urgency."""
    expectations: Dict[str, Any] = {
        "accuracy": "high",
        "format": "structured",
        "include_recommendations": True,
        "include_sources": True,
    }
    level = Urgency.parse(urgency)
    if level is Urgency.HIGH:
        expectations.update(response_time="immediate", detail="summary")
    elif level is Urgency.MEDIUM:
        expectations.update(response_time="standard", detail="comprehensive")
    else:
        expectations.update(response_time="when_available", detail="thorough")
    return expectations


def estimate_task_complexity(task: str) -> TaskComplexity:
    """
    Cheap keyword estimator producing three scores in [0, 1].

    Analytical work that also touches financial quantities scores 0.9,
    which is what pushes a partner handler over the delegation threshold.
    """
    task = task or ""
    technical = 0.8 if _TECHNICAL.search(task) else 0.2
    if _ANALYTICAL.search(task):
        analytical = 0.9 if _QUANTITATIVE.search(task) else 0.7
    else:
        analytical = 0.3
    creative = 0.6 if _CREATIVE.search(task) else 0.2
    return TaskComplexity(technical=technical, analytical=analytical, creative=creative)


def estimate_completion_minutes(task: str) -> int:
    complexity = estimate_task_complexity(task)
    multiplier = max(complexity.technical, complexity.analytical) + 1
    return round(BASE_COMPLETION_MINUTES * multiplier)


def assess_task_priority(task: str) -> str:
    return "high" if _URGENT.search(task or "") else "medium"


def determine_expected_format(task: str) -> str:
    task = task or ""
    if re.search(r"report|document|analysis", task, re.I):
        return "detailed_report"
    if re.search(r"chart|graph|visualization", task, re.I):
        return "visual"
    return "structured_response"


def needs_specialist(complexity: TaskComplexity) -> bool:
    return (
        complexity.technical > TECHNICAL_DELEGATION_THRESHOLD
        or complexity.analytical > ANALYTICAL_DELEGATION_THRESHOLD
    )


def is_overloaded(workload: Workload) -> bool:
    return workload.current_tasks > workload.capacity * CAPACITY_RATIO


def result_confidence(results: Optional[Mapping[str, Any]]) -> float:
    if not results:
        return DEFAULT_RESULT_CONFIDENCE
    value = results.get("confidence")
    if value is None:
        return DEFAULT_RESULT_CONFIDENCE
    try:
        return float(value)
    except (TypeError, ValueError):
        return DEFAULT_RESULT_CONFIDENCE


def _confidence_of(metadata: Optional[Mapping[str, Any]], default: float) -> float:
    value = (metadata or {}).get("confidence")
    if value is None:
        return default
    return float(value)


def blended_confidence(
    primary_metadata: Optional[Mapping[str, Any]],
    contributor_metadata: Iterable[Optional[Mapping[str, Any]]],
) -> float:
    """0.6 * primary + 0.4 * mean(contributors); primary alone when none."""
    primary = _confidence_of(primary_metadata, DEFAULT_PRIMARY_CONFIDENCE)
    contributors = [
        _confidence_of(m, DEFAULT_CONTRIBUTOR_CONFIDENCE) for m in contributor_metadata
    ]
    if not contributors:
        return primary
    average = sum(contributors) / len(contributors)
    return PRIMARY_WEIGHT * primary + CONTRIBUTOR_WEIGHT * average


def rank_insights(insights: Iterable[Insight], limit: int = 5) -> List[Insight]:
    """
    Deduplicate by title keeping the higher priority, sort descending by
    priority (stable), keep the first ``limit``.
    """
    kept: Dict[str, Insight] = {}
    for insight in insights:
        existing = kept.get(insight.title)
        if existing is None:
            kept[insight.title] = insight
        elif PRIORITY_RANK[insight.priority] > PRIORITY_RANK[existing.priority]:
            kept[insight.title] = insight
    ordered = sorted(kept.values(), key=lambda i: PRIORITY_RANK[i.priority], reverse=True)
    return ordered[:limit]


def probability_label(priority: Priority) -> str:
    return {Priority.HIGH: "High", Priority.MEDIUM: "Medium", Priority.LOW: "Low"}[priority]
