"""
Scorecard Engine

Monthly agent scorecards in two flavours:

Percentage scorecard (current)
  Eight 0-100 metrics derived from raw monthly counts, combined as a
  weighted average:
      total = SUM(metric x weight) / SUM(weight)      (2 decimals)
      percentage = total
  Weights: task completion, productivity, quality 1.5;
           schedule adherence, efficiency 1.0;
           punctuality, break compliance, attendance 0.5.

Legacy scorecard
  Eight metrics on a 1-5 scale, weight 1.0 each by default:
      total = SUM(score x weight)
      percentage = total / SUM(5 x weight) x 100
"""

import logging
from dataclasses import dataclass, field

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models import AgentMetric
from app.schemas.schemas import ScorecardSaveRequest

logger = logging.getLogger(__name__)


PERCENT_METRICS = (
    "schedule_adherence",
    "attendance_rate",
    "punctuality_score",
    "break_compliance",
    "task_completion_rate",
    "productivity_index",
    "quality_score",
    "efficiency_rate",
)

LEGACY_METRICS = (
    "service",
    "productivity",
    "quality",
    "assiduity",
    "performance",
    "adherence",
    "lateness",
    "break_exceeds",
)

RAW_FIELDS = (
    "scheduled_hours", "actual_hours",
    "scheduled_days", "days_present",
    "total_shifts", "on_time_arrivals",
    "total_breaks", "breaks_within_limit",
    "tasks_assigned", "tasks_completed",
    "expected_output", "actual_output",
    "total_tasks", "error_free_tasks",
    "standard_time", "actual_time_spent",
)

DEFAULT_WEIGHTS: dict[str, float] = {
    # High impact
    "task_completion_rate": 1.5,
    "productivity_index": 1.5,
    "quality_score": 1.5,
    # Medium impact
    "schedule_adherence": 1.0,
    "efficiency_rate": 1.0,
    # Low impact
    "punctuality_score": 0.5,
    "break_compliance": 0.5,
    "attendance_rate": 0.5,
}

LEGACY_MIN, LEGACY_MAX = 1.0, 5.0

# Fields reported by trends / yearly averages
SUMMARY_FIELDS = PERCENT_METRICS + LEGACY_METRICS + ("total_score", "percentage")


# ── Pure calculations ────────────────────────────────────────────────────────

def clamp_percentage(value: float) -> float:
    return max(0.0, min(100.0, value))


def clamp_legacy(value: float | None) -> float:
    if value is None:
        return LEGACY_MIN
    return max(LEGACY_MIN, min(LEGACY_MAX, float(value)))


def ratio_percentage(numerator: float | None, denominator: float | None) -> float:
    """numerator / denominator x 100, clamped; 0 when the denominator is <= 0."""
    denominator = denominator or 0
    if denominator <= 0:
        return 0.0
    return clamp_percentage((numerator or 0) / denominator * 100)


def calculate_percentage_metrics(raw: dict) -> dict[str, float]:
    """Eight 0-100 metrics from a dict of raw monthly counts (snake_case keys)."""
    total_breaks = raw.get("total_breaks") or 0
    return {
        "schedule_adherence": ratio_percentage(raw.get("actual_hours"), raw.get("scheduled_hours")),
        "attendance_rate": ratio_percentage(raw.get("days_present"), raw.get("scheduled_days")),
        "punctuality_score": ratio_percentage(raw.get("on_time_arrivals"), raw.get("total_shifts")),
        # No breaks taken counts as full compliance
        "break_compliance": (
            100.0 if total_breaks <= 0
            else ratio_percentage(raw.get("breaks_within_limit"), total_breaks)
        ),
        "task_completion_rate": ratio_percentage(raw.get("tasks_completed"), raw.get("tasks_assigned")),
        "productivity_index": ratio_percentage(raw.get("actual_output"), raw.get("expected_output")),
        "quality_score": ratio_percentage(raw.get("error_free_tasks"), raw.get("total_tasks")),
        "efficiency_rate": ratio_percentage(raw.get("standard_time"), raw.get("actual_time_spent")),
    }


def resolve_weights(overrides: dict[str, float] | None) -> dict[str, float]:
    """
    Merge caller weights over the defaults.

    Accepts `quality_score`, `quality_score_weight` or `qualityScoreWeight`
    style keys; unknown keys and negative values are ignored.
    """
    weights = dict(DEFAULT_WEIGHTS)
    for key, value in (overrides or {}).items():
        name = _normalise_weight_key(key)
        if name in weights and value is not None and value >= 0:
            weights[name] = float(value)
    return weights


def _normalise_weight_key(key: str) -> str:
    snake = "".join(f"_{c.lower()}" if c.isupper() else c for c in key)
    return snake.removesuffix("_weight")


def weighted_total(metrics: dict[str, float], weights: dict[str, float]) -> tuple[float, float]:
    """(total_score, percentage) for a percentage scorecard."""
    weighted_sum = 0.0
    weight_sum = 0.0
    for name in PERCENT_METRICS:
        weight = max(0.0, weights.get(name, 0.0))
        weighted_sum += clamp_percentage(metrics.get(name, 0.0)) * weight
        weight_sum += weight
    total = round(weighted_sum / weight_sum, 2) if weight_sum else 0.0
    return total, total


def legacy_total(scores: dict[str, float | None], weights: dict[str, float] | None = None) -> tuple[float, float]:
    """(total_score, percentage) for a 1-5 legacy scorecard."""
    weights = weights or {}
    total = 0.0
    max_possible = 0.0
    for name in LEGACY_METRICS:
        weight = max(0.0, weights.get(name, 1.0))
        total += clamp_legacy(scores.get(name)) * weight
        max_possible += LEGACY_MAX * weight
    percentage = clamp_percentage(total / max_possible * 100) if max_possible else 0.0
    return round(total, 2), round(percentage, 2)


def previous_period(month: int, year: int) -> tuple[int, int]:
    if month == 1:
        return 12, year - 1
    return month - 1, year


def _value(row, name: str) -> float:
    value = row.get(name) if isinstance(row, dict) else getattr(row, name, None)
    return float(value) if value is not None else 0.0


def calculate_trends(current, previous) -> dict[str, float]:
    """Per-field difference current - previous. Missing values count as 0."""
    return {
        name: round(_value(current, name) - _value(previous, name), 2)
        for name in SUMMARY_FIELDS
    }


def calculate_yearly_average(rows: list) -> dict[str, float]:
    count = len(rows)
    if not count:
        return {name: 0.0 for name in SUMMARY_FIELDS}
    return {
        name: round(sum(_value(r, name) for r in rows) / count, 2)
        for name in SUMMARY_FIELDS
    }


@dataclass
class ScorecardResult:
    """Computed values ready to be written onto an AgentMetric row."""

    values: dict = field(default_factory=dict)
    total_score: float = 0.0
    percentage: float = 0.0


def build_scorecard(payload: ScorecardSaveRequest) -> ScorecardResult:
    """Compute metric values, weights and totals for a save request."""
    if payload.raw_data is not None:
        raw = payload.raw_data.model_dump()
        metrics = calculate_percentage_metrics(raw)
        weights = resolve_weights(payload.weights)
        total, percentage = weighted_total(metrics, weights)
        values = {name: raw.get(name) for name in RAW_FIELDS}
        values.update(metrics)
        values.update({f"{name}_weight": weights[name] for name in PERCENT_METRICS})
    else:
        legacy = payload.metrics.model_dump()
        legacy_weights = {
            _normalise_weight_key(k): v for k, v in (payload.weights or {}).items() if v is not None
        }
        total, percentage = legacy_total(legacy, legacy_weights)
        values = {name: clamp_legacy(legacy.get(name)) for name in LEGACY_METRICS}
        values.update({name: 0.0 for name in PERCENT_METRICS})

    if payload.notes is not None:
        values["notes"] = payload.notes
    return ScorecardResult(values=values, total_score=total, percentage=percentage)


# ── Persistence ──────────────────────────────────────────────────────────────

class ScorecardService:
    """Read/write AgentMetric rows for one agent."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def list_metrics(self, agent_id: int, year: int, month: int | None = None) -> list[AgentMetric]:
        query = select(AgentMetric).where(AgentMetric.agent_id == agent_id, AgentMetric.year == year)
        if month is not None:
            query = query.where(AgentMetric.month == month)
        query = query.order_by(AgentMetric.month.asc())
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def get_metric(self, agent_id: int, month: int, year: int) -> AgentMetric | None:
        result = await self.session.execute(
            select(AgentMetric).where(
                AgentMetric.agent_id == agent_id,
                AgentMetric.month == month,
                AgentMetric.year == year,
            )
        )
        return result.scalar_one_or_none()

    async def upsert(self, agent_id: int, payload: ScorecardSaveRequest) -> tuple[AgentMetric, bool]:
        """Create or update the row for (agent, month, year). Returns (row, created)."""
        computed = build_scorecard(payload)
        metric = await self.get_metric(agent_id, payload.month, payload.year)
        created = metric is None
        if created:
            metric = AgentMetric(agent_id=agent_id, month=payload.month, year=payload.year)
            self.session.add(metric)

        for name, value in computed.values.items():
            setattr(metric, name, value)
        metric.total_score = computed.total_score
        metric.percentage = computed.percentage

        await self.session.flush()
        await self.session.refresh(metric)
        logger.info(
            "Scorecard %s for agent %s %02d/%d: %.2f%%",
            "created" if created else "updated", agent_id, payload.month, payload.year, computed.percentage,
        )
        return metric, created

    async def delete(self, agent_id: int, month: int, year: int) -> bool:
        metric = await self.get_metric(agent_id, month, year)
        if metric is None:
            return False
        await self.session.delete(metric)
        await self.session.flush()
        logger.info("Scorecard deleted for agent %s %02d/%d", agent_id, month, year)
        return True
