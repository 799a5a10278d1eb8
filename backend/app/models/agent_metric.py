from datetime import datetime

from sqlalchemy import Integer, Float, Text, DateTime, ForeignKey, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base


class AgentMetric(Base):
    """Monthly scorecard for one agent."""

    __tablename__ = "agent_metrics"
    __table_args__ = (UniqueConstraint("agent_id", "month", "year", name="uq_agent_metric_period"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    agent_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    month: Mapped[int] = mapped_column(Integer)
    year: Mapped[int] = mapped_column(Integer, index=True)

    # Percentage metrics (0-100)
    schedule_adherence: Mapped[float | None] = mapped_column(Float, nullable=True)
    attendance_rate: Mapped[float | None] = mapped_column(Float, nullable=True)
    punctuality_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    break_compliance: Mapped[float | None] = mapped_column(Float, nullable=True)
    task_completion_rate: Mapped[float | None] = mapped_column(Float, nullable=True)
    productivity_index: Mapped[float | None] = mapped_column(Float, nullable=True)
    quality_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    efficiency_rate: Mapped[float | None] = mapped_column(Float, nullable=True)

    # Raw inputs
    scheduled_hours: Mapped[float | None] = mapped_column(Float, nullable=True)
    actual_hours: Mapped[float | None] = mapped_column(Float, nullable=True)
    scheduled_days: Mapped[int | None] = mapped_column(Integer, nullable=True)
    days_present: Mapped[int | None] = mapped_column(Integer, nullable=True)
    total_shifts: Mapped[int | None] = mapped_column(Integer, nullable=True)
    on_time_arrivals: Mapped[int | None] = mapped_column(Integer, nullable=True)
    total_breaks: Mapped[int | None] = mapped_column(Integer, nullable=True)
    breaks_within_limit: Mapped[int | None] = mapped_column(Integer, nullable=True)
    tasks_assigned: Mapped[int | None] = mapped_column(Integer, nullable=True)
    tasks_completed: Mapped[int | None] = mapped_column(Integer, nullable=True)
    expected_output: Mapped[float | None] = mapped_column(Float, nullable=True)
    actual_output: Mapped[float | None] = mapped_column(Float, nullable=True)
    total_tasks: Mapped[int | None] = mapped_column(Integer, nullable=True)
    error_free_tasks: Mapped[int | None] = mapped_column(Integer, nullable=True)
    standard_time: Mapped[float | None] = mapped_column(Float, nullable=True)
    actual_time_spent: Mapped[float | None] = mapped_column(Float, nullable=True)

    # Weights
    schedule_adherence_weight: Mapped[float] = mapped_column(Float, default=1.0)
    attendance_rate_weight: Mapped[float] = mapped_column(Float, default=0.5)
    punctuality_score_weight: Mapped[float] = mapped_column(Float, default=0.5)
    break_compliance_weight: Mapped[float] = mapped_column(Float, default=0.5)
    task_completion_rate_weight: Mapped[float] = mapped_column(Float, default=1.5)
    productivity_index_weight: Mapped[float] = mapped_column(Float, default=1.5)
    quality_score_weight: Mapped[float] = mapped_column(Float, default=1.5)
    efficiency_rate_weight: Mapped[float] = mapped_column(Float, default=1.0)

    # Legacy 1-5 scale
    service: Mapped[float | None] = mapped_column(Float, nullable=True)
    productivity: Mapped[float | None] = mapped_column(Float, nullable=True)
    quality: Mapped[float | None] = mapped_column(Float, nullable=True)
    assiduity: Mapped[float | None] = mapped_column(Float, nullable=True)
    performance: Mapped[float | None] = mapped_column(Float, nullable=True)
    adherence: Mapped[float | None] = mapped_column(Float, nullable=True)
    lateness: Mapped[float | None] = mapped_column(Float, nullable=True)
    break_exceeds: Mapped[float | None] = mapped_column(Float, nullable=True)

    total_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    percentage: Mapped[float | None] = mapped_column(Float, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now(), index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now(), onupdate=func.now())
