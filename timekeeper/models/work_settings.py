"""
Work-settings models: personal defaults, project schedules and the
dated assignments that bind a user to a project schedule.

Times are stored as zero-padded "HH:MM" strings; comparisons always go
through minute-of-day integers.
"""

from __future__ import annotations

from datetime import date, datetime, timezone

from sqlalchemy import (Boolean, Column, Date, DateTime, Float, ForeignKey,
                        Index, Integer, String)
from sqlalchemy.orm import relationship

from timekeeper.db.base import Base


class UserWorkSettings(Base):
    __tablename__ = "user_work_settings"

    id: int = Column(Integer, primary_key=True, index=True)  # type: ignore[assignment]
    user_id: int = Column(Integer, ForeignKey("users.id"), unique=True, nullable=False)  # type: ignore[assignment]
    work_start_time: str | None = Column(String(5), nullable=True)  # type: ignore[assignment]
    work_end_time: str | None = Column(String(5), nullable=True)  # type: ignore[assignment]
    break_minutes: int | None = Column(Integer, nullable=True)  # type: ignore[assignment]
    overtime_threshold_hours: float | None = Column(Float, nullable=True)  # type: ignore[assignment]
    time_interval_minutes: int | None = Column(Integer, nullable=True)  # type: ignore[assignment]
    transportation_cost: float | None = Column(Float, nullable=True)  # type: ignore[assignment]
    updated_at: datetime = Column(  # type: ignore[assignment]
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )


class ProjectWorkSettings(Base):
    __tablename__ = "project_work_settings"

    id: int = Column(Integer, primary_key=True, index=True)  # type: ignore[assignment]
    project_id: int = Column(Integer, ForeignKey("projects.id"), nullable=False, index=True)  # type: ignore[assignment]
    name: str = Column(String(200), nullable=False, default="Default")  # type: ignore[assignment]
    work_start_time: str | None = Column(String(5), nullable=True)  # type: ignore[assignment]
    work_end_time: str | None = Column(String(5), nullable=True)  # type: ignore[assignment]
    break_minutes: int | None = Column(Integer, nullable=True)  # type: ignore[assignment]
    overtime_threshold_hours: float | None = Column(Float, nullable=True)  # type: ignore[assignment]
    transportation_cost: float | None = Column(Float, nullable=True)  # type: ignore[assignment]
    created_at: datetime = Column(  # type: ignore[assignment]
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )

    project = relationship("Project")
    assignments = relationship(
        "WorkSettingsAssignment",
        back_populates="work_settings",
        cascade="all, delete-orphan",
        order_by="WorkSettingsAssignment.id",
    )


class WorkSettingsAssignment(Base):
    __tablename__ = "work_settings_assignments"
    __table_args__ = (Index("ix_assignment_user_active", "user_id", "is_active"),)

    id: int = Column(Integer, primary_key=True, index=True)  # type: ignore[assignment]
    project_work_settings_id: int = Column(  # type: ignore[assignment]
        Integer, ForeignKey("project_work_settings.id"), nullable=False
    )
    user_id: int = Column(Integer, ForeignKey("users.id"), nullable=False)  # type: ignore[assignment]
    start_date: date = Column(Date, nullable=False)  # type: ignore[assignment]
    end_date: date | None = Column(Date, nullable=True)  # type: ignore[assignment]
    is_active: bool = Column(Boolean, default=True, server_default="true")  # type: ignore[assignment]
    created_at: datetime = Column(  # type: ignore[assignment]
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )

    work_settings = relationship("ProjectWorkSettings", back_populates="assignments")

    def covers(self, on: date) -> bool:
        if not self.is_active or self.start_date > on:
            return False
        return self.end_date is None or on <= self.end_date
