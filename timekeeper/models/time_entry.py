"""
TimeEntry, BreakRecord & WorkReport models: the attendance core.

One TimeEntry per (user, calendar date). Status encodes the lifecycle;
entries are never hard-deleted by the normal flow.
"""

from __future__ import annotations

from datetime import date, datetime, timezone

from sqlalchemy import (Column, Date, DateTime, Float, ForeignKey, Index,
                        Integer, String, UniqueConstraint)
from sqlalchemy.orm import relationship

from timekeeper.db.base import Base


class TimeEntry(Base):
    __tablename__ = "time_entries"
    __table_args__ = (
        UniqueConstraint("user_id", "date", name="uq_time_entry_user_date"),
        Index("ix_time_entry_status_date", "status", "date"),
    )

    id: int = Column(Integer, primary_key=True, index=True)  # type: ignore[assignment]
    user_id: int = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)  # type: ignore[assignment]
    date: date = Column(Date, nullable=False, index=True)  # type: ignore[assignment]
    clock_in: datetime | None = Column(DateTime(timezone=True), nullable=True)  # type: ignore[assignment]
    clock_out: datetime | None = Column(DateTime(timezone=True), nullable=True)  # type: ignore[assignment]
    clock_in_location: str | None = Column(String(200), nullable=True)  # type: ignore[assignment]
    clock_out_location: str | None = Column(String(200), nullable=True)  # type: ignore[assignment]
    break_minutes: int = Column(Integer, nullable=False, default=0)  # type: ignore[assignment]
    worked_hours: float = Column(Float, nullable=False, default=0.0)  # type: ignore[assignment]
    status: str = Column(  # type: ignore[assignment]
        String(20),
        nullable=False,
        default="PENDING",
        server_default="PENDING",
    )  # PENDING | APPROVED | REJECTED
    note: str | None = Column(String(1000), nullable=True)  # type: ignore[assignment]
    leave_type: str | None = Column(String(30), nullable=True)  # type: ignore[assignment]
    transportation_cost: float | None = Column(Float, nullable=True)  # type: ignore[assignment]
    approved_by: int | None = Column(Integer, ForeignKey("users.id"), nullable=True)  # type: ignore[assignment]
    approved_at: datetime | None = Column(DateTime(timezone=True), nullable=True)  # type: ignore[assignment]
    rejected_by: int | None = Column(Integer, ForeignKey("users.id"), nullable=True)  # type: ignore[assignment]
    rejected_at: datetime | None = Column(DateTime(timezone=True), nullable=True)  # type: ignore[assignment]
    rejection_reason: str | None = Column(String(500), nullable=True)  # type: ignore[assignment]
    created_at: datetime = Column(  # type: ignore[assignment]
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at: datetime = Column(  # type: ignore[assignment]
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    user = relationship("User", foreign_keys=[user_id], lazy="joined", innerjoin=True)
    breaks = relationship(
        "BreakRecord",
        back_populates="time_entry",
        cascade="all, delete-orphan",
        order_by="BreakRecord.start_time",
        lazy="selectin",
    )
    work_reports = relationship(
        "WorkReport",
        back_populates="time_entry",
        cascade="all, delete-orphan",
        order_by="WorkReport.id",
        lazy="selectin",
    )

    @property
    def user_name(self) -> str:
        return self.user.display_name


class BreakRecord(Base):
    __tablename__ = "break_records"
    __table_args__ = (Index("ix_break_entry_open", "time_entry_id", "end_time"),)

    id: int = Column(Integer, primary_key=True, index=True)  # type: ignore[assignment]
    time_entry_id: int = Column(Integer, ForeignKey("time_entries.id"), nullable=False)  # type: ignore[assignment]
    start_time: datetime = Column(DateTime(timezone=True), nullable=False)  # type: ignore[assignment]
    end_time: datetime | None = Column(DateTime(timezone=True), nullable=True)  # type: ignore[assignment]
    duration_minutes: int | None = Column(Integer, nullable=True)  # type: ignore[assignment]
    reason: str = Column(String(200), nullable=False, default="Break")  # type: ignore[assignment]

    time_entry = relationship("TimeEntry", back_populates="breaks")


class WorkReport(Base):
    __tablename__ = "work_reports"

    id: int = Column(Integer, primary_key=True, index=True)  # type: ignore[assignment]
    time_entry_id: int = Column(Integer, ForeignKey("time_entries.id"), nullable=False, index=True)  # type: ignore[assignment]
    project_id: int = Column(Integer, ForeignKey("projects.id"), nullable=False, index=True)  # type: ignore[assignment]
    description: str = Column(String(2000), nullable=False, default="")  # type: ignore[assignment]
    hours: float | None = Column(Float, nullable=True)  # type: ignore[assignment]
    created_at: datetime = Column(  # type: ignore[assignment]
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )

    time_entry = relationship("TimeEntry", back_populates="work_reports")
    project = relationship("Project", lazy="joined", innerjoin=True)

    @property
    def project_name(self) -> str | None:
        return self.project.name if self.project is not None else None
