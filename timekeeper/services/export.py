"""
Export snapshots and the renderer seam.

A snapshot is an immutable copy of the approved period; renderers only
ever see that copy. Spreadsheet / PDF renderers live outside this
service; CSV ships here.
"""

from __future__ import annotations

import csv
import io
import re
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional, Protocol

from timekeeper.core.timeutils import ensure_utc, format_minutes, minute_of_day, to_local
from timekeeper.models.time_entry import TimeEntry


@dataclass(frozen=True)
class WorkReportLine:
    project_id: int
    project_name: str
    description: str
    hours: Optional[float]


@dataclass(frozen=True)
class SnapshotEntry:
    entry_id: int
    user_id: int
    user_name: str
    date: date
    clock_in: Optional[datetime]
    clock_out: Optional[datetime]
    break_minutes: int
    worked_hours: float
    status: str
    note: Optional[str]
    work_reports: tuple[WorkReportLine, ...]


@dataclass(frozen=True)
class ExportSnapshot:
    kind: str  # "member" | "project"
    entity_id: int
    entity_name: str
    year: int
    month: int
    period_start: date
    period_end: date
    entries: tuple[SnapshotEntry, ...]
    summary: tuple[tuple[str, object], ...]

    @property
    def period_label(self) -> str:
        return f"{self.year:04d}-{self.month:02d}"


@dataclass(frozen=True)
class RenderedReport:
    content: bytes
    media_type: str
    filename: str


class ReportRenderer(Protocol):
    def render(self, snapshot: ExportSnapshot) -> RenderedReport:
        raise NotImplementedError


def freeze_entries(entries: Sequence[TimeEntry]) -> tuple[SnapshotEntry, ...]:
    """Copy ORM rows into plain values, ordered by date then user name."""
    frozen = [
        SnapshotEntry(
            entry_id=e.id,
            user_id=e.user_id,
            user_name=e.user.display_name,
            date=e.date,
            clock_in=ensure_utc(e.clock_in) if e.clock_in else None,
            clock_out=ensure_utc(e.clock_out) if e.clock_out else None,
            break_minutes=e.break_minutes or 0,
            worked_hours=e.worked_hours or 0.0,
            status=e.status,
            note=e.note,
            work_reports=tuple(
                WorkReportLine(
                    project_id=r.project_id,
                    project_name=r.project.name,
                    description=r.description,
                    hours=r.hours,
                )
                for r in e.work_reports
            ),
        )
        for e in entries
    ]
    return tuple(sorted(frozen, key=lambda s: (s.date, s.user_name, s.entry_id)))


def export_filename(snapshot: ExportSnapshot, extension: str) -> str:
    slug = re.sub(r"[^A-Za-z0-9]+", "_", snapshot.entity_name).strip("_") or snapshot.kind
    return f"attendance_{slug}_{snapshot.period_label}.{extension}"


class CsvReportRenderer:
    def __init__(self, tz=None):
        self._tz = tz

    def _clock(self, value: Optional[datetime]) -> str:
        if value is None:
            return ""
        return format_minutes(minute_of_day(to_local(value, self._tz)))

    def render(self, snapshot: ExportSnapshot) -> RenderedReport:
        buffer = io.StringIO()
        writer = csv.writer(buffer)
        writer.writerow(
            ["date", "user_id", "name", "clock_in", "clock_out", "break_minutes", "work_hours", "status", "projects", "note"]
        )
        for row in snapshot.entries:
            writer.writerow(
                [
                    row.date.isoformat(),
                    row.user_id,
                    row.user_name,
                    self._clock(row.clock_in),
                    self._clock(row.clock_out),
                    row.break_minutes,
                    f"{row.worked_hours:.2f}",
                    row.status,
                    "; ".join(r.project_name for r in row.work_reports),
                    row.note or "",
                ]
            )
        writer.writerow([])
        for key, value in snapshot.summary:
            writer.writerow([key, value])

        return RenderedReport(
            content=buffer.getvalue().encode("utf-8"),
            media_type="text/csv",
            filename=export_filename(snapshot, "csv"),
        )
