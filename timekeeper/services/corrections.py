"""
Administrative corrections: editing a recorded day after the fact and
registering transportation costs in bulk.

A correction rewrites the punches or leave data of an entry, recomputes
its worked hours and sends it back for approval. Transportation updates
only touch the cost column, so a decision already made on the entry
stands.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import date
from typing import Any, Optional

from timekeeper.core.config import settings
from timekeeper.core.enums import LeaveType
from timekeeper.core.exceptions import (DomainError, NotFoundError,
                                        PermissionDeniedError, ValidationError)
from timekeeper.core.scope import Scope, UserScope, ensure_allowed
from timekeeper.core.timeutils import ensure_utc, to_local
from timekeeper.models.time_entry import TimeEntry
from timekeeper.models.user import User
from timekeeper.repositories.directory import UserDirectory
from timekeeper.repositories.time_entries import TimeEntryRepository
from timekeeper.services.clock import reset_status, worked_hours
from timekeeper.services.lateness import local_zone

logger = logging.getLogger(__name__)

CORRECTABLE_FIELDS = frozenset(
    {"clock_in", "clock_out", "break_minutes", "note", "leave_type", "transportation_cost"}
)


@dataclass(frozen=True)
class TransportationRow:
    user_id: int
    date: date
    amount: float


@dataclass(frozen=True)
class TransportationFailure:
    user_id: int
    date: date
    kind: str
    message: str


@dataclass(frozen=True)
class TransportationResult:
    updated_count: int
    total_requested: int
    entry_ids: tuple[int, ...] = ()
    failures: tuple[TransportationFailure, ...] = ()


def _require_admin_scope(scope: Scope) -> None:
    if isinstance(scope, UserScope):
        raise PermissionDeniedError("Company administrator role required")


def _leave_type(value: Any) -> Optional[str]:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    try:
        return LeaveType(str(value).strip().upper()).value
    except ValueError:
        raise ValidationError(f"Unknown leave type '{value}'") from None


class CorrectionService:
    def __init__(self, entries: TimeEntryRepository, users: UserDirectory):
        self._entries = entries
        self._users = users

    async def correct_entry(
        self, scope: Scope, actor_id: int, entry_id: int, changes: Mapping[str, Any]
    ) -> TimeEntry:
        """Apply ``changes`` to an entry, recompute its hours and reset it to PENDING."""
        _require_admin_scope(scope)
        unknown = set(changes) - CORRECTABLE_FIELDS
        if unknown:
            raise ValidationError(f"Cannot correct field(s): {', '.join(sorted(unknown))}")
        if not changes:
            raise ValidationError("No changes given")

        entry = await self._entries.get(entry_id, lock=True)
        if entry is None:
            raise NotFoundError(f"Time entry {entry_id} not found")
        ensure_allowed(scope, user_id=entry.user_id, company_id=entry.user.company_id)

        clock_in = ensure_utc(changes["clock_in"]) if "clock_in" in changes else entry.clock_in
        clock_out = ensure_utc(changes["clock_out"]) if "clock_out" in changes else entry.clock_out
        if clock_out is not None and clock_in is None:
            raise ValidationError("A clock-out needs a clock-in")
        if clock_in is not None and clock_out is not None and ensure_utc(clock_out) <= ensure_utc(clock_in):
            raise ValidationError("Clock-out must be after clock-in")
        if "clock_in" in changes and clock_in is not None:
            if to_local(clock_in, local_zone()).date() != entry.date:
                raise ValidationError(f"Clock-in must fall on {entry.date.isoformat()}")

        break_minutes = changes.get("break_minutes", entry.break_minutes)
        if break_minutes is None or break_minutes < 0:
            raise ValidationError("Break minutes must not be negative")
        cost = changes.get("transportation_cost", entry.transportation_cost)
        if cost is not None and cost < 0:
            raise ValidationError("Transportation cost must not be negative")
        leave_type = _leave_type(changes["leave_type"]) if "leave_type" in changes else entry.leave_type

        entry.transportation_cost = cost
        entry.leave_type = leave_type
        if "note" in changes:
            entry.note = changes["note"]
        entry.clock_in = clock_in
        entry.clock_out = clock_out
        entry.break_minutes = int(break_minutes)
        entry.worked_hours = worked_hours(clock_in, clock_out, entry.break_minutes) if clock_out else 0.0
        reset_status(entry)

        entry = await self._entries.save(entry)
        await self._entries.commit()
        logger.info(
            "Entry %s corrected by user %s (%s); back to PENDING",
            entry.id,
            actor_id,
            ", ".join(sorted(changes)),
        )
        return entry

    async def bulk_transportation(self, scope: Scope, rows: Sequence[TransportationRow]) -> TransportationResult:
        """Set the transportation cost of each (user, date); collect per-row failures."""
        _require_admin_scope(scope)
        if not rows:
            raise ValidationError("No transportation rows given")

        users: dict[int, Optional[User]] = {}
        updated: list[int] = []
        failures: list[TransportationFailure] = []
        for row in rows:
            try:
                if row.amount < 0:
                    raise ValidationError("Transportation cost must not be negative")
                if not settings.MIN_YEAR <= row.date.year <= settings.MAX_YEAR:
                    raise ValidationError(f"Date {row.date.isoformat()} is outside the supported calendar range")
                if row.user_id not in users:
                    users[row.user_id] = await self._users.get_user(row.user_id)
                user = users[row.user_id]
                if user is None:
                    raise NotFoundError(f"User {row.user_id} not found")
                ensure_allowed(scope, user_id=user.id, company_id=user.company_id)
                entry = await self._entries.get_for_user_and_date(row.user_id, row.date, lock=True)
                if entry is None:
                    raise NotFoundError(f"No time entry for user {row.user_id} on {row.date.isoformat()}")
            except DomainError as exc:
                failures.append(
                    TransportationFailure(user_id=row.user_id, date=row.date, kind=exc.kind, message=exc.message)
                )
                continue
            entry.transportation_cost = float(row.amount)
            await self._entries.save(entry)
            updated.append(entry.id)

        await self._entries.commit()
        logger.info("Bulk transportation: %d/%d rows applied, %d failed", len(updated), len(rows), len(failures))
        return TransportationResult(
            updated_count=len(updated),
            total_requested=len(rows),
            entry_ids=tuple(updated),
            failures=tuple(failures),
        )
