"""
Correction endpoints: company administrators fix a recorded day or
register transportation costs for many (user, date) pairs at once.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from timekeeper.api.v1.deps import (get_correction_service, get_scope,
                                    require_settings_admin)
from timekeeper.core.scope import Scope
from timekeeper.models.user import User
from timekeeper.schemas.attendance import TimeEntryRead
from timekeeper.schemas.corrections import (BulkTransportationRequest,
                                            EntryCorrectionRequest,
                                            TransportationResultRead)
from timekeeper.services.corrections import (CorrectionService,
                                             TransportationRow)

router = APIRouter(prefix="/attendance", tags=["corrections"])


@router.post("/update/{entry_id}", response_model=TimeEntryRead)
async def correct_entry(
    entry_id: int,
    body: EntryCorrectionRequest,
    admin: User = Depends(require_settings_admin),
    scope: Scope = Depends(get_scope),
    service: CorrectionService = Depends(get_correction_service),
) -> TimeEntryRead:
    """Rewrite the punches or leave data of an entry; it goes back to PENDING."""
    entry = await service.correct_entry(scope, admin.id, entry_id, body.model_dump(exclude_unset=True))
    return TimeEntryRead.model_validate(entry)


@router.post("/bulk-transportation", response_model=TransportationResultRead)
async def bulk_transportation(
    body: BulkTransportationRequest,
    _admin: User = Depends(require_settings_admin),
    scope: Scope = Depends(get_scope),
    service: CorrectionService = Depends(get_correction_service),
) -> TransportationResultRead:
    rows = [TransportationRow(user_id=r.user_id, date=r.date, amount=r.amount) for r in body.rows]
    result = await service.bulk_transportation(scope, rows)
    return TransportationResultRead.model_validate(result)
