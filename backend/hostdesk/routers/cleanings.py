"""Cleanings router: status view of derived cleaning tasks."""

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from hostdesk.core.deps import get_cleaning_service
from hostdesk.models.enums import CleaningStatus
from hostdesk.schemas.cleaning import CleaningResponse, CleaningStats
from hostdesk.services.cleanings import CleaningService

router = APIRouter(prefix="/cleanings", tags=["cleanings"])


@router.get("", response_model=List[CleaningResponse])
async def list_cleanings(
    property_id: Optional[UUID] = None,
    status_filter: Optional[CleaningStatus] = Query(default=None, alias="status"),
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    limit: int = Query(default=100, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    service: CleaningService = Depends(get_cleaning_service),
):
    """List cleaning tasks ordered by cleaning date."""
    cleanings = await service.list_cleanings(
        property_id=property_id,
        status=status_filter,
        date_from=date_from,
        date_to=date_to,
        limit=limit,
        offset=offset,
    )
    return [CleaningResponse.model_validate(c) for c in cleanings]


@router.get("/stats", response_model=CleaningStats)
async def cleaning_stats(
    property_id: Optional[UUID] = None,
    service: CleaningService = Depends(get_cleaning_service),
):
    return await service.stats(property_id)
