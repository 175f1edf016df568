"""
Slot availability endpoint - used by the public booking page.
"""
import logging
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from waitwise.database import get_db
from waitwise.schemas.api_responses import SlotListResponse, SlotRequest, SlotSummary
from waitwise.services.scheduling import get_available_slots

logger = logging.getLogger(__name__)
router = APIRouter(tags=["slots"])


@router.post("/api/v1/slots", response_model=SlotListResponse)
async def available_slots(
    payload: SlotRequest,
    db: AsyncSession = Depends(get_db),
):
    """Bookable start times for the requested services on one date."""
    slots = await get_available_slots(
        db,
        shop_id=payload.shop_id,
        service_ids=payload.service_ids,
        date_string=payload.date,
        barber_id=payload.barber_id,
    )
    return SlotListResponse(
        available_slots=[SlotSummary(**slot.to_dict()) for slot in slots],
    )
