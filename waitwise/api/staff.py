"""
Barber availability toggles from the shop dashboard.
"""
import uuid
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from waitwise.database import get_db
from waitwise.schemas.api_responses import BarberSummary, BreakRequest, WorkingTodayRequest
from waitwise.services import staff as staff_service

router = APIRouter(tags=["staff"])


def barber_summary(barber) -> BarberSummary:
    return BarberSummary(
        id=str(barber.id),
        name=barber.name,
        is_working_today=barber.is_working_today,
        is_on_break=barber.is_on_break,
        break_end_time=barber.break_end_time,
    )


@router.put("/api/v1/barbers/{barber_id}/working", response_model=BarberSummary)
async def set_working(
    barber_id: uuid.UUID,
    payload: WorkingTodayRequest,
    db: AsyncSession = Depends(get_db),
):
    return barber_summary(await staff_service.set_working_today(db, barber_id, payload.working))


@router.post("/api/v1/barbers/{barber_id}/break", response_model=BarberSummary)
async def start_break(
    barber_id: uuid.UUID,
    payload: BreakRequest,
    db: AsyncSession = Depends(get_db),
):
    return barber_summary(await staff_service.start_break(db, barber_id, payload.minutes))


@router.delete("/api/v1/barbers/{barber_id}/break", response_model=BarberSummary)
async def end_break(barber_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    return barber_summary(await staff_service.end_break(db, barber_id))
