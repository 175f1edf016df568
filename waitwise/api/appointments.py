"""
Appointment arrival and cancellation from the shop dashboard.
"""
import logging
import uuid
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from waitwise.api.queue import entry_summary, notification_summary
from waitwise.database import get_db
from waitwise.models.appointment import Appointment
from waitwise.schemas.api_responses import (
    AppointmentSummary,
    CheckInRequest,
    CheckInResponse,
)
from waitwise.services import queue as queue_service

logger = logging.getLogger(__name__)
router = APIRouter(tags=["appointments"])


def appointment_summary(appointment: Appointment) -> AppointmentSummary:
    return AppointmentSummary(
        id=str(appointment.id),
        barber_id=str(appointment.barber_id),
        client_name=appointment.client_name,
        status=appointment.status,
        start_time=appointment.start_time,
        end_time=appointment.end_time,
    )


@router.post("/api/v1/appointments/{appointment_id}/check-in", response_model=CheckInResponse)
async def check_in(
    appointment_id: uuid.UUID,
    payload: CheckInRequest = CheckInRequest(),
    db: AsyncSession = Depends(get_db),
):
    """Client has arrived: queue them, and seat them if their barber is free."""
    result = await queue_service.check_in_appointment(db, appointment_id, payload.notify_enabled)
    return CheckInResponse(
        appointment=appointment_summary(result.appointment),
        entry=entry_summary(result.entry),
        started=result.started,
        notification=notification_summary(result.notification),
    )


@router.post("/api/v1/appointments/{appointment_id}/cancel", response_model=AppointmentSummary)
async def cancel(appointment_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    return appointment_summary(await queue_service.cancel_appointment(db, appointment_id))
