"""
Queue API - walk-in queue actions from the booking page and the shop dashboard.

POST   /api/v1/queue                 join a barber's queue
POST   /api/v1/queue/{id}/start      client into the chair (+ next-in-line SMS)
POST   /api/v1/queue/{id}/requeue    no-show back to the front
POST   /api/v1/queue/{id}/done
POST   /api/v1/queue/{id}/no-show
DELETE /api/v1/queue/{id}
GET    /api/v1/queue/{id}/position
GET    /api/v1/barbers/{id}/wait
"""
import logging
import uuid
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from waitwise.database import get_db
from waitwise.models.queue_entry import QueueEntry
from waitwise.schemas.api_responses import (
    JoinQueueRequest,
    NotificationSummary,
    QueueEntrySummary,
    QueuePositionResponse,
    StartServiceRequest,
    StartServiceResponse,
    WaitEstimateResponse,
)
from waitwise.services import queue as queue_service
from waitwise.services.wait_estimator import estimate_wait_for_barber

logger = logging.getLogger(__name__)
router = APIRouter(tags=["queue"])


def entry_summary(entry: QueueEntry) -> QueueEntrySummary:
    return QueueEntrySummary(
        id=str(entry.id),
        barber_id=str(entry.barber_id) if entry.barber_id else None,
        client_name=entry.client_name,
        status=entry.status,
        queue_position=entry.queue_position,
        notification_sent=entry.notification_sent,
        created_at=entry.created_at,
    )


def notification_summary(outcome) -> NotificationSummary | None:
    if outcome is None:
        return None
    return NotificationSummary(status=outcome.status, reason=outcome.reason)


@router.post("/api/v1/queue", response_model=QueueEntrySummary, status_code=201)
async def join_queue(
    payload: JoinQueueRequest,
    db: AsyncSession = Depends(get_db),
):
    entry = await queue_service.join_queue(
        db,
        shop_id=payload.shop_id,
        barber_id=payload.barber_id,
        client_name=payload.client_name,
        client_phone=payload.client_phone,
        service_ids=payload.service_ids,
    )
    return entry_summary(entry)


@router.post("/api/v1/queue/{entry_id}/start", response_model=StartServiceResponse)
async def start_service(
    entry_id: uuid.UUID,
    payload: StartServiceRequest = StartServiceRequest(),
    db: AsyncSession = Depends(get_db),
):
    """Start serving a waiting client. notify_enabled is the dashboard's live-SMS toggle."""
    result = await queue_service.start_service(db, entry_id, payload.notify_enabled)
    return StartServiceResponse(
        entry=entry_summary(result.entry),
        next_entry_id=str(result.next_entry_id) if result.next_entry_id else None,
        notification=notification_summary(result.notification),
    )


@router.post("/api/v1/queue/{entry_id}/requeue", response_model=QueueEntrySummary)
async def requeue(entry_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    return entry_summary(await queue_service.requeue(db, entry_id))


@router.post("/api/v1/queue/{entry_id}/done", response_model=QueueEntrySummary)
async def mark_done(entry_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    return entry_summary(await queue_service.mark_done(db, entry_id))


@router.post("/api/v1/queue/{entry_id}/no-show", response_model=QueueEntrySummary)
async def mark_no_show(entry_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    return entry_summary(await queue_service.mark_no_show(db, entry_id))


@router.delete("/api/v1/queue/{entry_id}", status_code=204)
async def delete_entry(entry_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    await queue_service.delete_entry(db, entry_id)


@router.get("/api/v1/queue/{entry_id}/position", response_model=QueuePositionResponse)
async def queue_position(entry_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    """Where a client stands and the estimated wait ahead of them."""
    position = await queue_service.get_queue_position(db, entry_id)
    return QueuePositionResponse(**position._asdict())


@router.get("/api/v1/barbers/{barber_id}/wait", response_model=WaitEstimateResponse)
async def barber_wait(barber_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    minutes = await estimate_wait_for_barber(db, barber_id)
    return WaitEstimateResponse(barber_id=str(barber_id), estimated_wait_minutes=minutes)
