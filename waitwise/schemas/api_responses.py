"""
API request and response schemas.

Slot request fields are all optional; get_available_slots validates them
and a missing one is answered with {"error": ...}.
"""
import uuid
from datetime import datetime
from typing import Optional
from pydantic import AliasChoices, BaseModel, Field


class SlotRequest(BaseModel):
    shop_id: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("shop_id", "shopId"),
    )
    service_ids: Optional[list[str]] = Field(
        default=None, validation_alias=AliasChoices("service_ids", "serviceIds", "services_ids"),
    )
    date: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("date", "date_string"),
    )
    barber_id: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("barber_id", "barberId"),
    )


class SlotSummary(BaseModel):
    barber_id: str
    barber_name: str
    time: str


class SlotListResponse(BaseModel):
    available_slots: list[SlotSummary]


class JoinQueueRequest(BaseModel):
    shop_id: uuid.UUID
    barber_id: uuid.UUID
    client_name: str
    client_phone: Optional[str] = None
    service_ids: list[uuid.UUID] = []


class StartServiceRequest(BaseModel):
    notify_enabled: bool = True


class NotificationSummary(BaseModel):
    status: str
    reason: Optional[str] = None


class QueueEntrySummary(BaseModel):
    id: str
    barber_id: Optional[str] = None
    client_name: str
    status: str
    queue_position: int
    notification_sent: bool = False
    created_at: Optional[datetime] = None


class StartServiceResponse(BaseModel):
    entry: QueueEntrySummary
    next_entry_id: Optional[str] = None
    notification: Optional[NotificationSummary] = None


class QueuePositionResponse(BaseModel):
    status: str
    position: int
    barber_name: Optional[str] = None
    estimated_wait_minutes: int


class WaitEstimateResponse(BaseModel):
    barber_id: str
    estimated_wait_minutes: int


class AppointmentSummary(BaseModel):
    id: str
    barber_id: str
    client_name: str
    status: str
    start_time: datetime
    end_time: datetime


class CheckInRequest(BaseModel):
    notify_enabled: bool = True


class CheckInResponse(BaseModel):
    appointment: AppointmentSummary
    entry: QueueEntrySummary
    started: bool
    notification: Optional[NotificationSummary] = None


class WorkingTodayRequest(BaseModel):
    working: bool


class BreakRequest(BaseModel):
    minutes: int


class BarberSummary(BaseModel):
    id: str
    name: str
    is_working_today: bool
    is_on_break: bool
    break_end_time: Optional[datetime] = None
