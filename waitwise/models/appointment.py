"""
Appointment model - a booked time window with one barber.
end_time = start_time + sum of the booked services' durations.
"""
import uuid
from datetime import datetime, timezone
from typing import Optional
from sqlalchemy import (
    Column, String, DateTime, ForeignKey, Index, CheckConstraint, Table,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship
from waitwise.database import Base

# Statuses that occupy the barber's time
ACTIVE_APPOINTMENT_STATUSES = ("booked", "checked_in", "in_progress")

appointment_services = Table(
    "appointment_services",
    Base.metadata,
    Column("appointment_id", UUID(as_uuid=True), ForeignKey("appointments.id", ondelete="CASCADE"), primary_key=True),
    Column("service_id", UUID(as_uuid=True), ForeignKey("services.id"), primary_key=True),
)


class Appointment(Base):
    __tablename__ = "appointments"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    shop_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("shops.id"), nullable=False
    )
    barber_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("barbers.id"), nullable=False
    )
    client_name: Mapped[str] = mapped_column(String(100), nullable=False)
    client_phone: Mapped[Optional[str]] = mapped_column(String(20))

    start_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), default="booked"
    )  # booked, checked_in, in_progress, completed, cancelled, no_show

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )

    services: Mapped[list["Service"]] = relationship(
        secondary=appointment_services, lazy="selectin"
    )
    barber: Mapped["Barber"] = relationship(lazy="selectin")

    __table_args__ = (
        CheckConstraint("end_time > start_time", name="ck_appointments_end_after_start"),
        Index("ix_appointments_barber_start", "barber_id", "start_time"),
        Index("ix_appointments_shop_status", "shop_id", "status"),
    )

    def __repr__(self) -> str:
        return f"<Appointment {self.start_time} status={self.status}>"
