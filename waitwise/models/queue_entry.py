"""
QueueEntry model - a walk-in or checked-in client waiting for one barber.

queue_position only means something while status == "waiting"; the front of
line is the lowest position. Two partial unique indexes back the queue
rules at the storage level:
- no two waiting entries of one barber share a position
- at most one in_progress entry per barber
"""
import uuid
from datetime import datetime, timezone
from typing import Optional
from sqlalchemy import (
    Column, String, Integer, DateTime, ForeignKey, Index, Table, text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship
from waitwise.database import Base

queue_entry_services = Table(
    "queue_entry_services",
    Base.metadata,
    Column("queue_entry_id", UUID(as_uuid=True), ForeignKey("queue_entries.id", ondelete="CASCADE"), primary_key=True),
    Column("service_id", UUID(as_uuid=True), ForeignKey("services.id"), primary_key=True),
)


class QueueEntry(Base):
    __tablename__ = "queue_entries"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    shop_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("shops.id"), nullable=False
    )
    barber_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("barbers.id")
    )
    appointment_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("appointments.id")
    )

    client_name: Mapped[str] = mapped_column(String(100), nullable=False)
    client_phone: Mapped[Optional[str]] = mapped_column(String(20))

    status: Mapped[str] = mapped_column(
        String(20), default="waiting"
    )  # waiting, in_progress, done, no_show
    queue_position: Mapped[int] = mapped_column(Integer, nullable=False)

    # Set once the "you are next" SMS has gone out
    notification_sent_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc)
    )

    services: Mapped[list["Service"]] = relationship(
        secondary=queue_entry_services, lazy="selectin"
    )
    barber: Mapped[Optional["Barber"]] = relationship(lazy="selectin")

    __table_args__ = (
        Index("ix_queue_entries_shop_status", "shop_id", "status"),
        Index(
            "uq_queue_entries_waiting_position",
            "barber_id", "queue_position",
            unique=True,
            postgresql_where=text("status = 'waiting'"),
            sqlite_where=text("status = 'waiting'"),
        ),
        Index(
            "uq_queue_entries_one_in_progress",
            "barber_id",
            unique=True,
            postgresql_where=text("status = 'in_progress'"),
            sqlite_where=text("status = 'in_progress'"),
        ),
    )

    @property
    def notification_sent(self) -> bool:
        return self.notification_sent_at is not None

    def __repr__(self) -> str:
        return f"<QueueEntry {self.client_name} pos={self.queue_position} status={self.status}>"
