"""
Shop model - a tenant (barbershop, salon). Opening and closing times are
"HH:MM" strings in the business timezone; a closing time at or before the
opening time means the shop closes after midnight.
"""
import uuid
from datetime import datetime, timezone
from sqlalchemy import String, DateTime
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship
from waitwise.database import Base


class Shop(Base):
    __tablename__ = "shops"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    opening_time: Mapped[str] = mapped_column(String(5), nullable=False, default="09:00")
    closing_time: Mapped[str] = mapped_column(String(5), nullable=False, default="17:00")

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )

    barbers: Mapped[list["Barber"]] = relationship(back_populates="shop")
    services: Mapped[list["Service"]] = relationship(back_populates="shop")

    def __repr__(self) -> str:
        return f"<Shop {self.name} {self.opening_time}-{self.closing_time}>"
