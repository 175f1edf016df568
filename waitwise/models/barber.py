"""
Barber model - a staff member of exactly one shop.
break_end_time may be stale (already passed while is_on_break is still set);
readers treat a passed break end as the break having ended.
"""
import uuid
from datetime import datetime, timezone
from typing import Optional
from sqlalchemy import String, Boolean, DateTime, ForeignKey, Index
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship
from waitwise.database import Base


class Barber(Base):
    __tablename__ = "barbers"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    shop_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("shops.id"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)

    # Daily availability, toggled by the owner
    is_working_today: Mapped[bool] = mapped_column(Boolean, default=True)
    is_on_break: Mapped[bool] = mapped_column(Boolean, default=False)
    break_end_time: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )

    shop: Mapped["Shop"] = relationship(back_populates="barbers")

    __table_args__ = (
        Index("ix_barbers_shop_id", "shop_id"),
    )

    def __repr__(self) -> str:
        return f"<Barber {self.name} working={self.is_working_today} break={self.is_on_break}>"
