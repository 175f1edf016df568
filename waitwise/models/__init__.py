"""
Database models - import all models here so Alembic can discover them.
"""
from waitwise.models.shop import Shop
from waitwise.models.barber import Barber
from waitwise.models.service import Service
from waitwise.models.appointment import Appointment, appointment_services
from waitwise.models.queue_entry import QueueEntry, queue_entry_services
from waitwise.models.billable_event import BillableEvent

__all__ = [
    "Shop",
    "Barber",
    "Service",
    "Appointment",
    "appointment_services",
    "QueueEntry",
    "queue_entry_services",
    "BillableEvent",
]
