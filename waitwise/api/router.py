"""
API router - aggregates all route modules.
"""
from fastapi import APIRouter
from waitwise.api.slots import router as slots_router
from waitwise.api.queue import router as queue_router
from waitwise.api.appointments import router as appointments_router
from waitwise.api.staff import router as staff_router
from waitwise.api.health import router as health_router

api_router = APIRouter()
api_router.include_router(slots_router)
api_router.include_router(queue_router)
api_router.include_router(appointments_router)
api_router.include_router(staff_router)
api_router.include_router(health_router)
