from fastapi import APIRouter
from clinic_agenda.modules.availability.router import router as availability_router
from clinic_agenda.modules.booking.router import router as booking_router
from clinic_agenda.modules.appointments.router import router as appointments_router
from clinic_agenda.modules.operating_hours.router import router as operating_hours_router

api_router = APIRouter()
api_router.include_router(availability_router, tags=["availability"])
api_router.include_router(booking_router, tags=["booking"])
api_router.include_router(appointments_router, tags=["appointments"])
api_router.include_router(operating_hours_router, tags=["operating-hours"])

@api_router.get("/health", tags=["health"])
async def health():
    return {"status": "ok"}
