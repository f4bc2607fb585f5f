from fastapi import APIRouter

# Public: availability and booking window
from courtbook.api.v1.public.availability import router as availability_router

# Public: reservations and the user's bookings
from courtbook.api.v1.public.bookings import org_bookings_router, router as bookings_router

# Public: payment gateway callbacks and scheduler hooks
from courtbook.api.v1.public.payments import router as payments_router
from courtbook.api.v1.public.cron import router as cron_router

# Admin
from courtbook.api.v1.admin.bookings import router as admin_bookings_router
from courtbook.api.v1.admin.court_blocks import router as court_blocks_router
from courtbook.api.v1.admin.recurring import router as recurring_router

api_router = APIRouter()

# --- Public: availability ---
api_router.include_router(availability_router)

# --- Public: bookings ---
api_router.include_router(org_bookings_router)
api_router.include_router(bookings_router)

# --- Public: integrations ---
api_router.include_router(payments_router)
api_router.include_router(cron_router)

# --- Admin ---
api_router.include_router(admin_bookings_router)
api_router.include_router(court_blocks_router)
api_router.include_router(recurring_router)
