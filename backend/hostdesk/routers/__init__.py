"""API Routers for HostDesk."""

from hostdesk.routers.bookings import router as bookings_router
from hostdesk.routers.cleanings import router as cleanings_router
from hostdesk.routers.emails import router as emails_router

__all__ = [
    "bookings_router",
    "cleanings_router",
    "emails_router",
]
