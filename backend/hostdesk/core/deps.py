"""FastAPI dependencies: engine services and the cron trigger guard."""

import hmac
from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from hostdesk.core.database import get_db
from hostdesk.services.bookings import BookingService
from hostdesk.services.cleanings import CleaningService
from hostdesk.services.email_scheduler import EmailService
from hostdesk.services.engine import BookingEngine

cron_bearer = HTTPBearer(auto_error=False)


def get_engine(request: Request) -> BookingEngine:
    """The process-wide engine built at startup."""
    return request.app.state.engine


def get_booking_service(
    db: AsyncSession = Depends(get_db),
    engine: BookingEngine = Depends(get_engine),
) -> BookingService:
    return engine.bookings(db)


def get_cleaning_service(
    db: AsyncSession = Depends(get_db),
    engine: BookingEngine = Depends(get_engine),
) -> CleaningService:
    return engine.cleanings(db)


def get_email_service(
    db: AsyncSession = Depends(get_db),
    engine: BookingEngine = Depends(get_engine),
) -> EmailService:
    return engine.emails(db)


async def verify_cron_secret(
    engine: BookingEngine = Depends(get_engine),
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(cron_bearer),
) -> None:
    """Require ``Authorization: Bearer <CRON_SECRET>`` when a secret is configured."""
    secret = engine.settings.cron_secret
    if not secret:
        return

    if credentials is None or not hmac.compare_digest(credentials.credentials, secret):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
            headers={"WWW-Authenticate": "Bearer"},
        )
