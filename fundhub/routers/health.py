"""
Health check endpoint.
"""
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from datetime import datetime, timezone
import logging
import os

from fundhub.config import settings
from fundhub.database import get_db
from fundhub.models.schemas import HealthCheckResponse
from fundhub.services.email_sender import EmailSender, get_email_sender

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/", response_model=HealthCheckResponse)
async def health_check(
    db: AsyncSession = Depends(get_db),
    sender: EmailSender = Depends(get_email_sender),
):
    """
    Health check endpoint to verify system status.

    Returns:
        HealthCheckResponse with status of database, storage and email
    """
    # Check database connection
    db_status = "ok"
    try:
        await db.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.error(f"Database health check failed: {e}")
        db_status = "error"

    # Storage directory must exist and be writable
    storage_dir = os.path.abspath(settings.STORAGE_DIR)
    storage_status = "ok" if os.path.isdir(storage_dir) and os.access(storage_dir, os.W_OK) else "error"
    if storage_status == "error":
        logger.error("Storage directory not writable: %s", storage_dir)

    # Email is optional; a missing key only disables notifications
    email_status = "ok" if sender.enabled else "disabled"

    overall_status = "healthy" if db_status == "ok" and storage_status == "ok" else "degraded"

    return HealthCheckResponse(
        status=overall_status,
        database=db_status,
        storage=storage_status,
        email=email_status,
        timestamp=datetime.now(timezone.utc),
    )
