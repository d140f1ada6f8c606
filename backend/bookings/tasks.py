"""Celery tasks for booking-related background processing."""

from celery import shared_task
import logging

logger = logging.getLogger(__name__)


@shared_task
def auto_cancel_disconnected_booking_task(booking_id: int, token: str):
    """
    Cancel a booking whose passenger disconnected and never came back.

    Scheduled with a countdown when the passenger's connection drops. If the
    passenger reconnected, or a newer timer replaced this one, the token no
    longer matches and nothing happens.
    """
    from services.booking_management.disconnect import expire_disconnected_booking

    try:
        return expire_disconnected_booking(booking_id, token)
    except Exception:
        logger.exception("Error auto-canceling booking %s after disconnect", booking_id)
        return False
