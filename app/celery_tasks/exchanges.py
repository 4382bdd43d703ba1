from app.celery_app import celery_app
from app.database import SessionLocal
from app.services.coordinator import ExchangeCoordinator
from datetime import datetime, timedelta
from dotenv import load_dotenv
import logging
import os

load_dotenv()

logger = logging.getLogger(__name__)

# 0 disables expiry; pending requests then stay open until answered or withdrawn
EXCHANGE_PENDING_TTL_HOURS = float(os.getenv("EXCHANGE_PENDING_TTL_HOURS", "72"))

def expiry_cutoff(now: datetime, ttl_hours: float) -> datetime:
    return now - timedelta(hours=ttl_hours)

@celery_app.task(name="app.celery_tasks.exchanges.expire_stale_exchanges")
def expire_stale_exchanges(ttl_hours: float | None = None):
    """Decline exchanges that have been pending longer than the TTL and release their slots"""
    ttl = EXCHANGE_PENDING_TTL_HOURS if ttl_hours is None else ttl_hours
    if ttl <= 0:
        logger.info("Exchange expiry disabled (EXCHANGE_PENDING_TTL_HOURS=0)")
        return {"status": "disabled", "expired": []}

    cutoff = expiry_cutoff(datetime.utcnow(), ttl)
    coordinator = ExchangeCoordinator(SessionLocal)
    expired = coordinator.expire_stale(cutoff)

    if not expired:
        logger.info(f"No pending exchanges older than {ttl}h")
    return {"status": "success", "cutoff": cutoff.isoformat(), "expired": expired}
