from datetime import datetime, timedelta
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..database import get_db
from ..models import User
from ..schemas import IntegrityReport, ExpiryReport
from ..auth import require_admin
from ..services.coordinator import ExchangeCoordinator
from ..services.integrity import audit_integrity
from .exchanges import get_coordinator

router = APIRouter(tags=["admin"])

@router.get("/integrity", response_model=IntegrityReport)
def check_integrity(current_user: User = Depends(require_admin), db: Session = Depends(get_db)):
    """Report slots and requests that break the lock invariant (admin only)"""
    violations = audit_integrity(db)
    return IntegrityReport(
        consistent=not violations,
        violations=violations,
    )

@router.post("/exchanges/expire", response_model=ExpiryReport)
def expire_pending_exchanges(
    older_than_hours: float = Query(..., ge=0),
    current_user: User = Depends(require_admin),
    coordinator: ExchangeCoordinator = Depends(get_coordinator),
):
    """Decline pending exchanges older than the given age right now (admin only)"""
    cutoff = datetime.utcnow() - timedelta(hours=older_than_hours)
    expired = coordinator.expire_stale(cutoff)
    return ExpiryReport(expired_request_ids=expired, cutoff=cutoff)
