"""
Admin Routes — Staff reconciliation views over transactions and callbacks.
"""
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from sqlalchemy import func

from fleetpay.database import get_db
from fleetpay.models.payment import PaymentTransaction, TransactionStatus
from fleetpay.schemas.schemas import NotificationOut, TransactionListResponse, TransactionOut
from fleetpay.services.audit_service import AuditService

router = APIRouter(prefix="/api/admin/payments", tags=["Admin"])


@router.get("/summary")
def get_summary(db: Session = Depends(get_db)):
    """Transaction counts per status and the settled total in paise."""
    rows = db.query(
        PaymentTransaction.status, func.count(PaymentTransaction.id)
    ).group_by(PaymentTransaction.status).all()
    by_status = {s: c for s, c in rows}

    settled = db.query(func.coalesce(func.sum(PaymentTransaction.amount), 0)).filter(
        PaymentTransaction.status == TransactionStatus.SUCCESS.value
    ).scalar() or 0

    return {
        "total": sum(by_status.values()),
        "byStatus": by_status,
        "settledAmount": int(settled),
    }


@router.get("/transactions", response_model=TransactionListResponse)
def list_transactions(
    status: Optional[str] = None,
    rental_id: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
    db: Session = Depends(get_db),
):
    """List payment transactions, newest first, with optional filters."""
    query = db.query(PaymentTransaction).order_by(
        PaymentTransaction.created_at.desc(), PaymentTransaction.id.desc()
    )
    if status:
        query = query.filter(PaymentTransaction.status == status.upper())
    if rental_id:
        query = query.filter(PaymentTransaction.rental_id == rental_id)

    total = query.count()
    items = query.offset(offset).limit(min(limit, 500)).all()

    return TransactionListResponse(
        total=total,
        items=[TransactionOut(**t.to_dict()) for t in items],
    )


@router.get("/transactions/{merchant_tran_id}/notifications", response_model=list[NotificationOut])
def get_notification_trail(merchant_tran_id: str, db: Session = Depends(get_db)):
    """Every callback delivery recorded for a merchant transaction id."""
    trail = AuditService.get_trail(db, merchant_tran_id)
    if not trail:
        raise HTTPException(status_code=404, detail="No callbacks recorded for this transaction")

    return [NotificationOut(payload=n.payload, **n.to_dict()) for n in trail]
