"""
Payment Routes — UPI charge lifecycle and gateway webhook.
Handles: QR creation, status polling, verification, refunds, callbacks and
the verification gate used by rental / battery-swap flows.
"""
import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from fleetpay.config import Settings, get_settings
from fleetpay.database import get_db
from fleetpay.dependencies import (
    get_callback_service, get_crypto_engine, get_transaction_service, get_verification_gate,
)
from fleetpay.schemas.schemas import (
    CallbackAck, GateCheckRequest, GateCheckResponse, GatewayStatusResponse, QRCreateRequest,
    QRCreateResponse, RefundRequest, StatusRequest, TransactionOut, VerifyRequest, VerifyResponse,
)
from fleetpay.services.callback_service import CallbackService
from fleetpay.services.crypto_engine import CryptoEngine
from fleetpay.services.transaction_service import TransactionService
from fleetpay.services.verification_gate import VerificationGate
from fleetpay.utils.money import to_paise

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/payments", tags=["Payments"])


def _paise_or_400(amount) -> int:
    try:
        return to_paise(amount)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.get("/gateway/status", response_model=GatewayStatusResponse)
def gateway_status(
    settings: Settings = Depends(get_settings),
    engine: CryptoEngine = Depends(get_crypto_engine),
):
    """Configuration diagnostics; never returns secrets."""
    store = engine.key_store
    public_path = settings.UPI_PUBLIC_KEY_PATH.strip()
    private_path = settings.UPI_CLIENT_PRIVATE_KEY_PATH.strip()
    resolved_public = store.resolve_path(public_path) if public_path else None
    resolved_private = store.resolve_path(private_path) if private_path else None

    return GatewayStatusResponse(
        configured=settings.endpoint_configured(settings.UPI_QR_ENDPOINT),
        encryptionMode=settings.encryption_mode,
        hasPublicKey=store.has_public_key(),
        hasPrivateKey=store.has_private_key(),
        publicKeyPath=str(resolved_public) if resolved_public else None,
        privateKeyPath=str(resolved_private) if resolved_private else None,
        baseUrl=settings.UPI_BASE_URL or None,
        qrEndpoint=settings.UPI_QR_ENDPOINT or None,
        merchantId=settings.UPI_MERCHANT_ID or None,
        hasApiKey=bool(settings.UPI_API_KEY),
    )


@router.post("/qr", response_model=QRCreateResponse)
def create_qr(
    payload: QRCreateRequest,
    db: Session = Depends(get_db),
    service: TransactionService = Depends(get_transaction_service),
):
    """Create a dynamic UPI QR and a PENDING payment transaction."""
    amount = _paise_or_400(payload.amount)
    result = service.create_charge(
        db,
        amount=amount,
        merchant_tran_id=payload.merchant_tran_id,
        bill_number=payload.bill_number,
        terminal_id=payload.terminal_id,
        transaction_type=payload.transaction_type,
        rental_id=payload.rental_id,
        battery_swap_id=payload.battery_swap_id,
        rider_id=payload.rider_id,
        validate_payer_acc_flag=payload.validate_payer_acc_flag,
        payer_account=payload.payer_account,
        payer_ifsc=payload.payer_ifsc,
    )
    return QRCreateResponse(**result)


@router.post("/status")
def check_status(
    payload: StatusRequest,
    db: Session = Depends(get_db),
    service: TransactionService = Depends(get_transaction_service),
):
    """Poll the gateway and return its decoded answer."""
    result = service.poll_status(
        db,
        payload.merchant_tran_id,
        sub_merchant_id=payload.sub_merchant_id,
        terminal_id=payload.terminal_id,
    )
    return result["vendor"]


@router.post("/verify", response_model=VerifyResponse)
def verify_payment(
    payload: VerifyRequest,
    db: Session = Depends(get_db),
):
    """Local-only check whether a payment reached SUCCESS."""
    try:
        result = TransactionService.verify(
            db,
            merchant_tran_id=payload.merchant_tran_id,
            rental_id=payload.rental_id,
            transaction_type=payload.transaction_type.value if payload.transaction_type else None,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    txn = result["transaction"]
    return VerifyResponse(
        verified=result["verified"],
        exists=result["exists"],
        message=result["message"],
        transaction=TransactionOut(**txn.to_dict()) if txn is not None else None,
    )


@router.post("/refund")
def refund_payment(
    payload: RefundRequest,
    db: Session = Depends(get_db),
    service: TransactionService = Depends(get_transaction_service),
):
    """Refund a settled payment; the gateway's decoded answer is returned as-is."""
    return service.refund(
        db,
        original_bank_rrn=payload.original_bank_rrn,
        merchant_tran_id=payload.merchant_tran_id,
        original_merchant_tran_id=payload.original_merchant_tran_id,
        refund_amount=_paise_or_400(payload.refund_amount),
        note=payload.note,
        online_refund=payload.online_refund,
        payee_va=payload.payee_va,
        sub_merchant_id=payload.sub_merchant_id,
        terminal_id=payload.terminal_id,
    )


@router.post("/callback", response_model=CallbackAck)
async def payment_callback(
    request: Request,
    db: Session = Depends(get_db),
    service: CallbackService = Depends(get_callback_service),
):
    """Gateway webhook. The signature covers the raw body, so it is read unparsed."""
    raw_body = await request.body()
    result = await run_in_threadpool(
        service.ingest,
        db,
        raw_body,
        dict(request.headers),
        request.headers.get("content-type", ""),
    )
    return CallbackAck(**result)


@router.post("/gate/check", response_model=GateCheckResponse)
def gate_check(
    payload: GateCheckRequest,
    db: Session = Depends(get_db),
    gate: VerificationGate = Depends(get_verification_gate),
):
    """Allow, or answer 402 with the reason the mutation must not proceed."""
    expected = _paise_or_400(payload.expected_amount)
    if not gate.is_required(payload.payment_mode, expected):
        return GateCheckResponse(
            allowed=True, required=False, merchantTranId=payload.merchant_tran_id,
            message="Payment not required",
        )

    decision = gate.enforce(
        db,
        payload.merchant_tran_id,
        expected,
        transaction_type=payload.transaction_type.value if payload.transaction_type else None,
    )
    return GateCheckResponse(
        allowed=True,
        merchantTranId=decision.merchant_tran_id,
        paymentStatus=decision.current_status,
        message=decision.message,
    )
