"""
Pydantic Schemas — Request & Response models for API validation.

Field names are snake_case; the wire format is the gateway's camelCase, via
aliases. Request amounts are rupees and are converted to paise in the routes.
"""
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional, Dict, List
from pydantic import BaseModel, Field

from fleetpay.models.payment import TransactionType


class _CamelModel(BaseModel):
    class Config:
        populate_by_name = True


# ──────────────── QR / Charge ────────────────

class QRCreateRequest(_CamelModel):
    amount: Decimal = Field(..., gt=0, description="Amount in INR, at most 2 decimals")
    merchant_tran_id: Optional[str] = Field(None, alias="merchantTranId", max_length=64)
    bill_number: Optional[str] = Field(None, alias="billNumber")
    terminal_id: Optional[str] = Field(None, alias="terminalId")
    transaction_type: TransactionType = Field(TransactionType.NEW_RIDER, alias="transactionType")
    rental_id: Optional[str] = Field(None, alias="rentalId")
    battery_swap_id: Optional[str] = Field(None, alias="batterySwapId")
    rider_id: Optional[str] = Field(None, alias="riderId")
    validate_payer_acc_flag: Optional[str] = Field(None, alias="validatePayerAccFlag")
    payer_account: Optional[str] = Field(None, alias="payerAccount")
    payer_ifsc: Optional[str] = Field(None, alias="payerIFSC")


class QRCreateResponse(_CamelModel):
    merchant_id: str = Field(..., alias="merchantId")
    terminal_id: str = Field(..., alias="terminalId")
    merchant_tran_id: str = Field(..., alias="merchantTranId")
    ref_id: Optional[str] = Field(None, alias="refId")
    payment_link: str = Field(..., alias="paymentLink")
    payment_transaction_id: Optional[int] = Field(None, alias="paymentTransactionId")
    upstream: Any = None


# ──────────────── Status / Verify ────────────────

class StatusRequest(_CamelModel):
    merchant_tran_id: str = Field(..., alias="merchantTranId", min_length=1)
    sub_merchant_id: Optional[str] = Field(None, alias="subMerchantId")
    terminal_id: Optional[str] = Field(None, alias="terminalId")


class VerifyRequest(_CamelModel):
    merchant_tran_id: Optional[str] = Field(None, alias="merchantTranId")
    rental_id: Optional[str] = Field(None, alias="rentalId")
    transaction_type: Optional[TransactionType] = Field(None, alias="transactionType")


class TransactionOut(_CamelModel):
    id: int
    merchant_tran_id: str = Field(..., alias="merchantTranId")
    ref_id: Optional[str] = Field(None, alias="refId")
    bank_rrn: Optional[str] = Field(None, alias="bankRRN")
    amount: Optional[int] = None
    status: str
    transaction_type: str = Field(..., alias="transactionType")
    rental_id: Optional[str] = Field(None, alias="rentalId")
    battery_swap_id: Optional[str] = Field(None, alias="batterySwapId")
    rider_id: Optional[str] = Field(None, alias="riderId")
    verified_at: Optional[datetime] = Field(None, alias="verifiedAt")
    verification_attempts: int = Field(0, alias="verificationAttempts")
    last_status_check_at: Optional[datetime] = Field(None, alias="lastStatusCheckAt")
    created_at: Optional[datetime] = Field(None, alias="createdAt")


class VerifyResponse(BaseModel):
    verified: bool
    exists: bool
    message: str
    transaction: Optional[TransactionOut] = None


# ──────────────── Refund ────────────────

class RefundRequest(_CamelModel):
    original_bank_rrn: str = Field(..., alias="originalBankRRN", min_length=1)
    merchant_tran_id: str = Field(..., alias="merchantTranId", min_length=1)
    original_merchant_tran_id: str = Field(..., alias="originalmerchantTranId", min_length=1)
    refund_amount: Decimal = Field(..., alias="refundAmount", gt=0)
    note: str = Field(..., min_length=1)
    online_refund: str = Field("Y", alias="onlineRefund")
    payee_va: Optional[str] = Field(None, alias="payeeVA")
    sub_merchant_id: Optional[str] = Field(None, alias="subMerchantId")
    terminal_id: Optional[str] = Field(None, alias="terminalId")


# ──────────────── Verification Gate ────────────────

class GateCheckRequest(_CamelModel):
    merchant_tran_id: Optional[str] = Field(None, alias="merchantTranId")
    expected_amount: Decimal = Field(..., alias="expectedAmount", ge=0)
    transaction_type: Optional[TransactionType] = Field(None, alias="transactionType")
    payment_mode: Optional[str] = Field(None, alias="paymentMode")


class GateCheckResponse(_CamelModel):
    allowed: bool
    required: bool = True
    merchant_tran_id: Optional[str] = Field(None, alias="merchantTranId")
    payment_status: Optional[str] = Field(None, alias="paymentStatus")
    message: str = ""


# ──────────────── Callback ────────────────

class CallbackAck(_CamelModel):
    ok: bool
    recorded: bool
    notification_id: int = Field(..., alias="notificationId")
    transaction_updated: bool = Field(..., alias="transactionUpdated")
    merchant_tran_id: Optional[str] = Field(None, alias="merchantTranId")
    bank_rrn: Optional[str] = Field(None, alias="bankRRN")
    status: Optional[str] = None
    status_message: Optional[str] = Field(None, alias="statusMessage")
    amount: Optional[int] = None
    rental_id: Optional[str] = Field(None, alias="rentalId")
    battery_swap_id: Optional[str] = Field(None, alias="batterySwapId")


# ──────────────── Admin / Reconciliation ────────────────

class TransactionListResponse(BaseModel):
    total: int
    items: List[TransactionOut]


class NotificationOut(_CamelModel):
    id: int
    reference: Optional[str] = None
    transaction_id: Optional[str] = Field(None, alias="transactionId")
    status: Optional[str] = None
    status_message: Optional[str] = Field(None, alias="statusMessage")
    amount: Optional[int] = None
    payment_method: Optional[str] = Field(None, alias="paymentMethod")
    signature_verified: Optional[bool] = Field(None, alias="signatureVerified")
    body_hash: Optional[str] = Field(None, alias="bodyHash")
    rental_id: Optional[str] = Field(None, alias="rentalId")
    received_at: Optional[datetime] = Field(None, alias="receivedAt")
    payload: Optional[Dict] = None


# ──────────────── Generic ────────────────

class GatewayStatusResponse(_CamelModel):
    configured: bool
    encryption_mode: str = Field(..., alias="encryptionMode")
    has_public_key: bool = Field(..., alias="hasPublicKey")
    has_private_key: bool = Field(..., alias="hasPrivateKey")
    public_key_path: Optional[str] = Field(None, alias="publicKeyPath")
    private_key_path: Optional[str] = Field(None, alias="privateKeyPath")
    base_url: Optional[str] = Field(None, alias="baseUrl")
    qr_endpoint: Optional[str] = Field(None, alias="qrEndpoint")
    merchant_id: Optional[str] = Field(None, alias="merchantId")
    has_api_key: bool = Field(..., alias="hasApiKey")
