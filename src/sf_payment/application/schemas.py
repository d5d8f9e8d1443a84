from pydantic import BaseModel, Field

from src.sf_payment.application.reconciliation import ReconcileOutcome
from src.sf_payment.domain.models import PaymentInitiation


class PaymentInitiationResponse(BaseModel):
    order_id: str
    method: str
    payment_url: str | None = None

    @classmethod
    def from_initiation(cls, initiation: PaymentInitiation) -> "PaymentInitiationResponse":
        return cls(
            order_id=initiation.linkage.order_id,
            method=initiation.method,
            payment_url=initiation.payment_url,
        )


class ReconcileResponse(BaseModel):
    order_id: str
    order_number: str
    payment_status: str
    verified_state: str | None
    entries_written: int

    @classmethod
    def from_outcome(cls, outcome: ReconcileOutcome) -> "ReconcileResponse":
        return cls(
            order_id=outcome.order_id,
            order_number=outcome.order_number,
            payment_status=outcome.payment_status,
            verified_state=outcome.verified_state,
            entries_written=outcome.entries_written,
        )


class RefundRequest(BaseModel):
    amount: int = Field(..., gt=0, description="Minor units (poisha)")
    reason: str = Field(..., min_length=1, max_length=500)
