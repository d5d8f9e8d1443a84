"""Cash on delivery: nothing to call. Staff settle the payment manually."""
from collections.abc import Mapping
from typing import Any

from src.sf_common.enums import PaymentMethod
from src.sf_common.errors import AdapterError, PaymentLinkageError
from src.sf_order.domain.models import Order
from src.sf_payment.domain.models import (
    CallbackLinkage,
    CallbackPayload,
    PaymentInitiation,
    VerificationResult,
)


class CashOnDeliveryAdapter:
    method = PaymentMethod.COD.value
    binds_reference_at_initiation = False

    async def initiate(self, order: Order, linkage: CallbackLinkage) -> PaymentInitiation:
        return PaymentInitiation(method=self.method, linkage=linkage)

    async def verify(self, reference: str) -> VerificationResult:
        raise AdapterError(self.method, "cash on delivery has no remote status to query")

    async def finalize(self, reference: str) -> None:
        return None

    def parse_callback(self, params: Mapping[str, Any]) -> CallbackPayload:
        raise PaymentLinkageError("cash on delivery does not accept callbacks")
