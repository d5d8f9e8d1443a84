"""UddoktaPay checkout-v2 adapter.

The API key travels only in the RT-UDDOKTAPAY-API-KEY header. The invoice
id is learned on the way back: appended to the redirect URL, and present in
the server-to-server webhook body alongside our metadata.
"""
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

import httpx

from src.sf_common.enums import PaymentMethod, VerifiedPaymentState
from src.sf_common.errors import AdapterError, PaymentDeclinedError
from src.sf_common.money import to_gateway_amount
from src.sf_order.domain.models import Order
from src.sf_payment.domain.models import (
    CallbackLinkage,
    CallbackPayload,
    PaymentInitiation,
    VerificationResult,
)
from src.sf_payment.infrastructure.adapters.base import (
    FALLBACK_EMAIL,
    HttpGatewayAdapter,
    HttpPolicy,
    first_value,
    parse_amount,
)

logger = logging.getLogger(__name__)

_STATES = {
    "COMPLETED": VerifiedPaymentState.COMPLETED.value,
    "PENDING": VerifiedPaymentState.PENDING.value,
    "ERROR": VerifiedPaymentState.FAILED.value,
}


@dataclass(frozen=True)
class UddoktaPayConfig:
    base_url: str
    api_key: str
    callback_url: str
    policy: HttpPolicy = field(default_factory=HttpPolicy)


class UddoktaPayAdapter(HttpGatewayAdapter):
    method = PaymentMethod.UDDOKTAPAY.value
    binds_reference_at_initiation = False

    def __init__(
        self, config: UddoktaPayConfig, transport: httpx.AsyncBaseTransport | None = None
    ) -> None:
        super().__init__(config.policy, config.callback_url, transport)
        self._config = config
        self._base_url = config.base_url.rstrip("/")

    def _headers(self) -> dict[str, str]:
        return {"Accept": "application/json", "RT-UDDOKTAPAY-API-KEY": self._config.api_key}

    async def initiate(self, order: Order, linkage: CallbackLinkage) -> PaymentInitiation:
        status_code, data = await self._call(
            "POST",
            f"{self._base_url}/api/checkout-v2",
            headers=self._headers(),
            json={
                "full_name": order.customer_name,
                "email": order.customer_email or FALLBACK_EMAIL,
                "amount": to_gateway_amount(order.total),
                "metadata": {**linkage.to_params(), "order_number": order.order_number},
                "redirect_url": self.callback_url_for(linkage),
                "return_type": "GET",
                "cancel_url": self.callback_url_for(linkage, status="cancelled"),
                "webhook_url": self.callback_url_for(linkage),
            },
        )
        if status_code >= 400 or not data.get("status") or not data.get("payment_url"):
            raise PaymentDeclinedError(self.method, str(data.get("message") or "checkout failed"))
        logger.info("UddoktaPay checkout opened for order %s", order.order_number)
        return PaymentInitiation(
            method=self.method, linkage=linkage, payment_url=str(data["payment_url"])
        )

    async def verify(self, reference: str) -> VerificationResult:
        status_code, data = await self._call(
            "POST",
            f"{self._base_url}/api/verify-payment",
            headers=self._headers(),
            json={"invoice_id": reference},
            retry=True,
        )
        if status_code >= 400:
            raise AdapterError(self.method, f"verify answered HTTP {status_code}: {data.get('message')}")
        state = _STATES.get(str(data.get("status")))
        if state is None:
            raise AdapterError(self.method, f"unknown payment status {data.get('status')!r}")
        metadata = data.get("metadata") if isinstance(data.get("metadata"), dict) else {}
        return VerificationResult(
            state=state,
            reference=reference,
            amount=parse_amount(self.method, data.get("amount")),
            transaction_id=data.get("transaction_id"),
            order_linkage=metadata.get("order_id"),
            raw=data,
        )

    def parse_callback(self, params: Mapping[str, Any]) -> CallbackPayload:
        metadata = params.get("metadata")
        merged: dict[str, Any] = dict(metadata) if isinstance(metadata, dict) else {}
        merged.update({k: v for k, v in params.items() if k != "metadata"})
        return CallbackPayload(
            method=self.method,
            linkage=CallbackLinkage.from_params(merged),
            reference=first_value(merged, "invoice_id"),
            reported_status=first_value(merged, "status"),
        )
