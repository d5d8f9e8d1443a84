"""Gateway capability interface.

One implementation per provider, selected by the order's payment_method.
New gateways plug in by implementing this protocol and registering in
`src.sf_payment.infrastructure.registry`; the reconciliation engine never
branches on the provider.
"""
from collections.abc import Mapping
from typing import Any, Protocol

from src.sf_order.domain.models import Order
from src.sf_payment.domain.models import (
    CallbackLinkage,
    CallbackPayload,
    PaymentInitiation,
    VerificationResult,
)


class PaymentGatewayProtocol(Protocol):
    method: str
    # True when `initiate` already returns the reference later callbacks carry.
    binds_reference_at_initiation: bool

    async def initiate(self, order: Order, linkage: CallbackLinkage) -> PaymentInitiation:
        """Open a hosted payment; raise PaymentDeclinedError if the provider refuses."""
        ...

    async def verify(self, reference: str) -> VerificationResult:
        """Pure status query. Safe to call any number of times.

        Raises GatewayUnavailableError on timeout / network failure and
        AdapterError on a response that cannot be interpreted.
        """
        ...

    async def finalize(self, reference: str) -> None:
        """Provider-side capture step run on the callback path, if any."""
        ...

    def parse_callback(self, params: Mapping[str, Any]) -> CallbackPayload: ...
