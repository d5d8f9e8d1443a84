"""Payment domain models: provider-neutral shapes the adapters translate into."""
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from src.sf_common.errors import PaymentLinkageError

LINKAGE_VERSION = 1


@dataclass(frozen=True)
class CallbackLinkage:
    """Typed payload carried through a provider round trip.

    Ties a callback to the order it belongs to. The nonce is minted per
    initiation and stored on the order, so a callback for a superseded
    attempt (or a forged one) does not match.
    """

    order_id: str
    nonce: str
    v: int = LINKAGE_VERSION

    def to_params(self) -> dict[str, str]:
        return {"v": str(self.v), "order_id": self.order_id, "nonce": self.nonce}

    @classmethod
    def from_params(cls, params: Mapping[str, Any]) -> "CallbackLinkage":
        version = str(params.get("v") or "")
        order_id = params.get("order_id")
        nonce = params.get("nonce")
        if version != str(LINKAGE_VERSION):
            raise PaymentLinkageError(f"unsupported linkage version {version!r}")
        if not order_id or not nonce:
            raise PaymentLinkageError("order_id and nonce are required")
        return cls(order_id=str(order_id), nonce=str(nonce))


@dataclass(frozen=True)
class PaymentInitiation:
    method: str
    linkage: CallbackLinkage
    payment_url: str | None = None  # None for cash on delivery
    reference: str | None = None  # provider reference, when known up front


@dataclass(frozen=True)
class VerificationResult:
    """What the provider says about a payment when asked directly."""

    state: str  # VerifiedPaymentState value
    reference: str
    amount: int | None = None  # minor units
    transaction_id: str | None = None
    order_linkage: str | None = None  # order id / invoice number echoed by provider
    raw: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)


@dataclass(frozen=True)
class CallbackPayload:
    """A provider callback reduced to the parts we act on.

    `reported_status` is informational only; the paid/failed decision always
    comes from a fresh verification call.
    """

    method: str
    linkage: CallbackLinkage
    reference: str | None
    reported_status: str | None = None
