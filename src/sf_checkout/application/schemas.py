# src/sf_checkout/application/schemas.py
from dataclasses import replace
from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from src.sf_checkout.domain.models import (
    Cart,
    CartLine,
    ConversionEdits,
    CustomerDetails,
    IncompleteItem,
    IncompleteOrder,
)
from src.sf_common.enums import PaymentMethod
from src.sf_order.application.schemas import OrderResponse


class CartLineRequest(BaseModel):
    product_id: str = Field(..., min_length=1)
    variant_id: str | None = None
    quantity: int = Field(..., gt=0)

    def to_domain(self) -> CartLine:
        return CartLine(
            product_id=self.product_id, quantity=self.quantity, variant_id=self.variant_id
        )


class CustomerRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    phone: str = Field(..., min_length=3, max_length=32)
    email: str | None = Field(None, max_length=255)
    address: str | None = Field(None, max_length=1000)
    notes: str | None = Field(None, max_length=1000)

    @field_validator("name", "phone")
    @classmethod
    def not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("must not be blank")
        return v.strip()

    def to_domain(self) -> CustomerDetails:
        return CustomerDetails(
            name=self.name,
            phone=self.phone,
            email=self.email,
            address=self.address,
            notes=self.notes,
        )


class CheckoutRequest(BaseModel):
    customer: CustomerRequest
    items: list[CartLineRequest] = Field(..., min_length=1)
    payment_method: PaymentMethod = PaymentMethod.COD
    shipping_code: str | None = None
    device_id: str | None = Field(None, max_length=255)

    def to_cart(self, ip_address: str | None = None) -> Cart:
        return Cart(
            customer=self.customer.to_domain(),
            lines=[line.to_domain() for line in self.items],
            payment_method=self.payment_method.value,
            shipping_code=self.shipping_code,
            device_id=self.device_id,
            ip_address=ip_address,
        )


class ManualOrderRequest(CheckoutRequest):
    shipping_fee: int | None = Field(None, ge=0, description="Overrides the option's fee")

    def to_cart(self, ip_address: str | None = None) -> Cart:
        return replace(super().to_cart(ip_address), shipping_fee_override=self.shipping_fee)


class CheckoutResponse(BaseModel):
    order: OrderResponse
    payment_url: str | None = None
    # Set when the order was placed but the gateway could not start a payment.
    payment_error: str | None = None


class IncompleteItemRequest(BaseModel):
    product_id: str = Field(..., min_length=1)
    product_name: str = Field(..., min_length=1)
    quantity: int = Field(..., gt=0)
    unit_price: int = Field(..., ge=0)
    variant_id: str | None = None
    variant_name: str | None = None

    def to_domain(self) -> IncompleteItem:
        return IncompleteItem(
            product_id=self.product_id,
            product_name=self.product_name,
            quantity=self.quantity,
            unit_price=self.unit_price,
            variant_id=self.variant_id,
            variant_name=self.variant_name,
        )


class CaptureIncompleteRequest(BaseModel):
    session_id: str = Field(..., min_length=1, max_length=255)
    items: list[IncompleteItemRequest] = Field(default_factory=list)
    customer_name: str | None = Field(None, max_length=200)
    customer_phone: str | None = Field(None, max_length=32)
    customer_email: str | None = Field(None, max_length=255)
    shipping_address: str | None = Field(None, max_length=1000)
    shipping_code: str | None = None
    shipping_fee: int = Field(0, ge=0)
    payment_method: PaymentMethod | None = None
    notes: str | None = Field(None, max_length=1000)

    def to_domain(self, incomplete_id: str) -> IncompleteOrder:
        return IncompleteOrder(
            id=incomplete_id,
            session_id=self.session_id,
            items=[item.to_domain() for item in self.items],
            customer_name=self.customer_name,
            customer_phone=self.customer_phone,
            customer_email=self.customer_email,
            shipping_address=self.shipping_address,
            shipping_code=self.shipping_code,
            shipping_fee=self.shipping_fee,
            payment_method=self.payment_method.value if self.payment_method else None,
            notes=self.notes,
        )


class IncompleteItemResponse(BaseModel):
    product_id: str
    product_name: str
    quantity: int
    unit_price: int
    variant_id: str | None = None
    variant_name: str | None = None


class IncompleteOrderResponse(BaseModel):
    id: str
    session_id: str
    status: str
    items: list[IncompleteItemResponse]
    customer_name: str | None = None
    customer_phone: str | None = None
    customer_email: str | None = None
    shipping_address: str | None = None
    shipping_code: str | None = None
    payment_method: str | None = None
    notes: str | None = None
    subtotal: int
    shipping_fee: int
    total: int
    converted_order_id: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_domain(cls, snapshot: IncompleteOrder) -> "IncompleteOrderResponse":
        return cls(
            id=snapshot.id,
            session_id=snapshot.session_id,
            status=snapshot.status,
            items=[
                IncompleteItemResponse(
                    product_id=i.product_id,
                    product_name=i.product_name,
                    quantity=i.quantity,
                    unit_price=i.unit_price,
                    variant_id=i.variant_id,
                    variant_name=i.variant_name,
                )
                for i in snapshot.items
            ],
            customer_name=snapshot.customer_name,
            customer_phone=snapshot.customer_phone,
            customer_email=snapshot.customer_email,
            shipping_address=snapshot.shipping_address,
            shipping_code=snapshot.shipping_code,
            payment_method=snapshot.payment_method,
            notes=snapshot.notes,
            subtotal=snapshot.subtotal,
            shipping_fee=snapshot.shipping_fee,
            total=snapshot.total,
            converted_order_id=snapshot.converted_order_id,
            created_at=snapshot.created_at,
            updated_at=snapshot.updated_at,
        )


class ConvertIncompleteRequest(BaseModel):
    """Corrections applied before conversion; omitted fields keep the snapshot's."""

    customer_name: str | None = Field(None, max_length=200)
    customer_phone: str | None = Field(None, max_length=32)
    customer_email: str | None = Field(None, max_length=255)
    shipping_address: str | None = Field(None, max_length=1000)
    shipping_code: str | None = None
    shipping_fee: int | None = Field(None, ge=0)
    payment_method: PaymentMethod | None = None
    notes: str | None = Field(None, max_length=1000)
    items: list[CartLineRequest] | None = None

    def to_domain(self) -> ConversionEdits:
        return ConversionEdits(
            customer_name=self.customer_name,
            customer_phone=self.customer_phone,
            customer_email=self.customer_email,
            shipping_address=self.shipping_address,
            shipping_code=self.shipping_code,
            shipping_fee=self.shipping_fee,
            payment_method=self.payment_method.value if self.payment_method else None,
            notes=self.notes,
            lines=[line.to_domain() for line in self.items] if self.items is not None else None,
        )
