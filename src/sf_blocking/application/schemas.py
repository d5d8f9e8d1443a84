from datetime import datetime

from pydantic import BaseModel, Field, model_validator

from src.sf_blocking.domain.models import BlockedCustomer, CustomerIdentity


class BlockRequest(BaseModel):
    email: str | None = Field(None, max_length=255)
    phone: str | None = Field(None, max_length=32)
    device_id: str | None = Field(None, max_length=255)
    ip_address: str | None = Field(None, max_length=64)
    reason: str = Field(..., min_length=1, max_length=500)
    custom_message: str | None = Field(None, max_length=500)
    expires_at: datetime | None = None

    @model_validator(mode="after")
    def expiry_is_aware(self) -> "BlockRequest":
        if self.expires_at is not None and self.expires_at.tzinfo is None:
            raise ValueError("expires_at must include a timezone offset")
        return self

    def identity(self) -> CustomerIdentity:
        return CustomerIdentity(
            email=self.email,
            phone=self.phone,
            device_id=self.device_id,
            ip_address=self.ip_address,
        )


class BlockResponse(BaseModel):
    id: str
    reason: str
    email: str | None
    phone: str | None
    device_id: str | None
    ip_address: str | None
    custom_message: str | None
    expires_at: datetime | None
    is_active: bool
    blocked_by: str | None
    created_at: datetime | None

    @classmethod
    def from_domain(cls, block: BlockedCustomer) -> "BlockResponse":
        return cls(
            id=block.id,
            reason=block.reason,
            email=block.email,
            phone=block.phone,
            device_id=block.device_id,
            ip_address=block.ip_address,
            custom_message=block.custom_message,
            expires_at=block.expires_at,
            is_active=block.is_active,
            blocked_by=block.blocked_by,
            created_at=block.created_at,
        )
