"""Customer blocking domain: pure dataclasses."""
import re
from dataclasses import dataclass, fields
from datetime import datetime

from src.sf_common.datetime_utils import is_expired

_WHITESPACE = re.compile(r"\s+")


def _clean(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None


@dataclass(frozen=True)
class CustomerIdentity:
    """Whatever identity attributes are known for a checkout attempt."""

    email: str | None = None
    phone: str | None = None
    device_id: str | None = None
    ip_address: str | None = None

    def normalized(self) -> "CustomerIdentity":
        email = _clean(self.email)
        phone = _clean(self.phone)
        return CustomerIdentity(
            email=email.lower() if email else None,
            phone=_WHITESPACE.sub("", phone) if phone else None,
            device_id=_clean(self.device_id),
            ip_address=_clean(self.ip_address),
        )

    @property
    def is_empty(self) -> bool:
        return all(getattr(self, f.name) is None for f in fields(self))


@dataclass
class BlockedCustomer:
    id: str
    reason: str
    email: str | None = None
    phone: str | None = None
    device_id: str | None = None
    ip_address: str | None = None
    custom_message: str | None = None
    expires_at: datetime | None = None
    is_active: bool = True
    blocked_by: str | None = None
    created_at: datetime | None = None

    @property
    def identity(self) -> CustomerIdentity:
        return CustomerIdentity(self.email, self.phone, self.device_id, self.ip_address)

    def in_force(self, now: datetime) -> bool:
        return self.is_active and not is_expired(self.expires_at, now)

    def matches(self, identity: CustomerIdentity, now: datetime) -> bool:
        """Any populated field of the block equal to the same field of `identity`."""
        if not self.in_force(now):
            return False
        mine = self.identity
        return any(
            getattr(mine, f.name) is not None
            and getattr(mine, f.name) == getattr(identity, f.name)
            for f in fields(CustomerIdentity)
        )


@dataclass(frozen=True)
class BlockCheck:
    blocked: bool
    message: str | None = None
    block_id: str | None = None
