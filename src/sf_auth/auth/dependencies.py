"""FastAPI dependencies guarding staff endpoints.

    @router.post("/orders/{order_id}/refund")
    async def refund(admin: Annotated[StaffUser, Depends(require_admin)]):
        ...

The admin's id (as a string) is the `changed_by` actor written to the
status history.
"""

from typing import Annotated

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.sf_auth.auth.jwt_handler import decode_token
from src.sf_auth.user.db_models import StaffUser
from src.sf_common.database import get_db_session
from src.sf_common.errors import AccountDisabledError, AdminRequiredError, InvalidCredentialsError

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login")

_CREDENTIALS_EXCEPTION = HTTPException(
    status_code=status.HTTP_401_UNAUTHORIZED,
    detail="Invalid or expired token",
    headers={"WWW-Authenticate": "Bearer"},
)


async def get_current_user(
    token: Annotated[str, Depends(oauth2_scheme)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
) -> StaffUser:
    """Resolve the bearer token to an active staff user, else 401/403."""
    try:
        payload = decode_token(token, expected_type="access")
    except InvalidCredentialsError:
        raise _CREDENTIALS_EXCEPTION from None

    user_id: str | None = payload.get("sub")
    if not user_id:
        raise _CREDENTIALS_EXCEPTION

    result = await db.execute(select(StaffUser).where(StaffUser.id == user_id))
    user = result.scalar_one_or_none()
    if user is None:
        raise _CREDENTIALS_EXCEPTION
    if not user.is_active:
        raise AccountDisabledError()
    return user


async def require_admin(
    current_user: Annotated[StaffUser, Depends(get_current_user)],
) -> StaffUser:
    if not current_user.is_admin:
        raise AdminRequiredError()
    return current_user
