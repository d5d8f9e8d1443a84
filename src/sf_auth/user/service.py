"""Staff accounts: register, login, refresh.

New accounts are never admins; `is_admin` is granted out of band.
"""

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.sf_auth.auth.jwt_handler import (
    create_access_token,
    create_refresh_token,
    decode_token,
)
from src.sf_auth.auth.password import hash_password, verify_password
from src.sf_auth.user.db_models import StaffUser
from src.sf_common.datetime_utils import utc_now
from src.sf_common.errors import (
    AccountDisabledError,
    EmailExistsError,
    InvalidCredentialsError,
    UsernameExistsError,
)

logger = logging.getLogger(__name__)


class UserService:
    async def register(
        self,
        username: str,
        email: str,
        password: str,
        db: AsyncSession,
    ) -> StaffUser:
        """Insert a staff user. The caller wraps this in `async with db.begin()`."""
        result = await db.execute(select(StaffUser).where(StaffUser.username == username))
        if result.scalar_one_or_none() is not None:
            raise UsernameExistsError()

        result = await db.execute(select(StaffUser).where(StaffUser.email == email))
        if result.scalar_one_or_none() is not None:
            raise EmailExistsError()

        user = StaffUser(
            username=username,
            email=email,
            password_hash=hash_password(password),
            is_active=True,
            is_admin=False,
        )
        db.add(user)
        await db.flush()  # populates user.id / created_at
        logger.info("Registered staff user %s", username)
        return user

    async def login(
        self,
        username: str,
        password: str,
        db: AsyncSession,
    ) -> tuple[StaffUser, str, str]:
        """Return (user, access_token, refresh_token).

        Unknown user and wrong password raise the same error.
        """
        result = await db.execute(select(StaffUser).where(StaffUser.username == username))
        user = result.scalar_one_or_none()

        if user is None or not verify_password(password, user.password_hash):
            logger.info("Failed login for %s", username)
            raise InvalidCredentialsError()
        if not user.is_active:
            logger.warning("Login attempt on disabled staff account %s", username)
            raise AccountDisabledError()

        user.last_login_at = utc_now()
        await db.commit()
        logger.info("Staff login %s (admin=%s)", username, user.is_admin)
        return user, create_access_token(user.actor_id), create_refresh_token(user.actor_id)

    async def refresh(self, refresh_token: str) -> str:
        payload = decode_token(refresh_token, expected_type="refresh")
        return create_access_token(str(payload["sub"]))
