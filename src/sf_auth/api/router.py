"""Staff auth API: register, login, refresh."""

from typing import Annotated

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from src.sf_auth.user.db_models import StaffUser
from src.sf_auth.user.schemas import (
    LoginRequest,
    LoginResponse,
    RefreshRequest,
    RefreshResponse,
    RegisterRequest,
    RegisterResponse,
    StaffInfo,
)
from src.sf_auth.user.service import UserService
from src.sf_common.database import get_db_session
from src.sf_common.response import ApiResponse, success_response

router = APIRouter(prefix="/auth", tags=["auth"])
_service = UserService()


def _get_request_id(request: Request) -> str:
    return getattr(request.state, "request_id", "req_unknown")


def _staff_info(user: StaffUser) -> StaffInfo:
    return StaffInfo(
        user_id=user.actor_id,
        username=user.username,
        email=user.email,
        is_admin=user.is_admin,
        last_login_at=user.last_login_at.isoformat() if user.last_login_at else None,
    )


@router.post("/register", status_code=status.HTTP_201_CREATED, response_model=ApiResponse)
async def register(
    request: Request,
    body: RegisterRequest,
    db: Annotated[AsyncSession, Depends(get_db_session)],
) -> ApiResponse:
    async with db.begin():
        user = await _service.register(body.username, body.email, body.password, db)

    data = RegisterResponse(
        **_staff_info(user).model_dump(), created_at=user.created_at.isoformat()
    )
    resp = success_response(data.model_dump(), message="Staff user registered")
    resp.request_id = _get_request_id(request)
    return resp


@router.post("/login", response_model=ApiResponse)
async def login(
    request: Request,
    body: LoginRequest,
    db: Annotated[AsyncSession, Depends(get_db_session)],
) -> ApiResponse:
    user, access_token, refresh_token = await _service.login(body.username, body.password, db)

    data = LoginResponse(
        access_token=access_token,
        refresh_token=refresh_token,
        expires_in=settings.JWT_EXPIRE_MINUTES * 60,
        user=_staff_info(user),
    )
    resp = success_response(data.model_dump(), message="Login successful")
    resp.request_id = _get_request_id(request)
    return resp


@router.post("/refresh", response_model=ApiResponse)
async def refresh_token(request: Request, body: RefreshRequest) -> ApiResponse:
    data = RefreshResponse(
        access_token=await _service.refresh(body.refresh_token),
        expires_in=settings.JWT_EXPIRE_MINUTES * 60,
    )
    resp = success_response(data.model_dump(), message="Token refreshed")
    resp.request_id = _get_request_id(request)
    return resp
