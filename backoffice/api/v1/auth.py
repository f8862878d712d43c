from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.core.dependencies import get_current_admin
from backoffice.db.session import get_session
from backoffice.models.user import Admin
from backoffice.schemas.auth import AdminResponse, ChangePasswordRequest, LoginRequest, TokenResponse
from backoffice.services import auth as auth_service

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/login", response_model=TokenResponse)
async def login(payload: LoginRequest, session: AsyncSession = Depends(get_session)) -> TokenResponse:
    admin = await auth_service.authenticate_admin(session, payload.username, payload.password)
    token = auth_service.issue_token_for_admin(admin)
    return TokenResponse(access_token=token, admin=AdminResponse.model_validate(admin))


@router.get("/verify", response_model=AdminResponse)
async def verify(current_admin: Admin = Depends(get_current_admin)) -> AdminResponse:
    return AdminResponse.model_validate(current_admin)


@router.post("/change-password", status_code=status.HTTP_200_OK)
async def change_password(
    payload: ChangePasswordRequest,
    session: AsyncSession = Depends(get_session),
    current_admin: Admin = Depends(get_current_admin),
) -> dict:
    await auth_service.change_password(
        session,
        current_admin,
        current_password=payload.current_password,
        new_password=payload.new_password,
    )
    return {"detail": "Password updated"}
