import logging

from fastapi import HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from backoffice.core import metrics, security
from backoffice.core.config import settings
from backoffice.models.user import Admin

logger = logging.getLogger(__name__)


async def get_admin_by_username(session: AsyncSession, username: str) -> Admin | None:
    result = await session.execute(select(Admin).where(Admin.username == username.strip()))
    return result.scalar_one_or_none()


async def authenticate_admin(session: AsyncSession, username: str, password: str) -> Admin:
    admin = await get_admin_by_username(session, username)
    if not admin or not security.verify_password(password, admin.hashed_password):
        metrics.record_login_failure()
        logger.info("admin_login_failed", extra={"username": username.strip()})
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")
    metrics.record_login_success()
    return admin


def issue_token_for_admin(admin: Admin) -> str:
    return security.create_access_token(str(admin.id), username=admin.username)


def _password_policy_error(password: str) -> str | None:
    if len(password or "") < settings.admin_password_min_length:
        return f"New password must be at least {settings.admin_password_min_length} characters long"
    return None


async def change_password(session: AsyncSession, admin: Admin, *, current_password: str, new_password: str) -> None:
    policy_error = _password_policy_error(new_password)
    if policy_error:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=policy_error)
    if not security.verify_password(current_password, admin.hashed_password):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Current password is incorrect")
    admin.hashed_password = security.hash_password(new_password)
    session.add(admin)
    await session.commit()
    logger.info("admin_password_changed", extra={"admin_id": str(admin.id)})


async def bootstrap_admin(
    session: AsyncSession,
    *,
    username: str,
    password: str,
    reset_password: bool = False,
) -> tuple[Admin, bool]:
    """Create the admin account once; returns ``(admin, created)``.

    Running it again for an existing username is a no-op unless
    ``reset_password`` is set. Raises ``ValueError`` for unusable input.
    """
    username_norm = (username or "").strip()
    if not username_norm:
        raise ValueError("Username is required")
    policy_error = _password_policy_error(password)
    if policy_error:
        raise ValueError(policy_error)

    existing = await get_admin_by_username(session, username_norm)
    if existing:
        if reset_password:
            existing.hashed_password = security.hash_password(password)
            session.add(existing)
            await session.commit()
        return existing, False

    admin = Admin(username=username_norm, hashed_password=security.hash_password(password))
    session.add(admin)
    await session.commit()
    await session.refresh(admin)
    logger.info("admin_bootstrapped", extra={"admin_id": str(admin.id), "username": username_norm})
    return admin, True
