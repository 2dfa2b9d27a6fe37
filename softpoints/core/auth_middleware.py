from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from softpoints.core.exceptions import AuthenticationError
from softpoints.core.security import decode_access_token
from softpoints.database.session import get_db
from softpoints.repositories.user_repository import UserRepository
from softpoints.schemas.user import User as UserSchema

# 토큰 발급은 외부 인증 서비스 담당, 여기서는 검증만
security = HTTPBearer(auto_error=False)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def _resolve_user(
    credentials: Optional[HTTPAuthorizationCredentials], db: AsyncSession
) -> Optional[UserSchema]:
    """토큰이 없으면 None, 토큰이 잘못되면 AuthenticationError"""
    if not credentials:
        return None
    payload = decode_access_token(credentials.credentials)
    return await UserRepository(db).get_active_user(payload.user_id)


async def get_current_user_optional(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: AsyncSession = Depends(get_db),
) -> Optional[UserSchema]:
    """보상 추적용 선택 인증 - 토큰이 없거나 유효하지 않으면 익명(None)"""
    try:
        return await _resolve_user(credentials, db)
    except AuthenticationError:
        return None


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: AsyncSession = Depends(get_db),
) -> UserSchema:
    if not credentials:
        raise _unauthorized("Authentication required")
    try:
        user = await _resolve_user(credentials, db)
    except AuthenticationError as e:
        raise _unauthorized(str(e))
    if user is None:
        raise _unauthorized("Unknown or inactive user")
    return user


def require_admin(current_user: UserSchema = Depends(get_current_user)) -> UserSchema:
    if not current_user.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )
    return current_user
