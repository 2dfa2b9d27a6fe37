from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import JWTError, jwt
from pydantic import BaseModel, ValidationError

from softpoints.config import settings
from softpoints.core.exceptions import AuthenticationError


class TokenPayload(BaseModel):
    user_id: int


def create_access_token(claims: dict, expires_in: Optional[timedelta] = None) -> str:
    """외부 인증 서비스와 같은 HS 서명 규칙으로 토큰 생성 (테스트/내부 도구용)"""
    ttl = expires_in or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    payload = {**claims, "exp": datetime.now(timezone.utc) + ttl}
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def decode_access_token(token: str) -> TokenPayload:
    try:
        claims = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
        return TokenPayload.model_validate(claims)
    except (JWTError, ValidationError) as e:
        raise AuthenticationError("Invalid or expired token") from e
