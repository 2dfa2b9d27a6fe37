from functools import lru_cache

from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from softpoints.config import settings
from softpoints.models.base import Base


@lru_cache
def get_engine() -> AsyncEngine:
    url = settings.database_url
    if url.startswith("sqlite"):
        # SQLite doesn't support connection pooling parameters
        return create_async_engine(url, echo=settings.DEBUG, poolclass=NullPool)

    return create_async_engine(
        url,
        pool_size=settings.DB_POOL_SIZE,
        max_overflow=settings.DB_MAX_OVERFLOW,
        pool_pre_ping=True,  # 연결 유효성 검사
        pool_recycle=3600,  # 1시간마다 연결 재생성
        echo=settings.DEBUG,  # 디버그 모드에서 SQL 로깅
    )


@lru_cache
def get_session_factory() -> async_sessionmaker:
    # expire_on_commit=False: commit 이후에도 같은 요청 안에서 속성 접근 가능
    return async_sessionmaker(
        bind=get_engine(),
        autoflush=False,
        expire_on_commit=False,
    )


async def create_all(engine: AsyncEngine) -> None:
    """모든 테이블 생성 (로컬 개발/테스트용)"""
    # 테이블 등록을 위해 모델 모듈을 import
    from softpoints.models import points, security, user, withdrawal  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
