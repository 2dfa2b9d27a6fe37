from abc import ABC
from typing import Any, Generic, List, Optional, Type, TypeVar

from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

T = TypeVar("T")
SchemaType = TypeVar("SchemaType", bound=BaseModel)


class BaseRepository(Generic[T, SchemaType], ABC):
    """모든 리포지토리의 베이스 클래스 - Pydantic 응답 보장"""

    def __init__(
        self, model_class: Type[T], schema_class: Type[SchemaType], db: AsyncSession
    ):
        self.model_class = model_class
        self.schema_class = schema_class
        self.db = db

    def _to_schema(self, model_instance: Any) -> Optional[SchemaType]:
        """SQLAlchemy 모델을 Pydantic 스키마로 변환"""
        if model_instance is None:
            return None
        # Pydantic v2의 model_validate를 사용하여 from_attributes 활용
        return self.schema_class.model_validate(model_instance)

    def _to_schemas(self, model_instances: List[Any]) -> List[SchemaType]:
        return [self._to_schema(instance) for instance in model_instances]

    @property
    def dialect_name(self) -> str:
        return self.db.get_bind().dialect.name

    async def get_model_by_id(self, id: Any) -> Optional[T]:
        result = await self.db.execute(
            select(self.model_class).where(getattr(self.model_class, "id") == id)
        )
        return result.scalar_one_or_none()

    async def create(self, **kwargs) -> T:
        """flush 만 수행 - commit 은 호출한 서비스의 트랜잭션 몫"""
        instance = self.model_class(**kwargs)
        self.db.add(instance)
        await self.db.flush()
        return instance
