from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict

from softpoints.models.user import UserRole


class User(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    email: str
    nickname: str
    created_at: datetime
    is_active: bool = True
    role: str = UserRole.USER.value
    country: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return UserRole.is_admin(self.role)
