from sqlmodel import Field, SQLModel
from datetime import datetime, timezone
from enum import Enum


class UserApprovalStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"


class User(SQLModel, table=True):
    id: int | None = Field(default=None, primary_key=True)
    username: str = Field(index=True, unique=True)
    email: str | None = Field(default=None, index=True)
    # Global moderation status; approved users skip topic review
    forum_state: UserApprovalStatus = Field(default=UserApprovalStatus.PENDING)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
