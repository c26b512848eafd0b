from sqlmodel import SQLModel, Field, Relationship
from datetime import datetime, timezone
from enum import Enum
from typing import List, TYPE_CHECKING
from pydantic import field_validator

if TYPE_CHECKING:
    from .forum import Forum
    from .post import Post
    from .user import User
    from .view import View
    from .subscription import Subscription


class TopicState(str, Enum):
    PENDING_REVIEW = "pending_review"
    SPAM = "spam"
    APPROVED = "approved"


class Topic(SQLModel, table=True):
    id: int | None = Field(default=None, primary_key=True)
    subject: str
    forum_id: int = Field(foreign_key="forum.id", index=True)
    user_id: int = Field(foreign_key="user.id", index=True)
    state: TopicState = Field(default=TopicState.PENDING_REVIEW, index=True)
    locked: bool = Field(default=False)
    pinned: bool = Field(default=False)
    hidden: bool = Field(default=False)
    last_post_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    # Relationships
    forum: "Forum" = Relationship(back_populates="topics")
    user: "User" = Relationship()
    posts: List["Post"] = Relationship(
        back_populates="topic",
        sa_relationship_kwargs={
            "cascade": "all, delete-orphan",
            "order_by": "[Post.created_at, Post.id]"
        }
    )
    views: List["View"] = Relationship(
        back_populates="topic",
        sa_relationship_kwargs={"cascade": "all, delete-orphan"}
    )
    subscriptions: List["Subscription"] = Relationship(
        back_populates="topic",
        sa_relationship_kwargs={"cascade": "all, delete-orphan"}
    )

    def __str__(self) -> str:
        return self.subject

    @property
    def approved(self) -> bool:
        return self.state == TopicState.APPROVED

    @property
    def pending_review(self) -> bool:
        return self.state == TopicState.PENDING_REVIEW

    def can_be_replied_to(self) -> bool:
        """A topic cannot be replied to while it is locked"""
        return not self.locked


class PostCreate(SQLModel):
    text: str

    @field_validator("text")
    @classmethod
    def text_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("text can't be blank")
        return value


class TopicCreate(SQLModel):
    subject: str
    posts: List[PostCreate]

    @field_validator("subject")
    @classmethod
    def subject_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("subject can't be blank")
        return value.strip()

    @field_validator("posts")
    @classmethod
    def has_first_post(cls, value: List[PostCreate]) -> List[PostCreate]:
        if not value:
            raise ValueError("a topic needs a first post")
        return value
