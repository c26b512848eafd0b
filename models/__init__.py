from .user import User, UserApprovalStatus
from .forum import Forum
from .topic import Topic, TopicState, TopicCreate, PostCreate
from .post import Post
from .view import View
from .subscription import Subscription

__all__ = [
    "User", "UserApprovalStatus",
    "Forum",
    "Topic", "TopicState", "TopicCreate", "PostCreate",
    "Post",
    "View",
    "Subscription",
]
