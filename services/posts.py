from datetime import datetime, timezone
import logging

from pydantic import ValidationError as PydanticValidationError
from sqlmodel import Session

from core.database import transaction
from core.exceptions import TopicLocked, ValidationError
from models import Post, PostCreate, Topic
from services.subscriptions import subscribe, subscriber_ids

logger = logging.getLogger(__name__)


def approve_post(session: Session, post: Post) -> Post:
    with transaction(session):
        post.approved = True
        session.add(post)
    logger.info(f"Post {post.id} approved")
    return post


def reply_to_topic(session: Session, topic: Topic, user_id: int, text: str) -> tuple[Post, list[int]]:
    """Add a reply to an unlocked topic.

    The replier is subscribed to the topic. Returns the new post and the
    ids of the subscribers to notify, which never include the replier.
    """
    if not topic.can_be_replied_to():
        raise TopicLocked(topic.id)
    try:
        data = PostCreate(text=text)
    except PydanticValidationError as e:
        raise ValidationError(str(e)) from e

    post = Post(topic_id=topic.id, user_id=user_id, text=data.text)
    with transaction(session):
        session.add(post)
        session.flush()
        topic.last_post_at = post.created_at
        session.add(topic)
        subscribe(session, topic, user_id)
    session.refresh(post)

    to_notify = subscriber_ids(session, topic, exclude=user_id)
    logger.info(f"Reply {post.id} on topic {topic.id}, notifying {len(to_notify)} subscribers")
    return post, to_notify
