import logging

from pydantic import ValidationError as PydanticValidationError
from sqlmodel import Session

from core.database import transaction
from core.exceptions import NotFound, ValidationError
from models import Forum, Post, Topic, TopicCreate, User
from services.directory import UserDirectory
from services.topic_state import TopicStateMachine

logger = logging.getLogger(__name__)


def get_topic(session: Session, topic_id: int) -> Topic:
    topic = session.get(Topic, topic_id)
    if not topic:
        raise NotFound("Topic", topic_id)
    return topic


def create_topic(
    session: Session,
    forum_id: int,
    user_id: int,
    data: TopicCreate | dict,
    directory: UserDirectory | None = None,
) -> Topic:
    """Create a topic together with its first post (and any further posts).

    Nothing is persisted when validation fails. The author is subscribed
    to the new topic, and the topic is approved right away when the author
    is already an approved user.
    """
    try:
        data = TopicCreate.model_validate(data)
    except PydanticValidationError as e:
        raise ValidationError(str(e)) from e

    if not session.get(Forum, forum_id):
        raise NotFound("Forum", forum_id)
    if not session.get(User, user_id):
        raise NotFound("User", user_id)

    topic = Topic(subject=data.subject, forum_id=forum_id, user_id=user_id)
    topic.posts = [Post(text=post.text, created_at=topic.created_at) for post in data.posts[:1]]
    topic.posts += [Post(text=post.text) for post in data.posts[1:]]
    topic.last_post_at = topic.posts[-1].created_at

    TopicStateMachine(session, directory).on_create(topic)
    session.refresh(topic)
    logger.info(f"Topic {topic.id} created in forum {forum_id} by user {user_id}")
    return topic


def delete_topic(session: Session, topic: Topic) -> None:
    """Delete a topic with its posts, views and subscriptions"""
    topic_id = topic.id
    with transaction(session):
        session.delete(topic)
    logger.info(f"Topic {topic_id} deleted")


def _update_flag(session: Session, topic: Topic, field: str, value: bool) -> Topic:
    with transaction(session):
        setattr(topic, field, value)
        session.add(topic)
    session.refresh(topic)
    logger.info(f"Topic {topic.id} {field} set to {value}")
    return topic


def lock_topic(session: Session, topic: Topic) -> Topic:
    return _update_flag(session, topic, "locked", True)


def unlock_topic(session: Session, topic: Topic) -> Topic:
    return _update_flag(session, topic, "locked", False)


def pin_topic(session: Session, topic: Topic) -> Topic:
    return _update_flag(session, topic, "pinned", True)


def unpin_topic(session: Session, topic: Topic) -> Topic:
    return _update_flag(session, topic, "pinned", False)


def hide_topic(session: Session, topic: Topic) -> Topic:
    return _update_flag(session, topic, "hidden", True)


def unhide_topic(session: Session, topic: Topic) -> Topic:
    return _update_flag(session, topic, "hidden", False)


def can_be_replied_to(topic: Topic) -> bool:
    return topic.can_be_replied_to()
