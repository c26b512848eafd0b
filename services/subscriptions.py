import logging

from sqlmodel import Session, select

from core.database import after_commit, transaction
from core.metrics import topic_subscriptions_total
from models import Subscription, Topic

logger = logging.getLogger(__name__)


def subscription_for(session: Session, topic: Topic, user_id: int | None) -> Subscription | None:
    return session.exec(
        select(Subscription)
        .where(Subscription.topic_id == topic.id, Subscription.subscriber_id == user_id)
        .order_by(Subscription.id)
    ).first()


def is_subscribed(session: Session, topic: Topic, user_id: int | None) -> bool:
    return subscription_for(session, topic, user_id) is not None


def subscribe(session: Session, topic: Topic, user_id: int | None) -> Subscription | None:
    """Subscribe a user to a topic.

    Does nothing for anonymous users or users who are already subscribed.
    A unique-constraint clash with a concurrent subscribe surfaces as
    ``PersistenceError``; calling again is safe.
    """
    if user_id is None:
        return None
    existing = subscription_for(session, topic, user_id)
    if existing:
        return existing

    subscription = Subscription(topic_id=topic.id, subscriber_id=user_id)
    topic_id = topic.id
    with transaction(session):
        session.add(subscription)
        after_commit(session, topic_subscriptions_total.inc)
    logger.debug(f"User {user_id} subscribed to topic {topic_id}")
    return subscription


def unsubscribe(session: Session, topic: Topic, user_id: int | None) -> int:
    """Remove every subscription of ``user_id`` to ``topic``, returning how many were removed"""
    subscriptions = session.exec(
        select(Subscription)
        .where(Subscription.topic_id == topic.id, Subscription.subscriber_id == user_id)
    ).all()
    if not subscriptions:
        return 0
    with transaction(session):
        for subscription in subscriptions:
            session.delete(subscription)
    logger.debug(f"User {user_id} unsubscribed from topic {topic.id}")
    return len(subscriptions)


def subscriber_ids(session: Session, topic: Topic, exclude: int | None = None) -> list[int]:
    """Users to notify about activity on ``topic``, oldest subscription first"""
    query = select(Subscription.subscriber_id).where(Subscription.topic_id == topic.id)
    if exclude is not None:
        query = query.where(Subscription.subscriber_id != exclude)
    return list(session.exec(query.order_by(Subscription.id)).all())
