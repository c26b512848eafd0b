"""Moderation state machine for forum topics.

A topic starts in ``pending_review`` and can move once, either to
``approved`` or to ``spam``. Both are terminal. Moving into ``approved``
runs the approval cascade: the first post of the topic is approved and the
topic owner becomes a globally approved user.
"""
from enum import Enum
import logging

from sqlalchemy import inspect, update
from sqlalchemy.orm.attributes import set_committed_value
from sqlalchemy.orm.exc import ObjectDeletedError
from sqlmodel import Session, select

from core.database import after_commit, transaction
from core.exceptions import InvalidTransition, NotFound, ValidationError
from core.metrics import topic_transitions_total
from models import Post, Topic, TopicState, UserApprovalStatus
from services.directory import SQLUserDirectory, UserDirectory
from services.posts import approve_post
from services.subscriptions import subscribe

logger = logging.getLogger(__name__)


class TopicEvent(str, Enum):
    APPROVE = "approve"
    SPAM = "spam"


TRANSITIONS = {
    (TopicState.PENDING_REVIEW, TopicEvent.APPROVE): TopicState.APPROVED,
    (TopicState.PENDING_REVIEW, TopicEvent.SPAM): TopicState.SPAM,
}


def next_state(current: TopicState, event: TopicEvent) -> TopicState:
    """Return the state reached by applying ``event`` to ``current``"""
    try:
        return TRANSITIONS[(current, event)]
    except KeyError:
        raise InvalidTransition(current, event.value)


class TopicStateMachine:
    def __init__(self, session: Session, directory: UserDirectory | None = None):
        self.session = session
        self.directory = directory or SQLUserDirectory(session)

    def approve(self, topic: Topic) -> Topic:
        with transaction(self.session):
            topic_id = self._transition(topic, TopicEvent.APPROVE)
            self._approve_user_and_posts(topic)
            after_commit(self.session, lambda: self._record(topic_id, TopicState.APPROVED))
        return topic

    def mark_spam(self, topic: Topic) -> Topic:
        with transaction(self.session):
            topic_id = self._transition(topic, TopicEvent.SPAM)
            after_commit(self.session, lambda: self._record(topic_id, TopicState.SPAM))
        return topic

    def on_create(self, topic: Topic) -> Topic:
        """Persist a freshly built topic and run its creation steps.

        Must be called once per topic, with its initial post attached.
        """
        with transaction(self.session):
            self._set_first_post_user(topic)
            self.session.add(topic)
            self.session.flush()
            subscribe(self.session, topic, topic.user_id)
            self._skip_pending_review_if_user_approved(topic)
        return topic

    def _transition(self, topic: Topic, event: TopicEvent) -> int:
        identity = inspect(topic).identity
        topic_id = identity[0] if identity else topic.id
        try:
            current = topic.state
        except ObjectDeletedError:
            raise NotFound("Topic", topic_id)
        target = next_state(current, event)
        # Compare-and-set: only one concurrent caller can move the row out of current
        result = self.session.exec(
            update(Topic)
            .where(Topic.id == topic_id, Topic.state == current)
            .values(state=target)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            actual = self.session.exec(select(Topic.state).where(Topic.id == topic_id)).first()
            if actual is None:
                raise NotFound("Topic", topic_id)
            set_committed_value(topic, "state", actual)
            raise InvalidTransition(actual, event.value)
        self.session.refresh(topic)
        return topic_id

    @staticmethod
    def _record(topic_id: int, state: TopicState) -> None:
        topic_transitions_total.labels(state=state.value).inc()
        logger.info(f"Topic {topic_id} moved to {state.value}")

    def _set_first_post_user(self, topic: Topic) -> None:
        if not topic.posts:
            raise ValidationError("A topic needs a first post")
        topic.posts[0].user_id = topic.user_id

    def _skip_pending_review_if_user_approved(self, topic: Topic) -> None:
        status = self.directory.get_approval_status(topic.user_id)
        if status == UserApprovalStatus.APPROVED:
            logger.info(f"Topic {topic.id} skips review, user {topic.user_id} is approved")
            self.approve(topic)

    def _approve_user_and_posts(self, topic: Topic) -> None:
        first_post = self.session.exec(
            select(Post)
            .where(Post.topic_id == topic.id)
            .order_by(Post.created_at, Post.id)
        ).first()
        if first_post is None:
            raise NotFound("Post", f"first post of topic {topic.id}")
        if not first_post.approved:
            approve_post(self.session, first_post)

        if self.directory.get_approval_status(topic.user_id) != UserApprovalStatus.APPROVED:
            self.directory.set_approval_status(topic.user_id, UserApprovalStatus.APPROVED)
