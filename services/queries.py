from sqlalchemy import and_, func, or_
from sqlmodel import Session, select

from models import Topic, TopicState


class TopicQuery:
    """Chainable topic query.

    Every filter or ordering returns a new ``TopicQuery``; nothing touches
    the database until the query is iterated, and iterating again runs the
    statement again.
    """

    def __init__(self, session: Session, statement=None):
        self.session = session
        self.statement = statement if statement is not None else select(Topic)

    def _chain(self, statement) -> "TopicQuery":
        return TopicQuery(self.session, statement)

    def visible(self) -> "TopicQuery":
        return self._chain(self.statement.where(Topic.hidden == False))  # noqa: E712

    def in_forum(self, forum_id: int) -> "TopicQuery":
        return self._chain(self.statement.where(Topic.forum_id == forum_id))

    def by_pinned(self) -> "TopicQuery":
        return self._chain(self.statement.order_by(Topic.pinned.desc(), Topic.id))

    def by_most_recent_post(self) -> "TopicQuery":
        return self._chain(self.statement.order_by(Topic.last_post_at.desc(), Topic.id))

    def by_pinned_or_most_recent_post(self) -> "TopicQuery":
        return self._chain(
            self.statement.order_by(Topic.pinned.desc(), Topic.last_post_at.desc(), Topic.id)
        )

    def pending_review(self) -> "TopicQuery":
        return self._chain(self.statement.where(Topic.state == TopicState.PENDING_REVIEW))

    def approved(self) -> "TopicQuery":
        return self._chain(self.statement.where(Topic.state == TopicState.APPROVED))

    def approved_or_pending_review_for(self, user_id: int | None) -> "TopicQuery":
        """Approved topics, plus the user's own topics still awaiting review"""
        if user_id is None:
            return self.approved()
        return self._chain(
            self.statement.where(
                or_(
                    Topic.state == TopicState.APPROVED,
                    and_(Topic.state == TopicState.PENDING_REVIEW, Topic.user_id == user_id),
                )
            )
        )

    def __iter__(self):
        return iter(self.session.exec(self.statement).all())

    def all(self) -> list[Topic]:
        return list(self)

    def first(self) -> Topic | None:
        return self.session.exec(self.statement.limit(1)).first()

    def count(self) -> int:
        return self.session.exec(
            select(func.count()).select_from(self.statement.order_by(None).subquery())
        ).one()


def topics(session: Session) -> TopicQuery:
    return TopicQuery(session)
