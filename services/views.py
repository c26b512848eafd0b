from datetime import datetime, timezone
import logging
import threading

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from core.database import after_commit, transaction
from core.exceptions import PersistenceError
from core.metrics import topic_views_total
from models import Topic, View

logger = logging.getLogger(__name__)

LOCK_STRIPES = 64


class ViewTracker:
    """Per-user view counters for topics.

    Increments for the same (topic, user) pair are serialized in-process by
    one of a fixed set of striped locks and applied in SQL as
    ``count = count + 1``, so concurrent views never lose an update. The
    first view inserts the row inside a savepoint; an insert that loses a
    race against another writer rolls back only that savepoint and falls
    back to the increment. Work runs inside ``transaction``, so a caller's
    enclosing transaction decides when it commits.
    """

    def __init__(self, stripes: int = LOCK_STRIPES):
        self._locks = [threading.Lock() for _ in range(stripes)]

    def _lock_for(self, key: tuple[int, int]) -> threading.Lock:
        return self._locks[hash(key) % len(self._locks)]

    def register_view(self, session: Session, topic: Topic, user_id: int | None) -> View | None:
        if user_id is None:
            return None

        topic_id = topic.id
        with self._lock_for((topic_id, user_id)):
            with transaction(session):
                if not self._increment(session, topic_id, user_id):
                    self._insert(session, topic_id, user_id)
                after_commit(session, topic_views_total.inc)

        return self.view_for(session, topic_id, user_id)

    def _insert(self, session: Session, topic_id: int, user_id: int) -> None:
        try:
            with session.begin_nested():
                session.add(View(topic_id=topic_id, user_id=user_id, count=1))
                session.flush()
        except IntegrityError:
            logger.debug(f"View row for topic {topic_id} user {user_id} created concurrently, retrying increment")
            if not self._increment(session, topic_id, user_id):
                logger.error(f"Failed to register view for topic {topic_id} by user {user_id}")
                raise PersistenceError(f"Could not record a view of topic {topic_id} by user {user_id}")

    def _increment(self, session: Session, topic_id: int, user_id: int) -> bool:
        result = session.exec(
            update(View)
            .where(View.topic_id == topic_id, View.user_id == user_id)
            .values(count=View.count + 1, updated_at=datetime.now(timezone.utc))
            .execution_options(synchronize_session=False)
        )
        return result.rowcount > 0

    def view_for(self, session: Session, topic_id: int, user_id: int | None) -> View | None:
        view = session.exec(
            select(View).where(View.topic_id == topic_id, View.user_id == user_id)
        ).first()
        if view is not None:
            # The counter is updated in SQL, reload the in-session copy
            session.refresh(view)
        return view


view_tracker = ViewTracker()


def register_view(session: Session, topic: Topic, user_id: int | None) -> View | None:
    """Count one view of ``topic`` by ``user_id``; anonymous views are ignored"""
    return view_tracker.register_view(session, topic, user_id)


def view_for(session: Session, topic: Topic, user_id: int | None) -> View | None:
    return view_tracker.view_for(session, topic.id, user_id)
