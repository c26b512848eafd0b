from typing import Protocol
import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from core.exceptions import NotFound, PersistenceError
from models import User, UserApprovalStatus

logger = logging.getLogger(__name__)


class UserDirectory(Protocol):
    """Read/write access to a user's global moderation status"""

    def get_approval_status(self, user_id: int) -> UserApprovalStatus: ...

    def set_approval_status(self, user_id: int, status: UserApprovalStatus) -> None: ...


class SQLUserDirectory:
    """User directory backed by the ``forum_state`` column of the user table.

    Writes join the caller's transaction; committing is up to the caller.
    """

    def __init__(self, session: Session):
        self.session = session

    def _get_user(self, user_id: int) -> User:
        try:
            user = self.session.get(User, user_id)
        except SQLAlchemyError as e:
            raise PersistenceError(str(e)) from e
        if not user:
            raise NotFound("User", user_id)
        return user

    def get_approval_status(self, user_id: int) -> UserApprovalStatus:
        return self._get_user(user_id).forum_state

    def set_approval_status(self, user_id: int, status: UserApprovalStatus) -> None:
        user = self._get_user(user_id)
        user.forum_state = status
        self.session.add(user)
        logger.info(f"User {user_id} forum state set to {status.value}")
