import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from core.config import get_settings
from models import Forum, User, UserApprovalStatus, TopicCreate, PostCreate
from services.topics import create_topic


@pytest.fixture(scope="session")
def settings():
    return get_settings()


@pytest.fixture
def test_db_engine(settings):
    engine = create_engine(
        settings.TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def db_session(test_db_engine):
    with Session(test_db_engine) as session:
        yield session


@pytest.fixture
def forum(db_session):
    forum = Forum(name="General")
    db_session.add(forum)
    db_session.commit()
    db_session.refresh(forum)
    return forum


@pytest.fixture
def make_user(db_session):
    def _make_user(username, forum_state=UserApprovalStatus.PENDING):
        user = User(username=username, email=f"{username}@example.com", forum_state=forum_state)
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user
    return _make_user


@pytest.fixture
def user(make_user):
    return make_user("newcomer")


@pytest.fixture
def approved_user(make_user):
    return make_user("regular", UserApprovalStatus.APPROVED)


@pytest.fixture
def make_topic(db_session, forum):
    def _make_topic(author, subject="Hello", text="First post", directory=None):
        return create_topic(
            db_session,
            forum_id=forum.id,
            user_id=author.id,
            data=TopicCreate(subject=subject, posts=[PostCreate(text=text)]),
            directory=directory,
        )
    return _make_topic


class RecordingDirectory:
    """In-memory user directory that records every status write"""

    def __init__(self, statuses=None, fail_on_set=None):
        self.statuses = dict(statuses or {})
        self.set_calls = []
        self.fail_on_set = fail_on_set

    def get_approval_status(self, user_id):
        return self.statuses.get(user_id, UserApprovalStatus.PENDING)

    def set_approval_status(self, user_id, status):
        if self.fail_on_set:
            raise self.fail_on_set
        self.set_calls.append((user_id, status))
        self.statuses[user_id] = status


@pytest.fixture
def recording_directory():
    return RecordingDirectory


@pytest.fixture
def file_engine(tmp_path):
    # Separate connections per thread need a real database file
    engine = create_engine(
        f"sqlite:///{tmp_path / 'forum.db'}",
        connect_args={"check_same_thread": False},
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    engine.dispose()
