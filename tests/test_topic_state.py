import pytest
from prometheus_client import REGISTRY
from sqlmodel import Session

from core.database import transaction
from core.exceptions import InvalidTransition, NotFound, PersistenceError
from models import Forum, Topic, TopicState, User, UserApprovalStatus, TopicCreate, PostCreate
from services.directory import SQLUserDirectory
import services.topic_state as topic_state
from services.topic_state import TopicEvent, TopicStateMachine, next_state
from services.posts import approve_post
from services.topics import create_topic, delete_topic


def test_next_state_legal_edges():
    assert next_state(TopicState.PENDING_REVIEW, TopicEvent.APPROVE) == TopicState.APPROVED
    assert next_state(TopicState.PENDING_REVIEW, TopicEvent.SPAM) == TopicState.SPAM


@pytest.mark.parametrize("current", [TopicState.APPROVED, TopicState.SPAM])
@pytest.mark.parametrize("event", [TopicEvent.APPROVE, TopicEvent.SPAM])
def test_next_state_terminal_states(current, event):
    with pytest.raises(InvalidTransition) as exc_info:
        next_state(current, event)
    assert exc_info.value.current == current
    assert exc_info.value.event == event.value


def test_new_topic_starts_pending_review(make_topic, user):
    topic = make_topic(user)
    assert topic.state == TopicState.PENDING_REVIEW
    assert topic.posts[0].approved is False


def test_approve_cascades_to_first_post_and_user(db_session, make_topic, user):
    topic = make_topic(user)

    TopicStateMachine(db_session).approve(topic)

    db_session.refresh(topic)
    db_session.refresh(user)
    assert topic.state == TopicState.APPROVED
    assert topic.posts[0].approved is True
    assert user.forum_state == UserApprovalStatus.APPROVED


def test_approve_only_touches_first_post(db_session, forum, user):
    topic = create_topic(
        db_session,
        forum_id=forum.id,
        user_id=user.id,
        data=TopicCreate(subject="Two posts", posts=[PostCreate(text="one"), PostCreate(text="two")]),
    )

    TopicStateMachine(db_session).approve(topic)

    db_session.refresh(topic)
    assert [post.approved for post in topic.posts] == [True, False]


def test_approve_succeeds_once(db_session, make_topic, user):
    topic = make_topic(user)
    machine = TopicStateMachine(db_session)
    machine.approve(topic)

    with pytest.raises(InvalidTransition):
        machine.approve(topic)
    with pytest.raises(InvalidTransition):
        machine.mark_spam(topic)

    db_session.refresh(topic)
    assert topic.state == TopicState.APPROVED


def test_mark_spam_is_terminal_and_skips_cascade(db_session, make_topic, user):
    topic = make_topic(user)
    machine = TopicStateMachine(db_session)
    machine.mark_spam(topic)

    with pytest.raises(InvalidTransition):
        machine.approve(topic)

    db_session.refresh(topic)
    db_session.refresh(user)
    assert topic.state == TopicState.SPAM
    assert topic.posts[0].approved is False
    assert user.forum_state == UserApprovalStatus.PENDING


def test_approved_author_skips_review(db_session, make_topic, approved_user, recording_directory):
    directory = recording_directory({approved_user.id: UserApprovalStatus.APPROVED})

    topic = make_topic(approved_user, directory=directory)

    assert topic.state == TopicState.APPROVED
    assert topic.posts[0].approved is True
    # Already approved, so no directory write
    assert directory.set_calls == []


def test_pending_author_is_approved_once(db_session, make_topic, user, recording_directory):
    directory = recording_directory()
    topic = make_topic(user, directory=directory)

    TopicStateMachine(db_session, directory).approve(topic)

    assert directory.set_calls == [(user.id, UserApprovalStatus.APPROVED)]


def test_stale_topic_loses_approval_race(file_engine, recording_directory):
    directory = recording_directory()
    with Session(file_engine) as session:
        forum = Forum(name="General")
        author = User(username="author")
        session.add_all([forum, author])
        session.commit()
        topic = create_topic(
            session, forum.id, author.id,
            {"subject": "Race", "posts": [{"text": "go"}]},
            directory=directory,
        )
        topic_id = topic.id

    with Session(file_engine) as first, Session(file_engine) as second:
        winner_copy = first.get(Topic, topic_id)
        loser_copy = second.get(Topic, topic_id)
        assert loser_copy.state == TopicState.PENDING_REVIEW

        TopicStateMachine(first, directory).approve(winner_copy)
        with pytest.raises(InvalidTransition):
            TopicStateMachine(second, directory).approve(loser_copy)

        assert loser_copy.state == TopicState.APPROVED

    assert len(directory.set_calls) == 1


def test_failed_cascade_rolls_back_transition(db_session, make_topic, user, recording_directory):
    topic = make_topic(user)
    directory = recording_directory(fail_on_set=PersistenceError("directory unavailable"))

    with pytest.raises(PersistenceError):
        TopicStateMachine(db_session, directory).approve(topic)

    db_session.refresh(topic)
    assert topic.state == TopicState.PENDING_REVIEW
    assert topic.posts[0].approved is False


def test_approve_without_posts_fails(db_session, forum, user):
    topic = Topic(subject="Orphan", forum_id=forum.id, user_id=user.id)
    db_session.add(topic)
    db_session.commit()

    with pytest.raises(NotFound):
        TopicStateMachine(db_session).approve(topic)

    db_session.refresh(topic)
    assert topic.state == TopicState.PENDING_REVIEW


def test_sql_directory_unknown_user(db_session):
    directory = SQLUserDirectory(db_session)
    with pytest.raises(NotFound):
        directory.get_approval_status(404)


def test_sql_directory_round_trip(db_session, user):
    directory = SQLUserDirectory(db_session)
    directory.set_approval_status(user.id, UserApprovalStatus.APPROVED)
    db_session.commit()

    assert directory.get_approval_status(user.id) == UserApprovalStatus.APPROVED


def _transitions(state):
    return REGISTRY.get_sample_value("forum_topic_transitions_total", {"state": state.value}) or 0.0


def _create_in(engine):
    with Session(engine) as session:
        forum = Forum(name="General")
        author = User(username="author")
        session.add_all([forum, author])
        session.commit()
        topic = create_topic(
            session, forum.id, author.id,
            {"subject": "Gone soon", "posts": [{"text": "bye"}]},
        )
        return topic.id


@pytest.mark.parametrize("moderate", ["approve", "mark_spam"])
def test_moderating_deleted_topic_raises_not_found(file_engine, moderate):
    topic_id = _create_in(file_engine)

    with Session(file_engine) as moderator, Session(file_engine) as owner:
        stale = moderator.get(Topic, topic_id)
        delete_topic(owner, owner.get(Topic, topic_id))

        with pytest.raises(NotFound) as exc_info:
            getattr(TopicStateMachine(moderator), moderate)(stale)
        assert exc_info.value.identifier == topic_id

        # A second attempt on the now expired copy fails the same way
        with pytest.raises(NotFound):
            getattr(TopicStateMachine(moderator), moderate)(stale)


def test_transition_counted_after_commit(db_session, make_topic, user):
    topic = make_topic(user)
    before = _transitions(TopicState.APPROVED)

    TopicStateMachine(db_session).approve(topic)

    assert _transitions(TopicState.APPROVED) == before + 1


def test_transition_not_counted_when_outer_work_rolls_back(db_session, make_topic, user):
    topic = make_topic(user)
    before = _transitions(TopicState.APPROVED)

    with pytest.raises(RuntimeError):
        with transaction(db_session):
            TopicStateMachine(db_session).approve(topic)
            raise RuntimeError("request aborted")

    assert _transitions(TopicState.APPROVED) == before
    db_session.refresh(topic)
    assert topic.state == TopicState.PENDING_REVIEW


def test_auto_approval_counted_once(db_session, make_topic, approved_user):
    before = _transitions(TopicState.APPROVED)
    make_topic(approved_user)
    assert _transitions(TopicState.APPROVED) == before + 1


def test_approve_with_first_post_already_approved(db_session, make_topic, user, recording_directory, monkeypatch):
    topic = make_topic(user)
    approve_post(db_session, topic.posts[0])
    directory = recording_directory()
    post_approvals = []
    monkeypatch.setattr(topic_state, "approve_post", lambda session, post: post_approvals.append(post.id))

    TopicStateMachine(db_session, directory).approve(topic)

    db_session.refresh(topic)
    assert topic.state == TopicState.APPROVED
    assert topic.posts[0].approved is True
    assert post_approvals == []
    assert directory.set_calls == [(user.id, UserApprovalStatus.APPROVED)]
