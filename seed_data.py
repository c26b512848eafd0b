import logging
import random

from sqlmodel import Session

from core.database import create_db_and_tables, get_engine
from models import Forum, User, UserApprovalStatus, TopicCreate, PostCreate
from services.posts import reply_to_topic
from services.topic_state import TopicStateMachine
from services.topics import create_topic, lock_topic, pin_topic
from services.views import register_view

logger = logging.getLogger(__name__)

# Data pools
USERNAMES = [
    "juan", "maria", "alberto", "lucia", "pedro", "ana", "carlos", "sofia",
    "john", "emma", "michael", "sarah"
]

FORUMS = {
    "General": "Anything that does not fit elsewhere",
    "Help": "Questions and answers",
    "Announcements": "News from the moderators",
}

TOPIC_SUBJECTS = [
    "Welcome to the forum!",
    "How do I reset my password?",
    "Post your setup",
    "Weekly off-topic thread",
    "Feature requests",
    "Rules and guidelines",
    "Introduce yourself",
    "Best resources for beginners?",
]

POST_CONTENTS = [
    "Glad to be here, thanks for having me.",
    "Has anyone else run into this?",
    "Here is what worked for me.",
    "Please read the pinned thread first.",
    "Great question, following.",
    "I'd love to see this added.",
]


def create_test_data(session: Session, seed: int | None = None) -> dict:
    rng = random.Random(seed)

    forums = [Forum(name=name, description=description) for name, description in FORUMS.items()]
    session.add_all(forums)

    # The first few users are already trusted, the rest go through review
    users = [
        User(
            username=username,
            email=f"{username}@example.com",
            forum_state=UserApprovalStatus.APPROVED if i < 4 else UserApprovalStatus.PENDING,
        )
        for i, username in enumerate(USERNAMES)
    ]
    session.add_all(users)
    session.commit()

    topics = []
    for subject in TOPIC_SUBJECTS:
        author = rng.choice(users)
        topic = create_topic(
            session,
            forum_id=rng.choice(forums).id,
            user_id=author.id,
            data=TopicCreate(subject=subject, posts=[PostCreate(text=rng.choice(POST_CONTENTS))]),
        )
        topics.append(topic)

    machine = TopicStateMachine(session)
    for topic in topics:
        if topic.pending_review:
            # Moderators clear most of the queue and flag the rest
            if rng.random() < 0.75:
                machine.approve(topic)
            else:
                machine.mark_spam(topic)

    for topic in topics:
        for replier in rng.sample(users, rng.randint(0, 3)):
            reply_to_topic(session, topic, replier.id, rng.choice(POST_CONTENTS))
        for viewer in rng.sample(users, rng.randint(1, 5)):
            for _ in range(rng.randint(1, 3)):
                register_view(session, topic, viewer.id)

    pin_topic(session, topics[0])
    lock_topic(session, topics[-1])

    logger.info(f"Created {len(forums)} forums, {len(users)} users and {len(topics)} topics")
    return {"forums": forums, "users": users, "topics": topics}


if __name__ == "__main__":
    create_db_and_tables()
    with Session(get_engine()) as session:
        create_test_data(session)
