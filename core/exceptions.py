class ForumError(Exception):
    """Base class for every error raised by the forum core"""


class ValidationError(ForumError):
    """Raised when a topic or post fails validation before being persisted"""


class InvalidTransition(ForumError):
    """Raised when a moderation event is not legal from the current state"""

    def __init__(self, current, event: str):
        self.current = current
        self.event = event
        state = getattr(current, "value", current)
        super().__init__(f"Cannot {event} a topic in state '{state}'")


class PersistenceError(ForumError):
    """Raised when the storage layer or the user directory fails"""


class NotFound(ForumError):
    def __init__(self, kind: str, identifier):
        self.kind = kind
        self.identifier = identifier
        super().__init__(f"{kind} {identifier} not found")


class TopicLocked(ForumError):
    def __init__(self, topic_id: int):
        self.topic_id = topic_id
        super().__init__(f"Topic {topic_id} is locked and cannot be replied to")
