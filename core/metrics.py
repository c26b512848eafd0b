from prometheus_client import Counter

topic_transitions_total = Counter(
    "forum_topic_transitions_total",
    "Topic moderation state transitions",
    ["state"]
)

topic_views_total = Counter(
    "forum_topic_views_total",
    "Topic views registered by signed-in users"
)

topic_subscriptions_total = Counter(
    "forum_topic_subscriptions_total",
    "Topic subscriptions created"
)
