"""Publishing: the idempotent publisher, topic state, quality gate and dedupe."""

from tackle_content.publish.dedupe import content_hash, find_exact_duplicate
from tackle_content.publish.publisher import (
    PublishError,
    PublishErrorCode,
    Publisher,
    PublishResult,
    PublishState,
    generate_topic_key,
    route_path,
)
from tackle_content.publish.quality import QualityGate, QualityReport
from tackle_content.publish.refresh import (
    REFRESH_SCHEDULES,
    RefreshPriority,
    identify_pruning_candidates,
    needs_refresh,
    refresh_priority,
)
from tackle_content.publish.topics import TopicStateError, TopicStateStore

__all__ = [
    "PublishError",
    "PublishErrorCode",
    "PublishResult",
    "PublishState",
    "Publisher",
    "QualityGate",
    "QualityReport",
    "REFRESH_SCHEDULES",
    "RefreshPriority",
    "TopicStateError",
    "TopicStateStore",
    "content_hash",
    "find_exact_duplicate",
    "generate_topic_key",
    "identify_pruning_candidates",
    "needs_refresh",
    "refresh_priority",
    "route_path",
]
