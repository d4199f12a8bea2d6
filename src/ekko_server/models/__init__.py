from .documents import (
    Audio,
    AudioShard,
    Clip,
    Document,
    IndexesShard,
    Metrics,
    MetricsShard,
    Post,
    PostsShard,
    Preferences,
    RankingShard,
    RelationsShard,
    SHARDS,
    User,
    UsersShard,
)
from .results import ErrorInfo, OperationResult

__all__ = [
    "Audio",
    "AudioShard",
    "Clip",
    "Document",
    "ErrorInfo",
    "IndexesShard",
    "Metrics",
    "MetricsShard",
    "OperationResult",
    "Post",
    "PostsShard",
    "Preferences",
    "RankingShard",
    "RelationsShard",
    "SHARDS",
    "User",
    "UsersShard",
]
