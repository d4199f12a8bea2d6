# src/ekko_server/core/indexes.py
"""
Maintenance of the secondary indexes held in the indexes shard.

All functions mutate the given in-memory shards in place; persisting them is
the coordinator's job.
"""

from __future__ import annotations

from typing import Dict, List, Optional, Set

from ekko_server.core.ranking import TRENDING_SIZE, rebuild_trending
from ekko_server.models.documents import (
    IndexesShard,
    MetricsShard,
    PostsShard,
    RankingShard,
    RelationsShard,
)


def _prepend(lists: Dict[str, List[str]], key: str, content_id: str) -> None:
    current = [cid for cid in lists.get(key, []) if cid != content_id]
    lists[key] = [content_id] + current


def _remove(lists: Dict[str, List[str]], key: str, content_id: str) -> None:
    if key not in lists:
        return
    remaining = [cid for cid in lists[key] if cid != content_id]
    if remaining:
        lists[key] = remaining
    else:
        del lists[key]


def on_create(
    indexes: IndexesShard,
    content_id: str,
    owner_id: str,
    audio_id: str,
    language: Optional[str],
) -> None:
    feeds = indexes.feeds
    feeds.latest = [content_id] + [cid for cid in feeds.latest if cid != content_id]
    _prepend(indexes.by_user, owner_id, content_id)
    _prepend(indexes.by_audio, audio_id, content_id)
    if language:
        _prepend(indexes.by_language, language, content_id)


def on_like(indexes: IndexesShard, ranking: RankingShard, limit: int = TRENDING_SIZE) -> None:
    indexes.feeds.trending = rebuild_trending(ranking.scores, limit)


def remove_from_indexes(indexes: IndexesShard, content_id: str, owner_id: str, audio_id: str) -> None:
    feeds = indexes.feeds
    feeds.latest = [cid for cid in feeds.latest if cid != content_id]
    feeds.trending = [cid for cid in feeds.trending if cid != content_id]
    _remove(indexes.by_user, owner_id, content_id)
    _remove(indexes.by_audio, audio_id, content_id)
    # the post's language may have been unknown or changed, so sweep them all
    for language in list(indexes.by_language):
        _remove(indexes.by_language, language, content_id)


def remove_likes(relations: RelationsShard, content_id: str) -> None:
    for user_id in list(relations.likes):
        _remove(relations.likes, user_id, content_id)


def indexed_ids(indexes: IndexesShard) -> Set[str]:
    ids = set(indexes.feeds.latest) | set(indexes.feeds.trending)
    for lists in (indexes.by_user, indexes.by_audio, indexes.by_language):
        for members in lists.values():
            ids.update(members)
    return ids


def dangling_ids(
    indexes: IndexesShard,
    posts: PostsShard,
    metrics: MetricsShard,
    ranking: RankingShard,
    relations: Optional[RelationsShard] = None,
) -> Set[str]:
    """
    Ids that break referential integrity: referenced by an index or relation
    without a post, or a post missing its metrics, ranking or `latest` entry.
    """
    existing = set(posts.posts)
    referenced = indexed_ids(indexes)
    if relations is not None:
        for liked in relations.likes.values():
            referenced.update(liked)

    bad = referenced - existing
    bad |= set(metrics.content) ^ existing
    bad |= set(ranking.scores) ^ existing
    bad |= existing - set(indexes.feeds.latest)
    return bad
