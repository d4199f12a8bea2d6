# src/ekko_server/core/ranking.py
from __future__ import annotations

import heapq
from typing import List, Mapping, Tuple

from ekko_server.models.documents import Metrics

MS_PER_HOUR = 3_600_000
TRENDING_SIZE = 20

# (max age in hours, bonus), checked in order
FRESHNESS_BONUS: Tuple[Tuple[float, float], ...] = ((1, 15), (6, 10), (24, 5))

LIKE_WEIGHT = 3
SHARE_WEIGHT = 5
COMMENT_WEIGHT = 4
PLAY_WEIGHT = 0.5


def freshness_bonus(age_hours: float) -> float:
    for max_age, bonus in FRESHNESS_BONUS:
        if age_hours < max_age:
            return bonus
    return 0


def score(metrics: Metrics, created_at: int, now: int) -> float:
    """Trending score of one post. `created_at` and `now` are epoch milliseconds."""
    age_hours = (now - created_at) / MS_PER_HOUR
    return (
        metrics.likes * LIKE_WEIGHT
        + metrics.shares * SHARE_WEIGHT
        + metrics.comments * COMMENT_WEIGHT
        + metrics.plays * PLAY_WEIGHT
        + freshness_bonus(age_hours)
    )


def rebuild_trending(scores: Mapping[str, float], limit: int = TRENDING_SIZE) -> List[str]:
    """
    Top `limit` content ids by score, ties going to the larger (newer) id.
    Posts without engagement (score 0) are not ranked.
    """
    ranked = ((s, cid) for cid, s in scores.items() if s > 0)
    return [cid for _, cid in heapq.nlargest(limit, ranked)]
