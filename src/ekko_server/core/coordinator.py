# src/ekko_server/core/coordinator.py
"""
ContentCoordinator: the operations exposed to callers.

The blob store only offers single-document compare-and-swap, so each compound
operation is a saga: load every shard it touches, then commit one mutation
per shard in a fixed order. A mutation is replayed on a freshly loaded copy
when its save hits a stale token. The order puts the authoritative shard
(posts) first and the indexes last, so an index never names an id whose post
is not durable yet. There is no rollback; when a save fails, the error
details list the shards already committed and the one that failed.

Every operation returns an OperationResult and never raises.
"""

from __future__ import annotations

import json
import logging
import secrets
import time
from itertools import chain
from typing import Any, Callable, Dict, List, Optional

from pydantic import ValidationError

from ekko_server.core import indexes as index_maintainer
from ekko_server.core.ranking import TRENDING_SIZE, score
from ekko_server.errors import ConflictError, NotFoundError, StoreError
from ekko_server.models.documents import (
    AUDIO,
    INDEXES,
    METRICS,
    POSTS,
    RANKING,
    RELATIONS,
    USERS,
    Audio,
    Clip,
    Metrics,
    Post,
    User,
)
from ekko_server.models.results import OperationResult
from ekko_server.store.shard_store import ShardStore

logger = logging.getLogger(__name__)

SUGGESTION_LIMIT = 10
PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


class _Saga:
    """Per-operation bookkeeping of loaded shards, versions and committed writes."""

    def __init__(self, shards: ShardStore, operation: str) -> None:
        self.shards = shards
        self.operation = operation
        self.documents: Dict[str, Any] = {}
        self.versions: Dict[str, Optional[str]] = {}
        self.committed: List[str] = []
        self.pending: Optional[str] = None

    def load(self, name: str) -> Any:
        document, version = self.shards.load(name)
        self.documents[name] = document
        self.versions[name] = version
        return document

    def commit(self, name: str, mutate: Callable[[Any], None]) -> None:
        """Apply `mutate` to the loaded shard and save it; on a stale token it is replayed on a fresh copy."""
        self.pending = name
        document = self.documents[name]
        mutate(document)
        self.versions[name] = self.shards.save(name, document, self.versions[name], self.operation, mutate=mutate)
        self.committed.append(name)
        self.pending = None

    def progress(self) -> Dict[str, Any]:
        if not self.committed and self.pending is None:
            return {}
        return {"committed": list(self.committed), "failed": self.pending}


def _require(**fields: Any) -> None:
    for field, value in fields.items():
        if value is None or (isinstance(value, str) and not value.strip()):
            raise ValueError(f"{field} required")
        if isinstance(value, (dict, list)) and not value:
            raise ValueError(f"{field} required")


def _allocate_id(prefix: str, now_ms: int, taken: Any) -> str:
    # zero-padded so that ids sort in creation order
    candidate = f"{prefix}_{now_ms:013d}"
    while candidate in taken:
        candidate = f"{prefix}_{now_ms:013d}_{secrets.token_hex(3)}"
    return candidate


def _normalize_language(language: Optional[str]) -> Optional[str]:
    if language is None:
        return None
    language = language.strip().lower()
    return language or None


class ContentCoordinator:
    def __init__(
        self,
        shards: ShardStore,
        clock: Callable[[], float] = time.time,
        trending_size: int = TRENDING_SIZE,
        suggestion_limit: int = SUGGESTION_LIMIT,
        page_size: int = PAGE_SIZE,
    ) -> None:
        self.shards = shards
        self.trending_size = trending_size
        self.suggestion_limit = suggestion_limit
        self.page_size = page_size
        self._clock = clock

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def _run(self, operation: str, body: Callable[[_Saga], OperationResult]) -> OperationResult:
        saga = _Saga(self.shards, operation)
        try:
            return body(saga)
        except NotFoundError as exc:
            return OperationResult.failure(exc.code, exc.message, exc.details)
        except StoreError as exc:
            details = {**exc.details, **saga.progress()}
            logger.warning("%s failed (%s): %s; progress=%s", operation, exc.code, exc.message, saga.progress())
            return OperationResult.failure(exc.code, exc.message, details)
        except ValidationError as exc:
            errors = json.loads(exc.json(include_url=False))
            return OperationResult.failure("bad_request", "Invalid request", {"errors": errors})
        except ValueError as exc:
            return OperationResult.failure("bad_request", str(exc))
        except Exception:
            logger.exception("%s failed unexpectedly", operation)
            return OperationResult.failure("internal_error", f"{operation} failed", saga.progress())

    # ---------- helpers ----------

    def _hydrate(self, post: Post, metrics: Any, ranking: Any) -> Dict[str, Any]:
        out = post.to_wire()
        out["metrics"] = metrics.content.get(post.id, Metrics()).to_wire()
        out["score"] = ranking.scores.get(post.id, 0)
        return out

    def _page(self, limit: Optional[int], cap: int) -> int:
        if limit is None:
            return min(self.page_size, cap)
        if limit < 1:
            raise ValueError("limit must be positive")
        return min(limit, cap)

    # ---------- users & audio ----------

    def create_user(self, name: Optional[str] = None, avatar: Optional[str] = None) -> OperationResult:
        def body(saga: _Saga) -> OperationResult:
            users = saga.load(USERS)
            now = self._now_ms()
            user = User(
                id=_allocate_id("u", now, users.users),
                name=(name or "").strip() or "Anonymous",
                avatar=avatar or "",
                created_at=now,
            )

            def add_user(shard: Any) -> None:
                if user.id in shard.users:
                    raise ConflictError("User id taken", {"userId": user.id})
                shard.users[user.id] = user

            saga.commit(USERS, add_user)
            logger.info("Created user %s", user.id)
            return OperationResult.success(user.to_wire())

        return self._run("create user", body)

    def register_audio(
        self,
        audio_id: str,
        language: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> OperationResult:
        def body(saga: _Saga) -> OperationResult:
            _require(audio_id=audio_id)
            catalog = saga.load(AUDIO)
            if audio_id in catalog.audio:
                return OperationResult.failure("conflict", "Audio already registered", {"audioId": audio_id})
            audio = Audio(
                id=audio_id,
                language=_normalize_language(language),
                metadata=metadata or {},
                created_at=self._now_ms(),
            )

            def add_audio(shard: Any) -> None:
                if audio_id in shard.audio:
                    raise ConflictError("Audio already registered", {"audioId": audio_id})
                shard.audio[audio_id] = audio

            saga.commit(AUDIO, add_audio)
            return OperationResult.success(audio.to_wire())

        return self._run("register audio", body)

    # ---------- content ----------

    def create_content(self, owner_id: str, audio_id: str, clip: Any) -> OperationResult:
        def body(saga: _Saga) -> OperationResult:
            _require(owner_id=owner_id, audio_id=audio_id, clip=clip)
            descriptor = clip if isinstance(clip, Clip) else Clip.model_validate(clip)

            posts = saga.load(POSTS)
            saga.load(METRICS)
            saga.load(RANKING)
            saga.load(INDEXES)
            catalog = saga.load(AUDIO)

            now = self._now_ms()
            content_id = _allocate_id("c", now, posts.posts)
            audio = catalog.audio.get(audio_id)
            language = audio.language if audio else None

            post = Post(
                id=content_id,
                owner_id=owner_id,
                audio_id=audio_id,
                clip=descriptor,
                language=language,
                created_at=now,
            )

            def add_post(shard: Any) -> None:
                if content_id in shard.posts:
                    raise ConflictError("Content id taken", {"contentId": content_id})
                shard.posts[content_id] = post

            def add_metrics(shard: Any) -> None:
                shard.content[content_id] = Metrics()

            def add_score(shard: Any) -> None:
                shard.scores[content_id] = 0

            def index(shard: Any) -> None:
                index_maintainer.on_create(shard, content_id, owner_id, audio_id, language)

            saga.commit(POSTS, add_post)
            saga.commit(METRICS, add_metrics)
            saga.commit(RANKING, add_score)
            saga.commit(INDEXES, index)
            logger.info("Created content %s for %s", content_id, owner_id)
            return OperationResult.success(post.to_wire())

        return self._run("create content", body)

    def like_content(self, user_id: str, content_id: str) -> OperationResult:
        def body(saga: _Saga) -> OperationResult:
            _require(user_id=user_id, content_id=content_id)
            relations = saga.load(RELATIONS)
            posts = saga.load(POSTS)
            post = posts.posts.get(content_id)
            if post is None:
                raise NotFoundError("Post not found", {"contentId": content_id})
            if relations.has_like(user_id, content_id):
                return OperationResult.failure("already_liked", "Already liked", {"contentId": content_id})

            saga.load(METRICS)
            saga.load(RANKING)
            saga.load(INDEXES)
            users = saga.load(USERS)
            catalog = saga.load(AUDIO)
            registered = user_id in users.users
            now = self._now_ms()
            # each mutation reads what the previous one committed
            outcome: Dict[str, Any] = {}

            def add_like(shard: Any) -> None:
                if shard.has_like(user_id, content_id):
                    raise ConflictError("Already liked", {"contentId": content_id})
                shard.likes.setdefault(user_id, []).append(content_id)

            def count_like(shard: Any) -> None:
                counters = shard.content.setdefault(content_id, Metrics())
                counters.likes += 1
                outcome["counters"] = counters

            def rescore(shard: Any) -> None:
                shard.scores[content_id] = score(outcome["counters"], post.created_at, now)
                outcome["ranking"] = shard

            def retrend(shard: Any) -> None:
                index_maintainer.on_like(shard, outcome["ranking"], self.trending_size)

            def remember(shard: Any) -> None:
                user = shard.users.get(user_id)
                if user is not None:
                    _record_preference(user, post, catalog.audio.get(post.audio_id))

            saga.commit(RELATIONS, add_like)
            saga.commit(METRICS, count_like)
            saga.commit(RANKING, rescore)
            saga.commit(INDEXES, retrend)
            if registered:
                saga.commit(USERS, remember)
            return OperationResult.success(
                {
                    "contentId": content_id,
                    "likes": outcome["counters"].likes,
                    "score": outcome["ranking"].scores[content_id],
                }
            )

        return self._run("like content", body)

    def delete_content(self, content_id: str) -> OperationResult:
        def body(saga: _Saga) -> OperationResult:
            _require(content_id=content_id)
            posts = saga.load(POSTS)
            post = posts.posts.get(content_id)
            if post is None:
                raise NotFoundError("Post not found", {"contentId": content_id})

            saga.load(METRICS)
            saga.load(RANKING)
            saga.load(RELATIONS)
            saga.load(INDEXES)
            owner_id, audio_id = post.owner_id, post.audio_id

            saga.commit(POSTS, lambda shard: shard.posts.pop(content_id, None))
            saga.commit(METRICS, lambda shard: shard.content.pop(content_id, None))
            saga.commit(RANKING, lambda shard: shard.scores.pop(content_id, None))
            saga.commit(RELATIONS, lambda shard: index_maintainer.remove_likes(shard, content_id))
            saga.commit(
                INDEXES,
                lambda shard: index_maintainer.remove_from_indexes(shard, content_id, owner_id, audio_id),
            )
            logger.info("Deleted content %s", content_id)
            return OperationResult.success({"deleted": content_id})

        return self._run("delete content", body)

    # ---------- read-only queries ----------

    def get_content(self, content_id: str) -> OperationResult:
        def body(saga: _Saga) -> OperationResult:
            _require(content_id=content_id)
            posts = saga.load(POSTS)
            post = posts.posts.get(content_id)
            if post is None:
                raise NotFoundError("Post not found", {"contentId": content_id})
            return OperationResult.success(self._hydrate(post, saga.load(METRICS), saga.load(RANKING)))

        return self._run("get content", body)

    def suggest(self, content_id: str) -> OperationResult:
        def body(saga: _Saga) -> OperationResult:
            _require(content_id=content_id)
            posts = saga.load(POSTS)
            post = posts.posts.get(content_id)
            if post is None:
                raise NotFoundError("Post not found", {"contentId": content_id})
            catalog = saga.load(AUDIO)
            indexes = saga.load(INDEXES)

            audio = catalog.audio.get(post.audio_id)
            language = (audio.language if audio else None) or post.language
            candidates = chain(
                indexes.by_audio.get(post.audio_id, []),
                indexes.by_language.get(language, []) if language else [],
                indexes.feeds.trending,
            )
            unique = dict.fromkeys(cid for cid in candidates if cid != content_id)
            return OperationResult.success(list(unique)[: self.suggestion_limit])

        return self._run("suggest", body)

    def latest_feed(self, limit: Optional[int] = None, offset: int = 0) -> OperationResult:
        def body(saga: _Saga) -> OperationResult:
            size = self._page(limit, MAX_PAGE_SIZE)
            if offset < 0:
                raise ValueError("offset must not be negative")
            indexes = saga.load(INDEXES)
            ids = indexes.feeds.latest
            items = self._hydrate_ids(saga, ids[offset:offset + size])
            return OperationResult.success({"items": items, "total": len(ids)})

        return self._run("latest feed", body)

    def trending_feed(self, limit: Optional[int] = None) -> OperationResult:
        def body(saga: _Saga) -> OperationResult:
            size = self._page(limit, self.trending_size)
            indexes = saga.load(INDEXES)
            ids = indexes.feeds.trending
            items = self._hydrate_ids(saga, ids[:size])
            return OperationResult.success({"items": items, "total": len(ids)})

        return self._run("trending feed", body)

    def _hydrate_ids(self, saga: _Saga, ids: List[str]) -> List[Dict[str, Any]]:
        if not ids:
            return []
        posts = saga.load(POSTS)
        metrics = saga.load(METRICS)
        ranking = saga.load(RANKING)
        return [self._hydrate(posts.posts[cid], metrics, ranking) for cid in ids if cid in posts.posts]


def _record_preference(user: User, post: Post, audio: Optional[Audio]) -> None:
    prefs = user.preferences
    if post.audio_id not in prefs.liked_audio:
        prefs.liked_audio.append(post.audio_id)
    language = (audio.language if audio else None) or post.language
    if language:
        prefs.language_weights[language] = prefs.language_weights.get(language, 0) + 1
