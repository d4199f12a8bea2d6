# src/ekko_server/models/documents.py
"""
Schemas of the persisted shards.

Each shard is one remote document. Every schema validates from an empty
object, so `Shard()` is the empty default used for absent shards,
corruption healing and first creation. On the wire field names are camelCase
(`ownerId`, `byUser`, ...).
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Type

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class Document(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


# ---------- Entities ----------

class Preferences(Document):
    liked_audio: List[str] = Field(default_factory=list, alias="likedAudio")
    language_weights: Dict[str, float] = Field(default_factory=dict, alias="languageWeights")


class User(Document):
    id: str
    name: str = "Anonymous"
    avatar: str = ""
    created_at: int = Field(..., alias="createdAt")
    preferences: Preferences = Field(default_factory=Preferences)


class Audio(Document):
    id: str
    language: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: int = Field(..., alias="createdAt")


class Clip(Document):
    source_url: str = Field(..., alias="sourceUrl", min_length=1)
    start: float = Field(default=0, ge=0)
    end: Optional[float] = None
    title: Optional[str] = None
    image: Optional[str] = None
    song: Optional[str] = None
    artist: Optional[str] = None

    @model_validator(mode="after")
    def _end_after_start(self) -> "Clip":
        if self.end is not None and self.end <= self.start:
            raise ValueError("clip end must be after start")
        return self


class Post(Document):
    id: str
    owner_id: str = Field(..., alias="ownerId")
    audio_id: str = Field(..., alias="audioId")
    clip: Clip
    language: Optional[str] = None
    created_at: int = Field(..., alias="createdAt")


class Metrics(Document):
    likes: int = Field(default=0, ge=0)
    plays: int = Field(default=0, ge=0)
    shares: int = Field(default=0, ge=0)
    comments: int = Field(default=0, ge=0)


# ---------- Shards ----------

class PostsShard(Document):
    posts: Dict[str, Post] = Field(default_factory=dict)


class MetricsShard(Document):
    content: Dict[str, Metrics] = Field(default_factory=dict)


class RankingShard(Document):
    scores: Dict[str, float] = Field(default_factory=dict)


class RelationsShard(Document):
    likes: Dict[str, List[str]] = Field(default_factory=dict)

    @field_validator("likes")
    @classmethod
    def _dedupe(cls, v: Dict[str, List[str]]) -> Dict[str, List[str]]:
        return {uid: list(dict.fromkeys(ids)) for uid, ids in v.items()}

    def has_like(self, user_id: str, content_id: str) -> bool:
        return content_id in self.likes.get(user_id, [])


class Feeds(Document):
    latest: List[str] = Field(default_factory=list)
    trending: List[str] = Field(default_factory=list)


class IndexesShard(Document):
    feeds: Feeds = Field(default_factory=Feeds)
    by_user: Dict[str, List[str]] = Field(default_factory=dict, alias="byUser")
    by_audio: Dict[str, List[str]] = Field(default_factory=dict, alias="byAudio")
    by_language: Dict[str, List[str]] = Field(default_factory=dict, alias="byLanguage")


class UsersShard(Document):
    users: Dict[str, User] = Field(default_factory=dict)


class AudioShard(Document):
    audio: Dict[str, Audio] = Field(default_factory=dict)


# ---------- Registry ----------

POSTS = "posts.json"
METRICS = "metrics.json"
RANKING = "ranking.json"
RELATIONS = "relations.json"
INDEXES = "indexes.json"
USERS = "users.json"
AUDIO = "audio.json"

SHARDS: Dict[str, Type[Document]] = {
    POSTS: PostsShard,
    METRICS: MetricsShard,
    RANKING: RankingShard,
    RELATIONS: RelationsShard,
    INDEXES: IndexesShard,
    USERS: UsersShard,
    AUDIO: AudioShard,
}
