# tests/test_coordinator.py
import pytest

from ekko_server.core.coordinator import ContentCoordinator
from ekko_server.core.indexes import dangling_ids
from ekko_server.errors import ConflictError, UpstreamUnavailable
from ekko_server.models.documents import (
    AUDIO,
    INDEXES,
    METRICS,
    POSTS,
    RANKING,
    RELATIONS,
    USERS,
)
from ekko_server.store.cache import ShardCache
from ekko_server.store.shard_store import ShardStore

CLIP = {"sourceUrl": "https://example.com/v/1", "start": 3, "end": 18, "title": "hook"}


def state(shards, name):
    return shards.load(name, fresh=True)[0]


def assert_consistent(shards):
    posts = state(shards, POSTS)
    metrics = state(shards, METRICS)
    ranking = state(shards, RANKING)
    relations = state(shards, RELATIONS)
    indexes = state(shards, INDEXES)
    assert dangling_ids(indexes, posts, metrics, ranking, relations) == set()


def create(coordinator, owner="u1", audio="a1"):
    result = coordinator.create_content(owner, audio, CLIP)
    assert result.ok, result.error
    return result.data["id"]


# ------------------ scenario ------------------

def test_create_like_delete_scenario(coordinator, shards):
    assert coordinator.register_audio("a1", "en").ok

    a = create(coordinator)
    idx = state(shards, INDEXES)
    assert idx.feeds.latest == [a]
    assert idx.by_user["u1"] == [a]
    assert idx.by_audio["a1"] == [a]
    assert idx.by_language["en"] == [a]
    assert idx.feeds.trending == []

    liked = coordinator.like_content("u2", a)
    assert liked.ok
    assert liked.data == {"contentId": a, "likes": 1, "score": 18}
    assert state(shards, METRICS).content[a].likes == 1
    assert state(shards, INDEXES).feeds.trending == [a]

    deleted = coordinator.delete_content(a)
    assert deleted.ok
    assert deleted.data == {"deleted": a}
    idx = state(shards, INDEXES)
    assert idx.feeds.latest == []
    assert idx.feeds.trending == []
    assert idx.by_user.get("u1", []) == []
    assert idx.by_audio.get("a1", []) == []
    assert idx.by_language.get("en", []) == []
    assert not state(shards, RELATIONS).has_like("u2", a)
    assert a not in state(shards, POSTS).posts
    assert a not in state(shards, METRICS).content
    assert a not in state(shards, RANKING).scores


def test_create_writes_shards_in_saga_order(coordinator, blobs):
    create(coordinator)
    assert [name for name, _ in blobs.commits] == [POSTS, METRICS, RANKING, INDEXES]


def test_create_records_post_fields(coordinator, shards, clock):
    coordinator.register_audio("a1", " EN ")
    result = coordinator.create_content("u1", "a1", CLIP)
    post = state(shards, POSTS).posts[result.data["id"]]
    assert post.owner_id == "u1"
    assert post.language == "en"
    assert post.created_at == int(clock.now * 1000)
    assert post.clip.title == "hook"
    assert state(shards, RANKING).scores[post.id] == 0
    assert state(shards, METRICS).content[post.id].likes == 0


def test_create_with_unregistered_audio_has_no_language(coordinator, shards):
    cid = create(coordinator, audio="a-unknown")
    idx = state(shards, INDEXES)
    assert idx.by_audio["a-unknown"] == [cid]
    assert idx.by_language == {}


def test_ids_are_unique_and_time_ordered(coordinator, clock):
    first = create(coordinator)
    same_instant = create(coordinator)
    clock.advance(1)
    later = create(coordinator)
    assert len({first, same_instant, later}) == 3
    assert first < later and same_instant < later


@pytest.mark.parametrize("owner,audio,clip", [
    ("", "a1", CLIP),
    ("u1", "  ", CLIP),
    ("u1", "a1", {}),
    ("u1", "a1", None),
])
def test_create_requires_fields(coordinator, blobs, owner, audio, clip):
    result = coordinator.create_content(owner, audio, clip)
    assert not result.ok
    assert result.error.code == "bad_request"
    assert blobs.commits == []


def test_create_rejects_invalid_clip(coordinator, blobs):
    result = coordinator.create_content("u1", "a1", {"sourceUrl": "https://x", "start": 10, "end": 5})
    assert result.error.code == "bad_request"
    assert result.error.details["errors"]
    assert blobs.commits == []


# ------------------ likes ------------------

def test_like_is_idempotent(coordinator, shards, blobs):
    cid = create(coordinator)
    assert coordinator.like_content("u2", cid).ok
    writes = len(blobs.commits)

    again = coordinator.like_content("u2", cid)
    assert not again.ok
    assert again.error.code == "already_liked"
    assert len(blobs.commits) == writes
    assert state(shards, METRICS).content[cid].likes == 1


def test_like_unknown_content_is_not_found(coordinator, blobs):
    result = coordinator.like_content("u2", "c_missing")
    assert result.error.code == "not_found"
    assert blobs.commits == []


def test_like_writes_in_saga_order(coordinator, blobs):
    cid = create(coordinator)
    del blobs.commits[:]
    coordinator.like_content("u2", cid)
    assert [name for name, _ in blobs.commits] == [RELATIONS, METRICS, RANKING, INDEXES]


def test_like_updates_registered_user_preferences(coordinator, shards, blobs):
    coordinator.register_audio("a1", "pt")
    user = coordinator.create_user("Ana").data
    cid = create(coordinator)
    del blobs.commits[:]

    assert coordinator.like_content(user["id"], cid).ok
    assert blobs.commits[-1][0] == USERS
    prefs = state(shards, USERS).users[user["id"]].preferences
    assert prefs.liked_audio == ["a1"]
    assert prefs.language_weights == {"pt": 1}


def test_like_score_decays_with_age(coordinator, shards, clock):
    cid = create(coordinator)
    clock.advance(2 * 3600)
    assert coordinator.like_content("u2", cid).data["score"] == 3 + 10
    clock.advance(30 * 3600)
    assert coordinator.like_content("u3", cid).data["score"] == 6


def test_trending_holds_engaged_posts_only(coordinator, shards, clock):
    quiet = create(coordinator)
    clock.advance(1)
    popular = create(coordinator)
    coordinator.like_content("u2", popular)
    coordinator.like_content("u3", popular)
    assert state(shards, INDEXES).feeds.trending == [popular]
    assert quiet in state(shards, INDEXES).feeds.latest


# ------------------ delete ------------------

def test_delete_unknown_content_is_not_found(coordinator, blobs):
    result = coordinator.delete_content("c_missing")
    assert not result.ok
    assert result.error.code == "not_found"
    assert blobs.commits == []


def test_delete_writes_every_referencing_shard(coordinator, blobs):
    cid = create(coordinator)
    coordinator.like_content("u2", cid)
    del blobs.commits[:]
    coordinator.delete_content(cid)
    assert [name for name, _ in blobs.commits] == [POSTS, METRICS, RANKING, RELATIONS, INDEXES]


def test_referential_integrity_after_mixed_operations(coordinator, shards, clock):
    coordinator.register_audio("a1", "en")
    coordinator.register_audio("a2", "es")
    ids = []
    for owner, audio in [("u1", "a1"), ("u2", "a2"), ("u1", "a2"), ("u3", "a1")]:
        ids.append(create(coordinator, owner, audio))
        clock.advance(60)
    for user in ("u1", "u2", "u3"):
        coordinator.like_content(user, ids[1])
    coordinator.like_content("u2", ids[0])
    coordinator.like_content("u3", ids[3])
    assert_consistent(shards)

    coordinator.delete_content(ids[1])
    assert_consistent(shards)
    coordinator.like_content("u4", ids[2])
    coordinator.delete_content(ids[0])
    assert_consistent(shards)

    idx = state(shards, INDEXES)
    assert idx.feeds.latest == [ids[3], ids[2]]
    assert set(idx.feeds.trending) == {ids[2], ids[3]}
    assert idx.by_language == {"en": [ids[3]], "es": [ids[2]]}
    assert state(shards, RELATIONS).likes == {"u3": [ids[3]], "u4": [ids[2]]}


# ------------------ failures ------------------

def test_upstream_failure_mid_saga_reports_progress(coordinator, blobs, shards):
    blobs.fail_put(RANKING, UpstreamUnavailable("boom"))
    result = coordinator.create_content("u1", "a1", CLIP)
    assert not result.ok
    assert result.error.code == "unavailable"
    assert result.error.details["committed"] == [POSTS, METRICS]
    assert result.error.details["failed"] == RANKING
    # no partial writes after the failure
    assert INDEXES not in blobs.names()


def test_conflict_twice_fails_operation(coordinator, blobs):
    cid = create(coordinator)
    blobs.fail_put(RELATIONS, ConflictError("stale"), times=2)
    result = coordinator.like_content("u2", cid)
    assert result.error.code == "conflict"
    assert result.error.details["committed"] == []
    assert result.error.details["failed"] == RELATIONS


def test_conflict_once_is_absorbed(coordinator, blobs, shards):
    cid = create(coordinator)
    blobs.fail_put(METRICS, ConflictError("stale"))
    assert coordinator.like_content("u2", cid).ok
    assert state(shards, METRICS).content[cid].likes == 1


def test_unexpected_error_becomes_internal_error(coordinator, blobs):
    blobs.fail_put(POSTS, RuntimeError("kaput"))
    result = coordinator.create_content("u1", "a1", CLIP)
    assert result.error.code == "internal_error"
    assert result.error.details == {"committed": [], "failed": POSTS}


def test_corrupt_shard_heals_and_operation_proceeds(coordinator, blobs, shards):
    create(coordinator)
    blobs.overwrite(METRICS, b"{not sealed")
    shards.cache.clear()
    cid = create(coordinator)
    assert cid in state(shards, METRICS).content
    assert (METRICS, "heal metrics.json") in blobs.commits


# ------------------ concurrent writers ------------------

@pytest.fixture
def other(blobs, key, clock):
    """A second process sharing the same blob store, with its own cache."""
    return ContentCoordinator(ShardStore(blobs, key, cache=ShardCache(ttl=10, clock=clock)), clock=clock)


def test_like_with_stale_cache_keeps_the_other_writers_post(coordinator, other, shards, clock):
    ours = create(coordinator)  # warms our cache
    clock.advance(1)
    theirs = create(other)

    liked = coordinator.like_content("u2", ours)
    assert liked.ok, liked.error
    assert liked.data["likes"] == 1

    assert_consistent(shards)
    assert state(shards, INDEXES).feeds.latest == [theirs, ours]
    assert state(shards, INDEXES).feeds.trending == [ours]
    assert set(state(shards, METRICS).content) == {ours, theirs}


def test_interleaved_creates_lose_no_post(coordinator, other, shards, clock):
    first = create(coordinator)
    clock.advance(1)
    second = create(other)
    clock.advance(1)
    third = create(coordinator)

    assert set(state(shards, POSTS).posts) == {first, second, third}
    assert state(shards, INDEXES).feeds.latest == [third, second, first]
    assert state(shards, INDEXES).by_user["u1"] == [third, second, first]
    assert_consistent(shards)


def test_like_seen_only_after_reload_is_refused(coordinator, other, shards):
    cid = create(coordinator)
    assert coordinator.like_content("u2", cid).ok  # caches relations
    assert other.like_content("u3", cid).ok

    result = coordinator.like_content("u3", cid)
    assert not result.ok
    assert result.error.code == "conflict"
    assert result.error.details["failed"] == RELATIONS
    assert state(shards, METRICS).content[cid].likes == 2


def test_audio_registered_elsewhere_is_refused(coordinator, other, shards):
    assert coordinator.register_audio("a0", "en").ok  # caches the catalog
    assert other.register_audio("a1", "en").ok

    result = coordinator.register_audio("a1", "fr")
    assert result.error.code == "conflict"
    assert state(shards, AUDIO).audio["a1"].language == "en"


# ------------------ read-only queries ------------------

def test_suggest_unions_audio_language_and_trending(coordinator, clock):
    coordinator.register_audio("a1", "en")
    coordinator.register_audio("a2", "en")
    coordinator.register_audio("a3", "de")
    source = create(coordinator, audio="a1")
    clock.advance(1)
    same_audio = create(coordinator, audio="a1")
    clock.advance(1)
    same_language = create(coordinator, audio="a2")
    clock.advance(1)
    other = create(coordinator, audio="a3")
    coordinator.like_content("u9", other)
    coordinator.like_content("u9", source)

    result = coordinator.suggest(source)
    assert result.ok
    assert result.data == [same_audio, same_language, other]


def test_suggest_is_truncated_and_read_only(coordinator, clock, blobs):
    source = create(coordinator)
    for _ in range(12):
        clock.advance(1)
        create(coordinator)
    writes = len(blobs.commits)
    result = coordinator.suggest(source)
    assert len(result.data) == 10
    assert source not in result.data
    assert len(blobs.commits) == writes


def test_suggest_unknown_content(coordinator):
    assert coordinator.suggest("c_missing").error.code == "not_found"


def test_feeds_are_hydrated_and_paged(coordinator, clock):
    ids = []
    for _ in range(3):
        ids.append(create(coordinator))
        clock.advance(1)
    coordinator.like_content("u2", ids[0])

    latest = coordinator.latest_feed(limit=2)
    assert latest.data["total"] == 3
    assert [item["id"] for item in latest.data["items"]] == [ids[2], ids[1]]
    assert latest.data["items"][0]["metrics"]["likes"] == 0

    page_two = coordinator.latest_feed(limit=2, offset=2)
    assert [item["id"] for item in page_two.data["items"]] == [ids[0]]

    trending = coordinator.trending_feed()
    assert [item["id"] for item in trending.data["items"]] == [ids[0]]
    assert trending.data["items"][0]["score"] > 0

    assert coordinator.latest_feed(limit=0).error.code == "bad_request"


def test_get_content(coordinator):
    cid = create(coordinator)
    result = coordinator.get_content(cid)
    assert result.data["id"] == cid
    assert result.data["ownerId"] == "u1"
    assert result.data["clip"]["sourceUrl"] == CLIP["sourceUrl"]
    assert coordinator.get_content("nope").error.code == "not_found"


def test_register_audio_twice_is_conflict(coordinator):
    assert coordinator.register_audio("a1", "en").ok
    again = coordinator.register_audio("a1", "fr")
    assert again.error.code == "conflict"


def test_create_user_defaults(coordinator):
    user = coordinator.create_user().data
    assert user["id"].startswith("u_")
    assert user["name"] == "Anonymous"
    assert user["preferences"] == {"likedAudio": [], "languageWeights": {}}
