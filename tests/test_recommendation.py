import json
import uuid
from datetime import datetime, timezone

import pytest

from milvuso.config import Config
from milvuso.models import (
    ActionType,
    ItemFeature,
    RecommendationRequest,
    UserAction,
    UserProfile,
)
from milvuso.recommendation import RecommendationService, action_weight, context_features
from milvuso.vector_db import VectorDbService


class FakeRedis:
    def __init__(self):
        self.store = {}
        self.ttls = {}

    async def get(self, key):
        return self.store.get(key)

    async def set(self, key, value, ex=None):
        self.store[key] = value.encode("utf-8")
        self.ttls[key] = ex


@pytest.fixture
def config():
    cfg = Config()
    cfg.milvus.dimension = 3
    cfg.recommendation.embedding_dim = 3
    cfg.recommendation.similarity_threshold = 0.3
    return cfg


@pytest.fixture
def cache():
    return FakeRedis()


@pytest.fixture
def db(config):
    return VectorDbService(config)


@pytest.fixture
def service(db, config, cache):
    return RecommendationService(db, config, cache)


def test_action_weights_match_action_strengths():
    assert action_weight(ActionType.VIEW) == 0.1
    assert action_weight(ActionType.CLICK) == 0.3
    assert action_weight(ActionType.LIKE) == 0.7
    assert action_weight(ActionType.SHARE) == 0.8
    assert action_weight(ActionType.PURCHASE) == 1.0
    assert action_weight(ActionType.CONVERT) == 1.0


def test_context_features_encode_time_and_strength():
    stamp = datetime(2024, 1, 3, 12, tzinfo=timezone.utc)
    action = UserAction(uuid.uuid4(), uuid.uuid4(), ActionType.LIKE, timestamp=stamp)
    features = context_features(action)
    assert len(features) == 10
    assert features[0] == pytest.approx(12 / 24)
    assert features[1] == pytest.approx(stamp.weekday() / 7)
    assert features[2] == action_weight(ActionType.LIKE)
    assert features[3:] == [0.0] * 7


async def _seed(service, db):
    user = UserProfile(uuid.uuid4(), embedding=[1.0, 0.0, 0.0])
    await db.insert_user_profile(user)
    items = {
        "a": ItemFeature(uuid.uuid4(), [1.0, 0.0, 0.0], "x"),
        "b": ItemFeature(uuid.uuid4(), [0.0, 1.0, 0.0], "y"),
        "c": ItemFeature(uuid.uuid4(), [0.9, 0.1, 0.0], "x"),
    }
    for feature in items.values():
        await service.add_item_feature(feature)
    return user, items


@pytest.mark.asyncio
async def test_add_item_feature_stores_in_db_and_cache(service, db, cache, config):
    feature = ItemFeature(uuid.uuid4(), [0.1, 0.2, 0.3], "books").with_tags(["new"])
    await service.add_item_feature(feature)
    assert await db.get_item_feature(feature.item_id) == feature
    key = f"item_feature:{feature.item_id}"
    assert cache.ttls[key] == config.redis.ttl_seconds
    assert ItemFeature.from_dict(json.loads(cache.store[key])) == feature


@pytest.mark.asyncio
async def test_new_user_gets_profile_and_no_recommendations(service, db, cache):
    user_id = uuid.uuid4()
    response = await service.get_recommendations(RecommendationRequest(user_id, 5))
    assert response.user_id == user_id
    assert response.recommendations == []
    stored = await db.get_user_profile(user_id)
    assert stored.embedding == [0.0, 0.0, 0.0]
    assert f"user_profile:{user_id}" in cache.store


@pytest.mark.asyncio
async def test_recommendations_are_ranked_and_thresholded(service, db, config):
    user, items = await _seed(service, db)
    response = await service.get_recommendations(RecommendationRequest(user.user_id, 5))
    ids = [rec.item_id for rec in response.recommendations]
    assert ids[0] == items["a"].item_id
    assert items["b"].item_id not in ids
    scores = [rec.score for rec in response.recommendations]
    assert scores == sorted(scores, reverse=True)
    assert all(score >= config.recommendation.similarity_threshold for score in scores)
    assert all(
        rec.reason.startswith("Similar to your preferences (score: ")
        for rec in response.recommendations
    )


@pytest.mark.asyncio
async def test_excluded_items_are_skipped(service, db):
    user, items = await _seed(service, db)
    request = RecommendationRequest(user.user_id, 5, exclude_items=[items["a"].item_id])
    response = await service.get_recommendations(request)
    ids = [rec.item_id for rec in response.recommendations]
    assert items["a"].item_id not in ids
    assert items["c"].item_id in ids


@pytest.mark.asyncio
async def test_category_filter(service, db):
    user, items = await _seed(service, db)
    request = RecommendationRequest(user.user_id, 5, filter_categories=["x"])
    response = await service.get_recommendations(request)
    assert {rec.category for rec in response.recommendations} == {"x"}
    only_y = RecommendationRequest(user.user_id, 5, filter_categories=["y"])
    assert (await service.get_recommendations(only_y)).recommendations == []


@pytest.mark.asyncio
async def test_number_of_recommendations_is_capped(service, db):
    user, _ = await _seed(service, db)
    response = await service.get_recommendations(RecommendationRequest(user.user_id, 1))
    assert len(response.recommendations) == 1


@pytest.mark.asyncio
async def test_profile_read_from_redis_cache(service, db, cache):
    profile = UserProfile(uuid.uuid4(), embedding=[1.0, 0.0, 0.0])
    cache.store[f"user_profile:{profile.user_id}"] = json.dumps(profile.to_dict()).encode()
    feature = ItemFeature(uuid.uuid4(), [1.0, 0.0, 0.0], "x")
    await service.add_item_feature(feature)
    response = await service.get_recommendations(RecommendationRequest(profile.user_id, 3))
    assert [rec.item_id for rec in response.recommendations] == [feature.item_id]
    assert await db.get_user_profile(profile.user_id) is None


@pytest.mark.asyncio
async def test_unreadable_cache_entry_falls_back_to_new_profile(service, db, cache):
    user_id = uuid.uuid4()
    cache.store[f"user_profile:{user_id}"] = b"not json"
    await service.get_recommendations(RecommendationRequest(user_id, 3))
    stored = await db.get_user_profile(user_id)
    assert stored.user_id == user_id
    assert UserProfile.from_dict(json.loads(cache.store[f"user_profile:{user_id}"])) == stored


@pytest.mark.asyncio
async def test_process_user_action_updates_profile_and_model(service, db):
    user = UserProfile(uuid.uuid4(), embedding=[1.0, 0.0, 0.0])
    await db.insert_user_profile(user)
    feature = ItemFeature(uuid.uuid4(), [0.0, 1.0, 0.0], "x")
    await service.add_item_feature(feature)

    await service.process_user_action(UserAction(user.user_id, feature.item_id, ActionType.PURCHASE))

    stored = await db.get_user_profile(user.user_id)
    assert stored.embedding == pytest.approx([0.9, 0.1, 0.0])
    assert user.user_id in service.algorithm.user_embeddings
    assert feature.item_id in service.algorithm.item_embeddings

    await service.process_user_action(UserAction(user.user_id, feature.item_id, ActionType.VIEW))
    again = await db.get_user_profile(user.user_id)
    assert again.embedding[1] > stored.embedding[1] * 0.9


@pytest.mark.asyncio
async def test_process_user_action_counts_interactions_in_cache(service, db, cache):
    user = UserProfile(uuid.uuid4(), embedding=[1.0, 0.0, 0.0])
    await db.insert_user_profile(user)
    feature = ItemFeature(uuid.uuid4(), [0.0, 1.0, 0.0], "x")
    await service.add_item_feature(feature)
    for _ in range(2):
        await service.process_user_action(UserAction(user.user_id, feature.item_id, ActionType.CLICK))
    response = await service.get_recommendations(RecommendationRequest(user.user_id, 3))
    assert response.user_id == user.user_id
    assert service._user_profiles[user.user_id].interaction_count == 2


@pytest.mark.asyncio
async def test_process_action_for_unknown_item_changes_nothing(service, db):
    user = UserProfile(uuid.uuid4(), embedding=[1.0, 0.0, 0.0])
    await db.insert_user_profile(user)
    await service.process_user_action(UserAction(user.user_id, uuid.uuid4(), ActionType.LIKE))
    stored = await db.get_user_profile(user.user_id)
    assert stored.embedding == [1.0, 0.0, 0.0]
    assert stored.interaction_count == 0
    assert service.algorithm.user_embeddings == {}