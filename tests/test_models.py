import uuid
from datetime import datetime, timedelta, timezone

import pytest

from milvuso.models import (
    ActionType,
    ItemFeature,
    RecommendationRequest,
    UserAction,
    UserProfile,
)


def test_user_action_creation():
    user_id, item_id = uuid.uuid4(), uuid.uuid4()
    action = UserAction(user_id, item_id, ActionType.CLICK)
    assert action.user_id == user_id
    assert action.item_id == item_id
    assert action.action_type is ActionType.CLICK
    assert action.context is None
    assert abs(datetime.now(timezone.utc) - action.timestamp) < timedelta(seconds=5)


def test_user_action_with_context_returns_copy():
    action = UserAction(uuid.uuid4(), uuid.uuid4(), ActionType.VIEW)
    enriched = action.with_context({"page": "home"})
    assert enriched.context == {"page": "home"}
    assert action.context is None
    assert enriched.user_id == action.user_id


def test_user_action_round_trip():
    action = UserAction(uuid.uuid4(), uuid.uuid4(), ActionType.PURCHASE).with_context({"a": 1})
    restored = UserAction.from_dict(action.to_dict())
    assert restored == action


def test_user_action_dict_uses_variant_names():
    action = UserAction(uuid.uuid4(), uuid.uuid4(), ActionType.SHARE)
    data = action.to_dict()
    assert data["action_type"] == "Share"
    assert data["user_id"] == str(action.user_id)
    assert data["timestamp"].endswith("Z")


def test_user_action_missing_field():
    with pytest.raises(ValueError):
        UserAction.from_dict({"user_id": str(uuid.uuid4())})


def test_user_profile_creation():
    user_id = uuid.uuid4()
    profile = UserProfile(user_id, [0.0] * 128)
    assert profile.user_id == user_id
    assert len(profile.embedding) == 128
    assert profile.interaction_count == 0
    assert profile.preferences == []


def test_user_profile_updates():
    profile = UserProfile(uuid.uuid4(), [0.0] * 3)
    before = profile.last_updated
    profile.update_embedding([1.0, 2.0, 3.0])
    profile.increment_interactions()
    profile.increment_interactions()
    assert profile.embedding == [1.0, 2.0, 3.0]
    assert profile.interaction_count == 2
    assert profile.last_updated >= before


def test_user_profile_round_trip():
    profile = UserProfile(uuid.uuid4(), [0.5, -0.25], ["music"], interaction_count=7)
    assert UserProfile.from_dict(profile.to_dict()) == profile


def test_item_feature_builders():
    item_id = uuid.uuid4()
    feature = (
        ItemFeature(item_id, [0.1] * 128, "electronics")
        .with_tags(["smartphone", "android"])
        .with_popularity(0.8)
    )
    assert feature.item_id == item_id
    assert feature.category == "electronics"
    assert feature.popularity_score == 0.8
    assert feature.tags == ["smartphone", "android"]


def test_item_feature_defaults_and_round_trip():
    feature = ItemFeature(uuid.uuid4(), [0.2, 0.3], "books")
    assert feature.tags == []
    assert feature.popularity_score == 0.0
    assert ItemFeature.from_dict(feature.to_dict()) == feature


def test_recommendation_request():
    user_id = uuid.uuid4()
    request = RecommendationRequest(user_id, 10, ["electronics"], None)
    assert request.user_id == user_id
    assert request.num_recommendations == 10
    assert request.filter_categories == ["electronics"]
    assert request.exclude_items is None