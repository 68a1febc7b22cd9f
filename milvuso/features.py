"""Feature generation and action/feature joining for the stream workers."""

import logging
import random
from typing import Sequence

from milvuso.models import ActionType, FeatureVector, TrainingExample, UserAction, UserProfile
from milvuso.recommendation import action_weight, context_features
from milvuso.vector_db import VectorDbService

_log = logging.getLogger(__name__)

FEATURE_DIM = 128
DEFAULT_PROFILE_DIM = 128

_ACTION_SLOTS = {
    ActionType.VIEW: 0,
    ActionType.CLICK: 1,
    ActionType.LIKE: 2,
    ActionType.SHARE: 3,
    ActionType.PURCHASE: 4,
    ActionType.CONVERT: 5,
}


def get_label_from_action(action_type: ActionType) -> float:
    """Training label for an interaction of this kind."""
    return action_weight(action_type)


def generate_feature_vector_from_action(action: UserAction) -> list[float]:
    """One-hot action type, time of day and week, then random filler values."""
    features = [0.0] * FEATURE_DIM
    features[_ACTION_SLOTS[action.action_type]] = 1.0
    time_context = context_features(action)
    features[6] = time_context[0]
    features[7] = time_context[1]
    features[8:] = [random.random() * 2.0 - 1.0 for _ in range(FEATURE_DIM - 8)]
    return features


def generate_context_features(action: UserAction) -> list[float]:
    """Hour of day, day of week and action strength, padded to ten values."""
    return context_features(action)


def feature_vector_for_action(action: UserAction) -> FeatureVector:
    """The feature vector published for a user action, keyed by the user."""
    wire = action.to_dict()
    return FeatureVector(
        id=action.user_id,
        vector=generate_feature_vector_from_action(action),
        metadata={
            "action_type": wire["action_type"],
            "timestamp": wire["timestamp"],
            "item_id": wire["item_id"],
        },
    )


async def training_examples_from_actions(
    vector_db: VectorDbService, actions: Sequence[UserAction]
) -> list[TrainingExample]:
    """Join actions with stored profiles and items; actions on unknown items are skipped."""
    examples = []
    for action in actions:
        profile = await vector_db.get_user_profile(action.user_id)
        if profile is None:
            profile = UserProfile(action.user_id, embedding=[0.0] * DEFAULT_PROFILE_DIM)
        feature = await vector_db.get_item_feature(action.item_id)
        if feature is None:
            continue
        examples.append(
            TrainingExample(
                user_id=action.user_id,
                item_id=action.item_id,
                label=get_label_from_action(action.action_type),
                user_features=list(profile.embedding),
                item_features=list(feature.embedding),
                context_features=generate_context_features(action),
                timestamp=action.timestamp,
            )
        )
    _log.info("Processed %d joined actions", len(actions))
    return examples