"""Sanity checks for records entering the recommendation pipeline."""

import math
import uuid
from datetime import datetime, timedelta, timezone
from typing import Iterable, Sequence

from milvuso.models import (
    FeatureVector,
    ItemFeature,
    ModelParameters,
    RecommendationRequest,
    TrainingExample,
    UserAction,
    UserProfile,
)

MAX_EMBEDDING_DIM = 2048
MAX_CONTEXT_DIM = 512
MAX_NAME_BYTES = 100
MAX_RECOMMENDATIONS = 1000
MAX_EXCLUDED_ITEMS = 10000

_ALLOWED_PUNCTUATION = "-_.,!?"


class ValidationError(ValueError):
    """Raised when a record fails validation."""


def _is_nil(identifier: uuid.UUID) -> bool:
    return identifier.int == 0


def _all_finite(values: Iterable[float]) -> bool:
    return all(math.isfinite(value) for value in values)


def _byte_length(text: str) -> int:
    return len(text.encode("utf-8"))


def validate_user_action(action: UserAction) -> None:
    if _is_nil(action.user_id):
        raise ValidationError("User ID cannot be nil")
    if _is_nil(action.item_id):
        raise ValidationError("Item ID cannot be nil")
    now = datetime.now(timezone.utc)
    if action.timestamp > now + timedelta(hours=1):
        raise ValidationError("Timestamp cannot be more than 1 hour in the future")
    if action.timestamp < now - timedelta(days=365):
        raise ValidationError("Timestamp cannot be more than 1 year in the past")


def validate_user_profile(profile: UserProfile) -> None:
    if _is_nil(profile.user_id):
        raise ValidationError("User ID cannot be nil")
    if not profile.embedding:
        raise ValidationError("User embedding cannot be empty")
    if not _all_finite(profile.embedding):
        raise ValidationError("User embedding contains invalid values (NaN or Infinity)")
    if len(profile.embedding) > MAX_EMBEDDING_DIM:
        raise ValidationError("User embedding dimension too large (max 2048)")


def validate_item_feature(feature: ItemFeature) -> None:
    if _is_nil(feature.item_id):
        raise ValidationError("Item ID cannot be nil")
    if not feature.embedding:
        raise ValidationError("Item embedding cannot be empty")
    if not _all_finite(feature.embedding):
        raise ValidationError("Item embedding contains invalid values (NaN or Infinity)")
    if len(feature.embedding) > MAX_EMBEDDING_DIM:
        raise ValidationError("Item embedding dimension too large (max 2048)")
    if not feature.category:
        raise ValidationError("Item category cannot be empty")
    if _byte_length(feature.category) > MAX_NAME_BYTES:
        raise ValidationError("Item category too long (max 100 characters)")
    if not 0.0 <= feature.popularity_score <= 1.0:
        raise ValidationError("Item popularity score must be between 0.0 and 1.0")


def validate_recommendation_request(request: RecommendationRequest) -> None:
    if _is_nil(request.user_id):
        raise ValidationError("User ID cannot be nil")
    if request.num_recommendations == 0:
        raise ValidationError("Number of recommendations must be greater than 0")
    if request.num_recommendations > MAX_RECOMMENDATIONS:
        raise ValidationError("Number of recommendations too large (max 1000)")

    if request.filter_categories is not None:
        if not request.filter_categories:
            raise ValidationError("Filter categories cannot be empty if specified")
        for category in request.filter_categories:
            if not category:
                raise ValidationError("Category name cannot be empty")
            if _byte_length(category) > MAX_NAME_BYTES:
                raise ValidationError("Category name too long (max 100 characters)")

    if request.exclude_items is not None:
        if len(request.exclude_items) > MAX_EXCLUDED_ITEMS:
            raise ValidationError("Too many items to exclude (max 10000)")
        if any(_is_nil(item_id) for item_id in request.exclude_items):
            raise ValidationError("Excluded item ID cannot be nil")


def validate_training_example(example: TrainingExample) -> None:
    if _is_nil(example.user_id):
        raise ValidationError("User ID cannot be nil")
    if _is_nil(example.item_id):
        raise ValidationError("Item ID cannot be nil")
    if not math.isfinite(example.label):
        raise ValidationError("Training label contains invalid values (NaN or Infinity)")
    if not 0.0 <= example.label <= 1.0:
        raise ValidationError("Training label must be between 0.0 and 1.0")
    if not example.user_features:
        raise ValidationError("User features cannot be empty")
    if not _all_finite(example.user_features):
        raise ValidationError("User features contain invalid values (NaN or Infinity)")
    if not example.item_features:
        raise ValidationError("Item features cannot be empty")
    if not _all_finite(example.item_features):
        raise ValidationError("Item features contain invalid values (NaN or Infinity)")
    if not _all_finite(example.context_features):
        raise ValidationError("Context features contain invalid values (NaN or Infinity)")
    if len(example.user_features) > MAX_EMBEDDING_DIM:
        raise ValidationError("User features dimension too large (max 2048)")
    if len(example.item_features) > MAX_EMBEDDING_DIM:
        raise ValidationError("Item features dimension too large (max 2048)")
    if len(example.context_features) > MAX_CONTEXT_DIM:
        raise ValidationError("Context features dimension too large (max 512)")


def validate_feature_vector(feature: FeatureVector) -> None:
    if _is_nil(feature.id):
        raise ValidationError("Feature vector ID cannot be nil")
    if not feature.vector:
        raise ValidationError("Feature vector cannot be empty")
    if not _all_finite(feature.vector):
        raise ValidationError("Feature vector contains invalid values (NaN or Infinity)")
    if len(feature.vector) > MAX_EMBEDDING_DIM:
        raise ValidationError("Feature vector dimension too large (max 2048)")


def _check_weights(rows: Sequence[Sequence[float]], label: str) -> None:
    for row in rows:
        if not row:
            raise ValidationError(f"{label} embedding weights cannot be empty")
        if not _all_finite(row):
            raise ValidationError(f"{label} embedding weights contain invalid values")


def validate_model_parameters(params: ModelParameters) -> None:
    if not params.version:
        raise ValidationError("Model version cannot be empty")
    if _byte_length(params.version) > MAX_NAME_BYTES:
        raise ValidationError("Model version too long (max 100 characters)")
    _check_weights(params.user_embedding_weights, "User")
    _check_weights(params.item_embedding_weights, "Item")
    if not _all_finite(params.bias_weights):
        raise ValidationError("Bias weights contain invalid values")


def sanitize_string(text: str, max_length: int) -> str:
    """Keep alphanumerics, whitespace and -_.,!? and cut to max_length characters."""
    kept = (
        ch for ch in text
        if ch.isalnum() or ch.isspace() or ch in _ALLOWED_PUNCTUATION
    )
    return "".join(ch for _, ch in zip(range(max_length), kept))


def validate_uuid_string(uuid_str: str) -> uuid.UUID:
    try:
        return uuid.UUID(uuid_str)
    except (ValueError, TypeError, AttributeError):
        raise ValidationError(f"Invalid UUID format: {uuid_str}") from None


def validate_embedding_dimension(embedding: Sequence[float], expected_dim: int) -> None:
    if len(embedding) != expected_dim:
        raise ValidationError(
            f"Embedding dimension mismatch: expected {expected_dim}, got {len(embedding)}"
        )


def validate_batch_size(batch_size: int, max_batch_size: int) -> None:
    if batch_size == 0:
        raise ValidationError("Batch size cannot be zero")
    if batch_size > max_batch_size:
        raise ValidationError(f"Batch size too large: {batch_size} (max {max_batch_size})")