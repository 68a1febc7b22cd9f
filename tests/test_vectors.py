import math
import uuid
from datetime import datetime, timedelta, timezone

import pytest

from milvuso.vectors import (
    batch_process,
    calculate_diversity_score,
    cosine_similarity,
    euclidean_distance,
    exponential_decay_weight,
    generate_user_id_from_string,
    manhattan_distance,
    normalize_vector,
    relu,
    retry_with_backoff,
    sigmoid,
    softmax,
    top_k_indices,
    weighted_average,
)


def test_cosine_similarity():
    assert cosine_similarity([1.0, 0.0, 0.0], [0.0, 1.0, 0.0]) == 0.0
    assert abs(cosine_similarity([1.0, 1.0], [1.0, 1.0]) - 1.0) < 1e-6


def test_cosine_similarity_edge_cases():
    assert cosine_similarity([1.0, 2.0], [1.0]) == 0.0
    assert cosine_similarity([0.0, 0.0], [1.0, 1.0]) == 0.0


def test_euclidean_distance():
    assert abs(euclidean_distance([0.0, 0.0], [3.0, 4.0]) - 5.0) < 1e-6
    assert euclidean_distance([1.0], [1.0, 2.0]) == math.inf


def test_manhattan_distance():
    assert manhattan_distance([0.0, 0.0], [3.0, -4.0]) == 7.0
    assert manhattan_distance([1.0], []) == math.inf


def test_normalize_vector():
    v = normalize_vector([3.0, 4.0])
    assert abs(math.sqrt(sum(x * x for x in v)) - 1.0) < 1e-6
    assert normalize_vector([0.0, 0.0]) == [0.0, 0.0]


def test_top_k_indices():
    assert top_k_indices([0.1, 0.5, 0.3, 0.9, 0.2], 2) == [3, 1]
    assert top_k_indices([0.2, 0.1], 5) == [0, 1]


def test_weighted_average():
    assert weighted_average([([1.0, 0.0], 0.5), ([0.0, 1.0], 0.5)]) == [0.5, 0.5]
    assert weighted_average([]) == []


def test_weighted_average_skips_mismatched():
    result = weighted_average([([2.0, 4.0], 1.0), ([9.0], 3.0)])
    assert result == [2.0, 4.0]


def test_generate_user_id_is_stable():
    first = generate_user_id_from_string("alice")
    assert first == generate_user_id_from_string("alice")
    assert first.bytes[:8] == first.bytes[8:]
    assert first != generate_user_id_from_string("bob")


def test_calculate_diversity_score():
    a, b, c = uuid.uuid4(), uuid.uuid4(), uuid.uuid4()
    categories = {a: "books", b: "books", c: "food"}
    assert calculate_diversity_score([a, b, c], categories) == pytest.approx(2 / 3)
    assert calculate_diversity_score([a], categories) == 0.0
    assert calculate_diversity_score([uuid.uuid4(), uuid.uuid4()], categories) == 0.0


def test_exponential_decay_weight():
    now = datetime.now(timezone.utc)
    assert exponential_decay_weight(now, 1.0) == pytest.approx(1.0, abs=1e-3)
    older = exponential_decay_weight(now - timedelta(hours=5), 1.0)
    newer = exponential_decay_weight(now - timedelta(hours=1), 1.0)
    assert 0.0 < older < newer < 1.0


def test_activations():
    assert sigmoid(0.0) == 0.5
    assert sigmoid(-1000.0) == 0.0
    assert relu(-2.0) == 0.0
    assert relu(1.5) == 1.5


def test_softmax():
    probs = softmax([1.0, 2.0, 3.0])
    assert sum(probs) == pytest.approx(1.0)
    assert probs[0] < probs[1] < probs[2]
    assert softmax([]) == []


def test_batch_process():
    result = batch_process([1, 2, 3, 4, 5], 2, lambda chunk: [sum(chunk)])
    assert result == [3, 7, 5]
    with pytest.raises(ValueError):
        batch_process([1], 0, lambda chunk: chunk)


@pytest.mark.asyncio
async def test_retry_with_backoff_succeeds_after_failures():
    calls = []

    async def flaky():
        calls.append(1)
        if len(calls) < 3:
            raise RuntimeError("boom")
        return "done"

    assert await retry_with_backoff(flaky, 3, 0.0) == "done"
    assert len(calls) == 3


@pytest.mark.asyncio
async def test_retry_with_backoff_gives_up():
    calls = []

    async def failing():
        calls.append(1)
        raise KeyError("missing")

    with pytest.raises(KeyError):
        await retry_with_backoff(failing, 2, timedelta(0))
    assert len(calls) == 3