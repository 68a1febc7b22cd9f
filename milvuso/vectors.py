"""Vector arithmetic, scoring helpers and small processing utilities."""

import asyncio
import logging
import math
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Iterable, Mapping, Sequence, TypeVar

T = TypeVar("T")
R = TypeVar("R")

_log = logging.getLogger(__name__)

_MASK64 = (1 << 64) - 1


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine of the angle between a and b; 0.0 if lengths differ or a norm is zero."""
    if len(a) != len(b):
        return 0.0
    dot = sum(x * y for x, y in zip(a, b))
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(y * y for y in b))
    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0
    return dot / (norm_a * norm_b)


def euclidean_distance(a: Sequence[float], b: Sequence[float]) -> float:
    if len(a) != len(b):
        return math.inf
    return math.sqrt(sum((x - y) ** 2 for x, y in zip(a, b)))


def manhattan_distance(a: Sequence[float], b: Sequence[float]) -> float:
    if len(a) != len(b):
        return math.inf
    return sum(abs(x - y) for x, y in zip(a, b))


def normalize_vector(vector: Sequence[float]) -> list[float]:
    """Return the vector scaled to unit length (unchanged if its norm is zero)."""
    norm = math.sqrt(sum(x * x for x in vector))
    if norm > 0.0:
        return [x / norm for x in vector]
    return list(vector)


def weighted_average(vectors: Sequence[tuple[Sequence[float], float]]) -> list[float]:
    """Weighted mean of vectors; those not matching the first one's length are skipped."""
    if not vectors:
        return []
    dim = len(vectors[0][0])
    result = [0.0] * dim
    total_weight = 0.0
    for vector, weight in vectors:
        if len(vector) != dim:
            continue
        result = [acc + value * weight for acc, value in zip(result, vector)]
        total_weight += weight
    if total_weight > 0.0:
        result = [x / total_weight for x in result]
    return result


def top_k_indices(scores: Sequence[float], k: int) -> list[int]:
    """Indices of the k highest scores, highest first; ties keep their order."""
    ranked = sorted(enumerate(scores), key=lambda pair: pair[1], reverse=True)
    return [index for index, _ in ranked[:k]]


def _rotl(value: int, bits: int) -> int:
    return ((value << bits) | (value >> (64 - bits))) & _MASK64


def _sip_round(v0: int, v1: int, v2: int, v3: int) -> tuple[int, int, int, int]:
    v0 = (v0 + v1) & _MASK64
    v1 = _rotl(v1, 13) ^ v0
    v0 = _rotl(v0, 32)
    v2 = (v2 + v3) & _MASK64
    v3 = _rotl(v3, 16) ^ v2
    v0 = (v0 + v3) & _MASK64
    v3 = _rotl(v3, 21) ^ v0
    v2 = (v2 + v1) & _MASK64
    v1 = _rotl(v1, 17) ^ v2
    v2 = _rotl(v2, 32)
    return v0, v1, v2, v3


def _siphash13(data: bytes, k0: int = 0, k1: int = 0) -> int:
    state = (
        k0 ^ 0x736F6D6570736575,
        k1 ^ 0x646F72616E646F6D,
        k0 ^ 0x6C7967656E657261,
        k1 ^ 0x7465646279746573,
    )
    whole = len(data) - len(data) % 8
    blocks = [int.from_bytes(data[off:off + 8], "little") for off in range(0, whole, 8)]
    blocks.append(((len(data) & 0xFF) << 56) | int.from_bytes(data[whole:], "little"))
    for block in blocks:
        v0, v1, v2, v3 = state
        v0, v1, v2, v3 = _sip_round(v0, v1, v2, v3 ^ block)
        state = (v0 ^ block, v1, v2, v3)
    v0, v1, v2, v3 = state
    v2 ^= 0xFF
    for _ in range(3):
        v0, v1, v2, v3 = _sip_round(v0, v1, v2, v3)
    return v0 ^ v1 ^ v2 ^ v3


def generate_user_id_from_string(user_str: str) -> uuid.UUID:
    """Derive a stable UUID from a string; both halves hold the same 64-bit hash."""
    digest = _siphash13(user_str.encode("utf-8") + b"\xff").to_bytes(8, "big")
    return uuid.UUID(bytes=digest + digest)


def calculate_diversity_score(
    items: Sequence[uuid.UUID], item_categories: Mapping[uuid.UUID, str]
) -> float:
    """Distinct categories divided by the number of items with a known category."""
    if len(items) <= 1:
        return 0.0
    known = [item_categories[item] for item in items if item in item_categories]
    if not known:
        return 0.0
    return len(set(known)) / len(known)


def exponential_decay_weight(timestamp: datetime, decay_rate: float) -> float:
    """Weight decaying exponentially with the age of timestamp, per hour."""
    age_seconds = int((datetime.now(timezone.utc) - timestamp).total_seconds())
    return math.exp(-decay_rate * age_seconds / 3600.0)


def sigmoid(x: float) -> float:
    try:
        return 1.0 / (1.0 + math.exp(-x))
    except OverflowError:
        return 0.0


def relu(x: float) -> float:
    return max(x, 0.0)


def softmax(scores: Sequence[float]) -> list[float]:
    if not scores:
        return []
    max_score = max(scores)
    exps = [math.exp(x - max_score) for x in scores]
    total = sum(exps)
    if total > 0.0:
        return [x / total for x in exps]
    return [1.0 / len(scores)] * len(scores)


def batch_process(
    items: Sequence[T], batch_size: int, processor: Callable[[Sequence[T]], Iterable[R]]
) -> list[R]:
    """Feed items to processor in chunks of batch_size and concatenate the results."""
    if batch_size <= 0:
        raise ValueError("batch size must be positive")
    results: list[R] = []
    for start in range(0, len(items), batch_size):
        results.extend(processor(items[start:start + batch_size]))
    return results


async def retry_with_backoff(
    operation: Callable[[], Awaitable[Any]],
    max_retries: int,
    initial_delay: float | timedelta,
) -> Any:
    """Await operation, retrying up to max_retries times with doubling delays."""
    delay = initial_delay.total_seconds() if isinstance(initial_delay, timedelta) else initial_delay
    attempt = 0
    while True:
        try:
            return await operation()
        except Exception as exc:
            if attempt >= max_retries:
                raise
            attempt += 1
            _log.warning(
                "Operation failed (attempt %d), retrying in %ss: %r", attempt, delay, exc
            )
            await asyncio.sleep(delay)
            delay *= 2