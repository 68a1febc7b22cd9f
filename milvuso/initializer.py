"""Random and constant weight initialisation schemes."""

import math
import random
import uuid
from dataclasses import dataclass
from enum import Enum


def _sample(rng: random.Random, low: float, high: float) -> float:
    if not low < high:
        raise ValueError(f"empty sampling range {low}..{high}")
    return low + (high - low) * rng.random()


def _gaussian(rng: random.Random) -> float:
    u1 = 1.0 - rng.random()
    u2 = rng.random()
    return math.sqrt(-2.0 * math.log(u1)) * math.cos(2.0 * math.pi * u2)


def _uniform_values(rng: random.Random, size: int, low: float, high: float) -> list[float]:
    return [_sample(rng, low, high) for _ in range(size)]


def _scaled_uniform(rng: random.Random, size: int, numerator: float) -> list[float]:
    if size == 0:
        return []
    limit = math.sqrt(numerator / size)
    return _uniform_values(rng, size, -limit, limit)


def _scaled_normal(size: int, numerator: float) -> list[float]:
    if size == 0:
        return []
    return normal(size, 0.0, math.sqrt(numerator / size))


def xavier_uniform(size: int) -> list[float]:
    return _scaled_uniform(random, size, 6.0)


def xavier_normal(size: int) -> list[float]:
    return _scaled_normal(size, 2.0)


def he_uniform(size: int) -> list[float]:
    return _scaled_uniform(random, size, 6.0)


def he_normal(size: int) -> list[float]:
    return _scaled_normal(size, 2.0)


def lecun_uniform(size: int) -> list[float]:
    return _scaled_uniform(random, size, 3.0)


def lecun_normal(size: int) -> list[float]:
    return _scaled_normal(size, 1.0)


def uniform(size: int, low: float, high: float) -> list[float]:
    return _uniform_values(random, size, low, high)


def normal(size: int, mean: float, std_dev: float) -> list[float]:
    return [_gaussian(random) * std_dev + mean for _ in range(size)]


def zeros(size: int) -> list[float]:
    return [0.0] * size


def ones(size: int) -> list[float]:
    return [1.0] * size


def constant(size: int, value: float) -> list[float]:
    return [value] * size


def orthogonal(rows: int, cols: int) -> list[list[float]]:
    """Random matrix whose first min(rows, cols) rows are orthonormalised by Gram-Schmidt."""
    matrix = [uniform(cols, -1.0, 1.0) for _ in range(rows)]
    for i in range(min(rows, cols)):
        norm = math.sqrt(sum(x * x for x in matrix[i]))
        if norm > 1e-8:
            matrix[i] = [x / norm for x in matrix[i]]
        basis = matrix[i]
        for k in range(i + 1, rows):
            dot = sum(b * x for b, x in zip(basis, matrix[k]))
            matrix[k] = [x - dot * b for x, b in zip(matrix[k], basis)]
    return matrix


def sparse_random(size: int, sparsity: float) -> list[float]:
    """Values in [-1, 1), each zero with probability sparsity."""
    return [0.0 if random.random() < sparsity else _sample(random, -1.0, 1.0) for _ in range(size)]


class InitKind(Enum):
    XAVIER_UNIFORM = "xavier_uniform"
    XAVIER_NORMAL = "xavier_normal"
    HE_UNIFORM = "he_uniform"
    HE_NORMAL = "he_normal"
    LECUN_UNIFORM = "lecun_uniform"
    LECUN_NORMAL = "lecun_normal"
    UNIFORM = "uniform"
    NORMAL = "normal"
    ZEROS = "zeros"
    ONES = "ones"
    CONSTANT = "constant"
    SPARSE_RANDOM = "sparse_random"


_REQUIRED_PARAMS = {
    InitKind.UNIFORM: ("low", "high"),
    InitKind.NORMAL: ("mean", "std_dev"),
    InitKind.CONSTANT: ("value",),
    InitKind.SPARSE_RANDOM: ("sparsity",),
}


@dataclass(frozen=True)
class InitializationMethod:
    """An initialisation scheme together with the parameters it needs."""

    kind: InitKind
    low: float | None = None
    high: float | None = None
    mean: float | None = None
    std_dev: float | None = None
    value: float | None = None
    sparsity: float | None = None

    def __post_init__(self) -> None:
        missing = [name for name in _REQUIRED_PARAMS.get(self.kind, ()) if getattr(self, name) is None]
        if missing:
            raise ValueError(f"{self.kind.value} requires {', '.join(missing)}")

    def initialize(self, size: int) -> list[float]:
        match self.kind:
            case InitKind.XAVIER_UNIFORM:
                return xavier_uniform(size)
            case InitKind.XAVIER_NORMAL:
                return xavier_normal(size)
            case InitKind.HE_UNIFORM:
                return he_uniform(size)
            case InitKind.HE_NORMAL:
                return he_normal(size)
            case InitKind.LECUN_UNIFORM:
                return lecun_uniform(size)
            case InitKind.LECUN_NORMAL:
                return lecun_normal(size)
            case InitKind.UNIFORM:
                return uniform(size, self.low, self.high)
            case InitKind.NORMAL:
                return normal(size, self.mean, self.std_dev)
            case InitKind.ZEROS:
                return zeros(size)
            case InitKind.ONES:
                return ones(size)
            case InitKind.CONSTANT:
                return constant(size, self.value)
            case InitKind.SPARSE_RANDOM:
                return sparse_random(size, self.sparsity)
        raise ValueError(f"unknown initialisation kind {self.kind!r}")

    def initialize_matrix(self, rows: int, cols: int) -> list[list[float]]:
        return [self.initialize(cols) for _ in range(rows)]


@dataclass
class EmbeddingInitializer:
    """Produces embeddings; Xavier-uniform ones are reproducible per identifier."""

    method: InitializationMethod
    dimension: int

    def _seeded(self, identifier: uuid.UUID) -> list[float]:
        if self.method.kind is InitKind.XAVIER_UNIFORM:
            return _scaled_uniform(random.Random(identifier.int), self.dimension, 6.0)
        return self.method.initialize(self.dimension)

    def initialize_user_embedding(self, user_id: uuid.UUID) -> list[float]:
        return self._seeded(user_id)

    def initialize_item_embedding(self, item_id: uuid.UUID) -> list[float]:
        return self._seeded(item_id)