"""Nearest-neighbour vector retrieval: exhaustive cosine search and a layered graph index."""

import heapq
import math
import random
import uuid
from abc import ABC, abstractmethod
from typing import Sequence

import numpy as np

_I32_MAX = 2**31 - 1
_MAX_LEVEL = 16


class VectorRetriever(ABC):
    """A store of identified vectors that can be searched for neighbours."""

    @abstractmethod
    async def search_similar(self, query_vector: Sequence[float], top_k: int) -> list[tuple[uuid.UUID, float]]: ...

    @abstractmethod
    async def add_vector(self, vector_id: uuid.UUID, vector: Sequence[float]) -> None: ...

    @abstractmethod
    async def remove_vector(self, vector_id: uuid.UUID) -> None: ...

    @abstractmethod
    async def update_vector(self, vector_id: uuid.UUID, vector: Sequence[float]) -> None: ...


def _checked(vector: Sequence[float], dimension: int, what: str) -> np.ndarray:
    array = np.asarray(vector, dtype=np.float32)
    if array.shape != (dimension,):
        raise ValueError(f"{what} dimension mismatch")
    return array


def _cosine(a: np.ndarray, b: np.ndarray) -> float:
    norm_a = np.linalg.norm(a)
    norm_b = np.linalg.norm(b)
    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0
    return float(np.dot(a, b) / (norm_a * norm_b))


class InMemoryRetriever(VectorRetriever):
    """Exhaustive search ranking every stored vector by cosine similarity."""

    def __init__(self, dimension: int) -> None:
        self.dimension = dimension
        self._vectors: dict[uuid.UUID, np.ndarray] = {}

    async def search_similar(self, query_vector, top_k):
        """The top_k most similar vectors, highest cosine similarity first."""
        query = _checked(query_vector, self.dimension, "Query vector")
        scored = [(vector_id, _cosine(query, vector)) for vector_id, vector in self._vectors.items()]
        scored.sort(key=lambda pair: pair[1], reverse=True)
        return scored[:top_k]

    async def add_vector(self, vector_id, vector):
        self._vectors[vector_id] = _checked(vector, self.dimension, "Vector")

    async def remove_vector(self, vector_id):
        self._vectors.pop(vector_id, None)

    async def update_vector(self, vector_id, vector):
        self._vectors[vector_id] = _checked(vector, self.dimension, "Vector")


def _as_i32(distance: float) -> int:
    if math.isnan(distance):
        return 0
    return min(int(distance), _I32_MAX)


class HNSWRetriever(VectorRetriever):
    """Layered graph index; distances are squared L2 truncated to whole numbers."""

    def __init__(
        self,
        dimension: int,
        max_connections: int,
        ef_construction: int,
        *,
        rng: random.Random | None = None,
    ) -> None:
        self.dimension = dimension
        self.max_connections = max_connections
        self.ef_construction = ef_construction
        self.ml = 1.0 / math.log(2.0)
        self._layers: list[dict[uuid.UUID, list[uuid.UUID]]] = [{}]
        self._vectors: dict[uuid.UUID, np.ndarray] = {}
        self._rng = rng or random.Random()

    def _random_level(self) -> int:
        level = 0
        while self._rng.random() < 0.5 and level < _MAX_LEVEL:
            level += 1
        return level

    @staticmethod
    def _distance(a: np.ndarray, b: np.ndarray) -> int:
        diff = a - b
        return _as_i32(float(np.dot(diff, diff)))

    def _search_layer(
        self,
        query: np.ndarray,
        entry_points: Sequence[uuid.UUID],
        num_closest: int,
        layer: int,
    ) -> list[tuple[uuid.UUID, float]]:
        visited: set[uuid.UUID] = set()
        candidates: list[tuple[int, uuid.UUID]] = []
        found: list[tuple[int, int, uuid.UUID]] = []

        def keep(dist: int, node: uuid.UUID) -> None:
            heapq.heappush(candidates, (dist, node))
            heapq.heappush(found, (-dist, -node.int, node))

        for entry in entry_points:
            vector = self._vectors.get(entry)
            if vector is not None:
                keep(self._distance(query, vector), entry)
                visited.add(entry)

        connections = self._layers[layer] if layer < len(self._layers) else {}
        while candidates:
            current_dist, current = heapq.heappop(candidates)
            if len(found) >= num_closest and found and current_dist > -found[0][0]:
                break
            for neighbor in connections.get(current, ()):
                if neighbor in visited:
                    continue
                visited.add(neighbor)
                vector = self._vectors.get(neighbor)
                if vector is None:
                    continue
                dist = self._distance(query, vector)
                if len(found) < num_closest:
                    keep(dist, neighbor)
                elif found and dist < -found[0][0]:
                    heapq.heappop(found)
                    keep(dist, neighbor)

        ordered = sorted((-neg_dist, node) for neg_dist, _, node in found)
        return [(node, float(dist)) for dist, node in ordered]

    async def search_similar(self, query_vector, top_k):
        """Closest vectors by truncated squared distance, nearest first."""
        query = _checked(query_vector, self.dimension, "Query vector")
        top_layer = self._layers[-1]
        if not top_layer:
            return []
        entry_points = [next(iter(top_layer))]
        for layer in range(len(self._layers) - 1, 0, -1):
            results = self._search_layer(query, entry_points, 1, layer)
            entry_points = [node for node, _ in results]
        return self._search_layer(query, entry_points, top_k, 0)

    async def add_vector(self, vector_id, vector):
        array = _checked(vector, self.dimension, "Vector")
        level = self._random_level()
        while len(self._layers) <= level:
            self._layers.append({})
        self._vectors[vector_id] = array
        for layer in self._layers[: level + 1]:
            layer[vector_id] = []

    async def remove_vector(self, vector_id):
        self._vectors.pop(vector_id, None)
        for layer in self._layers:
            layer.pop(vector_id, None)
            for node, neighbors in layer.items():
                layer[node] = [n for n in neighbors if n != vector_id]

    async def update_vector(self, vector_id, vector):
        self._vectors[vector_id] = _checked(vector, self.dimension, "Vector")