"""Gradient-based parameter optimisers working on float32 vectors."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Sequence

import numpy as np

DEFAULT_KEY = "default"

_ONE = np.float32(1.0)


def _as_vector(values: Sequence[float] | np.ndarray) -> np.ndarray:
    return np.asarray(values, dtype=np.float32)


def _pair(params, gradients) -> tuple[np.ndarray, np.ndarray]:
    p = _as_vector(params)
    g = _as_vector(gradients)
    if p.shape != g.shape:
        raise ValueError(f"gradient shape {g.shape} does not match parameter shape {p.shape}")
    return p, g


def _state(store: dict[str, np.ndarray], key: str, shape: tuple[int, ...]) -> np.ndarray:
    current = store.get(key)
    if current is None:
        return np.zeros(shape, dtype=np.float32)
    if current.shape != shape:
        raise ValueError(
            f"state for '{key}' has shape {current.shape}, parameters have shape {shape}"
        )
    return current


class Optimizer(ABC):
    """Turns parameters and their gradients into updated parameters."""

    @abstractmethod
    def update(self, params, gradients) -> np.ndarray:
        """Return the parameters after one optimisation step."""

    @abstractmethod
    def reset(self) -> None:
        """Forget any accumulated state."""


@dataclass
class SGD(Optimizer):
    """Plain stochastic gradient descent."""

    learning_rate: float

    def update(self, params, gradients) -> np.ndarray:
        p, g = _pair(params, gradients)
        return p - g * np.float32(self.learning_rate)

    def reset(self) -> None:
        """SGD keeps no state between steps."""


@dataclass
class Adam(Optimizer):
    """Adam with bias-corrected moment estimates kept per parameter key."""

    learning_rate: float = 0.001
    beta1: float = 0.9
    beta2: float = 0.999
    epsilon: float = 1e-8
    t: int = field(default=0, init=False)
    m: dict[str, np.ndarray] = field(default_factory=dict, init=False)
    v: dict[str, np.ndarray] = field(default_factory=dict, init=False)

    def update_with_key(self, key: str, params, gradients) -> np.ndarray:
        p, g = _pair(params, gradients)
        self.t += 1
        beta1 = np.float32(self.beta1)
        beta2 = np.float32(self.beta2)

        m = _state(self.m, key, p.shape) * beta1 + g * (_ONE - beta1)
        v = _state(self.v, key, p.shape) * beta2 + (g * g) * (_ONE - beta2)
        self.m[key] = m
        self.v[key] = v

        m_hat = m * (_ONE / (_ONE - beta1 ** self.t))
        v_hat = v * (_ONE / (_ONE - beta2 ** self.t))
        denominator = np.sqrt(v_hat + np.float32(self.epsilon))
        return p - (m_hat / denominator) * np.float32(self.learning_rate)

    def update(self, params, gradients) -> np.ndarray:
        return self.update_with_key(DEFAULT_KEY, params, gradients)

    def reset(self) -> None:
        self.t = 0
        self.m.clear()
        self.v.clear()


@dataclass
class AdaGrad(Optimizer):
    """AdaGrad: learning rate scaled by accumulated squared gradients."""

    learning_rate: float = 0.01
    epsilon: float = 1e-8
    sum_squared_gradients: dict[str, np.ndarray] = field(default_factory=dict, init=False)

    def update_with_key(self, key: str, params, gradients) -> np.ndarray:
        p, g = _pair(params, gradients)
        total = _state(self.sum_squared_gradients, key, p.shape) + g * g
        self.sum_squared_gradients[key] = total
        adaptive_lr = np.float32(self.learning_rate) / np.sqrt(total + np.float32(self.epsilon))
        return p - g * adaptive_lr

    def update(self, params, gradients) -> np.ndarray:
        return self.update_with_key(DEFAULT_KEY, params, gradients)

    def reset(self) -> None:
        self.sum_squared_gradients.clear()


@dataclass
class RMSprop(Optimizer):
    """RMSprop: gradients scaled by a moving average of their squares."""

    learning_rate: float = 0.001
    decay_rate: float = 0.9
    epsilon: float = 1e-8
    cache: dict[str, np.ndarray] = field(default_factory=dict, init=False)

    def update_with_key(self, key: str, params, gradients) -> np.ndarray:
        p, g = _pair(params, gradients)
        decay = np.float32(self.decay_rate)
        cache = _state(self.cache, key, p.shape) * decay + (g * g) * (_ONE - decay)
        self.cache[key] = cache
        denominator = np.sqrt(cache + np.float32(self.epsilon))
        return p - (g / denominator) * np.float32(self.learning_rate)

    def update(self, params, gradients) -> np.ndarray:
        return self.update_with_key(DEFAULT_KEY, params, gradients)

    def reset(self) -> None:
        self.cache.clear()