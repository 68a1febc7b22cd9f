import numpy as np
import pytest

from milvuso.optimizer import SGD, AdaGrad, Adam, RMSprop

PARAMS = [1.0, 2.0, 3.0]
GRADS = [0.1, 0.2, 0.3]


def test_sgd_step():
    result = SGD(0.01).update(PARAMS, GRADS)
    assert result.tolist() == pytest.approx([0.999, 1.998, 2.997], abs=1e-6)


def test_sgd_does_not_modify_input():
    params = np.array(PARAMS, dtype=np.float32)
    SGD(0.5).update(params, GRADS)
    assert params.tolist() == PARAMS


def test_adam_first_step_moves_by_learning_rate():
    result = Adam().update(PARAMS, GRADS)
    assert result.tolist() == pytest.approx([0.999, 1.999, 2.999], abs=1e-5)


def test_adam_counts_steps_and_resets():
    adam = Adam()
    adam.update(PARAMS, GRADS)
    adam.update(PARAMS, GRADS)
    assert adam.t == 2
    adam.reset()
    assert adam.t == 0
    assert adam.m == {}
    again = adam.update(PARAMS, GRADS)
    assert again.tolist() == pytest.approx(Adam().update(PARAMS, GRADS).tolist())


def test_adam_keys_keep_separate_moments():
    adam = Adam()
    adam.update_with_key("a", PARAMS, GRADS)
    adam.update_with_key("b", [0.0, 0.0], [1.0, 1.0])
    assert set(adam.m) == {"a", "b"}
    assert adam.m["b"].shape == (2,)


def test_adagrad_first_step():
    result = AdaGrad().update(PARAMS, GRADS)
    assert result.tolist() == pytest.approx([0.99, 1.99, 2.99], abs=1e-5)


def test_adagrad_steps_shrink():
    opt = AdaGrad()
    first = opt.update([0.0], [1.0])
    second = opt.update(first, [1.0])
    assert abs(second[0] - first[0]) < abs(first[0])
    opt.reset()
    assert opt.sum_squared_gradients == {}


def test_rmsprop_first_step():
    result = RMSprop().update([0.0], [1.0])
    assert result[0] == pytest.approx(-0.001 / np.sqrt(0.1), rel=1e-4)


def test_rmsprop_reset_clears_cache():
    opt = RMSprop()
    opt.update(PARAMS, GRADS)
    assert "default" in opt.cache
    opt.reset()
    assert opt.cache == {}


def test_shape_mismatch_raises():
    with pytest.raises(ValueError):
        SGD(0.1).update([1.0, 2.0], [1.0])


def test_keyed_state_shape_change_raises():
    adam = Adam()
    adam.update(PARAMS, GRADS)
    with pytest.raises(ValueError):
        adam.update([1.0], [1.0])