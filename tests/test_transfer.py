import numpy as np
import pytest

from treedg.shared.errors import ConfigurationError
from treedg.shared.transfer import copy_to_device, copy_to_host


def test_round_trip_is_bit_identical():
    rng = np.random.default_rng(7)
    u = rng.standard_normal((6, 3, 4, 4))
    du = rng.standard_normal(u.shape)
    du[0, 0, 0, 0] = np.nan

    du_d, u_d = copy_to_device(du, u)
    assert not np.shares_memory(u_d, u)
    assert u_d.flags.c_contiguous

    du_back, u_back = copy_to_host(du_d, u_d)
    assert u_back.tobytes() == u.tobytes()
    assert du_back.tobytes() == du.tobytes()
    assert u_back.shape == u.shape


def test_non_contiguous_input_is_copied_in_index_order():
    u = np.arange(24, dtype=np.float64).reshape(2, 3, 4)[:, :, ::2]
    du_d, u_d = copy_to_device(np.zeros(u.shape), u)
    assert u_d.flags.c_contiguous
    np.testing.assert_array_equal(u_d, u)


def test_rejects_single_precision():
    u = np.zeros((2, 1, 3), dtype=np.float32)
    with pytest.raises(ConfigurationError, match="float64"):
        copy_to_device(np.zeros((2, 1, 3)), u)


def test_rejects_mismatched_shapes():
    with pytest.raises(ConfigurationError, match="shape"):
        copy_to_host(np.zeros((2, 1, 3)), np.zeros((2, 1, 4)))
