import numpy as np
import pytest

from treedg.shared.compare import compare_padded, diff_stats, isapprox


def _pair():
    host = np.array([[1.0, 2.0, np.nan], [3.0, 4.0, np.nan]])
    device = np.array([[1.0, 2.0, 0.0], [3.0, 4.0 + 1e-14, 0.0]])
    valid = np.array([[True, True, False], [True, True, False]])
    return device, host, valid


def test_sentinel_pairs_count_as_padding():
    device, host, valid = _pair()
    for mask in (valid, None):
        result = compare_padded(device, host, valid=mask)
        assert result["status"]
        assert result["padded"] == 2


def test_padding_with_wrong_device_sentinel_fails_under_mask():
    device, host, valid = _pair()
    device[0, 2] = 1.0
    assert not compare_padded(device, host, valid=valid)["status"]
    # without a mask the host NaN no longer faces the device sentinel
    assert not compare_padded(device, host)["status"]


def test_nan_in_valid_region_fails():
    device, host, valid = _pair()
    host[1, 0] = np.nan
    device[1, 0] = 0.0
    assert not compare_padded(device, host, valid=valid)["status"]

    device, host, valid = _pair()
    device[0, 1] = np.nan
    assert not compare_padded(device, host, valid=valid)["status"]
    assert not compare_padded(device, host)["status"]


def test_difference_beyond_tolerance_fails():
    device, host, valid = _pair()
    device[0, 0] += 1e-3
    result = compare_padded(device, host, valid=valid)
    assert not result["status"]
    assert result["max_abs"] == pytest.approx(1e-3)


def test_shape_mismatch():
    with pytest.raises(ValueError):
        compare_padded(np.zeros(3), np.zeros(4))


def test_diff_stats():
    stats = diff_stats(np.array([1.0, 0.0]), np.array([1.5, 1e-14]), atol=1e-12, rtol=1e-8)
    assert stats["max_abs"] == pytest.approx(0.5)
    assert stats["max_rel"] == pytest.approx(0.5)
    assert not stats["status"]
    assert diff_stats(np.array([]), np.array([]), atol=1e-12, rtol=1e-8)["status"]


def test_isapprox_is_norm_based():
    a = np.array([1e6, 1.0])
    b = np.array([1e6, 1.0 + 1e-4])
    # the small entry is far off elementwise but within the norm tolerance
    assert isapprox(a, b)
    assert not isapprox(a, np.array([1e6, np.inf]))
