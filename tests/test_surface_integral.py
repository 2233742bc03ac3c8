import numpy as np

from treedg.shared.transfer import copy_to_device, copy_to_host


def _surface_integral(pipeline, semi, sfv):
    pipeline.cache.surface_flux_values[...] = sfv
    du = semi.allocate()
    pipeline.surface_integral(du)
    return du


def test_one_dimensional_lifting(make_semi, make_pipelines):
    semi = make_semi(kind="hypdiff_poisson", ndims=1, polydeg=3, level=2)
    w = semi.topology.weights
    rng = np.random.default_rng(3)
    sfv = rng.standard_normal((semi.topology.n_elements, 2, 2, 1))

    for pipeline in make_pipelines(semi):
        du = _surface_integral(pipeline, semi, sfv)
        np.testing.assert_allclose(du[:, :, 0], -sfv[:, 0, :, 0] / w[0], rtol=1e-14)
        np.testing.assert_allclose(du[:, :, -1], sfv[:, 1, :, 0] / w[-1], rtol=1e-14)
        np.testing.assert_array_equal(du[:, :, 1:-1], 0.0)


def test_surface_integral_is_linear_and_accumulates(make_semi, make_pipelines):
    semi = make_semi(kind="euler_weak_blast", ndims=2, polydeg=3, level=2, volume_integral="shock_capturing",
                     patches=[([-1.0, -1.0], [1.0, 1.0])])
    host, device = make_pipelines(semi)
    shape = host.cache.surface_flux_values.shape
    rng = np.random.default_rng(11)
    f1, f2 = rng.standard_normal(shape), rng.standard_normal(shape)

    for pipeline in (host, device):
        s1 = _surface_integral(pipeline, semi, f1)
        s2 = _surface_integral(pipeline, semi, f2)
        s12 = _surface_integral(pipeline, semi, 2.0 * f1 + f2)
        np.testing.assert_allclose(s12, 2.0 * s1 + s2, rtol=1e-12, atol=1e-12)

    # the stage adds to du rather than overwriting it
    base = rng.standard_normal(semi.u_shape)
    du_d, _ = copy_to_device(base, base)
    host.cache.surface_flux_values[...] = f1
    device.cache.surface_flux_values[...] = f1
    du = base.copy()
    host.surface_integral(du)
    device.surface_integral(du_d)
    du_back, _ = copy_to_host(du_d, du_d)
    np.testing.assert_allclose(du, base + _surface_integral(host, semi, f1), rtol=1e-12, atol=1e-12)
    np.testing.assert_allclose(du_back, du, rtol=1e-12, atol=1e-12)
