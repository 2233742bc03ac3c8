import numpy as np

from treedg.semidiscretization import Semidiscretization
from treedg.shared.compare import compare_padded
from treedg.solver import DGSEM


def test_spare_slots_hold_side_sentinels(make_semi, make_pipelines):
    semi = make_semi(kind="advection", ndims=2, polydeg=2, level=2, patches=[([-0.5, -0.5], [0.5, 0.5])])
    host, device = make_pipelines(semi, spare_slots=3)
    topo = semi.topology

    assert host.cache.capacities() == {
        'interfaces': topo.n_interfaces + 3,
        'boundaries': topo.n_boundaries + 3,
        'mortars': topo.n_mortars + 3,
    }

    u = semi.compute_coefficients()
    host.rhs(semi.allocate(), u, 0.0)
    device.rhs(semi.allocate(), u, 0.0)

    for name in ("interfaces_u", "boundaries_u", "mortars_u"):
        invalid = ~host.cache.valid_mask(name)
        assert np.all(np.isnan(getattr(host.cache, name)[invalid]))
        assert np.all(getattr(device.cache, name)[invalid] == 0.0)
        valid = host.cache.valid_mask(name)
        assert np.all(np.isfinite(getattr(host.cache, name)[valid]))


def test_mask_marks_unused_mortar_children(make_semi, make_pipelines):
    semi = make_semi(kind="advection", ndims=2, polydeg=2, level=2)
    topo = semi.topology.as_equal_resolution_mortars([1, 2])
    solver = DGSEM(2, semi.solver.surface_flux, mortar="identity")
    semi = Semidiscretization(topo, semi.equations, semi.initial_condition, solver)
    host, device = make_pipelines(semi, spare_slots=1)

    u = semi.compute_coefficients()
    host.prolong2mortars(u)
    device.prolong2mortars(u)

    valid = host.cache.valid_mask("mortars_u")
    assert valid[:2, 0].all()
    assert not valid[:2, 1].any()
    assert not valid[2].any()
    result = compare_padded(device.cache.mortars_u, host.cache.mortars_u, valid=valid)
    assert result["status"]
    assert result["padded"] == np.count_nonzero(~valid)


def test_padding_never_counts_as_numerical_failure(make_semi, make_pipelines):
    semi = make_semi(kind="hypdiff_poisson", ndims=1, polydeg=3, level=2)
    host, _ = make_pipelines(semi, spare_slots=4, check_finite=True)
    du = host.residual(semi.compute_coefficients(), 0.0)
    assert np.all(np.isfinite(du))
    assert np.isnan(host.cache.boundaries_u[-1]).all()
