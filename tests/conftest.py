import shutil
from functools import reduce

import numpy as np
import pytest

from treedg.benchmark.cases import build_semidiscretization
from treedg.benchmark.config_loader import CaseConfig
from treedg.cpu import DGResidualCPU
from treedg.numba_parallel import DGResidualNumba


@pytest.fixture
def make_semi():
    """Build a semidiscretization from case-config keywords."""
    def _make(kind="advection", ndims=1, polydeg=3, level=2, volume_integral="weak_form",
              patches=(), time=0.0):
        case = CaseConfig(
            name=f"{kind}_{ndims}d",
            kind=kind,
            ndims=ndims,
            polydeg=polydeg,
            initial_refinement_level=level,
            volume_integral=volume_integral,
            refinement_patches=[list(map(list, p)) for p in patches],
            time=time,
        )
        return build_semidiscretization(case)
    return _make


@pytest.fixture
def make_pipelines():
    """Host reference and device pipeline on independent clones of one semidiscretization."""
    def _make(semi, **kwargs):
        host = DGResidualCPU(semi, **kwargs)
        device = DGResidualNumba(semi.clone(), **kwargs)
        return host, device
    return _make


@pytest.fixture
def perturbed_solution():
    """Initial condition plus small reproducible random noise."""
    def _make(semi, t=0.0, amplitude=1e-3, seed=1234):
        rng = np.random.default_rng(seed)
        u = semi.compute_coefficients(t)
        return u + amplitude * rng.standard_normal(u.shape)
    return _make


@pytest.fixture
def integrate():
    """Quadrature of du over the mesh, per variable."""
    def _integrate(semi, du):
        topo = semi.topology
        weights = reduce(np.multiply.outer, [topo.weights] * topo.ndims)
        volume = (1.0 / topo.inverse_jacobian) ** topo.ndims
        du = du.reshape(topo.n_elements, du.shape[1], -1)
        return np.einsum("e,evn,n->v", volume, du, weights.ravel())
    return _integrate


@pytest.fixture
def output_dir(tmp_path):
    """Fresh output directory, removed after the test."""
    path = tmp_path / "validation_results"
    path.mkdir()
    yield path
    shutil.rmtree(path, ignore_errors=True)
