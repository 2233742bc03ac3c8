import numpy as np
import pytest

from treedg.shared.basis import LobattoLegendreBasis
from treedg.shared.errors import ConfigurationError
from treedg.shared.topology import TopologyDescriptor, build_topology
from treedg.shared.tree_mesh import TreeMesh


def _topology(ndims=2, level=2, periodicity=True, patches=(), polydeg=3, mortar="l2"):
    mesh = TreeMesh([-1.0] * ndims, [1.0] * ndims, initial_refinement_level=level,
                    periodicity=periodicity, refinement_patches=patches)
    return build_topology(mesh, LobattoLegendreBasis(polydeg), mortar=mortar)


def test_uniform_periodic_counts():
    topo = _topology(ndims=2, level=2)
    assert topo.n_elements == 16
    assert topo.n_interfaces == 2 * 16
    assert topo.n_boundaries == 0
    assert topo.n_mortars == 0
    assert topo.n_face_nodes == 4
    assert topo.n_element_nodes == 16


def test_nonperiodic_boundaries_sorted_by_direction():
    topo = _topology(ndims=2, level=1, periodicity=(False, True))
    assert topo.boundary_tags == ("x_neg", "x_pos")
    assert topo.boundary_ranges == {"x_neg": (0, 2), "x_pos": (2, 4)}
    assert np.all(np.diff(topo.boundary_direction) >= 0)
    # boundary nodes lie on the domain faces
    np.testing.assert_allclose(topo.boundary_node_coordinates[:2, 0], -1.0)
    np.testing.assert_allclose(topo.boundary_node_coordinates[2:, 0], 1.0)


def test_refinement_patch_creates_mortars():
    topo = _topology(ndims=2, level=2, patches=[([-0.5, -0.5], [0.5, 0.5])])
    # 12 coarse cells + 4 refined cells split into 4 children each
    assert topo.n_elements == 12 + 16
    mesh = TreeMesh([-1.0, -1.0], [1.0, 1.0], initial_refinement_level=2,
                    refinement_patches=[([-0.5, -0.5], [0.5, 0.5])])
    assert mesh.max_level == 3
    assert mesh.n_elements == topo.n_elements
    # every side of the refined 2x2 block touches two coarse neighbours
    assert topo.n_mortars == 8
    assert topo.n_mortar_children == 2
    assert topo.mortar_valid.all()
    levels = topo.element_levels
    assert np.all(levels[topo.mortar_large] == 2)
    assert np.all(levels[topo.mortar_small] == 3)


def test_mortar_faces_match_geometrically():
    topo = _topology(ndims=2, level=2, patches=[([-0.5, -0.5], [0.5, 0.5])])
    for m in range(topo.n_mortars):
        axis = topo.mortar_orientation[m]
        side = topo.mortar_large_side[m]
        large_face = 2 * axis + 1 - side
        large_x = topo.node_coordinates[topo.mortar_large[m], axis, topo.face_nodes[large_face]]
        for small in topo.mortar_small[m]:
            small_x = topo.node_coordinates[small, axis, topo.face_nodes[2 * axis + side]]
            np.testing.assert_allclose(small_x, large_x[0])


def test_one_dimensional_level_jump_is_an_interface():
    topo = _topology(ndims=1, level=2, patches=[([-1.0], [-0.5])])
    assert topo.n_mortars == 0
    assert topo.n_elements == 5
    assert topo.n_interfaces == 5


def test_descriptor_arrays_are_read_only():
    topo = _topology()
    with pytest.raises(ValueError):
        topo.interface_left[0] = 3


def test_clone_shares_no_memory():
    topo = _topology(patches=[([-0.5, -0.5], [0.5, 0.5])])
    other = topo.clone()
    assert other is not topo
    for name in ("node_coordinates", "interface_left", "mortar_small", "mortar_reverse"):
        assert not np.shares_memory(getattr(topo, name), getattr(other, name))
        np.testing.assert_array_equal(getattr(topo, name), getattr(other, name))


@pytest.mark.parametrize("suffix", [".npz", ".h5"])
def test_save_load_roundtrip(tmp_path, suffix):
    topo = _topology(ndims=3, level=1, polydeg=2, patches=[([-1.0] * 3, [0.0] * 3)])
    path = topo.save(tmp_path / f"topology{suffix}")
    loaded = TopologyDescriptor.load(path)
    assert loaded.summary() == topo.summary()
    assert loaded.mortar_type == topo.mortar_type
    np.testing.assert_array_equal(loaded.mortar_small, topo.mortar_small)
    np.testing.assert_array_equal(loaded.mortar_valid, topo.mortar_valid)
    np.testing.assert_array_equal(loaded.node_coordinates, topo.node_coordinates)


def test_save_rejects_unknown_format(tmp_path):
    with pytest.raises(ValueError):
        _topology().save(tmp_path / "topology.txt")


def test_equal_resolution_mortars():
    topo = _topology(ndims=2, level=2)
    converted = topo.as_equal_resolution_mortars([0, 3, 5])
    assert converted.mortar_type == "identity"
    assert converted.n_mortars == 3
    assert converted.n_interfaces == topo.n_interfaces - 3
    assert converted.mortar_valid[:, 0].all()
    assert not converted.mortar_valid[:, 1].any()
    np.testing.assert_array_equal(converted.mortar_small[:, 1], -1)
    np.testing.assert_array_equal(converted.mortar_forward[0], np.eye(4))

    with pytest.raises(ConfigurationError):
        converted.as_equal_resolution_mortars([0])


def test_non_hypercube_domain_is_rejected():
    with pytest.raises(ConfigurationError):
        TreeMesh([0.0, 0.0], [1.0, 2.0], initial_refinement_level=1)


def test_unknown_mortar_type_is_rejected():
    mesh = TreeMesh(-1.0, 1.0, initial_refinement_level=1)
    with pytest.raises(ConfigurationError):
        build_topology(mesh, LobattoLegendreBasis(2), mortar="nearest")
