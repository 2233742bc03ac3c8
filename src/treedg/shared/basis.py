"""
Legendre-Gauss-Lobatto nodal basis and the fixed operator matrices of the DGSEM.

All matrices are computed once per polynomial degree and treated as
immutable by the pipelines.
"""

from typing import Tuple

import numpy as np
from numpy.typing import NDArray
from scipy import linalg
from scipy.special import eval_legendre, roots_jacobi, roots_legendre


# =============================================================================
# Nodes, weights and interpolation
# =============================================================================

def gauss_lobatto_nodes_weights(n_nodes: int) -> Tuple[NDArray[np.float64], NDArray[np.float64]]:
    """
    LGL nodes on [-1, 1] and their quadrature weights.

    Interior nodes are the roots of P'_N, i.e. of the Jacobi polynomial
    P_{N-1}^{(1,1)}.
    """
    if n_nodes < 2:
        raise ValueError(f"LGL rule needs at least 2 nodes, got {n_nodes}")
    N = n_nodes - 1
    if N == 1:
        interior = np.empty(0)
    else:
        interior, _ = roots_jacobi(N - 1, 1.0, 1.0)
    nodes = np.concatenate(([-1.0], np.sort(interior), [1.0]))
    weights = 2.0 / (N * (N + 1) * eval_legendre(N, nodes) ** 2)
    return nodes, weights


def barycentric_weights(nodes: NDArray[np.float64]) -> NDArray[np.float64]:
    diff = nodes[:, None] - nodes[None, :]
    np.fill_diagonal(diff, 1.0)
    return 1.0 / np.prod(diff, axis=1)


def lagrange_interpolation_matrix(nodes: NDArray[np.float64], points: NDArray[np.float64]) -> NDArray[np.float64]:
    """
    Matrix L with L[i, j] = l_j(points[i]) for the Lagrange basis on `nodes`.

    Barycentric form; rows for points that coincide with a node are exact
    unit vectors.
    """
    wbary = barycentric_weights(nodes)
    points = np.atleast_1d(np.asarray(points, dtype=np.float64))
    L = np.zeros((points.size, nodes.size))
    for i, x in enumerate(points):
        d = x - nodes
        hit = np.flatnonzero(np.isclose(d, 0.0, rtol=0.0, atol=1e-14))
        if hit.size:
            L[i, hit[0]] = 1.0
            continue
        t = wbary / d
        L[i] = t / t.sum()
    return L


def polynomial_derivative_matrix(nodes: NDArray[np.float64]) -> NDArray[np.float64]:
    """Nodal differentiation matrix D[i, j] = l'_j(x_i)."""
    wbary = barycentric_weights(nodes)
    n = nodes.size
    D = np.zeros((n, n))
    for i in range(n):
        for j in range(n):
            if i != j:
                D[i, j] = (wbary[j] / wbary[i]) / (nodes[i] - nodes[j])
        D[i, i] = -np.sum(D[i])
    return D


def inverse_vandermonde_legendre(nodes: NDArray[np.float64]) -> NDArray[np.float64]:
    """Inverse of V[i, j] = sqrt(j + 1/2) P_j(x_i) (orthonormal Legendre modes)."""
    n = nodes.size
    V = np.empty((n, n))
    for j in range(n):
        V[:, j] = eval_legendre(j, nodes) * np.sqrt(j + 0.5)
    return linalg.inv(V)


# =============================================================================
# L2 mortar operators
# =============================================================================

def mortar_forward_matrices(nodes: NDArray[np.float64]) -> Tuple[NDArray[np.float64], NDArray[np.float64]]:
    """Interpolation from the large face to the (lower, upper) half faces."""
    lower = lagrange_interpolation_matrix(nodes, 0.5 * (nodes - 1.0))
    upper = lagrange_interpolation_matrix(nodes, 0.5 * (nodes + 1.0))
    return lower, upper


def mortar_reverse_matrices(nodes: NDArray[np.float64]) -> Tuple[NDArray[np.float64], NDArray[np.float64]]:
    """
    L2 projection from the (lower, upper) half faces back to the large face.

    R_c = 0.5 M^-1 B_c with the exact mass matrix M and the coupling matrix
    B_c[k, i] = int l_k(eta_c(s)) l_i(s) ds, both integrated by a Gauss rule
    that is exact for degree 2N.
    """
    n = nodes.size
    gauss_nodes, gauss_weights = roots_legendre(n + 1)
    Vg = lagrange_interpolation_matrix(nodes, gauss_nodes)
    mass = Vg.T @ (gauss_weights[:, None] * Vg)

    reverse = []
    for shift in (-1.0, 1.0):
        Vc = lagrange_interpolation_matrix(nodes, 0.5 * (gauss_nodes + shift))
        coupling = Vc.T @ (gauss_weights[:, None] * Vg)
        reverse.append(0.5 * linalg.solve(mass, coupling))
    return reverse[0], reverse[1]


# =============================================================================
# Basis container
# =============================================================================

class LobattoLegendreBasis:
    """
    LGL collocation basis of degree `polydeg` with the DGSEM operators.

    Attributes:
        nodes, weights: LGL points and quadrature weights
        derivative_matrix: D[i, j] = l'_j(x_i)
        derivative_split: 2D - M^-1 B (zero diagonal), used by flux differencing
        derivative_dhat: -M^-1 D^T M, used by the weak-form volume integral
        surface_factors: lifting factors (-1/w_0, 1/w_N) for the (negative, positive) face
        inverse_vandermonde_legendre: nodal -> orthonormal Legendre modes
        mortar_forward_lower/upper, mortar_reverse_lower/upper: L2 mortar operators
    """

    def __init__(self, polydeg: int):
        if polydeg < 1:
            raise ValueError(f"polydeg must be >= 1, got {polydeg}")
        self.polydeg = int(polydeg)
        self.n_nodes = self.polydeg + 1

        self.nodes, self.weights = gauss_lobatto_nodes_weights(self.n_nodes)
        self.inverse_weights = 1.0 / self.weights

        self.derivative_matrix = polynomial_derivative_matrix(self.nodes)

        self.derivative_split = 2.0 * self.derivative_matrix
        self.derivative_split[0, 0] += 1.0 / self.weights[0]
        self.derivative_split[-1, -1] -= 1.0 / self.weights[-1]

        self.derivative_dhat = -(self.derivative_matrix.T
                                 * self.weights[None, :] / self.weights[:, None])

        self.surface_factors = np.array([-1.0 / self.weights[0], 1.0 / self.weights[-1]])

        self.inverse_vandermonde_legendre = inverse_vandermonde_legendre(self.nodes)

        self.mortar_forward_lower, self.mortar_forward_upper = mortar_forward_matrices(self.nodes)
        self.mortar_reverse_lower, self.mortar_reverse_upper = mortar_reverse_matrices(self.nodes)

    def __repr__(self) -> str:
        return f"LobattoLegendreBasis(polydeg={self.polydeg})"
