"""
Wishart likelihood of a window's scatter matrix under a candidate plane
orientation, plus the outcrop sampling-bias prior.

The scale matrix is parameterised by three angles: trend ``phi`` and plunge
``theta`` of its least-variance eigenvector (the plane normal), and
``alpha``, the rotation of the second eigenvector about that normal. Its
eigenvalues are taken from the observed covariance, so the density peaks at
the observed eigensystem.

Everything here works in log space; densities of large windows overflow
or underflow a double long before their ordering stops being meaningful.
"""
import math

import numpy as np
from scipy.special import logsumexp, multigammaln

from structure_errors import DegenerateWindowError

TWO_PI = 2.0 * math.pi


def eigen_frame(phi: float, theta: float, alpha: float) -> np.ndarray:
    """Orthonormal eigenvector basis of the scale matrix.

    Returns a (3, 3) array whose columns are the eigenvectors of the
    largest, middle and smallest eigenvalue. The last column is the plane
    normal, pointing downward for theta >= 0.
    """
    sp, cp = math.sin(phi), math.cos(phi)
    st, ct = math.sin(theta), math.cos(theta)
    sa, ca = math.sin(alpha), math.cos(alpha)

    normal = np.array([sp * ct, cp * ct, -st])
    middle = np.array([
        sp * st * sa - cp * ca,
        sp * ca + st * cp * sa,
        sa * ct,
    ])
    major = np.cross(normal, middle)
    return np.column_stack([major, middle, normal])


def log_wishart_scale_factor(scatter: np.ndarray, n_dof: int) -> float:
    """Orientation-independent part of the log Wishart density.

    Depends only on the scatter matrix and the degrees of freedom, so it is
    computed once per window rather than once per orientation.

    Raises:
        DegenerateWindowError: det(scatter) <= 0 (collinear/coincident points).
    """
    det = float(np.linalg.det(scatter))
    if not det > 0.0:
        raise DegenerateWindowError(f"Scatter matrix is singular (det={det:.3e})")
    half = n_dof / 2.0
    return (
        (n_dof - 4.0) * 0.5 * math.log(det)
        - (n_dof * 3.0 / 2.0) * math.log(2.0)
        - float(multigammaln(half, 3))
    )


def log_wishart(
    scatter: np.ndarray,
    n_dof: int,
    phi: float,
    theta: float,
    alpha: float,
    eigenvalues: np.ndarray,
    log_scale_factor: float,
) -> float:
    """Log Wishart density of ``scatter`` for the scale matrix defined by
    (phi, theta, alpha) and ``eigenvalues`` (descending)."""
    frame = eigen_frame(phi, theta, alpha)
    ev = np.asarray(eigenvalues, dtype=float)
    # Inverse scale matrix from inverted eigenvalues
    inv_scale = (frame / ev) @ frame.T
    tr_ix = float(np.sum(inv_scale * scatter))
    log_det_scale = float(np.sum(np.log(ev)))
    return log_scale_factor - 0.5 * (tr_ix + n_dof * log_det_scale)


def log_wishart_marginal_alpha(
    scatter: np.ndarray,
    n_dof: int,
    phi: float,
    theta: float,
    eigenvalues: np.ndarray,
    log_scale_factor: float,
    steps: int = 500,
) -> float:
    """Log of the Wishart density integrated over alpha in [0, pi].

    Trapezoid rule with ``steps`` intervals.
    """
    alphas = np.linspace(0.0, math.pi, steps + 1)
    logs = np.array([
        log_wishart(scatter, n_dof, phi, theta, float(a), eigenvalues, log_scale_factor)
        for a in alphas
    ])
    weights = np.full(steps + 1, math.pi / steps)
    weights[0] *= 0.5
    weights[-1] *= 0.5
    return float(logsumexp(logs, b=weights))


def orientation_prior(phi: float, theta: float, mean_normal: np.ndarray) -> float:
    """Sampling-bias prior for a plane orientation.

    Planes seen edge-on from the outcrop are sampled more often than planes
    parallel to it; the prior weights orientations by the sine of the angle
    between the candidate normal and the (downward) outcrop normal. The
    1/2pi factor makes it integrate to one over all phi, theta.
    """
    n = np.asarray(mean_normal, dtype=float)
    if n[2] > 0:
        n = -n
    candidate = eigen_frame(phi, theta, 0.0)[:, 2]
    cos_angle = float(np.clip(np.dot(n, candidate), -1.0, 1.0))
    return math.sin(math.acos(cos_angle)) / TWO_PI


def log_orientation_prior(phi: float, theta: float, mean_normal: np.ndarray) -> float:
    p = orientation_prior(phi, theta, mean_normal)
    if p <= 0.0:
        return -math.inf
    return math.log(p)
