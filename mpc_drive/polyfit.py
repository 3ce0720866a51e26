"""
Polynomial helpers for the vehicle-frame reference curve.

Coefficient vectors are stored constant term first. polyeval and polyderiv
only use + and *, so they accept floats, numpy arrays and CasADi symbols.
"""
import numpy as np
from scipy.linalg import qr, solve_triangular

from mpc_drive.errors import UnderdeterminedFit


def polyfit(xs, ys, order=3):
    """
    Least-squares polynomial fit through a Householder QR of the
    Vandermonde matrix. Returns order+1 coefficients, constant term first.
    """
    xs = np.asarray(xs, dtype=float).ravel()
    ys = np.asarray(ys, dtype=float).ravel()

    if xs.shape != ys.shape:
        raise ValueError(f"xs and ys differ in length: {xs.size} != {ys.size}")
    if not (np.all(np.isfinite(xs)) and np.all(np.isfinite(ys))):
        raise ValueError("polyfit input contains NaN or inf")
    if order < 1:
        raise ValueError(f"order must be >= 1, got {order}")

    n_distinct = np.unique(xs).size
    if n_distinct <= order:
        raise UnderdeterminedFit(n_distinct, order)

    with np.errstate(over="ignore", invalid="ignore"):
        A = np.vander(xs, order + 1, increasing=True)
        if not np.all(np.isfinite(A)):
            raise UnderdeterminedFit(
                n_distinct, order, "waypoint coordinates overflow the Vandermonde matrix"
            )
        Q, R = qr(A, mode="economic")
        rhs = Q.T @ ys
        if not np.all(np.isfinite(rhs)):
            raise UnderdeterminedFit(n_distinct, order, "waypoint coordinates overflow the fit")
        coeffs = solve_triangular(R, rhs)
    if not np.all(np.isfinite(coeffs)):
        raise UnderdeterminedFit(n_distinct, order, "fit produced non-finite coefficients")
    return coeffs


def polyeval(coeffs, x):
    # Horner
    n = len(coeffs)
    result = coeffs[n - 1]
    for i in range(n - 2, -1, -1):
        result = result * x + coeffs[i]
    return result


def polyderiv(coeffs, x):
    """First derivative dy/dx of the polynomial at x."""
    n = len(coeffs)
    if n < 2:
        return 0.0 * x
    result = (n - 1) * coeffs[n - 1]
    for i in range(n - 2, 0, -1):
        result = result * x + i * coeffs[i]
    return result


def cte_and_epsi(coeffs):
    """
    Errors of a vehicle sitting at the origin of its own frame with zero
    heading: the curve offset at x=0 and the curve's tangent angle there.
    """
    cte = float(polyeval(coeffs, 0.0))
    epsi = float(np.arctan(coeffs[1]))
    return cte, epsi


def sample_curve(coeffs, step=3.0, n_points=15):
    """Points of the reference curve at x = 0, step, 2*step, ..."""
    xs = step * np.arange(n_points, dtype=float)
    ys = np.array([polyeval(coeffs, x) for x in xs], dtype=float)
    return xs, ys
