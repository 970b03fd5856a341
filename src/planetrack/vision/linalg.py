"""
Small dense linear solver used by the homography estimator.

Gauss-Jordan elimination with partial pivoting.  The system is reduced all
the way to the identity, so the augmented column holds the solution
directly and no back-substitution pass is needed.
"""

from __future__ import annotations

from typing import Optional

import numpy as np

PIVOT_EPS = 1e-12


def solve_linear_system(a: np.ndarray, b: np.ndarray, eps: float = PIVOT_EPS) -> Optional[np.ndarray]:
    """
    Solve ``a @ x = b`` for a square ``a``.

    Args:
        a: N x N coefficient matrix.
        b: right-hand side of length N.
        eps: smallest pivot magnitude accepted before the system is
            treated as singular.

    Returns:
        The solution vector (float64, length N), or ``None`` when the
        system is singular or nearly so.  A ``None`` is an expected
        outcome, e.g. for collinear calibration points.
    """
    a = np.asarray(a, dtype=np.float64)
    b = np.asarray(b, dtype=np.float64).ravel()
    if a.ndim != 2 or a.shape[0] != a.shape[1]:
        raise ValueError(f"Coefficient matrix must be square, got shape {a.shape}")
    n = a.shape[0]
    if b.shape[0] != n:
        raise ValueError(f"Right-hand side has length {b.shape[0]}, expected {n}")

    # augmented matrix [A | b]
    m = np.hstack([a, b.reshape(n, 1)])

    for col in range(n):
        pivot = col + int(np.argmax(np.abs(m[col:, col])))
        if abs(m[pivot, col]) < eps:
            return None

        if pivot != col:
            m[[col, pivot], col:] = m[[pivot, col], col:]

        m[col, col:] /= m[col, col]

        for r in range(n):
            if r == col:
                continue
            factor = m[r, col]
            if abs(factor) < eps:
                continue
            m[r, col:] -= factor * m[col, col:]

    return m[:, n].copy()
