from __future__ import annotations

from typing import cast

import numpy as np
from numpy.typing import ArrayLike, NDArray
from scipy.special import gammaln, xlogy

from .tree import branch_probabilities, category_matrix, coerce_model_arrays


def _coerce_theta(theta: ArrayLike, n_params: int) -> NDArray[np.float64]:
    """
    Accept parameters as (S,) or (R, S) and produce an (R, S) float64 matrix.

    Raises if the column count does not match or values leave [0, 1].
    """
    th = np.asarray(theta, dtype=float)
    if th.ndim == 1:
        th = th[None, :]
    if th.ndim != 2 or th.shape[1] != n_params:
        raise ValueError(f"theta must be (R, {n_params}), got shape {th.shape}")
    if np.any(~np.isfinite(th)) or np.any(th < 0.0) or np.any(th > 1.0):
        raise ValueError("theta values must lie in [0, 1]")
    return th


def _coerce_counts(h: ArrayLike) -> NDArray[np.float64]:
    arr = np.asarray(h, dtype=float)
    if np.any(arr < 0) or not np.all(np.isfinite(arr)):
        raise ValueError("frequencies must be finite and non-negative")
    return arr


def multinomial_constant(h: ArrayLike) -> NDArray[np.float64] | float:
    """log(n!) - sum_k log(h_k!) along the last axis."""
    arr = np.asarray(h, dtype=float)
    const = gammaln(arr.sum(axis=-1) + 1.0) - gammaln(arr + 1.0).sum(axis=-1)
    return cast(NDArray[np.float64], const)


def loglik_mpt(
    theta: ArrayLike,
    h: ArrayLike,
    a: ArrayLike,
    b: ArrayLike,
    c: ArrayLike,
    map: ArrayLike,
    constant: bool = False,
) -> NDArray[np.float64]:
    """
    Log-likelihood of one frequency vector under every row of `theta`:

        ll[r] = sum_k h_k * log p_k(theta[r])

    Empty categories contribute 0, even when p_k = 0. With `constant=True`
    the multinomial coefficient is included.
    """
    counts = _coerce_counts(h)
    if counts.ndim != 1:
        raise ValueError(
            f"h must be a (K,) frequency vector, got shape {counts.shape}; "
            "use loglik_persons for one row per person"
        )
    A, B, C, M = coerce_model_arrays(a, b, c, map, n_categories=counts.size)
    th = _coerce_theta(theta, A.shape[1])

    probs = branch_probabilities(th, A, B, C) @ category_matrix(M, counts.size)
    ll = xlogy(counts, probs).sum(axis=1)
    if constant:
        ll = ll + multinomial_constant(counts)
    return cast(NDArray[np.float64], ll)


def loglik_persons(
    theta: ArrayLike,
    H: ArrayLike,
    a: ArrayLike,
    b: ArrayLike,
    c: ArrayLike,
    map: ArrayLike,
    constant: bool = False,
) -> NDArray[np.float64]:
    """
    Person-wise log-likelihood: row i of `theta` (N, S) is paired with row i
    of `H` (N, K). Returns shape (N,).
    """
    counts = _coerce_counts(H)
    if counts.ndim != 2:
        raise ValueError(f"H must be (N, K), got shape {counts.shape}")
    A, B, C, M = coerce_model_arrays(a, b, c, map, n_categories=counts.shape[1])
    th = _coerce_theta(theta, A.shape[1])
    if th.shape[0] != counts.shape[0]:
        raise ValueError(f"theta has {th.shape[0]} rows but H has {counts.shape[0]} persons")

    probs = branch_probabilities(th, A, B, C) @ category_matrix(M, counts.shape[1])
    ll = xlogy(counts, probs).sum(axis=1)
    if constant:
        ll = ll + multinomial_constant(counts)
    return cast(NDArray[np.float64], ll)


# Camel-case alias
loglikMPT = loglik_mpt
