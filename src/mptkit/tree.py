from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, Sequence, cast

import numpy as np
from numpy.typing import ArrayLike, NDArray


def coerce_model_arrays(
    a: ArrayLike,
    b: ArrayLike,
    c: ArrayLike,
    map: ArrayLike,
    n_categories: int | None = None,
) -> tuple[NDArray[np.float64], NDArray[np.float64], NDArray[np.float64], NDArray[np.intp]]:
    """
    Validate the array form of an MPT model and return (a, b, c, map):

    - a, b  -> (J, S) float, non-negative, same shape
    - c     -> (J,)   float, strictly positive
    - map   -> (J,)   int, 0-based category index per branch

    If `n_categories` is given, `map` may not point past it.
    """
    A = np.asarray(a, dtype=float)
    B = np.asarray(b, dtype=float)
    if A.ndim == 1:
        A = A[:, None]
    if B.ndim == 1:
        B = B[:, None]
    if A.ndim != 2 or A.shape != B.shape:
        raise ValueError(f"a and b must be 2D with equal shapes, got {A.shape} and {B.shape}")
    n_branches = A.shape[0]

    C = np.asarray(c, dtype=float).reshape(-1)
    if C.size == 1 and n_branches != 1:
        C = np.full(n_branches, float(C[0]))
    if C.size != n_branches:
        raise ValueError(f"c has length {C.size}, expected {n_branches} branches")

    raw_map = np.asarray(map, dtype=float).reshape(-1)
    if raw_map.size != n_branches:
        raise ValueError(f"map has length {raw_map.size}, expected {n_branches} branches")
    if not np.all(raw_map == np.round(raw_map)):
        raise ValueError("map must contain integer category indices")
    M = raw_map.astype(np.intp)

    if np.any(A < 0) or np.any(B < 0):
        raise ValueError("a and b must be non-negative")
    if np.any(C <= 0) or not np.all(np.isfinite(C)):
        raise ValueError("c must be strictly positive and finite")
    if np.any(M < 0):
        raise ValueError("map must contain 0-based category indices")
    if n_categories is not None and np.any(M >= n_categories):
        raise ValueError(
            f"map references category {int(M.max())} but only {n_categories} categories exist"
        )
    return A, B, C, cast(NDArray[np.intp], M)


def category_matrix(map: NDArray[np.intp], n_categories: int) -> NDArray[np.float64]:
    """Indicator matrix (J, K) with a one where branch j ends in category k."""
    ind = np.zeros((map.size, n_categories), dtype=float)
    ind[np.arange(map.size), map] = 1.0
    return ind


def branch_probabilities(
    theta: ArrayLike,
    a: NDArray[np.float64],
    b: NDArray[np.float64],
    c: NDArray[np.float64],
) -> NDArray[np.float64]:
    """
    p_j(theta) = c_j * prod_s theta_s^a_js * (1 - theta_s)^b_js

    `theta` has shape (..., S); the result has shape (..., J).
    """
    th = np.asarray(theta, dtype=float)
    if th.shape[-1] != a.shape[1]:
        raise ValueError(f"theta has {th.shape[-1]} parameters, model has {a.shape[1]}")
    t = th[..., None, :]
    # 0 ** 0 == 1, so parameters absent from a branch never zero it out
    p = np.prod(t**a * (1.0 - t) ** b, axis=-1)
    return cast(NDArray[np.float64], c * p)


@dataclass
class MPTTree:
    """
    Array representation of a multinomial processing tree model.

    Branch j ends in category map[j] and has probability
    c[j] * prod_s theta_s^a[j,s] * (1-theta_s)^b[j,s].
    `trees[k]` labels the tree that category k belongs to.
    """

    a: NDArray[np.float64]
    b: NDArray[np.float64]
    c: NDArray[np.float64]
    map: NDArray[np.intp]
    parameters: Optional[Sequence[str]] = None
    categories: Optional[Sequence[str]] = None
    trees: Optional[Sequence[str]] = None
    _indicator: NDArray[np.float64] = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self.a, self.b, self.c, self.map = coerce_model_arrays(
            self.a, self.b, self.c, self.map
        )
        n_cat = int(self.map.max()) + 1
        if self.categories is not None:
            n_cat = len(self.categories)
        missing = sorted(set(range(n_cat)) - set(self.map.tolist()))
        if missing or self.map.max() >= n_cat:
            raise ValueError(f"every category needs at least one branch; missing {missing}")

        S = self.a.shape[1]
        self.parameters = (
            [f"theta{s + 1}" for s in range(S)]
            if self.parameters is None
            else list(self.parameters)
        )
        self.categories = (
            [f"cat{k + 1}" for k in range(n_cat)]
            if self.categories is None
            else list(self.categories)
        )
        self.trees = ["tree1"] * n_cat if self.trees is None else list(self.trees)
        if len(self.parameters) != S:
            raise ValueError(f"{len(self.parameters)} parameter names for {S} parameters")
        if len(set(self.parameters)) != S:
            raise ValueError("parameter names must be unique")
        if len(self.trees) != n_cat:
            raise ValueError(f"{len(self.trees)} tree labels for {n_cat} categories")
        self._indicator = category_matrix(self.map, n_cat)

    @property
    def n_parameters(self) -> int:
        return int(self.a.shape[1])

    @property
    def n_branches(self) -> int:
        return int(self.a.shape[0])

    @property
    def n_categories(self) -> int:
        return int(self._indicator.shape[1])

    @property
    def tree_names(self) -> list[str]:
        """Tree labels in order of first appearance."""
        assert self.trees is not None
        return list(dict.fromkeys(self.trees))

    def category_indices(self, tree: str) -> NDArray[np.intp]:
        assert self.trees is not None
        idx = [k for k, t in enumerate(self.trees) if t == tree]
        if not idx:
            raise KeyError(f"unknown tree {tree!r}")
        return np.asarray(idx, dtype=np.intp)

    def branch_probabilities(self, theta: ArrayLike) -> NDArray[np.float64]:
        return branch_probabilities(theta, self.a, self.b, self.c)

    def category_probabilities(self, theta: ArrayLike) -> NDArray[np.float64]:
        """Category probabilities with shape (..., K) for theta of shape (..., S)."""
        return cast(NDArray[np.float64], self.branch_probabilities(theta) @ self._indicator)
