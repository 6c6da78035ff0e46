from __future__ import annotations

from typing import Mapping, Union, cast

import numpy as np
from numpy.typing import ArrayLike, NDArray

from .tree import MPTTree
from .utils import RngInput, as_rng

ItemsInput = Union[int, Mapping[str, int]]


def _items_matrix(n_items: ItemsInput, tree: MPTTree, n_persons: int) -> NDArray[np.int64]:
    """(N, T) number of items per person and tree, in `tree.tree_names` order."""
    names = tree.tree_names
    if isinstance(n_items, Mapping):
        unknown = set(n_items) - set(names)
        if unknown:
            raise ValueError(f"unknown trees in n_items: {sorted(unknown)}")
        counts = [int(n_items.get(name, 0)) for name in names]
    else:
        counts = [int(n_items)] * len(names)
    if any(n < 0 for n in counts):
        raise ValueError("number of items must be non-negative")
    return np.tile(np.asarray(counts, dtype=np.int64), (n_persons, 1))


def tree_totals(H: ArrayLike, tree: MPTTree) -> NDArray[np.int64]:
    """Observed number of items per person and tree, shape (N, T)."""
    arr = np.asarray(H)
    if arr.ndim != 2 or arr.shape[1] != tree.n_categories:
        raise ValueError(f"H must be (N, {tree.n_categories}), got shape {arr.shape}")
    cols = [arr[:, tree.category_indices(name)].sum(axis=1) for name in tree.tree_names]
    return np.stack(cols, axis=1).astype(np.int64)


def draw_frequencies(
    probs: NDArray[np.float64],
    items: NDArray[np.int64],
    tree: MPTTree,
    rng: np.random.Generator,
) -> NDArray[np.int64]:
    """
    Multinomial frequencies per person and tree.

    `probs` (N, K) are category probabilities, `items` (N, T) the number of
    items per tree. Probabilities within each tree must sum to one.
    """
    H = np.zeros(probs.shape, dtype=np.int64)
    for t, name in enumerate(tree.tree_names):
        idx = tree.category_indices(name)
        p = probs[:, idx]
        total = p.sum(axis=1, keepdims=True)
        if not np.allclose(total, 1.0, atol=1e-8):
            raise ValueError(f"category probabilities of tree {name!r} do not sum to one")
        H[:, idx] = rng.multinomial(items[:, t], p / total)
    return H


def gen_mpt(
    theta: ArrayLike,
    n_items: ItemsInput,
    tree: MPTTree,
    rng: RngInput = None,
) -> NDArray[np.int64]:
    """
    Simulate frequencies H (N, K) for person parameters `theta` (N, S).

    `n_items` is either one number used for every tree or a mapping from
    tree label to its number of items.
    """
    th = np.asarray(theta, dtype=float)
    if th.ndim == 1:
        th = th[None, :]
    if th.ndim != 2 or th.shape[1] != tree.n_parameters:
        raise ValueError(f"theta must be (N, {tree.n_parameters}), got shape {th.shape}")
    if np.any(th < 0) or np.any(th > 1):
        raise ValueError("theta values must lie in [0, 1]")
    items = _items_matrix(n_items, tree, th.shape[0])
    return draw_frequencies(tree.category_probabilities(th), items, tree, as_rng(rng))


def gen_beta_mpt(
    N: int,
    n_items: ItemsInput,
    tree: MPTTree,
    alpha: ArrayLike,
    beta: ArrayLike,
    rng: RngInput = None,
) -> tuple[NDArray[np.int64], NDArray[np.float64]]:
    """
    Draw theta[i, s] ~ Beta(alpha_s, beta_s) for N persons and simulate their
    frequencies. Returns (H, theta).
    """
    if N < 1:
        raise ValueError("N must be at least 1")
    S = tree.n_parameters
    al = np.broadcast_to(np.asarray(alpha, dtype=float), (S,))
    be = np.broadcast_to(np.asarray(beta, dtype=float), (S,))
    if np.any(al <= 0) or np.any(be <= 0):
        raise ValueError("alpha and beta must be strictly positive")
    gen = as_rng(rng)
    theta = cast(NDArray[np.float64], gen.beta(al, be, size=(N, S)))
    return gen_mpt(theta, n_items, tree, gen), theta
