from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Sequence, cast

import numpy as np
from numpy.typing import ArrayLike, NDArray

from .simulate import draw_frequencies, tree_totals
from .utils import RngInput, as_rng

if TYPE_CHECKING:
    from .fitting import MPTFit


@dataclass
class Summary:
    """Posterior summary; every array keeps the trailing shape of the draws."""

    mean: np.ndarray
    sd: np.ndarray
    quantiles: np.ndarray  # shape (len(probs), ...)
    probs: tuple[float, ...]


def _pooled(draws: ArrayLike) -> NDArray[np.float64]:
    arr = np.asarray(draws, dtype=float)
    if arr.ndim < 2:
        raise ValueError("draws need a chain axis and a draw axis")
    return arr.reshape((-1,) + arr.shape[2:])


def summarize(
    draws: ArrayLike, probs: Sequence[float] = (0.025, 0.5, 0.975)
) -> Summary:
    """Mean, sd and quantiles over all chains and draws (the first two axes)."""
    flat = _pooled(draws)
    p = tuple(float(q) for q in probs)
    if any(q < 0.0 or q > 1.0 for q in p):
        raise ValueError("probs must lie in [0, 1]")
    return Summary(
        mean=flat.mean(axis=0),
        sd=flat.std(axis=0, ddof=1) if flat.shape[0] > 1 else np.zeros(flat.shape[1:]),
        quantiles=np.quantile(flat, p, axis=0),
        probs=p,
    )


def gelman_rubin(draws: ArrayLike) -> NDArray[np.float64]:
    """
    Potential scale reduction factor for draws of shape (chains, draws, ...):

        R = sqrt(((n - 1) / n * W + B / n) / W)

    with W the mean within-chain variance and B / n the variance of the chain
    means. Quantities that are constant within every chain give nan.
    """
    arr = np.asarray(draws, dtype=float)
    if arr.ndim < 2 or arr.shape[0] < 2 or arr.shape[1] < 2:
        raise ValueError("gelman_rubin needs at least two chains with two draws each")
    n = arr.shape[1]
    W = arr.var(axis=1, ddof=1).mean(axis=0)
    B_over_n = arr.mean(axis=1).var(axis=0, ddof=1)
    var_hat = (n - 1) / n * W + B_over_n
    with np.errstate(divide="ignore", invalid="ignore"):
        rhat = np.sqrt(np.where(W > 0, var_hat / W, np.nan))
    return cast(NDArray[np.float64], rhat)


def t1_statistic(observed: ArrayLike, expected: ArrayLike) -> NDArray[np.float64]:
    """sum_k (o_k - e_k)^2 / e_k over the last axis, skipping e_k = 0."""
    o = np.asarray(observed, dtype=float)
    e = np.asarray(expected, dtype=float)
    safe = np.where(e > 0, e, 1.0)
    terms = np.where(e > 0, (o - e) ** 2 / safe, 0.0)
    return cast(NDArray[np.float64], terms.sum(axis=-1))


@dataclass
class PosteriorPredictive:
    """T1 statistics of observed and replicated data for sampled posterior draws."""

    t1_observed: np.ndarray
    t1_replicated: np.ndarray

    @property
    def p_value(self) -> float:
        return float(np.mean(self.t1_replicated >= self.t1_observed))


def posterior_predictive_t1(
    fit: "MPTFit", n_samples: int = 500, rng: RngInput = None
) -> PosteriorPredictive:
    """
    Posterior predictive check on the category frequencies summed over persons.

    For each sampled posterior draw the expected frequencies follow from the
    person parameters and each person's number of items per tree; one data
    set is replicated from them. T1 compares observed and replicated
    frequencies with the expected ones.
    """
    if n_samples < 1:
        raise ValueError("n_samples must be at least 1")
    gen = as_rng(rng)
    tree = fit.tree
    H = np.asarray(fit.data)
    theta = fit.samples["theta"]
    flat = theta.reshape((-1,) + theta.shape[2:])
    picks = gen.choice(flat.shape[0], size=n_samples, replace=flat.shape[0] < n_samples)

    items = tree_totals(H, tree)
    # items of the tree each category belongs to, per person
    tree_of = np.asarray([tree.tree_names.index(t) for t in (tree.trees or [])])
    category_items = items[:, tree_of]

    obs_total = H.sum(axis=0)
    t1_obs = np.empty(n_samples)
    t1_rep = np.empty(n_samples)
    for i, d in enumerate(picks):
        probs = tree.category_probabilities(flat[d])
        expected = (probs * category_items).sum(axis=0)
        replicated = draw_frequencies(probs, items, tree, gen).sum(axis=0)
        t1_obs[i] = t1_statistic(obs_total, expected)
        t1_rep[i] = t1_statistic(replicated, expected)
    return PosteriorPredictive(t1_observed=t1_obs, t1_replicated=t1_rep)
