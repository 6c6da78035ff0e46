from __future__ import annotations

import logging
from typing import Any, cast

import numpy as np
from numpy.typing import ArrayLike, NDArray
from scipy.special import gammaln

from .tree import branch_probabilities, coerce_model_arrays
from .utils import RngInput, as_rng

logger = logging.getLogger(__name__)

# theta is kept this far away from 0 and 1 wherever it enters a logarithm
_EPS = 1e-12
_TARGET_ACCEPTANCE = 0.44
_ADAPT_EVERY = 50


def _coerce_positive(x: ArrayLike, n: int, name: str) -> NDArray[np.float64]:
    """Broadcast a scalar or length-n vector to (n,), requiring every entry > 0."""
    arr = np.asarray(x, dtype=float).reshape(-1)
    if arr.size == 1:
        arr = np.full(n, float(arr[0]))
    if arr.size != n:
        raise ValueError(f"{name} must be a scalar or have length {n}, got {arr.size}")
    if np.any(arr <= 0) or not np.all(np.isfinite(arr)):
        raise ValueError(f"{name} must be strictly positive and finite")
    return arr


def _coerce_hits(H: ArrayLike) -> NDArray[np.int64]:
    arr = np.asarray(H, dtype=float)
    if arr.ndim == 1:
        arr = arr[None, :]
    if arr.ndim != 2:
        raise ValueError(f"H must be (N, K), got shape {arr.shape}")
    if not np.all(np.isfinite(arr)) or np.any(arr < 0):
        raise ValueError("H must contain finite, non-negative frequencies")
    if not np.all(arr == np.round(arr)):
        raise ValueError("H must contain integer frequencies")
    return arr.astype(np.int64)


class _Augmenter:
    """
    Latent branch frequencies given the current person parameters.

    For category k with observed count n_ik, the counts of the branches
    ending in k are Multinomial(n_ik, p_j / p_k).
    """

    def __init__(self, H: ArrayLike, a: ArrayLike, b: ArrayLike, c: ArrayLike, map: ArrayLike):
        self.H = _coerce_hits(H)
        n_cat = self.H.shape[1]
        self.a, self.b, self.c, self.map = coerce_model_arrays(
            a, b, c, map, n_categories=n_cat
        )
        self.groups = [np.flatnonzero(self.map == k) for k in range(n_cat)]
        for k, idx in enumerate(self.groups):
            if idx.size == 0 and np.any(self.H[:, k] > 0):
                raise ValueError(f"category {k} has observations but no branch")

    @property
    def n_persons(self) -> int:
        return int(self.H.shape[0])

    @property
    def n_parameters(self) -> int:
        return int(self.a.shape[1])

    def draw(self, theta: NDArray[np.float64], rng: np.random.Generator) -> NDArray[np.int64]:
        p = branch_probabilities(np.clip(theta, _EPS, 1.0 - _EPS), self.a, self.b, self.c)
        Z = np.zeros(p.shape, dtype=np.int64)
        for k, idx in enumerate(self.groups):
            n_k = self.H[:, k]
            if idx.size == 0:
                continue
            if idx.size == 1:
                Z[:, idx[0]] = n_k
                continue
            pk = p[:, idx]
            total = pk.sum(axis=1, keepdims=True)
            if np.any((total[:, 0] <= 0) & (n_k > 0)):
                raise RuntimeError(f"category {k} has zero probability but positive frequency")
            pk = pk / np.where(total > 0, total, 1.0)
            Z[:, idx] = rng.multinomial(n_k, pk)
        return Z

    def conditional_theta(
        self,
        Z: NDArray[np.int64],
        alpha: NDArray[np.float64],
        beta: NDArray[np.float64],
        rng: np.random.Generator,
    ) -> NDArray[np.float64]:
        """theta[i, s] ~ Beta(alpha_s + (Z a)[i, s], beta_s + (Z b)[i, s])"""
        return cast(NDArray[np.float64], rng.beta(alpha + Z @ self.a, beta + Z @ self.b))


def simple_mpt(
    M: int,
    H: ArrayLike,
    a: ArrayLike,
    b: ArrayLike,
    c: ArrayLike,
    map: ArrayLike,
    alpha: ArrayLike,
    beta: ArrayLike,
    rng: RngInput = None,
) -> dict[str, NDArray[np.float64]]:
    """
    Gibbs sampler for independent per-person MPT parameters with fixed
    Beta(alpha_s, beta_s) priors.

    Returns {"theta": (M, N, S)}.
    """
    M = int(M)
    if M < 1:
        raise ValueError("M must be at least 1")
    aug = _Augmenter(H, a, b, c, map)
    S, N = aug.n_parameters, aug.n_persons
    al = _coerce_positive(alpha, S, "alpha")
    be = _coerce_positive(beta, S, "beta")
    gen = as_rng(rng)

    logger.debug("simple_mpt: %d iterations, %d persons, %d parameters", M, N, S)
    theta = gen.beta(al, be, size=(N, S))
    out = np.empty((M, N, S), dtype=float)
    for m in range(M):
        Z = aug.draw(theta, gen)
        theta = aug.conditional_theta(Z, al, be, gen)
        out[m] = theta
    return {"theta": out}


def _log_hyper_posterior(
    log_alpha: NDArray[np.float64],
    log_beta: NDArray[np.float64],
    n: int,
    sum_log_t: NDArray[np.float64],
    sum_log_1mt: NDArray[np.float64],
    shape: NDArray[np.float64],
    rate: NDArray[np.float64],
) -> NDArray[np.float64]:
    """
    Log posterior of (log alpha_s, log beta_s) given the person parameters,
    with Gamma(shape, rate) priors and the log-scale Jacobian folded in.
    """
    al = np.exp(log_alpha)
    be = np.exp(log_beta)
    lp = n * (gammaln(al + be) - gammaln(al) - gammaln(be))
    lp += (al - 1.0) * sum_log_t + (be - 1.0) * sum_log_1mt
    lp += shape * log_alpha - rate * al + shape * log_beta - rate * be
    return cast(NDArray[np.float64], lp)


def beta_mpt(
    M: int,
    H: ArrayLike,
    a: ArrayLike,
    b: ArrayLike,
    c: ArrayLike,
    map: ArrayLike,
    shape: ArrayLike,
    rate: ArrayLike,
    rng: RngInput = None,
    n_adapt: int | None = None,
    proposal_sd: float = 0.5,
) -> dict[str, NDArray[np.float64]]:
    """
    Gibbs sampler for the beta-MPT model:

        theta[i, s]       ~ Beta(alpha_s, beta_s)
        alpha_s, beta_s   ~ Gamma(shape_s, rate_s)

    Person parameters are drawn by data augmentation; each (alpha_s, beta_s)
    pair is updated by a random-walk Metropolis step on the log scale. The
    proposal scale is tuned during the first `n_adapt` iterations
    (default M // 2) towards an acceptance rate of 0.44.

    Returns a dict with "theta" (M, N, S), "alpha", "beta", "mean", "sd"
    (each (M, S)) and "acceptance" (S,).
    """
    M = int(M)
    if M < 1:
        raise ValueError("M must be at least 1")
    if proposal_sd <= 0:
        raise ValueError("proposal_sd must be positive")
    aug = _Augmenter(H, a, b, c, map)
    S, N = aug.n_parameters, aug.n_persons
    shp = _coerce_positive(shape, S, "shape")
    rte = _coerce_positive(rate, S, "rate")
    n_adapt = M // 2 if n_adapt is None else max(0, int(n_adapt))
    gen = as_rng(rng)

    logger.debug("beta_mpt: %d iterations, %d persons, %d parameters", M, N, S)
    log_alpha = np.zeros(S)
    log_beta = np.zeros(S)
    step = np.full(S, float(proposal_sd))
    theta = gen.uniform(size=(N, S))

    out: dict[str, Any] = {
        "theta": np.empty((M, N, S), dtype=float),
        "alpha": np.empty((M, S), dtype=float),
        "beta": np.empty((M, S), dtype=float),
    }
    accepted_window = np.zeros(S)
    accepted_after = np.zeros(S)
    accepted_total = np.zeros(S)

    for m in range(M):
        al, be = np.exp(log_alpha), np.exp(log_beta)
        Z = aug.draw(theta, gen)
        theta = aug.conditional_theta(Z, al, be, gen)

        t = np.clip(theta, _EPS, 1.0 - _EPS)
        slt = np.log(t).sum(axis=0)
        sl1t = np.log1p(-t).sum(axis=0)
        current = _log_hyper_posterior(log_alpha, log_beta, N, slt, sl1t, shp, rte)
        prop_a = log_alpha + step * gen.standard_normal(S)
        prop_b = log_beta + step * gen.standard_normal(S)
        proposed = _log_hyper_posterior(prop_a, prop_b, N, slt, sl1t, shp, rte)
        accept = np.log(gen.uniform(size=S)) < proposed - current
        log_alpha = np.where(accept, prop_a, log_alpha)
        log_beta = np.where(accept, prop_b, log_beta)

        accepted_total += accept
        if m < n_adapt:
            accepted_window += accept
            if (m + 1) % _ADAPT_EVERY == 0:
                rate_window = accepted_window / _ADAPT_EVERY
                step = np.where(rate_window > _TARGET_ACCEPTANCE, step * 1.2, step / 1.2)
                accepted_window[:] = 0.0
        else:
            accepted_after += accept

        out["theta"][m] = theta
        out["alpha"][m] = np.exp(log_alpha)
        out["beta"][m] = np.exp(log_beta)

    if M > n_adapt:
        acceptance = accepted_after / (M - n_adapt)
    else:
        acceptance = accepted_total / M
    logger.debug("beta_mpt: proposal scales %s, acceptance %s", step, acceptance)

    al, be = out["alpha"], out["beta"]
    total = al + be
    out["mean"] = al / total
    out["sd"] = np.sqrt(al * be / (total**2 * (total + 1.0)))
    out["acceptance"] = acceptance
    return out


# Camel-case aliases
simplempt = simple_mpt
betampt = beta_mpt
