from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Sequence

import numpy as np
from numpy.typing import ArrayLike

from .config import MCMCSettings
from .diagnostics import (
    PosteriorPredictive,
    Summary,
    gelman_rubin,
    posterior_predictive_t1,
    summarize,
)
from .sampling import beta_mpt, simple_mpt
from .tree import MPTTree
from .utils import RngInput, spawn_rngs

logger = logging.getLogger(__name__)


@dataclass
class MPTFit:
    """
    Retained posterior draws of one model fit.

    `samples` maps quantity names to arrays with leading (chain, draw) axes:
    "theta" is (chains, draws, N, S); the beta-MPT group quantities "mean",
    "sd", "alpha" and "beta" are (chains, draws, S).
    """

    tree: MPTTree
    data: np.ndarray
    model: str
    samples: dict[str, np.ndarray]
    settings: MCMCSettings
    acceptance: Optional[np.ndarray] = field(default=None, repr=False)

    def summary(self, probs: Sequence[float] = (0.025, 0.5, 0.975)) -> dict[str, Summary]:
        return {name: summarize(draws, probs) for name, draws in self.samples.items()}

    def rhat(self) -> dict[str, np.ndarray]:
        return {name: gelman_rubin(draws) for name, draws in self.samples.items()}

    def group_draws(self, quantity: str = "mean") -> np.ndarray:
        """
        (chains, draws, S) draws of a group-level quantity.

        For the simple model, "mean" averages theta over persons.
        """
        if quantity in self.samples and quantity != "theta":
            return self.samples[quantity]
        if quantity == "mean":
            return self.samples["theta"].mean(axis=2)
        raise KeyError(f"no group-level quantity {quantity!r} in a {self.model} fit")

    def estimates(self, quantity: str = "mean") -> dict[str, float]:
        """Posterior means of a group-level quantity, keyed by parameter name."""
        draws = self.group_draws(quantity)
        values = draws.reshape(-1, draws.shape[-1]).mean(axis=0)
        assert self.tree.parameters is not None
        return {name: float(v) for name, v in zip(self.tree.parameters, values)}

    def posterior_predictive(
        self, n_samples: int = 500, rng: RngInput = None
    ) -> PosteriorPredictive:
        return posterior_predictive_t1(self, n_samples=n_samples, rng=rng)


def _run_chains(
    sampler: Callable[..., dict[str, Any]],
    tree: MPTTree,
    H: np.ndarray,
    settings: MCMCSettings,
    **kwargs: Any,
) -> tuple[dict[str, np.ndarray], list[np.ndarray]]:
    keep = slice(settings.n_burnin, settings.n_iter, settings.n_thin)
    chains: list[dict[str, np.ndarray]] = []
    acceptance: list[np.ndarray] = []
    for i, rng in enumerate(spawn_rngs(settings.seed, settings.n_chains)):
        res = sampler(settings.n_iter, H, tree.a, tree.b, tree.c, tree.map, rng=rng, **kwargs)
        if "acceptance" in res:
            acceptance.append(res.pop("acceptance"))
        chains.append({k: v[keep] for k, v in res.items()})
        logger.info("chain %d/%d finished (%d iterations)", i + 1, settings.n_chains, settings.n_iter)
    samples = {k: np.stack([c[k] for c in chains]) for k in chains[0]}
    return samples, acceptance


def _check_data(tree: MPTTree, H: ArrayLike) -> np.ndarray:
    arr = np.asarray(H)
    if arr.ndim == 1:
        arr = arr[None, :]
    if arr.ndim != 2 or arr.shape[1] != tree.n_categories:
        raise ValueError(f"H must be (N, {tree.n_categories}), got shape {arr.shape}")
    return arr


def fit_simple_mpt(
    tree: MPTTree,
    H: ArrayLike,
    alpha: ArrayLike = 1.0,
    beta: ArrayLike = 1.0,
    settings: MCMCSettings | None = None,
) -> MPTFit:
    """
    Fit independent per-person MPT models with Beta(alpha, beta) priors.
    """
    settings = settings or MCMCSettings()
    data = _check_data(tree, H)
    logger.info(
        "fitting simple MPT: %d persons, %d parameters, %d chains",
        data.shape[0], tree.n_parameters, settings.n_chains,
    )
    samples, _ = _run_chains(simple_mpt, tree, data, settings, alpha=alpha, beta=beta)
    return MPTFit(tree=tree, data=data, model="simple", samples=samples, settings=settings)


def fit_beta_mpt(
    tree: MPTTree,
    H: ArrayLike,
    shape: ArrayLike = 1.0,
    rate: ArrayLike = 0.1,
    settings: MCMCSettings | None = None,
) -> MPTFit:
    """
    Fit the hierarchical beta-MPT model with Gamma(shape, rate) hyperpriors.

    Proposal scales for the hyperparameters are tuned during burn-in.
    """
    settings = settings or MCMCSettings()
    data = _check_data(tree, H)
    logger.info(
        "fitting beta-MPT: %d persons, %d parameters, %d chains",
        data.shape[0], tree.n_parameters, settings.n_chains,
    )
    samples, acceptance = _run_chains(
        beta_mpt, tree, data, settings, shape=shape, rate=rate, n_adapt=settings.n_burnin
    )
    acc = np.stack(acceptance)
    if np.any(acc < 0.1):
        logger.warning("low hyperparameter acceptance rates: %s", acc.min(axis=0))
    return MPTFit(
        tree=tree, data=data, model="beta", samples=samples, settings=settings, acceptance=acc
    )
