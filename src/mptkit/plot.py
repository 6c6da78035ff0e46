from __future__ import annotations

from typing import Any
import matplotlib.pyplot as plt

from .fitting import MPTFit


def plot_trace(fit: MPTFit, quantity: str = "mean", ax: Any | None = None) -> Any:
    """
    Trace of every parameter of a group-level quantity, one line per chain.
    """
    draws = fit.group_draws(quantity)
    if ax is None:
        fig, ax = plt.subplots()
        _ = fig  # silence linters if unused
    assert fit.tree.parameters is not None
    for s, name in enumerate(fit.tree.parameters):
        for chain in range(draws.shape[0]):
            ax.plot(
                draws[chain, :, s],
                color=f"C{s}",
                alpha=0.7,
                label=name if chain == 0 else None,
            )
    ax.set_xlabel("draw")
    ax.set_ylabel(quantity)
    ax.legend()
    return ax


def plot_posterior(
    fit: MPTFit, quantity: str = "mean", ax: Any | None = None, bins: int = 40
) -> Any:
    """
    Pooled posterior histograms of a group-level quantity.
    """
    draws = fit.group_draws(quantity)
    flat = draws.reshape(-1, draws.shape[-1])
    if ax is None:
        fig, ax = plt.subplots()
        _ = fig
    assert fit.tree.parameters is not None
    for s, name in enumerate(fit.tree.parameters):
        ax.hist(flat[:, s], bins=bins, density=True, histtype="step", label=name)
    ax.set_xlabel(quantity)
    ax.set_ylabel("density")
    ax.legend()
    return ax
