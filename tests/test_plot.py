# tests/test_plot.py
import matplotlib

matplotlib.use("Agg")

import numpy as np

from mptkit import MCMCSettings, fit_simple_mpt
from mptkit.plot import plot_posterior, plot_trace


def test_plots_one_line_per_chain_and_parameter(one_high_threshold):
    H = np.array([[30, 20, 10, 40], [25, 25, 15, 35]])
    settings = MCMCSettings(n_iter=60, n_burnin=20, n_chains=3, seed=0)
    fit = fit_simple_mpt(one_high_threshold, H, settings=settings)

    ax = plot_trace(fit)
    assert len(ax.lines) == 3 * 2
    assert ax.get_ylabel() == "mean"
    labels = [t.get_text() for t in ax.get_legend().get_texts()]
    assert labels == ["Do", "g"]

    ax = plot_posterior(fit)
    assert ax.get_xlabel() == "mean"
