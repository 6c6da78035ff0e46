import numpy as np
import matplotlib.pyplot as plt

from mptkit import MCMCSettings, fit_beta_mpt, gen_beta_mpt, parse_eqn
from mptkit.logging_config import setup_logging
from mptkit.plot import plot_trace

setup_logging()

# Two-high-threshold model with equal detection for old and new items
model = parse_eqn(
    """
    6
    old  hit   Do
    old  hit   (1-Do)*g
    old  miss  (1-Do)*(1-g)
    new  cr    Dn
    new  cr    (1-Dn)*(1-g)
    new  fa    (1-Dn)*g
    """,
    restrict={"Dn": "Do"},
)

rng = np.random.default_rng(123)

# Synthetic data: 30 participants, 60 old and 60 new items each
H, theta_true = gen_beta_mpt(
    30, {"old": 60, "new": 60}, model, alpha=[8.0, 3.0], beta=[8.0, 9.0], rng=rng
)

settings = MCMCSettings(n_iter=3000, n_burnin=1000, n_thin=2, n_chains=3, seed=1)
fit = fit_beta_mpt(model, H, settings=settings)

print("group means:", fit.estimates("mean"))
print("true means: ", dict(zip(model.parameters, theta_true.mean(axis=0))))
print("R-hat:", fit.rhat()["mean"])
print("posterior predictive p:", fit.posterior_predictive(n_samples=500, rng=rng).p_value)

ax = plot_trace(fit, "mean")
ax.set_title("Beta-MPT group means")
plt.show()
