"""
mptkit — Bayesian estimation of multinomial processing tree (MPT) models:
- Model arrays (a, b, c, map) and EQN model files
- Log-likelihood of category frequencies
- Gibbs samplers for the simple (fixed prior) and hierarchical beta-MPT model
- Multi-chain fitting, posterior summaries, R-hat and posterior predictive checks
- Data simulation
"""

from .tree import MPTTree
from .eqn import EQNSyntaxError, parse_eqn, read_eqn
from .likelihood import loglik_mpt, loglik_persons, loglikMPT
from .sampling import beta_mpt, simple_mpt, betampt, simplempt
from .config import MCMCSettings
from .fitting import MPTFit, fit_simple_mpt, fit_beta_mpt
from .diagnostics import Summary, summarize, gelman_rubin, posterior_predictive_t1
from .simulate import gen_mpt, gen_beta_mpt

__all__ = [
    "MPTTree",
    "EQNSyntaxError",
    "parse_eqn",
    "read_eqn",
    "loglik_mpt",
    "loglik_persons",
    "loglikMPT",
    "beta_mpt",
    "simple_mpt",
    "betampt",
    "simplempt",
    "MCMCSettings",
    "MPTFit",
    "fit_simple_mpt",
    "fit_beta_mpt",
    "Summary",
    "summarize",
    "gelman_rubin",
    "posterior_predictive_t1",
    "gen_mpt",
    "gen_beta_mpt",
]

__version__ = "2026.10.0"
