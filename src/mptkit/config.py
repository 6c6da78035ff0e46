from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class MCMCSettings:
    """
    Run length and chain layout for the fitting functions.

    Attributes
    ----------
    n_iter : int
        Iterations per chain, burn-in included.
    n_burnin : int
        Leading iterations discarded from every chain. For the beta-MPT
        sampler these are also the iterations used to tune the proposals.
    n_thin : int
        Keep every `n_thin`-th draw after burn-in.
    n_chains : int
        Number of independent chains.
    seed : int | None
        Seed from which the generators of all chains are spawned.
    """

    n_iter: int = 2000
    n_burnin: int = 500
    n_thin: int = 1
    n_chains: int = 3
    seed: Optional[int] = None

    def __post_init__(self) -> None:
        if self.n_burnin < 0:
            raise ValueError("n_burnin must be non-negative")
        if self.n_iter <= self.n_burnin:
            raise ValueError(
                f"n_iter ({self.n_iter}) must exceed n_burnin ({self.n_burnin})"
            )
        if self.n_thin < 1:
            raise ValueError("n_thin must be at least 1")
        if self.n_chains < 1:
            raise ValueError("n_chains must be at least 1")

    @property
    def n_draws(self) -> int:
        """Draws retained per chain."""
        return len(range(self.n_burnin, self.n_iter, self.n_thin))
