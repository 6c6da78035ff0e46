from __future__ import annotations

import numpy as np

RngInput = np.random.Generator | int | None


def make_rng(seed: int | None) -> np.random.Generator:
    """Create a PCG64-based Generator, or numpy default if seed is None."""
    return np.random.default_rng(None if seed is None else np.random.PCG64(seed))


def as_rng(rng: RngInput) -> np.random.Generator:
    """Pass Generators through unchanged; build one from a seed otherwise."""
    if isinstance(rng, np.random.Generator):
        return rng
    return make_rng(rng)


def spawn_rngs(seed: int | None, n: int) -> list[np.random.Generator]:
    """Independent generators for `n` chains, derived from a single seed."""
    seq = np.random.SeedSequence(seed)
    return [np.random.Generator(np.random.PCG64(s)) for s in seq.spawn(n)]
