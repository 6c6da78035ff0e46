import pytest

from mptkit import parse_eqn

ONE_HIGH_THRESHOLD = """
5
old  hit   Do
old  hit   (1-Do)*g
old  miss  (1-Do)*(1-g)
new  fa    g
new  cr    (1-g)
"""


@pytest.fixture
def one_high_threshold_text():
    return ONE_HIGH_THRESHOLD


@pytest.fixture
def one_high_threshold():
    """One-high-threshold recognition model: categories hit, miss, fa, cr."""
    return parse_eqn(ONE_HIGH_THRESHOLD)


@pytest.fixture
def binomial_arrays():
    """Single-parameter model with one branch per category (a, b, c, map)."""
    return [[1.0], [0.0]], [[0.0], [1.0]], [1.0, 1.0], [0, 1]
