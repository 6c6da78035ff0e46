from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional, Union

import numpy as np

from .tree import MPTTree

logger = logging.getLogger(__name__)

Restriction = Union[float, str]

_NAME = r"[A-Za-z_][A-Za-z0-9_.]*"
_PARAM_RE = re.compile(rf"^{_NAME}$")
_COMPLEMENT_RE = re.compile(rf"^\(?1-({_NAME})\)?$")
_MANTISSA_RE = re.compile(r"^[0-9]*\.?[0-9]+[eE]$")


class EQNSyntaxError(ValueError):
    """Malformed line in an EQN model description."""

    def __init__(self, lineno: int, message: str) -> None:
        super().__init__(f"line {lineno}: {message}")
        self.lineno = lineno


@dataclass
class _Branch:
    tree: str
    category: str
    constant: float = 1.0
    a: dict[str, int] = field(default_factory=dict)
    b: dict[str, int] = field(default_factory=dict)


def _is_exponent_sign(expr: str, i: int) -> bool:
    """True if the sign at `i` belongs to a number such as `1e+3`."""
    start = max(expr.rfind(ch, 0, i) for ch in "*+-(") + 1
    return bool(_MANTISSA_RE.match(expr[start:i]))


def _split_top(expr: str, sep: str) -> list[str]:
    """Split on `sep` outside of parentheses."""
    parts, depth, start = [], 0, 0
    for i, ch in enumerate(expr):
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
            if depth < 0:
                raise ValueError("unbalanced parentheses")
        elif ch == sep and depth == 0 and not _is_exponent_sign(expr, i):
            parts.append(expr[start:i])
            start = i + 1
    if depth != 0:
        raise ValueError("unbalanced parentheses")
    parts.append(expr[start:])
    return parts


def _parse_product(tree: str, category: str, product: str) -> _Branch:
    branch = _Branch(tree=tree, category=category)
    for factor in _split_top(product, "*"):
        if not factor:
            raise ValueError(f"empty factor in {product!r}")
        m = _COMPLEMENT_RE.match(factor)
        if m:
            name = m.group(1)
            branch.b[name] = branch.b.get(name, 0) + 1
            continue
        bare = factor[1:-1] if factor.startswith("(") and factor.endswith(")") else factor
        if _PARAM_RE.match(bare):
            branch.a[bare] = branch.a.get(bare, 0) + 1
            continue
        try:
            value = float(bare)
        except ValueError:
            raise ValueError(f"cannot parse factor {factor!r}") from None
        if value <= 0:
            raise ValueError(f"constant factor must be positive, got {factor!r}")
        branch.constant *= value
    return branch


def _resolve(name: str, restrict: Mapping[str, Restriction]) -> Restriction:
    """Follow equality restrictions until a free name or a fixed value."""
    seen = {name}
    target: Restriction = name
    while isinstance(target, str) and target in restrict:
        target = restrict[target]
        if isinstance(target, str):
            if target in seen:
                raise ValueError(f"circular restriction involving {name!r}")
            seen.add(target)
    return target


def _apply_restrictions(
    branches: list[_Branch], restrict: Mapping[str, Restriction]
) -> None:
    known = {p for br in branches for p in (*br.a, *br.b)}
    unknown = set(restrict) - known
    if unknown:
        raise ValueError(f"restrictions on unknown parameters: {sorted(unknown)}")
    for name, target in restrict.items():
        if isinstance(target, str):
            if target not in known:
                raise ValueError(f"{name!r} restricted to unknown parameter {target!r}")
        elif not 0.0 < float(target) < 1.0:
            raise ValueError(f"fixed value for {name!r} must lie in (0, 1), got {target}")

    for br in branches:
        a: dict[str, int] = {}
        b: dict[str, int] = {}
        for counts, out in ((br.a, a), (br.b, b)):
            for name, n in counts.items():
                target = _resolve(name, restrict)
                if isinstance(target, str):
                    out[target] = out.get(target, 0) + n
                else:
                    v = float(target)
                    br.constant *= v**n if out is a else (1.0 - v) ** n
        br.a, br.b = a, b


def parse_eqn(text: str, restrict: Optional[Mapping[str, Restriction]] = None) -> MPTTree:
    """
    Build an MPTTree from an EQN model description.

    The first non-comment line is a header, normally the number of
    equations; it is skipped either way. Every other line is `<tree> <category> <equation>`. Equations are products of
    parameter names, `(1-name)` complements and positive constants; a sum of
    products adds one branch per term. Categories are numbered by first
    appearance and parameters sorted by name.

    `restrict` fixes parameters to a value in (0, 1) or equates them with
    another parameter.
    """
    header_seen = False
    declared: Optional[int] = None
    branches: list[_Branch] = []
    category_tree: dict[str, str] = {}
    n_lines = 0

    for lineno, raw in enumerate(text.splitlines(), start=1):
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        if not header_seen:
            header_seen = True
            try:
                declared = int(line)
            except ValueError:
                logger.info("EQN header %r is not an equation count; skipped", line)
            continue

        tokens = line.split(None, 2)
        if len(tokens) != 3:
            raise EQNSyntaxError(lineno, "expected '<tree> <category> <equation>'")
        tree, category, equation = tokens
        equation = "".join(equation.split())
        if category_tree.setdefault(category, tree) != tree:
            raise EQNSyntaxError(
                lineno, f"category {category!r} already belongs to tree {category_tree[category]!r}"
            )
        try:
            for product in _split_top(equation, "+"):
                branches.append(_parse_product(tree, category, product))
        except ValueError as e:
            raise EQNSyntaxError(lineno, str(e)) from e
        n_lines += 1

    if not branches:
        raise ValueError("EQN description contains no equations")
    if declared is not None and declared != n_lines:
        logger.info("EQN header declares %s equations, found %d", declared, n_lines)

    if restrict:
        _apply_restrictions(branches, restrict)

    categories = list(category_tree)
    parameters = sorted({p for br in branches for p in (*br.a, *br.b)})
    if not parameters:
        raise ValueError("model has no free parameters")
    col = {p: s for s, p in enumerate(parameters)}

    J, S = len(branches), len(parameters)
    a = np.zeros((J, S))
    b = np.zeros((J, S))
    for j, br in enumerate(branches):
        for p, n in br.a.items():
            a[j, col[p]] = n
        for p, n in br.b.items():
            b[j, col[p]] = n
    return MPTTree(
        a=a,
        b=b,
        c=np.asarray([br.constant for br in branches]),
        map=np.asarray([categories.index(br.category) for br in branches]),
        parameters=parameters,
        categories=categories,
        trees=[category_tree[k] for k in categories],
    )


def read_eqn(
    path: str | Path, restrict: Optional[Mapping[str, Restriction]] = None
) -> MPTTree:
    """Read an EQN file from disk; see `parse_eqn`."""
    return parse_eqn(Path(path).read_text(encoding="utf-8"), restrict=restrict)
