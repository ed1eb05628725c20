"""Synthetic regression problems.

``friedman_silverman`` is the Friedman & Silverman (1989) test function.  It
depends on the first five inputs only, and is most sensitive to the second
one (a steep logistic step), which makes it convenient for checking that a
learner ranks features sensibly.
"""
from __future__ import annotations

from typing import Any, Callable, List, Optional, Sequence, Tuple

import numpy as np

Row = Tuple[List[Any], float]


def friedman_silverman(x: Sequence[float]) -> float:
    return float(
        0.1 * np.exp(4.0 * x[0])
        + 4.0 / (1.0 + np.exp(-20.0 * (x[1] - 0.5)))
        + 3.0 * x[2]
        + 2.0 * x[3]
        + x[4]
    )


def make_training_data(n_rows: int, n_cols: int, noise: float = 0.0,
                       function: Callable[[Sequence[float]], float] = friedman_silverman,
                       seed: Optional[int] = 0) -> List[Row]:
    """Uniform inputs on [0, 1) labeled by ``function`` plus Gaussian noise."""
    if n_cols < 5 and function is friedman_silverman:
        raise ValueError("friedman_silverman needs at least 5 input columns")
    rng = np.random.default_rng(seed)
    X = rng.random((n_rows, n_cols))
    y = np.array([function(x) for x in X]) + noise * rng.standard_normal(n_rows)
    return [(list(map(float, x)), float(t)) for x, t in zip(X, y)]


def bin_training_data(rows: Sequence[Row], input_bins: Sequence[Tuple[int, int]]) -> List[Row]:
    """Replace numeric columns by string bin labels.

    ``input_bins`` holds ``(column, n_bins)`` pairs; each listed column is cut
    into ``n_bins`` equal-width bins over its observed range.
    """
    out = [(list(f), label) for f, label in rows]
    for col, n_bins in input_bins:
        values = np.array([f[col] for f, _ in out], dtype=float)
        lo, hi = float(values.min()), float(values.max())
        width = (hi - lo) / n_bins if hi > lo else 1.0
        for f, _ in out:
            b = min(int((f[col] - lo) / width), n_bins - 1)
            f[col] = f"bin_{b}"
    return out
