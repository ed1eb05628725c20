"""Split predicates and the default variance-reduction splitter.

A split is a "turn left" test on one encoded feature.  ``RealSplit`` compares
against a threshold, ``CategoricalSplit`` tests membership of a category code
in a set.  Both keep the feature index so prediction can route rows without
access to training data.
"""
from __future__ import annotations

from typing import Any, Dict, FrozenSet, Iterable, NamedTuple, Optional

import numpy as np

from .encoders import CategoricalEncoder
from .exceptions import ModelFormatError

# Gains below this fraction of the label scale are rounding noise.
_REL_TOL = 1e-12

# ----------------------------- Helpers -----------------------------

def _wmean(y: np.ndarray, w: np.ndarray) -> float:
    sw = float(w.sum())
    if sw <= 0.0:
        return 0.0
    return float((w * y).sum() / sw)

def _wsse(y: np.ndarray, w: np.ndarray) -> float:
    # SSE = sum w * (y - mean)^2, computed around the mean to avoid cancellation
    if y.size == 0:
        return 0.0
    d = y - _wmean(y, w)
    return float((w * d * d).sum())

def _children_sse(sw: np.ndarray, sy: np.ndarray, sy2: np.ndarray,
                  SW: float, SY: float, SY2: float) -> np.ndarray:
    """SSE of left + right for every prefix, from prefix sums."""
    swR = SW - sw
    syR = SY - sy
    sy2R = SY2 - sy2
    with np.errstate(divide="ignore", invalid="ignore"):
        sseL = sy2 - (sy * sy) / sw
        sseR = sy2R - (syR * syR) / swR
    out = sseL + sseR
    out[(sw <= 0) | (swR <= 0)] = np.inf
    return out

# ----------------------------- Splits -----------------------------

class Split:
    """Base class of turn-left predicates over one feature."""

    index: int

    def turn_left(self, x: np.ndarray) -> bool:
        raise NotImplementedError

    def mask(self, X: np.ndarray) -> np.ndarray:
        """Vectorised :meth:`turn_left` over the rows of ``X``."""
        raise NotImplementedError

    def to_dict(self) -> Dict[str, Any]:
        raise NotImplementedError

    def describe(self, name: str, encoder: Optional[CategoricalEncoder] = None,
                 left: bool = True) -> str:
        raise NotImplementedError

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "Split":
        kind = data.get("type")
        try:
            if kind == "real":
                return RealSplit(int(data["index"]), float(data["threshold"]))
            if kind == "categorical":
                return CategoricalSplit(int(data["index"]), data["codes"])
        except (KeyError, TypeError, ValueError) as e:
            raise ModelFormatError(f"Malformed split: {data!r}") from e
        raise ModelFormatError(f"Unknown split type {kind!r}")


class RealSplit(Split):
    """Turn left when ``x[index] <= threshold``."""

    __slots__ = ("index", "threshold")

    def __init__(self, index: int, threshold: float):
        self.index = int(index)
        self.threshold = float(threshold)

    def turn_left(self, x: np.ndarray) -> bool:
        return bool(x[self.index] <= self.threshold)

    def mask(self, X: np.ndarray) -> np.ndarray:
        return X[:, self.index] <= self.threshold

    def to_dict(self) -> Dict[str, Any]:
        return {"type": "real", "index": self.index, "threshold": self.threshold}

    def describe(self, name, encoder=None, left=True):
        op = "<=" if left else ">"
        return f"{name} {op} {self.threshold:.6g}"

    def __eq__(self, other):
        if not isinstance(other, RealSplit):
            return NotImplemented
        return self.index == other.index and self.threshold == other.threshold

    def __repr__(self):
        return f"RealSplit(index={self.index}, threshold={self.threshold!r})"


class CategoricalSplit(Split):
    """Turn left when the category code ``x[index]`` belongs to ``codes``."""

    __slots__ = ("index", "codes")

    def __init__(self, index: int, codes: Iterable[int]):
        self.index = int(index)
        self.codes: FrozenSet[int] = frozenset(int(c) for c in codes)

    def turn_left(self, x: np.ndarray) -> bool:
        return int(x[self.index]) in self.codes

    def mask(self, X: np.ndarray) -> np.ndarray:
        return np.isin(X[:, self.index], sorted(self.codes))

    def to_dict(self) -> Dict[str, Any]:
        return {"type": "categorical", "index": self.index, "codes": sorted(self.codes)}

    def describe(self, name, encoder=None, left=True):
        if encoder is not None:
            values = [str(encoder.decode(c)) for c in sorted(self.codes)]
        else:
            values = [str(c) for c in sorted(self.codes)]
        S = "{" + ", ".join(values) + "}"
        return f"{name} {'IN' if left else 'NOT IN'} {S}"

    def __eq__(self, other):
        if not isinstance(other, CategoricalSplit):
            return NotImplemented
        return self.index == other.index and self.codes == other.codes

    def __repr__(self):
        return f"CategoricalSplit(index={self.index}, codes={sorted(self.codes)})"

# ----------------------------- Splitter -----------------------------

class SplitResult(NamedTuple):
    split: Split
    improvement: float


class RegressionSplitter:
    """Find the split with the largest weighted SSE reduction.

    Numeric features are cut at midpoints between distinct sorted values.
    Categorical features are ordered by the weighted mean label of each code
    and every prefix of that order is tried as the left subset, which is
    optimal for squared error.  Ties keep the first candidate found, scanning
    features in index order, so the search is deterministic.

    Any object exposing ``best_split(X, y, w, categorical)`` with the same
    return contract can be injected into the learner instead.
    """

    def best_split(self, X: np.ndarray, y: np.ndarray, w: np.ndarray,
                   categorical: np.ndarray) -> Optional[SplitResult]:
        """Return the best split and its improvement, or None if none helps."""
        n, m = X.shape
        if n < 2:
            return None
        # center labels so the prefix-sum SSE formula stays well conditioned
        yc = y - _wmean(y, w)
        sse_parent = float((w * yc * yc).sum())
        if sse_parent <= _REL_TOL * float((w * y * y).sum()):
            return None

        best: Optional[SplitResult] = None
        best_gain = 0.0
        for j in range(m):
            if categorical[j]:
                found = self._best_categorical(X[:, j], yc, w, j, sse_parent)
            else:
                found = self._best_numeric(X[:, j], yc, w, j, sse_parent)
            if found is not None and found.improvement > best_gain:
                best = found
                best_gain = found.improvement
        return best

    def _best_numeric(self, col, y, w, j, sse_parent) -> Optional[SplitResult]:
        order = np.argsort(col, kind="mergesort")
        v = col[order]
        boundaries = np.nonzero(v[:-1] != v[1:])[0]
        if boundaries.size == 0:
            return None
        yk = y[order]
        wk = w[order]
        sw = np.cumsum(wk)
        sy = np.cumsum(wk * yk)
        sy2 = np.cumsum(wk * yk * yk)
        sse = _children_sse(sw[boundaries], sy[boundaries], sy2[boundaries],
                            float(sw[-1]), float(sy[-1]), float(sy2[-1]))
        k = int(np.argmin(sse))
        gain = sse_parent - float(sse[k])
        if not np.isfinite(gain) or gain <= _REL_TOL * sse_parent:
            return None
        i = boundaries[k]
        lo, hi = float(v[i]), float(v[i + 1])
        thr = 0.5 * (lo + hi)
        if not lo <= thr < hi:
            # adjacent floats: the midpoint rounds onto an endpoint
            thr = lo
        return SplitResult(RealSplit(j, thr), gain)

    def _best_categorical(self, col, y, w, j, sse_parent) -> Optional[SplitResult]:
        codes, inverse = np.unique(col, return_inverse=True)
        k = codes.size
        if k <= 1:
            return None
        sw_c = np.bincount(inverse, weights=w, minlength=k)
        sy_c = np.bincount(inverse, weights=w * y, minlength=k)
        sy2_c = np.bincount(inverse, weights=w * y * y, minlength=k)
        means = sy_c / sw_c
        order = np.argsort(means, kind="mergesort")
        sw = np.cumsum(sw_c[order])[:-1]
        sy = np.cumsum(sy_c[order])[:-1]
        sy2 = np.cumsum(sy2_c[order])[:-1]
        sse = _children_sse(sw, sy, sy2, float(sw_c.sum()), float(sy_c.sum()), float(sy2_c.sum()))
        t = int(np.argmin(sse))
        gain = sse_parent - float(sse[t])
        if not np.isfinite(gain) or gain <= _REL_TOL * sse_parent:
            return None
        left = codes[order[: t + 1]]
        return SplitResult(CategoricalSplit(j, left.astype(int).tolist()), gain)
