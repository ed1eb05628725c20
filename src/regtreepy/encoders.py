"""Categorical encoding and the shared training-data preparation pipeline.

Each categorical column gets its own :class:`CategoricalEncoder`, built once
from the full training column.  Numeric columns get no encoder and pass
through unchanged.  After encoding every row is a vector of floats; the
per-column ``categorical`` mask records which columns hold integer codes.
"""
from __future__ import annotations

import numbers
from typing import Any, Dict, Iterable, List, NamedTuple, Optional, Sequence, Tuple

import numpy as np
from loguru import logger

from .exceptions import (
    EmptyTrainingSetError,
    FeatureTypeError,
    InvalidLabelTypeError,
    ModelFormatError,
    UnseenCategoryError,
)

# Code assigned to values that were not seen while building an encoder.  It
# never appears in a categorical split, so such values always turn right.
UNKNOWN_CODE = 0


def is_numeric(value: Any) -> bool:
    """Return True for real numbers; booleans count as categorical."""
    return isinstance(value, numbers.Real) and not isinstance(value, (bool, np.bool_))


# ----------------------------- Encoder -----------------------------

class CategoricalEncoder:
    """Bijection between the raw values of one column and integer codes.

    Codes start at 1 and follow first-seen order, so building twice from the
    same column yields the same mapping.  Code 0 is reserved for values that
    were never seen.

    Parameters
    ----------
    categories : sequence
        Distinct raw values, in code order.
    strict : bool, default=False
        If True, encoding an unseen value raises :class:`UnseenCategoryError`
        instead of returning ``UNKNOWN_CODE``.
    """

    def __init__(self, categories: Sequence[Any], strict: bool = False):
        self._categories: Tuple[Any, ...] = tuple(categories)
        self._mapping: Dict[Any, int] = {v: i + 1 for i, v in enumerate(self._categories)}
        if len(self._mapping) != len(self._categories):
            raise ValueError("categories must be distinct")
        self.strict = bool(strict)

    @classmethod
    def build(cls, values: Iterable[Any], strict: bool = False) -> "CategoricalEncoder":
        seen = set()
        uniq = []
        for v in values:
            if v in seen:
                continue
            seen.add(v)
            uniq.append(v)
        return cls(uniq, strict=strict)

    @property
    def categories(self) -> Tuple[Any, ...]:
        return self._categories

    def __len__(self) -> int:
        return len(self._categories)

    def encode(self, value: Any) -> int:
        code = self._mapping.get(value)
        if code is None:
            if self.strict:
                raise UnseenCategoryError(value)
            logger.trace("Unseen category {!r} encoded as {}", value, UNKNOWN_CODE)
            return UNKNOWN_CODE
        return code

    def decode(self, code: int) -> Any:
        """Return the raw value for ``code``; None for the unknown code."""
        code = int(code)
        if code == UNKNOWN_CODE:
            return None
        if not 1 <= code <= len(self._categories):
            raise KeyError(code)
        return self._categories[code - 1]

    def to_dict(self) -> Dict[str, Any]:
        return {"categories": list(self._categories), "strict": self.strict}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CategoricalEncoder":
        try:
            # JSON turns tuples into lists; restore hashability
            cats = [tuple(c) if isinstance(c, list) else c for c in data["categories"]]
            return cls(cats, strict=bool(data.get("strict", False)))
        except (KeyError, TypeError) as e:
            raise ModelFormatError(f"Malformed categorical encoder: {data!r}") from e

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, CategoricalEncoder):
            return NotImplemented
        return self._categories == other._categories and self.strict == other.strict

    def __repr__(self) -> str:
        return f"CategoricalEncoder(n_categories={len(self)}, strict={self.strict})"


Encoders = List[Optional[CategoricalEncoder]]


def build_encoders(rows: Sequence[Sequence[Any]], strict: bool = False) -> Encoders:
    """Build one encoder per non-numeric column, judged from the first row."""
    first = rows[0]
    encoders: Encoders = []
    for j, v in enumerate(first):
        if is_numeric(v):
            encoders.append(None)
        else:
            encoders.append(CategoricalEncoder.build((r[j] for r in rows), strict=strict))
    return encoders


def categorical_mask(encoders: Encoders) -> np.ndarray:
    return np.array([e is not None for e in encoders], dtype=bool)


def encode_row(row: Sequence[Any], encoders: Encoders, row_index: int = 0) -> np.ndarray:
    """Encode a single raw feature vector, preserving column order."""
    if len(row) != len(encoders):
        raise FeatureTypeError(
            f"Row {row_index} has {len(row)} features, expected {len(encoders)}",
            row=row_index,
        )
    out = np.empty(len(encoders), dtype=float)
    for j, (v, enc) in enumerate(zip(row, encoders)):
        if enc is not None:
            out[j] = enc.encode(v)
        elif is_numeric(v):
            out[j] = float(v)
        else:
            raise FeatureTypeError(
                f"Column {j} is numeric but row {row_index} holds {v!r}",
                row=row_index,
                column=j,
            )
    return out


def encode_rows(rows: Sequence[Sequence[Any]], encoders: Encoders) -> np.ndarray:
    X = np.empty((len(rows), len(encoders)), dtype=float)
    for i, row in enumerate(rows):
        X[i] = encode_row(row, encoders, i)
    return X


# ----------------------------- Training pipeline -----------------------------

class EncodedTrainingData(NamedTuple):
    """Training data after validation, encoding and weight filtering."""

    X: np.ndarray
    y: np.ndarray
    w: np.ndarray
    categorical: np.ndarray
    encoders: Encoders
    n_dropped: int


def encode_training_data(training_data: Sequence[Tuple[Sequence[Any], Any]],
                         weights: Optional[Sequence[float]] = None,
                         strict: bool = False) -> EncodedTrainingData:
    """Validate labels, encode features and drop rows with weight <= 0.

    Raises
    ------
    InvalidLabelTypeError
        If any label is not a real number.
    EmptyTrainingSetError
        If there are no rows, or none with positive weight.
    FeatureTypeError
        If a numeric column holds a non-numeric value, or row lengths differ.
    ValueError
        If ``weights`` does not have one entry per row.
    """
    rows = list(training_data)
    if not rows:
        raise EmptyTrainingSetError("Training data is empty")
    for i, (_, label) in enumerate(rows):
        if not is_numeric(label):
            raise InvalidLabelTypeError(i, label)

    features = [list(f) for f, _ in rows]
    encoders = build_encoders(features, strict=strict)
    X = encode_rows(features, encoders)
    y = np.array([float(label) for _, label in rows], dtype=float)

    if weights is None:
        w = np.ones(len(rows), dtype=float)
    else:
        w = np.asarray(weights, dtype=float).reshape(-1)
        if w.shape[0] != len(rows):
            raise ValueError("weights must have the same length as the training data")

    keep = w > 0
    n_dropped = int((~keep).sum())
    if not keep.any():
        raise EmptyTrainingSetError()
    return EncodedTrainingData(X[keep], y[keep], w[keep], categorical_mask(encoders),
                               encoders, n_dropped)
