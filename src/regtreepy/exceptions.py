"""Exceptions raised by regtreepy.

Training errors:
- InvalidLabelTypeError: a training label is not a real number.
- EmptyTrainingSetError: no rows are left to train on after weight filtering.
- FeatureTypeError: a feature column is not homogeneous in type, or rows
  have different lengths.

Encoding errors:
- UnseenCategoryError: a strict encoder was asked to encode a value it never
  saw while being built.

Persistence errors:
- ModelFormatError: a serialized model carries an unknown tag or is missing
  fields.

Every exception also subclasses ``RegressionTreeError`` so callers can catch
the whole family at once. Exceptions raised by a splitter are never wrapped.
"""

from __future__ import annotations

from typing import Any


class RegressionTreeError(Exception):
    """Base class for all regtreepy errors."""


class InvalidLabelTypeError(RegressionTreeError, TypeError):
    """Raised when a training label is not a real number.

    Attributes:
        row (int): Position of the offending row in the training data.
        label (Any): The label that was rejected.
    """

    def __init__(self, row: int, label: Any) -> None:
        super().__init__(
            f"Tried to train regression on a non-numeric label {label!r} "
            f"(type {type(label).__name__}) at row {row}"
        )
        self.row = row
        self.label = label


class EmptyTrainingSetError(RegressionTreeError, ValueError):
    """Raised when there is nothing to train on.

    Either the training data was empty, or every row carried a weight
    ``<= 0`` and was dropped before induction.
    """

    def __init__(self, message: str = "No training rows with positive weight") -> None:
        super().__init__(message)


class FeatureTypeError(RegressionTreeError, TypeError):
    """Raised when a feature column mixes numeric and non-numeric values.

    Attributes:
        row (int): Position of the offending row.
        column (int): Index of the offending feature column.
    """

    def __init__(self, message: str, *, row: int, column: int | None = None) -> None:
        super().__init__(message)
        self.row = row
        self.column = column


class UnseenCategoryError(RegressionTreeError, KeyError):
    """Raised by a strict encoder for a value it was not built with.

    Attributes:
        value (Any): The value that could not be encoded.
    """

    def __init__(self, value: Any) -> None:
        super().__init__(value)
        self.value = value

    def __str__(self) -> str:
        return f"Category {self.value!r} was not seen during training"


class ModelFormatError(RegressionTreeError, ValueError):
    """Raised when a serialized model cannot be decoded."""
