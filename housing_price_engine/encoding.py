"""
Explicit categorical encoding for the model trainers.

An IndicatorEncoder is fitted once on the training features and remembers the
exact output columns. transform() always produces those columns in that order,
so training and evaluation matrices cannot drift apart.

Modes:
- "indicator": one 0/1 column per level, named "<column>_<level>". With
  drop_reference=True the first (reference) level is left out.
- "codes": the categorical code of each value, one column per feature.
"""

from typing import Any, Dict, List, Mapping

import numpy as np
import pandas as pd

from .errors import FitError

INDICATOR = "indicator"
CODES = "codes"


class IndicatorEncoder:
    def __init__(self, mode: str = INDICATOR, drop_reference: bool = True):
        if mode not in (INDICATOR, CODES):
            raise ValueError(f"Unknown encoding mode: {mode}")
        self.mode = mode
        self.drop_reference = drop_reference
        self.input_columns: List[str] = []
        self.categories: Dict[str, List[Any]] = {}
        self.feature_names: List[str] = []
        self._fitted = False

    def fit(self, X: pd.DataFrame) -> "IndicatorEncoder":
        """
        Learn input columns and label sets from the training features.

        Raises:
            FitError: on unencoded (object/string) columns or duplicate output names
        """
        check_encoded(X)

        self.input_columns = list(X.columns)
        self.categories = {
            col: list(X[col].cat.categories)
            for col in X.columns
            if isinstance(X[col].dtype, pd.CategoricalDtype)
        }

        names = []
        for col in self.input_columns:
            if col in self.categories and self.mode == INDICATOR:
                names.extend(f"{col}_{level}" for level in self._levels(col))
            else:
                names.append(col)

        duplicated = sorted({n for n in names if names.count(n) > 1})
        if duplicated:
            raise FitError(f"Encoded feature names collide: {duplicated}")

        self.feature_names = names
        self._fitted = True
        return self

    def _levels(self, col: str) -> List[Any]:
        levels = self.categories[col]
        return levels[1:] if self.drop_reference else levels

    def transform(self, X: pd.DataFrame) -> pd.DataFrame:
        """
        Encode features into a float matrix with the fitted column layout.

        Raises:
            FitError: on missing columns, label-set mismatches, values outside
                the label set, or missing numeric values
        """
        if not self._fitted:
            raise FitError("IndicatorEncoder.transform called before fit")

        absent = [c for c in self.input_columns if c not in X.columns]
        if absent:
            raise FitError(f"Columns missing from input: {absent}")

        check_encoded(X[self.input_columns])

        data = {}
        for col in self.input_columns:
            series = X[col]
            if col in self.categories:
                if not isinstance(series.dtype, pd.CategoricalDtype) or list(series.cat.categories) != self.categories[col]:
                    raise FitError(f"Column '{col}' label set differs from the one seen at fit time")
                if self.mode == CODES:
                    data[col] = series.cat.codes.astype(float)
                else:
                    for level in self._levels(col):
                        data[f"{col}_{level}"] = (series == level).astype(float)
            else:
                if isinstance(series.dtype, pd.CategoricalDtype):
                    raise FitError(f"Column '{col}' was numeric at fit time but is categorical now")
                if series.isna().any():
                    raise FitError(f"Numeric column '{col}' has missing values")
                data[col] = series.astype(float)

        return pd.DataFrame(data, index=X.index, columns=self.feature_names)

    def fit_transform(self, X: pd.DataFrame) -> pd.DataFrame:
        return self.fit(X).transform(X)

    def frame_from_row(self, row: Mapping[str, Any]) -> pd.DataFrame:
        """Build a one-row feature frame carrying the fitted categorical dtypes."""
        data = {}
        for col in self.input_columns:
            if col not in row:
                raise FitError(f"Row is missing feature '{col}'")
            value = row[col]
            if col in self.categories:
                data[col] = pd.Categorical([value], categories=self.categories[col])
            else:
                data[col] = np.array([value], dtype=float)
        return pd.DataFrame(data, columns=self.input_columns)


def check_encoded(X: pd.DataFrame) -> None:
    """
    Raises:
        FitError: on raw text columns or categorical cells outside the label set
    """
    raw_text = [
        c for c in X.columns
        if not isinstance(X[c].dtype, pd.CategoricalDtype) and not pd.api.types.is_numeric_dtype(X[c])
    ]
    if raw_text:
        raise FitError(f"Unencoded categorical column(s) {raw_text}; run transform() first")

    outside = [
        c for c in X.columns
        if isinstance(X[c].dtype, pd.CategoricalDtype) and X[c].isna().any()
    ]
    if outside:
        raise FitError(f"Column(s) {outside} hold values outside the fixed label set")
