"""
Data Preprocessing Module for Housing Price Prediction

Every step takes a DataFrame and returns a NEW DataFrame. Nothing here mutates
the caller's table, and the frame index (row identity) is carried through
unchanged so splits can be traced back to the raw records.

Pipeline order:
1. load_table      - read the raw CSV
2. clean           - drop identifiers / sparse columns, impute the rest
3. transform       - log1p the target, freeze categorical label sets
4. split           - seeded train/evaluation partition

CRITICAL: transform() must run before split() so that both subsets share the
same categorical label sets (and therefore identical indicator encodings).
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

import numpy as np
import pandas as pd
from loguru import logger

from .errors import ConfigError, DomainError, EmptyColumnError

NUMERIC = "numeric"
CATEGORICAL = "categorical"


@dataclass(frozen=True)
class ColumnInfo:
    kind: str
    missing_count: int
    missing_fraction: float


@dataclass(frozen=True)
class SplitAssignment:
    """Disjoint positional row indices covering every row of the table."""
    train: Tuple[int, ...]
    evaluation: Tuple[int, ...]


def load_table(path: Union[str, Path]) -> pd.DataFrame:
    """
    Read a header-row CSV into a Record Table.

    pandas' default NA strings (including "NA") become missing cells.
    """
    df = pd.read_csv(path)
    logger.info(f"Loaded {len(df):,} rows × {len(df.columns)} columns from {path}")
    return df


def column_kind(series: pd.Series) -> str:
    if pd.api.types.is_numeric_dtype(series) and not isinstance(series.dtype, pd.CategoricalDtype):
        return NUMERIC
    return CATEGORICAL


def column_metadata(df: pd.DataFrame) -> Dict[str, ColumnInfo]:
    """
    Compute semantic type and missingness for every column.

    Args:
        df: Record Table

    Returns:
        Mapping column name -> ColumnInfo
    """
    n = len(df)
    metadata = {}
    for col in df.columns:
        missing = int(df[col].isna().sum())
        metadata[col] = ColumnInfo(
            kind=column_kind(df[col]),
            missing_count=missing,
            missing_fraction=missing / n if n else 0.0,
        )
    return metadata


def impute_value(series: pd.Series, kind: Optional[str] = None) -> Any:
    """
    Fill value for a column: median for numeric, mode for categorical.

    Mode ties go to the label that appears first in the column.

    Raises:
        EmptyColumnError: if the column has no non-missing values
    """
    values = series.dropna()
    if values.empty:
        raise EmptyColumnError(str(series.name))

    if kind is None:
        kind = column_kind(series)

    if kind == NUMERIC:
        return values.median()

    counts = values.value_counts()
    # pd.unique keeps order of appearance; max() keeps the first of equal counts
    return max(pd.unique(values), key=lambda label: counts[label])


def clean(
    df: pd.DataFrame,
    missing_threshold: float = 0.70,
    id_columns: Iterable[str] = ("Id",),
    target_column: Optional[str] = None,
) -> pd.DataFrame:
    """
    Drop identifier and high-missingness columns, then impute what remains.

    Rules:
    1. Identifier columns carry no predictive value -> dropped
    2. Columns with missing fraction > missing_threshold -> dropped
    3. Rows with a missing target are dropped (only if target_column is given)
    4. Numeric gaps -> column median; categorical gaps -> column mode
    5. A column with nothing to impute from is dropped instead

    Args:
        df: Raw Record Table
        missing_threshold: Maximum tolerated missing fraction, in [0, 1]
        id_columns: Columns that uniquely identify rows
        target_column: Optional target; rows missing it are removed

    Returns:
        New DataFrame with no missing cells
    """
    if not 0 <= missing_threshold <= 1:
        raise ConfigError(f"missing_threshold must be in [0, 1], got {missing_threshold}")

    df = df.copy()
    original_shape = df.shape

    ids = [c for c in id_columns if c in df.columns]
    if ids:
        df = df.drop(columns=ids)
        logger.info(f"Dropped identifier column(s): {ids}")

    # Sparsity is judged on every input row, before any target rows are removed
    too_sparse = [
        c for c, info in column_metadata(df).items() if info.missing_fraction > missing_threshold
    ]
    if too_sparse:
        df = df.drop(columns=too_sparse)
        logger.info(
            f"Dropped {len(too_sparse)} column(s) missing > {missing_threshold:.0%} of values: {too_sparse}"
        )

    if target_column is not None and target_column in df.columns:
        before = len(df)
        df = df[df[target_column].notna()].copy()
        if len(df) < before:
            logger.warning(f"Dropped {before - len(df):,} rows with missing '{target_column}'")

    metadata = column_metadata(df)

    imputed = {}
    for col in list(df.columns):
        info = metadata[col]
        if info.missing_count == 0:
            continue
        try:
            fill_value = impute_value(df[col], info.kind)
        except EmptyColumnError as exc:
            logger.warning(f"{exc}; dropping it instead of imputing")
            df = df.drop(columns=[col])
            continue
        df[col] = df[col].fillna(fill_value)
        imputed[col] = fill_value

    if imputed:
        logger.info(f"Imputed {len(imputed)} column(s) (median for numeric, mode for categorical)")
        logger.debug(f"Imputation values: {imputed}")

    logger.info(f"Cleaned table: {original_shape[0]:,} × {original_shape[1]} -> {df.shape[0]:,} × {df.shape[1]}")
    return df


def _is_text_column(series: pd.Series) -> bool:
    if isinstance(series.dtype, pd.CategoricalDtype):
        return False
    return pd.api.types.is_object_dtype(series) or pd.api.types.is_string_dtype(series)


def transform(df: pd.DataFrame, target_column: str) -> pd.DataFrame:
    """
    Log-transform the target and freeze categorical label sets.

    - target -> log1p(target); negative or missing targets are rejected
    - every text column -> pandas Categorical with sorted observed labels
      (first label = reference level for indicator expansion)

    NOT idempotent: log1p is applied again on a second call. Apply exactly once.

    Args:
        df: Cleaned DataFrame
        target_column: Name of the (non-negative) target column

    Returns:
        New DataFrame with transformed target and categorical dtypes
    """
    if target_column not in df.columns:
        raise ConfigError(f"Target column '{target_column}' not found in table")

    df = df.copy()
    target = df[target_column]

    if not pd.api.types.is_numeric_dtype(target):
        raise DomainError(f"Target column '{target_column}' must be numeric, got {target.dtype}")
    if target.isna().any():
        raise DomainError(f"Target column '{target_column}' has {int(target.isna().sum())} missing value(s)")
    negatives = int((target < 0).sum())
    if negatives:
        raise DomainError(f"Target column '{target_column}' has {negatives} negative value(s); log1p undefined")

    df[target_column] = np.log1p(target.astype(float))

    converted = []
    for col in df.columns:
        if col == target_column or not _is_text_column(df[col]):
            continue
        levels = sorted(df[col].dropna().unique(), key=str)
        df[col] = pd.Categorical(df[col], categories=levels)
        converted.append(col)

    logger.info(f"log1p applied to '{target_column}'; {len(converted)} column(s) converted to categorical")
    return df


def inverse_transform_target(values: Union[np.ndarray, pd.Series]) -> np.ndarray:
    """Map log1p-scale values back to the price scale."""
    return np.expm1(np.asarray(values, dtype=float))


def category_levels(df: pd.DataFrame) -> Dict[str, List[Any]]:
    """Fixed label set of every categorical column."""
    return {
        col: list(df[col].cat.categories)
        for col in df.columns
        if isinstance(df[col].dtype, pd.CategoricalDtype)
    }


def split_indices(n: int, train_fraction: float = 0.8, seed: int = 42) -> SplitAssignment:
    """
    Seeded random partition of n row positions.

    The first floor(train_fraction * n + 0.5) positions of a PCG64 permutation
    go to training, the rest to evaluation. Both index tuples are returned in
    ascending order.

    For tiny tables the rounded size can leave one side empty (n=2, f=0.2
    rounds to 0). Instead of failing, the training size is clamped to
    [1, n - 1], so it then differs from the plain rounded count; only n < 2
    is rejected.
    """
    if not 0 < train_fraction < 1:
        raise ConfigError(f"train_fraction must be in (0, 1), got {train_fraction}")
    if n < 2:
        raise ConfigError(f"Need at least 2 rows to split into train and evaluation, got {n}")

    permutation = np.random.default_rng(seed).permutation(n)
    n_train = int(np.floor(train_fraction * n + 0.5))
    n_train = min(max(n_train, 1), n - 1)

    return SplitAssignment(
        train=tuple(sorted(int(i) for i in permutation[:n_train])),
        evaluation=tuple(sorted(int(i) for i in permutation[n_train:])),
    )


def split(
    df: pd.DataFrame,
    target_column: str,
    train_fraction: float = 0.8,
    seed: int = 42,
) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """
    Split rows into training and evaluation subsets.

    Args:
        df: Transformed DataFrame
        target_column: Target column (must be present)
        train_fraction: Fraction for training, in (0, 1)
        seed: Permutation seed; same seed + same table -> same partition

    Returns:
        train_df, eval_df (original index preserved)
    """
    if target_column not in df.columns:
        raise ConfigError(f"Target column '{target_column}' not found in table")

    assignment = split_indices(len(df), train_fraction=train_fraction, seed=seed)
    train_df = df.iloc[list(assignment.train)].copy()
    eval_df = df.iloc[list(assignment.evaluation)].copy()

    n = len(df)
    logger.info(
        f"Random split (seed={seed}): train {len(train_df):,} rows ({len(train_df)/n*100:.1f}%), "
        f"eval {len(eval_df):,} rows ({len(eval_df)/n*100:.1f}%)"
    )
    return train_df, eval_df
