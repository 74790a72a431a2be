import numpy as np
import pandas as pd
import pytest

from housing_price_engine.errors import ConfigError, DomainError, EmptyColumnError
from housing_price_engine.preprocessing import (
    CATEGORICAL,
    NUMERIC,
    category_levels,
    clean,
    column_metadata,
    impute_value,
    inverse_transform_target,
    load_table,
    split,
    split_indices,
    transform,
)


# ==================== column metadata ====================

def test_column_metadata_kinds_and_missing(small_houses):
    meta = column_metadata(small_houses)

    assert meta["Size"].kind == NUMERIC
    assert meta["Size"].missing_count == 2
    assert meta["Size"].missing_fraction == pytest.approx(0.2)
    assert meta["Quality"].kind == CATEGORICAL
    assert meta["Quality"].missing_count == 1
    assert meta["Price"].missing_count == 0


# ==================== imputation ====================

def test_impute_value_numeric_median_ignores_missing():
    s = pd.Series([1.0, 3.0, np.nan, 10.0], name="x")
    assert impute_value(s) == 3.0


def test_impute_value_mode_tie_goes_to_first_seen_label():
    s = pd.Series(["b", "a", "a", "b", None], name="x")
    assert impute_value(s) == "b"


def test_impute_value_mode_majority():
    s = pd.Series(["a", "b", "b", None], name="x")
    assert impute_value(s) == "b"


def test_impute_value_empty_column_raises():
    s = pd.Series([np.nan, np.nan], name="empty")
    with pytest.raises(EmptyColumnError) as exc:
        impute_value(s)
    assert exc.value.column == "empty"


# ==================== clean ====================

def test_clean_leaves_no_missing_cells(housing_df):
    out = clean(housing_df)
    assert not out.isna().any().any()


def test_clean_drops_id_and_sparse_columns(housing_df):
    out = clean(housing_df, missing_threshold=0.70)
    assert "Id" not in out.columns
    assert "PoolQC" not in out.columns
    assert {"LotArea", "OverallQual", "Neighborhood", "CentralAir", "SalePrice"} <= set(out.columns)


def test_clean_imputes_median_and_mode(small_houses):
    out = clean(small_houses)

    expected_size = small_houses["Size"].median()
    assert out.loc[2, "Size"] == expected_size
    assert out.loc[7, "Size"] == expected_size
    # Good x4 is the most frequent quality label
    assert out.loc[4, "Quality"] == "Good"


def test_clean_does_not_mutate_input(small_houses):
    before = small_houses.copy()
    clean(small_houses)
    pd.testing.assert_frame_equal(small_houses, before)


def test_clean_retained_columns_respect_threshold(housing_df):
    threshold = 0.02
    original = column_metadata(housing_df)
    out = clean(housing_df, missing_threshold=threshold)

    for col in out.columns:
        assert original[col].missing_fraction <= threshold
    # LotArea is 2.5% missing
    assert "LotArea" not in out.columns


def test_clean_fully_missing_column_dropped_without_error(small_houses):
    df = small_houses.assign(Empty=np.nan)

    out = clean(df, missing_threshold=0.70)
    assert "Empty" not in out.columns

    # Threshold 1.0 keeps it past the sparsity rule; imputation then drops it
    out = clean(df, missing_threshold=1.0)
    assert "Empty" not in out.columns
    assert not out.isna().any().any()


@pytest.mark.parametrize("threshold", [-0.1, 1.5])
def test_clean_rejects_threshold_outside_unit_interval(small_houses, threshold):
    with pytest.raises(ConfigError):
        clean(small_houses, missing_threshold=threshold)


def test_clean_drops_rows_with_missing_target(small_houses):
    df = small_houses.copy()
    df.loc[0, "Price"] = np.nan

    out = clean(df, target_column="Price")
    assert 0 not in out.index
    assert len(out) == 9


# ==================== transform ====================

def test_transform_log1p_target(small_houses):
    cleaned = clean(small_houses)
    out = transform(cleaned, "Price")

    np.testing.assert_allclose(out["Price"], np.log1p(cleaned["Price"].astype(float)))
    np.testing.assert_allclose(inverse_transform_target(out["Price"]), cleaned["Price"])


def test_transform_freezes_sorted_label_sets(small_houses):
    out = transform(clean(small_houses), "Price")

    assert isinstance(out["Neighborhood"].dtype, pd.CategoricalDtype)
    assert category_levels(out) == {
        "Quality": ["Excellent", "Fair", "Good"],
        "Neighborhood": ["CollgCr", "NAmes", "OldTown"],
    }
    assert pd.api.types.is_numeric_dtype(out["Size"])


def test_transform_does_not_mutate_input(small_houses):
    cleaned = clean(small_houses)
    before = cleaned.copy()
    transform(cleaned, "Price")
    pd.testing.assert_frame_equal(cleaned, before)


def test_transform_accepts_zero_and_positive_targets():
    df = pd.DataFrame({"x": [1.0, 2.0, 3.0], "y": [0.0, 1.0, 100.0]})
    out = transform(df, "y")
    assert out["y"].iloc[0] == 0.0


def test_transform_negative_target_raises_domain_error():
    df = pd.DataFrame({"x": [1.0, 2.0, 3.0], "y": [10.0, -1.0, 5.0]})
    with pytest.raises(DomainError):
        transform(df, "y")


def test_transform_missing_target_column_raises_config_error(small_houses):
    with pytest.raises(ConfigError):
        transform(small_houses, "SalePrice")


def test_transform_is_not_idempotent(small_houses):
    once = transform(clean(small_houses), "Price")
    twice = transform(once, "Price")
    assert not np.allclose(once["Price"], twice["Price"])


# ==================== split ====================

def test_split_indices_partition_all_rows():
    assignment = split_indices(25, train_fraction=0.8, seed=7)

    train, evaluation = set(assignment.train), set(assignment.evaluation)
    assert train.isdisjoint(evaluation)
    assert train | evaluation == set(range(25))
    assert len(train) == 20


def test_split_indices_round_half_up():
    # 0.75 * 10 = 7.5 -> 8
    assert len(split_indices(10, train_fraction=0.75, seed=1).train) == 8


def test_split_indices_keep_both_sides_non_empty():
    assignment = split_indices(2, train_fraction=0.8, seed=0)
    assert len(assignment.train) == 1
    assert len(assignment.evaluation) == 1


def test_split_indices_reproducible_and_seed_dependent():
    a = split_indices(50, 0.8, seed=42)
    b = split_indices(50, 0.8, seed=42)
    c = split_indices(50, 0.8, seed=43)

    assert a == b
    assert a != c


@pytest.mark.parametrize("fraction", [0.0, 1.0, -0.2, 1.3])
def test_split_rejects_bad_fraction(small_houses, fraction):
    with pytest.raises(ConfigError):
        split(small_houses, "Price", train_fraction=fraction, seed=1)


def test_split_rejects_fewer_than_two_rows(small_houses):
    with pytest.raises(ConfigError):
        split(small_houses.head(1), "Price", train_fraction=0.5, seed=1)


def test_split_rejects_unknown_target(small_houses):
    with pytest.raises(ConfigError):
        split(small_houses, "SalePrice")


# ==================== end to end ====================

def test_clean_transform_split_scenario(small_houses):
    prepared = transform(clean(small_houses), "Price")

    train, evaluation = split(prepared, "Price", train_fraction=0.8, seed=42)
    assert len(train) == 8
    assert len(evaluation) == 2

    train_again, eval_again = split(prepared, "Price", train_fraction=0.8, seed=42)
    train_ids = set(small_houses.loc[train.index, "Id"])
    assert train_ids == set(small_houses.loc[train_again.index, "Id"])
    assert set(small_houses.loc[evaluation.index, "Id"]) == set(small_houses.loc[eval_again.index, "Id"])
    assert train_ids.isdisjoint(set(small_houses.loc[evaluation.index, "Id"]))

    # both subsets carry the same label sets
    assert category_levels(train) == category_levels(evaluation)


def test_load_table_reads_na_as_missing(tmp_path):
    path = tmp_path / "houses.csv"
    path.write_text("Id,Alley,SalePrice\n1,NA,100\n2,Grvl,200\n")

    df = load_table(path)
    assert df.shape == (2, 3)
    assert df["Alley"].isna().sum() == 1


def test_clean_sparsity_measured_before_target_rows_are_dropped():
    df = pd.DataFrame({
        "X": [1.0, 2.0, np.nan, np.nan, np.nan],
        "Y": [5.0, 6.0, 7.0, 8.0, 9.0],
        "Price": [100.0, 200.0, np.nan, np.nan, 300.0],
    })
    original = column_metadata(df)

    out = clean(df, missing_threshold=0.5, target_column="Price")

    # X is 60% missing in the input, though only 33% of the rows that keep a price
    assert "X" not in out.columns
    for col in out.columns:
        assert original[col].missing_fraction <= 0.5
    assert list(out.index) == [0, 1, 4]


def test_split_indices_clamp_applies_only_when_a_side_would_be_empty():
    # 0.2 * 2 rounds to 0 -> clamped up to 1
    assert len(split_indices(2, train_fraction=0.2, seed=3).train) == 1
    # no clamping when rounding already leaves both sides non-empty
    assert len(split_indices(10, train_fraction=0.2, seed=3).train) == 2
