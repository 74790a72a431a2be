# tests/conftest.py
from __future__ import annotations

import numpy as np
import pandas as pd
import pytest
from loguru import logger


@pytest.fixture(autouse=True)
def disable_logger():
    logger.remove()
    logger.add(lambda msg: None)
    yield


@pytest.fixture
def small_houses() -> pd.DataFrame:
    """
    10 records: Id, Size, Quality, Neighborhood, Price
    """
    return pd.DataFrame({
        "Id": list(range(1, 11)),
        "Size": [850.0, 1200.0, np.nan, 1500.0, 990.0, 2100.0, 1750.0, np.nan, 1320.0, 1100.0],
        "Quality": ["Good", "Fair", "Good", "Excellent", None, "Excellent", "Good", "Fair", "Good", "Fair"],
        "Neighborhood": ["NAmes", "CollgCr", "NAmes", "OldTown", "CollgCr", "OldTown", "NAmes", "CollgCr", "OldTown", "NAmes"],
        "Price": [120000, 145000, 130000, 210000, 118000, 305000, 240000, 150000, 199000, 139000],
    })


@pytest.fixture
def housing_df() -> pd.DataFrame:
    """
    80 synthetic sales with a known log-price structure, a few gaps and one
    almost-empty column (PoolQC).
    """
    rng = np.random.default_rng(0)
    n = 80

    hoods = np.array(["CollgCr", "NAmes", "OldTown", "Veenker"])
    premium = {"CollgCr": 0.10, "NAmes": 0.0, "OldTown": -0.15, "Veenker": 0.30}

    neighborhood = hoods[rng.integers(0, len(hoods), n)]
    lot_area = rng.uniform(5000, 15000, n).round()
    overall_qual = rng.integers(3, 10, n)
    central_air = np.where(rng.random(n) < 0.8, "Y", "N")

    log_price = (
        10.8
        + 0.12 * overall_qual
        + 0.00003 * lot_area
        + np.array([premium[h] for h in neighborhood])
        + 0.08 * (central_air == "Y")
        + rng.normal(0, 0.05, n)
    )

    df = pd.DataFrame({
        "Id": np.arange(1, n + 1),
        "LotArea": lot_area,
        "OverallQual": overall_qual,
        "Neighborhood": neighborhood,
        "CentralAir": central_air,
        "PoolQC": [None] * n,
        "SalePrice": np.expm1(log_price).round(),
    })
    df.loc[[4, 31, 62], "PoolQC"] = "Gd"
    df.loc[[3, 17], "LotArea"] = np.nan
    df.loc[[5], "Neighborhood"] = None
    return df
