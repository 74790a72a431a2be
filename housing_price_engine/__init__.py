"""
Housing Price Prediction Engine

Deterministic modelling workflow for residential property prices with:
- Copy-on-write cleaning (median/mode imputation, sparse column removal)
- log1p target transform and frozen categorical label sets
- Seeded train/evaluation split
- Linear (OLS), random forest and gradient-boosted (CatBoost) models
- RMSE ranking and feature-importance reports
"""

__version__ = "1.0.0"

from .config import PipelineConfig, build_config, load_config
from .errors import (
    CollinearityWarning,
    ConfigError,
    DomainError,
    EmptyColumnError,
    FitError,
    HousePriceError,
)
from .model import (
    FittedModel,
    evaluate,
    evaluate_price_scale,
    feature_importance_table,
    fit_gradient_boosting,
    fit_linear_model,
    fit_mean_baseline,
    fit_random_forest,
    top_features,
    train_models,
)
from .pipeline import PipelineResult, run_pipeline
from .preprocessing import (
    clean,
    column_metadata,
    inverse_transform_target,
    load_table,
    split,
    split_indices,
    transform,
)
