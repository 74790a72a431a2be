"""
End-to-end housing price workflow.

clean -> transform -> split -> train (3 models) -> evaluate -> importance

Each stage receives the previous stage's output and returns a new value; no
stage reads or writes shared module state.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

import pandas as pd
from loguru import logger

from .config import PipelineConfig
from .errors import FitError
from .model import FittedModel, evaluate, evaluate_price_scale, top_features, train_models
from .preprocessing import clean, split, transform


@dataclass(frozen=True)
class PipelineResult:
    config: PipelineConfig
    cleaned: pd.DataFrame
    transformed: pd.DataFrame
    train: pd.DataFrame
    evaluation: pd.DataFrame
    models: Dict[str, FittedModel]
    failures: Dict[str, FitError]
    scores: Dict[str, float]
    price_metrics: Dict[str, Dict[str, float]]
    importances: Dict[str, List[Tuple[str, float]]]

    @property
    def best_model(self) -> Optional[str]:
        """Name of the lowest-RMSE model, or None if every trainer failed."""
        return next(iter(self.scores), None)


def run_pipeline(df: pd.DataFrame, config: Optional[PipelineConfig] = None) -> PipelineResult:
    """
    Run the complete modelling workflow on a raw Record Table.

    ConfigError and DomainError abort the run. A FitError only removes the
    affected model from evaluation; it is reported in ``failures``.

    Args:
        df: Raw table as produced by load_table
        config: Run configuration (defaults if None)

    Returns:
        PipelineResult with every intermediate table and all outputs
    """
    config = config or PipelineConfig()
    target = config.target_column

    logger.info("=" * 80)
    logger.info("RUNNING HOUSING PRICE PIPELINE")
    logger.info("=" * 80)

    logger.info("[1/6] Cleaning...")
    cleaned = clean(
        df,
        missing_threshold=config.missing_threshold,
        id_columns=config.id_columns,
        target_column=target,
    )

    logger.info("[2/6] Transforming target and categorical columns...")
    transformed = transform(cleaned, target)

    logger.info("[3/6] Splitting train/evaluation...")
    train_df, eval_df = split(transformed, target, train_fraction=config.train_fraction, seed=config.seed)

    logger.info("[4/6] Training models...")
    models, failures = train_models(train_df, target, config)

    logger.info("[5/6] Evaluating (RMSE on log1p scale)...")
    scores = evaluate(models, eval_df, target)
    price_metrics = evaluate_price_scale(models, eval_df, target)

    logger.info(f"[6/6] Extracting top {config.top_k} features per model...")
    importances = {name: top_features(model, config.top_k) for name, model in models.items()}

    logger.info("=" * 80)
    logger.info(f"PIPELINE COMPLETE - best model: {next(iter(scores), 'none')}")
    logger.info("=" * 80)

    return PipelineResult(
        config=config,
        cleaned=cleaned,
        transformed=transformed,
        train=train_df,
        evaluation=eval_df,
        models=models,
        failures=failures,
        scores=scores,
        price_metrics=price_metrics,
        importances=importances,
    )
