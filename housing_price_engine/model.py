"""
Model Training Module for Housing Price Prediction

This module handles:
1. Three regression trainers behind one fit/predict/feature_importance contract
   - linear: OLS with coefficient significance (statsmodels)
   - random_forest: bagged regression trees (scikit-learn)
   - gradient_boosting: boosted trees with squared-error loss (CatBoost)
2. A mean baseline used as a sanity check
3. The training harness (one failing trainer does not stop the others)
4. Evaluation (RMSE ranking) and feature-importance reporting

Key Technical Decisions:
- Categorical expansion is done explicitly by IndicatorEncoder, never by the
  fitting library, so train/eval encodings are guaranteed identical
- Aliased linear coefficients are dropped and announced with CollinearityWarning
- Forest importance is the total (unnormalised) sum-of-squares reduction per
  feature across all trees
- Fixed random seeds everywhere for reproducibility
"""

import warnings
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Protocol, Tuple, runtime_checkable

import numpy as np
import pandas as pd
import statsmodels.api as sm
from catboost import CatBoostError, CatBoostRegressor
from joblib import Parallel, delayed
from loguru import logger
from sklearn.ensemble import RandomForestRegressor
from sklearn.metrics import mean_absolute_error, mean_squared_error, r2_score

from .config import PipelineConfig
from .encoding import CODES, INDICATOR, IndicatorEncoder, check_encoded
from .errors import CollinearityWarning, ConfigError, FitError
from .preprocessing import inverse_transform_target

INTERCEPT = "(Intercept)"
ALIAS_TOLERANCE = 1e-7


@runtime_checkable
class FittedModel(Protocol):
    """Capability interface shared by every trained model."""

    name: str

    @property
    def feature_names(self) -> List[str]: ...

    def predict(self, df: pd.DataFrame) -> np.ndarray: ...

    def predict_row(self, row: Mapping[str, Any]) -> float: ...

    def feature_importance(self) -> Dict[str, float]: ...


# ==================== SHARED TRAINER CHECKS ====================

def _check_trainable(
    train_df: pd.DataFrame,
    target_column: str,
    model_name: str
) -> Tuple[pd.DataFrame, pd.Series]:
    """
    Validate a training table and split it into features and target.

    Raises:
        FitError: target absent or missing, fewer rows than features, no
            features, unencoded categoricals, or values outside a label set
    """
    if target_column not in train_df.columns:
        raise FitError(f"[{model_name}] target column '{target_column}' not in training table")

    X = train_df.drop(columns=[target_column])
    y = train_df[target_column]

    if X.shape[1] == 0:
        raise FitError(f"[{model_name}] training table has no feature columns")
    if len(X) < X.shape[1]:
        raise FitError(f"[{model_name}] {len(X)} rows is fewer than {X.shape[1]} features")
    if not pd.api.types.is_numeric_dtype(y) or y.isna().any():
        raise FitError(f"[{model_name}] target column '{target_column}' must be numeric with no missing values")

    check_encoded(X)

    return X, y.astype(float)


# ==================== LINEAR (OLS) ====================

def find_aliased_columns(design: pd.DataFrame, tol: float = ALIAS_TOLERANCE) -> Tuple[List[str], List[str]]:
    """
    Split design columns into estimable and aliased ones.

    Columns are taken in order; a column is aliased when it lies in the span of
    the columns already kept (relative residual norm <= tol after projection).
    This reproduces the usual "later column is NA" convention of OLS summaries.

    Returns:
        kept, aliased column names
    """
    matrix = design.to_numpy(dtype=float)
    n_rows, n_cols = matrix.shape
    basis = np.empty((n_rows, n_cols))
    k = 0
    kept, aliased = [], []

    for j, col in enumerate(design.columns):
        v = matrix[:, j]
        norm = np.linalg.norm(v)
        if norm == 0:
            aliased.append(col)
            continue
        r = v.copy()
        for _ in range(2):  # second pass re-orthogonalises
            r -= basis[:, :k] @ (basis[:, :k].T @ r)
        residual = np.linalg.norm(r)
        if residual <= tol * norm:
            aliased.append(col)
        else:
            basis[:, k] = r / residual
            k += 1
            kept.append(col)

    return kept, aliased


@dataclass
class LinearModel:
    """OLS fit on the indicator-expanded design (reference level dropped)."""

    name: str
    target_column: str
    encoder: IndicatorEncoder
    results: Any
    kept_columns: List[str]
    aliased: List[str] = field(default_factory=list)

    @property
    def feature_names(self) -> List[str]:
        return list(self.encoder.feature_names)

    def _design(self, df: pd.DataFrame) -> pd.DataFrame:
        design = self.encoder.transform(df)
        design.insert(0, INTERCEPT, 1.0)
        return design[self.kept_columns]

    def predict(self, df: pd.DataFrame) -> np.ndarray:
        return self._design(df).to_numpy() @ self.results.params.to_numpy()

    def predict_row(self, row: Mapping[str, Any]) -> float:
        return float(self.predict(self.encoder.frame_from_row(row))[0])

    def coefficient_table(self) -> pd.DataFrame:
        """Estimate, standard error, t-value and p-value per estimable coefficient."""
        return pd.DataFrame({
            'estimate': self.results.params,
            'std_error': self.results.bse,
            't_value': self.results.tvalues,
            'p_value': self.results.pvalues,
        })

    def significant_predictors(self, alpha: float = 0.05) -> pd.DataFrame:
        """
        Coefficients (intercept excluded) with p-value below alpha,
        most significant first.
        """
        table = self.coefficient_table().drop(index=INTERCEPT, errors='ignore')
        table = table[table['p_value'] < alpha]
        table = table.rename_axis('feature').reset_index()
        return table.sort_values(['p_value', 'feature']).reset_index(drop=True)

    def feature_importance(self) -> Dict[str, float]:
        # |t| orders predictors exactly as their p-values do
        t_values = self.results.tvalues.drop(labels=INTERCEPT, errors='ignore')
        return {str(name): float(np.nan_to_num(abs(t), nan=0.0)) for name, t in t_values.items()}


def fit_linear_model(
    train_df: pd.DataFrame,
    target_column: str,
    hyperparameters: Optional[Dict[str, Any]] = None
) -> LinearModel:
    """
    Fit ordinary least squares with an intercept over every feature.

    Categorical features are expanded to indicators with the first label as
    reference. Exactly collinear columns are removed before fitting; their
    names are kept on the model and reported via CollinearityWarning.

    Args:
        train_df: Training table (transformed)
        target_column: Target column name
        hyperparameters: Unused, accepted for the shared trainer contract

    Returns:
        Fitted LinearModel
    """
    X, y = _check_trainable(train_df, target_column, "linear")

    encoder = IndicatorEncoder(mode=INDICATOR, drop_reference=True).fit(X)
    design = encoder.transform(X)
    design.insert(0, INTERCEPT, 1.0)

    kept, aliased = find_aliased_columns(design)
    if aliased:
        message = f"{len(aliased)} coefficient(s) not defined because of singularities: {aliased}"
        logger.warning(f"[linear] {message}")
        warnings.warn(message, CollinearityWarning, stacklevel=2)

    results = sm.OLS(y, design[kept]).fit()

    logger.info(
        f"[linear] fitted {len(kept)} coefficient(s) on {len(y):,} rows "
        f"(R² = {results.rsquared:.4f}, aliased = {len(aliased)})"
    )
    return LinearModel(
        name="linear",
        target_column=target_column,
        encoder=encoder,
        results=results,
        kept_columns=kept,
        aliased=aliased,
    )


# ==================== RANDOM FOREST ====================

@dataclass
class ForestModel:
    """Bagged regression trees on categorical codes."""

    name: str
    target_column: str
    encoder: IndicatorEncoder
    forest: RandomForestRegressor

    @property
    def feature_names(self) -> List[str]:
        return list(self.encoder.feature_names)

    def predict(self, df: pd.DataFrame) -> np.ndarray:
        return self.forest.predict(self.encoder.transform(df).to_numpy())

    def predict_row(self, row: Mapping[str, Any]) -> float:
        return float(self.predict(self.encoder.frame_from_row(row))[0])

    def feature_importance(self) -> Dict[str, float]:
        """
        Total decrease in node impurity (sum of squared residuals) per
        feature, summed over every split of every tree.
        """
        totals = np.zeros(len(self.encoder.feature_names))
        for estimator in self.forest.estimators_:
            tree = estimator.tree_
            # normalize=False still divides by the root weight; undo it
            totals += tree.compute_feature_importances(normalize=False) * tree.weighted_n_node_samples[0]
        return {name: float(score) for name, score in zip(self.encoder.feature_names, totals)}


def fit_random_forest(
    train_df: pd.DataFrame,
    target_column: str,
    hyperparameters: Optional[Dict[str, Any]] = None
) -> ForestModel:
    """
    Fit a bootstrap-aggregated ensemble of regression trees.

    Hyperparameters (defaults): tree_count=300, seed=42, max_features=1/3
    (the customary regression choice), n_jobs=1.
    """
    params = {'tree_count': 300, 'seed': 42, 'max_features': 1 / 3, 'n_jobs': 1}
    params.update(hyperparameters or {})

    X, y = _check_trainable(train_df, target_column, "random_forest")

    encoder = IndicatorEncoder(mode=CODES).fit(X)
    matrix = encoder.transform(X)

    forest = RandomForestRegressor(
        n_estimators=params['tree_count'],
        max_features=params['max_features'],
        random_state=params['seed'],
        n_jobs=params['n_jobs'],
    )
    forest.fit(matrix.to_numpy(), y.to_numpy())

    logger.info(f"[random_forest] fitted {params['tree_count']} trees on {len(y):,} rows × {matrix.shape[1]} features")
    return ForestModel(name="random_forest", target_column=target_column, encoder=encoder, forest=forest)


# ==================== GRADIENT BOOSTING ====================

@dataclass
class BoostedModel:
    """Gradient-boosted trees on the full indicator expansion."""

    name: str
    target_column: str
    encoder: IndicatorEncoder
    booster: CatBoostRegressor

    @property
    def feature_names(self) -> List[str]:
        return list(self.encoder.feature_names)

    def predict(self, df: pd.DataFrame) -> np.ndarray:
        return np.asarray(self.booster.predict(self.encoder.transform(df)), dtype=float)

    def predict_row(self, row: Mapping[str, Any]) -> float:
        return float(self.predict(self.encoder.frame_from_row(row))[0])

    def feature_importance(self) -> Dict[str, float]:
        # PredictionValuesChange, aligned with the training column order
        importance_values = self.booster.get_feature_importance()
        return {name: float(score) for name, score in zip(self.encoder.feature_names, importance_values)}


def fit_gradient_boosting(
    train_df: pd.DataFrame,
    target_column: str,
    hyperparameters: Optional[Dict[str, Any]] = None
) -> BoostedModel:
    """
    Fit sequential additive trees minimising squared error.

    Categorical features are expanded to one indicator per level before
    fitting; the stored encoder guarantees evaluation rows are expanded into
    the identical columns in the identical order.

    Hyperparameters (defaults): round_count=100, learning_rate=0.3, depth=6,
    seed=42, thread_count=-1. No early stopping: round_count is used as given.
    """
    params = {'round_count': 100, 'learning_rate': 0.3, 'depth': 6, 'seed': 42, 'thread_count': -1}
    params.update(hyperparameters or {})

    X, y = _check_trainable(train_df, target_column, "gradient_boosting")

    encoder = IndicatorEncoder(mode=INDICATOR, drop_reference=False).fit(X)
    matrix = encoder.transform(X)

    booster = CatBoostRegressor(
        iterations=params['round_count'],
        learning_rate=params['learning_rate'],
        depth=params['depth'],
        loss_function='RMSE',
        random_seed=params['seed'],
        thread_count=params['thread_count'],
        verbose=False,
        allow_writing_files=False,
    )
    try:
        booster.fit(matrix, y)
    except CatBoostError as exc:
        raise FitError(f"[gradient_boosting] {exc}") from exc

    logger.info(f"[gradient_boosting] fitted {params['round_count']} rounds on {len(y):,} rows × {matrix.shape[1]} features")
    return BoostedModel(name="gradient_boosting", target_column=target_column, encoder=encoder, booster=booster)


# ==================== MEAN BASELINE ====================

@dataclass
class MeanBaselineModel:
    """Predicts the training-set mean for every row."""

    name: str
    target_column: str
    mean: float

    @property
    def feature_names(self) -> List[str]:
        return []

    def predict(self, df: pd.DataFrame) -> np.ndarray:
        return np.full(len(df), self.mean)

    def predict_row(self, row: Mapping[str, Any]) -> float:
        return self.mean

    def feature_importance(self) -> Dict[str, float]:
        return {}


def fit_mean_baseline(
    train_df: pd.DataFrame,
    target_column: str,
    hyperparameters: Optional[Dict[str, Any]] = None
) -> MeanBaselineModel:
    """
    Fit a model that predicts the training-set mean of the target everywhere.

    Evaluated on its own training table, its RMSE equals the target's
    (population) standard deviation.

    Args:
        train_df: Training table
        target_column: Target column name
        hyperparameters: Unused, accepted for the shared trainer contract

    Returns:
        Fitted MeanBaselineModel
    """
    if target_column not in train_df.columns or len(train_df) == 0:
        raise FitError(f"[mean_baseline] no '{target_column}' values to average")
    return MeanBaselineModel(
        name="mean_baseline",
        target_column=target_column,
        mean=float(train_df[target_column].mean()),
    )


# ==================== TRAINING HARNESS ====================

TRAINERS: Dict[str, Callable[..., FittedModel]] = {
    'linear': fit_linear_model,
    'random_forest': fit_random_forest,
    'gradient_boosting': fit_gradient_boosting,
    'mean_baseline': fit_mean_baseline,
}


def hyperparameters_for(model_name: str, config: PipelineConfig) -> Dict[str, Any]:
    """Trainer hyperparameters derived from the run configuration."""
    if model_name == 'random_forest':
        return {'tree_count': config.tree_count, 'seed': config.seed}
    if model_name == 'gradient_boosting':
        return {
            'round_count': config.round_count,
            'learning_rate': config.learning_rate,
            'depth': config.max_depth,
            'seed': config.seed,
        }
    return {}


def _run_trainer(
    model_name: str,
    train_df: pd.DataFrame,
    target_column: str,
    hyperparameters: Dict[str, Any]
) -> Tuple[str, Optional[FittedModel], Optional[FitError]]:
    try:
        model = TRAINERS[model_name](train_df, target_column, hyperparameters)
    except FitError as exc:
        logger.error(f"[{model_name}] training failed: {exc}")
        return model_name, None, exc
    return model_name, model, None


def train_models(
    train_df: pd.DataFrame,
    target_column: str,
    config: Optional[PipelineConfig] = None
) -> Tuple[Dict[str, FittedModel], Dict[str, FitError]]:
    """
    Fit every configured model on the same training table.

    Trainers are independent; a FitError in one is recorded and the rest
    still run. With config.n_jobs != 1 they run in parallel threads.

    Args:
        train_df: Training table
        target_column: Target column name
        config: Run configuration (defaults if None)

    Returns:
        models (by name, in configured order), failures (by name)
    """
    if config is None:
        config = PipelineConfig(target_column=target_column)

    names = list(config.models)
    if config.include_baseline:
        names.append('mean_baseline')

    jobs = [(name, hyperparameters_for(name, config)) for name in names]

    if config.n_jobs == 1 or len(jobs) == 1:
        outcomes = [_run_trainer(name, train_df, target_column, params) for name, params in jobs]
    else:
        outcomes = Parallel(n_jobs=config.n_jobs, prefer='threads')(
            delayed(_run_trainer)(name, train_df, target_column, params) for name, params in jobs
        )

    models: Dict[str, FittedModel] = {}
    failures: Dict[str, FitError] = {}
    for name, model, error in outcomes:
        if error is not None:
            failures[name] = error
        else:
            models[name] = model

    logger.info(f"Trained {len(models)}/{len(jobs)} model(s); failed: {sorted(failures) or 'none'}")
    return models, failures


# ==================== EVALUATION ====================

def rmse(y_true: np.ndarray, y_pred: np.ndarray) -> float:
    return float(np.sqrt(mean_squared_error(y_true, y_pred)))


def compute_metrics(y_true: np.ndarray, y_pred: np.ndarray) -> Dict[str, float]:
    """
    Regression metrics on whatever scale the inputs are given in.

    R² needs at least two rows; it is NaN otherwise.
    """
    y_true = np.asarray(y_true, dtype=float)
    y_pred = np.asarray(y_pred, dtype=float)
    return {
        'rmse': rmse(y_true, y_pred),
        'mae': float(mean_absolute_error(y_true, y_pred)),
        'r2': float(r2_score(y_true, y_pred)) if len(y_true) > 1 else float('nan'),
    }


def evaluate(
    models: Mapping[str, FittedModel],
    eval_df: pd.DataFrame,
    target_column: str
) -> Dict[str, float]:
    """
    RMSE of each model on the evaluation table, ranked ascending.

    Scores are on the scale the target was trained on (log1p scale after
    transform()). Equal scores are ordered by model name.

    Returns:
        Ordered mapping model name -> RMSE (best first)
    """
    if target_column not in eval_df.columns:
        raise ConfigError(f"Target column '{target_column}' not found in evaluation table")

    y_true = eval_df[target_column].to_numpy(dtype=float)
    features = eval_df.drop(columns=[target_column])

    scores = {name: rmse(y_true, model.predict(features)) for name, model in models.items()}
    ranked = dict(sorted(scores.items(), key=lambda item: (item[1], item[0])))

    for position, (name, score) in enumerate(ranked.items(), start=1):
        logger.info(f"  {position}. {name:<20} RMSE = {score:.4f}")
    return ranked


def evaluate_price_scale(
    models: Mapping[str, FittedModel],
    eval_df: pd.DataFrame,
    target_column: str
) -> Dict[str, Dict[str, float]]:
    """
    Metrics in ORIGINAL price space: both the actual log1p target and the
    predictions are mapped back with expm1 before scoring.
    """
    if target_column not in eval_df.columns:
        raise ConfigError(f"Target column '{target_column}' not found in evaluation table")

    y_true = inverse_transform_target(eval_df[target_column])
    features = eval_df.drop(columns=[target_column])
    return {
        name: compute_metrics(y_true, inverse_transform_target(model.predict(features)))
        for name, model in models.items()
    }


# ==================== FEATURE IMPORTANCE ====================

def top_features(model: FittedModel, k: int) -> List[Tuple[str, float]]:
    """
    The k most important features of a model.

    Sorted by descending score; equal scores are ordered by feature name.
    Length is min(k, number of features).
    """
    if k < 0:
        raise ConfigError(f"k must be non-negative, got {k}")
    ranked = sorted(model.feature_importance().items(), key=lambda item: (-item[1], item[0]))
    return ranked[:k]


def feature_importance_table(models: Mapping[str, FittedModel], k: int) -> pd.DataFrame:
    """
    Long-format table of the top-k features per model, for reporting.

    Columns: model, rank, feature, importance
    """
    rows = [
        {'model': name, 'rank': rank, 'feature': feature, 'importance': score}
        for name, model in models.items()
        for rank, (feature, score) in enumerate(top_features(model, k), start=1)
    ]
    return pd.DataFrame(rows, columns=['model', 'rank', 'feature', 'importance'])
