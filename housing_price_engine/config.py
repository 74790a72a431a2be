"""
Run configuration for the housing price pipeline.

All knobs a harness needs live in one pydantic model so they can be validated
up front, before any data is touched. Values can come from keyword overrides or
from a YAML file with the same keys.
"""

from pathlib import Path
from typing import Any, Dict, List, Union

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from .errors import ConfigError

KNOWN_MODELS = ("linear", "random_forest", "gradient_boosting")


class PipelineConfig(BaseModel):
    """
    Recognized options for a pipeline run.

    The first six fields are the core options; the rest select the target,
    the identifier columns and trainer details.
    """

    seed: int = Field(42, description="Seed for the train/eval permutation and the model fits")
    train_fraction: float = Field(0.8, gt=0, lt=1, description="Share of rows assigned to training")
    missing_threshold: float = Field(0.70, ge=0, le=1, description="Drop columns missing more than this fraction")
    tree_count: int = Field(300, gt=0, description="Trees in the bagged ensemble")
    round_count: int = Field(100, gt=0, description="Boosting rounds")
    top_k: int = Field(10, ge=0, description="Features reported per model")

    target_column: str = "SalePrice"
    id_columns: List[str] = Field(default_factory=lambda: ["Id"])
    learning_rate: float = Field(0.3, gt=0)
    max_depth: int = Field(6, gt=0)
    n_jobs: int = Field(1, description="Trainers run in parallel threads when > 1")
    models: List[str] = Field(default_factory=lambda: list(KNOWN_MODELS))
    include_baseline: bool = False

    @field_validator('models')
    @classmethod
    def validate_models(cls, v):
        unknown = [name for name in v if name not in KNOWN_MODELS]
        if unknown:
            raise ValueError(f"unknown model(s) {unknown}; expected a subset of {list(KNOWN_MODELS)}")
        if not v:
            raise ValueError('at least one model must be selected')
        return v

    @field_validator('n_jobs')
    @classmethod
    def validate_n_jobs(cls, v):
        if v == 0 or v < -1:
            raise ValueError('n_jobs must be a positive integer or -1')
        return v


def build_config(**overrides: Any) -> PipelineConfig:
    """
    Create a PipelineConfig, reporting invalid values as ConfigError.

    Args:
        **overrides: Any PipelineConfig field

    Returns:
        Validated PipelineConfig
    """
    try:
        return PipelineConfig(**overrides)
    except ValidationError as exc:
        raise ConfigError(f"Invalid pipeline configuration: {exc}") from exc


def load_config(path: Union[str, Path], **overrides: Any) -> PipelineConfig:
    """
    Load a YAML config file. Keyword overrides win over file values.
    """
    path = Path(path)
    if not path.exists():
        raise ConfigError(f"Config file not found: {path}")

    with open(path, encoding="utf-8") as f:
        raw = yaml.safe_load(f) or {}

    if not isinstance(raw, dict):
        raise ConfigError(f"Config file {path} must contain a mapping, got {type(raw).__name__}")

    values: Dict[str, Any] = {**raw, **overrides}
    return build_config(**values)
