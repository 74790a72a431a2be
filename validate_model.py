"""
Model comparison and sanity checks on a housing CSV.

Usage:
    python validate_model.py train.csv [--config run.yaml] [--seed 42] [--top-k 10]
"""
import argparse
import sys

import numpy as np

from housing_price_engine import ConfigError, DomainError, load_config, build_config, load_table, run_pipeline
from housing_price_engine.logger import setup_logging
from housing_price_engine.preprocessing import inverse_transform_target


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Train and compare housing price models")
    parser.add_argument("csv", help="Tabular input with a header row")
    parser.add_argument("--config", help="YAML file with pipeline options")
    parser.add_argument("--seed", type=int)
    parser.add_argument("--train-fraction", type=float)
    parser.add_argument("--missing-threshold", type=float)
    parser.add_argument("--tree-count", type=int)
    parser.add_argument("--round-count", type=int)
    parser.add_argument("--top-k", type=int)
    parser.add_argument("--target", dest="target_column")
    parser.add_argument("--n-jobs", type=int)
    parser.add_argument("--log-level", default="INFO")
    parser.add_argument("--log-dir")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    setup_logging(level=args.log_level, log_dir=args.log_dir)

    overrides = {
        key: value for key, value in vars(args).items()
        if key not in ("csv", "config", "log_level", "log_dir") and value is not None
    }
    overrides["include_baseline"] = True

    try:
        config = load_config(args.config, **overrides) if args.config else build_config(**overrides)
        result = run_pipeline(load_table(args.csv), config)
    except (ConfigError, DomainError) as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 2

    target = config.target_column

    print("=" * 80)
    print("MODEL VALIDATION & SANITY CHECKS")
    print("=" * 80)
    print(f"\nRows: {len(result.cleaned):,} after cleaning, {result.cleaned.shape[1]} columns kept")
    print(f"Split: train {len(result.train):,} / eval {len(result.evaluation):,} (seed={config.seed})")

    # CHECK 1: ranking on the training scale
    print("\n" + "=" * 80)
    print("CHECK 1: RMSE RANKING (log1p scale)")
    print("=" * 80)
    for position, (name, score) in enumerate(result.scores.items(), start=1):
        print(f"  {position}. {name:<20} {score:.4f}")
    for name, error in result.failures.items():
        print(f"  -  {name:<20} FAILED: {error}")

    # CHECK 2: price-scale metrics
    print("\n" + "=" * 80)
    print("CHECK 2: PRICE-SCALE METRICS")
    print("=" * 80)
    actual = inverse_transform_target(result.evaluation[target])
    print(f"Evaluation prices: median ${np.median(actual):,.0f}")
    print(f"{'Model':<20} {'RMSE':>14} {'MAE':>14} {'R²':>8}")
    for name in result.scores:
        m = result.price_metrics[name]
        print(f"{name:<20} ${m['rmse']:>13,.0f} ${m['mae']:>13,.0f} {m['r2']:>8.4f}")

    # CHECK 3: every model should beat the mean baseline
    print("\n" + "=" * 80)
    print("CHECK 3: MODELS VS MEAN BASELINE")
    print("=" * 80)
    baseline = result.scores.get("mean_baseline")
    if baseline is not None:
        for name, score in result.scores.items():
            if name == "mean_baseline":
                continue
            if score >= baseline:
                print(f"⚠️  {name} is NOT better than the mean baseline ({score:.4f} >= {baseline:.4f})")
            else:
                print(f"✓ {name} beats baseline by {(baseline - score) / baseline * 100:.1f}% RMSE reduction")

    # Significant linear predictors
    linear = result.models.get("linear")
    if linear is not None:
        significant = linear.significant_predictors(alpha=0.05)
        print(f"\nLinear model: {len(significant)} predictor(s) significant at 5%, {len(linear.aliased)} aliased")
        for row in significant.head(config.top_k).itertuples():
            print(f"  {row.feature:<30} p = {row.p_value:.2e}")

    print("\n" + "=" * 80)
    print(f"TOP {config.top_k} FEATURES")
    print("=" * 80)
    for name, features in result.importances.items():
        if not features:
            continue
        print(f"\n{name}:")
        for feature, score in features:
            print(f"  {feature:<30} {score:,.4f}")

    print(f"\nBest model: {result.best_model}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
