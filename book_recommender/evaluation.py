"""
Evaluation Metrics
==================
MAE / MSE / RMSE between true and predicted ratings, and a comparison
table across named model runs.
"""

import numpy as np
import pandas as pd
from sklearn.metrics import mean_absolute_error, mean_squared_error

from .exceptions import ShapeMismatch

METRIC_NAMES = ['MAE', 'MSE', 'RMSE']


def _check_inputs(y_true, y_pred):
    y_true = np.asarray(y_true, dtype=np.float64).ravel()
    y_pred = np.asarray(y_pred, dtype=np.float64).ravel()
    if y_true.size == 0 or y_pred.size == 0:
        raise ShapeMismatch("Cannot evaluate empty rating sequences")
    if y_true.size != y_pred.size:
        raise ShapeMismatch(
            f"True and predicted ratings differ in length: {y_true.size} vs {y_pred.size}"
        )
    return y_true, y_pred


def mae(y_true, y_pred):
    """Mean absolute error."""
    y_true, y_pred = _check_inputs(y_true, y_pred)
    return float(mean_absolute_error(y_true, y_pred))


def mse(y_true, y_pred):
    """Mean squared error."""
    y_true, y_pred = _check_inputs(y_true, y_pred)
    return float(mean_squared_error(y_true, y_pred))


def rmse(y_true, y_pred):
    """Root mean squared error."""
    return float(np.sqrt(mse(y_true, y_pred)))


def evaluate_predictions(y_true, y_pred):
    """Returns {'MAE', 'MSE', 'RMSE'} for one model run."""
    y_true, y_pred = _check_inputs(y_true, y_pred)
    error = mse(y_true, y_pred)
    return {
        'MAE': mae(y_true, y_pred),
        'MSE': error,
        'RMSE': float(np.sqrt(error)),
    }


def compare_models(runs):
    """
    Evaluate several named runs for side-by-side comparison.

    Args:
        runs: {model_name: (y_true, y_pred)}

    Returns:
        pd.DataFrame: One row per model, MAE / MSE / RMSE columns.
    """
    rows = {name: evaluate_predictions(y_true, y_pred) for name, (y_true, y_pred) in runs.items()}
    table = pd.DataFrame.from_dict(rows, orient='index', columns=METRIC_NAMES)
    table.index.name = 'model'
    return table


def format_comparison_table(table):
    """Fixed-width text rendering of a compare_models() table."""
    lines = [f"{'Model':<20} {'MAE':<10} {'MSE':<10} {'RMSE':<10}", "-" * 50]
    for name, row in table.iterrows():
        lines.append(f"{str(name):<20} {row['MAE']:<10.4f} {row['MSE']:<10.4f} {row['RMSE']:<10.4f}")
    return "\n".join(lines)
