"""
Latent Factor Model (Non-negative Matrix Factorization)
=======================================================
Factorizes the observed ratings R into user factors P (n_users x k) and item
factors Q (n_items x k) so that r_ui ~ p_u . q_i.

- Only observed (user, item, rating) triples enter the objective; the fill
  value of the dense matrix never does.
- SGD with L2 penalties on user and item factors, factors projected onto
  [0, inf) after every update.
- The learning rate of each factor row is scaled by its accumulated squared
  gradient (AdaGrad).
- Hyperparameter search over rank, learning rate and both L2 penalties on a
  held-out split, then a longer final run at the selected values.

State machine: UNTRAINED -> TUNING -> TRAINED. Predicting requires TRAINED.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

import numpy as np
import pandas as pd
from joblib import Parallel, delayed
from sklearn.model_selection import ParameterGrid, train_test_split

from .collaborative import build_recommendations
from .config import (
    MF_PARAM_GRID, MF_TUNE_ITERATIONS, MF_TRAIN_ITERATIONS, MF_VALIDATION_SIZE,
    MF_N_THREADS, MF_NONNEGATIVE, MIN_RATING, MAX_RATING, RANDOM_STATE,
)
from .exceptions import InsufficientHistory, InvalidTrainerState, UnknownEntity

PARAM_NAMES = ('rank', 'learning_rate', 'l2_user', 'l2_item')


class TrainerState(Enum):
    UNTRAINED = "untrained"
    TUNING = "tuning"
    TRAINED = "trained"


@dataclass
class FactorizationConfig:
    """Candidate grid and fixed settings for the latent factor model."""
    param_grid: Dict[str, List[float]] = field(
        default_factory=lambda: {name: list(values) for name, values in MF_PARAM_GRID.items()}
    )
    tune_iterations: int = MF_TUNE_ITERATIONS
    train_iterations: int = MF_TRAIN_ITERATIONS
    validation_size: float = MF_VALIDATION_SIZE
    n_threads: int = MF_N_THREADS  # Affects speed only
    nonnegative: bool = MF_NONNEGATIVE
    min_rating: float = MIN_RATING
    max_rating: float = MAX_RATING
    random_state: Optional[int] = RANDOM_STATE

    def __post_init__(self):
        missing = [name for name in PARAM_NAMES if name not in self.param_grid]
        unknown = [name for name in self.param_grid if name not in PARAM_NAMES]
        if missing or unknown:
            raise ValueError(
                f"param_grid must have exactly {list(PARAM_NAMES)}; "
                f"missing={missing}, unknown={unknown}"
            )
        if any(len(values) == 0 for values in self.param_grid.values()):
            raise ValueError("param_grid has an empty candidate list")
        if not 0 < self.validation_size < 1:
            raise ValueError(f"validation_size must be in (0, 1), got {self.validation_size}")
        if self.max_rating < self.min_rating:
            raise ValueError("max_rating must be >= min_rating")

    def candidates(self):
        return list(ParameterGrid(self.param_grid))


# ============================================================================
# PART 1: SGD FACTORIZATION
# ============================================================================

def sgd_factorize(user_idx, item_idx, ratings, n_users, n_items, rank, learning_rate,
                  l2_user, l2_item, n_iterations, nonnegative=True, random_state=None):
    """
    Fit P and Q on observed triples only.

    Returns:
        tuple: (user_factors, item_factors, history) where history holds the
        training RMSE after each iteration.
    """
    rank = int(rank)
    rng = np.random.RandomState(random_state)

    # Small non-negative initialization
    scale = 1.0 / np.sqrt(rank)
    user_factors = rng.uniform(0, scale, (n_users, rank))
    item_factors = rng.uniform(0, scale, (n_items, rank))

    # Accumulated squared gradient per factor row
    user_grad_sq = np.ones(n_users)
    item_grad_sq = np.ones(n_items)

    n_samples = len(ratings)
    history = []

    for _ in range(n_iterations):
        squared_error = 0.0

        for idx in rng.permutation(n_samples):
            u = user_idx[idx]
            i = item_idx[idx]
            p_u = user_factors[u]
            q_i = item_factors[i]

            error = ratings[idx] - p_u @ q_i
            squared_error += error * error

            grad_p = error * q_i - l2_user * p_u
            grad_q = error * p_u - l2_item * q_i

            user_grad_sq[u] += grad_p @ grad_p / rank
            item_grad_sq[i] += grad_q @ grad_q / rank

            user_factors[u] = p_u + learning_rate * grad_p / np.sqrt(user_grad_sq[u])
            item_factors[i] = q_i + learning_rate * grad_q / np.sqrt(item_grad_sq[i])

            if nonnegative:
                np.maximum(user_factors[u], 0.0, out=user_factors[u])
                np.maximum(item_factors[i], 0.0, out=item_factors[i])

        history.append(float(np.sqrt(squared_error / n_samples)) if n_samples else 0.0)

    return user_factors, item_factors, history


def _validation_rmse(params, train, validation, n_users, n_items, n_iterations,
                     nonnegative, min_rating, max_rating, random_state):
    """Fit one candidate on the train split and score it on the validation split."""
    user_factors, item_factors, _ = sgd_factorize(
        train[0], train[1], train[2], n_users, n_items,
        rank=params['rank'], learning_rate=params['learning_rate'],
        l2_user=params['l2_user'], l2_item=params['l2_item'],
        n_iterations=n_iterations, nonnegative=nonnegative, random_state=random_state,
    )
    predictions = np.sum(user_factors[validation[0]] * item_factors[validation[1]], axis=1)
    if not np.all(np.isfinite(predictions)):
        return np.inf
    predictions = np.clip(predictions, min_rating, max_rating)
    return float(np.sqrt(np.mean((validation[2] - predictions) ** 2)))


# ============================================================================
# PART 2: MODEL
# ============================================================================

class LatentFactorModel:
    """
    Non-negative matrix factorization recommender with grid search.

    Works on zero-based contiguous user/item indices; use
    rating_matrix.to_index_triples to map ids first.
    """

    def __init__(self, config: Optional[FactorizationConfig] = None):
        self.config = config if config is not None else FactorizationConfig()
        self.state = TrainerState.UNTRAINED

        self.user_factors: Optional[np.ndarray] = None
        self.item_factors: Optional[np.ndarray] = None
        self.n_users: int = 0
        self.n_items: int = 0

        self.best_params_: Optional[dict] = None
        self.tuning_results_: Optional[pd.DataFrame] = None
        self.training_history: list = []

    # ------------------------------------------------------------------
    # Input handling
    # ------------------------------------------------------------------
    @staticmethod
    def _check_triples(user_idx, item_idx, ratings):
        user_idx = np.asarray(user_idx)
        item_idx = np.asarray(item_idx)
        ratings = np.asarray(ratings, dtype=np.float64)

        if not (user_idx.ndim == item_idx.ndim == ratings.ndim == 1):
            raise ValueError("user_idx, item_idx and ratings must be 1-dimensional")
        if not (len(user_idx) == len(item_idx) == len(ratings)):
            raise ValueError(
                f"Triples have unequal lengths: {len(user_idx)}, {len(item_idx)}, {len(ratings)}"
            )
        if len(ratings) and (user_idx.min() < 0 or item_idx.min() < 0):
            raise ValueError("Indices must be zero-based non-negative integers")
        if not np.all(np.isfinite(ratings)):
            raise ValueError("Ratings contain NaN or infinite values")

        return user_idx.astype(np.int64), item_idx.astype(np.int64), ratings

    @staticmethod
    def _shape(user_idx, item_idx, n_users, n_items):
        n_users = int(user_idx.max()) + 1 if n_users is None else int(n_users)
        n_items = int(item_idx.max()) + 1 if n_items is None else int(n_items)
        if user_idx.max() >= n_users or item_idx.max() >= n_items:
            raise ValueError("Indices exceed the given n_users / n_items")
        return n_users, n_items

    # ------------------------------------------------------------------
    # Tuning
    # ------------------------------------------------------------------
    def tune(self, user_idx, item_idx, ratings, n_users=None, n_items=None, verbose=False):
        """
        Grid search on a held-out split; stores best_params_ and tuning_results_.

        Every candidate starts from the same seed, so the chosen parameters
        do not depend on n_threads.
        """
        if self.state is TrainerState.TUNING:
            raise InvalidTrainerState("Model is already tuning")

        user_idx, item_idx, ratings = self._check_triples(user_idx, item_idx, ratings)
        if len(ratings) < 2:
            raise InsufficientHistory(
                f"Tuning needs at least 2 observed ratings, got {len(ratings)}"
            )
        n_users, n_items = self._shape(user_idx, item_idx, n_users, n_items)

        config = self.config
        candidates = config.candidates()
        previous_state = self.state
        self.state = TrainerState.TUNING

        try:
            if verbose:
                print("\n" + "=" * 60)
                print("TUNING LATENT FACTOR MODEL")
                print("=" * 60)
                print(f"[TUNE] Candidates: {len(candidates)}")
                print(f"       Ratings: {len(ratings):,} (validation share {config.validation_size:.0%})")

            positions = np.arange(len(ratings))
            train_pos, val_pos = train_test_split(
                positions, test_size=config.validation_size, random_state=config.random_state
            )
            train = (user_idx[train_pos], item_idx[train_pos], ratings[train_pos])
            validation = (user_idx[val_pos], item_idx[val_pos], ratings[val_pos])

            shared = dict(
                train=train, validation=validation, n_users=n_users, n_items=n_items,
                n_iterations=config.tune_iterations, nonnegative=config.nonnegative,
                min_rating=config.min_rating, max_rating=config.max_rating,
                random_state=config.random_state,
            )
            if config.n_threads == 1:
                scores = [_validation_rmse(params, **shared) for params in candidates]
            else:
                scores = Parallel(n_jobs=config.n_threads, prefer="threads")(
                    delayed(_validation_rmse)(params, **shared) for params in candidates
                )

            results = pd.DataFrame(candidates, columns=list(PARAM_NAMES))
            results['validation_rmse'] = scores

            if not np.isfinite(results['validation_rmse']).any():
                raise ValueError("Every candidate diverged; lower the learning rates in param_grid")

            best_row = results.loc[results['validation_rmse'].idxmin()]
            best_params = {name: best_row[name] for name in PARAM_NAMES}
            best_params['rank'] = int(best_params['rank'])

            if verbose:
                for _, row in results.iterrows():
                    print(f"       rank={int(row['rank']):<4} lr={row['learning_rate']:<6} "
                          f"l2_user={row['l2_user']:<6} l2_item={row['l2_item']:<6} "
                          f"RMSE={row['validation_rmse']:.4f}")
                print(f"[DONE] Best: {best_params} (RMSE {best_row['validation_rmse']:.4f})")
        finally:
            self.state = previous_state

        self.tuning_results_ = results
        self.best_params_ = best_params
        return best_params

    # ------------------------------------------------------------------
    # Training
    # ------------------------------------------------------------------
    def fit(self, user_idx, item_idx, ratings, params=None, n_users=None, n_items=None,
            verbose=False):
        """
        Final training run for train_iterations.

        params defaults to best_params_ from tune(), else the first grid
        candidate.
        """
        if self.state is TrainerState.TUNING:
            raise InvalidTrainerState("Cannot train while tuning")

        user_idx, item_idx, ratings = self._check_triples(user_idx, item_idx, ratings)
        if len(ratings) == 0:
            raise InsufficientHistory("Training needs at least 1 observed rating")
        n_users, n_items = self._shape(user_idx, item_idx, n_users, n_items)

        if params is None:
            params = self.best_params_ if self.best_params_ is not None else self.config.candidates()[0]
        missing = [name for name in PARAM_NAMES if name not in params]
        if missing:
            raise ValueError(f"params is missing {missing}")

        config = self.config
        if verbose:
            print("\n" + "=" * 60)
            print(f"TRAINING LATENT FACTOR MODEL (k={int(params['rank'])})")
            print("=" * 60)
            print(f"       Ratings: {len(ratings):,}")
            print(f"       Users: {n_users:,}  Items: {n_items:,}")
            print(f"       Learning rate: {params['learning_rate']}")
            print(f"       L2: user={params['l2_user']}, item={params['l2_item']}")
            print(f"       Iterations: {config.train_iterations}")

        user_factors, item_factors, history = sgd_factorize(
            user_idx, item_idx, ratings, n_users, n_items,
            rank=params['rank'], learning_rate=params['learning_rate'],
            l2_user=params['l2_user'], l2_item=params['l2_item'],
            n_iterations=config.train_iterations, nonnegative=config.nonnegative,
            random_state=config.random_state,
        )

        if not (np.all(np.isfinite(user_factors)) and np.all(np.isfinite(item_factors))):
            self.state = TrainerState.UNTRAINED
            raise ValueError("Training diverged; lower the learning rate")

        self.user_factors = user_factors
        self.item_factors = item_factors
        self.n_users = n_users
        self.n_items = n_items
        self.training_history = history
        self.state = TrainerState.TRAINED

        if verbose and history:
            print(f"[DONE] Training RMSE: {history[-1]:.4f}")
        return self

    def tune_and_fit(self, user_idx, item_idx, ratings, n_users=None, n_items=None, verbose=False):
        self.tune(user_idx, item_idx, ratings, n_users=n_users, n_items=n_items, verbose=verbose)
        return self.fit(user_idx, item_idx, ratings, n_users=n_users, n_items=n_items, verbose=verbose)

    # ------------------------------------------------------------------
    # Prediction
    # ------------------------------------------------------------------
    @property
    def is_trained(self):
        return self.state is TrainerState.TRAINED

    def _require_trained(self):
        if self.state is not TrainerState.TRAINED:
            raise InvalidTrainerState(
                f"Model must be trained before predicting (state: {self.state.value})"
            )

    def predict(self, user_idx, item_idx, clip=True):
        """
        Predicted rating p_u . q_i, clipped to [min_rating, max_rating].

        Accepts scalars (returns float) or equal-length index arrays.
        """
        self._require_trained()

        users = np.asarray(user_idx, dtype=np.int64)
        items = np.asarray(item_idx, dtype=np.int64)
        if users.size and (users.min() < 0 or users.max() >= self.n_users):
            bad = users[(users < 0) | (users >= self.n_users)].ravel()[0]
            raise UnknownEntity("user index", int(bad))
        if items.size and (items.min() < 0 or items.max() >= self.n_items):
            bad = items[(items < 0) | (items >= self.n_items)].ravel()[0]
            raise UnknownEntity("item index", int(bad))

        predictions = np.sum(self.user_factors[users] * self.item_factors[items], axis=-1)
        if clip:
            predictions = np.clip(predictions, self.config.min_rating, self.config.max_rating)

        if np.ndim(predictions) == 0:
            return float(predictions)
        return predictions

    def recommend_for_user(self, user_idx, item_indices, idx_to_item, rated_mask=None):
        """Ranked predictions for one user restricted to item_indices."""
        item_indices = np.asarray(item_indices, dtype=np.int64)
        scores = self.predict(np.full(item_indices.shape, user_idx, dtype=np.int64), item_indices)
        if rated_mask is None:
            rated_mask = np.zeros(self.n_items, dtype=bool)
        return build_recommendations(scores, rated_mask, idx_to_item, item_indices=item_indices)
