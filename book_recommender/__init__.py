"""
Book recommender engine.

Module layout:
- rating_matrix.py: user x item matrix and id <-> index mappings
- similarity.py: pairwise cosine similarity and the similarity cache
- collaborative.py: user-based and item-based CF
- matrix_factorization.py: non-negative latent factor model with grid search
- hybrid.py: ensemble of the three recommenders
- evaluation.py: MAE / MSE / RMSE
"""

from .collaborative import item_based_recommend, top_n_recommendations, user_based_recommend
from .evaluation import compare_models, evaluate_predictions
from .exceptions import (
    DegenerateScoreRange, DuplicateRating, InsufficientHistory, InvalidTrainerState,
    RecommenderError, ShapeMismatch, UnknownEntity,
)
from .hybrid import combine_recommendations, ensemble_recommend
from .matrix_factorization import FactorizationConfig, LatentFactorModel, TrainerState
from .rating_matrix import create_user_item_matrix, to_index_triples
from .similarity import SimilarityCache, compute_similarity

__version__ = "0.1.0"
