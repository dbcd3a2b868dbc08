"""
Configuration
=============
Paths, column names, rating scale and model parameters shared by the
recommender modules. Every function takes these as keyword defaults.
"""

from pathlib import Path

# ============================================================================
# Paths
# ============================================================================
BASE_DIR = Path(__file__).parent.parent
DATA_DIR = BASE_DIR / "data"

RATINGS_FILE = DATA_DIR / "final_ratings.csv"

# ============================================================================
# Columns
# ============================================================================
USER_COL = "user_id"
ITEM_COL = "item_id"
RATING_COL = "rating"

# ============================================================================
# Rating scale
# ============================================================================
MIN_RATING = 1
MAX_RATING = 10
FILL_VALUE = 0  # Unobserved cell in the dense matrix
IMPLICIT_RATING = 0  # "Interacted, no opinion" in the raw data

# ============================================================================
# Recommendation parameters
# ============================================================================
TOP_N = 10  # Number of recommendations
TEST_SIZE = 0.2  # Share of each user's ratings held out for evaluation
MIN_USER_RATINGS = 2  # Users with fewer ratings are never split
RANDOM_STATE = 42

SIMILARITY_N_JOBS = 1  # Worker threads for the pairwise similarity loop

# ============================================================================
# Latent factor model (non-negative matrix factorization)
# ============================================================================
MF_PARAM_GRID = {
    'rank': [10, 20],
    'learning_rate': [0.1, 0.2],
    'l2_user': [0.01, 0.1],
    'l2_item': [0.01, 0.1],
}
MF_TUNE_ITERATIONS = 20
MF_TRAIN_ITERATIONS = 100
MF_VALIDATION_SIZE = 0.2
MF_N_THREADS = 1
MF_NONNEGATIVE = True
